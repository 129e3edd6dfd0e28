"""Classification of a submitted photo by the snack and health classifiers."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from healthysnacks.ml.preprocessing import NormalizationError, TargetSize, decode_image, normalize
from healthysnacks.ml.selector import ClassifierOutcome, SelectedLine, describe_outcome

if TYPE_CHECKING:
    from collections.abc import Sequence

    from healthysnacks.ml.display import ResultScreen
    from healthysnacks.ml.image_classifier import ImageClassifier
    from healthysnacks.ml.inference import InferencePool
    from healthysnacks.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationReport:
    generation: int
    lines: list[SelectedLine]

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


class ClassificationService:
    """Normalizes a photo once and fans it out to every classifier."""

    def __init__(
        self,
        classifiers: Sequence[ImageClassifier],
        pool: InferencePool,
        screen: ResultScreen,
        *,
        target: TargetSize,
        confidence_threshold: float,
        max_image_pixels: int,
        model_manager: ModelManager | None = None,
    ) -> None:
        if not classifiers:
            raise ValueError("At least one classifier is required")
        self._classifiers = list(classifiers)
        self._pool = pool
        self._screen = screen
        self._target = target
        self._confidence_threshold = confidence_threshold
        self._max_image_pixels = max_image_pixels
        self._model_manager = model_manager

    @property
    def classifiers(self) -> list[ImageClassifier]:
        return list(self._classifiers)

    async def classify(self, image_bytes: bytes) -> ClassificationReport:
        """Classify one photo and record a line per classifier on the screen.

        Raises:
            ImageDecodeError: If the upload is not a usable image.
            NormalizationError: If the image cannot be normalized. The screen
                keeps whatever it showed before.
        """
        image = decode_image(image_bytes, self._max_image_pixels)
        try:
            buffer = normalize(image, self._target)
        except NormalizationError:
            logger.exception("Failed to normalize %sx%s image", *image.size)
            raise

        if self._model_manager is not None:
            self._model_manager.unload_idle_models()

        classification_pass = self._screen.begin_pass(expected=len(self._classifiers))
        calls = [functools.partial(classifier.classify, buffer) for classifier in self._classifiers]

        lines: list[SelectedLine] = []
        async for completion in self._pool.as_completed(calls):
            classifier = self._classifiers[completion.index]
            outcome = ClassifierOutcome(
                classifier=classifier.model_name,
                results=completion.value,
                error=completion.error,
            )
            if completion.error is not None:
                logger.warning("Classifier %s failed: %s", classifier.model_name, completion.error)

            line = describe_outcome(outcome, self._confidence_threshold)
            self._screen.record(classification_pass, line.text)
            lines.append(line)

        logger.info(
            "Pass %s finished: %s",
            classification_pass.generation,
            " | ".join(classification_pass.lines),
        )
        return ClassificationReport(generation=classification_pass.generation, lines=lines)
