"""Snack and health image classifiers backed by ONNX Runtime."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from healthysnacks.ml.model_manager import get_model_spec

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from healthysnacks.ml.model_manager import ModelManager
    from healthysnacks.ml.preprocessing import NormalizedBuffer

logger = logging.getLogger(__name__)


class ClassifierInvocationError(RuntimeError):
    """Raised when a classifier fails to produce results for an image."""


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, buffer: NormalizedBuffer) -> list[ClassificationResult]:
        """Classify a normalized image.

        Args:
            buffer: ARGB pixel buffer at the model's input size.

        Returns:
            List of classification results sorted by confidence (descending).
        """
        ...


def softmax(scores: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = np.exp(scores - np.max(scores))
    return shifted / shifted.sum()


class OnnxImageClassifier:
    """Runs a registry model on a normalized buffer and ranks its labels."""

    def __init__(self, model_name: str, model_manager: ModelManager, top_k: int = 5) -> None:
        self._spec = get_model_spec(model_name)
        self._model_manager = model_manager
        self._top_k = top_k

    @property
    def model_name(self) -> str:
        return self._spec.name

    def classify(self, buffer: NormalizedBuffer) -> list[ClassificationResult]:
        spec = self._spec
        if (buffer.width, buffer.height) != (spec.input_size, spec.input_size):
            raise ClassifierInvocationError(
                f"{spec.name} expects {spec.input_size}x{spec.input_size} input, got {buffer.width}x{buffer.height}"
            )

        tensor = buffer.to_tensor(layout=spec.input_layout, scale=spec.pixel_scale)
        try:
            session = self._model_manager.get_session(spec.name)
            input_name = session.get_inputs()[0].name
            outputs = session.run(None, {input_name: tensor})
        except Exception as exc:
            logger.warning("Inference failed for %s: %s", spec.name, exc)
            raise ClassifierInvocationError(f"{spec.name} inference failed: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size != len(spec.labels):
            raise ClassifierInvocationError(f"{spec.name} returned {scores.size} scores for {len(spec.labels)} labels")
        if spec.apply_softmax:
            scores = softmax(scores)

        ranked = np.argsort(-scores, kind="stable")[: self._top_k]
        return [ClassificationResult(label=spec.labels[i], confidence=float(scores[i])) for i in ranked]
