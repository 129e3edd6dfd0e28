"""Turn classifier output into the status lines shown to the user."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from healthysnacks.ml.image_classifier import ClassificationResult

DEFAULT_CONFIDENCE_THRESHOLD = 0.8

NOTHING_FOUND = "Nothing found"
UNRECOGNIZED = "???"


class LineKind(StrEnum):
    CONFIDENT = "confident"
    HEDGED = "hedged"
    EMPTY = "empty"
    ERROR = "error"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class ClassifierOutcome:
    """What a single classifier invocation produced.

    Exactly one of ``results`` and ``error`` is normally set; neither being
    set is the unrecognized outcome.
    """

    classifier: str
    results: Sequence[ClassificationResult] | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class SelectedLine:
    classifier: str
    kind: LineKind
    text: str


def select(results: Sequence[ClassificationResult], confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD) -> str:
    """Format the top result; below the threshold the label is hedged."""
    return _select(results, confidence_threshold)[1]


def _select(results: Sequence[ClassificationResult], confidence_threshold: float) -> tuple[LineKind, str]:
    if not results:
        return LineKind.EMPTY, NOTHING_FOUND

    top = results[0]
    if top.confidence < confidence_threshold:
        return LineKind.HEDGED, f"It is {top.label}? Not sure"
    return LineKind.CONFIDENT, f"{top.label} - {top.confidence * 100:.1f}%"


def error_description(error: BaseException) -> str:
    """Single-line description of error; a classifier contributes one display line."""
    return " ".join(str(error).split()) or type(error).__name__


def describe_outcome(
    outcome: ClassifierOutcome, confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
) -> SelectedLine:
    """Map one classifier completion to exactly one display line."""
    if outcome.results is not None:
        kind, text = _select(outcome.results, confidence_threshold)
    elif outcome.error is not None:
        kind, text = LineKind.ERROR, f"Error: {error_description(outcome.error)}"
    else:
        kind, text = LineKind.UNRECOGNIZED, UNRECOGNIZED
    return SelectedLine(classifier=outcome.classifier, kind=kind, text=text)
