"""Result screen state: display text, visibility, and classification passes.

Each submitted image starts a new :class:`ClassificationPass`, which clears
the display text and hides the results. Every classifier completion records
one line on its pass; the line reaches the screen only while that pass is
still the current generation and the screen has not been closed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "choose or take a photo"


@dataclass
class ClassificationPass:
    """Per-image context carried through every classifier completion."""

    generation: int
    expected: int
    lines: list[str] = field(default_factory=list)

    @property
    def pending(self) -> int:
        return self.expected - len(self.lines)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class DisplaySnapshot:
    text: str
    visible: bool
    generation: int
    pending: int


class ResultScreen:
    """The single result surface shared by all classification passes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._text = PLACEHOLDER_TEXT
        self._visible = True
        self._generation = 0
        self._current: ClassificationPass | None = None
        self._closed = False

    def begin_pass(self, expected: int) -> ClassificationPass:
        """Start a new pass: bump the generation, clear the text, hide results."""
        if expected < 1:
            raise ValueError(f"A classification pass needs at least one classifier, got {expected}")
        with self._lock:
            self._generation += 1
            self._current = ClassificationPass(generation=self._generation, expected=expected)
            self._text = ""
            self._visible = False
            return self._current

    def record(self, classification_pass: ClassificationPass, line: str) -> bool:
        """Record one classifier's line.

        Returns:
            True if the line was shown on the screen, False if it was only
            kept on the pass because the pass is stale or the screen closed.

        Raises:
            RuntimeError: If every expected classifier has already reported.
        """
        with self._lock:
            if classification_pass.pending == 0:
                raise RuntimeError(
                    f"Pass {classification_pass.generation} already has all {classification_pass.expected} lines"
                )
            classification_pass.lines.append(line)

            if self._closed:
                logger.debug("Screen closed, dropping line for pass %s", classification_pass.generation)
                return False
            if classification_pass.generation != self._generation:
                logger.debug(
                    "Discarding stale line for pass %s (current %s)",
                    classification_pass.generation,
                    self._generation,
                )
                return False

            self._text = f"{self._text}\n{line}" if self._text else line
            self._visible = True
            return True

    def hide(self) -> None:
        with self._lock:
            self._visible = False

    def close(self) -> None:
        """Stop accepting updates; in-flight passes can no longer touch the screen."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def snapshot(self) -> DisplaySnapshot:
        with self._lock:
            pending = self._current.pending if self._current is not None else 0
            return DisplaySnapshot(
                text=self._text,
                visible=self._visible,
                generation=self._generation,
                pending=pending,
            )
