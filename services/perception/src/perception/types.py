"""Detection value types shared by the engine, the adapters and the tracker."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence

import numpy as np

from perception.geometry import Rectangle

UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class LabelScore:
    text: str
    confidence: float


@dataclass(frozen=True)
class RawDetection:
    """One detection in one frame, with no identity.

    ``label`` and ``confidence`` may be missing when the engine did not
    classify the object; ``display_label`` and ``score`` give the values
    reported downstream in that case.
    """

    box: Rectangle
    label: str | None = None
    confidence: float | None = None
    labels: tuple[LabelScore, ...] = field(default=(), compare=False)

    @property
    def display_label(self) -> str:
        return self.label if self.label is not None else UNKNOWN_LABEL

    @property
    def score(self) -> float:
        return float(self.confidence) if self.confidence is not None else 0.0


class DetectionEngine(Protocol):
    """Anything that turns one RGB frame into an ordered list of detections."""

    name: str

    def detect(self, frame: np.ndarray) -> Sequence[RawDetection]:
        ...


def best_label(labels: Sequence[LabelScore]) -> LabelScore | None:
    """Highest-confidence label; the first one wins a tie."""
    best: LabelScore | None = None
    for candidate in labels:
        if best is None or candidate.confidence > best.confidence:
            best = candidate
    return best
