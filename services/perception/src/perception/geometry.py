"""Axis-aligned rectangles and Intersection-over-Union."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Rectangle:
    """Box in image pixel coordinates, anchored at its top-left corner.

    Values are stored as given. A negative width or height is not rejected;
    such a box has no area and never overlaps anything.
    """

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def area(self) -> float:
        if self.width <= 0 or self.height <= 0:
            return 0.0
        return float(self.width * self.height)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> Rectangle:
        return cls(left=x1, top=y1, width=x2 - x1, height=y2 - y1)

    def intersection(self, other: Rectangle) -> Rectangle | None:
        """Overlap of the two boxes, or None when it has no positive area."""
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        if right <= left or bottom <= top:
            return None
        return Rectangle(left=left, top=top, width=right - left, height=bottom - top)


def iou(a: Rectangle, b: Rectangle) -> float:
    """Intersection-over-Union of two rectangles, in [0, 1].

    Returns 0.0 when the boxes share no positive area, which also covers
    degenerate (zero-area) boxes, so the union is never zero when divided by.
    """
    inter = a.intersection(b)
    if inter is None or a.area == 0.0 or b.area == 0.0:
        return 0.0
    inter_area = inter.area
    return inter_area / (a.area + b.area - inter_area)
