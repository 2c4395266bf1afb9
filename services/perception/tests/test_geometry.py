"""Tests for Rectangle and IoU."""
from __future__ import annotations

import pytest

from perception.geometry import Rectangle, iou


def test_identical_boxes():
    box = Rectangle(10, 20, 30, 40)
    assert iou(box, box) == 1.0


def test_small_shift():
    a = Rectangle(0, 0, 100, 100)
    b = Rectangle(5, 5, 100, 100)
    # 95 * 95 / (2 * 10000 - 9025)
    assert iou(a, b) == pytest.approx(0.8223, abs=1e-4)


def test_large_shift():
    a = Rectangle(0, 0, 100, 100)
    b = Rectangle(60, 60, 100, 100)
    assert iou(a, b) == pytest.approx(1600 / 18400)


def test_iou_is_symmetric():
    a = Rectangle(0, 0, 50, 80)
    b = Rectangle(20, 10, 70, 30)
    assert iou(a, b) == iou(b, a)


@pytest.mark.parametrize(
    "other",
    [
        Rectangle(100, 0, 50, 50),  # touching edge
        Rectangle(200, 200, 10, 10),  # disjoint
    ],
)
def test_no_overlap(other):
    assert iou(Rectangle(0, 0, 100, 100), other) == 0.0


def test_containment():
    outer = Rectangle(0, 0, 100, 100)
    inner = Rectangle(25, 25, 50, 50)
    assert iou(outer, inner) == pytest.approx(0.25)


@pytest.mark.parametrize(
    "box",
    [Rectangle(0, 0, 0, 0), Rectangle(0, 0, 0, 10), Rectangle(5, 5, -10, 20)],
)
def test_degenerate_boxes_score_zero(box):
    assert box.area == 0.0
    assert iou(box, Rectangle(0, 0, 100, 100)) == 0.0
    assert iou(box, box) == 0.0


def test_from_xyxy():
    box = Rectangle.from_xyxy(10, 20, 40, 80)
    assert box == Rectangle(10, 20, 30, 60)
    assert (box.right, box.bottom) == (40, 80)


def test_intersection():
    a = Rectangle(0, 0, 10, 10)
    b = Rectangle(5, 5, 10, 10)
    assert a.intersection(b) == Rectangle(5, 5, 5, 5)
    assert a.intersection(Rectangle(10, 10, 5, 5)) is None
