"""Translate host detection payloads into RawDetection.

Two shapes reach the tracker besides the bundled ultralytics engine:

* mapping shape, nested dicts as sent over a method channel::

    {"boundingBox": {"left": 10, "top": 20, "width": 30, "height": 40},
     "labels": [{"text": "cup", "confidence": 0.8}, ...]}

  The first label is taken as the reported one.

* object shape, attribute access on engine-native results: an object
  with ``bounding_box`` (``left``/``top``/``right``/``bottom``) and
  ``labels`` whose items carry ``text`` and ``confidence``. The
  highest-confidence label is taken.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from perception.errors import INVALID_ARGUMENTS, DetectionError
from perception.geometry import Rectangle
from perception.types import LabelScore, RawDetection, best_label


def _number(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise DetectionError(
            INVALID_ARGUMENTS, f"bounding box field {field_name!r} is not a number: {value!r}"
        ) from exc


def _labels_from_mappings(raw: Iterable[Mapping[str, Any]] | None) -> tuple[LabelScore, ...]:
    if not raw:
        return ()
    return tuple(
        LabelScore(text=str(item.get("text", "")), confidence=float(item.get("confidence", 0.0)))
        for item in raw
    )


def from_mapping(payload: Mapping[str, Any]) -> RawDetection:
    """Build a RawDetection from the nested-dict shape."""
    box = payload.get("boundingBox")
    if not isinstance(box, Mapping):
        raise DetectionError(INVALID_ARGUMENTS, "detection has no boundingBox mapping")

    rect = Rectangle(
        left=_number(box.get("left"), "left"),
        top=_number(box.get("top"), "top"),
        width=_number(box.get("width"), "width"),
        height=_number(box.get("height"), "height"),
    )
    labels = _labels_from_mappings(payload.get("labels"))
    first = labels[0] if labels else None
    return RawDetection(
        box=rect,
        label=first.text if first else None,
        confidence=first.confidence if first else None,
        labels=labels,
    )


def from_object(obj: Any) -> RawDetection:
    """Build a RawDetection from an object with ``bounding_box`` and ``labels``."""
    bbox = obj.bounding_box
    rect = Rectangle.from_xyxy(
        float(bbox.left), float(bbox.top), float(bbox.right), float(bbox.bottom)
    )
    labels = tuple(
        LabelScore(text=str(lbl.text), confidence=float(lbl.confidence))
        for lbl in (getattr(obj, "labels", None) or ())
    )
    top = best_label(labels)
    return RawDetection(
        box=rect,
        label=top.text if top else None,
        confidence=top.confidence if top else None,
        labels=labels,
    )


def from_mappings(payloads: Iterable[Mapping[str, Any]]) -> list[RawDetection]:
    return [from_mapping(p) for p in payloads]


def from_objects(objects: Iterable[Any]) -> list[RawDetection]:
    return [from_object(o) for o in objects]
