"""YOLO object detection engine.

Wraps ultralytics YOLO to return RawDetection objects (box in pixel
coordinates, best label, confidence) in the order the model emits them.
The engine knows nothing about identity; track ids are assigned
afterwards by perception.tracker.
"""
from __future__ import annotations

import numpy as np
from ultralytics import YOLO

from vision_shared.logging import get_logger

from perception.geometry import Rectangle
from perception.types import LabelScore, RawDetection

log = get_logger(__name__)


def _parse_result(result, names: dict[int, str]) -> list[RawDetection]:
    """Parse a single YOLO result into RawDetection objects, engine order kept."""
    detections: list[RawDetection] = []

    if result.boxes is None or len(result.boxes) == 0:
        return detections

    boxes_xyxy = result.boxes.xyxy.cpu().numpy()
    confidences = result.boxes.conf.cpu().numpy()
    classes = result.boxes.cls.cpu().numpy()

    for i in range(len(boxes_xyxy)):
        x1, y1, x2, y2 = (float(v) for v in boxes_xyxy[i])
        text = names.get(int(classes[i]))
        confidence = float(confidences[i])
        labels = (LabelScore(text=text, confidence=confidence),) if text else ()
        detections.append(
            RawDetection(
                box=Rectangle.from_xyxy(x1, y1, x2, y2),
                label=text,
                confidence=confidence if text else None,
                labels=labels,
            )
        )
    return detections


class Detector:
    """Loads a YOLO detection model and runs single-frame inference.

    Args:
        name: Display name reported to the host (e.g. "Default Object Detector").
        model_path: Weights filename/path (e.g. "yolo11n.pt").
            ultralytics auto-downloads official weights if not found locally.
        device: Torch device string ("cpu", "cuda", "mps").
        confidence: Minimum detection confidence threshold.
        iou: NMS IOU threshold.
    """

    def __init__(
        self,
        name: str,
        model_path: str = "yolo11n.pt",
        device: str = "cpu",
        confidence: float = 0.25,
        iou: float = 0.7,
    ) -> None:
        log.info("detector_loading", model=name, path=model_path, device=device)
        self.name = name
        self._model = YOLO(model_path)
        self._names: dict[int, str] = dict(self._model.names)
        self._device = device
        self._confidence = confidence
        self._iou = iou
        log.info("detector_ready", model=name, classes=len(self._names))

    def detect(self, frame: np.ndarray) -> list[RawDetection]:
        """Run detection on a single RGB frame.

        Args:
            frame: HxWx3 uint8 RGB numpy array.
        Returns:
            RawDetection objects in the order the engine returned them.
        """
        # ultralytics reads ndarray input as BGR
        bgr = np.ascontiguousarray(frame[..., ::-1])
        results = self._model.predict(
            bgr,
            conf=self._confidence,
            iou=self._iou,
            device=self._device,
            verbose=False,
        )
        detections: list[RawDetection] = []
        for result in results:
            detections.extend(_parse_result(result, self._names))
        return detections
