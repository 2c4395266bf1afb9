"""Detection session: one engine, one tracker, and the host's switches for them.

A session is owned by one camera pipeline. Frames go through
``process_frame``; only one frame is processed at a time. A frame that
arrives while another is in flight is dropped and reported as skipped
(empty detections, 0 ms) instead of being queued.

Tracker calls are serialized with a lock because frames run in an executor
thread while control commands (tracking toggle, model switch) arrive on the
event loop thread.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from vision_shared.events.schemas import DetectionPayload
from vision_shared.logging import get_logger

from perception.errors import DETECTION_FAILED, INVALID_IMAGE, DetectionError
from perception.model_registry import ModelRegistry
from perception.tracker import Tracker
from perception.types import DetectionEngine, RawDetection

log = get_logger(__name__)


@dataclass(frozen=True)
class FrameResult:
    detections: list[DetectionPayload] = field(default_factory=list)
    processing_time_ms: int = 0
    skipped: bool = False


def to_payload(detection: RawDetection, track_id: int | None = None) -> DetectionPayload:
    box = detection.box
    return DetectionPayload(
        label=detection.display_label,
        confidence=detection.score,
        left=float(box.left),
        top=float(box.top),
        width=float(box.width),
        height=float(box.height),
        tracking_id=track_id,
    )


class DetectionSession:
    """Runs detection (and tracking, when enabled) for one camera.

    Args:
        models: Registry used to load the initial model and later switches.
        tracker: Tracker instance; a fresh one is created if omitted.
        tracking_enabled: Whether detections get track ids.
        initial_model: Model to load first; the registry default if omitted.
    """

    def __init__(
        self,
        models: ModelRegistry,
        tracker: Tracker | None = None,
        tracking_enabled: bool = True,
        initial_model: str | None = None,
    ) -> None:
        self._models = models
        self._engine: DetectionEngine = models.load(initial_model or models.default_name)
        self._tracker = tracker or Tracker()
        self._tracking_enabled = tracking_enabled
        self._busy = False
        self._busy_lock = threading.Lock()
        self._tracker_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._engine.name

    @property
    def default_model(self) -> str:
        return self._models.default_name

    @property
    def tracking_enabled(self) -> bool:
        return self._tracking_enabled

    @property
    def tracker(self) -> Tracker:
        return self._tracker

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------
    # Frame path
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> FrameResult:
        """Detect objects in ``frame`` and assign track ids.

        Returns a skipped result straight away if another frame is in flight.

        Raises:
            DetectionError: INVALID_IMAGE for a frame that is not HxWx3,
                DETECTION_FAILED when the engine raises.
        """
        if not self._try_begin():
            log.debug("frame_skipped_busy")
            return FrameResult(skipped=True)

        start = time.monotonic()
        try:
            if not isinstance(frame, np.ndarray) or frame.ndim != 3 or frame.size == 0:
                raise DetectionError(INVALID_IMAGE, "frame must be a non-empty HxWx3 array")
            try:
                raw = list(self._engine.detect(frame))
            except Exception as exc:
                raise DetectionError(DETECTION_FAILED, str(exc)) from exc
            detections = self.identify(raw)
        finally:
            self._end()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return FrameResult(detections=detections, processing_time_ms=elapsed_ms)

    def identify(self, detections: Sequence[RawDetection]) -> list[DetectionPayload]:
        """Serialize detections, with track ids when tracking is enabled."""
        with self._tracker_lock:
            if not self._tracking_enabled:
                return [to_payload(det) for det in detections]
            identified = self._tracker.assign(detections)
        return [to_payload(i.detection, i.track_id) for i in identified]

    def _try_begin(self) -> bool:
        with self._busy_lock:
            if self._busy:
                return False
            self._busy = True
            return True

    def _end(self) -> None:
        with self._busy_lock:
            self._busy = False

    # ------------------------------------------------------------------
    # Host controls
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Clear the busy flag so the next frame is processed."""
        self._end()
        log.info("detection_stopped", model=self.model_name)

    def set_tracking_enabled(self, enabled: bool) -> None:
        """Switch tracking on or off. Switching it back on starts from no live tracks."""
        with self._tracker_lock:
            was_enabled = self._tracking_enabled
            self._tracking_enabled = enabled
            if enabled and not was_enabled:
                self._tracker.reset()
        log.info("tracking_toggled", enabled=enabled)

    def reset_tracking(self) -> None:
        with self._tracker_lock:
            self._tracker.reset()

    def load_model(self, name: str) -> str:
        """Switch to model ``name`` and forget live tracks.

        A custom model that fails to load is replaced by the default one.
        Returns the name of the model now in use.

        Raises:
            DetectionError: MODEL_LOADING_ERROR if even the default model
                cannot be loaded; the previous engine stays in place.
        """
        engine = self._models.load(name)
        with self._tracker_lock:
            self._engine = engine
            self._tracker.reset()
        log.info("model_switched", requested=name, active=engine.name)
        return engine.name

    def available_models(self) -> list[dict]:
        return [info.to_wire() for info in self._models.list_models()]
