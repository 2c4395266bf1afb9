"""Pydantic v2 event schemas for all Redis Streams messages.

Stream naming convention: {domain}:{camera_id}
  frames:cam-01            compressed frames from ingestion
  detections:cam-01        per-frame detection results from perception
  controls:cam-01          host commands (tracking toggle, model switch, ...)
  control_replies:cam-01   replies to host commands

Field names on the detection boundary are camelCase (``trackingId``,
``processingTimeMs``, ``isCustom``) because the presentation layer reads
them verbatim; Python code uses the snake_case attribute names.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ── Ingestion → Perception ────────────────────────────────────────────────────

class FrameMessage(_FrozenModel):
    """A single compressed camera frame published by the ingestion service.

    Stream: frames:{camera_id}
    """

    camera_id: str
    timestamp_ns: int = Field(description="Monotonic nanosecond timestamp")
    frame_seq: int = Field(description="Monotonically increasing frame counter per camera")
    jpeg_b64: str = Field(description="Base64-encoded JPEG bytes")
    width: int
    height: int


# ── Perception → Presentation ─────────────────────────────────────────────────

class DetectionPayload(_FrozenModel):
    """One detection as reported to the presentation layer.

    Coordinates are in the source image's pixel space, untouched by the
    tracker. ``tracking_id`` is None when tracking is disabled and is then
    left out of the serialized payload.
    """

    label: str
    confidence: float
    left: float
    top: float
    width: float
    height: float
    tracking_id: int | None = Field(default=None, alias="trackingId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FrameResultEvent(_FrozenModel):
    """Detection result for one processed frame.

    Stream: detections:{camera_id}
    A skipped frame (detector busy) carries no detections and 0 ms.
    """

    camera_id: str
    frame_seq: int
    timestamp_ns: int
    detections: list[DetectionPayload] = Field(default_factory=list)
    processing_time_ms: int = Field(alias="processingTimeMs")
    skipped: bool = False
    error_code: str | None = Field(default=None, alias="errorCode")
    error_message: str | None = Field(default=None, alias="errorMessage")


# ── Host → Perception control surface ─────────────────────────────────────────

class ControlCommand(_FrozenModel):
    """A command from the host application.

    Stream: controls:{camera_id}

    ``method`` is one of: enableObjectTracking, loadCustomModel,
    stopObjectDetection, getAvailableModels, resetTracking.
    """

    method: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    request_id: str = Field(
        default="", alias="requestId", description="Echoed back in the reply"
    )


class ControlReply(_FrozenModel):
    """Outcome of a ControlCommand.

    Stream: control_replies:{camera_id}
    """

    request_id: str = Field(alias="requestId")
    method: str
    ok: bool
    result: Any = None
    error_code: str | None = Field(default=None, alias="errorCode")
    error_message: str | None = Field(default=None, alias="errorMessage")
