"""Errors reported back to the host application."""
from __future__ import annotations

MODEL_LOADING_ERROR = "MODEL_LOADING_ERROR"
DETECTION_FAILED = "DETECTION_FAILED"
PROCESSING_ERROR = "PROCESSING_ERROR"
INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
INVALID_IMAGE = "INVALID_IMAGE"
NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


class DetectionError(Exception):
    """A failure in the detection path, tagged with a host-facing code.

    The tracker never raises one of these; they come from model loading,
    frame decoding or the detection engine.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"
