"""Host command handling for a DetectionSession.

Maps ControlCommand.method names onto session calls and wraps the outcome
in a ControlReply. Argument validation errors come back as
INVALID_ARGUMENTS; detection errors keep their own code.
"""
from __future__ import annotations

from typing import Any

from vision_shared.events.schemas import ControlCommand, ControlReply
from vision_shared.logging import get_logger

from perception.errors import (
    INVALID_ARGUMENTS,
    NOT_IMPLEMENTED,
    PROCESSING_ERROR,
    DetectionError,
)
from perception.session import DetectionSession

log = get_logger(__name__)


class ControlHandler:
    """Dispatches host commands to one DetectionSession."""

    def __init__(self, session: DetectionSession) -> None:
        self._session = session
        self._handlers = {
            "enableObjectTracking": self._enable_tracking,
            "loadCustomModel": self._load_model,
            "stopObjectDetection": self._stop,
            "getAvailableModels": self._available_models,
            "resetTracking": self._reset_tracking,
        }

    def handle(self, command: ControlCommand) -> ControlReply:
        handler = self._handlers.get(command.method)
        if handler is None:
            return self._error(command, NOT_IMPLEMENTED, f"unknown method '{command.method}'")
        try:
            result = handler(command.arguments)
        except DetectionError as exc:
            log.warning("control_command_failed", method=command.method, code=exc.code, error=exc.message)
            return self._error(command, exc.code, exc.message)
        except Exception as exc:
            log.error("control_command_error", method=command.method, error=str(exc))
            return self._error(command, PROCESSING_ERROR, str(exc))
        log.info("control_command_handled", method=command.method)
        return ControlReply(
            request_id=command.request_id, method=command.method, ok=True, result=result
        )

    @staticmethod
    def _error(command: ControlCommand, code: str, message: str) -> ControlReply:
        return ControlReply(
            request_id=command.request_id,
            method=command.method,
            ok=False,
            error_code=code,
            error_message=message,
        )

    def _enable_tracking(self, args: dict[str, Any]) -> bool:
        enabled = args.get("enabled", True)
        if not isinstance(enabled, bool):
            raise DetectionError(INVALID_ARGUMENTS, "Invalid tracking flag")
        self._session.set_tracking_enabled(enabled)
        return True

    def _load_model(self, args: dict[str, Any]) -> str:
        name = args.get("modelName", self._session.default_model)
        if not isinstance(name, str) or not name:
            raise DetectionError(INVALID_ARGUMENTS, "Invalid model name")
        return self._session.load_model(name)

    def _stop(self, args: dict[str, Any]) -> None:
        self._session.stop()

    def _available_models(self, args: dict[str, Any]) -> list[dict]:
        return self._session.available_models()

    def _reset_tracking(self, args: dict[str, Any]) -> bool:
        self._session.reset_tracking()
        return True
