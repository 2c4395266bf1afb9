"""Perception pipeline: consume frames → detect → track → publish.

For each camera:
1. XREADGROUP from `frames:{camera_id}` (consumer group: perception-workers)
2. Decode FrameMessage → numpy array
3. Run DetectionSession (engine, then tracker unless tracking is off)
4. Publish one FrameResultEvent to `detections:{camera_id}`
5. XACK the processed message

Frames are not queued behind a slow model. While one frame is in flight,
newly read frames are acknowledged and reported as skipped.

Host commands arrive on `controls:{camera_id}` and are answered on
`control_replies:{camera_id}`.
"""
from __future__ import annotations

import asyncio
import base64
import contextvars
import time
from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError

import redis.asyncio as aioredis

from vision_shared.events.publisher import (
    GROUP_CONTROL,
    ack,
    control_replies_stream,
    controls_stream,
    detections_stream,
    ensure_consumer_group,
    frames_stream,
    publish,
    read_group,
)
from vision_shared.events.schemas import ControlCommand, FrameMessage, FrameResultEvent
from vision_shared.logging import bind_camera, get_logger

from perception.config import PerceptionConfig
from perception.control import ControlHandler
from perception.errors import INVALID_IMAGE, PROCESSING_ERROR, DetectionError
from perception.session import DetectionSession, FrameResult

log = get_logger(__name__)


def _decode_frame(msg_data: dict) -> tuple[np.ndarray, FrameMessage]:
    """Parse a Redis Stream message dict into a numpy frame + FrameMessage."""
    raw_json = msg_data.get("data", "")
    event = FrameMessage.model_validate_json(raw_json)
    try:
        jpeg_bytes = base64.b64decode(event.jpeg_b64)
        img = Image.open(BytesIO(jpeg_bytes)).convert("RGB")
    except (ValueError, UnidentifiedImageError) as exc:
        raise DetectionError(INVALID_IMAGE, f"Invalid image data: {exc}") from exc
    return np.array(img), event


class PerceptionPipeline:
    """Runs detection and tracking for a single camera.

    Args:
        camera_id: Camera identifier (used for stream names).
        config: Perception configuration.
        session: Detection session owned by this pipeline.
    """

    def __init__(
        self,
        camera_id: str,
        config: PerceptionConfig,
        session: DetectionSession,
    ) -> None:
        self._camera_id = camera_id
        self._cfg = config
        self._session = session
        self._control = ControlHandler(session)
        self._in_stream = frames_stream(camera_id)
        self._out_stream = detections_stream(camera_id)
        self._control_stream = controls_stream(camera_id)
        self._reply_stream = control_replies_stream(camera_id)
        self._group = config.consumer_group
        self._inflight: set[asyncio.Task] = set()
        self._frame_count = 0
        self._skipped_count = 0
        self._t_start = time.monotonic()

    async def run(self, redis: aioredis.Redis) -> None:
        """Run the frame loop and the control loop until cancelled."""
        bind_camera(self._camera_id)
        await ensure_consumer_group(redis, self._in_stream, self._group)
        await ensure_consumer_group(redis, self._control_stream, GROUP_CONTROL)

        log.info(
            "pipeline_starting",
            model=self._session.model_name,
            tracking=self._session.tracking_enabled,
            in_stream=self._in_stream,
            out_stream=self._out_stream,
        )
        await asyncio.gather(self._frame_loop(redis), self._control_loop(redis))

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def _frame_loop(self, redis: aioredis.Redis) -> None:
        while True:
            messages = await read_group(
                redis,
                self._in_stream,
                self._group,
                self._cfg.consumer_name,
                count=self._cfg.read_batch,
                block_ms=self._cfg.block_ms,
            )
            for msg_id, msg_data in messages:
                if self._inflight or self._session.busy:
                    await self._publish_skipped(redis, msg_data)
                    await ack(redis, self._in_stream, self._group, msg_id)
                    continue
                task = asyncio.create_task(self._process_message(redis, msg_id, msg_data))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

    async def _process_message(
        self, redis: aioredis.Redis, msg_id: str, msg_data: dict
    ) -> None:
        frame_seq, timestamp_ns = -1, 0
        try:
            # Decode + inference in executor to avoid blocking the event loop
            frame, event = await _in_executor(_decode_frame, msg_data)
            frame_seq, timestamp_ns = event.frame_seq, event.timestamp_ns
            result = await _in_executor(self._session.process_frame, frame)
            await publish(
                redis,
                self._out_stream,
                self._result_event(result, frame_seq, timestamp_ns),
                maxlen=self._cfg.results_maxlen,
            )
            self._count(result)
        except DetectionError as exc:
            log.warning("pipeline_frame_failed", msg_id=msg_id, code=exc.code, error=exc.message)
            await self._publish_error(
                redis, msg_data, frame_seq, timestamp_ns, exc.code, exc.message
            )
        except Exception as exc:
            log.error("pipeline_frame_error", msg_id=msg_id, error=str(exc))
            await self._publish_error(
                redis, msg_data, frame_seq, timestamp_ns, PROCESSING_ERROR, str(exc)
            )
        finally:
            # Still ACK to avoid re-processing corrupted frames
            await ack(redis, self._in_stream, self._group, msg_id)

    def _result_event(
        self, result: FrameResult, frame_seq: int, timestamp_ns: int
    ) -> FrameResultEvent:
        return FrameResultEvent(
            camera_id=self._camera_id,
            frame_seq=frame_seq,
            timestamp_ns=timestamp_ns,
            detections=result.detections,
            processing_time_ms=result.processing_time_ms,
            skipped=result.skipped,
        )

    async def _publish_skipped(self, redis: aioredis.Redis, msg_data: dict) -> None:
        frame_seq, timestamp_ns = _frame_ids(msg_data)
        self._skipped_count += 1
        await publish(
            redis,
            self._out_stream,
            self._result_event(FrameResult(skipped=True), frame_seq, timestamp_ns),
            maxlen=self._cfg.results_maxlen,
        )

    async def _publish_error(
        self,
        redis: aioredis.Redis,
        msg_data: dict,
        frame_seq: int,
        timestamp_ns: int,
        code: str,
        message: str,
    ) -> None:
        if frame_seq < 0:
            frame_seq, timestamp_ns = _frame_ids(msg_data)
        event = FrameResultEvent(
            camera_id=self._camera_id,
            frame_seq=frame_seq,
            timestamp_ns=timestamp_ns,
            processing_time_ms=0,
            error_code=code,
            error_message=message,
        )
        try:
            await publish(redis, self._out_stream, event, maxlen=self._cfg.results_maxlen)
        except Exception as exc:
            log.error("pipeline_error_publish_failed", error=str(exc))

    def _count(self, result: FrameResult) -> None:
        if result.skipped:
            self._skipped_count += 1
            return
        self._frame_count += 1
        if self._frame_count % self._cfg.log_interval == 0:
            elapsed = time.monotonic() - self._t_start
            fps = self._frame_count / elapsed if elapsed > 0 else 0
            log.info(
                "pipeline_throughput",
                frames=self._frame_count,
                skipped=self._skipped_count,
                fps=round(fps, 1),
                objects_this_frame=len(result.detections),
                live_tracks=len(self._session.tracker.registry),
            )

    # ------------------------------------------------------------------
    # Control commands
    # ------------------------------------------------------------------

    async def _control_loop(self, redis: aioredis.Redis) -> None:
        while True:
            messages = await read_group(
                redis,
                self._control_stream,
                GROUP_CONTROL,
                self._cfg.consumer_name,
                count=5,
                block_ms=self._cfg.block_ms,
            )
            for msg_id, msg_data in messages:
                try:
                    await self.handle_control(redis, msg_data)
                except Exception as exc:
                    log.error("control_message_error", msg_id=msg_id, error=str(exc))
                finally:
                    await ack(redis, self._control_stream, GROUP_CONTROL, msg_id)

    async def handle_control(self, redis: aioredis.Redis, msg_data: dict) -> None:
        """Apply one control message and publish the reply."""
        command = ControlCommand.model_validate_json(msg_data.get("data", "{}"))
        # Model loads touch disk and the GPU, keep them off the event loop
        reply = await _in_executor(self._control.handle, command)
        await publish(redis, self._reply_stream, reply)


async def _in_executor(func, *args):
    """run_in_executor that keeps the caller's structlog context (camera_id)."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await loop.run_in_executor(None, ctx.run, func, *args)


def _frame_ids(msg_data: dict) -> tuple[int, int]:
    """Best-effort frame_seq / timestamp_ns for results of frames that failed to decode."""
    try:
        event = FrameMessage.model_validate_json(msg_data.get("data", ""))
    except ValueError:
        return -1, 0
    return event.frame_seq, event.timestamp_ns
