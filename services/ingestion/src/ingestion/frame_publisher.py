"""Frame publisher: drains the CameraReader queue into the frames stream."""
from __future__ import annotations

import asyncio
import base64
import queue
import threading

import redis.asyncio as aioredis

from vision_shared.events.publisher import frames_stream, publish
from vision_shared.events.schemas import FrameMessage
from vision_shared.logging import get_logger

from ingestion.camera_reader import RawFrame
from ingestion.config import CameraConfig

log = get_logger(__name__)


def to_message(raw: RawFrame) -> FrameMessage:
    return FrameMessage(
        camera_id=raw.camera_id,
        timestamp_ns=raw.timestamp_ns,
        frame_seq=raw.frame_seq,
        jpeg_b64=base64.b64encode(raw.jpeg_bytes).decode("ascii"),
        width=raw.width,
        height=raw.height,
    )


class FramePublisher:
    """Async publisher that drains a RawFrame queue into a Redis Stream.

    Args:
        config: Per-camera configuration.
        frame_queue: Queue populated by CameraReader.
        redis_url: Redis connection URL.
        stop_event: Set this to request a graceful shutdown.
        maxlen: Approximate MAXLEN of the frames stream.
    """

    def __init__(
        self,
        config: CameraConfig,
        frame_queue: queue.Queue,
        redis_url: str,
        stop_event: threading.Event,
        maxlen: int = 100,
    ) -> None:
        self._cfg = config
        self._queue = frame_queue
        self._redis_url = redis_url
        self._stop = stop_event
        self._maxlen = maxlen
        self._stream = frames_stream(config.camera_id)
        self.published = 0

    async def run(self) -> None:
        """Publish frames until stop_event is set."""
        redis = aioredis.from_url(self._redis_url, decode_responses=False)

        log.info(
            "frame_publisher_starting",
            camera_id=self._cfg.camera_id,
            stream=self._stream,
            maxlen=self._maxlen,
        )

        try:
            while not self._stop.is_set():
                raw = await self._dequeue()
                if raw is None:
                    continue
                await self.publish_frame(redis, raw)
        finally:
            await redis.aclose()
            log.info(
                "frame_publisher_stopped",
                camera_id=self._cfg.camera_id,
                published=self.published,
            )

    async def publish_frame(self, redis: aioredis.Redis, raw: RawFrame) -> None:
        try:
            msg_id = await publish(redis, self._stream, to_message(raw), maxlen=self._maxlen)
        except Exception as exc:
            log.error(
                "frame_publish_error",
                camera_id=self._cfg.camera_id,
                frame_seq=raw.frame_seq,
                error=str(exc),
            )
            return
        self.published += 1
        log.debug(
            "frame_published",
            camera_id=self._cfg.camera_id,
            frame_seq=raw.frame_seq,
            msg_id=msg_id,
        )

    async def _dequeue(self) -> RawFrame | None:
        """Wait briefly for the next frame without blocking the event loop."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, lambda: self._queue.get(timeout=0.1)
            )
        except queue.Empty:
            return None
