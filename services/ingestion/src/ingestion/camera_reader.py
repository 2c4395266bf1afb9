"""Camera reader, one thread per camera.

Reads frames from a camera stream (RTSP, device or local video file) via
PyAV, downsamples to the configured FPS, converts the decoder's YUV 4:2:0
planes to RGB, compresses to JPEG and pushes the result into an in-memory
queue for the FramePublisher.

When the publisher falls behind, the oldest queued frame is dropped: the
detector only ever wants the freshest frame.
"""
from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass

import av

from vision_shared.logging import get_logger

from ingestion.config import CameraConfig
from ingestion.image_codec import Plane, encode_jpeg, yuv420_to_rgb

log = get_logger(__name__)

# Exponential backoff parameters for stream reconnection
_BACKOFF_BASE = 1.0
_BACKOFF_MAX = 30.0


@dataclass
class RawFrame:
    """A single JPEG-compressed frame ready for publishing."""

    camera_id: str
    timestamp_ns: int
    frame_seq: int
    jpeg_bytes: bytes
    width: int
    height: int


def _is_rtsp(url: str) -> bool:
    return url.lower().startswith(("rtsp://", "rtsps://"))


def frame_to_rgb(av_frame: av.VideoFrame):
    """Decode an AV frame to RGB through its YUV 4:2:0 planes.

    Odd dimensions are trimmed by one pixel so chroma subsampling is exact.
    """
    width = av_frame.width - av_frame.width % 2
    height = av_frame.height - av_frame.height % 2
    yuv = av_frame.reformat(width=width, height=height, format="yuv420p")
    y, u, v = (Plane(data=bytes(p), row_stride=p.line_size) for p in yuv.planes)
    return yuv420_to_rgb(y, u, v, width, height)


class CameraReader:
    """Reads frames from a single camera and enqueues them.

    Args:
        config: Per-camera configuration.
        frame_queue: Shared queue consumed by FramePublisher.
        stop_event: Set this to request a graceful shutdown.
    """

    def __init__(
        self,
        config: CameraConfig,
        frame_queue: queue.Queue,
        stop_event: threading.Event,
    ) -> None:
        self._cfg = config
        self._queue = frame_queue
        self._stop = stop_event
        self._frame_seq = 0
        self.dropped = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Main loop; reconnects on failure until stop_event is set."""
        backoff = _BACKOFF_BASE
        while not self._stop.is_set():
            try:
                self._stream_loop()
                backoff = _BACKOFF_BASE  # reset on clean exit
            except Exception as exc:
                if self._stop.is_set():
                    break
                log.warning(
                    "camera_reader_error",
                    camera_id=self._cfg.camera_id,
                    error=str(exc),
                    retry_in=backoff,
                )
                time.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX)

        log.info(
            "camera_reader_stopped",
            camera_id=self._cfg.camera_id,
            frames=self._frame_seq,
            dropped=self.dropped,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stream_loop(self) -> None:
        """Open the stream and read frames until stopped or an error occurs."""
        log.info(
            "camera_reader_connecting",
            camera_id=self._cfg.camera_id,
            url=self._cfg.source_url,
        )

        options = {}
        if _is_rtsp(self._cfg.source_url):
            options = {
                "rtsp_transport": "tcp",
                "fflags": "nobuffer",
                "flags": "low_delay",
            }

        container = av.open(self._cfg.source_url, options=options)

        try:
            video_stream = container.streams.video[0]
            video_stream.thread_type = "AUTO"

            src_fps = float(video_stream.average_rate or self._cfg.fps)
            frame_step = max(1, round(src_fps / self._cfg.fps))

            log.info(
                "camera_reader_connected",
                camera_id=self._cfg.camera_id,
                src_fps=src_fps,
                frame_step=frame_step,
                target_fps=self._cfg.fps,
            )

            raw_frame_idx = 0
            for packet in container.demux(video_stream):
                if self._stop.is_set():
                    break
                for frame in packet.decode():
                    if self._stop.is_set():
                        break
                    raw_frame_idx += 1
                    if raw_frame_idx % frame_step != 0:
                        continue
                    try:
                        self._process_frame(frame)
                    except ValueError as exc:
                        log.warning(
                            "frame_conversion_failed",
                            camera_id=self._cfg.camera_id,
                            error=str(exc),
                        )
        finally:
            container.close()

    def _process_frame(self, av_frame: av.VideoFrame) -> None:
        """Convert to RGB, compress to JPEG and push to the queue."""
        img = frame_to_rgb(av_frame)
        height, width = img.shape[:2]

        raw = RawFrame(
            camera_id=self._cfg.camera_id,
            timestamp_ns=time.monotonic_ns(),
            frame_seq=self._frame_seq,
            jpeg_bytes=encode_jpeg(img, self._cfg.jpeg_quality),
            width=width,
            height=height,
        )
        self._frame_seq += 1
        self._enqueue_latest(raw)

    def _enqueue_latest(self, raw: RawFrame) -> None:
        try:
            self._queue.put_nowait(raw)
            return
        except queue.Full:
            pass
        # Drop the oldest item and retry once, publisher is lagging
        try:
            self._queue.get_nowait()
            self.dropped += 1
        except queue.Empty:
            pass
        try:
            self._queue.put_nowait(raw)
        except queue.Full:
            self.dropped += 1
