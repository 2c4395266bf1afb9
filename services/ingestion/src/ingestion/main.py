"""Ingestion service entry point."""
from __future__ import annotations

import asyncio
import queue
import signal
import threading

from vision_shared.logging import configure_logging, get_logger
from vision_shared.settings import settings

from ingestion.camera_reader import CameraReader
from ingestion.config import build_config
from ingestion.frame_publisher import FramePublisher

log = get_logger(__name__)


async def run() -> None:
    configure_logging(settings.log_format, settings.log_level)
    config = build_config(settings)

    log.info(
        "ingestion_service_starting",
        cameras=[c.camera_id for c in config.cameras],
        fps=settings.ingest_fps,
    )

    threads: list[threading.Thread] = []
    stop_event = threading.Event()

    def _handle_signal(sig, frame):
        log.info("shutdown_signal_received", signal=sig)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    for cam_cfg in config.cameras:
        frame_queue: queue.Queue = queue.Queue(maxsize=cam_cfg.queue_size)

        reader = CameraReader(cam_cfg, frame_queue, stop_event)
        publisher = FramePublisher(
            cam_cfg, frame_queue, config.redis_url, stop_event, maxlen=config.stream_maxlen
        )

        reader_thread = threading.Thread(
            target=reader.run, name=f"reader-{cam_cfg.camera_id}", daemon=True
        )
        publisher_thread = threading.Thread(
            target=asyncio.run,
            args=(publisher.run(),),
            name=f"publisher-{cam_cfg.camera_id}",
            daemon=True,
        )
        threads += [reader_thread, publisher_thread]
        reader_thread.start()
        publisher_thread.start()

    log.info("ingestion_service_running", thread_count=len(threads))

    while not stop_event.is_set():
        await asyncio.sleep(1)

    for thread in threads:
        thread.join(timeout=2)
    log.info("ingestion_service_stopped")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
