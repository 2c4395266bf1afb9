"""Perception service entry point."""
from __future__ import annotations

import asyncio
import signal

import redis.asyncio as aioredis

from vision_shared.logging import configure_logging, get_logger
from vision_shared.settings import settings

from perception.config import PerceptionConfig, build_config
from perception.model_registry import ModelRegistry, ultralytics_loader
from perception.pipeline import PerceptionPipeline
from perception.session import DetectionSession
from perception.tracker import Tracker

log = get_logger(__name__)


def build_session(config: PerceptionConfig, models: ModelRegistry) -> DetectionSession:
    """One session (engine + tracker) per camera; trackers are never shared."""
    return DetectionSession(
        models,
        tracker=Tracker(config.tracker),
        tracking_enabled=config.tracking_enabled,
        initial_model=config.default_model,
    )


async def run() -> None:
    configure_logging(settings.log_format, settings.log_level)
    config = build_config(settings)

    log.info(
        "perception_service_starting",
        cameras=config.camera_ids,
        device=config.device,
        model=config.default_model,
        tracking=config.tracking_enabled,
        match_threshold=config.tracker.match_threshold,
        exclusive_matching=config.tracker.exclusive_matching,
    )

    models = ModelRegistry(
        config.models_manifest,
        config.models_dir,
        loader=ultralytics_loader(
            device=config.device,
            confidence=config.detect_confidence,
            iou=config.detect_iou,
        ),
    )

    redis = aioredis.from_url(config.redis_url, decode_responses=False)

    pipelines = [
        PerceptionPipeline(cam_id, config, build_session(config, models))
        for cam_id in config.camera_ids
    ]

    loop = asyncio.get_running_loop()

    def _shutdown(sig, frame):
        log.info("shutdown_signal_received", signal=sig)
        for task in asyncio.all_tasks(loop):
            task.cancel()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        await asyncio.gather(*[p.run(redis) for p in pipelines])
    except asyncio.CancelledError:
        pass
    finally:
        await redis.aclose()
        log.info("perception_service_stopped")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
