"""Ingestion service configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CameraConfig:
    """Per-camera configuration derived from shared settings."""

    camera_id: str
    source_url: str
    fps: int = 15
    jpeg_quality: int = 90
    queue_size: int = 30


@dataclass(frozen=True)
class IngestionConfig:
    """Top-level config assembled from shared Settings."""

    cameras: list[CameraConfig] = field(default_factory=list)
    redis_url: str = "redis://localhost:6379/0"
    stream_maxlen: int = 100  # Approximate Redis Stream MAXLEN per camera


def camera_env_key(camera_id: str) -> str:
    """``cam-01`` → ``CAMERA_CAM_01_URL``."""
    return f"CAMERA_{camera_id.upper().replace('-', '_')}_URL"


def build_config(settings) -> IngestionConfig:
    """Build IngestionConfig from shared vision_shared.settings.Settings.

    Per-camera source URLs (RTSP URL, device path or video file) are read
    from CAMERA_<ID>_URL, falling back to CAMERA_DEFAULT_URL, then to
    "rtsp://<camera_id>/live".
    """
    cameras = []
    default_url = os.environ.get("CAMERA_DEFAULT_URL", "")
    for camera_id in settings.camera_id_list:
        url = os.environ.get(camera_env_key(camera_id)) or default_url or f"rtsp://{camera_id}/live"
        cameras.append(
            CameraConfig(
                camera_id=camera_id,
                source_url=url,
                fps=settings.ingest_fps,
                jpeg_quality=settings.ingest_jpeg_quality,
                queue_size=settings.frame_buffer_size,
            )
        )
    return IngestionConfig(
        cameras=cameras,
        redis_url=settings.redis_url,
    )
