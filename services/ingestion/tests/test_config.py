"""Tests for building ingestion config from shared settings."""
from __future__ import annotations

from vision_shared.settings import Settings

from ingestion.config import build_config, camera_env_key


def test_camera_env_key():
    assert camera_env_key("cam-01") == "CAMERA_CAM_01_URL"


def test_build_config_per_camera_urls(monkeypatch):
    monkeypatch.delenv("CAMERA_DEFAULT_URL", raising=False)
    monkeypatch.delenv("CAMERA_CAM_01_URL", raising=False)
    monkeypatch.setenv("CAMERA_CAM_02_URL", "/videos/lobby.mp4")
    settings = Settings(camera_ids="cam-01, cam-02,", ingest_fps=10, frame_buffer_size=5)

    config = build_config(settings)

    assert [c.camera_id for c in config.cameras] == ["cam-01", "cam-02"]
    assert config.cameras[0].source_url == "rtsp://cam-01/live"
    assert config.cameras[1].source_url == "/videos/lobby.mp4"
    assert all(c.fps == 10 and c.queue_size == 5 for c in config.cameras)
    assert config.redis_url == settings.redis_url
