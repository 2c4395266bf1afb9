"""Perception service configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from vision_shared.events.publisher import GROUP_PERCEPTION

from perception.tracker import TrackerConfig

_SERVICE_ROOT = Path(__file__).parent.parent.parent


@dataclass(frozen=True)
class PerceptionConfig:
    """Configuration for the perception pipeline."""

    camera_ids: list[str] = field(default_factory=list)
    redis_url: str = "redis://localhost:6379/0"

    # Model settings
    default_model: str = "Default Object Detector"
    models_manifest: str = str(_SERVICE_ROOT / "data" / "models.yaml")
    models_dir: str = str(_SERVICE_ROOT / "models")
    device: str = "cpu"  # "cpu", "cuda", "mps"
    detect_confidence: float = 0.25
    detect_iou: float = 0.7

    # Tracking
    tracking_enabled: bool = True
    tracker: TrackerConfig = field(default_factory=TrackerConfig)

    # Stream settings
    consumer_group: str = GROUP_PERCEPTION
    consumer_name: str = "perception-0"
    read_batch: int = 1
    block_ms: int = 500
    results_maxlen: int = 1000

    # Throughput logging interval (frames)
    log_interval: int = 100


def _resolve(path: str, fallback: str) -> str:
    """Settings paths are relative to the working directory; use the bundled file if absent."""
    return path if Path(path).exists() else fallback


def build_config(settings) -> PerceptionConfig:
    """Build PerceptionConfig from shared Settings."""
    import torch

    # Auto-detect best available device
    if os.environ.get("PERCEPTION_DEVICE"):
        device = os.environ["PERCEPTION_DEVICE"]
    elif torch.cuda.is_available():
        device = "cuda"
    elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        device = "mps"
    else:
        device = "cpu"

    consumer_name = os.environ.get("PERCEPTION_CONSUMER_NAME", "perception-0")
    defaults = PerceptionConfig()

    return PerceptionConfig(
        camera_ids=settings.camera_id_list,
        redis_url=settings.redis_url,
        default_model=settings.default_model,
        models_manifest=_resolve(settings.models_manifest, defaults.models_manifest),
        models_dir=_resolve(settings.models_dir, defaults.models_dir),
        device=device,
        tracking_enabled=settings.tracking_enabled,
        tracker=TrackerConfig(
            match_threshold=settings.tracking_iou_threshold,
            exclusive_matching=settings.tracking_exclusive_matching,
        ),
        consumer_name=consumer_name,
    )
