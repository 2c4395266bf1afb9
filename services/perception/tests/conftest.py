"""Shared fixtures: a scripted detection engine and a registry that builds it."""
from __future__ import annotations

from collections import deque
from pathlib import Path

import numpy as np
import pytest

from perception.model_registry import ModelInfo, ModelRegistry
from perception.types import RawDetection

MANIFEST = """\
default_model: Default Object Detector
models:
  - name: Default Object Detector
    description: Built-in model
    is_custom: false
    file_path: yolo11n.pt
  - name: Custom Object Detector
    description: Custom model
    is_custom: true
    file_path: object_labeler.pt
"""


class FakeEngine:
    """Returns queued detection lists, one per detect() call."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.frames: deque[list[RawDetection]] = deque()
        self.calls = 0
        self.error: Exception | None = None

    def detect(self, frame: np.ndarray) -> list[RawDetection]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.frames.popleft() if self.frames else []


class FakeLoader:
    """Engine loader that records calls; names in ``broken`` fail to load."""

    def __init__(self) -> None:
        self.loaded: list[tuple[str, str]] = []
        self.broken: set[str] = set()

    def __call__(self, info: ModelInfo, weights: str) -> FakeEngine:
        if info.name in self.broken:
            raise RuntimeError(f"corrupt weights: {weights}")
        self.loaded.append((info.name, weights))
        return FakeEngine(info.name)


@pytest.fixture()
def models_dir(tmp_path: Path) -> Path:
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture()
def manifest(tmp_path: Path) -> Path:
    path = tmp_path / "models.yaml"
    path.write_text(MANIFEST)
    return path


@pytest.fixture()
def loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture()
def registry(manifest: Path, models_dir: Path, loader: FakeLoader) -> ModelRegistry:
    return ModelRegistry(manifest, models_dir, loader=loader)


@pytest.fixture()
def frame() -> np.ndarray:
    return np.zeros((48, 64, 3), dtype=np.uint8)
