"""Model registry: which detection models the host can pick, and loading them.

Models come from two places:
1. ``models.yaml``: the default model plus any bundled custom models.
2. The models directory: every weights file not already listed becomes a
   custom model named after its file stem.

Loading a custom model that fails (missing file, bad weights) falls back to
the default model. Failing to load the default model is an error.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from vision_shared.logging import get_logger

from perception.errors import MODEL_LOADING_ERROR, DetectionError
from perception.types import DetectionEngine

log = get_logger(__name__)

_WEIGHT_SUFFIXES = (".pt", ".onnx", ".tflite")


@dataclass(frozen=True)
class ModelInfo:
    name: str
    description: str
    is_custom: bool
    file_path: str  # weights name for the default model, models-dir relative for custom

    def to_wire(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "isCustom": self.is_custom,
        }
        if self.is_custom:
            entry["filePath"] = self.file_path
        return entry


EngineLoader = Callable[[ModelInfo, str], DetectionEngine]


def ultralytics_loader(
    device: str = "cpu", confidence: float = 0.25, iou: float = 0.7
) -> EngineLoader:
    """Return a loader that builds a YOLO Detector for a ModelInfo."""

    def _load(info: ModelInfo, weights: str) -> DetectionEngine:
        from perception.detector import Detector

        return Detector(
            name=info.name,
            model_path=weights,
            device=device,
            confidence=confidence,
            iou=iou,
        )

    return _load


class ModelRegistry:
    """Catalogue of available detection models.

    Args:
        manifest_path: Path to models.yaml.
        models_dir: Directory holding custom weights files.
        loader: Builds an engine from (ModelInfo, resolved weights path).
    """

    def __init__(
        self,
        manifest_path: str | Path,
        models_dir: str | Path,
        loader: EngineLoader,
    ) -> None:
        self._models_dir = Path(models_dir)
        self._loader = loader
        self._models: dict[str, ModelInfo] = {}
        self._default_name = ""
        self._load_manifest(Path(manifest_path))
        self._scan_models_dir()
        log.info(
            "model_registry_loaded",
            default=self._default_name,
            models=list(self._models),
        )

    def _load_manifest(self, path: Path) -> None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        for entry in data.get("models", []):
            info = ModelInfo(
                name=entry["name"],
                description=entry.get("description", ""),
                is_custom=bool(entry.get("is_custom", True)),
                file_path=entry["file_path"],
            )
            self._models[info.name] = info
        self._default_name = data.get("default_model") or next(iter(self._models), "")
        if self._default_name not in self._models:
            raise ValueError(
                f"default model '{self._default_name}' is not listed in {path}"
            )

    def _scan_models_dir(self) -> None:
        if not self._models_dir.is_dir():
            log.debug("models_dir_missing", path=str(self._models_dir))
            return
        listed = {info.file_path for info in self._models.values() if info.is_custom}
        for weights in sorted(self._models_dir.iterdir()):
            if weights.suffix not in _WEIGHT_SUFFIXES or weights.name in listed:
                continue
            if weights.stem in self._models:
                continue
            self._models[weights.stem] = ModelInfo(
                name=weights.stem,
                description="Custom detection model",
                is_custom=True,
                file_path=weights.name,
            )

    @property
    def default_name(self) -> str:
        return self._default_name

    def get(self, name: str) -> ModelInfo:
        if name not in self._models:
            raise KeyError(f"Unknown model '{name}'. Available: {list(self._models)}")
        return self._models[name]

    def list_models(self) -> list[ModelInfo]:
        return list(self._models.values())

    def weights_path(self, info: ModelInfo) -> str:
        """Path handed to the loader; custom weights must exist on disk."""
        if not info.is_custom:
            return info.file_path
        path = self._models_dir / info.file_path
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")
        return str(path)

    def load(self, name: str) -> DetectionEngine:
        """Load ``name``, falling back to the default model if it is custom and fails."""
        if name == self._default_name:
            return self.load_default()
        try:
            info = self.get(name)
            engine = self._loader(info, self.weights_path(info))
        except Exception as exc:
            log.warning(
                "model_load_failed_using_default",
                model=name,
                default=self._default_name,
                error=str(exc),
            )
            return self.load_default()
        log.info("model_loaded", model=name)
        return engine

    def load_default(self) -> DetectionEngine:
        info = self._models[self._default_name]
        try:
            engine = self._loader(info, self.weights_path(info))
        except Exception as exc:
            raise DetectionError(
                MODEL_LOADING_ERROR, f"cannot load default model '{info.name}': {exc}"
            ) from exc
        log.info("model_loaded", model=info.name)
        return engine
