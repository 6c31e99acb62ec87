"""Analysis pipeline configuration.

Settings come from `config/pipeline/analysis.yaml` (or the file named by
`MISSINGWATCH_ANALYSIS_CONFIG`). Every field has a default so an absent
file still yields a runnable configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from py_missingwatch.errors import ConfigError

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pipeline" / "analysis.yaml"

DEFAULT_FRAME_COUNT = 3
DEFAULT_MIN_DET_CONFIDENCE = 0.5
DEFAULT_PADDING = 0.5
DEFAULT_MIN_FACE_SIZE = 256
DEFAULT_DEDUP_RADIUS_PX = 50.0
ACCEPT_THRESHOLD = 40.0
HIGH_PRIORITY_THRESHOLD = 70.0


@dataclass
class AnalysisConfig:
    """Flattened view of analysis.yaml."""

    # sampling
    frame_count: int = DEFAULT_FRAME_COUNT
    main_frame_jpeg_quality: int = 80

    # detection
    insightface_profile: str = "buffalo_l"
    det_size: Tuple[int, int] = (640, 640)
    ctx_id: int = -1
    min_confidence: float = DEFAULT_MIN_DET_CONFIDENCE
    simulated: bool = False

    # extraction
    padding: float = DEFAULT_PADDING
    min_face_size: int = DEFAULT_MIN_FACE_SIZE
    face_jpeg_quality: int = 95

    # dedup
    radius_px: float = DEFAULT_DEDUP_RADIUS_PX

    # comparison
    max_workers: int = 8
    timeout_s: float = 60.0
    compare_full_frame_when_no_faces: bool = True

    # thresholds
    accept: float = ACCEPT_THRESHOLD
    high_priority: float = HIGH_PRIORITY_THRESHOLD

    def validate(self) -> "AnalysisConfig":
        if self.frame_count < 1:
            raise ConfigError("sampling.frame_count must be >= 1")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigError("detection.min_confidence must be within [0, 1]")
        if self.padding < 0:
            raise ConfigError("extraction.padding must be >= 0")
        if self.min_face_size < 1:
            raise ConfigError("extraction.min_face_size must be >= 1")
        if self.radius_px < 0:
            raise ConfigError("dedup.radius_px must be >= 0")
        if self.max_workers < 1:
            raise ConfigError("comparison.max_workers must be >= 1")
        if self.timeout_s <= 0:
            raise ConfigError("comparison.timeout_s must be > 0")
        if not 0 <= self.accept <= self.high_priority <= 100:
            raise ConfigError("thresholds must satisfy 0 <= accept <= high_priority <= 100")
        return self

    def detector_cfg(self) -> Dict[str, Any]:
        return {
            "insightface_profile": self.insightface_profile,
            "det_size": self.det_size,
            "ctx_id": self.ctx_id,
            "min_confidence": self.min_confidence,
            "force_simulated": self.simulated,
        }


_SECTIONS: Dict[str, Tuple[str, ...]] = {
    "sampling": ("frame_count", "main_frame_jpeg_quality"),
    "detection": ("insightface_profile", "det_size", "ctx_id", "min_confidence", "simulated"),
    "extraction": ("padding", "min_face_size", "face_jpeg_quality"),
    "dedup": ("radius_px",),
    "comparison": ("max_workers", "timeout_s", "compare_full_frame_when_no_faces"),
    "thresholds": ("accept", "high_priority"),
}


def _flatten(raw: Mapping[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for section, values in raw.items():
        if section not in _SECTIONS:
            raise ConfigError(f"Unknown config section '{section}'")
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ConfigError(f"Config section '{section}' must be a mapping")
        for key, value in values.items():
            if key not in _SECTIONS[section]:
                raise ConfigError(f"Unknown config key '{section}.{key}'")
            flat[key] = value
    if "det_size" in flat:
        flat["det_size"] = tuple(int(v) for v in flat["det_size"])
    return flat


def config_from_mapping(raw: Mapping[str, Any] | None) -> AnalysisConfig:
    return AnalysisConfig(**_flatten(raw or {})).validate()


def load_analysis_config(path: Optional[Path | str] = None) -> AnalysisConfig:
    """Load the pipeline config from YAML, falling back to defaults."""
    if path is None:
        env_path = os.environ.get("MISSINGWATCH_ANALYSIS_CONFIG")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    config_path = Path(path)
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{config_path} must contain a mapping")
    else:
        LOGGER.info("Analysis config %s not found; using defaults", config_path)
        raw = {}
    cfg = config_from_mapping(raw)
    if os.environ.get("MISSINGWATCH_VISION_SIM") == "1":
        cfg.simulated = True
    return cfg
