from __future__ import annotations

import pytest

from py_missingwatch.config import (
    DEFAULT_CONFIG_PATH,
    AnalysisConfig,
    config_from_mapping,
    load_analysis_config,
)
from py_missingwatch.errors import ConfigError


def test_shipped_yaml_matches_defaults() -> None:
    assert DEFAULT_CONFIG_PATH.exists()
    cfg = load_analysis_config(DEFAULT_CONFIG_PATH)
    assert cfg == AnalysisConfig()
    assert cfg.det_size == (640, 640)


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    cfg = load_analysis_config(tmp_path / "absent.yaml")
    assert cfg.frame_count == 3
    assert cfg.accept == 40.0
    assert cfg.high_priority == 70.0


def test_env_override_path_and_sim_flag(tmp_path, monkeypatch) -> None:
    path = tmp_path / "analysis.yaml"
    path.write_text("sampling:\n  frame_count: 5\ndedup:\n  radius_px: 25\n", encoding="utf-8")
    monkeypatch.setenv("MISSINGWATCH_ANALYSIS_CONFIG", str(path))
    monkeypatch.setenv("MISSINGWATCH_VISION_SIM", "1")
    cfg = load_analysis_config()
    assert cfg.frame_count == 5
    assert cfg.radius_px == 25
    assert cfg.simulated
    assert cfg.detector_cfg()["force_simulated"] is True


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"bogus": {}}, "Unknown config section"),
        ({"sampling": {"frames": 3}}, "Unknown config key"),
        ({"sampling": [1, 2]}, "must be a mapping"),
        ({"sampling": {"frame_count": 0}}, "frame_count"),
        ({"thresholds": {"accept": 80, "high_priority": 70}}, "thresholds"),
        ({"detection": {"min_confidence": 1.5}}, "min_confidence"),
        ({"comparison": {"max_workers": 0}}, "max_workers"),
        ({"comparison": {"timeout_s": 0}}, "timeout_s"),
        ({"thresholds": {"frame_count": 9}}, "Unknown config key 'thresholds.frame_count'"),
    ],
)
def test_invalid_configs_are_rejected(raw, message) -> None:
    with pytest.raises(ConfigError, match=message):
        config_from_mapping(raw)


def test_invalid_yaml_raises_config_error(tmp_path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("sampling: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_analysis_config(path)


def test_every_setting_belongs_to_exactly_one_section() -> None:
    from dataclasses import fields

    from py_missingwatch.config import _SECTIONS

    placed = [key for keys in _SECTIONS.values() for key in keys]
    assert sorted(placed) == sorted(f.name for f in fields(AnalysisConfig))
