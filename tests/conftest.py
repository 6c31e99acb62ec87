import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("STORAGE_BACKEND", "local")

from tests._media_utils import encode_test_jpeg, write_test_video  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_data_root(tmp_path, monkeypatch):
    """Point every table and image write at a per-test directory."""
    root = tmp_path / "data"
    monkeypatch.setenv("MISSINGWATCH_DATA_ROOT", str(root))
    monkeypatch.delenv("MISSINGWATCH_ANALYSIS_CONFIG", raising=False)
    monkeypatch.delenv("MISSINGWATCH_VISION_SIM", raising=False)

    from apps.api.services.notifier import BUS

    BUS.clear()
    yield root
    BUS.clear()


@pytest.fixture
def sample_video(tmp_path) -> Path:
    return write_test_video(tmp_path / "clip.mp4")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return encode_test_jpeg()
