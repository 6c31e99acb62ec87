"""Filesystem layout helpers for MissingWatch data.

Paths are rooted at `MISSINGWATCH_DATA_ROOT` (defaults to `./data`) so the
API, CLI tools and tests agree on where records and images live.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

_DEFAULT_ROOT = Path("data")


def data_root() -> Path:
    raw = os.environ.get("MISSINGWATCH_DATA_ROOT")
    base = Path(raw).expanduser() if raw else _DEFAULT_ROOT
    return base


def get_path(kind: str) -> Path:
    """Return the canonical path for a given data kind."""
    root = data_root()
    kind_map: Dict[str, Path] = {
        "persons": root / "tables" / "persons.json",
        "matches": root / "tables" / "matches.json",
        "alerts": root / "tables" / "alerts.json",
        "analysis_runs": root / "tables" / "analysis_runs.jsonl",
        "images": root / "images",
        "uploads": root / "uploads",
    }
    key = kind.lower()
    if key not in kind_map:
        raise ValueError(f"Unknown data kind '{kind}'")
    return kind_map[key]


def ensure_dirs() -> None:
    """Create every directory the data layout expects."""
    for path in {
        get_path("persons").parent,
        get_path("images"),
        get_path("uploads"),
    }:
        path.mkdir(parents=True, exist_ok=True)
