"""JSON-file backed record tables.

Each table is a single JSON document ``{"rows": [...]}`` under the data root.
Writes go through a temp file and `os.replace`, and a per-path lock keeps
concurrent requests from interleaving read-modify-write cycles.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from py_missingwatch.layout import get_path

LOGGER = logging.getLogger(__name__)

_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def new_id() -> str:
    return str(uuid.uuid4())


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.RLock()
        return lock


class JsonTable:
    """Minimal row store keyed by ``id``."""

    def __init__(self, kind: str):
        self.kind = kind

    @property
    def path(self) -> Path:
        # Resolved per call so MISSINGWATCH_DATA_ROOT changes take effect.
        return get_path(self.kind)

    def _load(self) -> List[Dict[str, Any]]:
        path = self.path
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            LOGGER.error("Corrupt table file %s; treating as empty", path)
            return []
        rows = data.get("rows") if isinstance(data, dict) else None
        return rows if isinstance(rows, list) else []

    def _save(self, rows: List[Dict[str, Any]]) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps({"rows": rows}, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def all(self) -> List[Dict[str, Any]]:
        with _lock_for(self.path):
            return self._load()

    def get(self, row_id: str) -> Optional[Dict[str, Any]]:
        for row in self.all():
            if row.get("id") == row_id:
                return row
        return None

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(row)
        record.setdefault("id", new_id())
        record.setdefault("created_at", now_iso())
        with _lock_for(self.path):
            rows = self._load()
            rows.append(record)
            self._save(rows)
        return record

    def update(self, row_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with _lock_for(self.path):
            rows = self._load()
            for row in rows:
                if row.get("id") == row_id:
                    row.update(changes)
                    self._save(rows)
                    return row
        return None

    def update_where(self, predicate: Callable[[Dict[str, Any]], bool], changes: Dict[str, Any]) -> int:
        with _lock_for(self.path):
            rows = self._load()
            count = 0
            for row in rows:
                if predicate(row):
                    row.update(changes)
                    count += 1
            if count:
                self._save(rows)
        return count

    def delete(self, row_id: str) -> Optional[Dict[str, Any]]:
        with _lock_for(self.path):
            rows = self._load()
            for idx, row in enumerate(rows):
                if row.get("id") == row_id:
                    removed = rows.pop(idx)
                    self._save(rows)
                    return removed
        return None
