"""Match and alert records, joined with the person they refer to.

Every insert is published on the realtime bus with the joined record, the
same shape list endpoints return.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from apps.api.services.notifier import BUS, EventBus
from apps.api.services.persons import PersonsService
from apps.api.services.tables import JsonTable, now_iso
from py_missingwatch.pipeline.routing import MatchStatus

LOGGER = logging.getLogger(__name__)

ALERT_LIST_LIMIT = 50
MATCH_PERSON_FIELDS = ("name", "age", "image_url", "description", "last_seen_location", "contact_info")
ALERT_PERSON_FIELDS = ("name", "image_url")
MATCH_STATUSES = tuple(status.value for status in MatchStatus)


def _person_summary(person: Optional[Dict[str, Any]], fields) -> Optional[Dict[str, Any]]:
    if person is None:
        return None
    return {field: person.get(field) for field in fields}


class MatchesService:
    def __init__(
        self,
        persons: Optional[PersonsService] = None,
        table: Optional[JsonTable] = None,
        bus: Optional[EventBus] = None,
    ):
        self.persons = persons or PersonsService()
        self.table = table or JsonTable("matches")
        self.bus = bus or BUS

    def hydrate(self, match: Dict[str, Any], person: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = dict(match)
        storage = self.persons.storage
        record["frame_url"] = storage.url(record.get("frame_key"))
        record["face_url"] = storage.url(record.get("face_key"))
        if person is None and record.get("missing_person_id"):
            person = self.persons.get_person(record["missing_person_id"])
        record["missing_person"] = _person_summary(person, MATCH_PERSON_FIELDS)
        return record

    def _hydrate_all(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        people = {p["id"]: p for p in self.persons.list_persons()}
        return [self.hydrate(row, people.get(row.get("missing_person_id"))) for row in rows]

    def list_matches(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = self.table.all()
        if status:
            rows = [row for row in rows if row.get("status") == status]
        rows.sort(key=lambda row: row.get("detected_at", ""), reverse=True)
        return self._hydrate_all(rows)

    def get_match(self, match_id: str) -> Optional[Dict[str, Any]]:
        row = self.table.get(match_id)
        return self.hydrate(row) if row else None

    def insert_match(self, data: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = now_iso()
        row = dict(data)
        row.setdefault("detected_at", timestamp)
        row.setdefault("created_at", timestamp)
        row.setdefault("status", MatchStatus.PENDING.value)
        inserted = self.table.insert(row)
        record = self.hydrate(inserted)
        self.bus.publish("matches", record)
        return record

    def update_status(self, match_id: str, status: str) -> Optional[Dict[str, Any]]:
        if status not in MATCH_STATUSES:
            raise ValueError(f"status must be one of {list(MATCH_STATUSES)}")
        row = self.table.update(match_id, {"status": status, "updated_at": now_iso()})
        if row is None:
            return None
        LOGGER.info("Match %s status -> %s", match_id, status)
        return self.hydrate(row)

    def count_by_status(self, *statuses: str) -> int:
        return sum(1 for row in self.table.all() if row.get("status") in statuses)


class AlertsService:
    def __init__(
        self,
        persons: Optional[PersonsService] = None,
        table: Optional[JsonTable] = None,
        bus: Optional[EventBus] = None,
    ):
        self.persons = persons or PersonsService()
        self.table = table or JsonTable("alerts")
        self.bus = bus or BUS

    def hydrate(self, alert: Dict[str, Any], person: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = dict(alert)
        if person is None and record.get("missing_person_id"):
            person = self.persons.get_person(record["missing_person_id"])
        record["missing_person"] = _person_summary(person, ALERT_PERSON_FIELDS)
        return record

    def list_alerts(self, limit: int = ALERT_LIST_LIMIT) -> List[Dict[str, Any]]:
        rows = sorted(self.table.all(), key=lambda row: row.get("created_at", ""), reverse=True)[:limit]
        people = {p["id"]: p for p in self.persons.list_persons()}
        return [self.hydrate(row, people.get(row.get("missing_person_id"))) for row in rows]

    def unread_count(self) -> int:
        return sum(1 for row in self.table.all() if not row.get("is_read"))

    def insert_alert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(data)
        row.setdefault("is_read", False)
        inserted = self.table.insert(row)
        record = self.hydrate(inserted)
        self.bus.publish("alerts", record)
        return record

    def mark_read(self, alert_id: str) -> Optional[Dict[str, Any]]:
        row = self.table.update(alert_id, {"is_read": True})
        return self.hydrate(row) if row else None

    def mark_all_read(self) -> int:
        return self.table.update_where(lambda row: not row.get("is_read"), {"is_read": True})
