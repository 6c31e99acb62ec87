"""Client-side view state kept in sync by realtime insert events.

Events have the shape ``{"table": "alerts"|"matches", "type": "INSERT",
"record": {...}}``; this is what the API's `/events` stream delivers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

ALERT_LIMIT = 50


@dataclass
class Notification:
    """What the UI should surface for one applied event."""

    title: str
    description: str
    variant: str = "default"
    play_alarm: bool = False


@dataclass
class RealtimeView:
    alerts: List[Dict[str, Any]] = field(default_factory=list)
    matches: List[Dict[str, Any]] = field(default_factory=list)
    unread_count: int = 0

    def load(self, alerts: List[Dict[str, Any]], matches: List[Dict[str, Any]]) -> None:
        self.alerts = list(alerts)[:ALERT_LIMIT]
        self.matches = list(matches)
        self.unread_count = sum(1 for a in self.alerts if not a.get("is_read"))

    def apply(self, event: Mapping[str, Any]) -> Optional[Notification]:
        if event.get("type") != "INSERT":
            return None
        record = dict(event.get("record") or {})
        table = event.get("table")
        if table == "matches":
            if any(m.get("id") == record.get("id") for m in self.matches):
                return None
            self.matches.insert(0, record)
            return None
        if table == "alerts":
            if any(a.get("id") == record.get("id") for a in self.alerts):
                return None
            self.alerts.insert(0, record)
            del self.alerts[ALERT_LIMIT:]
            if not record.get("is_read"):
                self.unread_count += 1
            high = record.get("alert_type") == "high_priority_match"
            return Notification(
                title="New Alert!",
                description=str(record.get("message", "")),
                variant="destructive" if high else "default",
                play_alarm=True,
            )
        return None

    def mark_read(self, alert_id: str) -> None:
        for alert in self.alerts:
            if alert.get("id") == alert_id and not alert.get("is_read"):
                alert["is_read"] = True
                self.unread_count = max(0, self.unread_count - 1)

    def mark_all_read(self) -> None:
        for alert in self.alerts:
            alert["is_read"] = True
        self.unread_count = 0
