"""Missing-person records and their reference photos."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any, Dict, List, Optional

from apps.api.services.storage import StorageService
from apps.api.services.tables import JsonTable, new_id, now_iso

LOGGER = logging.getLogger(__name__)

PHOTO_PREFIX = "person-images"
PERSON_STATUSES = ("active", "resolved")
BUILDS = ("slim", "average", "athletic", "heavy")

_EDITABLE_FIELDS = (
    "name",
    "age",
    "description",
    "last_seen_location",
    "contact_info",
    "status",
    "height_cm",
    "build",
    "hair_color",
    "clothing_description",
    "distinctive_features",
)


class PersonsService:
    """CRUD over the persons table; owns the reference photo lifecycle."""

    def __init__(self, storage: Optional[StorageService] = None, table: Optional[JsonTable] = None):
        self.storage = storage or StorageService()
        self.table = table or JsonTable("persons")

    def hydrate(self, person: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(person)
        key = record.get("image_key")
        if key:
            record["image_url"] = self.storage.url(key)
        return record

    def list_persons(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = self.table.all()
        if status:
            rows = [row for row in rows if row.get("status") == status]
        rows.sort(key=lambda row: row.get("created_at", ""), reverse=True)
        return [self.hydrate(row) for row in rows]

    def active_persons(self) -> List[Dict[str, Any]]:
        return self.list_persons(status="active")

    def get_person(self, person_id: str) -> Optional[Dict[str, Any]]:
        row = self.table.get(person_id)
        return self.hydrate(row) if row else None

    def create_person(
        self,
        fields: Dict[str, Any],
        photo: Optional[bytes] = None,
        photo_filename: Optional[str] = None,
        photo_content_type: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store the photo (if given) and insert the record."""
        if photo is None and not image_url:
            raise ValueError("A reference photo or image_url is required")
        image_key = None
        if photo is not None:
            suffix = PurePath(photo_filename or "").suffix.lower() or ".jpg"
            image_key = self.storage.put(f"{PHOTO_PREFIX}/{new_id()}{suffix}", photo, photo_content_type)

        record: Dict[str, Any] = {field: None for field in _EDITABLE_FIELDS}
        record.update({k: v for k, v in fields.items() if k in _EDITABLE_FIELDS})
        record["status"] = record.get("status") or "active"
        timestamp = now_iso()
        record.update(
            {
                "image_key": image_key,
                "image_url": image_url,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
        )
        person = self.table.insert(record)
        LOGGER.info("Registered missing person %s (%s)", person["id"], person.get("name"))
        return self.hydrate(person)

    def update_person(self, person_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
        if not updates:
            return self.get_person(person_id)
        updates["updated_at"] = now_iso()
        row = self.table.update(person_id, updates)
        if row is None:
            return None
        LOGGER.info("update_person %s: updating %s", person_id, ", ".join(sorted(updates)))
        return self.hydrate(row)

    def delete_person(self, person_id: str) -> bool:
        removed = self.table.delete(person_id)
        if removed is None:
            return False
        key = removed.get("image_key")
        if key:
            self.storage.delete(key)
        LOGGER.info("Deleted missing person %s", person_id)
        return True

    def reference_url(self, person: Dict[str, Any]) -> str:
        """Reference image location suitable for the comparison model."""
        key = person.get("image_key")
        if key:
            return self.storage.reference_url(key)
        url = person.get("image_url")
        if not url:
            raise ValueError(f"Person {person.get('id')} has no reference image")
        return url
