"""Missing-person registry endpoints."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel

from apps.api import config
from apps.api.services.persons import PersonsService

LOGGER = logging.getLogger(__name__)
router = APIRouter()
persons_service = PersonsService()

Build = Literal["slim", "average", "athletic", "heavy"]
# Columns every stored person must keep non-null.
_REQUIRED_FIELDS = ("name", "status")


class PersonResponse(BaseModel):
    id: str
    name: str
    age: Optional[int] = None
    description: Optional[str] = None
    last_seen_location: Optional[str] = None
    contact_info: Optional[str] = None
    image_url: Optional[str] = None
    image_key: Optional[str] = None
    status: str = "active"
    height_cm: Optional[int] = None
    build: Optional[str] = None
    hair_color: Optional[str] = None
    clothing_description: Optional[str] = None
    distinctive_features: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None


class PersonUpdateRequest(BaseModel):
    name: Optional[str] = None
    age: Optional[int] = None
    description: Optional[str] = None
    last_seen_location: Optional[str] = None
    contact_info: Optional[str] = None
    status: Optional[Literal["active", "resolved"]] = None
    height_cm: Optional[int] = None
    build: Optional[Build] = None
    hair_color: Optional[str] = None
    clothing_description: Optional[str] = None
    distinctive_features: Optional[str] = None


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@router.get("/persons")
def list_persons(status: Optional[Literal["active", "resolved"]] = Query(None)) -> dict:
    persons = persons_service.list_persons(status=status)
    return {"persons": persons, "count": len(persons)}


@router.get("/persons/{person_id}", response_model=PersonResponse)
def get_person(person_id: str) -> PersonResponse:
    person = persons_service.get_person(person_id)
    if not person:
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return PersonResponse(**person)


@router.post("/persons", response_model=PersonResponse, status_code=201)
async def create_person(
    name: str = Form(...),
    age: Optional[int] = Form(None),
    description: Optional[str] = Form(None),
    last_seen_location: Optional[str] = Form(None),
    contact_info: Optional[str] = Form(None),
    height_cm: Optional[int] = Form(None),
    build: Optional[Build] = Form(None),
    hair_color: Optional[str] = Form(None),
    clothing_description: Optional[str] = Form(None),
    distinctive_features: Optional[str] = Form(None),
    photo: UploadFile = File(..., description="Reference photo (JPEG, PNG or WebP)"),
) -> PersonResponse:
    """Register a missing person with a reference photo."""
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    content_type = (photo.content_type or "").lower()
    if content_type not in config.ALLOWED_IMG_MIMES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported image type: {content_type or 'unknown'}. Use JPEG, PNG or WebP.",
        )
    data = await photo.read()
    if not data:
        raise HTTPException(status_code=400, detail="Photo upload is empty")
    if len(data) > config.IMG_MAX_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"Image too large (max {config.IMG_MAX_MB}MB)")

    fields = {
        "name": name,
        "age": age,
        "description": _blank_to_none(description),
        "last_seen_location": _blank_to_none(last_seen_location),
        "contact_info": _blank_to_none(contact_info),
        "height_cm": height_cm,
        "build": build,
        "hair_color": _blank_to_none(hair_color),
        "clothing_description": _blank_to_none(clothing_description),
        "distinctive_features": _blank_to_none(distinctive_features),
    }
    person = persons_service.create_person(
        fields,
        photo=data,
        photo_filename=photo.filename,
        photo_content_type=content_type,
    )
    return PersonResponse(**person)


@router.patch("/persons/{person_id}", response_model=PersonResponse)
def update_person(person_id: str, body: PersonUpdateRequest) -> PersonResponse:
    changes = body.model_dump(exclude_unset=True)
    for key in _REQUIRED_FIELDS:
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=422, detail=f"{key} cannot be null")
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise HTTPException(status_code=400, detail="name is required")
    person = persons_service.update_person(person_id, changes)
    if not person:
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return PersonResponse(**person)


@router.delete("/persons/{person_id}")
def delete_person(person_id: str) -> dict:
    if not persons_service.delete_person(person_id):
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return {"status": "deleted", "id": person_id}


__all__ = ["router"]
