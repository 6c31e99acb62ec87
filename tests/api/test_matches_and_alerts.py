from __future__ import annotations

from fastapi.testclient import TestClient

from apps.api.main import app
from apps.api.routers import alerts as alerts_router
from apps.api.routers import matches as matches_router
from tests._media_utils import encode_test_jpeg


def _person(name: str = "Jane Doe") -> dict:
    persons = matches_router.matches_service.persons
    return persons.create_person({"name": name, "age": 30}, photo=encode_test_jpeg(), photo_filename="p.jpg")


def _match(person: dict, confidence: float = 55.0, status: str = "pending") -> dict:
    return matches_router.matches_service.insert_match(
        {
            "missing_person_id": person["id"],
            "confidence_score": confidence,
            "reasoning": "similar",
            "status": status,
            "location": "Dock 4",
            "frame_key": "frames/f.jpg",
        }
    )


def _alert(person: dict, match: dict, alert_type: str = "potential_match") -> dict:
    return alerts_router.alerts_service.insert_alert(
        {
            "match_id": match["id"],
            "missing_person_id": person["id"],
            "alert_type": alert_type,
            "message": f"Potential match detected for {person['name']}",
        }
    )


def test_matches_are_joined_with_person_and_sorted() -> None:
    client = TestClient(app)
    person = _person()
    older = _match(person, 45.0)
    newer = _match(person, 75.0, status="high_priority")

    resp = client.get("/matches")
    assert resp.status_code == 200
    payload = resp.json()
    assert [m["id"] for m in payload["matches"]] == [newer["id"], older["id"]]
    first = payload["matches"][0]
    assert first["missing_person"]["name"] == "Jane Doe"
    assert first["missing_person"]["image_url"] == person["image_url"]
    assert first["frame_url"] == "/files/frames/f.jpg"
    assert first["face_url"] is None

    high = client.get("/matches", params={"status": "high_priority"}).json()
    assert [m["id"] for m in high["matches"]] == [newer["id"]]


def test_match_status_review_flow() -> None:
    client = TestClient(app)
    match = _match(_person())
    resp = client.patch(f"/matches/{match['id']}", json={"status": "confirmed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"
    assert client.get(f"/matches/{match['id']}").json()["status"] == "confirmed"

    bad = client.patch(f"/matches/{match['id']}", json={"status": "maybe"})
    assert bad.status_code == 422
    missing = client.patch("/matches/nope", json={"status": "dismissed"})
    assert missing.status_code == 404


def test_alerts_feed_and_read_state() -> None:
    client = TestClient(app)
    person = _person()
    match = _match(person)
    first = _alert(person, match)
    second = _alert(person, match, "high_priority_match")

    feed = client.get("/alerts").json()
    assert feed["unread_count"] == 2
    assert [a["id"] for a in feed["alerts"]] == [second["id"], first["id"]]
    assert feed["alerts"][0]["missing_person"] == {"name": "Jane Doe", "image_url": person["image_url"]}

    resp = client.post(f"/alerts/{first['id']}/read")
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True
    assert client.get("/alerts").json()["unread_count"] == 1

    resp = client.post("/alerts/read_all")
    assert resp.json() == {"updated": 1, "unread_count": 0}
    assert client.get("/alerts").json()["unread_count"] == 0
    assert client.post("/alerts/missing/read").status_code == 404


def test_alert_list_is_limited_to_fifty() -> None:
    client = TestClient(app)
    person = _person()
    match = _match(person)
    for _ in range(55):
        _alert(person, match)
    feed = client.get("/alerts").json()
    assert len(feed["alerts"]) == 50
    assert feed["unread_count"] == 55


def test_alarm_sound_is_served_as_wav() -> None:
    client = TestClient(app)
    resp = client.get("/alerts/alarm.wav")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/wav"
    assert resp.content[:4] == b"RIFF"


def test_missing_file_returns_404() -> None:
    client = TestClient(app)
    assert client.get("/files/frames/none.jpg").status_code == 404
