from __future__ import annotations

import base64
import json
from typing import List

import pytest
from fastapi.testclient import TestClient

from apps.api.main import app
from apps.api.routers import analysis as analysis_router
from py_missingwatch.face_extractor import Detection, FaceBox
from py_missingwatch.pipeline.comparison import ComparisonResult
from tests._media_utils import encode_test_jpeg, write_test_video


class _ScriptedComparison:
    """Stands in for ComparisonClient; verdict depends on the person's name."""

    def __init__(self, scores: dict):
        self.scores = scores
        self.calls: List[dict] = []

    def compare(self, person, face_image_b64, reference_url, face_index=1, total_faces=1):
        self.calls.append(
            {
                "name": person["name"],
                "reference_url": reference_url,
                "face_index": face_index,
                "total_faces": total_faces,
            }
        )
        score = self.scores.get(person["name"])
        if score is None:
            raise RuntimeError(f"no verdict for {person['name']}")
        return ComparisonResult(
            is_match=score >= 40,
            confidence=float(score),
            reasoning=f"{person['name']} scored {score}",
            face_similarity=float(score),
        )


@pytest.fixture
def service(monkeypatch):
    svc = analysis_router.analysis_service
    monkeypatch.setattr(svc, "detector", None)
    monkeypatch.setattr(svc, "comparison_client", None)
    return svc


def _register(name: str) -> dict:
    persons = analysis_router.analysis_service.persons
    return persons.create_person({"name": name, "age": 30}, photo=encode_test_jpeg(), photo_filename="ref.jpg")


def _post_video(client: TestClient, path, **data):
    with open(path, "rb") as handle:
        return client.post(
            "/analysis/video",
            files={"video": (path.name, handle, "video/mp4")},
            data=data,
        )


def test_video_analysis_records_best_match_and_alert(service, monkeypatch, tmp_path, _isolated_data_root) -> None:
    monkeypatch.setenv("MISSINGWATCH_VISION_SIM", "1")
    comparison = _ScriptedComparison({"Alice": 82, "Bob": 12})
    monkeypatch.setattr(service, "comparison_client", comparison)
    alice = _register("Alice")
    _register("Bob")
    client = TestClient(app)

    resp = _post_video(client, write_test_video(tmp_path / "cam1.mp4"), location="Dock 4")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Analysis complete. Found 1 potential matches."
    assert body["summary"]["frames_sampled"] == 3
    assert body["summary"]["unique_faces"] == 1
    assert body["summary"]["comparisons"] == 2
    assert body["failures"] == []
    assert len(body["matches"]) == 1
    hit = body["matches"][0]
    assert hit["person"] == {"id": alice["id"], "name": "Alice"}
    assert hit["confidence"] == 82.0

    record = hit["match"]
    assert record["status"] == "high_priority"
    assert record["location"] == "Dock 4"
    assert record["video_filename"] == "cam1.mp4"
    assert record["face_index"] == 1
    assert record["analysis_details"]["total_faces_in_frame"] == 1
    assert record["frame_url"].startswith("/files/frames/")
    assert record["face_url"].startswith("/files/faces/")
    assert client.get(record["face_url"]).status_code == 200

    assert all(call["reference_url"].startswith("data:image/jpeg;base64,") for call in comparison.calls)

    alerts = client.get("/alerts").json()
    assert alerts["unread_count"] == 1
    alert = alerts["alerts"][0]
    assert alert["alert_type"] == "high_priority_match"
    assert alert["match_id"] == record["id"]
    assert alert["message"] == "Potential match detected for Alice with 82% confidence. Alice scored 82"

    # Uploaded footage is not retained.
    assert list((_isolated_data_root / "uploads").iterdir()) == []

    runs = (_isolated_data_root / "tables" / "analysis_runs.jsonl").read_text().strip().splitlines()
    assert json.loads(runs[0])["frames_sampled"] == 3


def test_video_analysis_without_persons(service, sample_video) -> None:
    client = TestClient(app)
    resp = _post_video(client, sample_video)
    assert resp.status_code == 200
    assert resp.json()["message"] == "No active missing persons to compare"
    assert resp.json()["matches"] == []


def test_failed_comparisons_are_reported(service, monkeypatch, sample_video) -> None:
    monkeypatch.setenv("MISSINGWATCH_VISION_SIM", "1")
    monkeypatch.setattr(service, "comparison_client", _ScriptedComparison({"Alice": 45}))
    _register("Alice")
    _register("Carol")
    client = TestClient(app)

    body = _post_video(client, sample_video, frame_count="2").json()
    assert body["summary"]["frames_sampled"] == 2
    assert len(body["failures"]) == 1
    assert "Carol" in body["failures"][0]["error"]
    assert body["matches"][0]["match"]["status"] == "pending"
    assert client.get("/alerts").json()["alerts"][0]["alert_type"] == "potential_match"


def test_unsupported_and_unreadable_videos(service, monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(service, "detector", lambda image: [])
    _register("Alice")
    client = TestClient(app)

    resp = client.post("/analysis/video", files={"video": ("clip.txt", b"hello", "text/plain")})
    assert resp.status_code == 415

    junk = tmp_path / "junk.mp4"
    junk.write_bytes(b"not really a video")
    resp = _post_video(client, junk)
    assert resp.status_code == 422
    assert resp.json()["code"] == "VIDEO_DECODE_ERROR"


def test_compare_faces_with_client_crops(service, monkeypatch) -> None:
    comparison = _ScriptedComparison({"Alice": 55})
    monkeypatch.setattr(service, "comparison_client", comparison)
    monkeypatch.setattr(service, "detector", lambda image: pytest.fail("detector should not run"))
    _register("Alice")
    client = TestClient(app)

    frame_b64 = base64.b64encode(encode_test_jpeg(size=(320, 240))).decode()
    face_b64 = "data:image/jpeg;base64," + base64.b64encode(encode_test_jpeg()).decode()
    resp = client.post(
        "/compare-faces",
        json={
            "video_frame_base64": frame_b64,
            "video_filename": "cam2.mp4",
            "location": "Gate B",
            "detected_faces": [{"face_image": face_b64, "box": {"x": 10, "y": 20, "width": 40, "height": 40}}],
        },
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert len(body["matches"]) == 1
    record = body["matches"][0]["match"]
    assert record["status"] == "pending"
    assert record["face_box"] == {"x": 10.0, "y": 20.0, "width": 40.0, "height": 40.0}
    assert record["face_url"].startswith("/files/faces/")
    assert comparison.calls[0]["total_faces"] == 1


def test_compare_faces_falls_back_to_full_frame(service, monkeypatch) -> None:
    comparison = _ScriptedComparison({"Alice": 48})
    monkeypatch.setattr(service, "comparison_client", comparison)
    monkeypatch.setattr(service, "detector", lambda image: [])
    _register("Alice")
    client = TestClient(app)

    frame_b64 = base64.b64encode(encode_test_jpeg(size=(320, 240))).decode()
    body = client.post("/compare-faces", json={"video_frame_base64": frame_b64}).json()
    assert body["summary"]["full_frame_fallback"] is True
    assert comparison.calls[0]["total_faces"] == 0
    record = body["matches"][0]["match"]
    assert record["face_url"] is None
    assert record["face_index"] is None
    assert record["location"] == "Unknown"


def test_compare_faces_with_detector(service, monkeypatch) -> None:
    comparison = _ScriptedComparison({"Alice": 30})
    monkeypatch.setattr(service, "comparison_client", comparison)
    monkeypatch.setattr(service, "detector", lambda image: [Detection(FaceBox(100, 80, 40, 40), 0.9)])
    _register("Alice")
    client = TestClient(app)

    frame_b64 = base64.b64encode(encode_test_jpeg(size=(320, 240))).decode()
    body = client.post("/compare-faces", json={"video_frame_base64": frame_b64}).json()
    assert body["summary"]["unique_faces"] == 1
    assert body["matches"] == []
    assert body["message"] == "Analysis complete. Found 0 potential matches."
    assert client.get("/alerts").json()["alerts"] == []


def test_compare_faces_rejects_bad_frame(service) -> None:
    _register("Alice")
    client = TestClient(app)
    resp = client.post("/compare-faces", json={"video_frame_base64": "bm90IGFuIGltYWdl"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "HTTP_400"


def test_dashboard_stats(service, monkeypatch, sample_video) -> None:
    monkeypatch.setenv("MISSINGWATCH_VISION_SIM", "1")
    monkeypatch.setattr(service, "comparison_client", _ScriptedComparison({"Alice": 60, "Bob": 5}))
    _register("Alice")
    bob = _register("Bob")
    client = TestClient(app)
    client.patch(f"/persons/{bob['id']}", json={"status": "resolved"})
    _post_video(client, sample_video)

    stats = client.get("/dashboard/stats").json()
    assert stats == {
        "total_missing_persons": 1,
        "frames_analyzed_24h": 3,
        "pending_matches": 1,
        "resolved_cases": 1,
    }


def test_compare_faces_bad_face_payload_stores_nothing(service, monkeypatch, _isolated_data_root) -> None:
    monkeypatch.setattr(service, "comparison_client", _ScriptedComparison({"Alice": 90}))
    _register("Alice")
    client = TestClient(app)

    frame_b64 = base64.b64encode(encode_test_jpeg(size=(320, 240))).decode()
    resp = client.post(
        "/compare-faces",
        json={"video_frame_base64": frame_b64, "detected_faces": [{"face_image": "abc"}]},
    )
    assert resp.status_code == 400
    frames_dir = _isolated_data_root / "images" / "frames"
    assert not frames_dir.exists() or list(frames_dir.iterdir()) == []
