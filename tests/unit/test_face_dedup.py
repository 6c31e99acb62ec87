from __future__ import annotations

from py_missingwatch.dedup import deduplicate_faces
from py_missingwatch.face_extractor import DetectedFace, FaceBox


def _face(x: float, y: float, size: float = 40.0, frame_index: int = 0) -> DetectedFace:
    return DetectedFace(face_image_b64=f"{x}-{y}-{frame_index}", box=FaceBox(x, y, size, size), confidence=0.9, frame_index=frame_index)


def test_same_position_across_frames_collapses_to_first() -> None:
    faces = [_face(100, 100, frame_index=0), _face(105, 102, frame_index=1), _face(98, 99, frame_index=2)]
    unique = deduplicate_faces(faces)
    assert unique == [faces[0]]


def test_distinct_positions_are_kept_in_order() -> None:
    faces = [_face(0, 0), _face(200, 0), _face(0, 200)]
    assert deduplicate_faces(faces) == faces


def test_radius_is_strict() -> None:
    at_radius = [_face(0, 0), _face(30, 40)]  # centres exactly 50px apart
    assert len(deduplicate_faces(at_radius, radius_px=50.0)) == 2
    just_inside = [_face(0, 0), _face(30, 39.9)]
    assert len(deduplicate_faces(just_inside, radius_px=50.0)) == 1


def test_centres_not_corners_are_compared() -> None:
    # Top-left corners coincide but the boxes are very different sizes.
    small = _face(0, 0, size=20)
    large = _face(0, 0, size=200)
    assert len(deduplicate_faces([small, large])) == 2


def test_empty_input() -> None:
    assert deduplicate_faces([]) == []
