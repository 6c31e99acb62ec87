from __future__ import annotations

import base64

import cv2
import numpy as np
import pytest

from py_missingwatch import frame_sampler
from py_missingwatch.errors import VideoDecodeError
from py_missingwatch.frame_sampler import (
    VideoInfo,
    decode_image,
    encode_jpeg,
    from_base64,
    main_frame_index,
    probe_video,
    sample_frames,
    sample_timestamps,
    to_base64,
)
from tests._media_utils import write_test_video


def test_timestamps_split_clip_into_equal_parts() -> None:
    assert sample_timestamps(8.0, 3) == pytest.approx([2.0, 4.0, 6.0])


def test_single_timestamp_is_midpoint() -> None:
    assert sample_timestamps(10.0, 1) == pytest.approx([5.0])


def test_timestamps_never_reach_the_last_frame() -> None:
    stamps = sample_timestamps(0.15, 5)
    assert all(ts <= 0.15 - 0.1 + 1e-9 for ts in stamps)
    assert stamps == sorted(stamps)


@pytest.mark.parametrize("duration, count", [(10.0, 0), (0.0, 3), (-1.0, 3)])
def test_timestamps_reject_bad_input(duration: float, count: int) -> None:
    with pytest.raises(ValueError):
        sample_timestamps(duration, count)


@pytest.mark.parametrize("count, expected", [(1, 0), (2, 1), (3, 1), (4, 2), (5, 2)])
def test_main_frame_is_the_middle_sample(count: int, expected: int) -> None:
    assert main_frame_index(count) == expected


def test_probe_reports_dimensions_and_duration(tmp_path) -> None:
    video = write_test_video(tmp_path / "probe.mp4", frame_total=20, fps=10.0, size=(160, 120))
    info = probe_video(video)
    assert (info.width, info.height) == (160, 120)
    assert info.fps == pytest.approx(10.0)
    assert info.duration_s == pytest.approx(2.0, abs=0.2)


def test_sample_frames_returns_requested_stills(sample_video) -> None:
    samples = sample_frames(sample_video, 3)
    assert [s.index for s in samples] == [0, 1, 2]
    assert samples[0].timestamp_s < samples[1].timestamp_s < samples[2].timestamp_s
    for sample in samples:
        assert (sample.width, sample.height) == (320, 240)
        assert sample.image.dtype == np.uint8


def test_missing_video_raises_decode_error(tmp_path) -> None:
    with pytest.raises(VideoDecodeError):
        sample_frames(tmp_path / "nope.mp4", 3)


def test_garbage_file_raises_decode_error(tmp_path) -> None:
    junk = tmp_path / "junk.mp4"
    junk.write_bytes(b"definitely not a video")
    with pytest.raises(VideoDecodeError):
        sample_frames(junk, 3)


def test_jpeg_and_base64_helpers_round_trip_shape() -> None:
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    payload = encode_jpeg(image, quality=80)
    assert payload[:2] == b"\xff\xd8"
    decoded = decode_image(from_base64(to_base64(payload)))
    assert decoded.shape == (48, 64, 3)


def test_from_base64_accepts_data_urls() -> None:
    raw = b"abc123"
    data_url = "data:image/jpeg;base64," + base64.b64encode(raw).decode()
    assert from_base64(data_url) == raw


def test_decode_image_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        decode_image(b"not an image")


class _SeekRecordingCapture:
    """Capture double whose first `reads_failing` reads come back empty."""

    def __init__(self, reads_failing: int = 1):
        self.reads_failing = reads_failing
        self.seeks = []

    def set(self, prop, value):
        self.seeks.append((prop, value))
        return True

    def read(self):
        if self.reads_failing > 0:
            self.reads_failing -= 1
            return False, None
        return True, np.zeros((8, 8, 3), dtype=np.uint8)


def test_read_falls_back_to_frame_index_seek() -> None:
    cap = _SeekRecordingCapture(reads_failing=1)
    info = VideoInfo(fps=10.0, frame_total=30, width=8, height=8)
    frame = frame_sampler._read_at(cap, info, 1.5)
    assert frame is not None
    assert cap.seeks == [(cv2.CAP_PROP_POS_MSEC, 1500.0), (cv2.CAP_PROP_POS_FRAMES, 15)]


def test_frame_index_seek_is_clamped_to_last_frame() -> None:
    cap = _SeekRecordingCapture(reads_failing=1)
    info = VideoInfo(fps=10.0, frame_total=30, width=8, height=8)
    frame_sampler._read_at(cap, info, 9.0)
    assert cap.seeks[-1] == (cv2.CAP_PROP_POS_FRAMES, 29)


def test_read_gives_up_when_both_seeks_fail() -> None:
    cap = _SeekRecordingCapture(reads_failing=2)
    info = VideoInfo(fps=10.0, frame_total=30, width=8, height=8)
    assert frame_sampler._read_at(cap, info, 1.0) is None


def test_undecodable_sample_is_skipped_with_warning(sample_video, monkeypatch, caplog) -> None:
    real_read_at = frame_sampler._read_at
    calls = {"n": 0}

    def flaky_read_at(cap, info, timestamp_s):
        calls["n"] += 1
        if calls["n"] == 2:
            return None
        return real_read_at(cap, info, timestamp_s)

    monkeypatch.setattr(frame_sampler, "_read_at", flaky_read_at)
    with caplog.at_level("WARNING", logger="py_missingwatch.frame_sampler"):
        samples = sample_frames(sample_video, 3)
    assert [s.index for s in samples] == [0, 2]
    assert "Could not decode frame 1" in caplog.text


def test_no_decodable_samples_raises(sample_video, monkeypatch) -> None:
    monkeypatch.setattr(frame_sampler, "_read_at", lambda cap, info, timestamp_s: None)
    with pytest.raises(VideoDecodeError, match="No frames could be decoded"):
        sample_frames(sample_video, 3)
