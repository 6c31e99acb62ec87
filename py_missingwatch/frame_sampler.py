"""Evenly spaced frame sampling from a video file.

Timestamps are chosen deterministically from the clip duration, the decoder
is seeked to each one, and the decoded still is kept as a BGR array that can
be rasterised to JPEG for storage or transport.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import cv2  # type: ignore
import numpy as np

from py_missingwatch.errors import VideoDecodeError

LOGGER = logging.getLogger(__name__)

DEFAULT_FPS = 30.0
# Keep the last seek target off the final frame, which many containers fail to decode.
END_MARGIN_S = 0.1


@dataclass
class VideoInfo:
    fps: float
    frame_total: int
    width: int
    height: int

    @property
    def duration_s(self) -> float:
        if self.fps <= 0:
            return 0.0
        return self.frame_total / self.fps


@dataclass
class FrameSample:
    """A decoded still and where it came from."""

    index: int
    timestamp_s: float
    image: np.ndarray

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def width(self) -> int:
        return int(self.image.shape[1])


def sample_timestamps(duration_s: float, frame_count: int) -> List[float]:
    """Return `frame_count` timestamps splitting the clip into equal parts.

    The i-th timestamp is ``duration / (N + 1) * (i + 1)``, so neither the
    very first nor the very last frame is used.
    """
    if frame_count < 1:
        raise ValueError("frame_count must be >= 1")
    if duration_s <= 0:
        raise ValueError("duration_s must be > 0")
    step = duration_s / (frame_count + 1)
    latest = max(0.0, duration_s - END_MARGIN_S)
    return [min(step * (idx + 1), latest) for idx in range(frame_count)]


def main_frame_index(frame_count: int) -> int:
    """Index of the sample that represents the clip (the middle one)."""
    return frame_count // 2


def _open(video_path: Path) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        cap.release()
        raise VideoDecodeError(f"Unable to open video: {video_path}")
    return cap


def _info_from_capture(cap: cv2.VideoCapture) -> VideoInfo:
    fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
    if fps <= 0:
        fps = DEFAULT_FPS
    return VideoInfo(
        fps=float(fps),
        frame_total=int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0),
        width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
        height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
    )


def probe_video(video_path: Path | str) -> VideoInfo:
    cap = _open(Path(video_path))
    try:
        return _info_from_capture(cap)
    finally:
        cap.release()


def _read_at(cap: cv2.VideoCapture, info: VideoInfo, timestamp_s: float) -> np.ndarray | None:
    cap.set(cv2.CAP_PROP_POS_MSEC, timestamp_s * 1000.0)
    ok, frame = cap.read()
    if ok and frame is not None:
        return frame
    # Some containers ignore millisecond seeks; fall back to a frame index.
    frame_idx = int(round(timestamp_s * info.fps))
    if info.frame_total > 0:
        frame_idx = min(frame_idx, info.frame_total - 1)
    cap.set(cv2.CAP_PROP_POS_FRAMES, max(0, frame_idx))
    ok, frame = cap.read()
    if ok and frame is not None:
        return frame
    return None


def sample_frames(video_path: Path | str, frame_count: int) -> List[FrameSample]:
    """Decode `frame_count` evenly spaced stills from a video.

    Frames that fail to decode are skipped; if nothing decodes the video is
    treated as unreadable.
    """
    video_path = Path(video_path)
    cap = _open(video_path)
    try:
        info = _info_from_capture(cap)
        if info.duration_s <= 0:
            raise VideoDecodeError(f"Video has no measurable duration: {video_path}")
        samples: List[FrameSample] = []
        for idx, ts in enumerate(sample_timestamps(info.duration_s, frame_count)):
            frame = _read_at(cap, info, ts)
            if frame is None:
                LOGGER.warning("Could not decode frame %d at %.2fs from %s", idx, ts, video_path)
                continue
            samples.append(FrameSample(index=idx, timestamp_s=ts, image=frame))
    finally:
        cap.release()
    if not samples:
        raise VideoDecodeError(f"No frames could be decoded from {video_path}")
    LOGGER.info(
        "Sampled %d/%d frames from %s (%.1fs @ %.1ffps)",
        len(samples),
        frame_count,
        video_path.name,
        info.duration_s,
        info.fps,
    )
    return samples


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buf.tobytes()


def decode_image(payload: bytes) -> np.ndarray:
    image = cv2.imdecode(np.frombuffer(payload, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Invalid image payload")
    return image


def to_base64(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def from_base64(data: str) -> bytes:
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    return base64.b64decode(data)
