from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np


def write_test_video(
    path: Path,
    frame_total: int = 30,
    fps: float = 10.0,
    size: Tuple[int, int] = (320, 240),
    bright_square: Optional[Tuple[int, int]] = (140, 100),
) -> Path:
    """Write a small mp4v clip: dark background, optional static bright square."""
    width, height = size
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"mp4v"), fps, (width, height))
    assert writer.isOpened(), "OpenCV VideoWriter could not open mp4v output"
    try:
        for _ in range(frame_total):
            frame = np.full((height, width, 3), 20, dtype=np.uint8)
            if bright_square is not None:
                x, y = bright_square
                frame[y : y + 40, x : x + 40] = 255
            writer.write(frame)
    finally:
        writer.release()
    return path


def encode_test_jpeg(value: int = 128, size: Tuple[int, int] = (64, 64)) -> bytes:
    image = np.full((size[1], size[0], 3), value, dtype=np.uint8)
    ok, buf = cv2.imencode(".jpg", image)
    assert ok
    return buf.tobytes()
