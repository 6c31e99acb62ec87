"""Synthesised alarm tone played when a new alert arrives."""

from __future__ import annotations

import io
from functools import lru_cache

import numpy as np

SAMPLE_RATE = 22050
DURATION_S = 1.0
STEP_S = 0.2
LOW_TONES = (800.0, 600.0)
HIGH_TONES = (1200.0, 1000.0)
START_GAIN = 0.3
END_GAIN = 0.01


def _frequency_track(tones: tuple[float, float], t: np.ndarray) -> np.ndarray:
    steps = np.floor(t / STEP_S).astype(int)
    return np.where(steps % 2 == 0, tones[0], tones[1])


def alarm_waveform(sample_rate: int = SAMPLE_RATE, duration_s: float = DURATION_S) -> np.ndarray:
    """Two sine oscillators alternating pitch every 0.2s under a decaying envelope."""
    t = np.arange(int(sample_rate * duration_s)) / float(sample_rate)
    wave = np.zeros_like(t)
    for tones in (LOW_TONES, HIGH_TONES):
        # Integrate frequency so pitch steps do not click.
        phase = 2.0 * np.pi * np.cumsum(_frequency_track(tones, t)) / sample_rate
        wave += np.sin(phase)
    envelope = START_GAIN * (END_GAIN / START_GAIN) ** (t / duration_s)
    return (wave * envelope).astype(np.float32)


@lru_cache(maxsize=1)
def alarm_wav_bytes(sample_rate: int = SAMPLE_RATE) -> bytes:
    import soundfile as sf

    buffer = io.BytesIO()
    sf.write(buffer, alarm_waveform(sample_rate), sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()
