"""Shared test fixtures and synthetic signal generators."""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from loopmeter.main import app

SR = 44100


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def generate_click_track(
    bpm: float,
    duration_seconds: float = 10.0,
    sr: int = SR,
    beats_per_bar: int = 4,
    accent_ratio: float = 1.0,
) -> np.ndarray:
    """Generate a synthetic click track, optionally with accented downbeats.

    Returns mono audio at the given sample rate.
    """
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float64)

    beat_interval = 60.0 / bpm
    click_samples = int(0.02 * sr)  # 20ms click

    # Short sine burst with exponential decay
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    beat = 0
    time = 0.0
    while time < duration_seconds:
        sample_pos = int(time * sr)
        amplitude = accent_ratio if beat % beats_per_bar == 0 else 1.0
        end = min(sample_pos + click_samples, n_samples)
        if end > sample_pos:
            audio[sample_pos:end] += click[:end - sample_pos] * amplitude
        time += beat_interval
        beat += 1

    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak
    return audio


def generate_sine_loop(
    freq: float = 440.0,
    loop_seconds: float = 2.0,
    repeats: int = 2,
    sr: int = SR,
) -> np.ndarray:
    """A sine segment repeated back to back, amplitude 0.5."""
    t = np.arange(int(loop_seconds * sr)) / sr
    segment = 0.5 * np.sin(2 * np.pi * freq * t)
    return np.tile(segment, repeats)


@pytest.fixture
def click_120():
    """Click track at 120 BPM, 10 seconds."""
    return generate_click_track(bpm=120, duration_seconds=10)


@pytest.fixture
def sine_loop():
    """440 Hz sine, 2 s repeated twice."""
    return generate_sine_loop()


@pytest.fixture
def silence():
    """Two seconds of digital silence."""
    return np.zeros(2 * SR)
