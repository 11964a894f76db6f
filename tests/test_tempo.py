"""Tests for tempo estimation and beat tracking."""

import threading

import numpy as np
import pytest

from loopmeter.analysis.beat_tracking import track_beats
from loopmeter.analysis.onset import onset_envelope
from loopmeter.analysis.tempo import (
    autocorrelation,
    bpm_to_lag,
    estimate_tempo,
    estimate_tempo_from_audio,
    lag_to_bpm,
    tempo_from_beats,
)
from loopmeter.exceptions import AnalysisCancelled, InsufficientData


def _impulse_envelope(period: int, n_frames: int = 3000, accents=(1.0,)) -> np.ndarray:
    env = np.zeros(n_frames)
    for k, pos in enumerate(range(0, n_frames, period)):
        env[pos] = accents[k % len(accents)]
    return env


def test_lag_bpm_conversion():
    assert bpm_to_lag(120, sr=44100, hop_length=512) == pytest.approx(43.066, abs=1e-3)
    assert lag_to_bpm(bpm_to_lag(97.0, 22050, 256), 22050, 256) == pytest.approx(97.0)


def test_silent_audio_returns_default_tempo(silence):
    """Silence has no periodicity: default BPM with zero confidence."""
    tempo = estimate_tempo_from_audio(silence, sr=44100)
    assert tempo.bpm == 120.0
    assert tempo.confidence == 0.0
    assert tempo.candidates == []


def test_too_short_envelope_returns_default():
    tempo = estimate_tempo(np.ones(10), sr=44100, hop_length=512)
    assert tempo.bpm == 120.0
    assert tempo.confidence == 0.0


def test_click_track_tempo(click_120):
    tempo = estimate_tempo_from_audio(click_120, sr=44100)
    assert abs(tempo.bpm - 120) / 120 < 0.05, f"BPM {tempo.bpm} not within 5% of 120"
    assert 0.0 < tempo.confidence <= 1.0


def test_octave_correction_doubles_slow_tempo():
    """A 40 BPM peak with strong 80 BPM support is reported as 80 BPM."""
    env = _impulse_envelope(75, accents=(1.0, 0.5))
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=30, max_bpm=180)
    assert tempo.candidates[0].bpm == pytest.approx(40.0)
    assert tempo.bpm == pytest.approx(80.0)
    assert tempo.corrected == "double"


def test_octave_correction_halves_fast_tempo():
    """A 171.4 BPM peak with strong 85.7 BPM support is reported as 85.7 BPM.

    With min_bpm=85 the half-time lag (70) is the last lag searched, so it
    cannot win as a peak itself and only counts as support.
    """
    # Per 4-beat period: lag 35 sums to (1 + x)**2, lag 70 to 4x; x=0.5 gives ~0.89
    env = _impulse_envelope(35, accents=(1.0, 1.0, 0.5, 0.5))
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=85, max_bpm=180)
    assert tempo.candidates[0].bpm == pytest.approx(171.4)
    assert tempo.bpm == pytest.approx(85.7)
    assert tempo.corrected == "half"


def test_weak_half_time_support_is_not_enough():
    """Half-time support around 0.7x is below the 0.8x needed to halve a fast tempo."""
    env = _impulse_envelope(35, accents=(1.0, 1.0, 0.3, 0.3))
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=85, max_bpm=180)
    assert tempo.bpm == pytest.approx(171.4)
    assert tempo.corrected is None


def test_candidates_hold_builtin_floats():
    env = _impulse_envelope(75, accents=(1.0, 0.5))
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=30, max_bpm=180)
    for c in tempo.candidates:
        assert type(c.bpm) is float
        assert type(c.strength) is float
        assert type(c.lag) is int


def test_no_correction_without_support():
    """Steady 100 BPM pulses stay at 100 BPM."""
    env = _impulse_envelope(60)
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=60, max_bpm=180)
    assert tempo.bpm == pytest.approx(100.0)
    assert tempo.corrected is None


def test_candidates_sorted_by_strength():
    env = _impulse_envelope(75, accents=(1.0, 0.5))
    tempo = estimate_tempo(env, sr=1000, hop_length=10, min_bpm=30, max_bpm=180)
    strengths = [c.strength for c in tempo.candidates]
    assert strengths == sorted(strengths, reverse=True)
    assert len(tempo.candidates) <= 5


def test_invalid_bpm_range_raises():
    with pytest.raises(ValueError):
        estimate_tempo(np.ones(100), min_bpm=180, max_bpm=60)


def test_autocorrelation_out_of_range_lags():
    ac = autocorrelation(np.ones(10), [0, 5, 10, -1])
    np.testing.assert_allclose(ac, [1.0, 1.0, 0.0, 0.0])


def test_cancelled_tempo_estimation():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AnalysisCancelled):
        estimate_tempo(_impulse_envelope(75), sr=1000, hop_length=10, min_bpm=30, cancel=cancel)


def test_tempo_from_beats():
    tempo = tempo_from_beats([0.0, 0.5, 1.0, 1.5, 2.0])
    assert tempo.bpm == pytest.approx(120.0)
    assert tempo.confidence == pytest.approx(1.0)


def test_tempo_from_beats_needs_two_times():
    with pytest.raises(InsufficientData):
        tempo_from_beats([1.0])


def test_track_beats_on_click_track(click_120):
    env = onset_envelope(click_120)
    grid = track_beats(env, 120.0, sr=44100, hop_length=512)
    assert len(grid) >= 18
    intervals = np.diff(grid.times)
    assert np.all(intervals > 0)
    assert np.median(intervals) == pytest.approx(0.5, rel=0.05)


def test_track_beats_follows_impulses():
    env = _impulse_envelope(60, n_frames=600)
    grid = track_beats(env, 100.0, sr=1000, hop_length=10)
    assert grid.frames == list(range(0, 600, 60))
    assert grid.times[1] == pytest.approx(0.6)


def test_track_beats_short_envelope_is_empty():
    grid = track_beats(np.ones(50), 100.0, sr=1000, hop_length=10)
    assert len(grid) == 0
    assert grid.times == []


def test_track_beats_rejects_non_positive_bpm():
    with pytest.raises(ValueError):
        track_beats(np.ones(500), 0.0)
