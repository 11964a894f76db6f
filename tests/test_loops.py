"""Tests for loop detection and waveform summaries."""

import numpy as np
import pytest

from loopmeter.analysis.loops import (
    choose_bar_count,
    find_loop,
    rank_loop_candidates,
    score_loop_repetition,
)
from loopmeter.analysis.waveform import normalize_peaks, summarize_peaks, summarize_rms

SR = 44100


def test_choose_bar_count():
    assert choose_bar_count(120, duration=100, max_loop_length=8) == 4
    assert choose_bar_count(120, duration=100, max_loop_length=20) == 8
    assert choose_bar_count(120, duration=5, max_loop_length=8) == 2
    # Nothing fits: still two bars
    assert choose_bar_count(60, duration=3, max_loop_length=8) == 2


def test_periodic_signal_loops_from_start(sine_loop):
    """A stationary signal loops from the beginning over two bars."""
    loop = find_loop(sine_loop, SR, bpm_hint=120)
    duration = len(sine_loop) / SR

    assert loop.error is None
    assert loop.confidence == pytest.approx(0.85)
    assert loop.bars == 2
    assert loop.start_time == pytest.approx(0.0, abs=0.01)
    assert 1.0 < loop.end_time <= duration
    assert loop.end_time == pytest.approx(3.2, abs=0.01)
    assert 0.0 <= loop.start < loop.end <= 1.0


def test_loop_starts_at_energy_change():
    t = np.arange(8 * SR) / SR
    audio = np.sin(2 * np.pi * 220 * t)
    audio[:3 * SR] *= 0.1
    audio[3 * SR:] *= 0.8

    loop = find_loop(audio, SR, bpm_hint=120)
    assert loop.error is None
    assert loop.bars == 4
    assert loop.start_time == pytest.approx(3.0, abs=0.05)
    assert loop.end_sample <= len(audio) - 1
    assert loop.end_sample > loop.start_sample


def test_silence_uses_fallback(silence):
    loop = find_loop(silence, SR)
    assert loop.confidence == pytest.approx(0.5)
    assert loop.start == pytest.approx(0.1)
    assert loop.end == pytest.approx(0.5)
    assert loop.error


def test_fallback_on_bad_input():
    loop = find_loop(np.zeros((2, 1000)), SR)
    assert loop.error is not None
    loop = find_loop(np.ones(SR), SR, bpm_hint=0)
    assert loop.error is not None
    assert loop.confidence == pytest.approx(0.5)


def test_fallback_end_for_long_signal():
    """For long signals the fallback region is capped at 8 seconds."""
    rng = np.random.default_rng(0)
    audio = rng.standard_normal(100)
    loop = find_loop(audio, 1, bpm_hint=120)
    # 100 s at 1 Hz cannot be framed with 1024-sample frames
    assert loop.error is not None
    assert loop.end == pytest.approx(0.18)


def test_score_loop_repetition(sine_loop):
    half = len(sine_loop) // 2
    assert score_loop_repetition(sine_loop, 0, half) == pytest.approx(1.0)
    assert score_loop_repetition(sine_loop, 0, half + 10) == 0.0


def test_rank_loop_candidates(sine_loop):
    candidates = rank_loop_candidates(sine_loop, SR, bpm=120)
    assert [c.bars for c in sorted(candidates, key=lambda c: c.bars)] == [0.5, 1.0]
    for c in candidates:
        assert 0.9 < c.confidence <= 1.0
        assert c.end_sample > c.start_sample


def test_loop_to_dict(sine_loop):
    data = find_loop(sine_loop, SR).to_dict()
    assert set(data) == {"start", "end", "start_time", "end_time", "confidence", "bars", "error"}


def test_summarize_peaks_pairs():
    peaks = summarize_peaks(np.arange(10.0), n_pairs=5)
    np.testing.assert_array_equal(peaks, np.arange(10.0))


def test_summarize_peaks_drops_remainder():
    peaks = summarize_peaks(np.arange(11.0), n_pairs=5)
    assert len(peaks) == 10
    assert peaks.max() == 9.0


def test_summarize_peaks_short_input_passthrough():
    data = np.array([0.1, -0.2, 0.3])
    np.testing.assert_array_equal(summarize_peaks(data, n_pairs=800), data)


def test_summarize_peaks_even_length(click_120):
    peaks = summarize_peaks(click_120, n_pairs=800)
    assert len(peaks) == 1600
    assert np.all(peaks[0::2] <= peaks[1::2])


def test_summarize_rms_and_normalize():
    np.testing.assert_allclose(summarize_rms(np.ones(100), n_points=10), np.ones(10))
    np.testing.assert_allclose(normalize_peaks(np.array([0.5, -0.25])), [1.0, -0.5])
    np.testing.assert_array_equal(normalize_peaks(np.zeros(3)), np.zeros(3))
