"""Audio preprocessing and sample-level utilities."""

from __future__ import annotations

import numpy as np


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Reduce channels-first ``(channels, n)`` audio to mono by channel averaging.

    1-D input is returned as a float array unchanged.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim == 1:
        return samples
    if samples.ndim != 2:
        raise ValueError(f"Expected 1-D or 2-D samples, got shape {samples.shape}")
    return samples.mean(axis=0)


def normalize(audio: np.ndarray) -> np.ndarray:
    """Peak-normalize audio to the range [-1, 1].

    If the audio is silent (all zeros), it is returned unchanged.
    """
    peak = np.max(np.abs(audio)) if len(audio) else 0.0
    if peak == 0:
        return audio
    return audio / peak


def apply_hann_window(data: np.ndarray) -> np.ndarray:
    """Multiply *data* by a symmetric Hann window of the same length."""
    data = np.asarray(data, dtype=np.float64)
    return data * np.hanning(len(data))


def find_zero_crossing(data: np.ndarray, start_index: int) -> int:
    """Index of the first positive-to-negative transition at or after *start_index*.

    Returns *start_index* when no such transition exists.
    """
    data = np.asarray(data)
    start = max(0, int(start_index))
    if start >= len(data) - 1:
        return int(start_index)
    head = data[start:-1]
    tail = data[start + 1:]
    hits = np.flatnonzero((head >= 0) & (tail < 0))
    if len(hits) == 0:
        return int(start_index)
    return start + int(hits[0])


def find_nearest_zero_crossing(
    data: np.ndarray,
    start_sample: int,
    direction: int = 1,
    max_search: int = 2048,
) -> int:
    """Nearest sign change from *start_sample* in *direction*, searching at
    most *max_search* samples.

    Returns *start_sample* if none is found within the search bound.
    """
    n = len(data)
    if n < 2:
        return start_sample
    i = max(0, min(int(start_sample), n - 1))
    if not 0 < i < n - 1:
        return start_sample

    # Candidate k marks a sign change between data[k] and data[k + 1]; 0 < k < n - 1
    if direction > 0:
        lo, hi = i, min(i + max_search, n - 1)
    else:
        lo, hi = max(i - max_search + 1, 1), i + 1
    if hi <= lo:
        return start_sample

    signs = (np.asarray(data[lo:hi + 1]) >= 0).astype(np.int8)
    crossings = np.flatnonzero(np.diff(signs)) + lo
    if len(crossings) == 0:
        return start_sample
    return int(crossings[0] if direction > 0 else crossings[-1])


def find_audio_start(samples: np.ndarray, sr: int, threshold: float = 0.01) -> int:
    """Sample index where non-silent content begins.

    Scans 100 ms windows and returns the zero crossing just before the first
    window whose RMS exceeds *threshold*, or 0 when everything is silent.
    """
    window = max(1, int(sr * 0.1))
    for i in range(0, len(samples) - window, window):
        if compute_rms(samples[i:i + window]) > threshold:
            return find_zero_crossing(samples, max(0, i - window))
    return 0


def compute_rms(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples))))


def compute_peak(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


def compute_zero_crossing_rate(samples: np.ndarray) -> float:
    """Fraction of adjacent sample pairs whose signs differ."""
    samples = np.asarray(samples)
    if len(samples) < 2:
        return 0.0
    signs = samples >= 0
    return float(np.count_nonzero(signs[1:] != signs[:-1]) / (len(samples) - 1))
