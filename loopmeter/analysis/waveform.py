"""Waveform peak summaries for display."""

import numpy as np


def _segments(samples: np.ndarray, n_segments: int) -> np.ndarray | None:
    """Reshape into ``(n_segments, size)``; trailing remainder samples are dropped.

    Returns None when a segment would hold less than one sample.
    """
    if n_segments <= 0:
        raise ValueError(f"n_segments must be positive, got {n_segments}")
    size = len(samples) // n_segments
    if size < 1:
        return None
    return samples[:size * n_segments].reshape(n_segments, size)


def summarize_peaks(samples: np.ndarray, n_pairs: int = 800) -> np.ndarray:
    """Reduce samples to ``n_pairs`` (min, max) pairs, flattened.

    The output is ``[min0, max0, min1, max1, ...]``. If there are fewer
    samples than pairs, the raw samples are returned unchanged.
    """
    samples = np.asarray(samples, dtype=np.float64)
    segments = _segments(samples, n_pairs)
    if segments is None:
        return samples
    peaks = np.empty(2 * n_pairs)
    peaks[0::2] = segments.min(axis=1)
    peaks[1::2] = segments.max(axis=1)
    return peaks


def summarize_rms(samples: np.ndarray, n_points: int = 800) -> np.ndarray:
    """Per-segment RMS, or the absolute raw samples if segments would be empty."""
    samples = np.asarray(samples, dtype=np.float64)
    segments = _segments(samples, n_points)
    if segments is None:
        return np.abs(samples)
    return np.sqrt(np.mean(segments ** 2, axis=1))


def normalize_peaks(peaks: np.ndarray) -> np.ndarray:
    """Scale so the largest absolute value is 1. All-zero input is returned as is."""
    peaks = np.asarray(peaks, dtype=np.float64)
    top = np.max(np.abs(peaks)) if len(peaks) else 0.0
    if top == 0:
        return peaks
    return peaks / top
