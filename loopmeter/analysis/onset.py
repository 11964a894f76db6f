"""Onset strength estimation from frame energy or spectral flux."""

import logging

import numpy as np
import librosa

from loopmeter.analysis.frames import frame_signal
from loopmeter.exceptions import InvalidWindowing

logger = logging.getLogger(__name__)


def onset_strength(rms: np.ndarray) -> np.ndarray:
    """Energy-rise onset strength, ``max(0, rms[i] - rms[i - 1])``.

    The result has one value fewer than *rms*. Fewer than two frames give
    an empty envelope.
    """
    rms = np.asarray(rms, dtype=np.float64)
    if len(rms) < 2:
        return np.zeros(0)
    return np.maximum(0.0, np.diff(rms))


def onset_envelope(samples: np.ndarray, frame_length: int = 2048, hop_length: int = 512) -> np.ndarray:
    """Onset envelope of a mono signal based on frame RMS deltas.

    A signal shorter than one frame yields an empty envelope. Invalid
    hop/frame combinations still raise ``InvalidWindowing``.
    """
    if 0 < hop_length < frame_length and len(samples) < frame_length:
        logger.debug(f"Signal of {len(samples)} samples is shorter than one frame ({frame_length})")
        return np.zeros(0)
    frames = frame_signal(samples, frame_length, hop_length)
    return onset_strength(frames.rms)


def spectral_flux_envelope(
    samples: np.ndarray,
    sr: int = 44100,
    frame_length: int = 2048,
    hop_length: int = 512,
) -> np.ndarray:
    """Half-wave rectified spectral flux.

    Uses the same length convention as :func:`onset_envelope` (frame count - 1).
    """
    samples = np.asarray(samples, dtype=np.float64)
    if not 0 < hop_length < frame_length:
        raise InvalidWindowing(f"hop_length {hop_length} must be in (0, {frame_length})")
    if len(samples) < frame_length:
        return np.zeros(0)

    spectrum = np.abs(librosa.stft(samples, n_fft=frame_length, hop_length=hop_length, center=False))
    if spectrum.shape[1] < 2:
        return np.zeros(0)
    flux = np.maximum(0.0, np.diff(spectrum, axis=1)).sum(axis=0)
    return flux


def detect_onsets(
    envelope: np.ndarray,
    sr: int = 44100,
    hop_length: int = 512,
    delta: float = 0.07,
    wait: int = 20,
) -> tuple[np.ndarray, np.ndarray]:
    """Peak-pick onset events from an envelope.

    The envelope is normalized to its maximum; a frame is an onset when it is
    a strict local maximum above ``mean + delta`` and more than *wait* frames
    after the previous onset.

    Returns (frame_indices, times).
    """
    envelope = np.asarray(envelope, dtype=np.float64)
    if len(envelope) < 3:
        return np.zeros(0, dtype=int), np.zeros(0)

    max_val = envelope.max()
    if max_val <= 0:
        return np.zeros(0, dtype=int), np.zeros(0)
    norm = envelope / max_val
    threshold = norm.mean() + delta

    inner = norm[1:-1]
    is_peak = (inner > threshold) & (inner > norm[:-2]) & (inner > norm[2:])
    candidates = np.flatnonzero(is_peak) + 1

    peaks = []
    last = -wait - 1
    for idx in candidates:
        if idx - last > wait:
            peaks.append(int(idx))
            last = idx

    frames = np.array(peaks, dtype=int)
    times = librosa.frames_to_time(frames, sr=sr, hop_length=hop_length)
    return frames, times
