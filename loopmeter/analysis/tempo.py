"""Autocorrelation tempo estimation with octave-error correction."""

import logging
import math
import threading

import numpy as np
from scipy.signal import find_peaks

from loopmeter.analysis.models import TempoCandidate, TempoEstimate
from loopmeter.analysis.onset import onset_envelope
from loopmeter.analysis.progress import raise_if_cancelled
from loopmeter.exceptions import InsufficientData

logger = logging.getLogger(__name__)

# Octave correction: below DOUBLE_BELOW_BPM try double time, above
# HALF_ABOVE_BPM try half time. Halving needs stronger evidence.
DOUBLE_BELOW_BPM = 90.0
HALF_ABOVE_BPM = 160.0
DOUBLE_RATIO = 0.7
HALF_RATIO = 0.8

MAX_CANDIDATES = 5


def bpm_to_lag(bpm: float, sr: int, hop_length: int) -> float:
    """Envelope lag (in frames) of one beat at *bpm*."""
    return 60.0 * sr / (bpm * hop_length)


def lag_to_bpm(lag: float, sr: int, hop_length: int) -> float:
    return 60.0 * sr / (lag * hop_length)


def autocorrelation(
    envelope: np.ndarray,
    lags,
    cancel: threading.Event | None = None,
) -> np.ndarray:
    """Length-normalized autocorrelation ``(1/(L-lag)) * sum(env[i] * env[i+lag])``.

    Lags outside ``[0, L)`` score 0.
    """
    envelope = np.asarray(envelope, dtype=np.float64)
    n = len(envelope)
    out = np.zeros(len(lags))
    for k, lag in enumerate(lags):
        raise_if_cancelled(cancel)
        lag = int(lag)
        if lag < 0 or lag >= n:
            continue
        out[k] = float(np.dot(envelope[:n - lag], envelope[lag:])) / (n - lag)
    return out


def _lag_range(n_frames: int, sr: int, hop_length: int, min_bpm: float, max_bpm: float) -> tuple[int, int]:
    min_lag = max(1, math.ceil(bpm_to_lag(max_bpm, sr, hop_length)))
    max_lag = math.floor(bpm_to_lag(min_bpm, sr, hop_length))
    max_lag = min(max_lag, n_frames // 2)
    # At least three lags are needed to find an interior local maximum
    if max_lag - min_lag < 2:
        raise InsufficientData(
            f"Envelope of {n_frames} frames is too short for lags {min_lag}..{max_lag}"
        )
    return min_lag, max_lag


def _validate(sr: int, hop_length: int, min_bpm: float, max_bpm: float, start_bpm: float) -> None:
    if sr <= 0:
        raise ValueError(f"Sample rate must be positive, got {sr}")
    if hop_length <= 0:
        raise ValueError(f"hop_length must be positive, got {hop_length}")
    if not 0 < min_bpm < max_bpm:
        raise ValueError(f"Invalid BPM range [{min_bpm}, {max_bpm}]")
    if start_bpm <= 0:
        raise ValueError(f"start_bpm must be positive, got {start_bpm}")


def estimate_tempo(
    envelope: np.ndarray,
    sr: int = 44100,
    hop_length: int = 512,
    min_bpm: float = 60.0,
    max_bpm: float = 180.0,
    start_bpm: float = 120.0,
    cancel: threading.Event | None = None,
) -> TempoEstimate:
    """Estimate tempo from an onset envelope.

    Picks the strongest local maximum of the autocorrelation over the lag
    range implied by ``[min_bpm, max_bpm]``, then applies half/double-time
    correction. Silent, flat or too-short envelopes return *start_bpm* with
    confidence 0.
    """
    _validate(sr, hop_length, min_bpm, max_bpm, start_bpm)
    envelope = np.asarray(envelope, dtype=np.float64)
    default = TempoEstimate(bpm=round(float(start_bpm), 1), confidence=0.0)

    try:
        min_lag, max_lag = _lag_range(len(envelope), sr, hop_length, min_bpm, max_bpm)
    except InsufficientData as e:
        logger.warning(f"Tempo estimation degraded to default: {e}")
        return default

    lags = np.arange(min_lag, max_lag + 1)
    ac = autocorrelation(envelope, lags, cancel=cancel)

    peak_idx, _ = find_peaks(ac)
    if len(peak_idx) == 0:
        logger.info("No autocorrelation peak found, using default tempo")
        return default

    order = peak_idx[np.argsort(-ac[peak_idx], kind="stable")]
    best = int(order[0])
    best_lag = int(lags[best])
    best_strength = float(ac[best])
    if best_strength <= 0:
        return default

    candidates = [
        TempoCandidate(
            bpm=round(lag_to_bpm(float(lags[i]), sr, hop_length), 1),
            strength=float(ac[i]),
            lag=int(lags[i]),
        )
        for i in order[:MAX_CANDIDATES]
    ]

    bpm = lag_to_bpm(best_lag, sr, hop_length)
    corrected = None

    if bpm < DOUBLE_BELOW_BPM and bpm * 2 <= max_bpm:
        half_lags = sorted({best_lag // 2, (best_lag + 1) // 2})
        double_strength = float(np.max(autocorrelation(envelope, half_lags)))
        logger.debug(f"Double-time check: {bpm * 2:.1f} BPM strength={double_strength:.4g} "
                     f"vs {best_strength:.4g}")
        if double_strength >= DOUBLE_RATIO * best_strength:
            bpm *= 2
            corrected = "double"
    elif bpm > HALF_ABOVE_BPM and bpm / 2 >= min_bpm:
        half_strength = float(autocorrelation(envelope, [best_lag * 2])[0])
        logger.debug(f"Half-time check: {bpm / 2:.1f} BPM strength={half_strength:.4g} "
                     f"vs {best_strength:.4g}")
        if half_strength >= HALF_RATIO * best_strength:
            bpm /= 2
            corrected = "half"

    confidence = 1.0 - float(np.mean(ac)) / best_strength
    confidence = max(0.0, min(1.0, confidence))

    bpm = min(max(round(bpm, 1), min_bpm), max_bpm)
    if corrected:
        logger.info(f"Octave correction ({corrected}): {bpm:.1f} BPM")

    return TempoEstimate(
        bpm=bpm,
        confidence=round(confidence, 3),
        candidates=candidates,
        corrected=corrected,
    )


def estimate_tempo_from_audio(
    samples: np.ndarray,
    sr: int = 44100,
    frame_length: int = 2048,
    hop_length: int = 512,
    **kwargs,
) -> TempoEstimate:
    """Frame *samples*, build the energy onset envelope and estimate tempo."""
    envelope = onset_envelope(samples, frame_length=frame_length, hop_length=hop_length)
    return estimate_tempo(envelope, sr=sr, hop_length=hop_length, **kwargs)


def tempo_from_beats(times) -> TempoEstimate:
    """Estimate tempo from beat times via the median inter-beat interval.

    Confidence is ``1 - var / mean**2`` of the intervals.

    Raises
    ------
    InsufficientData
        If fewer than two beat times are given.
    """
    times = np.asarray(times, dtype=np.float64)
    if len(times) < 2:
        raise InsufficientData("Not enough beat times for tempo extraction")

    intervals = np.diff(times)
    intervals = intervals[intervals > 0]
    if len(intervals) == 0:
        raise InsufficientData("Beat times are not increasing")

    median_ibi = float(np.median(intervals))
    mean_ibi = float(np.mean(intervals))
    confidence = max(0.0, 1.0 - float(np.var(intervals)) / (mean_ibi * mean_ibi))

    return TempoEstimate(bpm=round(60.0 / median_ibi, 1), confidence=round(min(1.0, confidence), 3))
