"""Loop boundary detection from bar-length heuristics and energy changes."""

import logging

import numpy as np

from loopmeter.analysis.frames import frame_energy
from loopmeter.analysis.models import LoopCandidate
from loopmeter.audio.preprocessing import (
    apply_hann_window,
    find_audio_start,
    find_nearest_zero_crossing,
    find_zero_crossing,
)
from loopmeter.exceptions import AnalysisCancelled, InsufficientData

logger = logging.getLogger(__name__)

BEATS_PER_BAR = 4
BAR_CHOICES = (8, 4, 2)  # preferred first
INTRO_SKIP = 0.05  # fraction of frames ignored at the start
MAX_TARGET_FRACTION = 0.8  # loop never exceeds this share of the signal
# Profiles whose largest frame-to-frame change stays below this share of the
# mean frame energy are treated as stationary and loop from the beginning.
FLAT_PROFILE_RATIO = 0.05
DETECTED_CONFIDENCE = 0.85
FALLBACK_CONFIDENCE = 0.5

# Musical divisions (in bars) scored by rank_loop_candidates
MUSICAL_DIVISIONS = (0.5, 1, 2, 4, 8)
MAX_CANDIDATE_SECONDS = 12.0
LONG_TRACK_SECONDS = 15.0


def bar_duration(bpm: float) -> float:
    """Seconds per 4/4 bar."""
    return 60.0 / bpm * BEATS_PER_BAR


def choose_bar_count(bpm: float, duration: float, max_loop_length: float) -> int:
    """Largest of 8/4/2 bars that fits both *max_loop_length* and *duration*; 2 otherwise."""
    bar = bar_duration(bpm)
    for bars in BAR_CHOICES:
        if bars * bar <= max_loop_length and bars * bar <= duration:
            return bars
    return BAR_CHOICES[-1]


def find_loop(
    samples: np.ndarray,
    sr: int,
    bpm_hint: float = 120.0,
    min_loop_length: float = 1.0,
    max_loop_length: float = 8.0,
    frame_length: int = 1024,
    hop_length: int = 512,
    max_zero_crossing_search: int = 2048,
) -> LoopCandidate:
    """Find a musically plausible loop region.

    The loop spans 8, 4 or 2 bars at *bpm_hint*, starts at the largest
    frame-energy change after the first 5% of the signal, and both ends are
    snapped to nearby zero crossings.

    Never raises for degenerate input: on failure a fixed heuristic region
    (10% .. min(50%, 10% + 8 s)) is returned with confidence 0.5 and the
    reason in ``error``.
    """
    samples = np.asarray(samples, dtype=np.float64)
    try:
        return _detect_loop(
            samples, sr, bpm_hint, min_loop_length, max_loop_length,
            frame_length, hop_length, max_zero_crossing_search,
        )
    except AnalysisCancelled:
        raise
    except Exception as e:
        logger.warning(f"Loop detection failed, using fallback: {e}")
        return _fallback_loop(samples, sr, str(e))


def _detect_loop(
    samples: np.ndarray,
    sr: int,
    bpm: float,
    min_loop_length: float,
    max_loop_length: float,
    frame_length: int,
    hop_length: int,
    max_search: int,
) -> LoopCandidate:
    if samples.ndim != 1:
        raise ValueError(f"Loop detection expects mono samples, got shape {samples.shape}")
    if sr <= 0:
        raise ValueError(f"Sample rate must be positive, got {sr}")
    if not np.isfinite(bpm) or bpm <= 0:
        raise ValueError(f"Invalid BPM hint {bpm}")
    if not np.all(np.isfinite(samples)):
        raise ValueError("Signal contains non-finite samples")

    n = len(samples)
    duration = n / sr
    bars = choose_bar_count(bpm, duration, max_loop_length)
    target = min(bars * bar_duration(bpm), duration * MAX_TARGET_FRACTION)
    if target < min_loop_length <= duration * MAX_TARGET_FRACTION:
        target = min_loop_length

    energy = frame_energy(samples, frame_length, hop_length)
    mean_energy = float(np.mean(energy))
    if mean_energy <= 0:
        raise InsufficientData("Signal is silent")

    skip = int(len(energy) * INTRO_SKIP)
    changes = np.abs(np.diff(energy))[skip:]
    if len(changes) == 0:
        raise InsufficientData(f"Only {len(energy)} energy frames available")

    max_change = float(changes.max())
    if max_change < FLAT_PROFILE_RATIO * mean_energy:
        logger.debug(f"Flat energy profile (max change {max_change:.3g}), looping from the start")
        start_frame = 0
    else:
        start_frame = skip + int(np.argmax(changes))

    start_sample = find_nearest_zero_crossing(samples, start_frame * hop_length, max_search=max_search)
    raw_end = start_sample + int(target * sr)
    end_sample = min(find_nearest_zero_crossing(samples, raw_end, max_search=max_search), n - 1)
    if end_sample <= start_sample:
        raise InsufficientData(f"Loop end {end_sample} does not follow start {start_sample}")

    logger.info(f"Loop detected: {bars} bars, {target:.2f}s from {start_sample / sr:.3f}s")
    return LoopCandidate(
        start=start_sample / n,
        end=end_sample / n,
        confidence=DETECTED_CONFIDENCE,
        bars=float(bars),
        start_sample=int(start_sample),
        end_sample=int(end_sample),
        sr=sr,
    )


def _fallback_loop(samples: np.ndarray, sr: int, reason: str) -> LoopCandidate:
    n = samples.shape[-1] if samples.ndim else 0
    duration = n / sr if sr > 0 else 0.0
    start = 0.1
    end = min(0.5, start + 8.0 / duration) if duration > 0 else 0.5
    return LoopCandidate(
        start=start,
        end=end,
        confidence=FALLBACK_CONFIDENCE,
        bars=0.0,
        start_sample=int(start * n),
        end_sample=int(end * n),
        sr=sr if sr > 0 else 0,
        error=reason,
    )


def score_loop_repetition(samples: np.ndarray, start_sample: int, end_sample: int) -> float:
    """Normalized correlation of ``[start, end)`` with the equally long region after it.

    Both regions are Hann windowed. Returns 0 when the signal is too short
    to hold the repetition or either region is silent.
    """
    length = end_sample - start_sample
    if length <= 1 or start_sample < 0 or end_sample + length > len(samples):
        return 0.0
    first = apply_hann_window(samples[start_sample:end_sample])
    second = apply_hann_window(samples[end_sample:end_sample + length])
    norm = float(np.linalg.norm(first) * np.linalg.norm(second))
    if norm == 0:
        return 0.0
    return float(np.dot(first, second)) / norm


def rank_loop_candidates(
    samples: np.ndarray,
    sr: int,
    bpm: float,
    max_candidates: int = 5,
) -> list[LoopCandidate]:
    """Score loops of 1/2, 1, 2, 4 and 8 bars by how well they repeat.

    Candidates longer than 12 s or half the signal are skipped. Long tracks
    (over 15 s) start at the first non-silent audio. The best candidates are
    returned first.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = len(samples)
    if n == 0 or sr <= 0 or bpm <= 0:
        return []
    duration = n / sr
    bar = bar_duration(bpm)
    audio_start = find_audio_start(samples, sr) if duration > LONG_TRACK_SECONDS else 0

    results = []
    for division in MUSICAL_DIVISIONS:
        loop_length = division * bar
        if loop_length > MAX_CANDIDATE_SECONDS or loop_length > duration / 2:
            continue
        loop_samples = int(loop_length * sr)
        if audio_start + 2 * loop_samples > n:
            continue

        score = score_loop_repetition(samples, audio_start, audio_start + loop_samples)
        start = find_zero_crossing(samples, audio_start)
        end = find_zero_crossing(samples, audio_start + loop_samples)
        if end <= start:
            continue
        logger.debug(f"{division} bars ({loop_length:.3f}s): repetition={score:.4f}")
        results.append(LoopCandidate(
            start=start / n,
            end=end / n,
            confidence=max(0.0, min(1.0, score)),
            bars=float(division),
            start_sample=int(start),
            end_sample=int(end),
            sr=sr,
        ))

    results.sort(key=lambda c: c.confidence, reverse=True)
    return results[:max_candidates]
