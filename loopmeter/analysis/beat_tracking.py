"""Tempo-seeded beat tracking by local peak search."""

import logging
import threading

import numpy as np
import librosa

from loopmeter.analysis.models import BeatGrid
from loopmeter.analysis.progress import raise_if_cancelled

logger = logging.getLogger(__name__)

# Search radius around each predicted beat, as a fraction of the beat period
SEARCH_WINDOW = 0.2


def track_beats(
    envelope: np.ndarray,
    bpm: float,
    sr: int = 44100,
    hop_length: int = 512,
    cancel: threading.Event | None = None,
) -> BeatGrid:
    """Place beats on an onset envelope given a tempo.

    The first beat is the strongest onset within the first beat period.
    Each next beat is searched within +/-20% of a period around
    ``previous + round(period)`` and snaps to the strongest onset there, so
    slow tempo drift is followed without losing lock.

    Envelopes shorter than two beat periods produce an empty grid.
    """
    if bpm <= 0:
        raise ValueError(f"bpm must be positive, got {bpm}")
    envelope = np.asarray(envelope, dtype=np.float64)
    n = len(envelope)
    frames_per_beat = 60.0 * sr / (bpm * hop_length)
    step = max(1, int(round(frames_per_beat)))
    radius = int(frames_per_beat * SEARCH_WINDOW)

    if n < 2 * frames_per_beat:
        logger.info(f"Envelope of {n} frames is shorter than two beats ({frames_per_beat:.1f} frames each)")
        return BeatGrid()

    first = int(np.argmax(envelope[:step]))
    beats = [first]

    predicted = first + step
    while predicted < n:
        raise_if_cancelled(cancel)
        lo = max(beats[-1] + 1, predicted - radius)
        hi = min(n, predicted + radius + 1)
        beat = lo + int(np.argmax(envelope[lo:hi]))
        beats.append(beat)
        predicted = beat + step

    times = librosa.frames_to_time(np.array(beats), sr=sr, hop_length=hop_length)
    return BeatGrid(frames=beats, times=[float(t) for t in times])
