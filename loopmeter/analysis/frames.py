"""Signal framing and per-frame energy."""

import numpy as np
import librosa

from loopmeter.analysis.models import FrameSequence
from loopmeter.exceptions import InvalidWindowing


def frame_signal(samples: np.ndarray, frame_length: int = 1024, hop_length: int = 512) -> FrameSequence:
    """Slice a mono buffer into overlapping frames.

    Frame count is ``floor((N - frame_length) / hop_length) + 1``.

    Raises
    ------
    InvalidWindowing
        If ``hop_length`` is not in ``(0, frame_length)`` or the signal is
        shorter than one frame.
    """
    samples = np.ascontiguousarray(samples, dtype=np.float64)
    if samples.ndim != 1:
        raise InvalidWindowing(f"Framing expects mono samples, got shape {samples.shape}")
    if frame_length <= 0 or hop_length <= 0:
        raise InvalidWindowing(
            f"frame_length and hop_length must be positive (got {frame_length}, {hop_length})"
        )
    if hop_length >= frame_length:
        raise InvalidWindowing(f"hop_length {hop_length} must be smaller than frame_length {frame_length}")
    if frame_length > len(samples):
        raise InvalidWindowing(f"frame_length {frame_length} exceeds signal length {len(samples)}")

    frames = librosa.util.frame(samples, frame_length=frame_length, hop_length=hop_length, axis=0)
    return FrameSequence(frames=frames, frame_length=frame_length, hop_length=hop_length)


def frame_rms(frames: FrameSequence) -> np.ndarray:
    """Per-frame RMS, ``sqrt(mean(sample ** 2))``."""
    return frames.rms


def frame_energy(samples: np.ndarray, frame_length: int = 1024, hop_length: int = 512) -> np.ndarray:
    """Per-frame mean squared amplitude."""
    frames = frame_signal(samples, frame_length, hop_length)
    return np.mean(frames.frames ** 2, axis=1)
