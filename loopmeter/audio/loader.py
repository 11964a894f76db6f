"""Audio file loading utilities."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Union

import librosa

from loopmeter.analysis.models import AudioSignal
from loopmeter.audio.preprocessing import to_mono
from loopmeter.exceptions import AudioLoadError


def load_audio(
    file_path_or_buffer: Union[str, Path, BytesIO],
    sr: int = 44100,
    mono: bool = True,
) -> AudioSignal:
    """Decode an audio file or buffer into an :class:`AudioSignal`.

    Parameters
    ----------
    file_path_or_buffer:
        Path to an audio file or a BytesIO buffer containing audio data.
    sr:
        Target sample rate. 0 keeps the file's native rate.
    mono:
        Average channels into one. Otherwise multichannel audio is returned
        channels-first.

    Raises
    ------
    AudioLoadError
        If the data cannot be decoded or is empty.
    """
    try:
        audio, sample_rate = librosa.load(file_path_or_buffer, sr=sr or None, mono=False)
    except Exception as e:
        raise AudioLoadError(f"Could not decode audio: {e}") from e

    if audio.shape[-1] == 0:
        raise AudioLoadError("Audio contains no samples")
    if mono and audio.ndim == 2:
        audio = to_mono(audio)
    return AudioSignal(samples=audio, sr=int(sample_rate))
