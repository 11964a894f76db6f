"""Analysis orchestrator - runs the tempo, beat, loop and waveform stages."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ProcessPoolExecutor

import numpy as np

from loopmeter.analysis.beat_tracking import track_beats
from loopmeter.analysis.loops import find_loop
from loopmeter.analysis.models import AnalysisResult, AudioSignal
from loopmeter.analysis.onset import onset_envelope
from loopmeter.analysis.progress import ProgressChannel, raise_if_cancelled
from loopmeter.analysis.tempo import estimate_tempo
from loopmeter.analysis.waveform import summarize_peaks
from loopmeter.audio.loader import load_audio
from loopmeter.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

STAGES = ("onset", "tempo", "beats", "loop", "waveform")


def _analyze_in_worker(args) -> AnalysisResult:
    signal, config = args
    return AnalysisEngine(config).analyze_signal(signal)


class AnalysisEngine:
    """Orchestrates the full analysis pipeline.

    Holds configuration only; every call works on the signal it is given,
    so one engine can serve concurrent requests.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def progress_channel(self) -> ProgressChannel:
        """A progress channel sized by ``settings.progress_queue_size``."""
        return ProgressChannel(maxlen=self.settings.progress_queue_size)

    def analyze_file(self, file_path: str, progress: ProgressChannel | None = None,
                     cancel: threading.Event | None = None) -> AnalysisResult:
        """Decode an audio file and analyze it."""
        signal = load_audio(file_path, sr=self.settings.sample_rate, mono=self.settings.mono)
        return self.analyze_signal(signal, progress=progress, cancel=cancel)

    def analyze_audio(self, samples: np.ndarray, sr: int, progress: ProgressChannel | None = None,
                      cancel: threading.Event | None = None) -> AnalysisResult:
        """Analyze a PCM buffer, mono ``(n,)`` or channels-first ``(channels, n)``."""
        return self.analyze_signal(AudioSignal(samples=samples, sr=sr), progress=progress, cancel=cancel)

    def analyze_signal(self, signal: AudioSignal, progress: ProgressChannel | None = None,
                       cancel: threading.Event | None = None) -> AnalysisResult:
        s = self.settings
        sr = signal.sr
        audio = signal.to_mono().samples
        logger.info(f"Analyzing {signal.duration:.1f}s of audio at {sr}Hz ({signal.channels} channel(s))")

        def step(index: int, message: str) -> None:
            raise_if_cancelled(cancel)
            if progress is not None:
                progress.publish(STAGES[index], index / len(STAGES), message)

        # Step 1: Onset envelope
        step(0, "Computing onset envelope")
        logger.info("Step 1: Onset envelope")
        envelope = onset_envelope(audio, frame_length=s.frame_length, hop_length=s.hop_length)

        # Step 2: Tempo
        step(1, "Estimating tempo")
        logger.info("Step 2: Tempo estimation")
        tempo = estimate_tempo(
            envelope, sr=sr, hop_length=s.hop_length,
            min_bpm=s.min_bpm, max_bpm=s.max_bpm, start_bpm=s.start_bpm,
            cancel=cancel,
        )
        logger.info(f"  Tempo: {tempo.bpm:.1f} BPM (confidence {tempo.confidence:.2f})")

        # Step 3: Beats
        step(2, "Tracking beats")
        logger.info("Step 3: Beat tracking")
        beats = track_beats(envelope, tempo.bpm, sr=sr, hop_length=s.hop_length, cancel=cancel)
        logger.info(f"  {len(beats)} beats")

        # Step 4: Loop
        step(3, "Detecting loop")
        logger.info("Step 4: Loop detection")
        loop = find_loop(
            audio, sr, bpm_hint=tempo.bpm,
            min_loop_length=s.min_loop_length,
            max_loop_length=s.max_loop_length,
            frame_length=s.loop_frame_length,
            hop_length=s.loop_hop_length,
            max_zero_crossing_search=s.zero_crossing_search,
        )

        # Step 5: Waveform
        step(4, "Summarizing waveform")
        peaks = summarize_peaks(audio, s.waveform_peaks)

        if progress is not None:
            progress.publish("done", 1.0, "Analysis complete")

        return AnalysisResult(
            tempo=tempo,
            beats=beats,
            loop=loop,
            peaks=peaks.tolist(),
            onset_envelope=envelope,
            duration=signal.duration,
            sr=sr,
        )

    def analyze_batch(self, signals: list[AudioSignal], max_workers: int | None = None) -> list[AnalysisResult]:
        """Analyze independent signals in a process pool; results keep input order."""
        workers = min(max_workers or self.settings.max_workers, os.cpu_count() or 1, len(signals))
        if workers <= 1:
            return [self.analyze_signal(sig) for sig in signals]

        logger.info(f"Analyzing {len(signals)} signals with {workers} workers")
        with ProcessPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(_analyze_in_worker, [(sig, self.settings) for sig in signals]))

    def onset_features(self, signal: AudioSignal) -> np.ndarray:
        """Onset envelope as a ``(n_frames, 1)`` feature sequence for alignment."""
        envelope = onset_envelope(
            signal.to_mono().samples,
            frame_length=self.settings.frame_length,
            hop_length=self.settings.hop_length,
        )
        return envelope[:, None]
