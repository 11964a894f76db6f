"""Core data models for structure analysis."""

from dataclasses import dataclass, field

import numpy as np

from loopmeter.audio.preprocessing import to_mono


@dataclass
class AudioSignal:
    """Decoded PCM samples, mono ``(n,)`` or channels-first ``(channels, n)``."""
    samples: np.ndarray
    sr: int

    def __post_init__(self):
        self.samples = np.asarray(self.samples, dtype=np.float64)
        if self.sr <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sr}")
        if self.samples.ndim not in (1, 2):
            raise ValueError(f"Expected 1-D or 2-D samples, got shape {self.samples.shape}")
        if not np.all(np.isfinite(self.samples)):
            raise ValueError("Samples must be finite")

    @property
    def channels(self) -> int:
        return 1 if self.samples.ndim == 1 else self.samples.shape[0]

    @property
    def n_samples(self) -> int:
        return self.samples.shape[-1]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.n_samples / self.sr

    def to_mono(self) -> "AudioSignal":
        if self.samples.ndim == 1:
            return self
        return AudioSignal(samples=to_mono(self.samples), sr=self.sr)


@dataclass
class FrameSequence:
    """Windowed view of a mono signal."""
    frames: np.ndarray  # (n_frames, frame_length)
    frame_length: int
    hop_length: int

    @property
    def n_frames(self) -> int:
        return self.frames.shape[0]

    @property
    def rms(self) -> np.ndarray:
        return np.sqrt(np.mean(self.frames ** 2, axis=1))


@dataclass
class TempoCandidate:
    """An autocorrelation peak."""
    bpm: float
    strength: float
    lag: int


@dataclass
class TempoEstimate:
    """Result of tempo analysis."""
    bpm: float
    confidence: float  # 0.0-1.0
    candidates: list[TempoCandidate] = field(default_factory=list)
    corrected: str | None = None  # "double" | "half" when octave correction applied

    def to_dict(self) -> dict:
        return {
            "bpm": self.bpm,
            "confidence": self.confidence,
            "corrected": self.corrected,
            "candidates": [
                {"bpm": c.bpm, "strength": c.strength, "lag": c.lag}
                for c in self.candidates
            ],
        }


@dataclass
class BeatGrid:
    """Ordered beat instants."""
    frames: list[int] = field(default_factory=list)
    times: list[float] = field(default_factory=list)  # seconds

    def __len__(self) -> int:
        return len(self.frames)

    def to_dict(self) -> dict:
        return {"frames": list(self.frames), "times": list(self.times)}


@dataclass
class LoopCandidate:
    """Proposed loop region. ``start``/``end`` are normalized to [0, 1]."""
    start: float
    end: float
    confidence: float
    bars: float
    start_sample: int = 0
    end_sample: int = 0
    sr: int = 0
    error: str | None = None  # set when the fallback heuristic was used

    @property
    def start_time(self) -> float:
        return self.start_sample / self.sr if self.sr else 0.0

    @property
    def end_time(self) -> float:
        return self.end_sample / self.sr if self.sr else 0.0

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "confidence": self.confidence,
            "bars": self.bars,
            "error": self.error,
        }


@dataclass
class AlignmentResult:
    """DTW output."""
    distance: float
    normalized_distance: float
    cost_matrix: np.ndarray  # (n + 1, m + 1) accumulated cost
    path: list[tuple[int, int]] = field(default_factory=list)

    def to_dict(self, include_cost_matrix: bool = False) -> dict:
        data = {
            "distance": _finite_or_none(self.distance),
            "normalized_distance": _finite_or_none(self.normalized_distance),
            "path": [[int(i), int(j)] for i, j in self.path],
        }
        if include_cost_matrix:
            data["cost_matrix"] = [
                [_finite_or_none(v) for v in row] for row in self.cost_matrix.tolist()
            ]
        return data


@dataclass
class ClusterAssignment:
    """Medoid-based grouping of sequences."""
    medoids: list[int]  # index of the medoid sequence per cluster
    assignments: list[int]  # cluster index per input sequence
    members: list[list[int]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "medoids": list(self.medoids),
            "assignments": list(self.assignments),
            "members": [list(m) for m in self.members],
        }


@dataclass
class ProgressEvent:
    """A pipeline progress notification."""
    stage: str
    fraction: float  # 0.0-1.0
    message: str = ""


@dataclass
class AnalysisResult:
    """Complete analysis result."""
    tempo: TempoEstimate
    beats: BeatGrid
    loop: LoopCandidate
    peaks: list[float] = field(default_factory=list)
    onset_envelope: np.ndarray | None = None
    duration: float = 0.0
    sr: int = 0

    def to_dict(self) -> dict:
        return {
            "tempo": self.tempo.to_dict(),
            "beats": self.beats.to_dict(),
            "loop": self.loop.to_dict(),
            "peaks": list(self.peaks),
            "duration": self.duration,
            "sr": self.sr,
        }


def _finite_or_none(value: float) -> float | None:
    return float(value) if np.isfinite(value) else None
