"""Pydantic request and response models for the API."""

from pydantic import BaseModel, Field

FeatureSequence = list[list[float]] | list[float]


class TempoCandidateResponse(BaseModel):
    bpm: float
    strength: float
    lag: int


class TempoResponse(BaseModel):
    bpm: float
    confidence: float
    corrected: str | None = None
    candidates: list[TempoCandidateResponse] = []


class BeatGridResponse(BaseModel):
    frames: list[int] = []
    times: list[float] = []


class LoopResponse(BaseModel):
    start: float
    end: float
    start_time: float
    end_time: float
    confidence: float
    bars: float
    error: str | None = None


class AnalysisResponse(BaseModel):
    tempo: TempoResponse
    beats: BeatGridResponse
    loop: LoopResponse
    peaks: list[float] = []
    duration: float = 0.0
    sr: int = 0


# Sequence alignment

class AlignRequest(BaseModel):
    x: FeatureSequence
    y: FeatureSequence
    metric: str = "euclidean"
    fast: bool = False  # FastDTW approximation
    radius: int | None = None
    global_constraint: bool = False
    band_rad: float | None = None
    include_cost_matrix: bool = False


class AlignResponse(BaseModel):
    distance: float | None  # None when the end cell is unreachable
    normalized_distance: float | None
    path: list[list[int]] = []
    cost_matrix: list[list[float | None]] | None = None


class ClusterRequest(BaseModel):
    sequences: list[FeatureSequence] = Field(min_length=1)
    k: int | None = None
    max_iterations: int | None = None
    metric: str | None = None
    seed: int | None = 0
    stop_when_stable: bool = False


class ClusterResponse(BaseModel):
    medoids: list[int]
    assignments: list[int]
    members: list[list[int]] = []
