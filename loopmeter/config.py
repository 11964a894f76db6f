"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int = 44100  # loader target rate, 0 keeps the native rate
    mono: bool = True

    # Framing
    frame_length: int = 2048
    hop_length: int = 512

    # Tempo
    min_bpm: float = 60.0
    max_bpm: float = 180.0
    start_bpm: float = 120.0

    # Loop detection
    loop_frame_length: int = 1024
    loop_hop_length: int = 512
    min_loop_length: float = 1.0  # seconds
    max_loop_length: float = 8.0  # seconds
    zero_crossing_search: int = 2048  # samples

    # Waveform
    waveform_peaks: int = 800

    # Sequence alignment
    dtw_metric: str = "euclidean"
    dtw_band_rad: float = 0.25
    fastdtw_radius: int = 5
    cluster_k: int = 3
    cluster_max_iterations: int = 10

    # Batch execution
    max_workers: int = os.cpu_count() or 1
    progress_queue_size: int = 64

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50
    log_level: str = "INFO"

    model_config = {"env_prefix": "LOOPMETER_"}


settings = Settings()
