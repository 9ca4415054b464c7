"""
Measurement constants.

All tunables of the pipeline live in one frozen dataclass so a host can
build a variant (e.g. a lower frame rate) with :func:`dataclasses.replace`
and hand the same object to every component.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PPGConfig:
    """
    Parameters
    ----------
    buffer_size:
        Capacity of the rolling sample buffer (≈ 10 s at 30 Hz).
    sample_rate:
        Target frame rate in Hz.  Timestamps are implied by it.
    min_frequency, max_frequency:
        Heart-rate band in Hz (0.7 – 4.0 Hz = 42 – 240 BPM).
    min_bpm, max_bpm:
        Valid BPM range.  Readings outside are rejected.
    stabilization_window:
        Samples required before any spectrum is computed (≈ 3 s).
    signal_quality_threshold:
        Minimum detrended variance for a usable signal.
    stability_threshold:
        Max BPM difference between consecutive readings of a stable run.
    stable_count_required:
        Run length at which a reading is considered stable.
    calculation_interval:
        Recompute every N-th frame.
    display_window:
        Samples exposed in ``raw_signal`` / ``filtered_signal``.
    """

    buffer_size: int = 300
    sample_rate: float = 30.0
    min_frequency: float = 0.7
    max_frequency: float = 4.0
    min_bpm: int = 42
    max_bpm: int = 240
    stabilization_window: int = 90
    signal_quality_threshold: float = 0.15
    stability_threshold: int = 5
    stable_count_required: int = 3
    calculation_interval: int = 10
    display_window: int = 60
    video_width: int = 640
    video_height: int = 480
    facing_mode: str = "environment"

    def __post_init__(self) -> None:
        if self.buffer_size < 1:
            raise ValueError("buffer_size must be positive")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if not 0 < self.min_frequency < self.max_frequency:
            raise ValueError("frequency band must satisfy 0 < min < max")
        if self.min_bpm > self.max_bpm:
            raise ValueError("min_bpm must not exceed max_bpm")
        if self.calculation_interval < 1:
            raise ValueError("calculation_interval must be positive")


DEFAULT_CONFIG = PPGConfig()
