"""
BPM estimation, validation and stability tracking.

Per recomputation the engine walks the buffer snapshot through
detrend → variance gate → band-pass → dominant frequency → range check and
classifies the outcome:

``INSUFFICIENT``
    fewer than ``stabilization_window`` samples; no spectrum is computed.
``LOW_QUALITY``
    detrended variance below ``signal_quality_threshold``.
``OUT_OF_RANGE``
    a peak was found but its BPM is outside ``[min_bpm, max_bpm]``.
``CANDIDATE``
    valid BPM, not yet stable.
``STABLE``
    ``stable_count_required`` consecutive candidates, each within
    ``stability_threshold`` BPM of the previous one.

The quality score (``magnitude / (variance × n) × 200`` clamped to
[50, 100]) is a heuristic carried over for behavioural parity; its
absolute scale has no clinical meaning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

from .config import DEFAULT_CONFIG, PPGConfig
from .filtering import bandpass
from .preprocessing import detrend, sample_variance
from .spectrum import SpectralPeak, dominant_frequency

logger = logging.getLogger(__name__)

FrequencyEstimator = Callable[[np.ndarray, float, float, float], SpectralPeak]


class ReadingStatus(Enum):
    INSUFFICIENT = "insufficient"
    LOW_QUALITY  = "low_quality"
    OUT_OF_RANGE = "out_of_range"
    CANDIDATE    = "candidate"
    STABLE       = "stable"


@dataclass(frozen=True)
class Reading:
    """Outcome of one evaluation of the buffer."""

    status: ReadingStatus
    bpm: Optional[int]
    quality: int
    variance: float = 0.0
    frequency: float = 0.0
    magnitude: float = 0.0


@dataclass(frozen=True)
class TrackingState:
    """Run-to-run stability counters, replaced on every update."""

    last_bpm: Optional[int] = None
    stable_run_length: int = 0
    is_stable: bool = False


@dataclass(frozen=True)
class PPGSignalData:
    """Externally observable measurement snapshot."""

    bpm: Optional[int] = None
    signal_quality: int = 0
    is_stable: bool = False
    raw_signal: Tuple[float, ...] = field(default_factory=tuple)
    filtered_signal: Tuple[float, ...] = field(default_factory=tuple)
    status: ReadingStatus = ReadingStatus.INSUFFICIENT


def quality_label(quality: int) -> str:
    """Map a 0 – 100 quality score to ``excellent`` / ``good`` / ``weak``."""
    if quality >= 80:
        return "excellent"
    if quality >= 60:
        return "good"
    return "weak"


class BpmEngine:
    """
    Stateless evaluator plus explicit-state stability tracker.

    Parameters
    ----------
    config:
        Pipeline constants.
    frequency_estimator:
        Callable ``(signal, sample_rate, min_hz, max_hz) -> SpectralPeak``.
        Defaults to :func:`flash_ppg.spectrum.dominant_frequency`.
    """

    def __init__(
        self,
        config: PPGConfig = DEFAULT_CONFIG,
        frequency_estimator: FrequencyEstimator = dominant_frequency,
    ) -> None:
        self.config = config
        self._estimate = frequency_estimator

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(self, samples: np.ndarray) -> Reading:
        """Classify the current buffer snapshot and score its quality."""
        cfg = self.config
        signal = np.asarray(samples, dtype=np.float64)
        n = signal.size

        if n < cfg.stabilization_window:
            return Reading(ReadingStatus.INSUFFICIENT, None, 0)

        detrended = detrend(signal)
        variance = sample_variance(detrended)
        if variance < cfg.signal_quality_threshold:
            quality = min(50.0, variance / cfg.signal_quality_threshold * 50.0)
            return Reading(ReadingStatus.LOW_QUALITY, None, int(round(quality)), variance)

        filtered = bandpass(detrended, cfg.sample_rate, cfg.min_frequency, cfg.max_frequency)
        frequency, magnitude = self._estimate(
            filtered, cfg.sample_rate, cfg.min_frequency, cfg.max_frequency
        )
        bpm = int(round(frequency * 60.0))

        if bpm < cfg.min_bpm or bpm > cfg.max_bpm:
            return Reading(ReadingStatus.OUT_OF_RANGE, None, 30, variance, frequency, magnitude)

        score = min(100, int(round(magnitude / (variance * n) * 100 * 2)))
        return Reading(
            ReadingStatus.CANDIDATE, bpm, max(50, score), variance, frequency, magnitude
        )

    def track(
        self, state: TrackingState, reading: Reading
    ) -> Tuple[TrackingState, Optional[int]]:
        """
        Fold *reading* into *state*.

        Returns the new state and, on the transition into stability only,
        the confirmed BPM.
        """
        cfg = self.config
        if reading.bpm is None:
            return TrackingState(), None

        if state.last_bpm is None:
            run = 1
        elif abs(reading.bpm - state.last_bpm) <= cfg.stability_threshold:
            run = state.stable_run_length + 1
        else:
            run = 0

        is_stable = run >= cfg.stable_count_required
        confirmed = reading.bpm if is_stable and not state.is_stable else None
        return TrackingState(reading.bpm, run, is_stable), confirmed

    def update(
        self, state: TrackingState, samples: np.ndarray
    ) -> Tuple[PPGSignalData, TrackingState, Optional[int]]:
        """Evaluate, track and project in one step."""
        reading = self.evaluate(samples)
        new_state, confirmed = self.track(state, reading)
        data = self.project(samples, reading, new_state)
        logger.debug(
            "reading status=%s bpm=%s quality=%d run=%d",
            data.status.value, reading.bpm, reading.quality, new_state.stable_run_length,
        )
        return data, new_state, confirmed

    def project(
        self, samples: np.ndarray, reading: Reading, state: TrackingState
    ) -> PPGSignalData:
        """Build the observable :class:`PPGSignalData` for *reading*."""
        cfg = self.config
        raw = np.asarray(samples, dtype=np.float64)[-cfg.display_window:]
        filtered = bandpass(detrend(raw), cfg.sample_rate, cfg.min_frequency, cfg.max_frequency)
        status = reading.status
        if status is ReadingStatus.CANDIDATE and state.is_stable:
            status = ReadingStatus.STABLE
        return PPGSignalData(
            bpm=reading.bpm,
            signal_quality=reading.quality,
            is_stable=state.is_stable,
            raw_signal=tuple(float(v) for v in raw),
            filtered_signal=tuple(float(v) for v in filtered),
            status=status,
        )
