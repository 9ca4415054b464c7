"""
Unit tests for BpmEngine.
Run with:  pytest tests/test_bpm_engine.py
"""

from __future__ import annotations

import numpy as np
import pytest

from conftest import sine_wave
from flash_ppg.bpm_engine import (
    BpmEngine,
    PPGSignalData,
    Reading,
    ReadingStatus,
    TrackingState,
    quality_label,
)
from flash_ppg.config import PPGConfig
from flash_ppg.spectrum import SpectralPeak, dominant_frequency


class CountingEstimator:
    """Wraps the real estimator and counts invocations."""

    def __init__(self):
        self.calls = 0

    def __call__(self, signal, sample_rate, min_hz, max_hz):
        self.calls += 1
        return dominant_frequency(signal, sample_rate, min_hz, max_hz)


class FixedEstimator:
    """Returns a scripted sequence of peaks, one per call."""

    def __init__(self, *frequencies, magnitude=1000.0):
        self.frequencies = list(frequencies)
        self.magnitude = magnitude

    def __call__(self, signal, sample_rate, min_hz, max_hz):
        return SpectralPeak(self.frequencies.pop(0), self.magnitude)


def candidate(bpm: int) -> Reading:
    return Reading(ReadingStatus.CANDIDATE, bpm, 80)


# ---------------------------------------------------------------------------
# evaluate()
# ---------------------------------------------------------------------------

class TestEvaluate:

    def test_round_trip_75_bpm(self, pulse_75bpm):
        reading = BpmEngine().evaluate(pulse_75bpm)
        assert reading.status is ReadingStatus.CANDIDATE
        assert abs(reading.bpm - 75) <= 2
        assert reading.quality >= 50
        assert isinstance(reading.bpm, int)

    def test_insufficient_data_skips_spectrum(self):
        counter = CountingEstimator()
        engine = BpmEngine(frequency_estimator=counter)
        reading = engine.evaluate(sine_wave(89, 1.25))
        assert reading.status is ReadingStatus.INSUFFICIENT
        assert reading.bpm is None
        assert reading.quality == 0
        assert counter.calls == 0

        engine.evaluate(sine_wave(90, 1.25))
        assert counter.calls == 1

    def test_flat_signal_is_low_quality(self):
        counter = CountingEstimator()
        reading = BpmEngine(frequency_estimator=counter).evaluate(np.full(300, 120.0))
        assert reading.status is ReadingStatus.LOW_QUALITY
        assert reading.bpm is None
        assert reading.quality == 0
        assert counter.calls == 0

    def test_low_quality_score_scales_with_variance(self):
        rng = np.random.default_rng(3)
        # Detrended variance ≈ 0.075, half the threshold.
        x = 100 + rng.normal(scale=np.sqrt(0.075), size=3000)
        engine = BpmEngine(PPGConfig(buffer_size=3000))
        reading = engine.evaluate(x)
        assert reading.status is ReadingStatus.LOW_QUALITY
        assert 20 <= reading.quality <= 30

    @pytest.mark.parametrize("frequency", [0.5, 0.69, 4.02, 5.0])
    def test_out_of_range_rejected(self, frequency, pulse_75bpm):
        engine = BpmEngine(frequency_estimator=FixedEstimator(frequency))
        reading = engine.evaluate(pulse_75bpm)
        assert reading.status is ReadingStatus.OUT_OF_RANGE
        assert reading.bpm is None
        assert reading.quality == 30

    @pytest.mark.parametrize("frequency, bpm", [(0.7, 42), (1.2, 72), (4.0, 240)])
    def test_range_edges_accepted(self, frequency, bpm, pulse_75bpm):
        engine = BpmEngine(frequency_estimator=FixedEstimator(frequency))
        reading = engine.evaluate(pulse_75bpm)
        assert reading.status is ReadingStatus.CANDIDATE
        assert reading.bpm == bpm

    def test_quality_clamped(self, pulse_75bpm):
        strong = BpmEngine(frequency_estimator=FixedEstimator(1.25, magnitude=1e9))
        weak = BpmEngine(frequency_estimator=FixedEstimator(1.25, magnitude=1e-9))
        assert strong.evaluate(pulse_75bpm).quality == 100
        assert weak.evaluate(pulse_75bpm).quality == 50

    def test_bpm_never_outside_range(self):
        rng = np.random.default_rng(11)
        engine = BpmEngine()
        for _ in range(20):
            reading = engine.evaluate(100 + rng.normal(scale=3.0, size=300))
            if reading.bpm is not None:
                assert 42 <= reading.bpm <= 240


# ---------------------------------------------------------------------------
# track()
# ---------------------------------------------------------------------------

class TestTrack:

    def test_stability_edge_triggered(self):
        engine = BpmEngine()
        state = TrackingState()
        stable_flags, confirmations = [], []
        for bpm in (72, 74, 70, 95):
            state, confirmed = engine.track(state, candidate(bpm))
            stable_flags.append(state.is_stable)
            if confirmed is not None:
                confirmations.append(confirmed)

        assert stable_flags == [False, False, True, False]
        assert confirmations == [70]
        assert state.stable_run_length == 0
        assert state.last_bpm == 95

    def test_stays_stable_without_refiring(self):
        engine = BpmEngine()
        state = TrackingState()
        confirmations = []
        for bpm in (72, 73, 72, 71, 72, 73):
            state, confirmed = engine.track(state, candidate(bpm))
            if confirmed is not None:
                confirmations.append(confirmed)
        assert confirmations == [72]
        assert state.is_stable

    def test_refires_after_stability_lost(self):
        engine = BpmEngine()
        state = TrackingState()
        confirmations = []
        for bpm in (72, 72, 72, 100, 101, 100, 101):
            state, confirmed = engine.track(state, candidate(bpm))
            if confirmed is not None:
                confirmations.append(confirmed)
        assert confirmations == [72, 101]

    def test_rejected_reading_resets(self):
        engine = BpmEngine()
        state = TrackingState(last_bpm=72, stable_run_length=3, is_stable=True)
        state, confirmed = engine.track(state, Reading(ReadingStatus.LOW_QUALITY, None, 20))
        assert state == TrackingState()
        assert confirmed is None


# ---------------------------------------------------------------------------
# update() / projection
# ---------------------------------------------------------------------------

class TestUpdate:

    def test_projection_windows(self, pulse_75bpm):
        data, state, _ = BpmEngine().update(TrackingState(), pulse_75bpm)
        assert isinstance(data, PPGSignalData)
        assert len(data.raw_signal) == 60
        assert len(data.filtered_signal) == 60
        assert data.raw_signal == tuple(pulse_75bpm[-60:])
        assert data.bpm == state.last_bpm

    def test_stable_status(self, pulse_75bpm):
        engine = BpmEngine()
        state = TrackingState()
        statuses = []
        for _ in range(3):
            data, state, _ = engine.update(state, pulse_75bpm)
            statuses.append(data.status)
        assert statuses == [
            ReadingStatus.CANDIDATE, ReadingStatus.CANDIDATE, ReadingStatus.STABLE,
        ]
        assert data.is_stable

    def test_insufficient_projection(self):
        data, state, confirmed = BpmEngine().update(TrackingState(), sine_wave(30, 1.25))
        assert data.status is ReadingStatus.INSUFFICIENT
        assert data.bpm is None
        assert data.signal_quality == 0
        assert len(data.raw_signal) == 30
        assert confirmed is None


@pytest.mark.parametrize("quality, label", [(100, "excellent"), (80, "excellent"),
                                            (79, "good"), (60, "good"), (59, "weak"),
                                            (0, "weak")])
def test_quality_label(quality, label):
    assert quality_label(quality) == label
