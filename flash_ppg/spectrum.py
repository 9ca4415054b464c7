"""
Dominant-frequency estimation.

Algorithm
---------
1. Apply a (symmetric) Hann window over the samples to reduce leakage.
2. Zero-pad to the next power-of-two length ``N``.
3. Evaluate a direct DFT only for the bins covering the heart-rate band,
   ``floor(f_min·N/fs) .. ceil(f_max·N/fs)`` (below Nyquist).
4. The bin of maximum magnitude gives the dominant frequency ``k·fs/N``.

Restricting the bins bounds the cost at O(n·K) instead of computing a full
spectrum; for ≤ 300 samples at 30 Hz that is about 60 bins.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Tuple

import numpy as np
from scipy.signal.windows import hann

from .config import DEFAULT_CONFIG


class SpectralPeak(NamedTuple):
    frequency: float   # Hz
    magnitude: float


def next_power_of_two(n: int) -> int:
    if n < 1:
        raise ValueError("n must be positive")
    return 1 << (n - 1).bit_length()


def band_bins(
    padded_length: int,
    sample_rate: float,
    min_frequency: float,
    max_frequency: float,
) -> np.ndarray:
    """Indices of the DFT bins evaluated for the band."""
    lo = math.floor(min_frequency * padded_length / sample_rate)
    hi = math.ceil(max_frequency * padded_length / sample_rate)
    bins = np.arange(max(lo, 0), hi + 1)
    return bins[bins < padded_length / 2]


def band_spectrum(
    signal: np.ndarray,
    sample_rate: float = DEFAULT_CONFIG.sample_rate,
    min_frequency: float = DEFAULT_CONFIG.min_frequency,
    max_frequency: float = DEFAULT_CONFIG.max_frequency,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return ``(frequencies_hz, magnitudes)`` for the band bins of *signal*.

    Both arrays are empty when *signal* is empty or no bin falls in the band.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    x = np.asarray(signal, dtype=np.float64)
    n = x.size
    if n == 0:
        return np.array([]), np.array([])

    padded_length = next_power_of_two(n)
    bins = band_bins(padded_length, sample_rate, min_frequency, max_frequency)
    if bins.size == 0:
        return np.array([]), np.array([])

    windowed = x * hann(n, sym=True)
    # Padding samples are zero, so only the first n terms contribute.
    t = np.arange(n)
    basis = np.exp(-2j * np.pi * np.outer(bins, t) / padded_length)
    magnitudes = np.abs(basis @ windowed)
    frequencies = bins * sample_rate / padded_length
    return frequencies, magnitudes


def dominant_frequency(
    signal: np.ndarray,
    sample_rate: float = DEFAULT_CONFIG.sample_rate,
    min_frequency: float = DEFAULT_CONFIG.min_frequency,
    max_frequency: float = DEFAULT_CONFIG.max_frequency,
) -> SpectralPeak:
    """
    Return the strongest in-band frequency of *signal* and its magnitude.

    Ties resolve to the lowest bin.  An empty signal gives ``(0.0, 0.0)``.
    """
    freqs, mags = band_spectrum(signal, sample_rate, min_frequency, max_frequency)
    if mags.size == 0:
        return SpectralPeak(0.0, 0.0)
    peak = int(np.argmax(mags))
    return SpectralPeak(float(freqs[peak]), float(mags[peak]))
