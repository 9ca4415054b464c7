"""
Band-pass filter built from two cascaded moving averages.

A short moving average acts as the low-pass at ``high_hz``; a wider one,
applied to the low-passed signal, estimates the very-low-frequency content
which is then subtracted.  Less sharp than a Butterworth design but free
of start-up transients on short (≤ 300 sample) windows.
"""

from __future__ import annotations

import numpy as np

from .config import DEFAULT_CONFIG
from .preprocessing import smooth


def window_lengths(sample_rate: float, low_hz: float, high_hz: float) -> tuple[int, int]:
    """
    Return ``(lowpass_window, highpass_window)`` in samples.

    Window lengths are the reciprocal of the cutoff normalised to Nyquist,
    with floors of 3 and 5 samples.  At 30 Hz and 0.7 – 4.0 Hz: (4, 21).
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if not 0 < low_hz < high_hz:
        raise ValueError("band must satisfy 0 < low_hz < high_hz")
    nyquist = sample_rate / 2.0
    lowpass = max(3, int(round(nyquist / high_hz)))
    highpass = max(5, int(round(nyquist / low_hz)))
    return lowpass, highpass


def bandpass(
    signal: np.ndarray,
    sample_rate: float = DEFAULT_CONFIG.sample_rate,
    low_hz: float = DEFAULT_CONFIG.min_frequency,
    high_hz: float = DEFAULT_CONFIG.max_frequency,
) -> np.ndarray:
    """Keep the ``[low_hz, high_hz]`` band of *signal*."""
    lowpass_win, highpass_win = window_lengths(sample_rate, low_hz, high_hz)
    lowpassed = smooth(signal, lowpass_win)
    return lowpassed - smooth(lowpassed, highpass_win)
