"""
Signal conditioning primitives.

The raw brightness trace drifts with finger pressure and ambient light.
:func:`detrend` removes the least-squares linear trend, :func:`smooth` is
a centred moving average used on its own and as the building block of
the band-pass filter.
"""

from __future__ import annotations

import numpy as np
from scipy.signal import detrend as _linear_detrend


def detrend(signal: np.ndarray) -> np.ndarray:
    """Subtract the least-squares linear fit (index vs. value) from *signal*."""
    x = np.asarray(signal, dtype=np.float64)
    if x.size < 2:
        return x.copy()
    return _linear_detrend(x, type="linear")


def smooth(signal: np.ndarray, window_size: int) -> np.ndarray:
    """
    Centred moving average with edge-shrinking windows.

    Sample *i* is the mean of ``signal[max(0, i - h) : min(n, i + h + 1)]``
    with ``h = window_size // 2``.  Near the boundaries the window narrows
    instead of wrapping or padding.
    """
    if window_size < 1:
        raise ValueError("window_size must be >= 1")
    x = np.asarray(signal, dtype=np.float64)
    n = x.size
    if n == 0:
        return x.copy()
    half = window_size // 2
    csum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.minimum(n, idx + half + 1)
    return (csum[hi] - csum[lo]) / (hi - lo)


def sample_variance(signal: np.ndarray) -> float:
    """Unbiased (n - 1) variance; 0.0 for fewer than two samples."""
    x = np.asarray(signal, dtype=np.float64)
    if x.size < 2:
        return 0.0
    return float(np.var(x, ddof=1))
