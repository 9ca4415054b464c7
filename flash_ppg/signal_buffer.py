"""
Rolling brightness buffer.

Each camera frame is reduced to one float: the mean green-channel
intensity of a central region of interest.  (Green is most sensitive to
haemoglobin absorption changes.)  Samples are kept in a fixed-capacity
FIFO; at capacity the oldest sample is evicted.
"""

from __future__ import annotations

from collections import deque
from typing import Deque

import numpy as np

from .config import DEFAULT_CONFIG


def green_channel_mean(
    frame: np.ndarray,
    roi_fraction: float = 0.5,
    stride: int = 4,
) -> float:
    """
    Return the mean green intensity of the centre of *frame*.

    Parameters
    ----------
    frame:
        Image array (H × W × C, uint8).  Channel 1 is green in both RGB
        and BGR layouts, so the channel order does not matter.
    roi_fraction:
        Side of the central region as a fraction of each dimension.
        The default covers the middle half, where the fingertip sits.
    stride:
        Pixel step in both axes.  ``4`` reads one pixel in sixteen.
    """
    if frame.ndim != 3 or frame.shape[2] < 2:
        raise ValueError(f"expected an H x W x C frame, got shape {frame.shape}")
    h, w = frame.shape[:2]
    rh = max(1, int(h * roi_fraction))
    rw = max(1, int(w * roi_fraction))
    y0 = (h - rh) // 2
    x0 = (w - rw) // 2
    roi = frame[y0:y0 + rh:stride, x0:x0 + rw:stride, 1]
    return float(np.mean(roi))


class SignalBuffer:
    """
    Fixed-capacity FIFO of per-frame brightness samples.

    Parameters
    ----------
    capacity:
        Maximum number of samples kept (default 300 ≈ 10 s at 30 Hz).
    """

    def __init__(self, capacity: int = DEFAULT_CONFIG.buffer_size) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._samples: Deque[float] = deque(maxlen=capacity)

    def push(self, sample: float) -> None:
        """Append *sample*, evicting the oldest one when full."""
        self._samples.append(float(sample))

    def snapshot(self) -> np.ndarray:
        """Copy of the contents in chronological order."""
        return np.array(self._samples, dtype=np.float64)

    def clear(self) -> None:
        self._samples.clear()

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return len(self._samples) / self._samples.maxlen

    def __len__(self) -> int:
        return len(self._samples)
