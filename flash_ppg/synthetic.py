"""
Simulated fingertip camera.

Generates frames whose green channel follows a plausible PPG waveform, for
demos and tests on machines without a flash-equipped camera:

* main pulse wave at the target heart rate;
* a 0.3-amplitude second harmonic (dicrotic notch);
* a 0.1-amplitude respiratory component at 0.2 Hz;
* uniform noise that fades as the "finger settles" over the first 3 s.

Brightness is ``128 + 15 · ramp · (sum of the above)``.  While the flash is
off the frames are dark and flat.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Tuple

import numpy as np

from .errors import FlashControlError
from .host import DeviceHandle

logger = logging.getLogger(__name__)

RAMP_UP_SECONDS = 3.0


def ppg_waveform(
    t: np.ndarray,
    bpm: float,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Brightness samples of the simulated fingertip at times *t* (seconds)."""
    t = np.asarray(t, dtype=np.float64)
    rng = rng or np.random.default_rng()
    freq = bpm / 60.0
    ramp = np.minimum(1.0, t / RAMP_UP_SECONDS)
    main = np.sin(2 * np.pi * freq * t)
    dicrotic = 0.3 * np.sin(4 * np.pi * freq * t + 0.5)
    respiration = 0.1 * np.sin(2 * np.pi * 0.2 * t)
    noise = (1.0 - ramp * 0.8) * (rng.random(t.shape) - 0.5) * 0.5
    return 128.0 + 15.0 * ramp * (main + dicrotic + respiration + noise)


class SyntheticCamera:
    """
    In-memory camera implementing both host protocols.

    Parameters
    ----------
    bpm:
        Simulated heart rate.
    fps:
        Frame rate of the generated stream.
    frame_shape:
        (height, width) of generated frames.
    realtime:
        Pace frames at *fps* with ``asyncio.sleep``; otherwise only yield
        control between frames.
    max_frames:
        Stop the stream after this many frames (``None`` = endless).
    has_torch:
        Whether the simulated track reports flash control.
    seed:
        Seed for the noise generator.
    """

    backend = "synthetic"

    def __init__(
        self,
        bpm: float = 72.0,
        fps: float = 30.0,
        frame_shape: Tuple[int, int] = (48, 64),
        realtime: bool = False,
        max_frames: Optional[int] = None,
        has_torch: bool = True,
        seed: Optional[int] = None,
    ) -> None:
        self.bpm = bpm
        self.fps = fps
        self.frame_shape = frame_shape
        self.realtime = realtime
        self.max_frames = max_frames
        self.has_torch = has_torch
        self._rng = np.random.default_rng(seed)
        self.flash_on = False
        self.open_handles = 0

    async def acquire(self, facing_mode: str) -> DeviceHandle:
        self.open_handles += 1
        logger.info("Synthetic camera opened – facing=%s bpm=%.0f", facing_mode, self.bpm)
        return DeviceHandle(facing_mode=facing_mode, backend=self.backend, native=self)

    async def has_flash(self, handle: DeviceHandle) -> bool:
        return self.has_torch

    async def set_flash(self, handle: DeviceHandle, on: bool) -> None:
        if not self.has_torch:
            raise FlashControlError("Synthetic camera has no torch")
        self.flash_on = on

    async def release(self, handle: DeviceHandle) -> None:
        if handle.native is None:
            return
        handle.native = None
        self.open_handles -= 1
        logger.info("Synthetic camera closed.")

    def render(self, brightness: float) -> np.ndarray:
        """A BGR frame of uniform skin tone with the given green level."""
        h, w = self.frame_shape
        frame = np.empty((h, w, 3), dtype=np.uint8)
        g = int(np.clip(round(brightness), 0, 255))
        frame[:, :, 0] = g // 3
        frame[:, :, 1] = g
        frame[:, :, 2] = min(255, g + 60)
        return frame

    async def frames(self, handle: DeviceHandle) -> AsyncIterator[np.ndarray]:
        index = 0
        while handle.native is not None:
            if self.max_frames is not None and index >= self.max_frames:
                return
            if self.flash_on:
                value = float(ppg_waveform(np.array([index / self.fps]), self.bpm, self._rng)[0])
            else:
                value = 20.0
            yield self.render(value)
            index += 1
            await asyncio.sleep(1.0 / self.fps if self.realtime else 0)
