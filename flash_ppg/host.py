"""
Host collaborators consumed by the measurement core.

The DSP pipeline never talks to a capture framework directly.  A host
supplies a :class:`DeviceControl` (camera + flash) and a
:class:`FrameSource` (pixel buffers for an acquired device); both may fail
independently.  :mod:`flash_ppg.camera` and :mod:`flash_ppg.synthetic`
provide implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, runtime_checkable

import numpy as np


@dataclass
class DeviceHandle:
    """Opaque reference to an acquired camera."""

    facing_mode: str
    backend: str
    native: Any = field(default=None, repr=False)


@runtime_checkable
class DeviceControl(Protocol):
    async def acquire(self, facing_mode: str) -> DeviceHandle:
        """Open the camera; raise :class:`~flash_ppg.errors.AcquisitionError` on failure."""
        ...

    async def has_flash(self, handle: DeviceHandle) -> bool:
        """Whether the acquired video track exposes flash/torch control."""
        ...

    async def set_flash(self, handle: DeviceHandle, on: bool) -> None:
        """Switch the flash; raise :class:`~flash_ppg.errors.FlashControlError` on failure."""
        ...

    async def release(self, handle: DeviceHandle) -> None:
        ...


@runtime_checkable
class FrameSource(Protocol):
    def frames(self, handle: DeviceHandle) -> AsyncIterator[np.ndarray]:
        """Yield one H × W × C uint8 pixel buffer per video frame."""
        ...
