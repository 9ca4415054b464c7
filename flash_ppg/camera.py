"""
OpenCV host for the measurement session.

Implements :class:`~flash_ppg.host.DeviceControl` and
:class:`~flash_ppg.host.FrameSource` on top of ``cv2.VideoCapture`` so any
V4L2 / AVFoundation / MSMF camera can feed the pipeline.  OpenCV has no
portable torch control; a host that can switch a light (GPIO LED, ring
light, vendor SDK) passes it in as the *torch* callable.

Blocking OpenCV calls run in a worker thread via :func:`asyncio.to_thread`
so the event loop keeps serving the session.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Optional, Tuple

import cv2
import numpy as np

from .errors import AcquisitionError, FlashControlError
from .host import DeviceHandle

logger = logging.getLogger(__name__)

TorchControl = Callable[[bool], None]


class OpenCVCamera:
    """
    Parameters
    ----------
    resolution:
        (width, height) requested from the driver.
    fps:
        Target frame rate.  Actual rate may differ slightly.
    camera_index:
        OpenCV device index.
    torch:
        Optional callable switching the light on/off.  Without it the camera
        reports no flash control.
    max_null_frames:
        Consecutive failed reads after which the stream is considered lost.
    """

    backend = "opencv"

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        camera_index: int = 0,
        torch: Optional[TorchControl] = None,
        max_null_frames: int = 10,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.camera_index = camera_index
        self.torch = torch
        self.max_null_frames = max_null_frames
        self._io_lock = threading.Lock()

    # ------------------------------------------------------------------
    # DeviceControl
    # ------------------------------------------------------------------

    async def acquire(self, facing_mode: str) -> DeviceHandle:
        cap = await asyncio.to_thread(self._open)
        logger.info(
            "Camera opened – backend=%s index=%d resolution=%s fps=%d facing=%s",
            self.backend, self.camera_index, self.resolution, self.fps, facing_mode,
        )
        return DeviceHandle(facing_mode=facing_mode, backend=self.backend, native=cap)

    async def has_flash(self, handle: DeviceHandle) -> bool:
        return self.torch is not None

    async def set_flash(self, handle: DeviceHandle, on: bool) -> None:
        if self.torch is None:
            raise FlashControlError("Camera has no torch control")
        try:
            await asyncio.to_thread(self.torch, on)
        except Exception as exc:  # noqa: BLE001
            raise FlashControlError(f"Torch switch failed: {exc}") from exc
        logger.info("Torch %s.", "on" if on else "off")

    async def release(self, handle: DeviceHandle) -> None:
        if handle.native is None:
            return
        if await asyncio.to_thread(self._close, handle):
            logger.info("Camera closed.")

    # ------------------------------------------------------------------
    # FrameSource
    # ------------------------------------------------------------------

    async def frames(self, handle: DeviceHandle) -> AsyncIterator[np.ndarray]:
        """
        Yield BGR frames until the handle is released or reads keep failing.

        Raises :class:`AcquisitionError` after ``max_null_frames``
        consecutive failed reads.
        """
        null_streak = 0
        while handle.native is not None:
            frame = await asyncio.to_thread(self._read, handle)
            if handle.native is None:
                return
            if frame is None:
                null_streak += 1
                if null_streak >= self.max_null_frames:
                    raise AcquisitionError(
                        f"Camera returned {null_streak} consecutive empty frames"
                    )
                continue
            null_streak = 0
            yield frame

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _open(self) -> cv2.VideoCapture:
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise AcquisitionError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        return cap

    def _close(self, handle: DeviceHandle) -> bool:
        with self._io_lock:
            cap, handle.native = handle.native, None
            if cap is None:
                return False
            cap.release()
        return True

    def _read(self, handle: DeviceHandle) -> Optional[np.ndarray]:
        # Cancelling the awaiting task does not stop this thread; the lock
        # keeps release() from closing the capture under a running read.
        with self._io_lock:
            cap = handle.native
            if cap is None:
                return None
            ok, frame = cap.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        return frame
