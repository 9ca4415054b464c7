"""
Measurement session lifecycle.

States
------
``IDLE → CAPABILITY_CHECKING → INITIALIZING → ACTIVE → STOPPED``, with
``ERROR`` reachable from the three middle states.  ``STOPPED`` and ``ERROR``
are terminal until :meth:`MeasurementSession.start` is called again.

Scheduling
----------
One asyncio task consumes the host's frame source.  Each frame is reduced
to a green-channel mean and pushed into the buffer synchronously; every
``calculation_interval``-th frame the buffer is run through the
:class:`~flash_ppg.bpm_engine.BpmEngine`.  Device calls are awaited only
while starting and stopping.

Usage::

    async with MeasurementSession(camera, camera, on_bpm_detected=print) as s:
        await asyncio.sleep(15)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional, Set

import numpy as np

from .bpm_engine import BpmEngine, PPGSignalData, TrackingState
from .capabilities import REASON_NO_CAMERA, CameraCapabilities, CapabilityProbe, PlatformInfo
from .config import DEFAULT_CONFIG, PPGConfig
from .errors import AcquisitionError, FlashControlError, PPGError, UnsupportedDeviceError
from .host import DeviceControl, DeviceHandle, FrameSource
from .signal_buffer import SignalBuffer, green_channel_mean

logger = logging.getLogger(__name__)

REASON_FLASH_FAILED = "Failed to turn on flash. Please ensure flash is available."
REASON_UNSUPPORTED = "Camera PPG not supported on this device"
REASON_STREAM_ENDED = "Camera stream ended unexpectedly"

SignalCallback = Callable[[PPGSignalData], None]
BpmCallback = Callable[[int], None]
ErrorCallback = Callable[[str], None]

# Stops scheduled from __del__ must outlive the collected session.
_PENDING_STOPS: Set["asyncio.Task[None]"] = set()


class SessionState(Enum):
    IDLE                = "idle"
    CAPABILITY_CHECKING = "capability_checking"
    INITIALIZING        = "initializing"
    ACTIVE              = "active"
    STOPPED             = "stopped"
    ERROR               = "error"


_STARTABLE = (SessionState.IDLE, SessionState.STOPPED, SessionState.ERROR)


class MeasurementSession:
    """
    Orchestrates capability check, device acquisition, sampling and teardown.

    Parameters
    ----------
    device:
        Camera/flash control, exclusively owned while the session runs.
    frame_source:
        Supplies pixel buffers for the acquired device.
    config:
        Pipeline constants.
    platform_info:
        Platform descriptor for the default capability probe.
    probe:
        Custom capability probe (overrides *platform_info*).
    engine:
        Custom BPM engine.
    on_signal, on_bpm_detected, on_error:
        Optional observers; more can be added with :meth:`subscribe`.
    """

    def __init__(
        self,
        device: DeviceControl,
        frame_source: FrameSource,
        config: PPGConfig = DEFAULT_CONFIG,
        platform_info: Optional[PlatformInfo] = None,
        probe: Optional[CapabilityProbe] = None,
        engine: Optional[BpmEngine] = None,
        on_signal: Optional[SignalCallback] = None,
        on_bpm_detected: Optional[BpmCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.device = device
        self.frame_source = frame_source
        self.config = config
        self.probe = probe or CapabilityProbe(device, platform_info, config.facing_mode)
        self.engine = engine or BpmEngine(config)

        self._signal_observers: List[SignalCallback] = []
        self._bpm_observers: List[BpmCallback] = []
        self._error_observers: List[ErrorCallback] = []
        self.subscribe(on_signal, on_bpm_detected, on_error)

        self._state = SessionState.IDLE
        self._error: Optional[str] = None
        self._capabilities: Optional[CameraCapabilities] = None
        self._handle: Optional[DeviceHandle] = None
        self._flash_on = False
        self._flash_request: Optional["asyncio.Future[None]"] = None
        self._frame_task: Optional["asyncio.Task[None]"] = None

        self._buffer = SignalBuffer(config.buffer_size)
        self._tracking = TrackingState()
        self._frame_count = 0
        self._signal_data = PPGSignalData()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(
        self,
        on_signal: Optional[SignalCallback] = None,
        on_bpm_detected: Optional[BpmCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """Register observers; returns a callable that removes them again."""
        pairs = [
            (self._signal_observers, on_signal),
            (self._bpm_observers, on_bpm_detected),
            (self._error_observers, on_error),
        ]
        for observers, cb in pairs:
            if cb is not None:
                observers.append(cb)

        def unsubscribe() -> None:
            for observers, cb in pairs:
                if cb is not None and cb in observers:
                    observers.remove(cb)

        return unsubscribe

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def capabilities(self) -> Optional[CameraCapabilities]:
        return self._capabilities

    @property
    def signal_data(self) -> PPGSignalData:
        return self._signal_data

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def buffer_fill_ratio(self) -> float:
        return self._buffer.fill_ratio

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Probe, acquire the camera, enable the flash and begin sampling.

        Returns *True* once the session is ``ACTIVE``.  Device failures put
        the session in ``ERROR`` and return *False*; they are never raised.
        """
        if self._state not in _STARTABLE:
            raise RuntimeError(f"Cannot start a session in state {self._state.value}")

        self._error = None
        self._set_state(SessionState.CAPABILITY_CHECKING)
        caps = await self.probe.probe()
        self._capabilities = caps
        if self._state is not SessionState.CAPABILITY_CHECKING:
            return False
        if not caps.is_supported:
            self._fail(UnsupportedDeviceError(caps.unsupported_reason or REASON_UNSUPPORTED))
            return False

        self._set_state(SessionState.INITIALIZING)
        try:
            handle = await self.device.acquire(self.config.facing_mode)
        except Exception as exc:  # noqa: BLE001
            if self._state is SessionState.INITIALIZING:
                self._fail(AcquisitionError(REASON_NO_CAMERA), exc)
            return False

        self._handle = handle
        if self._state is not SessionState.INITIALIZING:
            # stop() ran while the camera was being opened.
            await self._release_device()
            return False

        self._flash_on = True
        self._flash_request = asyncio.ensure_future(self.device.set_flash(handle, True))
        try:
            await self._flash_request
        except Exception as exc:  # noqa: BLE001
            await self._release_device()
            if self._state is SessionState.INITIALIZING:
                self._fail(FlashControlError(REASON_FLASH_FAILED), exc)
            return False
        finally:
            self._flash_request = None

        if self._state is not SessionState.INITIALIZING:
            await self._release_device()
            return False

        self._reset_measurement()
        self._set_state(SessionState.ACTIVE)
        self._frame_task = asyncio.create_task(
            self._frame_loop(weakref.ref(self), self.frame_source.frames(handle))
        )
        return True

    async def stop(self) -> None:
        """
        Cancel sampling, switch the flash off and release the camera.

        Idempotent and safe from any state, including ``ERROR``.  Flash and
        release failures are logged and do not block each other.  A
        ``start()`` still in progress sees ``STOPPED`` and backs out.
        """
        task, self._frame_task = self._frame_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._state not in (SessionState.IDLE, SessionState.STOPPED):
            self._set_state(SessionState.STOPPED)
        if self._state is SessionState.STOPPED:
            self._error = None

        await self._release_device()

    async def __aenter__(self) -> "MeasurementSession":
        await self.start()
        return self

    async def __aexit__(self, *_) -> None:
        await self.stop()

    def __del__(self) -> None:
        # The frame loop only holds a weak reference, so an active session
        # dropped by its owner still ends up here.
        if getattr(self, "_handle", None) is None:
            return
        logger.warning("Measurement session collected while holding the camera; stopping.")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.stop())
        _PENDING_STOPS.add(task)
        task.add_done_callback(_PENDING_STOPS.discard)

    # ------------------------------------------------------------------
    # Per-frame path
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> Optional[PPGSignalData]:
        """Reduce *frame* to one sample and feed it in (see :meth:`push_sample`)."""
        if self._state is not SessionState.ACTIVE:
            return None
        return self.push_sample(green_channel_mean(frame))

    def push_sample(self, value: float) -> Optional[PPGSignalData]:
        """
        Append one brightness sample.

        Every ``calculation_interval``-th sample triggers a recomputation;
        the new :class:`PPGSignalData` is published and returned.  Other
        calls return *None*.  Ignored unless the session is ``ACTIVE``.
        """
        if self._state is not SessionState.ACTIVE:
            return None

        self._buffer.push(value)
        self._frame_count += 1
        if self._frame_count % self.config.calculation_interval != 0:
            return None

        data, self._tracking, confirmed = self.engine.update(
            self._tracking, self._buffer.snapshot()
        )
        self._signal_data = data
        for cb in list(self._signal_observers):
            cb(data)
        if confirmed is not None:
            logger.info("Confirmed heart rate: %d BPM (quality %d)", confirmed, data.signal_quality)
            for cb in list(self._bpm_observers):
                cb(confirmed)
        return data

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _frame_loop(
        session_ref: "weakref.ref[MeasurementSession]",
        frames: AsyncIterator[np.ndarray],
    ) -> None:
        # Holds the session weakly between frames so it can be collected.
        try:
            async for frame in frames:
                session = session_ref()
                if session is None or session._state is not SessionState.ACTIVE:
                    return
                session.process_frame(frame)
                del session
            session = session_ref()
            if session is not None and session._state is SessionState.ACTIVE:
                raise AcquisitionError(REASON_STREAM_ENDED)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            session = session_ref()
            if session is None:
                logger.warning("Camera stream failed after session was collected: %s", exc)
                return
            session._frame_task = None
            await session._release_device()
            if isinstance(exc, PPGError):
                session._fail(exc)
            else:
                session._fail(AcquisitionError(f"Camera stream failed: {exc}"), exc)

    def _reset_measurement(self) -> None:
        self._buffer.clear()
        self._tracking = TrackingState()
        self._frame_count = 0
        self._signal_data = PPGSignalData()

    async def _release_device(self) -> None:
        pending = self._flash_request
        if pending is not None and not pending.done():
            # Let a flash switch from start() land before switching it off.
            await asyncio.wait({pending})
        handle, self._handle = self._handle, None
        if handle is None:
            return
        if self._flash_on:
            self._flash_on = False
            try:
                await self.device.set_flash(handle, False)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not turn off flash: %s", exc)
        try:
            await self.device.release(handle)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not release camera: %s", exc)
        logger.info("Camera released.")

    def _set_state(self, state: SessionState) -> None:
        logger.info("Session %s → %s", self._state.value, state.value)
        self._state = state

    def _fail(self, error: PPGError, cause: Optional[BaseException] = None) -> None:
        if cause is not None:
            logger.error("%s (%s)", error, cause)
        else:
            logger.error("%s", error)
        self._error = str(error)
        self._set_state(SessionState.ERROR)
        for cb in list(self._error_observers):
            cb(self._error)
