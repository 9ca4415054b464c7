"""Error taxonomy for device and session failures."""

from __future__ import annotations


class PPGError(RuntimeError):
    """Base class for measurement failures surfaced to the user."""


class UnsupportedDeviceError(PPGError):
    """The platform or device cannot do flash-lit PPG.  Never retried."""


class AcquisitionError(PPGError):
    """Camera permission denied, busy or absent.  Retryable by the user."""


class FlashControlError(PPGError):
    """Camera acquired but the flash could not be switched."""
