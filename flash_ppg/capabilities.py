"""
Capability probe for flash-lit PPG.

Decides, before any measurement starts, whether the device can plausibly
do it.  Policy, in order:

* platforms without programmatic flash control (iOS browsers) are unsupported;
* non-handheld devices (desktop / laptop webcams, no rear flash) are unsupported;
* otherwise open the rear camera just long enough to ask whether its video
  track exposes flash control, then release it;
* a camera that cannot be opened is unsupported, with a distinct reason.

The probe never raises; every failure is folded into
``CameraCapabilities.is_supported = False`` with a readable reason.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import sys
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .config import DEFAULT_CONFIG
from .host import DeviceControl

logger = logging.getLogger(__name__)

REASON_NO_FLASH_API = "iOS Safari does not support flash/torch control"
REASON_NOT_HANDHELD = "Desktop webcams do not have flash capability"
REASON_NO_TORCH = "Device camera does not support torch/flash"
REASON_NO_CAMERA = "Camera access denied or unavailable"


# ---------------------------------------------------------------------------
# Platform identification
# ---------------------------------------------------------------------------

class PlatformKind(Enum):
    ANDROID = auto()
    IOS     = auto()
    DESKTOP = auto()


@dataclass(frozen=True)
class PlatformInfo:
    kind:        PlatformKind
    description: str
    is_chrome:   bool = False

    @property
    def is_handheld(self) -> bool:
        return self.kind in (PlatformKind.ANDROID, PlatformKind.IOS)

    @property
    def has_flash_api(self) -> bool:
        return self.kind is not PlatformKind.IOS

    @property
    def label(self) -> str:
        """Description plus browser, as shown in probe logs."""
        return f"{self.description} / Chrome" if self.is_chrome else self.description

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "PlatformInfo":
        """Classify a browser user-agent string."""
        ua = user_agent.lower()
        is_chrome = bool(re.search(r"chrome", ua)) and not re.search(r"edge|edg", ua)
        if re.search(r"iphone|ipad|ipod", ua):
            return cls(PlatformKind.IOS, "iOS", is_chrome)
        if "android" in ua:
            return cls(PlatformKind.ANDROID, "Android", is_chrome)
        return cls(PlatformKind.DESKTOP, "Desktop", is_chrome)

    @classmethod
    def detect(cls) -> "PlatformInfo":
        """Describe the interpreter's own host."""
        if sys.platform == "ios":
            return cls(PlatformKind.IOS, f"iOS ({platform.machine()})")
        if sys.platform == "android" or "ANDROID_ROOT" in os.environ:
            return cls(PlatformKind.ANDROID, f"Android ({platform.machine()})")
        return cls(PlatformKind.DESKTOP, f"{platform.system()} ({platform.machine()})")


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CameraCapabilities:
    has_flash_control:     bool
    is_handheld_device:    bool
    is_supported_platform: bool
    is_supported:          bool
    unsupported_reason:    Optional[str] = None


class CapabilityProbe:
    """
    Parameters
    ----------
    device:
        Host camera/flash control used for the transient acquisition.
    platform_info:
        Platform descriptor; defaults to :meth:`PlatformInfo.detect`.
    facing_mode:
        Camera to probe (the rear one carries the flash).
    """

    def __init__(
        self,
        device: DeviceControl,
        platform_info: Optional[PlatformInfo] = None,
        facing_mode: str = DEFAULT_CONFIG.facing_mode,
    ) -> None:
        self.device = device
        self.platform_info = platform_info or PlatformInfo.detect()
        self.facing_mode = facing_mode

    async def probe(self) -> CameraCapabilities:
        info = self.platform_info
        handheld = info.is_handheld
        platform_ok = info.has_flash_api

        if not platform_ok:
            return self._report(False, handheld, platform_ok, REASON_NO_FLASH_API)
        if not handheld:
            return self._report(False, handheld, platform_ok, REASON_NOT_HANDHELD)

        try:
            handle = await self.device.acquire(self.facing_mode)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Probe acquisition failed: %s", exc)
            return self._report(False, handheld, platform_ok, REASON_NO_CAMERA)

        has_flash = False
        try:
            has_flash = bool(await self.device.has_flash(handle))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Flash capability query failed: %s", exc)
        finally:
            try:
                await self.device.release(handle)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not release probe camera: %s", exc)

        return self._report(
            has_flash, handheld, platform_ok, None if has_flash else REASON_NO_TORCH
        )

    def _report(
        self,
        has_flash: bool,
        handheld: bool,
        platform_ok: bool,
        reason: Optional[str],
    ) -> CameraCapabilities:
        caps = CameraCapabilities(
            has_flash_control=has_flash,
            is_handheld_device=handheld,
            is_supported_platform=platform_ok,
            is_supported=has_flash and handheld and platform_ok,
            unsupported_reason=reason,
        )
        if caps.is_supported:
            logger.info("PPG supported on %s", self.platform_info.label)
        else:
            logger.warning(
                "PPG unsupported on %s: %s", self.platform_info.label, reason
            )
        return caps
