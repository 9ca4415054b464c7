"""
Unit tests for the capability probe.
Run with:  pytest tests/test_capabilities.py
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from flash_ppg.capabilities import (
    REASON_NO_CAMERA,
    REASON_NO_FLASH_API,
    REASON_NOT_HANDHELD,
    REASON_NO_TORCH,
    CameraCapabilities,
    CapabilityProbe,
    PlatformInfo,
    PlatformKind,
)
from flash_ppg.errors import AcquisitionError
from flash_ppg.host import DeviceHandle

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_CHROME_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
DESKTOP_EDGE_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
)

HANDLE = DeviceHandle(facing_mode="environment", backend="mock")


def make_device(has_flash: bool = True) -> AsyncMock:
    device = AsyncMock()
    device.acquire.return_value = HANDLE
    device.has_flash.return_value = has_flash
    return device


# ---------------------------------------------------------------------------
# PlatformInfo tests
# ---------------------------------------------------------------------------

class TestPlatformInfo:

    def test_iphone(self):
        info = PlatformInfo.from_user_agent(IPHONE_UA)
        assert info.kind is PlatformKind.IOS
        assert info.is_handheld
        assert not info.has_flash_api

    def test_android_chrome(self):
        info = PlatformInfo.from_user_agent(ANDROID_CHROME_UA)
        assert info.kind is PlatformKind.ANDROID
        assert info.is_handheld
        assert info.has_flash_api
        assert info.is_chrome
        assert info.label == "Android / Chrome"

    def test_desktop_edge_is_not_chrome(self):
        info = PlatformInfo.from_user_agent(DESKTOP_EDGE_UA)
        assert info.kind is PlatformKind.DESKTOP
        assert not info.is_handheld
        assert not info.is_chrome
        assert info.label == "Desktop"

    def test_detect_returns_description(self):
        info = PlatformInfo.detect()
        assert isinstance(info.kind, PlatformKind)
        assert len(info.description) > 0


# ---------------------------------------------------------------------------
# CapabilityProbe tests
# ---------------------------------------------------------------------------

class TestCapabilityProbe:

    @pytest.mark.asyncio
    async def test_ios_unsupported_without_touching_camera(self):
        device = make_device()
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(IPHONE_UA)).probe()
        assert caps.is_supported is False
        assert caps.is_supported_platform is False
        assert caps.unsupported_reason == REASON_NO_FLASH_API
        device.acquire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_desktop_unsupported(self):
        device = make_device()
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(DESKTOP_EDGE_UA)).probe()
        assert caps.is_supported is False
        assert caps.is_handheld_device is False
        assert caps.unsupported_reason == REASON_NOT_HANDHELD
        device.acquire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_android_with_torch_supported(self):
        device = make_device(has_flash=True)
        probe = CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA))
        caps = await probe.probe()
        assert caps == CameraCapabilities(
            has_flash_control=True,
            is_handheld_device=True,
            is_supported_platform=True,
            is_supported=True,
            unsupported_reason=None,
        )
        device.acquire.assert_awaited_once_with("environment")
        device.release.assert_awaited_once_with(HANDLE)

    @pytest.mark.asyncio
    async def test_android_without_torch(self):
        device = make_device(has_flash=False)
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA)).probe()
        assert caps.is_supported is False
        assert caps.has_flash_control is False
        assert caps.unsupported_reason == REASON_NO_TORCH
        device.release.assert_awaited_once_with(HANDLE)

    @pytest.mark.asyncio
    async def test_acquisition_failure_has_distinct_reason(self):
        device = make_device()
        device.acquire.side_effect = AcquisitionError("permission denied")
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA)).probe()
        assert caps.is_supported is False
        assert caps.unsupported_reason == REASON_NO_CAMERA
        device.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_failure_still_releases(self):
        device = make_device()
        device.has_flash.side_effect = RuntimeError("track gone")
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA)).probe()
        assert caps.is_supported is False
        assert caps.unsupported_reason == REASON_NO_TORCH
        device.release.assert_awaited_once_with(HANDLE)

    @pytest.mark.asyncio
    async def test_release_failure_does_not_raise(self):
        device = make_device()
        device.release.side_effect = RuntimeError("already closed")
        caps = await CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA)).probe()
        assert caps.is_supported is True

    @pytest.mark.asyncio
    async def test_probe_is_repeatable(self):
        device = make_device()
        probe = CapabilityProbe(device, PlatformInfo.from_user_agent(ANDROID_CHROME_UA))
        first = await probe.probe()
        second = await probe.probe()
        assert first == second
        assert device.release.await_count == 2
