#!/usr/bin/env python3
"""
Flash PPG – command-line entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --demo               Use the simulated fingertip camera
    --demo-bpm FLOAT     Heart rate of the simulated camera (default: 72)
    --resolution WxH     Camera resolution (default: 640x480)
    --fps INT            Target frame rate  (default: 30)
    --window FLOAT       Analysis window in seconds (default: 10)
    --camera-index INT   OpenCV camera index (default: 0)
    --external-light     Treat the light source as host-managed flash
    --user-agent STR     Classify the platform from a browser user-agent
    --duration FLOAT     Stop after this many seconds (default: run until quit)
    --headless           Run without display window (log readings to stdout)
    --verbose            Debug logging

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
import time
from typing import AsyncIterator, Optional

import cv2
import numpy as np

from flash_ppg.bpm_engine import PPGSignalData, quality_label
from flash_ppg.camera import OpenCVCamera
from flash_ppg.capabilities import PlatformInfo, PlatformKind
from flash_ppg.config import DEFAULT_CONFIG, PPGConfig
from flash_ppg.host import DeviceHandle, FrameSource
from flash_ppg.overlay import Overlay
from flash_ppg.session import MeasurementSession, SessionState
from flash_ppg.synthetic import SyntheticCamera

logger = logging.getLogger("flash_ppg")

WINDOW_NAME = "Flash PPG"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip heart-rate measurement with camera and flash (PPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--demo", action="store_true",
                        help="Use the simulated fingertip camera")
    parser.add_argument("--demo-bpm", type=float, default=72.0,
                        help="Heart rate of the simulated camera")
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--window", type=float, default=10.0,
                        help="Analysis window in seconds")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--external-light", action="store_true",
                        help="Treat an external light as the flash")
    parser.add_argument("--user-agent", default=None,
                        help="Classify the platform from this user-agent string")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log readings to stdout only")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args(argv)
    if args.fps * args.window < DEFAULT_CONFIG.stabilization_window:
        parser.error(
            f"--fps x --window must hold at least {DEFAULT_CONFIG.stabilization_window} "
            "samples before a heart rate can be computed"
        )
    return args


def build_config(args: argparse.Namespace, resolution: tuple[int, int]) -> PPGConfig:
    return dataclasses.replace(
        DEFAULT_CONFIG,
        sample_rate=float(args.fps),
        buffer_size=max(1, int(args.fps * args.window)),
        video_width=resolution[0],
        video_height=resolution[1],
    )


def build_platform(args: argparse.Namespace) -> PlatformInfo:
    if args.user_agent:
        return PlatformInfo.from_user_agent(args.user_agent)
    if args.demo:
        return PlatformInfo(PlatformKind.ANDROID, "Synthetic handheld")
    return PlatformInfo.detect()


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

class PreviewSource:
    """
    Frame source wrapper that shows each frame after the session sampled it.

    The wrapped generator resumes only once the consumer has processed the
    yielded frame, so the overlay always reflects the latest reading.
    """

    def __init__(self, source: FrameSource, overlay: Overlay) -> None:
        self.source = source
        self.overlay = overlay
        self.session: Optional[MeasurementSession] = None
        self.quit_requested = False

    async def frames(self, handle: DeviceHandle) -> AsyncIterator[np.ndarray]:
        async for frame in self.source.frames(handle):
            yield frame
            if self.session is None:
                continue
            annotated = self.overlay.draw(
                frame.copy(), self.session.signal_data, self.session.buffer_fill_ratio
            )
            cv2.imshow(WINDOW_NAME, annotated)
            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), 27):          # q or ESC
                logger.info("Quit requested by user.")
                self.quit_requested = True


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

async def measure(args: argparse.Namespace) -> int:
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    config = build_config(args, (res_w, res_h))

    if args.demo:
        camera = SyntheticCamera(
            bpm=args.demo_bpm, fps=args.fps, frame_shape=(res_h, res_w), realtime=True
        )
    else:
        torch = (lambda on: logger.info("External light %s.", "on" if on else "off")) \
            if args.external_light else None
        camera = OpenCVCamera(
            resolution=(res_w, res_h), fps=args.fps,
            camera_index=args.camera_index, torch=torch,
        )

    preview: Optional[PreviewSource] = None
    frame_source: FrameSource = camera
    if not args.headless:
        preview = PreviewSource(camera, Overlay())
        frame_source = preview

    def on_signal(data: PPGSignalData) -> None:
        if not args.headless:
            return
        ts = time.strftime("%H:%M:%S")
        if data.bpm is not None:
            print(f"[{ts}] BPM={data.bpm}  quality={data.signal_quality} "
                  f"({quality_label(data.signal_quality)})  stable={data.is_stable}")
        else:
            print(f"[{ts}] Waiting for signal…  status={data.status.value}")

    def on_bpm_detected(bpm: int) -> None:
        print(f"Heart rate confirmed: {bpm} BPM")

    session = MeasurementSession(
        camera, frame_source, config=config, platform_info=build_platform(args),
        on_signal=on_signal, on_bpm_detected=on_bpm_detected,
    )
    if preview is not None:
        preview.session = session
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, res_w, res_h)

    logger.info("Starting measurement.  Place your fingertip over camera and flash.")
    started = time.monotonic()
    try:
        await session.start()
        while session.state is SessionState.ACTIVE:
            if preview is not None and preview.quit_requested:
                break
            if args.duration is not None and time.monotonic() - started >= args.duration:
                break
            await asyncio.sleep(0.1)
        error = session.error
    finally:
        await session.stop()
        if preview is not None:
            cv2.destroyAllWindows()

    if error:
        print(f"Measurement failed: {error}", file=sys.stderr)
        return 1
    return 0


def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        return asyncio.run(measure(args))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
