"""
Preview overlay.

Draws the following onto a camera frame:
  • the sampled region of interest (centre half of the frame);
  • BPM readout coloured by signal quality, with a stability marker;
  • signal-quality bar and label;
  • buffer fill bar;
  • a waveform strip of the band-filtered signal;
  • optional frame-rate counter.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import cv2
import numpy as np

from .bpm_engine import PPGSignalData, ReadingStatus, quality_label


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CYAN   = (220, 200,  0)
_DARK   = (30, 30, 30)

_QUALITY_COLOURS = {"excellent": _GREEN, "good": _YELLOW, "weak": _RED}

_STATUS_TEXT = {
    ReadingStatus.INSUFFICIENT: "Hold still...",
    ReadingStatus.LOW_QUALITY:  "Cover lens and flash with your fingertip",
    ReadingStatus.OUT_OF_RANGE: "Searching for pulse...",
}


class Overlay:
    """
    Annotates BGR frames with the current :class:`PPGSignalData`.

    Parameters
    ----------
    waveform_height:
        Pixel height of the waveform panel at the bottom of the frame.
    show_fps:
        Whether to overlay the measured frame rate in the top-right corner.
    """

    def __init__(self, waveform_height: int = 80, show_fps: bool = True) -> None:
        self.waveform_height = waveform_height
        self.show_fps = show_fps
        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0

    @staticmethod
    def roi(shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
        """Return (x, y, w, h) of the sampled region for a frame *shape*."""
        h, w = shape[:2]
        rw, rh = max(1, w // 2), max(1, h // 2)
        return (w - rw) // 2, (h - rh) // 2, rw, rh

    def draw(
        self,
        frame: np.ndarray,
        data: PPGSignalData,
        buffer_fill: float = 0.0,
    ) -> np.ndarray:
        """Annotate *frame* in-place and return it."""
        self._update_fps()
        h, w = frame.shape[:2]

        x, y, rw, rh = self.roi(frame.shape)
        colour = _GREEN if data.status is not ReadingStatus.LOW_QUALITY else _YELLOW
        cv2.rectangle(frame, (x, y), (x + rw, y + rh), colour, 2)

        self._draw_bpm(frame, data)
        self._draw_quality(frame, data.signal_quality)
        self._draw_fill_bar(frame, buffer_fill)

        if len(data.filtered_signal) > 1:
            self._draw_waveform(frame, data.filtered_signal)

        if self.show_fps:
            cv2.putText(
                frame, f"FPS {self._fps_display:.1f}",
                (w - 100, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )
        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_bpm(self, frame: np.ndarray, data: PPGSignalData) -> None:
        if data.bpm is None:
            status = _STATUS_TEXT.get(data.status, "Measuring...")
            cv2.putText(
                frame, status,
                (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 0.6, _YELLOW, 2, cv2.LINE_AA,
            )
            return

        col = _QUALITY_COLOURS[quality_label(data.signal_quality)]
        text = f"{data.bpm} BPM"
        cv2.putText(frame, text, (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, _BLACK, 5, cv2.LINE_AA)
        cv2.putText(frame, text, (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, col, 3, cv2.LINE_AA)
        if data.is_stable:
            cv2.putText(
                frame, "stable",
                (16, 110), cv2.FONT_HERSHEY_SIMPLEX, 0.6, _GREEN, 2, cv2.LINE_AA,
            )

    def _draw_quality(self, frame: np.ndarray, quality: int) -> None:
        label = quality_label(quality)
        col = _QUALITY_COLOURS[label]
        bar_w = int(120 * min(max(quality, 0), 100) / 100)
        cv2.rectangle(frame, (16, 60), (136, 72), _DARK, -1)
        cv2.rectangle(frame, (16, 60), (16 + bar_w, 72), col, -1)
        cv2.putText(
            frame, f"signal {label} ({quality}%)",
            (16, 86), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_fill_bar(self, frame: np.ndarray, fill: float) -> None:
        h, w = frame.shape[:2]
        bar_w = int((w - 32) * min(max(fill, 0.0), 1.0))
        y0, y1 = h - self.waveform_height - 12, h - self.waveform_height - 4
        cv2.rectangle(frame, (16, y0), (w - 16, y1), _DARK, -1)
        cv2.rectangle(frame, (16, y0), (16 + bar_w, y1), _CYAN, -1)
        cv2.putText(
            frame, "buffer",
            (16, y0 - 2), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _CYAN, 1, cv2.LINE_AA,
        )

    def _draw_waveform(self, frame: np.ndarray, signal: Sequence[float]) -> None:
        """Draw the waveform in a dark strip at the bottom of the frame."""
        h, w = frame.shape[:2]
        panel_top = h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (w, h), _DARK, -1)

        sig = np.asarray(signal, dtype=np.float64)
        mn, mx = sig.min(), sig.max()
        rng = mx - mn if mx != mn else 1.0
        norm = (sig - mn) / rng

        margin = 6
        plot_h = self.waveform_height - 2 * margin
        xs = np.linspace(0, w - 1, len(norm)).astype(np.int32)
        ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(np.int32)

        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)
        cv2.putText(
            frame, "PPG",
            (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _update_fps(self) -> None:
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
