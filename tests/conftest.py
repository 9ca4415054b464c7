"""Shared pytest fixtures for the flash_ppg test suite."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root (main.py) is importable
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def sine_wave(n: int, freq_hz: float, fs: float = 30.0,
              amplitude: float = 5.0, offset: float = 100.0) -> np.ndarray:
    """Synthetic brightness trace: ``offset + amplitude · sin(2π f t)``."""
    t = np.arange(n) / fs
    return offset + amplitude * np.sin(2 * np.pi * freq_hz * t)


@pytest.fixture
def pulse_75bpm() -> np.ndarray:
    """Ten seconds of a 75 BPM (1.25 Hz) pulse sampled at 30 Hz."""
    return sine_wave(300, 1.25)
