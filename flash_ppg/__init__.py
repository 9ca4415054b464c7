"""
Flash PPG — camera-based pulse estimation.
Place a fingertip over the rear camera and flash; the system reads the
photoplethysmography (PPG) signal from the green channel and reports a
heart rate in BPM together with a quality/stability indicator.
"""

__version__ = "0.1.0"
__author__ = "flash_ppg"
