"""
rPPG Monitor — contactless heart-rate estimation from a webcam.
A face detector locates the forehead; the mean red-channel intensity of that
region is sampled over time and the dominant spectral peak gives the BPM.
"""

__version__ = "0.1.0"
__author__ = "rppg_monitor"
