"""
Tunable parameters for the rPPG pipeline.

The defaults reproduce the browser camera component this pipeline was
modelled on: a 256-sample window filled at 20 Hz (one sample every 50 ms),
face detection every 100 ms and a 45 – 160 BPM search band.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RppgConfig:
    """
    Immutable configuration shared by the estimator and the capture session.

    Parameters
    ----------
    buffer_size:
        Number of samples in the analysis window.  Must be a power of two.
    sampling_interval_ms:
        Minimum spacing between two accepted samples.  Also defines the
        nominal sampling rate the estimator assumes.
    detection_interval_ms:
        Period of the face-detection tick.
    min_freq_hz, max_freq_hz:
        Physiologically valid band searched for the pulse peak.
    min_peak_ratio:
        The in-band peak must reach this fraction of the strongest bin in
        the whole spectrum, otherwise the signal is considered dominated by
        out-of-band energy.  ``0`` disables the check.
    magnitude_floor:
        In-band peaks at or below this magnitude count as a flat signal.
    resample:
        Interpolate samples onto a uniform grid built from their real
        timestamps instead of trusting the nominal rate.
    """

    buffer_size: int = 256
    sampling_interval_ms: float = 50.0
    detection_interval_ms: float = 100.0
    min_freq_hz: float = 0.75
    max_freq_hz: float = 2.67
    min_peak_ratio: float = 0.1
    magnitude_floor: float = 1e-9
    resample: bool = False

    def __post_init__(self) -> None:
        n = self.buffer_size
        if n < 4 or n & (n - 1):
            raise ValueError(f"buffer_size must be a power of two >= 4, got {n}")
        if self.sampling_interval_ms <= 0:
            raise ValueError("sampling_interval_ms must be positive")
        if self.detection_interval_ms <= 0:
            raise ValueError("detection_interval_ms must be positive")
        if not 0 <= self.min_freq_hz < self.max_freq_hz:
            raise ValueError(
                f"invalid frequency band [{self.min_freq_hz}, {self.max_freq_hz}] Hz"
            )
        if not 0 <= self.min_peak_ratio <= 1:
            raise ValueError("min_peak_ratio must lie in [0, 1]")
        if self.magnitude_floor < 0:
            raise ValueError("magnitude_floor must not be negative")

    @property
    def sample_rate(self) -> float:
        """Nominal sampling rate in Hz."""
        return 1000.0 / self.sampling_interval_ms

    @property
    def bin_width_hz(self) -> float:
        """Frequency resolution of one FFT bin."""
        return self.sample_rate / self.buffer_size
