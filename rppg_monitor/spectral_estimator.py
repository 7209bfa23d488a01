"""
Spectral heart-rate estimator.

Algorithm
---------
1. Take a full window of ``N`` red-channel samples (``N`` a power of two).
2. Remove the DC component by subtracting the window mean.
3. Compute the real FFT; keep bins ``1 … N/2 - 1`` (bin 0 is DC).
4. Among the bins whose frequency ``i · fs / N`` falls inside the
   physiological band (default 0.75 – 2.67 Hz = 45 – 160 BPM) pick the one
   with the largest magnitude.  Ties (equal to within FFT round-off) go to
   the lowest frequency.
5. ``bpm = round(f · 60)``.

The frequency resolution is ``fs / N``; with the defaults (20 Hz, 256
samples) that is about 0.078 Hz or 4.7 BPM, so readings are quantised to
multiples of roughly 4.7 BPM.

The estimator is a pure function of its input: it keeps no state and never
raises for bad data.  Anything it cannot work with yields
:class:`NoEstimate`.

References
----------
- Verkruysse W. et al., "Remote plethysmographic imaging using ambient light."
  Opt Express, 2008.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from scipy.fft import rfft

from .config import RppgConfig
from .ring_buffer import Sample

_TIE_RTOL = 1e-9


@dataclass(frozen=True)
class NoEstimate:
    """No heart rate could be derived from the window."""

    reason: str = ""


@dataclass(frozen=True)
class Estimate:
    """Heart rate read off the dominant in-band spectral peak."""

    bpm: int
    frequency_hz: float


SpectralResult = Union[NoEstimate, Estimate]


class SpectralEstimator:
    """
    FFT peak-picking BPM estimator.

    Parameters
    ----------
    config:
        Window size, nominal sampling rate and band limits.  Defaults to
        :class:`RppgConfig()`.

    Notes
    -----
    By default the frequency axis is built from the *nominal* rate
    ``1000 / sampling_interval_ms``.  Real samples arrive whenever face
    detection completes, so the true rate can drift from the nominal one and
    bias the estimate.  Setting ``config.resample`` interpolates the window
    onto a uniform grid spanning the recorded timestamps and uses the
    measured rate instead.
    """

    def __init__(self, config: Optional[RppgConfig] = None) -> None:
        self.config = config if config is not None else RppgConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def estimate(self, samples: Sequence[Union[Sample, float]]) -> SpectralResult:
        """
        Estimate the heart rate of a full window.

        Parameters
        ----------
        samples:
            Exactly ``config.buffer_size`` :class:`Sample` objects (or plain
            numbers), oldest first.  Typically a :meth:`RingBuffer.snapshot`.
        """
        if _safe_len(samples) != self.config.buffer_size:
            return NoEstimate("insufficient data")

        prepared = self._prepare(samples)
        if prepared is None:
            return NoEstimate("invalid samples")
        ac_signal, fs = prepared

        freqs, mags = self._magnitudes(ac_signal, fs)
        band = np.flatnonzero(
            (freqs >= self.config.min_freq_hz) & (freqs <= self.config.max_freq_hz)
        )
        if band.size == 0:
            return NoEstimate("empty band")

        # Magnitudes equal up to FFT round-off are a tie; the lowest bin wins
        band_mags = mags[band]
        tied = np.flatnonzero(band_mags >= band_mags.max() * (1.0 - _TIE_RTOL))
        best = band[int(tied[0])]
        peak = float(mags[best])
        if peak <= self.config.magnitude_floor:
            return NoEstimate("flat signal")
        if peak < self.config.min_peak_ratio * float(mags.max()):
            return NoEstimate("out-of-band energy dominates")

        freq = float(freqs[best])
        return Estimate(bpm=int(math.floor(freq * 60.0 + 0.5)), frequency_hz=freq)

    def spectrum(
        self, samples: Sequence[Union[Sample, float]]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the in-band spectrum as ``(frequencies in BPM, magnitudes)``.

        Intended for plotting.  Returns empty arrays when the window is not
        full or cannot be analysed.
        """
        empty = np.array([]), np.array([])
        if _safe_len(samples) != self.config.buffer_size:
            return empty
        prepared = self._prepare(samples)
        if prepared is None:
            return empty
        freqs, mags = self._magnitudes(*prepared)
        mask = (freqs >= self.config.min_freq_hz) & (freqs <= self.config.max_freq_hz)
        return freqs[mask] * 60.0, mags[mask]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _prepare(
        self, samples: Sequence[Union[Sample, float]]
    ) -> Optional[Tuple[np.ndarray, float]]:
        """Convert *samples* to a zero-mean float array and its sampling rate."""
        n = self.config.buffer_size
        timestamps = None
        try:
            if isinstance(samples[0], Sample):
                values = np.array([s.value for s in samples], dtype=np.float64)
                timestamps = np.array([s.timestamp for s in samples], dtype=np.float64)
            else:
                values = np.asarray(samples, dtype=np.float64)
        except (TypeError, ValueError, AttributeError):
            return None

        if values.shape != (n,) or not np.all(np.isfinite(values)):
            return None

        fs = self.config.sample_rate
        if self.config.resample and timestamps is not None:
            span = float(timestamps[-1] - timestamps[0])
            if not np.isfinite(span) or span <= 0.0:
                return None
            grid = np.linspace(timestamps[0], timestamps[-1], n)
            values = np.interp(grid, timestamps, values)
            fs = (n - 1) / span

        return values - values.mean(), fs

    @staticmethod
    def _magnitudes(ac_signal: np.ndarray, fs: float) -> Tuple[np.ndarray, np.ndarray]:
        """Frequencies and magnitudes of the usable bins ``1 … N/2 - 1``."""
        n = len(ac_signal)
        bins = np.arange(1, n // 2)
        spectrum = rfft(ac_signal)[1:n // 2]
        return bins * fs / n, np.abs(spectrum)


def _safe_len(samples) -> int:
    try:
        return len(samples)
    except TypeError:
        return -1
