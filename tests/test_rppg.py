"""
Unit tests for RingBuffer, the forehead ROI sampler, SpectralEstimator and
RppgConfig.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor.config import RppgConfig
from rppg_monitor.ring_buffer import RingBuffer, Sample
from rppg_monitor.roi_sampler import BoundingBox, clamp_region, sample_forehead
from rppg_monitor.spectral_estimator import Estimate, NoEstimate, SpectralEstimator


FS = 20.0
N = 256


def _samples(values, fs: float = FS) -> tuple:
    return tuple(Sample(value=float(v), timestamp=i / fs) for i, v in enumerate(values))


def _tone(freq_hz: float, fs: float = FS, n: int = N, amplitude: float = 5.0,
          offset: float = 100.0) -> np.ndarray:
    t = np.arange(n) / fs
    return offset + amplitude * np.sin(2 * np.pi * freq_hz * t)


def _bin_tone(bin_index: int, n: int = N) -> np.ndarray:
    """Cosine landing exactly on one FFT bin (no leakage)."""
    return 100 + 5 * np.cos(2 * np.pi * bin_index * np.arange(n) / n)


# ---------------------------------------------------------------------------
# RingBuffer tests
# ---------------------------------------------------------------------------

class TestRingBuffer:

    def test_keeps_last_n_in_push_order(self):
        buf = RingBuffer(capacity=8)
        pushed = [Sample(float(i), i * 0.05) for i in range(8 + 5)]
        for s in pushed:
            buf.push(s)
        assert len(buf) == 8
        assert buf.snapshot() == tuple(pushed[-8:])

    def test_is_full_only_at_capacity(self):
        buf = RingBuffer(capacity=4)
        for i in range(3):
            buf.push(Sample(float(i), float(i)))
            assert not buf.is_full()
        buf.push(Sample(3.0, 3.0))
        assert buf.is_full()
        buf.push(Sample(4.0, 4.0))
        assert buf.is_full()
        assert len(buf) == 4

    def test_snapshot_is_detached_copy(self):
        buf = RingBuffer(capacity=4)
        buf.push(Sample(1.0, 0.0))
        snap = buf.snapshot()
        buf.push(Sample(2.0, 0.1))
        assert snap == (Sample(1.0, 0.0),)
        assert len(buf) == 2

    def test_reset_clears(self):
        buf = RingBuffer(capacity=4)
        for i in range(4):
            buf.push(Sample(float(i), float(i)))
        buf.reset()
        assert len(buf) == 0
        assert buf.snapshot() == ()
        assert buf.fill_ratio == 0.0

    def test_values_and_fill_ratio(self):
        buf = RingBuffer(capacity=4)
        buf.push(Sample(1.5, 0.0))
        buf.push(Sample(2.5, 0.05))
        np.testing.assert_array_equal(buf.values(), [1.5, 2.5])
        assert buf.values().dtype == np.float64
        assert buf.fill_ratio == pytest.approx(0.5)

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            RingBuffer(capacity=0)


# ---------------------------------------------------------------------------
# ROI sampler tests
# ---------------------------------------------------------------------------

class TestRoiSampler:

    def test_forehead_geometry(self):
        fh = BoundingBox(10, 20, 100, 200).forehead()
        assert (fh.x, fh.y, fh.width, fh.height) == pytest.approx((40, 40, 40, 40))

    def test_mean_of_red_channel_over_forehead(self):
        frame = np.zeros((100, 100, 4), dtype=np.uint8)     # RGBA
        frame[10:30, 30:70, 0] = 200                         # forehead, red
        frame[:, :, 1] = 255                                  # green must be ignored
        value = sample_forehead(frame, BoundingBox(0, 0, 100, 100))
        assert value == pytest.approx(200.0)
        assert isinstance(value, float)

    def test_bgr_red_channel(self):
        frame = np.zeros((50, 50, 3), dtype=np.uint8)
        frame[:, :, 2] = 90
        frame[:, :, 0] = 10
        assert sample_forehead(frame, BoundingBox(0, 0, 50, 50), red_channel=2) == pytest.approx(90.0)

    def test_region_partially_outside_is_clamped(self):
        frame = np.zeros((100, 100, 3), dtype=np.float64)
        frame[:, 80:, 0] = 50.0
        frame[:, :80, 0] = 255.0
        # Forehead spans x 80..120 – only the in-frame 80..100 part is read
        face = BoundingBox(50, 0, 100, 100)
        assert clamp_region(face.forehead(), frame.shape) == (80, 10, 100, 30)
        assert sample_forehead(frame, face) == pytest.approx(50.0)

    def test_negative_coordinates_are_clamped(self):
        frame = np.full((60, 60, 3), 7, dtype=np.uint8)
        face = BoundingBox(-60, -20, 100, 100)
        assert sample_forehead(frame, face) == pytest.approx(7.0)

    def test_fractional_edges_truncate(self):
        assert clamp_region(BoundingBox(10.7, 5.5, 4.6, 3.9), (100, 100, 3)) == (10, 5, 15, 9)
        # Half-pixel edges floor instead of rounding to even
        assert clamp_region(BoundingBox(3.5, 3.5, 2.0, 2.0), (10, 10, 3)) == (3, 3, 5, 5)
        assert clamp_region(BoundingBox(4.5, 4.5, 2.0, 2.0), (10, 10, 3)) == (4, 4, 6, 6)

    def test_region_fully_outside_gives_no_sample(self):
        frame = np.full((100, 100, 3), 128, dtype=np.uint8)
        assert sample_forehead(frame, BoundingBox(90, 0, 100, 100)) is None
        assert sample_forehead(frame, BoundingBox(0, 500, 100, 100)) is None

    def test_zero_area_box_gives_no_sample(self):
        frame = np.full((100, 100, 3), 128, dtype=np.uint8)
        assert sample_forehead(frame, BoundingBox(10, 10, 0, 50)) is None
        assert sample_forehead(frame, BoundingBox(10, 10, 50, 0)) is None

    def test_grayscale_frame_gives_no_sample(self):
        frame = np.full((100, 100), 128, dtype=np.uint8)
        assert sample_forehead(frame, BoundingBox(0, 0, 100, 100)) is None


# ---------------------------------------------------------------------------
# SpectralEstimator tests
# ---------------------------------------------------------------------------

class TestSpectralEstimator:

    def test_recovers_72_bpm_with_noise(self):
        rng = np.random.default_rng(42)
        signal = _tone(1.2) + rng.normal(0.0, 0.5, N)
        result = SpectralEstimator().estimate(_samples(signal))
        assert isinstance(result, Estimate)
        assert abs(result.bpm - 72) <= 5, f"Expected ~72 BPM, got {result.bpm}"

    def test_underrun_returns_no_estimate(self):
        est = SpectralEstimator()
        for length in (0, 1, N // 2, N - 1):
            assert isinstance(est.estimate(_samples(_tone(1.2)[:length])), NoEstimate)

    def test_oversized_window_returns_no_estimate(self):
        signal = np.concatenate([_tone(1.2), [100.0]])
        assert isinstance(SpectralEstimator().estimate(_samples(signal)), NoEstimate)

    def test_breathing_rate_sinusoid_rejected(self):
        result = SpectralEstimator().estimate(_samples(_tone(0.3)))
        assert isinstance(result, NoEstimate)

    def test_unguarded_peak_search_follows_leakage(self):
        # With the dominance check disabled the in-band leakage of a 0.3 Hz
        # tone is picked up, as the plain peak search would do.
        est = SpectralEstimator(RppgConfig(min_peak_ratio=0.0))
        assert isinstance(est.estimate(_samples(_tone(0.3))), Estimate)

    def test_flat_signal_returns_no_estimate(self):
        est = SpectralEstimator()
        assert isinstance(est.estimate(_samples(np.full(N, 0.1))), NoEstimate)
        assert isinstance(est.estimate(_samples(np.zeros(N))), NoEstimate)

    def test_deterministic(self):
        rng = np.random.default_rng(7)
        snapshot = _samples(_tone(1.5) + rng.normal(0.0, 1.0, N))
        est = SpectralEstimator()
        assert est.estimate(snapshot) == est.estimate(snapshot)

    def test_accepts_plain_values(self):
        result = SpectralEstimator().estimate(list(_bin_tone(16)))
        assert result == Estimate(bpm=75, frequency_hz=1.25)

    def test_band_edges(self):
        est = SpectralEstimator()
        # Bin 10 = 0.78125 Hz is the lowest in-band bin, bin 9 is below 0.75 Hz
        assert est.estimate(_samples(_bin_tone(10))).bpm == 47
        assert isinstance(est.estimate(_samples(_bin_tone(9))), NoEstimate)
        # Bin 34 = 2.656 Hz is the highest in-band bin, bin 35 is above 2.67 Hz
        assert est.estimate(_samples(_bin_tone(34))).bpm == 159
        assert isinstance(est.estimate(_samples(_bin_tone(35))), NoEstimate)

    def test_bpm_rounds_half_up(self):
        # Bin 24 = 1.875 Hz = 112.5 BPM
        assert SpectralEstimator().estimate(_samples(_bin_tone(24))).bpm == 113

    def test_equal_magnitudes_pick_lowest_frequency(self):
        # Two equal-amplitude cosines on exact bins 15 and 20
        signal = _bin_tone(15) + _bin_tone(20) - 100
        result = SpectralEstimator().estimate(_samples(signal))
        assert isinstance(result, Estimate)
        assert result.frequency_hz == pytest.approx(15 * FS / N)
        assert result.bpm == 70

    def test_equal_magnitudes_ignore_phase(self):
        n = np.arange(N)
        signal = (np.sin(2 * np.pi * 20 * n / N) + np.cos(2 * np.pi * 15 * n / N)) * 3
        result = SpectralEstimator().estimate(_samples(signal))
        assert result.frequency_hz == pytest.approx(15 * FS / N)

    def test_invalid_values_return_no_estimate(self):
        est = SpectralEstimator()
        with_nan = _tone(1.2)
        with_nan[10] = np.nan
        assert isinstance(est.estimate(_samples(with_nan)), NoEstimate)
        assert isinstance(est.estimate(["x"] * N), NoEstimate)
        assert isinstance(est.estimate(None), NoEstimate)

    def test_nominal_rate_is_assumed_by_default(self):
        # Samples really arrive at 25 Hz, the estimator believes 20 Hz
        snapshot = _samples(_tone(1.2, fs=25.0), fs=25.0)
        result = SpectralEstimator().estimate(snapshot)
        assert isinstance(result, Estimate)
        assert abs(result.bpm - 72) > 10

    def test_resampling_uses_measured_rate(self):
        snapshot = _samples(_tone(1.2, fs=25.0), fs=25.0)
        result = SpectralEstimator(RppgConfig(resample=True)).estimate(snapshot)
        assert isinstance(result, Estimate)
        assert abs(result.bpm - 72) <= 5

    def test_resampling_with_zero_time_span(self):
        snapshot = tuple(Sample(float(v), 1.0) for v in _tone(1.2))
        result = SpectralEstimator(RppgConfig(resample=True)).estimate(snapshot)
        assert isinstance(result, NoEstimate)

    def test_spectrum_covers_band(self):
        est = SpectralEstimator()
        freqs_bpm, mags = est.spectrum(_samples(_tone(1.2)))
        assert len(freqs_bpm) == len(mags) == 25      # bins 10 … 34
        assert freqs_bpm.min() >= 45.0
        assert freqs_bpm.max() <= 160.2
        assert freqs_bpm[np.argmax(mags)] == pytest.approx(15 * FS / N * 60)

    def test_spectrum_empty_on_underrun(self):
        freqs_bpm, mags = SpectralEstimator().spectrum(_samples(_tone(1.2)[:10]))
        assert freqs_bpm.size == 0 and mags.size == 0


# ---------------------------------------------------------------------------
# RppgConfig tests
# ---------------------------------------------------------------------------

class TestRppgConfig:

    def test_defaults(self):
        cfg = RppgConfig()
        assert cfg.buffer_size == 256
        assert cfg.sample_rate == pytest.approx(20.0)
        assert cfg.bin_width_hz == pytest.approx(0.078125)

    @pytest.mark.parametrize("size", [0, 2, 100, 255, 257])
    def test_buffer_size_must_be_power_of_two(self, size):
        with pytest.raises(ValueError):
            RppgConfig(buffer_size=size)

    def test_rejects_bad_intervals_and_band(self):
        with pytest.raises(ValueError):
            RppgConfig(sampling_interval_ms=0)
        with pytest.raises(ValueError):
            RppgConfig(detection_interval_ms=-1)
        with pytest.raises(ValueError):
            RppgConfig(min_freq_hz=3.0, max_freq_hz=1.0)
        with pytest.raises(ValueError):
            RppgConfig(min_peak_ratio=1.5)
