"""
Capture session: the tick loop that feeds the estimator.

Every ``detection_interval_ms`` the session grabs the current frame, asks the
face detector where the face is and, at most once per
``sampling_interval_ms``, samples the forehead into the ring buffer.  Each
time the buffer is full the spectral estimator runs on a snapshot and the
result is handed to the ``on_result`` callback.

Face detection can be slower than the tick period.  At most one detection is
ever in flight; ticks that fire while one is pending are skipped.  ``stop()``
cancels the pending detection and bumps a generation counter so that a result
arriving late can never reach the buffer of a later session.  A plain
(non-async) detector runs in a worker thread that cannot be interrupted, so
the session stays busy until that call returns, even across a restart.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
from typing import Callable, Optional

import numpy as np

from .config import RppgConfig
from .face_detector import Detection, FaceDetector
from .ring_buffer import RingBuffer, Sample
from .roi_sampler import BoundingBox, sample_forehead
from .spectral_estimator import SpectralEstimator, SpectralResult

logger = logging.getLogger(__name__)

FrameSource = Callable[[], Optional[np.ndarray]]


class SessionState(enum.Enum):
    IDLE = "idle"
    SAMPLING = "sampling"


class SignalStatus(enum.Enum):
    IDLE = "idle"
    NO_FACE = "no face detected"
    FACE_DETECTED = "face detected"


class TickOutcome(enum.Enum):
    """What a single tick ended up doing."""

    IDLE = "idle"              # session not running
    BUSY = "busy"              # previous detection still in flight
    NO_FRAME = "no frame"      # frame source had nothing
    NO_FACE = "no face"
    THROTTLED = "throttled"    # face found, sampling interval not yet elapsed
    NO_SAMPLE = "no sample"    # forehead clamped to zero area
    SAMPLED = "sampled"        # sample pushed, window not full yet
    ESTIMATED = "estimated"    # sample pushed and estimator run
    STALE = "stale"            # session stopped while detecting


class CaptureSession:
    """
    Owns the ring buffer and the periodic trigger for one camera.

    Parameters
    ----------
    frame_source:
        Callable returning the current frame (H × W × C array) or *None*.
    detector:
        Object with a ``detect(frame) -> Detection`` method.  Coroutine
        methods are awaited; plain methods run in the default executor.
    config:
        Tunables shared with the estimator.
    estimator:
        Defaults to ``SpectralEstimator(config)``.
    red_channel:
        Red channel index in the frames (2 for OpenCV BGR).
    on_sample:
        Called with the current window (float array) after each push.
    on_result:
        Called with the :class:`SpectralResult` each time the window is full.
    on_status:
        Called with the :class:`SignalStatus` on every completed detection.
    clock:
        Monotonic time source in seconds.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        detector: FaceDetector,
        config: Optional[RppgConfig] = None,
        estimator: Optional[SpectralEstimator] = None,
        red_channel: int = 0,
        on_sample: Optional[Callable[[np.ndarray], None]] = None,
        on_result: Optional[Callable[[SpectralResult], None]] = None,
        on_status: Optional[Callable[[SignalStatus], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else RppgConfig()
        self.estimator = estimator if estimator is not None else SpectralEstimator(self.config)
        self.red_channel = red_channel

        self._frame_source = frame_source
        self._detector = detector
        self._on_sample = on_sample
        self._on_result = on_result
        self._on_status = on_status
        self._clock = clock

        self._buffer = RingBuffer(self.config.buffer_size)
        self._state = SessionState.IDLE
        self._status = SignalStatus.IDLE
        self._last_result: Optional[SpectralResult] = None
        self._last_sample_time: Optional[float] = None
        self._last_face: Optional[BoundingBox] = None

        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._detector_future: Optional[asyncio.Future] = None
        self.skipped_ticks = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin sampling.  Must be called from inside a running event loop."""
        if self._state is SessionState.SAMPLING:
            return
        loop = asyncio.get_running_loop()
        self._generation += 1
        self._buffer.reset()
        self._last_sample_time = None
        self._last_result = None
        self.skipped_ticks = 0
        self._state = SessionState.SAMPLING
        self._timer = loop.create_task(self._run_timer())
        logger.info(
            "Capture session started – window=%d fs=%.1f Hz tick=%.0f ms",
            self.config.buffer_size, self.config.sample_rate,
            self.config.detection_interval_ms,
        )

    def stop(self) -> None:
        """Stop sampling immediately and discard the window."""
        if self._state is SessionState.IDLE:
            return
        self._generation += 1
        self._state = SessionState.IDLE
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._in_flight is not None:
            self._in_flight.cancel()
            self._in_flight = None
        self._buffer.reset()
        self._last_sample_time = None
        self._last_result = None
        self._status = SignalStatus.IDLE
        self._last_face = None
        logger.info("Capture session stopped.")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SignalStatus:
        return self._status

    @property
    def last_result(self) -> Optional[SpectralResult]:
        return self._last_result

    @property
    def last_face(self) -> Optional[BoundingBox]:
        """Face box from the most recent detection, or *None*."""
        return self._last_face

    @property
    def window(self) -> np.ndarray:
        """Copy of the current sample values, oldest first."""
        return self._buffer.values()

    @property
    def buffer_fill_ratio(self) -> float:
        return self._buffer.fill_ratio

    @property
    def detection_in_flight(self) -> bool:
        return self._in_flight is not None or self._detector_future is not None

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    async def tick(self) -> TickOutcome:
        """
        Run one tick and wait for it to finish.

        The periodic trigger uses the same path without waiting; calling this
        directly is mostly useful for tests and custom drivers.
        """
        if self._state is SessionState.IDLE:
            return TickOutcome.IDLE
        if self.detection_in_flight:
            self.skipped_ticks += 1
            return TickOutcome.BUSY

        generation = self._generation
        task = self._launch(generation)
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                return TickOutcome.STALE
            raise

    async def _run_timer(self) -> None:
        interval = self.config.detection_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            if self.detection_in_flight:
                self.skipped_ticks += 1
                logger.debug("Detection still in flight – tick skipped.")
                continue
            self._launch(self._generation).add_done_callback(self._report_failure)

    def _launch(self, generation: int) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._process(generation))
        self._in_flight = task
        return task

    @staticmethod
    def _report_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Tick failed", exc_info=task.exception())

    async def _process(self, generation: int) -> TickOutcome:
        try:
            return await self._process_tick(generation)
        finally:
            if generation == self._generation:
                self._in_flight = None

    async def _process_tick(self, generation: int) -> TickOutcome:
        frame = self._frame_source()
        if frame is None:
            return TickOutcome.NO_FRAME

        detection = await self._detect(frame)
        if generation != self._generation:
            logger.debug("Discarding detection from a stopped session.")
            return TickOutcome.STALE

        self._last_face = detection.box if detection.face_present else None
        if not detection.face_present or detection.box is None:
            self._set_status(SignalStatus.NO_FACE)
            return TickOutcome.NO_FACE
        self._set_status(SignalStatus.FACE_DETECTED)

        now = self._clock()
        if (
            self._last_sample_time is not None
            and (now - self._last_sample_time) * 1000.0 < self.config.sampling_interval_ms
        ):
            return TickOutcome.THROTTLED

        value = sample_forehead(frame, detection.box, self.red_channel)
        if value is None:
            logger.debug("Forehead region outside the frame – no sample.")
            return TickOutcome.NO_SAMPLE

        self._buffer.push(Sample(value=value, timestamp=now))
        self._last_sample_time = now
        if self._on_sample is not None:
            self._on_sample(self._buffer.values())

        if not self._buffer.is_full():
            return TickOutcome.SAMPLED

        result = self.estimator.estimate(self._buffer.snapshot())
        self._last_result = result
        logger.debug("Window full – %s", result)
        if self._on_result is not None:
            self._on_result(result)
        return TickOutcome.ESTIMATED

    async def _detect(self, frame: np.ndarray) -> Detection:
        """Call the detector; any failure counts as "no face"."""
        try:
            if inspect.iscoroutinefunction(self._detector.detect):
                return await self._detector.detect(frame)
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(None, self._detector.detect, frame)
            # The worker thread cannot be cancelled: keep the handle until it
            # really returns, across stop() and start().
            self._detector_future = future
            future.add_done_callback(self._release_detector)
            return await asyncio.shield(future)
        except Exception as exc:                         # noqa: BLE001
            logger.warning("Face detector failed: %s", exc)
            return Detection.none()

    def _release_detector(self, future: asyncio.Future) -> None:
        if self._detector_future is future:
            self._detector_future = None

    def _set_status(self, status: SignalStatus) -> None:
        self._status = status
        if self._on_status is not None:
            self._on_status(status)
