"""
Real-time overlay visualiser.

Draws the following elements onto each video frame:
  • The detected face box and the forehead region being sampled.
  • BPM readout, or the current signal status while warming up.
  • A progress bar showing how full the sample window is.
  • A waveform strip with the raw red-channel window.
  • Optional frame-rate counter.
"""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from .capture_session import SignalStatus
from .roi_sampler import BoundingBox, clamp_region
from .spectral_estimator import Estimate, SpectralResult


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


class Visualizer:
    """
    Draws the rPPG monitoring UI onto OpenCV frames in-place.

    Parameters
    ----------
    resolution:
        (width, height) of the video frame.
    waveform_height:
        Pixel height of the waveform panel at the bottom of the frame.
    show_fps:
        Whether to overlay computed FPS in the top-right corner.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        waveform_height: int = 80,
        show_fps: bool = True,
    ) -> None:
        self.w, self.h = resolution
        self.waveform_height = waveform_height
        self.show_fps = show_fps

        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0

    def draw(
        self,
        frame: np.ndarray,
        result: Optional[SpectralResult],
        status: SignalStatus,
        buffer_fill: float,
        face: Optional[BoundingBox] = None,
        window: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame from the camera.
        result:
            Latest estimator output, if any.
        status:
            Current signal status of the capture session.
        buffer_fill:
            How full the sample window is (0 – 1).  Drives the loading bar.
        face:
            Last detected face box, drawn together with its forehead ROI.
        window:
            Raw sample window to plot as a waveform.
        """
        self._update_fps()

        if face is not None:
            self._draw_face(frame, face)

        self._draw_reading(frame, result, status)
        self._draw_fill_bar(frame, buffer_fill)

        if window is not None and len(window) > 1:
            self._draw_waveform(frame, window)

        if self.show_fps:
            cv2.putText(
                frame,
                f"FPS {self._fps_display:.1f}",
                (self.w - 100, 20),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )
        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_face(self, frame: np.ndarray, face: BoundingBox) -> None:
        x, y = int(face.x), int(face.y)
        cv2.rectangle(frame, (x, y), (x + int(face.width), y + int(face.height)), _CYAN, 1)
        region = clamp_region(face.forehead(), frame.shape)
        if region is not None:
            x0, y0, x1, y1 = region
            cv2.rectangle(frame, (x0, y0), (x1, y1), _GREEN, 2)

    def _draw_reading(
        self,
        frame: np.ndarray,
        result: Optional[SpectralResult],
        status: SignalStatus,
    ) -> None:
        if isinstance(result, Estimate) and status is SignalStatus.FACE_DETECTED:
            text = f"{result.bpm} BPM"
            cv2.putText(
                frame, text,
                (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, _BLACK, 5, cv2.LINE_AA,
            )
            cv2.putText(
                frame, text,
                (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, _GREEN, 3, cv2.LINE_AA,
            )
            return

        if status is SignalStatus.NO_FACE:
            text, col = "No face detected", _RED
        elif status is SignalStatus.FACE_DETECTED:
            text, col = "Measuring...", _YELLOW
        else:
            text, col = "Waiting for camera...", _YELLOW
        cv2.putText(
            frame, text,
            (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 0.7, col, 2, cv2.LINE_AA,
        )

    def _draw_fill_bar(self, frame: np.ndarray, fill: float) -> None:
        bar_w = int((self.w - 32) * min(fill, 1.0))
        y0, y1 = self.h - self.waveform_height - 12, self.h - self.waveform_height - 4
        cv2.rectangle(frame, (16, y0), (self.w - 16, y1), _DARK, -1)
        cv2.rectangle(frame, (16, y0), (16 + bar_w, y1), _CYAN, -1)
        cv2.putText(
            frame, "window",
            (16, y0 - 2), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _CYAN, 1, cv2.LINE_AA,
        )

    def _draw_waveform(self, frame: np.ndarray, signal: np.ndarray) -> None:
        """Draw the sample window in a dark strip at the bottom of the frame."""
        panel_top = self.h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (self.w, self.h), _DARK, -1)

        mn, mx = signal.min(), signal.max()
        rng = mx - mn if mx != mn else 1.0
        norm = (signal - mn) / rng

        margin = 6
        plot_h = self.waveform_height - 2 * margin
        xs = np.linspace(0, self.w - 1, len(norm)).astype(np.int32)
        ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(np.int32)

        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _RED, 1, cv2.LINE_AA)

        cv2.putText(
            frame, "Red",
            (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _update_fps(self) -> None:
        """Compute rolling FPS."""
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
