"""
Face detection collaborators.

The capture session only needs to know, per tick, whether a face is visible
and where.  Anything with a ``detect(frame) -> Detection`` method (plain or
``async``) will do; :class:`HaarFaceDetector` is the default, built on the
frontal-face Haar cascade that ships with OpenCV.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import cv2
import numpy as np

from .roi_sampler import BoundingBox


@dataclass(frozen=True)
class Detection:
    """Result of one detector call."""

    face_present: bool
    box: Optional[BoundingBox] = None

    @classmethod
    def none(cls) -> "Detection":
        return cls(face_present=False, box=None)

    @classmethod
    def face(cls, box: BoundingBox) -> "Detection":
        return cls(face_present=True, box=box)


class FaceDetector(Protocol):
    def detect(self, frame: np.ndarray) -> Detection:
        ...


class HaarFaceDetector:
    """
    OpenCV Haar-cascade face detector.

    When several faces are found the largest one wins, since the person in
    front of the camera is normally the closest.

    Parameters
    ----------
    scale_factor:
        Image pyramid step passed to ``detectMultiScale``.
    min_neighbors:
        How many overlapping candidates a face needs to be accepted.
        Higher = fewer false positives.
    min_size:
        Smallest face (in pixels) worth reporting.
    cascade_path:
        Custom cascade XML.  Defaults to OpenCV's
        ``haarcascade_frontalface_default.xml``.
    """

    def __init__(
        self,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: int = 60,
        cascade_path: Optional[str] = None,
    ) -> None:
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size

        path = cascade_path or (cv2.data.haarcascades + "haarcascade_frontalface_default.xml")
        try:
            self._cascade = cv2.CascadeClassifier(path)
        except cv2.error as exc:
            raise RuntimeError(f"Cannot load Haar cascade from {path}") from exc
        if self._cascade.empty():
            raise RuntimeError(f"Cannot load Haar cascade from {path}")

    def detect(self, frame: np.ndarray) -> Detection:
        """
        Find the largest face in *frame*.

        Parameters
        ----------
        frame:
            BGR image array (H × W × 3, uint8) or a grayscale image.
        """
        if frame.ndim == 2:
            gray = frame
        elif frame.shape[2] == 4:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
        else:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_size, self.min_size),
        )
        if len(faces) == 0:
            return Detection.none()

        x, y, w, h = max(faces, key=lambda f: int(f[2]) * int(f[3]))
        return Detection.face(BoundingBox(float(x), float(y), float(w), float(h)))
