"""
Forehead region-of-interest sampler.

The forehead is a flat, mostly hair-free patch of skin whose colour follows
the cardiac blood-volume pulse.  Given a face bounding box, this module cuts
out the forehead sub-rectangle and reduces it to a single number: the mean
red-channel intensity.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

# Forehead geometry, as fractions of the face box
FOREHEAD_X = 0.30
FOREHEAD_Y = 0.10
FOREHEAD_W = 0.40
FOREHEAD_H = 0.20


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    def forehead(self) -> "BoundingBox":
        """Forehead sub-rectangle of this face box (not clamped)."""
        return BoundingBox(
            x=self.x + FOREHEAD_X * self.width,
            y=self.y + FOREHEAD_Y * self.height,
            width=FOREHEAD_W * self.width,
            height=FOREHEAD_H * self.height,
        )


def clamp_region(
    box: BoundingBox, frame_shape: Tuple[int, ...]
) -> Optional[Tuple[int, int, int, int]]:
    """
    Snap *box* to whole pixels and clip it to a frame of *frame_shape*.

    Both edges are floored, so fractional coordinates truncate the way
    canvas pixel reads do.

    Returns ``(x0, y0, x1, y1)`` with exclusive upper bounds, or *None* when
    nothing of the box is left inside the frame.
    """
    h, w = frame_shape[:2]
    x0 = max(0, math.floor(box.x))
    y0 = max(0, math.floor(box.y))
    x1 = min(w, math.floor(box.x + box.width))
    y1 = min(h, math.floor(box.y + box.height))
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def sample_forehead(
    frame: np.ndarray, face: BoundingBox, red_channel: int = 0
) -> Optional[float]:
    """
    Mean red intensity over the forehead of *face*.

    Parameters
    ----------
    frame:
        H × W × C pixel array (RGB / RGBA by default).
    face:
        Face bounding box in the same pixel space as *frame*.
    red_channel:
        Index of the red channel; use 2 for OpenCV BGR frames.

    Returns
    -------
    float or None
        *None* when the frame has no colour channels or the clamped
        forehead region has zero area.
    """
    if frame.ndim != 3 or frame.shape[2] < 3 or not 0 <= red_channel < frame.shape[2]:
        return None
    region = clamp_region(face.forehead(), frame.shape)
    if region is None:
        return None
    x0, y0, x1, y1 = region
    patch = frame[y0:y1, x0:x1, red_channel]
    return float(np.mean(patch, dtype=np.float64))
