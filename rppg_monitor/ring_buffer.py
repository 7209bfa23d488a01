"""
Fixed-capacity sliding window of intensity samples.

Pushing into a full buffer silently drops the oldest sample, so the window
always holds the most recent ``capacity`` readings in arrival order.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Tuple

import numpy as np


@dataclass(frozen=True)
class Sample:
    """One mean-intensity reading and the (monotonic) time it was taken."""

    value: float
    timestamp: float


class RingBuffer:
    """
    FIFO window of :class:`Sample` objects.

    The buffer has a single writer (the capture session).  Readers take a
    :meth:`snapshot`, which is a copied-out tuple and stays valid no matter
    what is pushed afterwards.

    Parameters
    ----------
    capacity:
        Maximum number of samples kept.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._data: Deque[Sample] = deque(maxlen=capacity)

    def push(self, sample: Sample) -> None:
        """Append *sample*, evicting the oldest one when full."""
        self._data.append(sample)

    def snapshot(self) -> Tuple[Sample, ...]:
        """Return the contents, oldest first, without mutating the buffer."""
        return tuple(self._data)

    def values(self) -> np.ndarray:
        """Sample values as a float64 array (oldest first)."""
        return np.fromiter((s.value for s in self._data), dtype=np.float64,
                           count=len(self._data))

    def reset(self) -> None:
        self._data.clear()

    def is_full(self) -> bool:
        return len(self._data) == self.capacity

    @property
    def fill_ratio(self) -> float:
        """How full the window is (0 – 1)."""
        return len(self._data) / self.capacity

    def __len__(self) -> int:
        return len(self._data)
