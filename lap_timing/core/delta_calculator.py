"""
Ghost replay - compare the live run against the best recorded run.

The ghost is replayed by elapsed time: its position at a given elapsed
time is interpolated along its recorded path. The time delta compares
when the ghost passed the point nearest the driver with the driver's
elapsed time.
"""

import math
from typing import List, Optional

from lap_timing.data.models import GhostPoint
from lap_timing.utils.geometry import haversine_distance, interpolate_position


class GhostTracker:
    """Replays a recorded ghost path against the live run clock."""

    def __init__(self):
        self.path: List[GhostPoint] = []

    @property
    def loaded(self) -> bool:
        return len(self.path) >= 2

    def load(self, path: Optional[List[GhostPoint]]):
        """Set the ghost path (an empty or None path disables the ghost)."""
        self.path = list(path or [])

    def clear(self):
        self.path = []

    @property
    def duration(self) -> float:
        """Recorded ghost duration in ms, at least 1 to avoid division by zero."""
        if not self.path:
            return 1.0
        span = self.path[-1].timestamp - self.path[0].timestamp
        return span if span > 0 else 1.0

    def position_at(self, elapsed_ms: float) -> Optional[GhostPoint]:
        """
        Ghost position after elapsed_ms of the live run.

        Returns:
            Interpolated ghost point, None when no ghost is loaded
        """
        if not self.path:
            return None
        if len(self.path) == 1:
            return self.path[0]

        progress = max(0.0, elapsed_ms / self.duration)
        scaled = progress * (len(self.path) - 1)
        index = min(int(math.floor(scaled)), len(self.path) - 1)
        if index >= len(self.path) - 1:
            return self.path[-1]

        current = self.path[index]
        following = self.path[index + 1]
        t = scaled - index
        target = current.timestamp + (following.timestamp - current.timestamp) * t
        return interpolate_position(current, following, target)

    def delta_ms(self, latitude: float, longitude: float,
                 elapsed_ms: float) -> Optional[float]:
        """
        Time delta against the ghost at the driver's position.

        Positive means the driver is slower than the ghost.
        """
        if not self.loaded:
            return None

        nearest = min(self.path, key=lambda p: haversine_distance(
            latitude, longitude, p.latitude, p.longitude))
        ghost_elapsed = nearest.timestamp - self.path[0].timestamp
        return elapsed_ms - ghost_elapsed
