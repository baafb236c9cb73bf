"""Simulation mode: synthetic location fixes for testing without GPS hardware."""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np

from lap_timing.data.models import LocationFix
from lap_timing.utils.geometry import bearing, haversine_distance, point_along_bearing

# Metres per degree of latitude, used to turn noise in metres into degrees
METRES_PER_DEGREE = 111320.0
# Waypoints closer than this are treated as reached (metres)
WAYPOINT_SNAP_M = 1e-3


@dataclass
class SimulatedRoute:
    """A route to simulate driving along."""
    points: List[Tuple[float, float]]  # (lat, lon) waypoints
    speed_mps: float = 13.4  # ~30 mph / 48 km/h default


class FixSimulator:
    """
    Drives along a route at constant speed and emits LocationFix samples.

    Fixes are timestamped from start_time_ms at a fixed rate, so a run
    through the pipeline is fully deterministic. Optional Gaussian position
    noise (seeded) exercises the filters.
    """

    def __init__(
        self,
        route: SimulatedRoute,
        rate_hz: float = 10.0,
        start_time_ms: float = 0.0,
        noise_m: float = 0.0,
        accuracy_m: Optional[float] = 5.0,
        seed: Optional[int] = None,
    ):
        if len(route.points) < 1:
            raise ValueError("Route needs at least one point")
        self.route = route
        self.rate_hz = rate_hz
        self.start_time_ms = start_time_ms
        self.noise_m = noise_m
        self.accuracy_m = accuracy_m
        self._rng = np.random.default_rng(seed)

    def _noise(self, latitude: float) -> Tuple[float, float]:
        if self.noise_m <= 0:
            return 0.0, 0.0
        north, east = self._rng.normal(0.0, self.noise_m, size=2)
        dlat = north / METRES_PER_DEGREE
        dlon = east / (METRES_PER_DEGREE * max(0.01, float(np.cos(np.radians(latitude)))))
        return dlat, dlon

    def fixes(self) -> Iterator[LocationFix]:
        """Yield fixes from the first waypoint to the last."""
        points = self.route.points
        step = self.route.speed_mps / self.rate_hz
        interval_ms = 1000.0 / self.rate_hz

        lat, lon = points[0]
        index = 0
        timestamp = self.start_time_ms
        heading = bearing(lat, lon, *points[1]) if len(points) > 1 else None

        while True:
            dlat, dlon = self._noise(lat)
            yield LocationFix(latitude=lat + dlat, longitude=lon + dlon,
                              timestamp=timestamp, speed=self.route.speed_mps,
                              heading=heading, accuracy=self.accuracy_m)

            if index >= len(points) - 1:
                return

            remaining = step
            while remaining > 0 and index < len(points) - 1:
                next_lat, next_lon = points[index + 1]
                to_next = haversine_distance(lat, lon, next_lat, next_lon)
                if remaining >= to_next - WAYPOINT_SNAP_M:
                    remaining -= to_next
                    lat, lon = next_lat, next_lon
                    index += 1
                else:
                    heading = bearing(lat, lon, next_lat, next_lon)
                    lat, lon = point_along_bearing(lat, lon, heading, remaining)
                    remaining = 0

            if index < len(points) - 1:
                heading = bearing(lat, lon, *points[index + 1])
            timestamp += interval_ms
