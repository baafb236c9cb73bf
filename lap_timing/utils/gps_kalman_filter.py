"""
GPS Kalman filtering for position, speed and heading smoothing.

Three independent scalar Kalman filters smooth latitude, longitude and
speed, and a circular-mean window smooths heading. LocationTracker ties
them together and turns raw LocationFix samples into FilteredLocation
values with a finite-difference velocity estimate for dead reckoning.
"""

import logging
import math
from collections import deque
from typing import Optional, Tuple

import numpy as np

from config import (
    FILTER_POSITION_Q,
    FILTER_POSITION_R,
    FILTER_SPEED_Q,
    FILTER_SPEED_R,
    FILTER_OUTLIER_SIGMAS,
    FILTER_OUTLIER_DAMPING,
    FILTER_ACCURACY_SCALE_M,
    FILTER_ACCURACY_FACTOR_MIN,
    FILTER_ACCURACY_FACTOR_MAX,
    FILTER_DEFAULT_ACCURACY_M,
    FILTER_POSITION_ACCURACY_CAP_M,
    FILTER_SPEED_ACCURACY_CAP_M,
    FILTER_HEADING_WINDOW,
    FILTER_MIN_HEADING_MOVE_M,
    FILTER_PREDICT_ACCURACY_GROWTH,
    MPS_TO_KMH,
)
from lap_timing.data.models import FilteredLocation, LocationFix
from lap_timing.utils.geometry import bearing, haversine_distance

logger = logging.getLogger('timeattack.filter')


class ScalarKalmanFilter:
    """
    One-dimensional Kalman filter with outlier damping.

    State is the estimate x, its error covariance p and the last gain k.
    The measurement noise r is scaled per sample by the reported accuracy
    so poor fixes pull the estimate less.
    """

    def __init__(self, q: float = FILTER_POSITION_Q, r: float = FILTER_POSITION_R):
        """
        Initialise scalar filter.

        Args:
            q: Process noise added to p every step
            r: Base measurement noise
        """
        self.q = q
        self.r = r
        self.reset()

    def reset(self):
        """Reset filter state."""
        self.p = 1.0
        self.x = 0.0
        self.k = 0.0
        self.initialised = False
        self.last_measurement: Optional[float] = None

    def filter(self, measurement: float, accuracy: float = 1.0) -> float:
        """
        Update filter with a new measurement.

        Args:
            measurement: Raw measured value
            accuracy: Reported accuracy in metres (scales r)

        Returns:
            Filtered estimate
        """
        # First sample passes through unsmoothed
        if not self.initialised:
            self.x = measurement
            self.last_measurement = measurement
            self.initialised = True
            return self.x

        last = self.last_measurement
        if abs(measurement - last) > FILTER_OUTLIER_SIGMAS * math.sqrt(self.p + self.r):
            measurement = last + (measurement - last) * FILTER_OUTLIER_DAMPING

        factor = max(FILTER_ACCURACY_FACTOR_MIN,
                     min(FILTER_ACCURACY_FACTOR_MAX, accuracy / FILTER_ACCURACY_SCALE_M))
        adjusted_r = self.r * factor

        self.p += self.q
        self.k = self.p / (self.p + adjusted_r)
        self.x += self.k * (measurement - self.x)
        self.p *= (1 - self.k)
        self.last_measurement = self.x

        return self.x


class HeadingFilter:
    """Circular mean over a short window of headings."""

    def __init__(self, size: int = FILTER_HEADING_WINDOW):
        self._headings = deque(maxlen=size)

    def reset(self):
        self._headings.clear()

    def filter(self, heading: Optional[float]) -> Optional[float]:
        """
        Add a heading and return the smoothed value.

        A None input leaves the window untouched and returns the current
        smoothed heading (None while the window is empty).
        """
        if heading is not None:
            self._headings.append(heading)

        if not self._headings:
            return None
        if len(self._headings) == 1:
            return self._headings[0]

        radians = np.radians(np.fromiter(self._headings, dtype=float))
        mean = math.degrees(math.atan2(float(np.mean(np.sin(radians))),
                                       float(np.mean(np.cos(radians)))))
        result = (mean + 360) % 360
        return 0.0 if result >= 360 else result


class LocationTracker:
    """
    Turns raw location fixes into smoothed locations.

    Owns the latitude, longitude and speed filters, the heading window and
    a finite-difference velocity (degrees/second) between consecutive
    filtered positions. Never raises on bad sensor input; anomalies are
    absorbed by the filters.
    """

    def __init__(self):
        self.lat_filter = ScalarKalmanFilter(FILTER_POSITION_Q, FILTER_POSITION_R)
        self.lon_filter = ScalarKalmanFilter(FILTER_POSITION_Q, FILTER_POSITION_R)
        self.speed_filter = ScalarKalmanFilter(FILTER_SPEED_Q, FILTER_SPEED_R)
        self.heading_filter = HeadingFilter()
        self.last_location: Optional[FilteredLocation] = None
        self.velocity_lat = 0.0
        self.velocity_lon = 0.0

    @property
    def velocity(self) -> Tuple[float, float]:
        """Velocity estimate as (degrees lat/s, degrees lon/s)."""
        return self.velocity_lat, self.velocity_lon

    def reset(self):
        """Clear all filter state, velocity and last location."""
        self.lat_filter.reset()
        self.lon_filter.reset()
        self.speed_filter.reset()
        self.heading_filter.reset()
        self.last_location = None
        self.velocity_lat = 0.0
        self.velocity_lon = 0.0
        logger.debug("Location tracker reset")

    def process(self, fix: LocationFix) -> FilteredLocation:
        """
        Filter one raw fix.

        Args:
            fix: Raw location sample

        Returns:
            Smoothed location
        """
        accuracy = fix.accuracy if fix.accuracy is not None else FILTER_DEFAULT_ACCURACY_M
        position_accuracy = min(accuracy, FILTER_POSITION_ACCURACY_CAP_M)

        lat = self.lat_filter.filter(fix.latitude, position_accuracy)
        lon = self.lon_filter.filter(fix.longitude, position_accuracy)

        speed_kmh = (fix.speed or 0.0) * MPS_TO_KMH
        speed = max(0.0, self.speed_filter.filter(
            speed_kmh, min(accuracy, FILTER_SPEED_ACCURACY_CAP_M)))

        previous = self.last_location
        if previous is not None:
            dt = (fix.timestamp - previous.timestamp) / 1000.0
            if dt > 0:
                self.velocity_lat = (lat - previous.latitude) / dt
                self.velocity_lon = (lon - previous.longitude) / dt

        heading = self.heading_filter.filter(fix.heading)
        if heading is None and previous is not None:
            moved = haversine_distance(previous.latitude, previous.longitude, lat, lon)
            if moved > FILTER_MIN_HEADING_MOVE_M:
                heading = bearing(previous.latitude, previous.longitude, lat, lon)

        location = FilteredLocation(
            latitude=lat,
            longitude=lon,
            speed=speed,
            heading=heading,
            timestamp=fix.timestamp,
            accuracy=accuracy,
        )
        self.last_location = location
        return location

    def predict(self, delta_time: float) -> Optional[FilteredLocation]:
        """
        Dead-reckon the last location forward.

        Args:
            delta_time: Seconds to extrapolate

        Returns:
            Predicted location, or None before the first fix
        """
        last = self.last_location
        if last is None:
            return None

        return FilteredLocation(
            latitude=last.latitude + self.velocity_lat * delta_time,
            longitude=last.longitude + self.velocity_lon * delta_time,
            speed=last.speed,
            heading=last.heading,
            timestamp=last.timestamp + delta_time * 1000,
            accuracy=last.accuracy * FILTER_PREDICT_ACCURACY_GROWTH,
        )
