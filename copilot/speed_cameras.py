"""Speed camera proximity warnings."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from lap_timing.data.models import FilteredLocation
from lap_timing.utils.geometry import angle_difference, bearing, haversine_distance
from config import (
    CAMERA_WARNING_DISTANCE_M,
    CAMERA_APPROACH_ANGLE_DEG,
    CAMERA_MIN_SPEED_KMH,
    CAMERA_WARNING_BRACKETS_M,
)

logger = logging.getLogger('timeattack.cameras')


@dataclass(frozen=True)
class SpeedCamera:
    id: str
    latitude: float
    longitude: float
    type: str = "fixed"  # fixed, mobile, red-light, average-speed
    speed_limit: Optional[int] = None
    name: str = ""


@dataclass(frozen=True)
class CameraWarning:
    """A bracket callout due for one camera."""
    camera: SpeedCamera
    bracket: int  # metres


@dataclass
class CameraCheck:
    """Result of checking every camera against one location."""
    closest: Optional[SpeedCamera] = None
    closest_distance: Optional[float] = None
    warnings: List[CameraWarning] = field(default_factory=list)


def is_approaching(latitude: float, longitude: float, heading: Optional[float],
                   camera: SpeedCamera,
                   tolerance: float = CAMERA_APPROACH_ANGLE_DEG) -> bool:
    """True when the heading points within tolerance of the camera."""
    if heading is None:
        return False
    to_camera = bearing(latitude, longitude, camera.latitude, camera.longitude)
    return abs(angle_difference(heading, to_camera)) <= tolerance


def bracket_for(distance: float) -> Optional[int]:
    """
    Warning bracket the distance falls in.

    Brackets are half-open bands (400, 500], (300, 400] ... with the last
    one covering everything at or below 50 m.
    """
    brackets = sorted(CAMERA_WARNING_BRACKETS_M, reverse=True)
    if distance > brackets[0]:
        return None
    for upper, lower in zip(brackets, brackets[1:]):
        if lower < distance <= upper:
            return upper
    return brackets[-1]


def camera_message(bracket: int, voice_mode: str) -> str:
    if voice_mode == "rally":
        return f"Caution, speed camera {bracket} meters"
    return f"Speed camera ahead in {bracket} meters"


class SpeedCameraMonitor:
    """
    Tracks cameras near the driver and which brackets were already called.

    Each camera is called at most once per bracket while in range; leaving
    the warning radius forgets its brackets so the next approach is called
    again.
    """

    def __init__(self, cameras: Optional[Iterable[SpeedCamera]] = None):
        self.cameras: List[SpeedCamera] = list(cameras or [])
        self.announced: Dict[str, Set[int]] = {}

    def clear(self):
        """Forget every announced bracket."""
        self.announced.clear()

    def check(self, location: FilteredLocation, timer_active: bool) -> CameraCheck:
        """
        Check all cameras against a location.

        Args:
            location: Filtered location (speed in km/h)
            timer_active: Warnings are only produced during a run

        Returns:
            Closest approaching camera and any bracket warnings now due
        """
        result = CameraCheck()

        for camera in self.cameras:
            distance = haversine_distance(location.latitude, location.longitude,
                                          camera.latitude, camera.longitude)
            if distance > CAMERA_WARNING_DISTANCE_M:
                self.announced.pop(camera.id, None)
                continue

            approaching = (location.speed > CAMERA_MIN_SPEED_KMH and
                           is_approaching(location.latitude, location.longitude,
                                          location.heading, camera))
            if not approaching:
                continue

            if result.closest_distance is None or distance < result.closest_distance:
                result.closest = camera
                result.closest_distance = distance

            if not timer_active:
                continue

            bracket = bracket_for(distance)
            called = self.announced.setdefault(camera.id, set())
            if bracket is not None and bracket not in called:
                called.add(bracket)
                result.warnings.append(CameraWarning(camera=camera, bracket=bracket))
                logger.debug("Camera %s at %.0f m (bracket %d)", camera.id, distance, bracket)

        return result
