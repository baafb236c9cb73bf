"""Sample the road ahead towards a target and detect turns along it."""

import math
from dataclasses import dataclass
from typing import List, Optional

from lap_timing.utils.geometry import (
    angle_difference, bearing, haversine_distance, lerp_position,
)
from utils.conversions import round_half_up
from config import (
    ROAD_LOOKAHEAD_M,
    ROAD_LOOKAHEAD_RALLY_M,
    ROAD_SEGMENT_SPACING_M,
    ROAD_MAX_SEGMENTS,
    ROAD_MAX_SEGMENTS_RALLY,
    ROAD_MIN_ANALYSIS_M,
    TURN_THRESHOLD_DEG,
    TURN_THRESHOLD_RALLY_DEG,
    SEVERITY_BUCKETS,
    SEVERITY_GENTLEST,
)


@dataclass(frozen=True)
class RoadSegment:
    """Sampled point ahead with the bearing of the leg arriving at it."""

    latitude: float
    longitude: float
    bearing: float
    distance_from_start: float  # metres from the current position


@dataclass(frozen=True)
class UpcomingTurn:
    """Turn detected between two consecutive road segments."""

    type: str  # "left", "right" or "straight"
    severity: int  # 1 = tightest, 6 = gentlest
    distance: float  # metres ahead
    angle: float  # absolute bearing change in degrees
    description: str


def severity_for_angle(abs_angle: float) -> int:
    """Map an absolute turn angle to a rally severity (1 tightest, 6 gentlest)."""
    for min_angle, severity in SEVERITY_BUCKETS:
        if abs_angle >= min_angle:
            return severity
    return SEVERITY_GENTLEST


def describe_turn(direction: str, abs_angle: float, distance: float) -> str:
    """Plain-language description of a detected turn."""
    metres = round_half_up(distance)
    if abs_angle >= 150:
        return f"Sharp {direction} in {metres} meters"
    if abs_angle >= 90:
        return f"{direction.capitalize()} turn in {metres} meters"
    return f"Bear {direction} in {metres} meters"


def analyze_road_ahead(
    latitude: float,
    longitude: float,
    target_latitude: float,
    target_longitude: float,
    rally: bool = False,
) -> List[RoadSegment]:
    """
    Sample the straight line towards the target into evenly spaced segments.

    Args:
        latitude, longitude: Current position
        target_latitude, target_longitude: Next checkpoint
        rally: Use the longer rally lookahead and denser sampling

    Returns:
        Segments ordered by distance, empty when the target is under 10 m
        away or too close to fit a single 25 m sample
    """
    total = haversine_distance(latitude, longitude, target_latitude, target_longitude)
    if total < ROAD_MIN_ANALYSIS_M:
        return []

    lookahead = ROAD_LOOKAHEAD_RALLY_M if rally else ROAD_LOOKAHEAD_M
    max_segments = ROAD_MAX_SEGMENTS_RALLY if rally else ROAD_MAX_SEGMENTS
    analysis = min(total, lookahead)
    count = min(int(math.floor(analysis / ROAD_SEGMENT_SPACING_M)), max_segments)

    segments: List[RoadSegment] = []
    prev_lat, prev_lon = latitude, longitude
    for i in range(1, count + 1):
        fraction = (i / count) * (analysis / total)
        lat, lon = lerp_position(latitude, longitude,
                                 target_latitude, target_longitude, fraction)
        segments.append(RoadSegment(
            latitude=lat,
            longitude=lon,
            bearing=bearing(prev_lat, prev_lon, lat, lon),
            distance_from_start=haversine_distance(latitude, longitude, lat, lon),
        ))
        prev_lat, prev_lon = lat, lon

    return segments


def detect_upcoming_turns(
    segments: List[RoadSegment],
    current_heading: Optional[float],
    rally: bool = False,
) -> List[UpcomingTurn]:
    """
    Find bearing changes between consecutive segments.

    The first comparison is made against the current heading, later ones
    against the previous segment's bearing. Changes at or below the
    threshold are ignored.
    """
    if len(segments) < 2:
        return []

    threshold = TURN_THRESHOLD_RALLY_DEG if rally else TURN_THRESHOLD_DEG
    turns: List[UpcomingTurn] = []

    for i in range(1, len(segments)):
        if i == 1:
            if current_heading is None:
                continue
            previous_bearing = current_heading
        else:
            previous_bearing = segments[i - 1].bearing

        diff = angle_difference(previous_bearing, segments[i].bearing)
        abs_angle = abs(diff)
        if abs_angle <= threshold:
            continue

        direction = "left" if diff < 0 else "right"
        distance = segments[i].distance_from_start
        turns.append(UpcomingTurn(
            type=direction,
            severity=severity_for_angle(abs_angle),
            distance=distance,
            angle=abs_angle,
            description=describe_turn(direction, abs_angle, distance),
        ))

    return turns
