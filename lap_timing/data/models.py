"""
Core data structures for the time-trial system.

Unit Conventions
----------------
Measurements in this module use the following units unless otherwise noted:

- Time: milliseconds (Unix epoch timestamps and durations)
- Distance: metres
- Speed: metres per second for raw fixes, km/h once filtered
- Angles: degrees (0-360 for headings, 0=North, 90=East)
- Coordinates: decimal degrees (WGS84)

Filtered speeds are km/h because every consumer downstream (pacenotes,
speed cameras, run statistics) thinks in road speeds.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class LocationFix:
    """
    Raw location sample from the positioning source.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        timestamp: Unix timestamp in milliseconds.
        speed: Ground speed in m/s, None when the source has no speed.
        heading: Course over ground in degrees, None when unknown.
        accuracy: Horizontal accuracy estimate in metres, None if unreported.
    """
    latitude: float
    longitude: float
    timestamp: float
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class FilteredLocation:
    """
    Smoothed location produced by the signal filter.

    Attributes:
        latitude: Filtered latitude in decimal degrees.
        longitude: Filtered longitude in decimal degrees.
        speed: Filtered speed in km/h, never negative.
        heading: Smoothed heading in degrees [0, 360), None if unknown.
        timestamp: Timestamp of the source fix in milliseconds.
        accuracy: Accuracy reported by the source fix in metres.
    """
    latitude: float
    longitude: float
    speed: float
    heading: Optional[float]
    timestamp: float
    accuracy: float


class CheckpointType(Enum):
    START = "start"
    FINISH = "finish"
    INTERMEDIATE = "intermediate"


@dataclass(frozen=True)
class Checkpoint:
    """User-placed course marker."""
    id: str
    type: CheckpointType
    latitude: float
    longitude: float
    name: str = ""


@dataclass(frozen=True)
class GhostPoint:
    """Single sample of a recorded run used for ghost replay."""
    latitude: float
    longitude: float
    timestamp: float  # ms


class LapState(Enum):
    """Lifecycle of a timed run between start and finish checkpoints."""
    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"
    FINISHED = "finished"


def course_id_for(start: Checkpoint, finish: Checkpoint) -> str:
    """Course identifier shared by every run between the same checkpoints."""
    return f"{start.id}_{finish.id}"


@dataclass
class RunRecord:
    """
    Completed timed run between a start and finish checkpoint.

    Attributes:
        id: Unique run identifier.
        start_time: Timestamp (ms) when the start ring was entered.
        end_time: Timestamp (ms) when the run ended.
        duration: Elapsed run time in milliseconds.
        start_checkpoint: Checkpoint that started the run.
        finish_checkpoint: Checkpoint that finished the run.
        average_speed: Mean of the filtered speeds recorded (km/h).
        max_speed: Highest filtered speed recorded (km/h).
        date: ISO-8601 date string of the run end.
        course_id: "{start_id}_{finish_id}".
        lap_number: 1-based count of runs on this course.
        ghost_path: Recorded positions for ghost replay.
    """
    id: str
    start_time: float
    end_time: float
    duration: float
    start_checkpoint: Checkpoint
    finish_checkpoint: Checkpoint
    average_speed: float = 0.0
    max_speed: float = 0.0
    date: str = ""
    course_id: str = ""
    lap_number: int = 1
    ghost_path: List[GhostPoint] = field(default_factory=list)

    def format_time(self) -> str:
        """Format run duration as M:SS.mmm."""
        seconds_total = self.duration / 1000.0
        minutes = int(seconds_total // 60)
        seconds = seconds_total % 60
        return f"{minutes}:{seconds:06.3f}"


def iso_date_from_ms(timestamp_ms: float) -> str:
    """ISO-8601 UTC date string for a millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc).isoformat()
