"""
Per-run accumulators and lap record finalisation.

Collects filtered speeds and the ghost path while a run is in progress
and turns them into a RunRecord when the run finishes.
"""

import logging
import uuid
from typing import List, Optional, Protocol

from lap_timing.data.models import (
    Checkpoint, FilteredLocation, GhostPoint, RunRecord, course_id_for,
    iso_date_from_ms,
)

logger = logging.getLogger('timeattack.lap')


class RunSink(Protocol):
    """Persistence sink for completed runs."""

    def save_run(self, record: RunRecord) -> bool: ...

    def count_runs(self, course_id: str) -> int: ...

    def get_best_run(self, course_id: str) -> Optional[RunRecord]: ...


class MemoryRunSink:
    """RunSink keeping runs in memory for the lifetime of the session."""

    def __init__(self):
        self.runs: List[RunRecord] = []

    def save_run(self, record: RunRecord) -> bool:
        self.runs.append(record)
        return True

    def count_runs(self, course_id: str) -> int:
        return sum(1 for run in self.runs if run.course_id == course_id)

    def get_best_run(self, course_id: str) -> Optional[RunRecord]:
        course_runs = [run for run in self.runs if run.course_id == course_id]
        if not course_runs:
            return None
        return min(course_runs, key=lambda run: run.duration)


class RunRecorder:
    """Accumulates samples for the run in progress."""

    def __init__(self):
        self.speeds: List[float] = []
        self.max_speed = 0.0
        self.ghost_path: List[GhostPoint] = []
        self.start_time: Optional[float] = None
        self.start_checkpoint: Optional[Checkpoint] = None

    @property
    def active(self) -> bool:
        return self.start_time is not None

    def start(self, timestamp: float, start_checkpoint: Optional[Checkpoint] = None):
        """Begin a new run, discarding anything left from the previous one."""
        self.clear()
        self.start_time = timestamp
        self.start_checkpoint = start_checkpoint

    def record(self, location: FilteredLocation):
        """Add one filtered location; ignored when no run is active."""
        if not self.active:
            return
        self.speeds.append(location.speed)
        if location.speed > self.max_speed:
            self.max_speed = location.speed
        self.ghost_path.append(GhostPoint(latitude=location.latitude,
                                          longitude=location.longitude,
                                          timestamp=location.timestamp))

    def average_speed(self) -> float:
        if not self.speeds:
            return 0.0
        return sum(self.speeds) / len(self.speeds)

    def finalize(
        self,
        end_time: float,
        duration: float,
        start_checkpoint: Checkpoint,
        finish_checkpoint: Checkpoint,
        previous_runs: int = 0,
    ) -> RunRecord:
        """
        Build the record for the finished run and reset the accumulators.

        Args:
            end_time: Timestamp (ms) the run ended
            duration: Elapsed run time in ms
            start_checkpoint: Checkpoint that started the run
            finish_checkpoint: Checkpoint that finished it
            previous_runs: Runs already stored for this course

        Returns:
            The completed run record
        """
        start_time = self.start_time if self.start_time is not None else end_time - duration
        record = RunRecord(
            id=uuid.uuid4().hex,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            start_checkpoint=start_checkpoint,
            finish_checkpoint=finish_checkpoint,
            average_speed=self.average_speed(),
            max_speed=self.max_speed,
            date=iso_date_from_ms(end_time),
            course_id=course_id_for(start_checkpoint, finish_checkpoint),
            lap_number=previous_runs + 1,
            ghost_path=list(self.ghost_path),
        )
        logger.info("Run %s lap %d on %s: %s", record.id, record.lap_number,
                    record.course_id, record.format_time())
        self.clear()
        return record

    def clear(self):
        """Drop all accumulated samples."""
        self.speeds = []
        self.max_speed = 0.0
        self.ghost_path = []
        self.start_time = None
        self.start_checkpoint = None
