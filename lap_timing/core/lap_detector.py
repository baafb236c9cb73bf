"""
Start/finish checkpoint detection and run lifecycle.

The lap state machine is pure: each update takes a filtered location and
the checkpoint set and returns the side-effect commands the caller must
execute (announce, reset filters, finalise the run). No speech, storage or
network access happens here.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from config import (
    CHECKPOINT_PROXIMITY_M,
    FINISH_EXIT_THRESHOLD_M,
    SPEECH_START_PITCH,
    SPEECH_START_RATE,
    SPEECH_FINISH_PITCH,
    SPEECH_FINISH_RATE,
)
from lap_timing.data.models import (
    Checkpoint, CheckpointType, FilteredLocation, LapState, course_id_for,
)
from lap_timing.utils.geometry import haversine_distance

logger = logging.getLogger('timeattack.lap')

# Fixed design constants, not configurable per course
PROXIMITY_THRESHOLD_M = CHECKPOINT_PROXIMITY_M
FINISH_EXIT_M = FINISH_EXIT_THRESHOLD_M


class CommandType(Enum):
    START_TIMER = "start_timer"
    STOP_SPEECH = "stop_speech"
    ANNOUNCE = "announce"
    RESET_FILTERS = "reset_filters"
    RESET_INSTRUCTION_KEY = "reset_instruction_key"
    LOAD_GHOST = "load_ghost"
    FINALIZE_RUN = "finalize_run"
    CLEAR_NAVIGATION = "clear_navigation"


@dataclass(frozen=True)
class LapCommand:
    """Side effect requested by a state transition."""
    type: CommandType
    message: str = ""
    pitch: float = 1.0
    rate: float = 1.0
    timestamp: float = 0.0
    elapsed_ms: float = 0.0
    course_id: str = ""
    start_checkpoint: Optional[Checkpoint] = None
    finish_checkpoint: Optional[Checkpoint] = None


def find_checkpoint(checkpoints: Iterable[Checkpoint],
                    checkpoint_type: CheckpointType) -> Optional[Checkpoint]:
    """First checkpoint of the given type, if any."""
    for checkpoint in checkpoints:
        if checkpoint.type == checkpoint_type:
            return checkpoint
    return None


class LapStateMachine:
    """
    Tracks a timed run from the start ring to the finish ring.

    States: IDLE -> ARMED (route confirmed) -> RUNNING (start ring entered)
    -> FINISHED (finish ring entered) -> IDLE (left the finish area, or exit).

    Latches
    -------
    - announced_start: set on start, cleared when the driver is outside
      the start ring while not running, so the same start cannot fire twice
      while parked on it.
    - announced_finish: set on finish, cleared on the next start or retry.
    - has_left_finish: set once the driver is more than 50 m from the
      finish after finishing; the finish transition requires it clear.

    At most one transition fires per update. Guard failures are no-ops.
    """

    def __init__(self):
        self.state = LapState.IDLE
        self.route_confirmed = False
        self.announced_start = False
        self.announced_finish = False
        self.has_left_finish = False
        self.start_time: Optional[float] = None
        self.start_checkpoint: Optional[Checkpoint] = None

    @property
    def is_running(self) -> bool:
        return self.state == LapState.RUNNING

    def elapsed_ms(self, now_ms: float) -> float:
        """Milliseconds since the run started, 0 when not running."""
        if not self.is_running or self.start_time is None:
            return 0.0
        return now_ms - self.start_time

    def confirm_route(self):
        """User confirmed the route; the next start ring entry starts a run."""
        self.route_confirmed = True
        if self.state == LapState.IDLE:
            self.state = LapState.ARMED
            logger.info("Route confirmed, armed for start")

    def cancel_route(self):
        self.route_confirmed = False
        if self.state == LapState.ARMED:
            self.state = LapState.IDLE

    def update(self, location: FilteredLocation,
               checkpoints: Iterable[Checkpoint]) -> List[LapCommand]:
        """
        Evaluate transitions for one filtered location.

        Args:
            location: Latest filtered location
            checkpoints: Current checkpoint set (needs a start and a finish)

        Returns:
            Commands to execute, in order. Empty when nothing fired.
        """
        checkpoints = list(checkpoints)
        start = find_checkpoint(checkpoints, CheckpointType.START)
        finish = find_checkpoint(checkpoints, CheckpointType.FINISH)

        if finish is not None:
            finish_distance = haversine_distance(location.latitude, location.longitude,
                                                 finish.latitude, finish.longitude)

            if (self.state == LapState.FINISHED and self.announced_finish
                    and finish_distance > FINISH_EXIT_M):
                logger.info("Left finish area, ready for a new run")
                self.has_left_finish = True
                self.route_confirmed = False
                self.state = LapState.IDLE
                return []

            if finish_distance <= PROXIMITY_THRESHOLD_M and self._can_finish():
                return self._finish(location, finish)

        if start is not None:
            start_distance = haversine_distance(location.latitude, location.longitude,
                                                start.latitude, start.longitude)
            if start_distance <= PROXIMITY_THRESHOLD_M:
                if self._can_start():
                    return self._start(location, start, finish)
            elif self.announced_start and not self.is_running:
                self.announced_start = False

        return []

    def _can_start(self) -> bool:
        return (not self.is_running and not self.announced_start
                and self.route_confirmed and self.state != LapState.FINISHED)

    def _can_finish(self) -> bool:
        return (self.is_running and self.start_checkpoint is not None
                and not self.announced_finish and not self.has_left_finish)

    def _start(self, location: FilteredLocation, start: Checkpoint,
               finish: Optional[Checkpoint]) -> List[LapCommand]:
        self.state = LapState.RUNNING
        self.start_time = location.timestamp
        self.start_checkpoint = start
        self.announced_start = True
        self.announced_finish = False
        self.has_left_finish = False
        logger.info("Run started at checkpoint %s", start.id)

        commands = [
            LapCommand(CommandType.START_TIMER, timestamp=location.timestamp,
                       start_checkpoint=start),
            LapCommand(CommandType.RESET_FILTERS),
            LapCommand(CommandType.RESET_INSTRUCTION_KEY),
        ]
        if finish is not None:
            commands.append(LapCommand(CommandType.LOAD_GHOST,
                                       course_id=course_id_for(start, finish)))
        commands.append(LapCommand(CommandType.ANNOUNCE, message="Start",
                                   pitch=SPEECH_START_PITCH, rate=SPEECH_START_RATE))
        return commands

    def _finish(self, location: FilteredLocation,
                finish: Checkpoint) -> List[LapCommand]:
        elapsed = location.timestamp - self.start_time
        start = self.start_checkpoint
        self._mark_finished()
        logger.info("Run finished at checkpoint %s in %.0f ms", finish.id, elapsed)

        return [
            LapCommand(CommandType.STOP_SPEECH),
            LapCommand(CommandType.ANNOUNCE, message="Finish",
                       pitch=SPEECH_FINISH_PITCH, rate=SPEECH_FINISH_RATE),
            LapCommand(CommandType.FINALIZE_RUN, timestamp=location.timestamp,
                       elapsed_ms=elapsed, start_checkpoint=start,
                       finish_checkpoint=finish,
                       course_id=course_id_for(start, finish)),
            LapCommand(CommandType.RESET_INSTRUCTION_KEY),
            LapCommand(CommandType.CLEAR_NAVIGATION),
        ]

    def _mark_finished(self):
        self.state = LapState.FINISHED
        self.announced_finish = True
        self.announced_start = False
        self.start_checkpoint = None

    def end_run(self, now_ms: float,
                finish: Optional[Checkpoint] = None) -> List[LapCommand]:
        """
        Manually end a running run without reaching the finish ring.

        The hysteresis flag is left alone. Returns no commands when no run
        is in progress.
        """
        if not self.is_running or self.start_time is None:
            return []

        elapsed = now_ms - self.start_time
        start = self.start_checkpoint
        self._mark_finished()
        logger.info("Run ended manually after %.0f ms", elapsed)

        commands = [LapCommand(CommandType.STOP_SPEECH)]
        if start is not None and finish is not None:
            commands.append(LapCommand(CommandType.FINALIZE_RUN, timestamp=now_ms,
                                       elapsed_ms=elapsed, start_checkpoint=start,
                                       finish_checkpoint=finish,
                                       course_id=course_id_for(start, finish)))
        commands.append(LapCommand(CommandType.RESET_INSTRUCTION_KEY))
        commands.append(LapCommand(CommandType.CLEAR_NAVIGATION))
        return commands

    def retry(self):
        """Run the same course again: clear finish latches and re-arm."""
        self.announced_finish = False
        self.has_left_finish = False
        self.route_confirmed = True
        if not self.is_running:
            self.state = LapState.ARMED

    def exit(self):
        """Abandon the course entirely."""
        self.state = LapState.IDLE
        self.route_confirmed = False
        self.announced_start = False
        self.announced_finish = False
        self.has_left_finish = False
        self.start_time = None
        self.start_checkpoint = None
