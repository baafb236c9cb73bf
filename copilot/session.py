"""Tracking session: the per-fix navigation and timing pipeline."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from lap_timing.core.delta_calculator import GhostTracker
from lap_timing.core.lap_detector import (
    CommandType, LapCommand, LapStateMachine, find_checkpoint,
)
from lap_timing.core.run_recorder import MemoryRunSink, RunRecorder, RunSink
from lap_timing.data.models import (
    Checkpoint, CheckpointType, FilteredLocation, GhostPoint, LapState,
    LocationFix, RunRecord,
)
from lap_timing.utils.geometry import bearing, haversine_distance
from lap_timing.utils.gps_kalman_filter import LocationTracker
from utils.conversions import speed_unit_for_country
from utils.settings import SettingsManager
from .audio import SpeechSink, VoiceAnnouncer
from .instructions import (
    VOICE_RALLY, NavigationInstruction, build_announcement,
    generate_instruction, instruction_key,
)
from .pacenotes import PacenoteComposer, RandomSource
from .road_ahead import UpcomingTurn, analyze_road_ahead, detect_upcoming_turns
from .road_name import ReverseGeocoder, RoadNameTracker
from .speed_cameras import SpeedCamera, SpeedCameraMonitor, camera_message
from config import (
    DEFAULT_UNIT_SYSTEM,
    DEFAULT_NAVIGATION_VOLUME,
    ROAD_NAME_UNKNOWN,
    SPEECH_CAMERA_RALLY_PITCH,
    SPEECH_CAMERA_RALLY_RATE,
    SPEECH_CAMERA_PITCH,
    SPEECH_CAMERA_RATE,
)

logger = logging.getLogger('timeattack.session')


@dataclass
class SessionUpdate:
    """Everything the pipeline produced for one accepted fix."""
    location: FilteredLocation
    state: LapState
    elapsed_ms: float = 0.0
    instruction: Optional[NavigationInstruction] = None
    upcoming_turns: List[UpcomingTurn] = field(default_factory=list)
    distance_to_finish: Optional[float] = None
    ghost_position: Optional[GhostPoint] = None
    ghost_delta_ms: Optional[float] = None
    nearby_camera: Optional[SpeedCamera] = None
    nearby_camera_distance: Optional[float] = None
    road_name: str = ROAD_NAME_UNKNOWN
    completed_run: Optional[RunRecord] = None
    commands: List[LapCommand] = field(default_factory=list)


class TrackingSession:
    """
    Owns all mutable navigation state for one tracking session.

    Pipeline
    --------
    Each fix is processed to completion before the next:

    1. Drop fixes not newer than the last processed fix
    2. Filter the fix into a smoothed location
    3. Start a road name lookup if one is due (non-blocking), switching
       units to the road's country unless a unit system was given
    4. Check speed cameras, announcing due warnings during a run
    5. Run the lap state machine and execute its commands
    6. Record speed and ghost samples for the active run
    7. While running with a known heading, analyse the road ahead towards
       the finish, build the instruction and announce it if its dedup key
       changed. Skipped on the fix that starts the run so "Start" is heard
    8. Replay the ghost against the run clock

    Collaborator failures (speech, storage, geocoding) are logged and never
    propagate out of process_fix.
    """

    def __init__(
        self,
        speech: SpeechSink,
        checkpoints: Optional[Iterable[Checkpoint]] = None,
        run_sink: Optional[RunSink] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        cameras: Optional[Iterable[SpeedCamera]] = None,
        voice_mode: str = "normal",
        unit_system: Optional[str] = None,
        volume: int = DEFAULT_NAVIGATION_VOLUME,
        ghost_enabled: bool = True,
        random_source: Optional[RandomSource] = None,
        geocode_blocking: bool = False,
    ):
        self.checkpoints: List[Checkpoint] = list(checkpoints or [])
        self.run_sink: RunSink = run_sink if run_sink is not None else MemoryRunSink()
        # Without an explicit unit system, follow the geocoded country
        self.unit_system = unit_system or DEFAULT_UNIT_SYSTEM
        self.auto_units = unit_system is None
        self.ghost_enabled = ghost_enabled

        self.tracker = LocationTracker()
        self.lap = LapStateMachine()
        self.recorder = RunRecorder()
        self.ghost = GhostTracker()
        self.cameras = SpeedCameraMonitor(cameras)
        self.composer = PacenoteComposer(random_source)
        self.announcer = VoiceAnnouncer(speech, voice_mode, volume)
        self.road_names = (RoadNameTracker(geocoder, blocking=geocode_blocking)
                           if geocoder is not None else None)

        self.last_timestamp: Optional[float] = None
        self.last_location: Optional[FilteredLocation] = None
        self.instruction: Optional[NavigationInstruction] = None
        self.last_run: Optional[RunRecord] = None

    @classmethod
    def from_settings(cls, settings: SettingsManager, speech: SpeechSink, **kwargs) -> 'TrackingSession':
        """Build a session configured from persisted user settings."""
        return cls(
            speech,
            voice_mode=settings.voice_mode,
            unit_system=settings.unit_system if settings.has_unit_preference else None,
            volume=settings.navigation_volume,
            ghost_enabled=settings.ghost_enabled,
            **kwargs,
        )

    # Settings and user actions

    @property
    def voice_mode(self) -> str:
        return self.announcer.voice_mode

    @voice_mode.setter
    def voice_mode(self, mode: str):
        self.announcer.voice_mode = mode

    @property
    def rally(self) -> bool:
        return self.announcer.voice_mode == VOICE_RALLY

    @property
    def state(self) -> LapState:
        return self.lap.state

    @property
    def road_name(self) -> str:
        return self.road_names.road_name if self.road_names else ROAD_NAME_UNKNOWN

    def set_checkpoints(self, checkpoints: Iterable[Checkpoint]):
        self.checkpoints = list(checkpoints)

    def confirm_route(self):
        self.lap.confirm_route()

    def cancel_route(self):
        self.lap.cancel_route()

    def retry(self):
        self.lap.retry()

    def exit(self):
        """Leave the course and drop all run state."""
        self.lap.exit()
        self._clear_run_state()
        self.recorder.clear()

    def end_run(self, now_ms: Optional[float] = None) -> Optional[RunRecord]:
        """
        End the current run early.

        Args:
            now_ms: End time, defaults to the last processed fix time

        Returns:
            The finalised run, or None when no run was in progress
        """
        if now_ms is None:
            now_ms = self.last_timestamp or 0.0
        finish = find_checkpoint(self.checkpoints, CheckpointType.FINISH)
        commands = self.lap.end_run(now_ms, finish)
        self.last_run = None
        self._execute(commands)
        return self.last_run

    # Pipeline

    def process_fix(self, fix: LocationFix) -> Optional[SessionUpdate]:
        """
        Run one fix through the pipeline.

        Returns:
            The update for this fix, or None when the fix was dropped as
            out of order
        """
        if self.last_timestamp is not None and fix.timestamp <= self.last_timestamp:
            logger.debug("Dropping out-of-order fix at %s (last %s)",
                         fix.timestamp, self.last_timestamp)
            return None
        self.last_timestamp = fix.timestamp

        location = self.tracker.process(fix)
        self.last_location = location

        if self.road_names is not None:
            try:
                self.road_names.update(location.latitude, location.longitude, location.timestamp)
            except Exception as e:
                logger.warning("Road name update failed: %s", e)
            self._detect_units()

        update = SessionUpdate(location=location, state=self.lap.state)
        self._check_cameras(location, update)

        self.last_run = None
        commands = self.lap.update(location, self.checkpoints)
        self._execute(commands)
        update.commands = commands
        update.completed_run = self.last_run
        started = any(command.type == CommandType.START_TIMER for command in commands)

        if self.lap.is_running:
            self.recorder.record(location)
            update.elapsed_ms = self.lap.elapsed_ms(location.timestamp)
            # Navigation stops speech first, so it waits a fix for "Start" to play
            if not started:
                self._navigate(location, update)
            if self.ghost.loaded:
                update.ghost_position = self.ghost.position_at(update.elapsed_ms)
                update.ghost_delta_ms = self.ghost.delta_ms(
                    location.latitude, location.longitude, update.elapsed_ms)

        update.state = self.lap.state
        update.road_name = self.road_name
        return update

    def _detect_units(self):
        if not self.auto_units or not self.road_names.country_code:
            return
        unit = speed_unit_for_country(self.road_names.country_code)
        if unit != self.unit_system:
            logger.info("Switching to %s for country %s", unit, self.road_names.country_code)
            self.unit_system = unit

    def _check_cameras(self, location: FilteredLocation, update: SessionUpdate):
        check = self.cameras.check(location, self.lap.is_running)
        update.nearby_camera = check.closest
        update.nearby_camera_distance = check.closest_distance
        for warning in check.warnings:
            if self.rally:
                pitch, rate = SPEECH_CAMERA_RALLY_PITCH, SPEECH_CAMERA_RALLY_RATE
            else:
                pitch, rate = SPEECH_CAMERA_PITCH, SPEECH_CAMERA_RATE
            self.announcer.announce(camera_message(warning.bracket, self.voice_mode), pitch, rate)

    def _navigate(self, location: FilteredLocation, update: SessionUpdate):
        finish = find_checkpoint(self.checkpoints, CheckpointType.FINISH)
        if finish is None or location.heading is None or self.lap.announced_finish:
            return

        distance = haversine_distance(location.latitude, location.longitude,
                                      finish.latitude, finish.longitude)
        update.distance_to_finish = distance
        if distance <= 0:
            return
        target = bearing(location.latitude, location.longitude,
                         finish.latitude, finish.longitude)

        segments = analyze_road_ahead(location.latitude, location.longitude,
                                      finish.latitude, finish.longitude, self.rally)
        turns = detect_upcoming_turns(segments, location.heading, self.rally)
        instruction = generate_instruction(location.heading, target, distance, turns,
                                           location.speed, self.unit_system, self.composer)
        self.instruction = instruction
        update.instruction = instruction
        update.upcoming_turns = turns

        key = instruction_key(instruction)
        if self.announcer.is_new(key):
            message = build_announcement(instruction, self.voice_mode, self.unit_system,
                                         self.composer, location.speed)
            self.announcer.announce_navigation(key, message)

    # Command execution

    def _execute(self, commands: List[LapCommand]):
        for command in commands:
            try:
                self._execute_one(command)
            except Exception as e:
                logger.warning("Command %s failed: %s", command.type.value, e)

    def _execute_one(self, command: LapCommand):
        if command.type == CommandType.START_TIMER:
            self.recorder.start(command.timestamp, command.start_checkpoint)
        elif command.type == CommandType.STOP_SPEECH:
            self.announcer.stop()
        elif command.type == CommandType.ANNOUNCE:
            self.announcer.announce(command.message, command.pitch, command.rate)
        elif command.type == CommandType.RESET_FILTERS:
            self.tracker.reset()
        elif command.type == CommandType.RESET_INSTRUCTION_KEY:
            self.announcer.reset_key()
        elif command.type == CommandType.LOAD_GHOST:
            self._load_ghost(command.course_id)
        elif command.type == CommandType.FINALIZE_RUN:
            self._finalize_run(command)
        elif command.type == CommandType.CLEAR_NAVIGATION:
            self._clear_run_state()

    def _load_ghost(self, course_id: str):
        self.ghost.clear()
        if not self.ghost_enabled:
            return
        best = self.run_sink.get_best_run(course_id)
        if best is not None and best.ghost_path:
            logger.info("Loaded ghost for %s (%s)", course_id, best.format_time())
            self.ghost.load(best.ghost_path)

    def _finalize_run(self, command: LapCommand):
        try:
            previous = self.run_sink.count_runs(command.course_id)
        except Exception as e:
            logger.warning("Could not count previous runs: %s", e)
            previous = 0

        record = self.recorder.finalize(
            end_time=command.timestamp,
            duration=command.elapsed_ms,
            start_checkpoint=command.start_checkpoint,
            finish_checkpoint=command.finish_checkpoint,
            previous_runs=previous,
        )
        self.last_run = record
        if not self.run_sink.save_run(record):
            logger.warning("Run %s was not saved", record.id)

    def _clear_run_state(self):
        self.instruction = None
        self.ghost.clear()
        self.cameras.clear()
