"""Turn heading error and upcoming turns into navigation instructions and callouts."""

from dataclasses import dataclass, field
from typing import List, Optional

from lap_timing.utils.geometry import angle_difference
from utils.conversions import round_half_up, spoken_distance
from .pacenotes import PacenoteComposer, RallyPacenote, render_pacenote
from .road_ahead import UpcomingTurn, severity_for_angle
from config import (
    STRAIGHT_THRESHOLD_DEG,
    NEXT_TURN_DESCRIBE_M,
    INSTRUCTION_KEY_BUCKET_M,
    RALLY_LONG_STRAIGHT_M,
    RALLY_MEDIUM_STRAIGHT_M,
    RALLY_SHORT_STRAIGHT_CALLS,
    NORMAL_LONG_STRAIGHT_M,
    NORMAL_TURN_AHEAD_M,
    DEFAULT_UNIT_SYSTEM,
)

VOICE_RALLY = "rally"
VOICE_NORMAL = "normal"
VOICE_OFF = "off"


@dataclass
class NavigationInstruction:
    """What the driver should do next to reach the target checkpoint."""

    type: str  # "straight" or "turn"
    distance: float
    heading: Optional[float]
    direction: Optional[str] = None
    severity: Optional[int] = None
    rally_pacenote: Optional[RallyPacenote] = None
    upcoming_turns: List[UpcomingTurn] = field(default_factory=list)
    next_turn_description: str = ""


def describe_next_turn(turn: UpcomingTurn, unit_system: str) -> str:
    """Announcement text for the next upcoming turn."""
    value, unit = spoken_distance(turn.distance, unit_system)
    if turn.angle >= 150:
        return f"Take the next {turn.type} in {value} {unit}"
    if turn.angle >= 90:
        return f"Turn {turn.type} in {value} {unit}"
    return f"Bear {turn.type} in {value} {unit}"


def generate_instruction(
    current_heading: float,
    target_bearing: float,
    distance: float,
    upcoming_turns: Optional[List[UpcomingTurn]] = None,
    current_speed: float = 0.0,
    unit_system: str = DEFAULT_UNIT_SYSTEM,
    composer: Optional[PacenoteComposer] = None,
) -> NavigationInstruction:
    """
    Build the instruction for the current heading and target.

    Args:
        current_heading: Smoothed heading in degrees
        target_bearing: Bearing to the next checkpoint
        distance: Metres to the next checkpoint
        upcoming_turns: Turns detected on the road ahead
        current_speed: Speed in km/h, feeds the rally pacenote
        unit_system: "mph" or "kmh" for the spoken turn description
        composer: Pacenote composer (a fresh one if omitted)

    Returns:
        A straight instruction when the heading error is under 10 degrees,
        otherwise a turn instruction carrying a rally pacenote
    """
    diff = angle_difference(current_heading, target_bearing)
    abs_angle = abs(diff)

    if abs_angle < STRAIGHT_THRESHOLD_DEG:
        return NavigationInstruction(type="straight", distance=distance,
                                     heading=current_heading)

    turns = list(upcoming_turns or [])
    direction = "left" if diff < 0 else "right"
    severity = severity_for_angle(abs_angle)
    composer = composer or PacenoteComposer()

    pacenote = composer.compose(severity, direction, abs_angle, distance,
                                current_speed, turns)

    description = ""
    if turns and turns[0].distance < NEXT_TURN_DESCRIBE_M:
        description = describe_next_turn(turns[0], unit_system)

    return NavigationInstruction(
        type="turn",
        distance=distance,
        heading=current_heading,
        direction=direction,
        severity=severity,
        rally_pacenote=pacenote,
        upcoming_turns=turns,
        next_turn_description=description,
    )


def instruction_key(instruction: NavigationInstruction) -> str:
    """Deduplication key; an instruction is only spoken when its key changes."""
    if instruction.type == "straight":
        return "straight"
    if instruction.type == "turn":
        if instruction.next_turn_description:
            return instruction.next_turn_description
        bucket = round_half_up(instruction.distance / INSTRUCTION_KEY_BUCKET_M) * INSTRUCTION_KEY_BUCKET_M
        return f"{instruction.direction}_{instruction.severity}_{bucket}"
    return "unknown"


def build_announcement(
    instruction: NavigationInstruction,
    voice_mode: str,
    unit_system: str = DEFAULT_UNIT_SYSTEM,
    composer: Optional[PacenoteComposer] = None,
    current_speed: float = 0.0,
) -> str:
    """
    Spoken message for an instruction.

    Rally mode calls straights by length and turns as pacenotes, chained
    into the second upcoming turn when one exists. Normal mode prefers the
    next-turn description and falls back to plain directions. Returns an
    empty string when there is nothing to say.
    """
    composer = composer or PacenoteComposer()

    if voice_mode == VOICE_RALLY:
        if instruction.type == "straight":
            if instruction.distance > RALLY_LONG_STRAIGHT_M:
                return "flat out, long straight"
            if instruction.distance > RALLY_MEDIUM_STRAIGHT_M:
                return "keep in it"
            return composer.choose(RALLY_SHORT_STRAIGHT_CALLS)
        if instruction.rally_pacenote is None:
            return ""
        next_note = None
        if len(instruction.upcoming_turns) > 1:
            second = instruction.upcoming_turns[1]
            next_note = composer.compose(second.severity, second.type, second.angle,
                                         second.distance, current_speed)
        return render_pacenote(instruction.rally_pacenote, next_note)

    if instruction.next_turn_description:
        return instruction.next_turn_description

    if instruction.type == "straight":
        if instruction.distance > NORMAL_LONG_STRAIGHT_M:
            value, unit = spoken_distance(instruction.distance, unit_system)
            return f"Continue straight for {value} {unit}"
        return "Continue straight ahead"

    if instruction.direction is None:
        return ""
    if instruction.distance < NORMAL_TURN_AHEAD_M:
        return f"Turn {instruction.direction} ahead"
    value, unit = spoken_distance(instruction.distance, unit_system)
    return f"Turn {instruction.direction} in {value} {unit}"
