"""Compose and render rally-style pacenotes for upcoming corners."""

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from .road_ahead import UpcomingTurn
from utils.conversions import round_half_up
from config import (
    PACENOTE_SPOKEN_DISTANCE_M,
    PACENOTE_LINK_DISTANCE_M,
    PACENOTE_CREST_CHANCE_TIGHT,
    PACENOTE_CREST_CHANCE_OPEN,
    PACENOTE_TIGHTENS_DRAW,
    PACENOTE_OPENS_LONG_DRAW,
    PACENOTE_CAUTION_DRAW,
)


class CornerType(Enum):
    HAIRPIN = "hairpin"
    SQUARE = "square"
    ACUTE = "acute"
    KINK = "kink"
    CHICANE = "chicane"
    FLAT = "flat"
    BALLISTIC = "ballistic"
    ABSOLUTE = "absolute"


class Modifier(Enum):
    TIGHTENS = "tightens"
    OPENS = "opens"
    LONG = "long"
    SHORT = "short"
    VERY_LONG = "very-long"
    VERY_SHORT = "very-short"
    PLUS = "plus"
    MINUS = "minus"
    TIGHTENS_OVER_CREST = "tightens-over-crest"
    TIGHTENS_INTO = "tightens-into"
    OPENS_LONG = "opens-long"


class Crest(Enum):
    CREST = "crest"
    SMALL_CREST = "small-crest"
    BIG_CREST = "big-crest"
    FLAT_CREST = "flat-crest"
    JUMP = "jump"
    JUMP_MAYBE = "jump-maybe"
    BROW = "brow"
    BUMP = "bump"
    DIP = "dip"


class Hazard(Enum):
    CAUTION = "caution"
    DANGER = "danger"
    DOUBLE_DANGER = "double-danger"
    CARE = "care"
    DONT_CUT = "dont-cut"
    CUT = "cut"
    SMALL_CUT = "small-cut"
    BIG_CUT = "big-cut"
    SLIPPY = "slippy"
    ROUGH = "rough"
    VERY_ROUGH = "very-rough"
    NARROW = "narrow"
    VERY_NARROW = "very-narrow"


# Warnings spoken before the corner call, the rest are spoken after it
LEADING_HAZARDS = (Hazard.CAUTION, Hazard.DANGER, Hazard.DOUBLE_DANGER, Hazard.CARE)

# Crest options picked at random when a crest is called
RANDOM_CRESTS = [Crest.CREST, Crest.SMALL_CREST, Crest.BROW, Crest.DIP]


@dataclass
class RallyPacenote:
    """A single composed pacenote before rendering."""

    severity: int
    direction: str  # "left" or "right"
    corner_type: Optional[CornerType] = None
    modifier: Optional[Modifier] = None
    crest: Optional[Crest] = None
    warning: Optional[Hazard] = None
    distance: Optional[int] = None
    distance_to_next: Optional[int] = None


class RandomSource(Protocol):
    """Source of uniform draws in [0, 1)."""

    def next(self) -> float: ...


class SystemRandomSource:
    """RandomSource backed by random.Random, seedable for replays."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def next(self) -> float:
        return self._rng.random()


def spoken(value: Enum) -> str:
    """Spoken form of a vocabulary term ("very-long" -> "very long")."""
    if value is Hazard.DONT_CUT:
        return "don't cut"
    return value.value.replace("-", " ")


class PacenoteComposer:
    """
    Builds RallyPacenote values from a turn's geometry and the current speed.

    Crests, fallback modifiers and caution calls are picked at random to
    keep repeated runs from sounding identical; inject a deterministic
    RandomSource to make composition reproducible.
    """

    def __init__(self, random_source: Optional[RandomSource] = None):
        self.random = random_source if random_source is not None else SystemRandomSource()

    def choose(self, options: Sequence):
        """Pick one option uniformly using the random source."""
        return options[int(math.floor(self.random.next() * len(options)))]

    def compose(
        self,
        severity: int,
        direction: str,
        abs_angle: float,
        distance: float,
        current_speed: float,
        upcoming_turns: Optional[List[UpcomingTurn]] = None,
    ) -> RallyPacenote:
        """
        Compose a pacenote for one corner.

        Args:
            severity: 1 (tightest) to 6 (gentlest)
            direction: "left" or "right"
            abs_angle: Absolute turn angle in degrees
            distance: Metres to the corner
            current_speed: Current speed in km/h
            upcoming_turns: Turns ahead, the second one is used for linkage

        Returns:
            Composed pacenote with distance rounded to whole metres
        """
        note = RallyPacenote(severity=severity, direction=direction)
        note.corner_type = self._corner_type(severity, abs_angle, current_speed)

        modifiers: List[Modifier] = []
        hazards: List[Hazard] = []

        # Source order kept: the very-short branch is shadowed by short
        if 200 < distance < 400:
            modifiers.append(Modifier.LONG)
        elif distance > 400:
            modifiers.append(Modifier.VERY_LONG)
        elif distance < 50:
            modifiers.append(Modifier.SHORT)
        elif distance < 30:
            modifiers.append(Modifier.VERY_SHORT)

        if current_speed > 85 and severity <= 3:
            hazards.append(Hazard.DONT_CUT)
        elif current_speed > 100 and severity <= 4:
            hazards.append(Hazard.CARE)

        crest_chance = PACENOTE_CREST_CHANCE_TIGHT if severity <= 3 else PACENOTE_CREST_CHANCE_OPEN
        if self.random.next() < crest_chance:
            note.crest = self.choose(RANDOM_CRESTS)
            if note.crest in (Crest.CREST, Crest.SMALL_CREST) and severity <= 3:
                modifiers.append(Modifier.TIGHTENS_OVER_CREST)

        if upcoming_turns and len(upcoming_turns) > 1:
            next_turn = upcoming_turns[1]
            gap = next_turn.distance - distance
            if 0 < gap < PACENOTE_LINK_DISTANCE_M:
                note.distance_to_next = round_half_up(gap)
                if next_turn.severity < severity:
                    modifiers.append(Modifier.TIGHTENS_INTO)
                elif next_turn.severity > severity:
                    modifiers.append(Modifier.OPENS)

        if (severity <= 3 and Modifier.TIGHTENS_OVER_CREST not in modifiers
                and Modifier.TIGHTENS_INTO not in modifiers):
            if self.random.next() > PACENOTE_TIGHTENS_DRAW:
                modifiers.append(Modifier.TIGHTENS)
        elif severity >= 5 and not modifiers:
            if self.random.next() > PACENOTE_OPENS_LONG_DRAW:
                modifiers.append(Modifier.OPENS_LONG)

        # Only the first hazard is rendered. Caution breaks that rule and
        # replaces a dont-cut or care picked above
        if severity <= 2 and self.random.next() > PACENOTE_CAUTION_DRAW:
            hazards = [Hazard.CAUTION]

        if modifiers:
            note.modifier = modifiers[0]
        if hazards:
            note.warning = hazards[0]
        note.distance = round_half_up(distance)

        return note

    def _corner_type(self, severity: int, abs_angle: float,
                     current_speed: float) -> Optional[CornerType]:
        corner_type = None
        if abs_angle >= 150:
            corner_type = CornerType.HAIRPIN
        elif 85 <= abs_angle <= 95:
            corner_type = CornerType.SQUARE
        elif abs_angle > 95:
            corner_type = CornerType.ACUTE
        elif abs_angle < 18:
            corner_type = CornerType.KINK

        # Fast gentle bends are called by how committed they are
        if severity == 6 and abs_angle < 25:
            if current_speed > 90:
                corner_type = CornerType.FLAT
            elif current_speed > 70:
                corner_type = CornerType.BALLISTIC

        return corner_type


def render_pacenote(note: RallyPacenote,
                    next_note: Optional[RallyPacenote] = None) -> str:
    """
    Render a pacenote as spoken text.

    Tokens follow a fixed order: distance, crest, leading warning, corner
    type, severity and direction, modifier, trailing warning, then the
    "into" link to the next corner. Tokens are joined with ", ".
    """
    parts: List[str] = []

    if note.distance and note.distance > PACENOTE_SPOKEN_DISTANCE_M:
        parts.append(str(note.distance))

    if note.crest is not None:
        parts.append(spoken(note.crest))

    if note.warning in LEADING_HAZARDS:
        parts.append(spoken(note.warning))

    if note.corner_type is not None:
        parts.append(spoken(note.corner_type))

    parts.append(f"{note.severity} {note.direction}")

    if note.modifier is not None:
        parts.append(spoken(note.modifier))

    if note.warning is not None and note.warning not in LEADING_HAZARDS:
        parts.append(spoken(note.warning))

    if (next_note is not None and note.distance_to_next
            and note.distance_to_next < PACENOTE_LINK_DISTANCE_M):
        parts.append(f"into {next_note.severity} {next_note.direction}")

    return ", ".join(parts)
