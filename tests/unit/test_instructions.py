"""
Unit tests for navigation instruction generation and announcement text.
"""

import pytest
from copilot.instructions import (
    NavigationInstruction,
    describe_next_turn,
    generate_instruction,
    instruction_key,
    build_announcement,
)
from copilot.pacenotes import PacenoteComposer, RallyPacenote
from copilot.road_ahead import UpcomingTurn


def turn(distance, angle=90.0, direction="left", severity=3):
    return UpcomingTurn(type=direction, severity=severity, distance=distance,
                        angle=angle, description="")


class TestDescribeNextTurn:
    """Tests for next-turn descriptions."""

    @pytest.mark.unit
    def test_take_the_next(self):
        assert describe_next_turn(turn(120.0, angle=160.0), "kmh") == \
            "Take the next left in 120 meters"

    @pytest.mark.unit
    def test_turn(self):
        assert describe_next_turn(turn(120.0, angle=95.0, direction="right"), "kmh") == \
            "Turn right in 120 meters"

    @pytest.mark.unit
    def test_bear_in_yards(self):
        assert describe_next_turn(turn(120.0, angle=40.0), "mph") == \
            "Bear left in 131 yards"


class TestGenerateInstruction:
    """Tests for heading error to instruction mapping."""

    @pytest.mark.unit
    def test_small_error_is_straight(self):
        instruction = generate_instruction(0.0, 9.9, 300.0)
        assert instruction.type == "straight"
        assert instruction.distance == 300.0
        assert instruction.heading == 0.0
        assert instruction.rally_pacenote is None

    @pytest.mark.unit
    def test_slight_offset_long_straight(self):
        instruction = generate_instruction(0.0, 5.0, 600.0)
        assert instruction.type == "straight"
        assert instruction.distance == 600.0
        assert instruction_key(instruction) == "straight"

    @pytest.mark.unit
    def test_sharp_right(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.99, 0.0]))
        instruction = generate_instruction(0.0, 170.0, 80.0, composer=composer)

        assert instruction.type == "turn"
        assert instruction.direction == "right"
        assert instruction.severity == 1
        assert instruction.rally_pacenote.corner_type.value == "hairpin"

    @pytest.mark.unit
    def test_right_turn(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.99, 0.0]))
        instruction = generate_instruction(0.0, 90.0, 300.0, composer=composer)

        assert instruction.type == "turn"
        assert instruction.direction == "right"
        assert instruction.severity == 3
        assert isinstance(instruction.rally_pacenote, RallyPacenote)
        assert instruction.rally_pacenote.severity == 3
        assert instruction.next_turn_description == ""

    @pytest.mark.unit
    def test_left_turn_across_north(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.99]))
        instruction = generate_instruction(10.0, 300.0, 300.0, composer=composer)
        assert instruction.direction == "left"
        assert instruction.severity == 4

    @pytest.mark.unit
    def test_near_turn_is_described(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.99, 0.0]))
        turns = [turn(120.0, angle=160.0)]
        instruction = generate_instruction(0.0, 90.0, 300.0, turns, composer=composer)
        assert instruction.next_turn_description == "Take the next left in 120 meters"
        assert instruction.upcoming_turns == turns

    @pytest.mark.unit
    def test_far_turn_not_described(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.99, 0.0]))
        instruction = generate_instruction(0.0, 90.0, 1000.0, [turn(850.0)],
                                           composer=composer)
        assert instruction.next_turn_description == ""


class TestInstructionKey:
    """Tests for the dedup key."""

    @pytest.mark.unit
    def test_straight(self):
        assert instruction_key(NavigationInstruction("straight", 300.0, 0.0)) == "straight"

    @pytest.mark.unit
    def test_turn_with_description(self):
        instruction = NavigationInstruction("turn", 300.0, 0.0, direction="left", severity=3,
                                            next_turn_description="Turn left in 120 meters")
        assert instruction_key(instruction) == "Turn left in 120 meters"

    @pytest.mark.unit
    @pytest.mark.parametrize("distance,expected", [
        (130.0, "right_3_150"),
        (125.0, "right_3_150"),
        (124.0, "right_3_100"),
    ])
    def test_turn_bucketed(self, distance, expected):
        instruction = NavigationInstruction("turn", distance, 0.0, direction="right", severity=3)
        assert instruction_key(instruction) == expected

    @pytest.mark.unit
    def test_unknown_type(self):
        assert instruction_key(NavigationInstruction("other", 1.0, None)) == "unknown"


class TestBuildAnnouncement:
    """Tests for spoken messages per voice mode."""

    @pytest.mark.unit
    @pytest.mark.parametrize("distance,expected", [
        (600.0, "flat out, long straight"),
        (300.0, "keep in it"),
    ])
    def test_rally_straights(self, distance, expected):
        instruction = NavigationInstruction("straight", distance, 0.0)
        assert build_announcement(instruction, "rally") == expected

    @pytest.mark.unit
    def test_rally_short_straight_random(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.5]))
        instruction = NavigationInstruction("straight", 100.0, 0.0)
        assert build_announcement(instruction, "rally", composer=composer) == "stay middle"

    @pytest.mark.unit
    def test_rally_turn_renders_pacenote(self):
        note = RallyPacenote(severity=3, direction="left", distance=150)
        instruction = NavigationInstruction("turn", 150.0, 0.0, direction="left",
                                            severity=3, rally_pacenote=note)
        assert build_announcement(instruction, "rally") == "150, 3 left"

    @pytest.mark.unit
    def test_rally_turn_chains_second_turn(self, sequence_random):
        note = RallyPacenote(severity=3, direction="left", distance=150, distance_to_next=60)
        turns = [turn(150.0), turn(210.0, direction="right", severity=2, angle=130.0)]
        instruction = NavigationInstruction("turn", 150.0, 0.0, direction="left", severity=3,
                                            rally_pacenote=note, upcoming_turns=turns)
        composer = PacenoteComposer(sequence_random([0.99, 0.0, 0.0]))
        assert build_announcement(instruction, "rally", composer=composer) == \
            "150, 3 left, into 2 right"

    @pytest.mark.unit
    def test_rally_turn_without_pacenote(self):
        instruction = NavigationInstruction("turn", 150.0, 0.0, direction="left", severity=3)
        assert build_announcement(instruction, "rally") == ""

    @pytest.mark.unit
    def test_normal_prefers_description(self):
        instruction = NavigationInstruction("turn", 300.0, 0.0, direction="left", severity=3,
                                            next_turn_description="Bear left in 120 meters")
        assert build_announcement(instruction, "normal") == "Bear left in 120 meters"

    @pytest.mark.unit
    def test_normal_long_straight(self):
        instruction = NavigationInstruction("straight", 600.0, 0.0)
        assert build_announcement(instruction, "normal") == "Continue straight for 600 meters"
        assert build_announcement(instruction, "normal", "mph") == \
            "Continue straight for 656 yards"

    @pytest.mark.unit
    def test_normal_short_straight(self):
        instruction = NavigationInstruction("straight", 300.0, 0.0)
        assert build_announcement(instruction, "normal") == "Continue straight ahead"

    @pytest.mark.unit
    def test_normal_turn_ahead(self):
        instruction = NavigationInstruction("turn", 80.0, 0.0, direction="right", severity=3)
        assert build_announcement(instruction, "normal") == "Turn right ahead"

    @pytest.mark.unit
    def test_normal_turn_in_distance(self):
        instruction = NavigationInstruction("turn", 250.0, 0.0, direction="right", severity=3)
        assert build_announcement(instruction, "normal") == "Turn right in 250 meters"
        assert build_announcement(instruction, "normal", "mph") == "Turn right in 273 yards"
