"""
Unit tests for pacenote composition and rendering.
Random choices are driven by a scripted random source.
"""

import pytest
from copilot.pacenotes import (
    CornerType,
    Modifier,
    Crest,
    Hazard,
    RallyPacenote,
    PacenoteComposer,
    SystemRandomSource,
    spoken,
    render_pacenote,
)
from copilot.road_ahead import UpcomingTurn

NO_EVENT = 0.99  # crest draw misses, tightens/opens/caution draws hit
NEUTRAL = 0.0  # crest draw hits, threshold draws miss


def turn(distance, severity=3, direction="left", angle=90.0):
    return UpcomingTurn(type=direction, severity=severity, distance=distance,
                        angle=angle, description="")


class TestSpoken:
    """Tests for vocabulary spoken forms."""

    @pytest.mark.unit
    def test_hyphen_becomes_space(self):
        assert spoken(Modifier.VERY_LONG) == "very long"
        assert spoken(Modifier.TIGHTENS_OVER_CREST) == "tightens over crest"

    @pytest.mark.unit
    def test_dont_cut(self):
        assert spoken(Hazard.DONT_CUT) == "don't cut"

    @pytest.mark.unit
    def test_plain(self):
        assert spoken(CornerType.HAIRPIN) == "hairpin"


class TestComposerChoose:
    """Tests for uniform choice."""

    @pytest.mark.unit
    def test_choose_uses_draw(self, sequence_random):
        composer = PacenoteComposer(sequence_random([0.0, 0.5, 0.99]))
        options = ["a", "b", "c"]
        assert composer.choose(options) == "a"
        assert composer.choose(options) == "b"
        assert composer.choose(options) == "c"

    @pytest.mark.unit
    def test_seeded_system_random_is_reproducible(self):
        first = SystemRandomSource(42)
        second = SystemRandomSource(42)
        assert [first.next() for _ in range(5)] == [second.next() for _ in range(5)]


class TestCompose:
    """Tests for pacenote composition."""

    @pytest.mark.unit
    def test_square_tightens(self, sequence_random):
        random_source = sequence_random([0.9, 0.7])
        note = PacenoteComposer(random_source).compose(3, "left", 90.0, 150.0, 50.0)

        assert note.corner_type == CornerType.SQUARE
        assert note.modifier == Modifier.TIGHTENS
        assert note.crest is None
        assert note.warning is None
        assert note.distance == 150
        assert random_source.calls == 2

    @pytest.mark.unit
    def test_crest_tightens_over_with_caution(self, sequence_random):
        random_source = sequence_random([0.1, 0.0, 0.9])
        note = PacenoteComposer(random_source).compose(2, "right", 130.0, 150.0, 50.0)

        assert note.corner_type == CornerType.ACUTE
        assert note.crest == Crest.CREST
        assert note.modifier == Modifier.TIGHTENS_OVER_CREST
        assert note.warning == Hazard.CAUTION
        # crest chance, crest choice, caution: no fallback draw
        assert random_source.calls == 3

    @pytest.mark.unit
    def test_dont_cut_at_speed(self, sequence_random):
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL])).compose(
            3, "left", 100.0, 150.0, 90.0)
        assert note.warning == Hazard.DONT_CUT

    @pytest.mark.unit
    def test_care_when_fast_on_severity_four(self, sequence_random):
        random_source = sequence_random([NO_EVENT])
        note = PacenoteComposer(random_source).compose(4, "left", 70.0, 150.0, 110.0)

        assert note.warning == Hazard.CARE
        assert note.corner_type is None
        assert note.modifier is None
        assert random_source.calls == 1

    @pytest.mark.unit
    def test_caution_replaces_speed_warning(self, sequence_random):
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL, 0.95])).compose(
            1, "left", 170.0, 150.0, 90.0)
        assert note.corner_type == CornerType.HAIRPIN
        assert note.warning == Hazard.CAUTION

    @pytest.mark.unit
    def test_opens_long_on_gentle_corner(self, sequence_random):
        note = PacenoteComposer(sequence_random([0.5, 0.8])).compose(
            6, "right", 20.0, 150.0, 50.0)
        assert note.corner_type is None
        assert note.modifier == Modifier.OPENS_LONG

    @pytest.mark.unit
    @pytest.mark.parametrize("speed,expected", [
        (95.0, CornerType.FLAT),
        (80.0, CornerType.BALLISTIC),
        (50.0, CornerType.KINK),
    ])
    def test_fast_gentle_bends(self, sequence_random, speed, expected):
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL])).compose(
            6, "right", 15.0, 150.0, speed)
        assert note.corner_type == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("distance,expected", [
        (250.0, Modifier.LONG),
        (450.0, Modifier.VERY_LONG),
        (40.0, Modifier.SHORT),
        (20.0, Modifier.SHORT),
        (400.0, None),
        (200.0, None),
    ])
    def test_distance_modifiers(self, sequence_random, distance, expected):
        note = PacenoteComposer(sequence_random([NO_EVENT])).compose(
            4, "left", 70.0, distance, 50.0)
        assert note.modifier == expected

    @pytest.mark.unit
    def test_linked_corner_tightens_into(self, sequence_random):
        random_source = sequence_random([NO_EVENT])
        turns = [turn(150.0), turn(210.0, severity=2)]
        note = PacenoteComposer(random_source).compose(3, "left", 100.0, 150.0, 50.0, turns)

        assert note.distance_to_next == 60
        assert note.modifier == Modifier.TIGHTENS_INTO
        assert random_source.calls == 1

    @pytest.mark.unit
    def test_linked_corner_opens(self, sequence_random):
        turns = [turn(150.0), turn(210.0, severity=5)]
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL])).compose(
            3, "left", 100.0, 150.0, 50.0, turns)
        assert note.modifier == Modifier.OPENS

    @pytest.mark.unit
    def test_distant_next_corner_not_linked(self, sequence_random):
        turns = [turn(150.0), turn(400.0, severity=2)]
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL])).compose(
            3, "left", 100.0, 150.0, 50.0, turns)
        assert note.distance_to_next is None
        assert note.modifier is None

    @pytest.mark.unit
    def test_distance_rounded_half_up(self, sequence_random):
        note = PacenoteComposer(sequence_random([NO_EVENT])).compose(
            4, "left", 70.0, 120.5, 50.0)
        assert note.distance == 121

    @pytest.mark.unit
    def test_square_fast_long_corner(self, sequence_random):
        note = PacenoteComposer(sequence_random([NO_EVENT, NEUTRAL])).compose(
            3, "right", 87.0, 250.0, 95.0)

        assert note.corner_type == CornerType.SQUARE
        assert note.warning == Hazard.DONT_CUT
        assert note.modifier == Modifier.LONG
        assert note.crest is None
        assert render_pacenote(note) == "250, square, 3 right, long, don't cut"


class TestComposeDistribution:
    """Random calls measured over many seeded draws."""

    DRAWS = 20000

    def compose_many(self, seed, *args):
        composer = PacenoteComposer(SystemRandomSource(seed))
        return [composer.compose(*args) for _ in range(self.DRAWS)]

    def rate(self, notes, predicate):
        return sum(1 for note in notes if predicate(note)) / len(notes)

    @pytest.mark.unit
    def test_crest_rate_tight_corner(self):
        notes = self.compose_many(1, 3, "left", 100.0, 150.0, 50.0)
        assert self.rate(notes, lambda n: n.crest is not None) == pytest.approx(0.25, abs=0.02)

    @pytest.mark.unit
    def test_crest_rate_open_corner(self):
        notes = self.compose_many(2, 5, "left", 40.0, 150.0, 50.0)
        assert self.rate(notes, lambda n: n.crest is not None) == pytest.approx(0.15, abs=0.02)

    @pytest.mark.unit
    def test_crest_choice_uniform(self):
        notes = [n for n in self.compose_many(3, 3, "left", 100.0, 150.0, 50.0)
                 if n.crest is not None]
        for crest in (Crest.CREST, Crest.SMALL_CREST, Crest.BROW, Crest.DIP):
            assert self.rate(notes, lambda n: n.crest == crest) == pytest.approx(0.25, abs=0.04)

    @pytest.mark.unit
    def test_tightens_rate(self):
        # Corners without a crest only get tightens from the fallback draw
        notes = [n for n in self.compose_many(4, 3, "left", 100.0, 150.0, 50.0)
                 if n.crest is None]
        assert self.rate(notes, lambda n: n.modifier == Modifier.TIGHTENS) == \
            pytest.approx(0.35, abs=0.02)

    @pytest.mark.unit
    def test_opens_long_rate(self):
        notes = self.compose_many(5, 5, "left", 40.0, 150.0, 50.0)
        assert self.rate(notes, lambda n: n.modifier == Modifier.OPENS_LONG) == \
            pytest.approx(0.30, abs=0.02)

    @pytest.mark.unit
    def test_caution_rate(self):
        notes = self.compose_many(6, 2, "left", 130.0, 150.0, 50.0)
        assert self.rate(notes, lambda n: n.warning == Hazard.CAUTION) == \
            pytest.approx(0.20, abs=0.02)

    @pytest.mark.unit
    def test_no_caution_on_severity_three(self):
        notes = self.compose_many(7, 3, "left", 100.0, 150.0, 50.0)
        assert all(n.warning is None for n in notes)


class TestRenderPacenote:
    """Tests for pacenote rendering order."""

    @pytest.mark.unit
    def test_full_order(self):
        note = RallyPacenote(severity=2, direction="right", corner_type=CornerType.ACUTE,
                             modifier=Modifier.TIGHTENS_OVER_CREST, crest=Crest.CREST,
                             warning=Hazard.CAUTION, distance=150)
        assert render_pacenote(note) == \
            "150, crest, caution, acute, 2 right, tightens over crest"

    @pytest.mark.unit
    def test_trailing_warning(self):
        note = RallyPacenote(severity=3, direction="left", warning=Hazard.DONT_CUT,
                             distance=150)
        assert render_pacenote(note) == "150, 3 left, don't cut"

    @pytest.mark.unit
    def test_short_distance_not_spoken(self):
        note = RallyPacenote(severity=4, direction="left", distance=60)
        assert render_pacenote(note) == "4 left"

    @pytest.mark.unit
    def test_into_next_corner(self):
        note = RallyPacenote(severity=3, direction="left", distance=150,
                             modifier=Modifier.TIGHTENS_INTO, distance_to_next=60)
        next_note = RallyPacenote(severity=2, direction="left")
        assert render_pacenote(note, next_note) == \
            "150, 3 left, tightens into, into 2 left"

    @pytest.mark.unit
    def test_no_link_without_gap(self):
        note = RallyPacenote(severity=3, direction="left", distance=150)
        next_note = RallyPacenote(severity=2, direction="left")
        assert render_pacenote(note, next_note) == "150, 3 left"
