"""
Shared pytest fixtures for timeattack tests.
"""

import os
import sys
import pytest
import tempfile
import json

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from lap_timing.data.models import Checkpoint, CheckpointType  # noqa: E402


class SequenceRandom:
    """RandomSource replaying a fixed list of draws, then a default."""

    def __init__(self, values, default=0.0):
        self.values = list(values)
        self.default = default
        self.calls = 0

    def next(self):
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return self.default


class RecordingSpeech:
    """SpeechSink that records what would have been said."""

    def __init__(self):
        self.spoken = []
        self.stops = 0

    def speak(self, message, options):
        self.spoken.append((message, options))

    def stop(self):
        self.stops += 1

    @property
    def messages(self):
        return [message for message, _ in self.spoken]


@pytest.fixture
def sequence_random():
    """Factory for deterministic random sources."""
    return SequenceRandom


@pytest.fixture
def speech():
    return RecordingSpeech()


@pytest.fixture
def temp_settings_file():
    """Create a temporary settings file for testing SettingsManager."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        f.write('{}')
        temp_path = f.name
    yield temp_path
    # Cleanup
    if os.path.exists(temp_path):
        os.remove(temp_path)


@pytest.fixture
def temp_settings_with_data():
    """Create a temporary settings file with pre-populated data."""
    test_data = {
        "voice": {
            "mode": "rally",
            "volume": 65
        },
        "units": {
            "system": "mph"
        },
        "ghost": {
            "enabled": False
        }
    }
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        json.dump(test_data, f)
        temp_path = f.name
    yield temp_path
    # Cleanup
    if os.path.exists(temp_path):
        os.remove(temp_path)


@pytest.fixture
def course_points():
    """Start and finish roughly 500 m apart, due north, near London."""
    return {
        'start': (51.5000, -0.1000),
        'finish': (51.5045, -0.1000),
    }


@pytest.fixture
def checkpoints(course_points):
    """Start and finish checkpoints for the course."""
    return [
        Checkpoint("s1", CheckpointType.START, *course_points['start'], name="Start"),
        Checkpoint("f1", CheckpointType.FINISH, *course_points['finish'], name="Finish"),
    ]


@pytest.fixture
def cardinal_bearing_points():
    """Points for testing cardinal directions (N, E, S, W)."""
    # Origin point
    origin = (51.5074, -0.1278)
    return {
        'origin': origin,
        # Approximate points in cardinal directions from origin
        # North is +latitude
        'north': (51.5174, -0.1278),
        # East is +longitude
        'east': (51.5074, -0.1178),
        # South is -latitude
        'south': (51.4974, -0.1278),
        # West is -longitude
        'west': (51.5074, -0.1378),
    }
