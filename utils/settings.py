"""
Persistent settings manager for timeattack.
Stores user preferences in a JSON file that persists across restarts.

Settings file location:
    ~/.timeattack_settings.json

If the settings file is corrupt (invalid JSON), it will be deleted and
defaults will be used. A warning is logged on startup in this case.

Known keys:
    voice.mode            "rally", "normal" or "off"
    voice.volume          navigation volume 0-100
    units.system          "mph" or "kmh", unset to follow the road's country
    ghost.enabled         replay the best run as a ghost
    location.battery_saver / location.high_accuracy
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

from config import (
    SETTINGS_FILE,
    DEFAULT_UNIT_SYSTEM,
    DEFAULT_NAVIGATION_VOLUME,
    UNIT_MPH,
    UNIT_KMH,
    LOCATION_TIER_BATTERY_SAVER,
    LOCATION_TIER_HIGH,
    LOCATION_TIER_BEST,
)

logger = logging.getLogger('timeattack.settings')

VOICE_MODES = ("rally", "normal", "off")


@dataclass(frozen=True)
class LocationRequest:
    """How the location source should be configured."""
    accuracy: str  # "balanced", "high" or "best"
    time_interval_ms: int
    distance_interval_m: float


def location_request_for(battery_saver: bool, high_accuracy: bool) -> LocationRequest:
    """Pick the location request tier for the power settings."""
    if battery_saver:
        tier = LOCATION_TIER_BATTERY_SAVER
    elif high_accuracy:
        tier = LOCATION_TIER_BEST
    else:
        tier = LOCATION_TIER_HIGH
    return LocationRequest(*tier)


class SettingsManager:
    """
    Manages persistent user settings.

    Settings are loaded from JSON on startup and saved when changed.
    Thread-safe for concurrent access.
    """

    _instance: Optional['SettingsManager'] = None
    _lock = threading.Lock()

    def __new__(cls):
        """Singleton pattern - only one settings manager instance."""
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialised = False
                cls._instance = instance
        return cls._instance

    def __init__(self):
        """Initialise the settings manager."""
        if self._initialised:
            return

        self._settings = {}
        self._file_path = SETTINGS_FILE
        self._save_lock = threading.Lock()
        self._load()
        self._initialised = True

    def _load(self):
        """Load settings from JSON file."""
        try:
            if os.path.exists(self._file_path):
                with open(self._file_path, 'r', encoding='utf-8') as f:
                    self._settings = json.load(f)
                logger.info("Settings loaded from %s", self._file_path)
            else:
                logger.debug("No settings file found, using defaults")
                self._settings = {}
        except json.JSONDecodeError as e:
            logger.warning("Corrupt settings file deleted, using defaults: %s", e)
            self._delete_corrupt_file()
            self._settings = {}
        except OSError as e:
            logger.warning("Could not load settings: %s", e)
            self._settings = {}

    def _delete_corrupt_file(self):
        """Delete a corrupt settings file."""
        try:
            if os.path.exists(self._file_path):
                os.remove(self._file_path)
                logger.info("Removed corrupt settings file: %s", self._file_path)
        except OSError as e:
            logger.error("Failed to remove corrupt settings file: %s", e)

    def _save(self):
        """Save settings to JSON file atomically."""
        with self._save_lock:
            temp_path = self._file_path + '.tmp'
            try:
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(self._settings, f, indent=2)
                os.replace(temp_path, self._file_path)
            except OSError as e:
                logger.warning("Could not save settings: %s", e)
                try:
                    if os.path.exists(temp_path):
                        os.remove(temp_path)
                except OSError:
                    pass

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key (dot notation for nested, e.g. "voice.mode")
            default: Default value if setting not found

        Returns:
            Setting value or default
        """
        value = self._settings
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any, save: bool = True):
        """
        Set a setting value.

        Args:
            key: Setting key (dot notation for nested)
            value: Value to set
            save: Whether to save to file immediately (default True)
        """
        keys = key.split('.')
        settings = self._settings
        for k in keys[:-1]:
            if not isinstance(settings.get(k), dict):
                settings[k] = {}
            settings = settings[k]
        settings[keys[-1]] = value

        if save:
            self._save()

    def get_all(self) -> dict:
        """Get all settings as a dictionary."""
        return self._settings.copy()

    def reset(self):
        """Reset all settings to defaults (empty)."""
        self._settings = {}
        self._save()

    # Typed accessors

    @property
    def voice_mode(self) -> str:
        mode = self.get("voice.mode", "normal")
        return mode if mode in VOICE_MODES else "normal"

    @property
    def navigation_volume(self) -> int:
        volume = self.get("voice.volume", DEFAULT_NAVIGATION_VOLUME)
        try:
            return max(0, min(100, int(volume)))
        except (TypeError, ValueError):
            return DEFAULT_NAVIGATION_VOLUME

    @property
    def unit_system(self) -> str:
        unit = self.get("units.system", DEFAULT_UNIT_SYSTEM)
        return unit if unit in (UNIT_MPH, UNIT_KMH) else DEFAULT_UNIT_SYSTEM

    @property
    def has_unit_preference(self) -> bool:
        """True when the user picked a unit system rather than auto-detect."""
        return self.get("units.system") in (UNIT_MPH, UNIT_KMH)

    @property
    def ghost_enabled(self) -> bool:
        return bool(self.get("ghost.enabled", True))

    def location_request(self) -> LocationRequest:
        return location_request_for(bool(self.get("location.battery_saver", False)),
                                    bool(self.get("location.high_accuracy", False)))


def get_settings() -> SettingsManager:
    """Get the settings manager singleton."""
    return SettingsManager()
