"""
Configuration settings for the timeattack navigation core.
Contains constants for filtering, checkpoints, road analysis and callouts.

Organised into logical sections:
1. Units & Conversions
2. Signal Filter (Kalman tuning, heading window)
3. Checkpoints & Lap State (proximity rings, hysteresis)
4. Road Analysis (lookahead, sampling, turn thresholds)
5. Instructions & Pacenotes (straight threshold, callout limits)
6. Speech (pitch/rate per announcement kind)
7. Speed Cameras (warning distance, brackets)
8. Road Names (reverse geocoding rate limit, backoff)
9. Hardware - GPS (serial, location request tiers)
10. Data Storage (settings file, run database)
"""

import os


# ==============================================================================
# APPLICATION VERSION
# ==============================================================================
APP_VERSION = "0.4.2"

# ==============================================================================
# 1. UNITS & CONVERSIONS
# ==============================================================================
MPS_TO_KMH = 3.6
KMH_TO_MPH = 0.621371
METRES_TO_YARDS = 1.09361
KNOTS_TO_MPS = 0.514444

# Unit system identifiers ("mph" or "kmh")
UNIT_MPH = "mph"
UNIT_KMH = "kmh"
DEFAULT_UNIT_SYSTEM = UNIT_KMH

# ISO country codes that sign road speeds in miles per hour
MPH_COUNTRIES = frozenset([
    "US", "UM", "PR", "VI", "GU", "AS", "MP",  # USA and territories
    "GB", "UK", "GG", "JE", "IM", "GI",  # UK and dependencies
    "LR", "MM",
    "BS", "BZ", "KY", "VG", "BM", "AI", "AG", "DM", "GD", "MS",
    "KN", "LC", "VC", "TT", "TC",
    "PW", "FM", "MH",
])

# ==============================================================================
# 2. SIGNAL FILTER
# ==============================================================================
# Scalar Kalman tuning (q = process noise, r = measurement noise)
FILTER_POSITION_Q = 0.005
FILTER_POSITION_R = 0.3
FILTER_SPEED_Q = 0.03
FILTER_SPEED_R = 0.8

# Measurements further than this many sigmas from the last estimate are damped
FILTER_OUTLIER_SIGMAS = 3.0
FILTER_OUTLIER_DAMPING = 0.3

# Accuracy scaling of r: r * clamp(accuracy / 10, min, max)
FILTER_ACCURACY_SCALE_M = 10.0
FILTER_ACCURACY_FACTOR_MIN = 0.1
FILTER_ACCURACY_FACTOR_MAX = 3.0

# Accuracy used when a fix does not report one (metres)
FILTER_DEFAULT_ACCURACY_M = 10.0
# Accuracy caps applied before filtering (metres)
FILTER_POSITION_ACCURACY_CAP_M = 50.0
FILTER_SPEED_ACCURACY_CAP_M = 20.0

# Circular mean window for heading smoothing
FILTER_HEADING_WINDOW = 5

# Minimum movement before a heading is derived from positions (metres)
FILTER_MIN_HEADING_MOVE_M = 0.01

# Predicted location accuracy growth per prediction
FILTER_PREDICT_ACCURACY_GROWTH = 1.5

# ==============================================================================
# 3. CHECKPOINTS & LAP STATE
# ==============================================================================
# Radius of the start/finish trigger rings (metres)
CHECKPOINT_PROXIMITY_M = 5.0
# Distance the driver must leave the finish ring before it can re-trigger
FINISH_EXIT_THRESHOLD_M = 50.0

# ==============================================================================
# 4. ROAD ANALYSIS
# ==============================================================================
ROAD_LOOKAHEAD_M = 800.0
ROAD_LOOKAHEAD_RALLY_M = 1200.0
ROAD_SEGMENT_SPACING_M = 25.0
ROAD_MAX_SEGMENTS = 32
ROAD_MAX_SEGMENTS_RALLY = 48
# Below this straight-line distance there is nothing to analyse
ROAD_MIN_ANALYSIS_M = 10.0

# Bearing change needed between segments to count as a turn (degrees)
TURN_THRESHOLD_DEG = 12.0
TURN_THRESHOLD_RALLY_DEG = 10.0

# Severity buckets by absolute angle: (minimum angle, severity)
SEVERITY_BUCKETS = [
    (150.0, 1),
    (120.0, 2),
    (90.0, 3),
    (60.0, 4),
    (30.0, 5),
]
SEVERITY_GENTLEST = 6

# ==============================================================================
# 5. INSTRUCTIONS & PACENOTES
# ==============================================================================
# Heading error below which the instruction is "straight" (degrees)
STRAIGHT_THRESHOLD_DEG = 10.0
# Upcoming turns further than this are not described
NEXT_TURN_DESCRIBE_M = 800.0
# Bucket size for the turn dedup key (metres)
INSTRUCTION_KEY_BUCKET_M = 50

# Straight callouts (rally): above these distances use the long forms
RALLY_LONG_STRAIGHT_M = 500.0
RALLY_MEDIUM_STRAIGHT_M = 200.0
RALLY_SHORT_STRAIGHT_CALLS = ["flat", "stay middle", "full commit"]
NORMAL_LONG_STRAIGHT_M = 500.0
NORMAL_TURN_AHEAD_M = 100.0

# Pacenote distance is only spoken above this (metres)
PACENOTE_SPOKEN_DISTANCE_M = 60.0
# Corners closer than this are linked with "into"
PACENOTE_LINK_DISTANCE_M = 100.0

# Crest probability by severity band
PACENOTE_CREST_CHANCE_TIGHT = 0.25
PACENOTE_CREST_CHANCE_OPEN = 0.15
# Draw thresholds for fallback modifiers and caution
PACENOTE_TIGHTENS_DRAW = 0.65
PACENOTE_OPENS_LONG_DRAW = 0.7
PACENOTE_CAUTION_DRAW = 0.8

# ==============================================================================
# 6. SPEECH
# ==============================================================================
SPEECH_NAV_RALLY_PITCH = 1.1
SPEECH_NAV_RALLY_RATE = 1.25
SPEECH_NAV_PITCH = 1.0
SPEECH_NAV_RATE = 0.9
SPEECH_START_PITCH = 1.0
SPEECH_START_RATE = 0.9
SPEECH_FINISH_PITCH = 1.1
SPEECH_FINISH_RATE = 0.8
SPEECH_CAMERA_RALLY_PITCH = 1.05
SPEECH_CAMERA_RALLY_RATE = 1.1
SPEECH_CAMERA_PITCH = 1.0
SPEECH_CAMERA_RATE = 0.85

DEFAULT_NAVIGATION_VOLUME = 80  # 0-100

# TTS engine for the subprocess speech player
TTS_VOICE = "en-gb"
TTS_WORDS_PER_MINUTE = 175

# ==============================================================================
# 7. SPEED CAMERAS
# ==============================================================================
CAMERA_WARNING_DISTANCE_M = 500.0
CAMERA_APPROACH_ANGLE_DEG = 90.0
CAMERA_MIN_SPEED_KMH = 5.0
CAMERA_WARNING_BRACKETS_M = [500, 400, 300, 200, 100, 50]

# ==============================================================================
# 8. ROAD NAMES
# ==============================================================================
ROAD_NAME_MIN_INTERVAL_MS = 8000
ROAD_NAME_MIN_DISTANCE_M = 80.0
# Consecutive lookup failures before falling back to the unknown label
ROAD_NAME_MAX_FAILURES = 3
ROAD_NAME_UNKNOWN = "Unknown Road"
ROAD_NAME_BACKOFF_INITIAL_S = 8.0
ROAD_NAME_BACKOFF_MULTIPLIER = 2.0
ROAD_NAME_BACKOFF_MAX_S = 60.0

# ==============================================================================
# 9. HARDWARE - GPS
# ==============================================================================
GPS_SERIAL_PORT = "/dev/serial0"
GPS_SERIAL_BAUD = 38400
GPS_SERIAL_TIMEOUT_S = 1.0
# Horizontal accuracy estimate = HDOP * this (metres)
GPS_UERE_M = 5.0

# Location request tiers: (accuracy, min interval ms, min distance m)
LOCATION_TIER_BATTERY_SAVER = ("balanced", 1000, 10.0)
LOCATION_TIER_HIGH = ("high", 16, 0.1)
LOCATION_TIER_BEST = ("best", 16, 0.1)

# ==============================================================================
# 10. DATA STORAGE
# ==============================================================================
DATA_DIR = os.path.expanduser("~/.timeattack")
SETTINGS_FILE = os.path.expanduser("~/.timeattack_settings.json")
RUNS_DATABASE_FILE = os.path.join(DATA_DIR, "runs.db")
