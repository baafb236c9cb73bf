"""
Unit conversion utilities for timeattack.

Provides speed and distance conversions plus spoken distance formatting.
"""

import math

from config import (
    MPS_TO_KMH,
    KMH_TO_MPH,
    METRES_TO_YARDS,
    KNOTS_TO_MPS,
    MPH_COUNTRIES,
    UNIT_MPH,
    UNIT_KMH,
)


def round_half_up(value):
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


# Speed conversions
def mps_to_kmh(mps):
    """Convert metres per second to km/h."""
    return mps * MPS_TO_KMH


def kmh_to_mph(kmh):
    """Convert km/h to mph."""
    return kmh * KMH_TO_MPH


def knots_to_mps(knots):
    """Convert knots to metres per second."""
    return knots * KNOTS_TO_MPS


# Distance conversions
def metres_to_yards(metres):
    """Convert metres to whole yards."""
    return round_half_up(metres * METRES_TO_YARDS)


def spoken_distance(metres, unit_system):
    """
    Distance value and unit word for announcements.

    Yards when the unit system is mph, whole metres otherwise.
    """
    if unit_system == UNIT_MPH:
        return metres_to_yards(metres), "yards"
    return round_half_up(metres), "meters"


def speed_unit_for_country(country_code):
    """Unit system used on the roads of an ISO country code."""
    if country_code and country_code.upper() in MPH_COUNTRIES:
        return UNIT_MPH
    return UNIT_KMH
