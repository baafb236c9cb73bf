"""Road name lookup: label sanitising and rate-limited reverse geocoding."""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from lap_timing.utils.geometry import haversine_distance
from utils.hardware_base import ExponentialBackoff
from config import (
    ROAD_NAME_MIN_INTERVAL_MS,
    ROAD_NAME_MIN_DISTANCE_M,
    ROAD_NAME_MAX_FAILURES,
    ROAD_NAME_UNKNOWN,
    ROAD_NAME_BACKOFF_INITIAL_S,
    ROAD_NAME_BACKOFF_MULTIPLIER,
    ROAD_NAME_BACKOFF_MAX_S,
    APP_VERSION,
)

logger = logging.getLogger('timeattack.geocode')

ROAD_KEYWORDS = [
    "road", "street", "avenue", "lane", "drive", "way", "boulevard",
    "highway", "route", "expressway", "motorway", "parkway", "circuit",
    "track", "speedway", "raceway", "causeway", "arterial", "turnpike",
    "pass", "trail",
]

# Labels containing these look like a private address, never shown
PRIVACY_BLOCKLIST = [
    "house", "cottage", "villa", "suite", "apartment", "apartments", "flat",
    "building", "residence", "bungalow", "manor", "lodge", "farm", "estate",
    "hall", "barn", "chalet", "homestead", "studio", "warehouse",
]

ROUTE_CODE_PATTERNS = [
    re.compile(r"^I-?\d{1,3}[A-Z]?$"),
    re.compile(r"^US-?\d{1,3}$"),
    re.compile(r"^[A-Z]{1,2}\d{1,3}[A-Z]?$"),
    re.compile(r"^SR-?\d{1,3}$"),
    re.compile(r"^PR-?\d{1,3}$"),
    re.compile(r"^CR-?\d{1,3}$"),
    re.compile(r"^M\d{1,3}$"),
    re.compile(r"^A\d{1,3}$"),
    re.compile(r"^B\d{1,3}$"),
]

_NUMBER_PREFIX = re.compile(r"^(?:no\.?|number|#)\s*", re.IGNORECASE)
_HOUSE_NUMBER = re.compile(r"^\s*(\d+)(?!(st|nd|rd|th)\b)[A-Za-z]?\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"


class RateLimitError(Exception):
    """The geocoding provider refused the request for rate limiting."""


@dataclass(frozen=True)
class GeocodedAddress:
    street: Optional[str] = None
    name: Optional[str] = None
    district: Optional[str] = None
    subregion: Optional[str] = None
    iso_country_code: Optional[str] = None


class ReverseGeocoder(Protocol):
    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedAddress]: ...


def _is_route_code(token: str) -> bool:
    normalized = token.replace("(", "").replace(")", "").upper()
    return any(pattern.match(normalized) for pattern in ROUTE_CODE_PATTERNS)


def sanitize_road_label(value: Optional[str]) -> Optional[str]:
    """
    Clean a geocoder label down to something that names a road.

    Keeps the first comma-separated part, strips house numbers, and
    rejects labels that look like a private address or carry neither a
    road keyword nor a route code such as "M25" or "I-95".
    """
    if not value:
        return None
    segment = value.split(",")[0].strip()
    if not segment:
        return None

    segment = _NUMBER_PREFIX.sub("", segment, count=1)
    segment = _HOUSE_NUMBER.sub("", segment, count=1)
    segment = _WHITESPACE.sub(" ", segment).strip()
    if not segment:
        return None

    lower = segment.lower()
    if any(term in lower for term in PRIVACY_BLOCKLIST):
        return None

    has_keyword = any(keyword in lower for keyword in ROAD_KEYWORDS)
    if not has_keyword and not any(_is_route_code(t) for t in segment.split()):
        return None
    return segment


def display_road_name(address: GeocodedAddress) -> str:
    """First usable road label from the address, or the unknown label."""
    for candidate in (address.street, address.name, address.district, address.subregion):
        label = sanitize_road_label(candidate)
        if label:
            return label
    return ROAD_NAME_UNKNOWN


class NominatimGeocoder:
    """Reverse geocoding against the OpenStreetMap Nominatim API."""

    def __init__(self, url: str = NOMINATIM_REVERSE_URL, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"timeattack/{APP_VERSION}")

    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedAddress]:
        """
        Look up the address at a position.

        Raises:
            RateLimitError: The server answered 429
            requests.RequestException: Network or HTTP failure
        """
        response = self.session.get(
            self.url,
            params={"lat": latitude, "lon": longitude, "format": "jsonv2", "zoom": 17},
            timeout=self.timeout,
        )
        if response.status_code == 429:
            raise RateLimitError("rate limit exceeded")
        response.raise_for_status()

        data = response.json()
        address = data.get("address") or {}
        if not address and not data.get("name"):
            return None
        country = address.get("country_code")
        return GeocodedAddress(
            street=address.get("road"),
            name=data.get("name"),
            district=address.get("suburb") or address.get("city_district"),
            subregion=address.get("county"),
            iso_country_code=country.upper() if country else None,
        )


class RoadNameTracker:
    """
    Keeps the current road name fresh without hammering the geocoder.

    A lookup is only made once at least 8 s have passed AND the driver has
    moved at least 80 m since the previous lookup. Lookups run on a daemon
    thread so location processing never waits for the network. Rate-limit
    errors keep the previous name; after repeated other failures the name
    falls back to "Unknown Road".
    """

    def __init__(self, geocoder: ReverseGeocoder, blocking: bool = False):
        self.geocoder = geocoder
        self.blocking = blocking
        self.road_name = ROAD_NAME_UNKNOWN
        self.country_code: Optional[str] = None
        self.failures = 0
        self.backoff = ExponentialBackoff(ROAD_NAME_BACKOFF_INITIAL_S,
                                          ROAD_NAME_BACKOFF_MULTIPLIER,
                                          ROAD_NAME_BACKOFF_MAX_S)
        self._last_time: Optional[float] = None
        self._last_position: Optional[tuple] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def due(self, latitude: float, longitude: float, timestamp: float) -> bool:
        """Whether a lookup is allowed at this position and time (ms)."""
        if self._last_time is not None and timestamp - self._last_time < ROAD_NAME_MIN_INTERVAL_MS:
            return False
        if self._last_position is not None:
            moved = haversine_distance(self._last_position[0], self._last_position[1],
                                       latitude, longitude)
            if moved < ROAD_NAME_MIN_DISTANCE_M:
                return False
        with self._lock:
            return not self.backoff.should_skip()

    def update(self, latitude: float, longitude: float, timestamp: float) -> bool:
        """
        Start a lookup if one is due.

        Returns:
            True if a lookup was started
        """
        if self._thread is not None and self._thread.is_alive():
            return False
        if not self.due(latitude, longitude, timestamp):
            return False

        self._last_time = timestamp
        self._last_position = (latitude, longitude)

        if self.blocking:
            self._lookup(latitude, longitude)
        else:
            self._thread = threading.Thread(target=self._lookup, args=(latitude, longitude),
                                            daemon=True)
            self._thread.start()
        return True

    def _lookup(self, latitude: float, longitude: float):
        try:
            address = self.geocoder.reverse_geocode(latitude, longitude)
        except RateLimitError:
            with self._lock:
                logger.info("Geocoder rate limited, keeping %s", self.road_name)
                self.backoff.record_failure()
            return
        except Exception as e:
            self._record_failure(e)
            return

        with self._lock:
            self.failures = 0
            self.backoff.record_success()
            if address is not None:
                self.road_name = display_road_name(address)
                if address.iso_country_code:
                    self.country_code = address.iso_country_code

    def _record_failure(self, error: Exception):
        with self._lock:
            self.failures += 1
            self.backoff.record_failure()
            logger.warning("Road name lookup failed (%d): %s", self.failures, error)
            if self.failures >= ROAD_NAME_MAX_FAILURES:
                self.road_name = ROAD_NAME_UNKNOWN
