"""GPS interface: NMEA sentence parsing and a serial location source."""

import calendar
import logging
import time
from typing import Callable, Optional

import serial

from lap_timing.data.models import LocationFix
from utils.conversions import knots_to_mps
from config import GPS_SERIAL_PORT, GPS_SERIAL_BAUD, GPS_SERIAL_TIMEOUT_S, GPS_UERE_M

logger = logging.getLogger('timeattack.gps')


def nmea_checksum_ok(sentence: str) -> bool:
    """Validate the XOR checksum of the characters between $ and *."""
    if not sentence.startswith('$') or '*' not in sentence:
        return False
    data_part, checksum = sentence.rsplit('*', 1)
    calc_checksum = 0
    for char in data_part[1:]:
        calc_checksum ^= ord(char)
    return f"{calc_checksum:02X}" == checksum.strip().upper()


def parse_coordinate(value: str, hemisphere: str) -> Optional[float]:
    """
    Convert an NMEA DDMM.MMMM / DDDMM.MMMM field to decimal degrees.

    The degree digits are whatever precedes the two-digit minutes.
    """
    if not value or '.' not in value:
        return None
    dot = value.index('.')
    degrees = float(value[:dot - 2])
    minutes = float(value[dot - 2:])
    result = degrees + minutes / 60.0
    if hemisphere in ('S', 'W'):
        result = -result
    return result


def parse_utc_timestamp(time_str: str, date_str: str) -> Optional[float]:
    """RMC time (HHMMSS.sss) and date (DDMMYY) as epoch milliseconds."""
    if len(time_str) < 6 or len(date_str) < 6:
        return None
    try:
        hours = int(time_str[0:2])
        minutes = int(time_str[2:4])
        seconds = float(time_str[4:])
        day = int(date_str[0:2])
        month = int(date_str[2:4])
        year = 2000 + int(date_str[4:6])
        whole = calendar.timegm((year, month, day, hours, minutes, 0, 0, 0, 0))
    except ValueError:
        return None
    return (whole + seconds) * 1000.0


class NMEAParser:
    """
    Turns a stream of NMEA sentences into LocationFix values.

    RMC sentences carry position, speed, course and time and produce a fix.
    GGA sentences update the satellite count and HDOP, which is used for
    the accuracy estimate of later fixes.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.satellites = 0
        self.hdop: Optional[float] = None
        self.has_fix = False

    def feed(self, sentence: str) -> Optional[LocationFix]:
        """Parse one sentence, returning a fix for valid RMC sentences."""
        sentence = sentence.strip()
        if sentence.startswith(('$GPRMC', '$GNRMC')):
            return self.parse_rmc(sentence)
        if sentence.startswith(('$GPGGA', '$GNGGA')):
            self.parse_gga(sentence)
        return None

    def parse_rmc(self, sentence: str) -> Optional[LocationFix]:
        """
        Parse GPRMC/GNRMC sentence.

        Format: $GPRMC,time,status,lat,N/S,lon,E/W,speed,course,date,mag,mode*checksum
        Example: $GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A
        """
        if not nmea_checksum_ok(sentence):
            return None
        parts = sentence.split('*')[0].split(',')
        if len(parts) < 10:
            return None

        # Status: A=valid, V=invalid
        self.has_fix = parts[2] == 'A'
        if not self.has_fix:
            return None

        try:
            latitude = parse_coordinate(parts[3], parts[4])
            longitude = parse_coordinate(parts[5], parts[6])
            speed = knots_to_mps(float(parts[7])) if parts[7] else None
            heading = float(parts[8]) if parts[8] else None
        except ValueError:
            return None
        if latitude is None or longitude is None:
            return None

        timestamp = parse_utc_timestamp(parts[1], parts[9])
        if timestamp is None:
            timestamp = self.clock() * 1000.0

        accuracy = self.hdop * GPS_UERE_M if self.hdop is not None else None
        return LocationFix(latitude=latitude, longitude=longitude, timestamp=timestamp,
                           speed=speed, heading=heading, accuracy=accuracy)

    def parse_gga(self, sentence: str):
        """
        Parse GPGGA/GNGGA sentence for satellite count and HDOP.

        Format: $GPGGA,time,lat,N/S,lon,E/W,quality,num_sats,hdop,alt,M,geoid,M,...*checksum
        """
        if not nmea_checksum_ok(sentence):
            return
        parts = sentence.split('*')[0].split(',')
        if len(parts) < 9:
            return
        try:
            if parts[7]:
                self.satellites = int(parts[7])
            if parts[8]:
                self.hdop = float(parts[8])
        except ValueError:
            pass


class SerialGPSReader:
    """Reads NMEA data from a GPS module via serial."""

    def __init__(self, port: str = GPS_SERIAL_PORT, baudrate: int = GPS_SERIAL_BAUD,
                 timeout: float = GPS_SERIAL_TIMEOUT_S):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.parser = NMEAParser()
        self._serial: Optional[serial.Serial] = None

    def connect(self) -> None:
        self._serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        logger.info("GPS connected on %s at %d baud", self.port, self.baudrate)

    def disconnect(self) -> None:
        if self._serial:
            self._serial.close()
            self._serial = None

    def read_fix(self) -> Optional[LocationFix]:
        """Read one line; returns a fix when the line was a valid RMC sentence."""
        if not self._serial:
            return None
        try:
            line = self._serial.readline().decode('ascii', errors='ignore')
        except serial.SerialException as e:
            logger.warning("GPS serial error: %s", e)
            return None
        return self.parser.feed(line)

    def stream(self, on_fix: Callable[[LocationFix], None], should_run: Callable[[], bool]):
        """Read fixes until should_run() returns False, passing each to on_fix."""
        while should_run():
            fix = self.read_fix()
            if fix is not None:
                on_fix(fix)
