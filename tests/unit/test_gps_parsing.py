"""
Unit tests for GPS NMEA sentence parsing.
Tests the parsing logic without requiring actual serial hardware.
"""

import calendar
import pytest
from unittest.mock import MagicMock, patch

from copilot.gps import (
    NMEAParser,
    SerialGPSReader,
    nmea_checksum_ok,
    parse_coordinate,
    parse_utc_timestamp,
)

RMC_EXAMPLE = "$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"
GGA_EXAMPLE = "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,47.0,M,,*4F"


def with_checksum(body):
    """Append the NMEA checksum to a sentence body starting with $."""
    calc_checksum = 0
    for char in body[1:]:  # Skip $
        calc_checksum ^= ord(char)
    return f"{body}*{calc_checksum:02X}"


class TestNMEAChecksum:
    """Tests for NMEA checksum validation."""

    @pytest.mark.unit
    def test_valid_checksum(self):
        assert nmea_checksum_ok(RMC_EXAMPLE) is True
        assert nmea_checksum_ok(GGA_EXAMPLE) is True

    @pytest.mark.unit
    def test_lowercase_checksum(self):
        assert nmea_checksum_ok(RMC_EXAMPLE[:-2] + "6a") is True

    @pytest.mark.unit
    def test_invalid_checksum(self):
        assert nmea_checksum_ok(RMC_EXAMPLE[:-2] + "00") is False

    @pytest.mark.unit
    def test_malformed(self):
        assert nmea_checksum_ok("GPRMC,123519,A*6A") is False
        assert nmea_checksum_ok("$GPRMC,123519,A") is False


class TestFieldParsing:
    """Tests for coordinate and time fields."""

    @pytest.mark.unit
    @pytest.mark.parametrize("value,hemisphere,expected", [
        ("4807.038", "N", 48.1173),
        ("01131.000", "E", 11.516667),
        ("5130.000", "S", -51.5),
        ("00006.000", "W", -0.1),
    ])
    def test_parse_coordinate(self, value, hemisphere, expected):
        assert parse_coordinate(value, hemisphere) == pytest.approx(expected, abs=1e-6)

    @pytest.mark.unit
    def test_parse_coordinate_empty(self):
        assert parse_coordinate("", "N") is None

    @pytest.mark.unit
    def test_parse_utc_timestamp(self):
        expected = (calendar.timegm((2024, 6, 15, 10, 15, 30, 0, 0, 0)) + 0.5) * 1000.0
        assert parse_utc_timestamp("101530.50", "150624") == pytest.approx(expected)

    @pytest.mark.unit
    def test_parse_utc_timestamp_invalid(self):
        assert parse_utc_timestamp("", "150624") is None
        assert parse_utc_timestamp("101530", "1506") is None
        assert parse_utc_timestamp("1015xx", "150624") is None


class TestRMCParsing:
    """Tests for GPRMC/GNRMC sentence parsing."""

    @pytest.fixture
    def parser(self):
        return NMEAParser(clock=lambda: 1000.0)

    @pytest.mark.unit
    def test_valid_rmc(self, parser):
        fix = parser.feed(RMC_EXAMPLE)

        assert fix is not None
        assert parser.has_fix is True
        assert fix.latitude == pytest.approx(48.1173, abs=1e-4)
        assert fix.longitude == pytest.approx(11.5167, abs=1e-4)
        assert fix.speed == pytest.approx(22.4 * 0.514444)
        assert fix.heading == pytest.approx(84.4)
        assert fix.accuracy is None

    @pytest.mark.unit
    def test_gnrmc_with_timestamp(self, parser):
        sentence = with_checksum(
            "$GNRMC,101530.50,A,5130.000,N,00006.000,W,010.0,090.0,150624,,,A")
        fix = parser.feed(sentence)

        assert fix.latitude == pytest.approx(51.5)
        assert fix.longitude == pytest.approx(-0.1)
        expected = (calendar.timegm((2024, 6, 15, 10, 15, 30, 0, 0, 0)) + 0.5) * 1000.0
        assert fix.timestamp == pytest.approx(expected)

    @pytest.mark.unit
    def test_void_status(self, parser):
        sentence = with_checksum("$GPRMC,123519,V,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W")
        assert parser.feed(sentence) is None
        assert parser.has_fix is False

    @pytest.mark.unit
    def test_bad_checksum_ignored(self, parser):
        assert parser.feed(RMC_EXAMPLE[:-2] + "00") is None

    @pytest.mark.unit
    def test_missing_speed_and_course(self, parser):
        sentence = with_checksum("$GPRMC,123519,A,4807.038,N,01131.000,E,,,230394,,")
        fix = parser.feed(sentence)
        assert fix.speed is None
        assert fix.heading is None

    @pytest.mark.unit
    def test_missing_date_uses_clock(self, parser):
        sentence = with_checksum("$GPRMC,123519,A,4807.038,N,01131.000,E,010.0,090.0,,,")
        assert parser.feed(sentence).timestamp == 1_000_000.0

    @pytest.mark.unit
    def test_hdop_sets_accuracy(self, parser):
        assert parser.feed(GGA_EXAMPLE) is None
        assert parser.satellites == 8
        assert parser.hdop == pytest.approx(0.9)

        fix = parser.feed(RMC_EXAMPLE)
        assert fix.accuracy == pytest.approx(4.5)

    @pytest.mark.unit
    def test_other_sentences_ignored(self, parser):
        assert parser.feed("$GPGSV,3,1,11,03,03,111,00*74") is None


class TestSerialGPSReader:
    """Tests for the serial reader with a mocked port."""

    @pytest.mark.unit
    def test_read_fix(self):
        with patch('copilot.gps.serial.Serial') as serial_cls:
            port = MagicMock()
            port.readline.return_value = (RMC_EXAMPLE + "\r\n").encode('ascii')
            serial_cls.return_value = port

            reader = SerialGPSReader("/dev/ttyTEST", 9600)
            reader.connect()
            fix = reader.read_fix()
            reader.disconnect()

        serial_cls.assert_called_once_with("/dev/ttyTEST", 9600, timeout=1.0)
        assert fix.latitude == pytest.approx(48.1173, abs=1e-4)
        port.close.assert_called_once()

    @pytest.mark.unit
    def test_read_without_connection(self):
        assert SerialGPSReader().read_fix() is None

    @pytest.mark.unit
    def test_stream_until_stopped(self):
        with patch('copilot.gps.serial.Serial') as serial_cls:
            port = MagicMock()
            port.readline.side_effect = [
                (GGA_EXAMPLE + "\r\n").encode('ascii'),
                (RMC_EXAMPLE + "\r\n").encode('ascii'),
                b"garbage\r\n",
                (RMC_EXAMPLE + "\r\n").encode('ascii'),
            ]
            serial_cls.return_value = port

            reader = SerialGPSReader()
            reader.connect()
            fixes = []
            reads = iter([True, True, True, True, False])
            reader.stream(fixes.append, lambda: next(reads))

        assert len(fixes) == 2
        assert fixes[0].accuracy == pytest.approx(4.5)
