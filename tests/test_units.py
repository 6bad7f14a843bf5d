"""Tests for unit parsing and normalization."""

import pytest

from ffhuman.errors import ValidationError
from ffhuman.operations.units import (
    Dimensions,
    format_bytes,
    format_seconds,
    format_time,
    parse_bitrate,
    parse_db,
    parse_dimensions,
    parse_factor,
    parse_fps,
    parse_hex_color,
    parse_layout,
    parse_opacity,
    parse_percent,
    parse_region,
    parse_size,
    parse_time,
)


class TestSizes:
    """Sizes normalize to bytes, 1024-based."""

    def test_megabytes(self):
        assert parse_size("10mb") == 10 * 1024 ** 2

    def test_kilobytes_short_suffix(self):
        assert parse_size("800k") == 800 * 1024

    def test_fractional_gigabytes(self):
        assert parse_size("1.5gb") == int(1.5 * 1024 ** 3)

    def test_case_insensitive(self):
        assert parse_size("10MB") == parse_size("10mb")

    def test_unknown_unit(self):
        with pytest.raises(ValidationError, match="expected a size"):
            parse_size("10xb")

    def test_zero_rejected(self):
        with pytest.raises(ValidationError, match="positive"):
            parse_size("0mb")

    def test_field_named_in_error(self):
        with pytest.raises(ValidationError) as exc:
            parse_size("big", "target")
        assert exc.value.field == "target"
        assert exc.value.exit_code == 2

    def test_format_bytes(self):
        assert format_bytes(10 * 1024 ** 2) == "10mb"
        assert format_bytes(512) == "512b"


class TestBitrates:
    """Bitrates normalize to bits per second, 1000-based."""

    def test_mbps(self):
        assert parse_bitrate("2mbps") == 2_000_000

    def test_kbps(self):
        assert parse_bitrate("2000kbps") == 2_000_000

    def test_short_k(self):
        assert parse_bitrate("500k") == 500_000

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_bitrate("fast")


class TestTime:
    """Times normalize to integer milliseconds."""

    def test_plain_seconds(self):
        assert parse_time("30") == 30_000

    def test_minutes_seconds(self):
        assert parse_time("0:30") == 30_000

    def test_hours_minutes_seconds(self):
        assert parse_time("1:05:30") == 3_930_000

    def test_fractional_clock(self):
        assert parse_time("0:01.5") == 1_500

    def test_unit_suffixes(self):
        assert parse_time("0.5s") == 500
        assert parse_time("250ms") == 250
        assert parse_time("2m") == 120_000

    def test_seconds_out_of_range(self):
        with pytest.raises(ValidationError, match="seconds must be below 60"):
            parse_time("1:75")

    def test_minutes_out_of_range_with_hours(self):
        with pytest.raises(ValidationError, match="minutes must be below 60"):
            parse_time("1:60:00")

    def test_garbage(self):
        with pytest.raises(ValidationError):
            parse_time("soon")

    def test_format_time(self):
        assert format_time(3_930_000) == "01:05:30"
        assert format_time(1_500) == "00:00:01.500"

    def test_format_seconds(self):
        assert format_seconds(1_500) == "1.5"
        assert format_seconds(30_000) == "30"


class TestLevels:
    """Percentages, decibels, factors and opacities."""

    def test_percent(self):
        assert parse_percent("50%") == 0.5

    def test_percent_out_of_range(self):
        with pytest.raises(ValidationError):
            parse_percent("150%")

    def test_db(self):
        assert parse_db("+10db") == 10.0
        assert parse_db("-5dB") == -5.0

    def test_db_limit(self):
        with pytest.raises(ValidationError, match="60db"):
            parse_db("+70db")

    def test_factor(self):
        assert parse_factor("2x") == 2.0
        assert parse_factor("0.5") == 0.5

    def test_zero_factor(self):
        with pytest.raises(ValidationError):
            parse_factor("0x")

    def test_fps_suffix(self):
        assert parse_fps("24fps") == 24.0

    def test_opacity_forms(self):
        assert parse_opacity("0.5") == 0.5
        assert parse_opacity("50%") == 0.5
        with pytest.raises(ValidationError):
            parse_opacity("1.5")


class TestGeometry:
    """Dimensions, layouts, regions and colours."""

    def test_dimensions(self):
        assert parse_dimensions("1280x720") == Dimensions(1280, 720)
        assert str(Dimensions(1280, 720)) == "1280x720"

    def test_zero_dimension(self):
        with pytest.raises(ValidationError):
            parse_dimensions("0x720")

    def test_layout_cell_limit(self):
        assert parse_layout("6x6") == Dimensions(6, 6)
        with pytest.raises(ValidationError, match="36"):
            parse_layout("7x7")

    def test_region(self):
        assert parse_region("10,20,100,50") == (10, 20, 100, 50)

    def test_region_needs_positive_size(self):
        with pytest.raises(ValidationError):
            parse_region("10,20,0,50")

    def test_hex_color(self):
        assert parse_hex_color("#ff0000") == "0xFF0000"
        assert parse_hex_color("red") is None
