"""
Tests for odata_bridge.odata.literals module.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from odata_bridge.core.errors import FormatError
from odata_bridge.odata.literals import (
    OMIT,
    DataType,
    duration_from_timedelta,
    format_value,
    parse_value,
    to_json_value,
    to_uri_literal,
    transform_value,
)
from odata_bridge.odata.metadata import DataProperty


class TestDataType:

    def test_from_edm(self):
        assert DataType.from_edm("Edm.Int64") is DataType.INT64
        assert DataType.from_edm("Edm.Geography") is DataType.UNDEFINED

    def test_quote_json(self):
        assert DataType.INT64.quote_json
        assert DataType.DECIMAL.quote_json
        assert not DataType.INT32.quote_json


class TestFormatValue:
    """Tests for format_value."""

    def test_numbers(self):
        assert format_value(DataType.INT32, "42") == 42
        assert format_value(DataType.INT16, 7.0) == 7
        assert format_value(DataType.DECIMAL, "10.50") == Decimal("10.50")
        assert format_value(DataType.DOUBLE, "1.5") == 1.5

    def test_empty_number_is_null(self):
        assert format_value(DataType.INT32, "") is None
        assert format_value(DataType.INT32, None) is None

    @pytest.mark.parametrize("value", ["4.5", "abc", True])
    def test_bad_integer(self, value):
        with pytest.raises(FormatError):
            format_value(DataType.INT32, value)

    def test_boolean(self):
        assert format_value(DataType.BOOLEAN, "TRUE") is True
        assert format_value(DataType.BOOLEAN, False) is False
        with pytest.raises(FormatError, match="is not a valid boolean"):
            format_value(DataType.BOOLEAN, "yes")

    def test_datetime_offset_normalized_to_utc(self):
        assert format_value(DataType.DATETIME_OFFSET, "2024-01-02T03:04:05+02:00") == "2024-01-02T01:04:05.000Z"

    def test_naive_datetime_is_utc(self):
        assert format_value(DataType.DATETIME_OFFSET, datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"

    def test_sub_millisecond_precision_kept(self):
        dt = datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
        assert format_value(DataType.DATETIME_OFFSET, dt) == "2024-01-02T03:04:05.123456Z"

    def test_bad_datetime(self):
        with pytest.raises(FormatError, match="is not a valid dateTimeOffset"):
            format_value(DataType.DATETIME_OFFSET, "yesterday")
        with pytest.raises(FormatError, match="is not a valid dateTime"):
            format_value(DataType.DATETIME, 12)

    def test_date(self):
        assert format_value(DataType.DATE, date(2024, 2, 29)) == "2024-02-29"
        assert format_value(DataType.DATE, datetime(2024, 2, 29, 10, 0)) == "2024-02-29"
        with pytest.raises(FormatError):
            format_value(DataType.DATE, "2024-13-01")

    def test_duration(self):
        assert format_value(DataType.DURATION, "P1DT2H") == "P1DT2H"
        assert format_value(DataType.TIME, "-PT30M") == "-PT30M"
        assert format_value(DataType.DURATION, timedelta(days=1, hours=2)) == "P1DT2H"

    @pytest.mark.parametrize("value", ["1 day", "P", "PT", "P1H", "PT1.5"])
    def test_bad_duration(self, value):
        with pytest.raises(FormatError, match="is not a valid ISO 8601 duration") as exc:
            format_value(DataType.DURATION, value)
        assert exc.value.value == value

    def test_guid(self):
        g = "d2f7c3a0-1b2c-4d5e-8f90-123456789abc"
        assert format_value(DataType.GUID, g) == g
        assert format_value(DataType.GUID, uuid.UUID(g)) == g

    @pytest.mark.parametrize("value", ["abc", "d2f7c3a01b2c4d5e8f90123456789abc", 12])
    def test_bad_guid(self, value):
        with pytest.raises(FormatError, match="is not a valid guid"):
            format_value(DataType.GUID, value)

    def test_time_of_day(self):
        assert format_value(DataType.TIME_OF_DAY, "13:45:00") == "13:45:00"
        assert format_value(DataType.TIME_OF_DAY, time(8, 30)) == "08:30:00"
        with pytest.raises(FormatError, match="timeOfDay"):
            format_value(DataType.TIME_OF_DAY, "25:00")

    def test_binary(self):
        assert format_value(DataType.BINARY, b"\x00\xff") == "AP8="


class TestDurationFromTimedelta:

    def test_fractional_seconds(self):
        assert duration_from_timedelta(timedelta(days=1, hours=2, seconds=3.5)) == "P1DT2H3.5S"

    def test_zero(self):
        assert duration_from_timedelta(timedelta(0)) == "PT0S"

    def test_negative(self):
        assert duration_from_timedelta(timedelta(minutes=-30)) == "-PT30M"


class TestUriLiteral:
    """Tests for to_uri_literal."""

    def test_string_is_quoted_and_escaped(self):
        assert to_uri_literal(DataType.STRING, "O'Brien") == "'O''Brien'"

    def test_numbers_and_booleans(self):
        assert to_uri_literal(DataType.INT32, "42") == "42"
        assert to_uri_literal(DataType.BOOLEAN, True) == "true"

    def test_guid_is_bare(self):
        g = "d2f7c3a0-1b2c-4d5e-8f90-123456789abc"
        assert to_uri_literal(DataType.GUID, g) == g

    def test_duration_prefix(self):
        assert to_uri_literal(DataType.DURATION, "P1D") == "duration'P1D'"

    def test_null(self):
        assert to_uri_literal(DataType.STRING, None) == "null"


class TestBodyValues:

    def test_int64_and_decimal_are_strings(self):
        assert to_json_value(DataType.INT64, 9007199254740993) == "9007199254740993"
        assert to_json_value(DataType.DECIMAL, Decimal("1.10")) == "1.10"
        assert to_json_value(DataType.INT32, "5") == 5

    def test_transform_value(self):
        assert transform_value(DataProperty("Weight", "Edm.Int64"), 5) == "5"
        assert transform_value(DataProperty("Scratch", is_unmapped=True), "x") is OMIT
        assert transform_value(DataProperty("Address", "Sales.Address"), {"City": "X"}) == {"City": "X"}


class TestParseValue:

    def test_instant_round_trip_is_utc(self):
        dt = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=-5)))
        parsed = parse_value(DataType.DATETIME_OFFSET, format_value(DataType.DATETIME_OFFSET, dt))
        assert parsed == dt
        assert parsed.tzinfo == timezone.utc

    def test_numbers(self):
        assert parse_value(DataType.INT64, "9007199254740993") == 9007199254740993
        assert parse_value(DataType.DECIMAL, "1.10") == Decimal("1.10")

    def test_binary(self):
        assert parse_value(DataType.BINARY, "AP8=") == b"\x00\xff"

    def test_none(self):
        assert parse_value(DataType.INT32, None) is None

    @pytest.mark.parametrize("data_type, value, expected", [
        (DataType.GUID, "0f8fad5b-d9cb-469f-a165-70867728950e", "0f8fad5b-d9cb-469f-a165-70867728950e"),
        (DataType.GUID, uuid.UUID("0f8fad5b-d9cb-469f-a165-70867728950e"), "0f8fad5b-d9cb-469f-a165-70867728950e"),
        (DataType.DURATION, "P1DT2H", "P1DT2H"),
        (DataType.DURATION, timedelta(days=1, hours=2), "P1DT2H"),
        (DataType.DATE, date(2024, 2, 29), date(2024, 2, 29)),
        (DataType.TIME_OF_DAY, time(8, 30), time(8, 30)),
        (DataType.TIME_OF_DAY, time(23, 59, 59, 250000), time(23, 59, 59, 250000)),
        (DataType.BOOLEAN, True, True),
        (DataType.BOOLEAN, False, False),
        (DataType.DOUBLE, 1.5, 1.5),
        (DataType.DOUBLE, -0.25, -0.25),
    ])
    def test_format_then_parse(self, data_type, value, expected):
        assert parse_value(data_type, format_value(data_type, value)) == expected

    @pytest.mark.parametrize("raw, microsecond", [
        ("2024-01-02T03:04:05.1234567Z", 123456),
        ("2024-01-02T03:04:05.12Z", 120000),
        ("2024-01-02T03:04:05.1+00:00", 100000),
    ])
    def test_instant_fraction_digits(self, raw, microsecond):
        parsed = parse_value(DataType.DATETIME_OFFSET, raw)
        assert parsed.microsecond == microsecond
        assert parsed.tzinfo == timezone.utc

    def test_time_of_day_long_fraction(self):
        assert parse_value(DataType.TIME_OF_DAY, "10:11:12.1234567") == time(10, 11, 12, 123456)

    def test_key_from_seven_digit_fraction(self):
        assert format_value(DataType.DATETIME_OFFSET, "2024-01-02T03:04:05.1234567Z") == "2024-01-02T03:04:05.123456Z"
