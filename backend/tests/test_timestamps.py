import pytest

from nodeflow.services.timestamps import (
    ParseError,
    PercentOfDuration,
    Seconds,
    parse_percent,
    parse_timestamp,
)


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, Seconds(0.0)),
            ("", Seconds(0.0)),
            ("null", Seconds(0.0)),
            (0, Seconds(0.0)),
            (12, Seconds(12.0)),
            (2.5, Seconds(2.5)),
            ("12.5", Seconds(12.5)),
            ("  7 ", Seconds(7.0)),
            ("50%", PercentOfDuration(50.0)),
            ("0%", PercentOfDuration(0.0)),
            ("100 %", PercentOfDuration(100.0)),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_timestamp(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "-1", -3, "150%", "-5%", "x%", True, float("nan")])
    def test_invalid(self, raw):
        assert isinstance(parse_timestamp(raw), ParseError)

    def test_negative_message(self):
        assert parse_timestamp("-1") == ParseError("Timestamp cannot be negative")

    def test_percent_resolves_against_duration(self):
        assert parse_timestamp("50%").resolve(10.0) == 5.0
        assert parse_timestamp("3").resolve(10.0) == 3.0


class TestParsePercent:
    def test_missing_uses_default(self):
        assert parse_percent(None, 100) == 100
        assert parse_percent("undefined", 25) == 25

    def test_numbers_and_strings(self):
        assert parse_percent(40, 0) == 40.0
        assert parse_percent("12.5", 0) == 12.5
        assert parse_percent("30%", 0) == 30.0

    @pytest.mark.parametrize("raw", ["abc", 101, "-1", False])
    def test_invalid(self, raw):
        assert isinstance(parse_percent(raw, 0), ParseError)
