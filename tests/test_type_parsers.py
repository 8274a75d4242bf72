"""Tests for column type parse rules."""

from datetime import date

import pytest

from tabular.type_parsers import parse_date, parse_float, parse_integer, parse_text


class TestParseInteger:

    @pytest.mark.parametrize("text, expected", [
        ("0", 0),
        ("42", 42),
        ("-17", -17),
        ("+5", 5),
        (" 7 ", 7),
        ("9223372036854775807", 2 ** 63 - 1),
        ("-9223372036854775808", -(2 ** 63)),
    ])
    def test_valid(self, text, expected):
        result = parse_integer(text)
        assert result.ok
        assert result.value == expected

    @pytest.mark.parametrize("text", [
        "", "1.0", "1e3", "abc", "9223372036854775808", "1_000", "0x10", "- 1",
        "\u0661\u0662\u0663", "\uff14\uff12",
    ])
    def test_invalid(self, text):
        assert not parse_integer(text).ok


class TestParseFloat:

    @pytest.mark.parametrize("text, expected", [
        ("1.5", 1.5),
        ("-0.25", -0.25),
        ("3", 3.0),
        (".5", 0.5),
        ("5.", 5.0),
        ("1e3", 1000.0),
        ("2.5E-2", 0.025),
    ])
    def test_valid(self, text, expected):
        result = parse_float(text)
        assert result.ok
        assert result.value == pytest.approx(expected)

    @pytest.mark.parametrize("text", [
        "", "nan", "inf", "-Infinity", "1e999", "1.2.3", "x1", "0x1p3", ".",
        "\u0661.\u0665", "1e\u0663",
    ])
    def test_invalid(self, text):
        assert not parse_float(text).ok


class TestParseDate:

    @pytest.mark.parametrize("text, expected", [
        ("2024-01-01", date(2024, 1, 1)),
        ("2024-02-29", date(2024, 2, 29)),
        ("1999-12-31", date(1999, 12, 31)),
    ])
    def test_valid(self, text, expected):
        result = parse_date(text)
        assert result.ok
        assert result.value == expected

    @pytest.mark.parametrize("text", [
        "2023-02-29",
        "2024-13-01",
        "2024-00-10",
        "2024-04-31",
        "0000-01-01",
        "2024-1-01",
        "01/02/2024",
        "2024-01-01T00:00:00",
        "\uff12\uff10\uff12\uff14-01-01",
        "2024-\u0660\u0661-01",
        "",
    ])
    def test_invalid(self, text):
        assert not parse_date(text).ok


def test_text_accepts_anything():
    assert parse_text("").ok
    assert parse_text("anything at all").value == "anything at all"
