from datetime import datetime, timedelta, timezone

import pytest

from dates import format_layout_time, format_rfc3339, format_time, parse_time


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Mon, 02 Jan 2006 15:04:05 -0700", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone(timedelta(hours=-7)))),
        ("Mon, 2 Jan 2006 15:04:05 +0000", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
        ("Mon, 23 Nov 2020 14:00:00 GMT", datetime(2020, 11, 23, 14, 0, tzinfo=timezone.utc)),
        ("Mon, 23 November 2020 14:00:00 UTC", datetime(2020, 11, 23, 14, 0, tzinfo=timezone.utc)),
        ("2022-07-22T01:02:03Z", datetime(2022, 7, 22, 1, 2, 3, tzinfo=timezone.utc)),
        ("2022-07-22T01:02:03+05:30", datetime(2022, 7, 22, 1, 2, 3, tzinfo=timezone(timedelta(hours=5, minutes=30)))),
        ("2022-07-22T01:02:03+0200", datetime(2022, 7, 22, 1, 2, 3, tzinfo=timezone(timedelta(hours=2)))),
        ("2020-11-23", datetime(2020, 11, 23, tzinfo=timezone.utc)),
    ],
)
def test_parse_time_layouts(raw, expected):
    assert parse_time(raw) == expected


def test_parse_time_fractional_seconds():
    parsed = parse_time("2022-07-22T01:02:03.5Z")

    assert parsed == datetime(2022, 7, 22, 1, 2, 3, 500000, tzinfo=timezone.utc)


def test_named_zone_is_read_as_utc():
    # Zone abbreviations are ambiguous; any of them maps to UTC
    parsed = parse_time("Sun, 22 Nov 2020 09:00:00 EST")

    assert parsed == datetime(2020, 11, 22, 9, 0, tzinfo=timezone.utc)


def test_parse_time_strips_whitespace():
    assert parse_time("  2020-11-23\n") == datetime(2020, 11, 23, tzinfo=timezone.utc)


@pytest.mark.parametrize("raw", [None, "", "   ", "yesterday afternoon", "2020-13-45", "Mon, 23 Nov 2020"])
def test_parse_time_rejects_garbage(raw):
    assert parse_time(raw) is None


def test_parsed_times_are_timezone_aware():
    for raw in ("2020-11-23", "Mon, 23 Nov 2020 14:00:00 GMT", "2022-07-22T01:02:03Z"):
        assert parse_time(raw).tzinfo is not None


def test_format_time():
    dt = datetime(2022, 7, 22, 1, 2, tzinfo=timezone.utc)

    assert format_time(dt) == "2022-07-22 01:02 UTC"
    assert format_time(None) == ""


def test_format_time_with_offset():
    dt = datetime(2022, 7, 22, 1, 2, tzinfo=timezone(timedelta(hours=2)))

    assert format_time(dt) == "2022-07-22 01:02 +0200"
    assert format_time(dt.replace(tzinfo=timezone(timedelta(hours=-5), "EST"))) == "2022-07-22 01:02 EST"


def test_format_layout_time():
    dt = datetime(2022, 7, 22, 1, 2, tzinfo=timezone.utc)

    assert format_layout_time("%d/%m/%Y", dt) == "22/07/2022"


def test_format_rfc3339_reads_back():
    dt = datetime(2022, 7, 22, 1, 2, 3, 250000, tzinfo=timezone(timedelta(hours=2)))

    assert parse_time(format_rfc3339(dt)) == dt


def test_format_rfc3339_assumes_utc_for_naive():
    assert format_rfc3339(datetime(2022, 7, 22, 1, 2, 3)) == "2022-07-22T01:02:03+00:00"
