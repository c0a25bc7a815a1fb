"""Unit tests for date helpers."""

from datetime import datetime, timedelta, timezone

from feed_sieve.utils.dates import format_relative_time, from_iso, parse_pub_date, to_iso
from tests.factories import BASE_TIME


class TestParsePubDate:
    def test_rfc_2822(self):
        assert parse_pub_date("Sat, 01 Mar 2025 12:00:00 GMT") == BASE_TIME

    def test_rfc_2822_with_offset(self):
        assert parse_pub_date("Sat, 01 Mar 2025 07:00:00 -0500") == BASE_TIME

    def test_iso(self):
        assert parse_pub_date("2025-03-01T12:00:00Z") == BASE_TIME

    def test_naive_iso_is_treated_as_utc(self):
        assert parse_pub_date("2025-03-01T12:00:00") == BASE_TIME

    def test_time_tuple(self):
        assert parse_pub_date((2025, 3, 1, 12, 0, 0, 5, 60, 0)) == BASE_TIME

    def test_unparseable(self):
        assert parse_pub_date("not a date") is None
        assert parse_pub_date("") is None
        assert parse_pub_date(None) is None
        assert parse_pub_date(12345) is None


class TestIsoRoundTrip:
    def test_to_iso_normalises_to_utc(self):
        plus_two = timezone(timedelta(hours=2))

        assert to_iso(datetime(2025, 3, 1, 14, 0, tzinfo=plus_two)) == "2025-03-01T12:00:00+00:00"

    def test_from_iso(self):
        assert from_iso("2025-03-01T12:00:00+00:00") == BASE_TIME

    def test_from_iso_rejects_garbage(self):
        assert from_iso("yesterday") is None
        assert from_iso(None) is None
        assert from_iso(42) is None


class TestFormatRelativeTime:
    def test_minutes_only(self):
        assert format_relative_time(BASE_TIME, BASE_TIME + timedelta(minutes=5)) == "5 minutes ago"

    def test_single_minute(self):
        assert format_relative_time(BASE_TIME, BASE_TIME + timedelta(minutes=1)) == "1 minute ago"

    def test_whole_hours(self):
        assert format_relative_time(BASE_TIME, BASE_TIME + timedelta(hours=2)) == "2 hours ago"

    def test_hours_and_minutes(self):
        now = BASE_TIME + timedelta(hours=1, minutes=30)

        assert format_relative_time(BASE_TIME, now) == "1 hour and 30 minutes ago"

    def test_just_now(self):
        assert format_relative_time(BASE_TIME, BASE_TIME) == "0 minutes ago"
