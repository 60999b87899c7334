"""
Tests for DateService.
"""
from datetime import datetime, timedelta, timezone

from incentive_engine.services.date_service import DateService


class TestParseDatetime:

    def test_z_suffix_is_utc(self):
        """Trailing Z parses as UTC"""
        assert DateService.parse_datetime("2024-01-05T12:00:00Z") == datetime(2024, 1, 5, 12, 0)

    def test_offset_converted_to_utc(self):
        """Offsets are converted to UTC"""
        assert DateService.parse_datetime("2024-01-05T12:00:00+02:00") == datetime(2024, 1, 5, 10, 0)

    def test_aware_datetime_becomes_naive(self):
        """Aware datetimes are stored as naive UTC"""
        value = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)
        parsed = DateService.parse_datetime(value)
        assert parsed.tzinfo is None
        assert parsed == datetime(2024, 1, 5, 12, 0)

    def test_unparsable_returns_none(self):
        """Bad or empty input returns None"""
        assert DateService.parse_datetime("next friday") is None
        assert DateService.parse_datetime("") is None
        assert DateService.parse_datetime(None) is None


class TestFullDaysBetween:

    def test_counts_whole_days_only(self, now):
        """Partial days are not counted"""
        assert DateService.full_days_between(now, now + timedelta(days=2, hours=23)) == 2

    def test_end_before_start_is_zero(self, now):
        """Negative spans count as zero days"""
        assert DateService.full_days_between(now, now - timedelta(days=3)) == 0

    def test_utcnow_is_naive(self):
        """utcnow follows the naive UTC storage convention"""
        assert DateService.utcnow().tzinfo is None


class TestToMs:

    def test_aware_value_keeps_its_instant(self):
        """An offset-aware value converts to the same instant as its naive UTC form"""
        aware = datetime(2024, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert DateService.to_ms(aware) == DateService.to_ms(datetime(2024, 1, 5, 10, 0))

    def test_none(self):
        """Missing values stay missing"""
        assert DateService.to_ms(None) is None
