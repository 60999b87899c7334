"""
Date calculation and manipulation service.
All stored timestamps are naive UTC; this module converts inputs to that form.
"""
from datetime import datetime, timezone
from typing import Optional, Union

from incentive_engine.constants import DAY_MS


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def utcnow() -> datetime:
        """Current time as naive UTC (the storage convention)"""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def to_naive_utc(value: datetime) -> datetime:
        """Convert an aware datetime to naive UTC; naive values are assumed UTC already"""
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @staticmethod
    def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
        """
        Parse an ISO-8601 string or datetime into naive UTC.

        Args:
            value: ISO string ("Z" suffix allowed), datetime, or None

        Returns:
            Naive UTC datetime, or None if the value is missing or unparsable
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return DateService.to_naive_utc(value)
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return DateService.to_naive_utc(parsed)

    @staticmethod
    def to_ms(value: Optional[datetime]) -> Optional[float]:
        """Milliseconds since the epoch (naive values are taken as UTC)"""
        if value is None:
            return None
        value = DateService.to_naive_utc(value)
        return value.replace(tzinfo=timezone.utc).timestamp() * 1000

    @staticmethod
    def full_days_between(start: datetime, end: datetime) -> int:
        """Whole days elapsed from start to end (0 if end is not after start)"""
        if end <= start:
            return 0
        elapsed_ms = (end - start).total_seconds() * 1000
        return int(elapsed_ms // DAY_MS)
