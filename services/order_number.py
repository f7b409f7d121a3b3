import logging
import re
from datetime import date, datetime, time
from functools import lru_cache
from typing import Protocol

import redis

from core.config import settings

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_PATTERN = re.compile(r"^ORD-(\d{6})-(\d{4,})$")
REDIS_KEY_PREFIX = "order_seq:"


def day_code(day: date) -> str:
    return day.strftime("%y%m%d")


def day_prefix(day: date) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{day_code(day)}-"


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return the first and last instant of the calendar day containing moment."""
    day = moment.date()
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def format_order_number(day: date, sequence: int) -> str:
    if sequence < 1:
        raise ValueError(f"Order sequence must be positive, got {sequence}")
    return f"{day_prefix(day)}{sequence:04d}"


def parse_order_number(order_number: str) -> tuple[str, int]:
    """Split an order number into its YYMMDD code and sequence."""
    match = ORDER_NUMBER_PATTERN.match(order_number)
    if not match:
        raise ValueError(f"Malformed order number: {order_number!r}")
    return match.group(1), int(match.group(2))


class SequenceSource(Protocol):
    def next_value(self, moment: datetime) -> int:
        ...

    def recover(self, moment: datetime) -> None:
        """Move the day's sequence past every number already stored."""
        ...


class CounterSequence:
    """Per-day counter row incremented atomically by the repository."""

    def __init__(self, repository):
        self.repository = repository

    def next_value(self, moment: datetime) -> int:
        return self.repository.next_daily_sequence(moment.date())

    def recover(self, moment: datetime) -> None:
        day = moment.date()
        highest = self.repository.max_daily_sequence(day)
        self.repository.advance_daily_sequence(day, highest)
        logger.info("Order sequence for %s moved up to %d", day_code(day), highest)


class CountingSequence:
    """Legacy count-then-insert numbering.

    Two concurrent creations can read the same count; the service's
    duplicate-number retry is the only protection.
    """

    def __init__(self, repository):
        self.repository = repository
        self.floors = {}

    def next_value(self, moment: datetime) -> int:
        start, end = day_bounds(moment)
        count = self.repository.count_by_date_range(start, end)
        return max(count, self.floors.get(moment.date(), 0)) + 1

    def recover(self, moment: datetime) -> None:
        day = moment.date()
        self.floors[day] = self.repository.max_daily_sequence(day)


class RedisSequence:
    def __init__(self, client, repository=None, ttl_seconds: int | None = None):
        self.client = client
        self.repository = repository
        self.ttl_seconds = ttl_seconds or settings.ORDER_SEQUENCE_TTL_SECONDS

    def _key(self, day: date) -> str:
        return f"{REDIS_KEY_PREFIX}{day_code(day)}"

    def next_value(self, moment: datetime) -> int:
        key = self._key(moment.date())
        value = int(self.client.incr(key))
        if value == 1:
            # First number of the day owns the key expiry
            self.client.expire(key, self.ttl_seconds)
        return value

    def recover(self, moment: datetime) -> None:
        if self.repository is None:
            return
        day = moment.date()
        key = self._key(day)
        highest = self.repository.max_daily_sequence(day)
        current = int(self.client.get(key) or 0)
        if highest > current:
            # INCRBY never lowers a value another process raised meanwhile
            self.client.incrby(key, highest - current)
            self.client.expire(key, self.ttl_seconds)


class OrderNumberAllocator:
    def __init__(self, sequence: SequenceSource):
        self.sequence = sequence

    def allocate(self, moment: datetime) -> str:
        """Return the order number for an order created at moment."""
        order_number = format_order_number(moment.date(), self.sequence.next_value(moment))
        logger.debug("Allocated order number %s", order_number)
        return order_number

    def recover(self, moment: datetime) -> None:
        """Resynchronise the sequence after a duplicate-number collision."""
        self.sequence.recover(moment)


@lru_cache(maxsize=1)
def get_redis_client():
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def build_sequence(repository, backend: str | None = None) -> SequenceSource:
    backend = (backend or settings.ORDER_SEQUENCE_BACKEND).lower()
    if backend == "counter":
        return CounterSequence(repository)
    if backend == "count":
        return CountingSequence(repository)
    if backend == "redis":
        return RedisSequence(get_redis_client(), repository)
    raise ValueError(f"Unknown order sequence backend: {backend}")
