"""Shared test helpers for the analytics tests."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone

from swift_dashboard.errors import SourceUnavailable
from swift_dashboard.sources import InMemoryRecordSource

# A Friday in ISO week 11 of 2025.
NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def raw_message(
    when: datetime = NOW,
    direction: str = "Inward",
    status: str = "Successful",
    mt_type: str = "MT103",
    **extra,
) -> dict:
    record = {
        "id": f"msg-{next(_ids)}",
        "refId": "REF0001",
        "mtMessageType": mt_type,
        "mxMessageType": "pacs.008.001.08",
        "direction": direction,
        "amount": "1500.00",
        "currency": "USD",
        "date": when.isoformat(),
        "status": status,
    }
    record.update(extra)
    return record


def raw_log(when: datetime = NOW, level: str = "INFO", module: str = "mt_parser", message: str = "ok") -> dict:
    return {"time": when.isoformat(), "level": level, "module": module, "message": message}


def week_of_traffic() -> list:
    """10 messages over the last 7 days: 6 inward / 4 outward, 7 successful / 3 failed today."""
    return [
        raw_message(NOW - timedelta(days=6), "Inward", "Successful", "MT103"),
        raw_message(NOW - timedelta(days=5), "Outward", "Successful", "MT202"),
        raw_message(NOW - timedelta(days=4), "Inward", "Successful", "MT103"),
        raw_message(NOW - timedelta(days=3), "Outward", "Successful", "MT940"),
        raw_message(NOW - timedelta(days=2), "Inward", "Successful", "MT103"),
        raw_message(NOW - timedelta(days=1), "Inward", "Successful", "MT202"),
        raw_message(NOW - timedelta(hours=5), "Outward", "Successful", "MT103"),
        raw_message(NOW - timedelta(hours=3), "Inward", "Failed", "MT103", fieldError="Field 32A invalid"),
        raw_message(NOW - timedelta(hours=2), "Inward", "Failed", "MT202", notSupportedError="MT202 not supported"),
        raw_message(NOW - timedelta(hours=1), "Outward", "Failed", "MT940"),
    ]


class FixedClock:
    def __init__(self, value=NOW):
        self.value = value

    def __call__(self):
        return self.value


class TickingClock:
    """Monotonic-style clock the cache tests move by hand."""

    def __init__(self, value: float = 0.0):
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class CountingSource(InMemoryRecordSource):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fetch_all_calls = 0
        self.fetch_in_range_calls = 0

    async def fetch_all(self, kind, direction=None):
        self.fetch_all_calls += 1
        return await super().fetch_all(kind, direction)

    async def fetch_in_range(self, kind, from_date=None, to_date=None, direction=None):
        self.fetch_in_range_calls += 1
        return await super().fetch_in_range(kind, from_date, to_date, direction)


class ExplodingSource:
    """Every call fails the way an unreachable backend does."""

    name = "exploding"

    async def fetch_all(self, kind, direction=None):
        raise SourceUnavailable(self.name, "connection refused")

    async def fetch_in_range(self, kind, from_date=None, to_date=None, direction=None):
        raise SourceUnavailable(self.name, "connection refused")

    async def fetch_by_id(self, message_id):
        raise SourceUnavailable(self.name, "connection refused")

    async def count(self, kind):
        raise SourceUnavailable(self.name, "connection refused")

    async def aclose(self):
        return None


class SlowSource(InMemoryRecordSource):
    name = "slow"

    async def fetch_all(self, kind, direction=None):
        await asyncio.sleep(5)
        return []
