import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .aggregator import direction_filter
from .models import ActionKind
from .moesif import MoesifRecordSource
from .opensearch import OpenSearchRecordSource
from .timewindow import parse_timestamp

RawRecord = Dict[str, Any]

TIMESTAMP_FIELD = {ActionKind.MESSAGE: "date", ActionKind.LOG: "time"}


class RecordSource(Protocol):
    """Backing store of translation events, as the analytics core sees it.

    Implementations return raw backend-shaped records newest first and raise
    ``SourceUnavailable`` when the store cannot be reached.
    """

    name: str

    async def fetch_all(self, kind: ActionKind, direction: Optional[str] = None) -> List[RawRecord]:
        ...

    async def fetch_in_range(
        self,
        kind: ActionKind,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        direction: Optional[str] = None,
    ) -> List[RawRecord]:
        ...

    async def fetch_by_id(self, message_id: str) -> Optional[RawRecord]:
        ...

    async def count(self, kind: ActionKind) -> int:
        ...

    async def aclose(self) -> None:
        ...


MT_TYPES = ["MT103", "MT202", "MT202COV", "MT940", "MT950", "MT199", "MT900", "MT910"]
MX_TYPES = {
    "MT103": "pacs.008.001.08",
    "MT202": "pacs.009.001.08",
    "MT202COV": "pacs.009.001.08",
    "MT940": "camt.053.001.08",
    "MT950": "camt.053.001.08",
    "MT199": "admi.024.001.01",
    "MT900": "camt.054.001.08",
    "MT910": "camt.054.001.08",
}
CURRENCIES = ["USD", "EUR", "GBP", "JPY", "CHF"]
ERROR_FIELDS = ["fieldError", "notSupportedError", "invalidError", "otherError"]
LOG_LEVELS = ["DEBUG", "INFO", "WARN", "ERROR"]
LOG_MODULES = ["swift_translator", "mt_parser", "mx_builder", "listener"]


def _record_time(record: RawRecord, kind: ActionKind) -> Optional[datetime]:
    return parse_timestamp(record.get(TIMESTAMP_FIELD[kind]))


class InMemoryRecordSource:
    """In-memory stand-in for the search index."""

    name = "memory"

    def __init__(
        self,
        messages: Optional[Iterable[RawRecord]] = None,
        logs: Optional[Iterable[RawRecord]] = None,
    ):
        self._rows: Dict[ActionKind, List[RawRecord]] = {
            ActionKind.MESSAGE: list(messages or []),
            ActionKind.LOG: list(logs or []),
        }

    def seed(self, message_count: int, log_count: int = 0, days: int = 60) -> None:
        now = datetime.now(timezone.utc)
        for _ in range(message_count):
            self.add_message(_random_message(now - timedelta(seconds=random.randint(0, days * 86400))))
        for _ in range(log_count):
            self.add_log(_random_log(now - timedelta(seconds=random.randint(0, days * 86400))))

    def add_message(self, record: RawRecord) -> RawRecord:
        self._rows[ActionKind.MESSAGE].append(record)
        return record

    def add_log(self, record: RawRecord) -> RawRecord:
        self._rows[ActionKind.LOG].append(record)
        return record

    def _select(
        self,
        kind: ActionKind,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        direction: Optional[str] = None,
    ) -> List[RawRecord]:
        wanted = direction_filter(direction) if kind is ActionKind.MESSAGE else None
        rows = []
        for row in self._rows[kind]:
            if wanted is not None and str(row.get("direction", "")).lower() != wanted:
                continue
            if from_date is not None or to_date is not None:
                stamp = _record_time(row, kind)
                if stamp is None:
                    continue
                if from_date is not None and stamp < from_date:
                    continue
                if to_date is not None and stamp > to_date:
                    continue
            rows.append(dict(row))
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        rows.sort(key=lambda row: _record_time(row, kind) or epoch, reverse=True)
        return rows

    async def fetch_all(self, kind: ActionKind, direction: Optional[str] = None) -> List[RawRecord]:
        return self._select(kind, direction=direction)

    async def fetch_in_range(
        self,
        kind: ActionKind,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        direction: Optional[str] = None,
    ) -> List[RawRecord]:
        return self._select(kind, from_date, to_date, direction)

    async def fetch_by_id(self, message_id: str) -> Optional[RawRecord]:
        for row in self._rows[ActionKind.MESSAGE]:
            if row.get("id") == message_id:
                return dict(row)
        return None

    async def count(self, kind: ActionKind) -> int:
        return len(self._rows[kind])

    async def aclose(self) -> None:
        return None


def _random_message(when: datetime) -> RawRecord:
    mt_type = random.choice(MT_TYPES)
    failed = random.random() < 0.2
    record: RawRecord = {
        "id": str(uuid.uuid4()),
        "refId": f"REF{random.randint(10**9, 10**10 - 1)}",
        "mtMessageType": mt_type,
        "mxMessageType": MX_TYPES[mt_type],
        "direction": random.choice(["Inward", "Outward"]),
        "amount": f"{random.uniform(10, 250000):.2f}",
        "currency": random.choice(CURRENCIES),
        "date": when.isoformat(),
        "status": "Failed" if failed else "Successful",
        "originalMessage": f"{{1:F01BANKBEBBAXXX0000000000}}{{2:I{mt_type[2:5]}BANKDEFFXXXXN}}",
        "translatedMessage": "" if failed else f"<Document>{MX_TYPES[mt_type]}</Document>",
    }
    if failed:
        record[random.choice(ERROR_FIELDS)] = "Translation rejected"
    return record


def _random_log(when: datetime) -> RawRecord:
    return {
        "time": when.isoformat(),
        "level": random.choice(LOG_LEVELS),
        "module": random.choice(LOG_MODULES),
        "message": f"processed batch {uuid.uuid4().hex[:8]}",
    }


def create_record_source(settings) -> RecordSource:
    backend = settings.backend.lower()
    if backend == "opensearch":
        return OpenSearchRecordSource.from_settings(settings)
    if backend == "moesif":
        return MoesifRecordSource.from_settings(settings)
    source = InMemoryRecordSource()
    source.seed(settings.memory_seed_messages, settings.memory_seed_logs)
    return source
