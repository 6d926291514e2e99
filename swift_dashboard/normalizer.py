"""Coerce raw backend records into complete Message / LogEntry values.

The two backends disagree on shape (OpenSearch hits carry camelCase fields in
``_source``, Moesif nests them under ``metadata``) and either may omit fields.
Every field is defaulted independently so the aggregation code never has to
care which backend produced a record.
"""

from collections.abc import Mapping
from typing import Any, Iterable, List

from .models import LogEntry, Message
from .timewindow import parse_timestamp

MESSAGE_TEXT_FIELDS = (
    "id",
    "ref_id",
    "mt_message_type",
    "mx_message_type",
    "direction",
    "currency",
    "status",
    "original_message",
    "translated_message",
    "field_error",
    "not_supported_error",
    "invalid_error",
    "other_error",
)

LOG_TEXT_FIELDS = ("level", "module", "message")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _lookup(raw: Mapping, name: str) -> Any:
    for key in (_camel(name), name):
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return default


def normalize_message(raw: Any) -> Message:
    if not isinstance(raw, Mapping):
        return Message()
    fields = {name: _text(_lookup(raw, name)) for name in MESSAGE_TEXT_FIELDS}
    amount = _text(_lookup(raw, "amount"))
    fields["amount"] = amount if amount else "0"
    fields["date"] = parse_timestamp(_lookup(raw, "date"))
    return Message(**fields)


def normalize_log(raw: Any) -> LogEntry:
    if not isinstance(raw, Mapping):
        return LogEntry()
    fields = {name: _text(_lookup(raw, name)) for name in LOG_TEXT_FIELDS}
    # OpenSearch log documents have used both "time" and "timestamp".
    stamp = _lookup(raw, "time")
    if stamp is None:
        stamp = _lookup(raw, "timestamp")
    fields["time"] = parse_timestamp(stamp)
    return LogEntry(**fields)


def normalize_messages(raws: Iterable[Any]) -> List[Message]:
    return [normalize_message(raw) for raw in raws]


def normalize_logs(raws: Iterable[Any]) -> List[LogEntry]:
    return [normalize_log(raw) for raw in raws]
