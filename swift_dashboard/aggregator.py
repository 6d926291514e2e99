"""Pure aggregation over normalized messages and logs.

Nothing here performs I/O or mutates its inputs. Every function accepts an
empty collection and returns the zero-valued shape for it.
"""

from datetime import datetime, tzinfo
from typing import Callable, Dict, Iterable, List, Optional

from .models import (
    CompletionCounts,
    Direction,
    DirectionCounts,
    ErrorStatistics,
    LogEntry,
    Message,
    PeriodType,
    RecentMessage,
    TimeBucket,
    TypeRanking,
)
from .timewindow import (
    Skeleton,
    bucket_key,
    in_zone,
    period_day_skeleton,
    series_skeleton,
)

UNKNOWN_TYPE = "Unknown"
SUCCESSFUL = "successful"
FAILED = "failed"
INWARD = "inward"
OUTWARD = "outward"


def direction_filter(direction: Optional[str]) -> Optional[str]:
    """Lower-cased direction to keep, or None when every direction is wanted."""
    if direction is None:
        return None
    if isinstance(direction, Direction):
        direction = direction.value
    value = str(direction).strip().lower()
    if not value or value == "all":
        return None
    return value


def percentage(part: int, whole: int) -> int:
    """Integer percentage rounded half-up; 0 for an empty whole."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (whole * 2)


def is_blank(value: str) -> bool:
    return not value or not value.strip()


def filter_direction(records: Iterable[Message], direction: Optional[str]) -> List[Message]:
    wanted = direction_filter(direction)
    if wanted is None:
        return list(records)
    return [msg for msg in records if msg.direction.lower() == wanted]


def filter_window(
    records: Iterable,
    start: Optional[datetime],
    end: Optional[datetime],
    field: str = "date",
) -> List:
    """Records stamped within ``[start, end]``; unstamped records never match.

    A None bound leaves that side of the window open.
    """
    result = []
    for record in records:
        stamp = getattr(record, field)
        if stamp is None:
            continue
        if start is not None and stamp < start:
            continue
        if end is not None and stamp > end:
            continue
        result.append(record)
    return result


def _tally(bucket: TimeBucket, message: Message) -> None:
    side = message.direction.lower()
    if side == INWARD:
        counts: DirectionCounts = bucket.inward
    elif side == OUTWARD:
        counts = bucket.outward
    else:
        return
    status = message.status.lower()
    if status == SUCCESSFUL:
        counts.success += 1
    elif status == FAILED:
        counts.fail += 1


def _fill(
    skeleton: Skeleton,
    records: Iterable[Message],
    key_for: Callable[[datetime], str],
    zone: Optional[tzinfo],
    direction: Optional[str],
) -> List[TimeBucket]:
    buckets: Dict[str, TimeBucket] = {
        slot.key: TimeBucket(key=slot.key, display_label=slot.label)
        for slot in skeleton.slots
    }
    wanted = direction_filter(direction)
    for message in records:
        if message.date is None:
            continue
        stamp = in_zone(message.date, zone)
        if stamp < skeleton.start or stamp > skeleton.end:
            continue
        if wanted is not None and message.direction.lower() != wanted:
            continue
        bucket = buckets.get(key_for(stamp))
        if bucket is None:
            continue
        _tally(bucket, message)
    return sorted(buckets.values(), key=lambda bucket: bucket.key)


def build_time_series(
    records: Iterable[Message],
    period: PeriodType,
    now: datetime,
    direction: Optional[str] = None,
) -> List[TimeBucket]:
    """Success/fail counts per direction over the rolling series ending at ``now``.

    The series always has 7 (daily), 52 (weekly) or 12 (monthly) buckets in
    ascending key order; periods without data keep zero counts.
    """
    skeleton = series_skeleton(period, now)
    return _fill(
        skeleton,
        records,
        lambda stamp: bucket_key(stamp, period),
        now.tzinfo,
        direction,
    )


def _hour_key(stamp: datetime) -> str:
    return f"{stamp.hour:02d}"


def _day_key(stamp: datetime) -> str:
    return bucket_key(stamp, PeriodType.DAILY)


def build_period_breakdown(
    records: Iterable[Message],
    period: PeriodType,
    now: datetime,
    direction: Optional[str] = None,
) -> List[TimeBucket]:
    """Drill-down of the current period: hours of today, or days of this week/month."""
    skeleton = period_day_skeleton(period, now)
    key_for = _hour_key if period is PeriodType.DAILY else _day_key
    return _fill(skeleton, records, key_for, now.tzinfo, direction)


def rank_types(
    records: Iterable[Message],
    limit: int = 7,
    include_stats: bool = False,
) -> List[TypeRanking]:
    """Most frequent MT message types, highest count first.

    Equal counts keep the order in which the types were first seen.
    """
    stats: Dict[str, List[int]] = {}
    for message in records:
        msg_type = message.mt_message_type if not is_blank(message.mt_message_type) else UNKNOWN_TYPE
        entry = stats.setdefault(msg_type, [0, 0, 0])
        entry[0] += 1
        status = message.status.lower()
        if status == SUCCESSFUL:
            entry[1] += 1
        elif status == FAILED:
            entry[2] += 1

    ordered = sorted(stats.items(), key=lambda item: -item[1][0])
    rankings: List[TypeRanking] = []
    for msg_type, (count, successful, failed) in ordered[: max(limit, 0)]:
        if include_stats:
            rankings.append(
                TypeRanking(
                    type=msg_type,
                    count=count,
                    successful=successful,
                    failed=failed,
                    success_rate_int=percentage(successful, count),
                )
            )
        else:
            rankings.append(TypeRanking(type=msg_type, count=count))
    return rankings


def error_statistics(records: Iterable[Message]) -> ErrorStatistics:
    """Error taxonomy over failed messages.

    Categories overlap: a failure carrying both a field error and an explicit
    other error counts in both. A failure with none of the field, not-supported
    or invalid errors set counts as "other" even without an other error.
    """
    result = ErrorStatistics()
    for message in records:
        if message.status.lower() != FAILED:
            continue
        result.total_errors += 1
        classified = False
        if not is_blank(message.field_error):
            result.field_errors += 1
            classified = True
        if not is_blank(message.not_supported_error):
            result.not_supported_errors += 1
            classified = True
        if not is_blank(message.invalid_error):
            result.invalid_errors += 1
            classified = True
        if not is_blank(message.other_error) or not classified:
            result.other_errors += 1
    return result


def completion_and_direction_counts(
    records: Iterable[Message],
    direction: Optional[str] = None,
) -> CompletionCounts:
    """Success/fail counts for the selected side plus inward/outward over everything."""
    wanted = direction_filter(direction)
    counts = CompletionCounts()
    for message in records:
        side = message.direction.lower()
        if side == INWARD:
            counts.inward_count += 1
        elif side == OUTWARD:
            counts.outward_count += 1
        if wanted is not None and side != wanted:
            continue
        status = message.status.lower()
        if status == SUCCESSFUL:
            counts.success_count += 1
        elif status == FAILED:
            counts.fail_count += 1
    counts.total_count = counts.success_count + counts.fail_count
    counts.success_percentage = percentage(counts.success_count, counts.total_count)
    counts.fail_percentage = percentage(counts.fail_count, counts.total_count)
    return counts


def sort_recent(records: Iterable[Message]) -> List[Message]:
    """Newest first; undated messages sink to the end in their original order."""
    messages = list(records)
    dated = [msg for msg in messages if msg.date is not None]
    undated = [msg for msg in messages if msg.date is None]
    dated.sort(key=lambda msg: msg.date, reverse=True)
    return dated + undated


def summarize_recent(message: Message, zone: Optional[tzinfo] = None) -> RecentMessage:
    time = ""
    if message.date is not None:
        time = in_zone(message.date, zone).strftime("%Y-%m-%dT%H:%M")
    return RecentMessage(
        id=message.id,
        ref_id=message.ref_id,
        time=time,
        mt_message_type=message.mt_message_type,
        status=message.status,
        direction=message.direction,
    )


def log_levels(entries: Iterable[LogEntry]) -> List[str]:
    return sorted({entry.level for entry in entries if not is_blank(entry.level)})


def filter_logs(
    entries: Iterable[LogEntry],
    level: Optional[str] = None,
    module: Optional[str] = None,
) -> List[LogEntry]:
    """Case-insensitive exact level match and substring module match."""
    result = []
    for entry in entries:
        if level and entry.level.lower() != level.lower():
            continue
        if module and module.lower() not in entry.module.lower():
            continue
        result.append(entry)
    return result
