import asyncio
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar, Union

from .aggregator import (
    build_period_breakdown,
    build_time_series,
    completion_and_direction_counts,
    error_statistics,
    filter_direction,
    filter_logs,
    filter_window,
    log_levels,
    rank_types,
    sort_recent,
    summarize_recent,
)
from .cache import QueryCache
from .errors import MessageNotFound, SourceUnavailable
from .models import (
    ActionKind,
    CompletionCounts,
    ErrorStatistics,
    LogEntry,
    Message,
    PeriodMessages,
    PeriodType,
    RecentMessages,
    TimeBucket,
    TopMessageTypes,
    TypeRanking,
)
from .normalizer import normalize_log, normalize_logs, normalize_message, normalize_messages
from .sources import RecordSource
from .timewindow import DateRange, end_of_day, period_info, period_range

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL = "all"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_period(value: Union[PeriodType, str, None]) -> PeriodType:
    """PeriodType for ``value``; "All" and None select the current month."""
    if isinstance(value, PeriodType):
        return value
    if value is None or value.strip().lower() == ALL:
        return PeriodType.MONTHLY
    return PeriodType(value)


class AnalyticsService:
    """Answers dashboard queries from a record source through a TTL cache.

    Every method is read-only. Rolling chart series and unscoped listings are
    served from the cached full fetch; period-scoped answers query the source
    for the current day, week or month.
    """

    def __init__(
        self,
        source: RecordSource,
        cache: Optional[QueryCache] = None,
        clock: Callable[[], datetime] = _utc_now,
        zone: tzinfo = timezone.utc,
        source_timeout: Optional[float] = None,
    ):
        self.source = source
        self.cache = cache if cache is not None else QueryCache()
        self.clock = clock
        self.zone = zone
        self.source_timeout = source_timeout

    def now(self) -> datetime:
        return self.clock().astimezone(self.zone)

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.source_timeout)
        except asyncio.TimeoutError as exc:
            raise SourceUnavailable(
                self.source.name, f"timed out after {self.source_timeout}s"
            ) from exc

    async def _all_messages(self) -> Tuple[Message, ...]:
        async def load() -> List[Message]:
            raws = await self._call(self.source.fetch_all(ActionKind.MESSAGE))
            logger.debug("Fetched %d messages from %s", len(raws), self.source.name)
            return normalize_messages(raws)

        return await self.cache.get_or_load((self.source.name, ActionKind.MESSAGE), load)

    async def _all_logs(self) -> Tuple[LogEntry, ...]:
        async def load() -> List[LogEntry]:
            raws = await self._call(self.source.fetch_all(ActionKind.LOG))
            logger.debug("Fetched %d log entries from %s", len(raws), self.source.name)
            return normalize_logs(raws)

        return await self.cache.get_or_load((self.source.name, ActionKind.LOG), load)

    async def _messages_between(self, window: DateRange, direction=None) -> List[Message]:
        raws = await self._call(
            self.source.fetch_in_range(ActionKind.MESSAGE, window.start, window.end, direction)
        )
        # Backends filter on their own date granularity; re-apply the exact window.
        messages = filter_window(normalize_messages(raws), window.start, window.end)
        return filter_direction(messages, direction)

    async def _period_messages(self, period: PeriodType, direction=None) -> List[Message]:
        return await self._messages_between(period_range(period, self.now()), direction)

    async def get_message_chart_data(self, period: PeriodType, direction=None) -> List[TimeBucket]:
        period = PeriodType(period)
        logger.debug("Chart data for %s series, direction=%s", period.value, direction)
        messages = await self._all_messages()
        return build_time_series(messages, period, self.now(), direction)

    async def get_period_chart_data(self, period: PeriodType, direction=None) -> List[TimeBucket]:
        period = PeriodType(period)
        messages = await self._period_messages(period, direction)
        return build_period_breakdown(messages, period, self.now(), direction)

    async def get_top_message_types(
        self,
        period: PeriodType,
        direction=None,
        limit: int = 7,
        include_stats: bool = False,
    ) -> List[TypeRanking]:
        period = PeriodType(period)
        logger.debug(
            "Top %d message types for %s, direction=%s, include_stats=%s",
            limit,
            period.value,
            direction,
            include_stats,
        )
        messages = await self._period_messages(period, direction)
        return rank_types(messages, limit, include_stats)

    async def get_top_message_types_report(
        self,
        period: PeriodType,
        direction=None,
        limit: int = 7,
        include_stats: bool = False,
    ) -> TopMessageTypes:
        period = PeriodType(period)
        rankings = await self.get_top_message_types(period, direction, limit, include_stats)
        return TopMessageTypes(
            time_filter=period,
            direction=direction or ALL,
            info=period_info(period, self.now()),
            message_types=rankings,
        )

    async def get_recent_messages(
        self,
        limit: int = 5,
        direction: str = "All",
        period: Union[PeriodType, str, None] = PeriodType.MONTHLY,
    ) -> RecentMessages:
        """Newest messages as summaries.

        A failing source yields an empty result carrying ``error`` instead of
        raising, unlike the other analytics queries.
        """
        logger.debug("Recent messages: limit=%d, direction=%s, period=%s", limit, direction, period)
        scope = parse_period(period)
        try:
            messages = await self._period_messages(scope, direction)
        except SourceUnavailable as exc:
            logger.error("Error retrieving recent messages: %s", exc)
            return RecentMessages(error="Error retrieving messages")

        recent = [summarize_recent(msg, self.zone) for msg in sort_recent(messages)[: max(limit, 0)]]
        return RecentMessages(recent_messages=recent, count=len(recent))

    async def get_error_statistics(self, period: PeriodType, direction: str = "All") -> ErrorStatistics:
        scope = parse_period(period)
        logger.debug("Error statistics for %s, direction=%s", scope, direction)
        messages = await self._period_messages(scope, direction)
        return error_statistics(messages)

    async def get_message_counts(self, period: PeriodType, direction: str = "All") -> CompletionCounts:
        # Inward/outward totals cover both sides, so fetch without the direction filter.
        messages = await self._period_messages(PeriodType(period))
        return completion_and_direction_counts(messages, direction)

    async def get_period_messages(self, period: PeriodType, direction=None) -> PeriodMessages:
        period = PeriodType(period)
        messages = sort_recent(await self._period_messages(period, direction))
        return PeriodMessages(
            messages=messages,
            total=len(messages),
            info=period_info(period, self.now()),
        )

    async def get_messages_in_range(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        direction=None,
    ) -> List[Message]:
        """Message list for the table view; both dates are whole days, inclusive."""
        if from_date is None and to_date is None:
            return sort_recent(filter_direction(await self._all_messages(), direction))
        window = self._day_window(from_date, to_date)
        return sort_recent(await self._messages_between(window, direction))

    async def get_message_by_id(self, message_id: str) -> Message:
        raw = await self._call(self.source.fetch_by_id(message_id))
        if raw is None:
            raise MessageNotFound(message_id)
        return normalize_message(raw)

    async def get_logs(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        level: Optional[str] = None,
        module: Optional[str] = None,
    ) -> List[LogEntry]:
        if date_from is None and date_to is None:
            entries = list(await self._all_logs())
        else:
            window = self._day_window(date_from, date_to)
            raws = await self._call(
                self.source.fetch_in_range(ActionKind.LOG, window.start, window.end)
            )
            entries = filter_window([normalize_log(raw) for raw in raws], window.start, window.end, "time")
        return filter_logs(entries, level, module)

    async def get_log_levels(self) -> List[str]:
        return log_levels(await self._all_logs())

    async def get_document_count(self, kind: ActionKind = ActionKind.MESSAGE) -> int:
        return await self._call(self.source.count(kind))

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def _day_window(self, from_date: Optional[date], to_date: Optional[date]) -> DateRange:
        # An open start is passed through as None; the end defaults to today.
        start = None if from_date is None else self._at_midnight(from_date)
        end = end_of_day(self.now()) if to_date is None else end_of_day(self._at_midnight(to_date))
        return DateRange(start, end)

    def _at_midnight(self, day: date) -> datetime:
        return datetime(day.year, day.month, day.day, tzinfo=self.zone)
