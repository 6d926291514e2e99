import logging
import re
from contextlib import asynccontextmanager
from datetime import date, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .analytics import AnalyticsService, parse_period
from .cache import QueryCache
from .config import Settings, settings
from .errors import InvalidQuery, MessageNotFound, SourceUnavailable
from .models import (
    CompletionCounts,
    ErrorStatistics,
    LogEntry,
    Message,
    PeriodMessages,
    PeriodType,
    RecentMessages,
    TimeBucket,
    TopMessageTypes,
)
from .sources import create_record_source

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("swift_dashboard")

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DIRECTIONS = {"inward", "outward", "all"}


def build_service(config: Settings) -> AnalyticsService:
    zone = timezone.utc if config.dashboard_timezone.upper() == "UTC" else ZoneInfo(config.dashboard_timezone)
    return AnalyticsService(
        create_record_source(config),
        QueryCache(ttl=config.cache_ttl_seconds),
        zone=zone,
        source_timeout=config.source_timeout_seconds,
    )


service = build_service(settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Serving %s analytics with a %ss cache", service.source.name, service.cache.ttl)
    yield
    await service.source.aclose()


app = FastAPI(
    title="SWIFT Dashboard Analytics",
    version="0.1.0",
    description="Analytics over SWIFT MT/MX translation events and translator logs.",
    lifespan=lifespan,
)
router = APIRouter(prefix=settings.api_prefix)


@app.exception_handler(SourceUnavailable)
async def source_unavailable_handler(_: Request, exc: SourceUnavailable) -> JSONResponse:
    logger.error("Backing store failure: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(InvalidQuery)
async def invalid_query_handler(_: Request, exc: InvalidQuery) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _period(value: str) -> PeriodType:
    try:
        return PeriodType(value)
    except ValueError as exc:
        raise InvalidQuery(f"Invalid period '{value}'") from exc


def _direction(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if value.strip().lower() not in DIRECTIONS:
        raise InvalidQuery(f"Invalid direction '{value}'")
    return value


def _day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    if not DATE_PATTERN.match(value):
        raise InvalidQuery("Invalid date format. Use YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidQuery(f"Invalid date '{value}'") from exc


def _date_range(start: Optional[str], end: Optional[str]):
    first, last = _day(start), _day(end)
    if first and last and first > last:
        raise InvalidQuery("Start date cannot be after end date")
    return first, last


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "backend": service.source.name}


@router.get("/messages-list")
async def messages_list(
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    direction: Optional[str] = None,
) -> List[Message]:
    first, last = _date_range(from_date, to_date)
    return await service.get_messages_in_range(first, last, _direction(direction))


@router.get("/log-list")
async def log_list(
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    level: Optional[str] = None,
    module: Optional[str] = None,
) -> List[LogEntry]:
    first, last = _date_range(date_from, date_to)
    return await service.get_logs(first, last, level, module)


@router.get("/log-levels")
async def log_level_list() -> dict:
    return {"levels": await service.get_log_levels()}


@router.get("/message/{message_id}")
async def message_detail(message_id: str) -> Message:
    try:
        return await service.get_message_by_id(message_id)
    except MessageNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/chart")
async def chart(timeframe: str = "daily", direction: Optional[str] = None) -> List[TimeBucket]:
    return await service.get_message_chart_data(_period(timeframe), _direction(direction))


@router.get("/chart/{period}")
async def period_chart(period: str, direction: Optional[str] = None) -> List[TimeBucket]:
    return await service.get_period_chart_data(_period(period), _direction(direction))


@router.get("/messages/recent", response_model=RecentMessages, response_model_exclude_none=True)
async def recent_messages(
    limit: int = Query(5, ge=0),
    direction: str = "All",
    timeframe: Optional[str] = None,
    time_filter: Optional[str] = Query(None, alias="timeFilter"),
    period: Optional[str] = None,
):
    requested = timeframe or time_filter or period
    try:
        scope = parse_period(requested)
    except ValueError as exc:
        raise InvalidQuery(f"Invalid period '{requested}'") from exc
    return await service.get_recent_messages(limit, _direction(direction), scope)


@router.get("/messages/{period}")
async def period_messages(period: str, direction: Optional[str] = None) -> PeriodMessages:
    return await service.get_period_messages(_period(period), _direction(direction))


@router.get(
    "/stats/top-message-types",
    response_model=TopMessageTypes,
    response_model_exclude_none=True,
)
async def top_message_types(
    time_filter: str = Query("daily", alias="timeFilter"),
    direction: Optional[str] = None,
    limit: int = Query(7, ge=0),
    include_stats: bool = Query(False, alias="includeStats"),
):
    return await service.get_top_message_types_report(
        _period(time_filter), _direction(direction), limit, include_stats
    )


@router.get("/stats/counts")
async def message_counts(
    time_filter: str = Query("daily", alias="timeFilter"),
    direction: str = "All",
) -> CompletionCounts:
    return await service.get_message_counts(_period(time_filter), _direction(direction))


@router.get("/error-statistics")
async def error_stats(
    time_filter: str = Query(PeriodType.MONTHLY.value, alias="timeFilter"),
    direction: str = "All",
) -> ErrorStatistics:
    try:
        scope = parse_period(time_filter)
    except ValueError as exc:
        raise InvalidQuery(f"Invalid period '{time_filter}'") from exc
    return await service.get_error_statistics(scope, _direction(direction))


@router.post("/cache/refresh")
async def refresh_cache() -> dict:
    service.invalidate_cache()
    return {"message": "Cache invalidated successfully"}


app.include_router(router)
