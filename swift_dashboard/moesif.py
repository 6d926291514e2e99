import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .aggregator import direction_filter
from .errors import SourceUnavailable
from .models import ActionKind

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}
DATE_FIELDS = {ActionKind.MESSAGE: "metadata.date", ActionKind.LOG: "metadata.time"}


def build_search(
    action_name: str,
    kind: ActionKind = ActionKind.MESSAGE,
    size: Optional[int] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    direction: Optional[str] = None,
    extra_filters: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Moesif event search body filtered to one action and optional window/direction."""
    must: List[Dict[str, Any]] = [{"term": {"action_name.raw": action_name}}]
    if from_date is not None or to_date is not None:
        bounds: Dict[str, str] = {}
        if from_date is not None:
            bounds["gte"] = from_date.isoformat()
        if to_date is not None:
            bounds["lte"] = to_date.isoformat()
        must.append({"range": {DATE_FIELDS[kind]: bounds}})

    wanted = direction_filter(direction) if kind is ActionKind.MESSAGE else None
    if wanted is not None:
        must.append({"term": {"metadata.direction.raw": wanted.capitalize()}})
    if extra_filters:
        must.extend(extra_filters)

    body: Dict[str, Any] = {
        "post_filter": {"bool": {"must": must}},
        "sort": [{"request.time": {"order": "desc"}}],
        "_source": ["metadata"],
    }
    if size is not None:
        body["size"] = size
    return body


def is_retryable(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUSES
    return isinstance(exc, httpx.TransportError)


class MoesifRecordSource:
    """Reads translation and log actions from the Moesif search API.

    Retryable failures (transport errors and 408/429/5xx gateway statuses) are
    retried with exponential backoff before surfacing as SourceUnavailable.
    """

    name = "moesif"

    def __init__(
        self,
        client: httpx.AsyncClient,
        search_path: str,
        message_action: str,
        log_action: str,
        window: str = "-52w",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.search_path = search_path
        self.actions = {ActionKind.MESSAGE: message_action, ActionKind.LOG: log_action}
        self.window = window
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "MoesifRecordSource":
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if settings.moesif_api_key:
            headers["Authorization"] = f"Bearer {settings.moesif_api_key}"
        client = httpx.AsyncClient(
            base_url=settings.moesif_base_url,
            timeout=settings.source_timeout_seconds,
            headers=headers,
        )
        return cls(
            client,
            settings.moesif_search_path,
            settings.moesif_message_action,
            settings.moesif_log_action,
            window=settings.moesif_window,
            max_retries=settings.moesif_max_retries,
            retry_delay=settings.moesif_retry_delay_seconds,
        )

    async def _query(self, body: Dict[str, Any]) -> Dict[str, Any]:
        params = {"from": self.window, "to": "now"}
        attempt = 0
        while True:
            try:
                response = await self.client.post(self.search_path, json=body, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as exc:
                if attempt < self.max_retries and is_retryable(exc):
                    attempt += 1
                    delay = self.retry_delay * 2 ** (attempt - 1)
                    logger.warning(
                        "Moesif retry %d/%d after %.1fs: %s", attempt, self.max_retries, delay, exc
                    )
                    await self._sleep(delay)
                    continue
                logger.error("Moesif search failed after %d retries: %s", attempt, exc)
                raise SourceUnavailable(self.name, str(exc)) from exc
            except ValueError as exc:
                raise SourceUnavailable(self.name, f"invalid response body: {exc}") from exc

    @staticmethod
    def _metadata(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        hits = payload.get("hits", {}).get("hits", [])
        return [(hit.get("_source") or {}).get("metadata") or {} for hit in hits]

    async def count(self, kind: ActionKind) -> int:
        payload = await self._query(build_search(self.actions[kind], kind, size=0))
        total = payload.get("hits", {}).get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        return int(total or 0)

    async def _search(self, kind: ActionKind, **filters) -> List[Dict[str, Any]]:
        size = await self.count(kind)
        if size == 0:
            return []
        payload = await self._query(build_search(self.actions[kind], kind, size=size, **filters))
        return self._metadata(payload)

    async def fetch_all(self, kind: ActionKind, direction: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._search(kind, direction=direction)

    async def fetch_in_range(
        self,
        kind: ActionKind,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        direction: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self._search(kind, from_date=from_date, to_date=to_date, direction=direction)

    async def fetch_by_id(self, message_id: str) -> Optional[Dict[str, Any]]:
        body = build_search(
            self.actions[ActionKind.MESSAGE],
            size=1,
            extra_filters=[{"term": {"metadata.id.raw": message_id}}],
        )
        records = self._metadata(await self._query(body))
        return records[0] if records else None

    async def aclose(self) -> None:
        await self.client.aclose()
