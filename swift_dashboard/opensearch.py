import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .aggregator import direction_filter
from .errors import SourceUnavailable
from .models import ActionKind

logger = logging.getLogger(__name__)

TIME_FIELDS = {ActionKind.MESSAGE: "date", ActionKind.LOG: "time"}


def build_query(
    kind: ActionKind,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    direction: Optional[str] = None,
) -> Dict[str, Any]:
    must: List[Dict[str, Any]] = []
    if from_date is not None or to_date is not None:
        bounds: Dict[str, str] = {}
        if from_date is not None:
            bounds["gte"] = from_date.isoformat()
        if to_date is not None:
            bounds["lte"] = to_date.isoformat()
        must.append({"range": {TIME_FIELDS[kind]: bounds}})

    wanted = direction_filter(direction) if kind is ActionKind.MESSAGE else None
    if wanted is not None:
        must.append({"term": {"direction.keyword": wanted.capitalize()}})

    if not must:
        return {"match_all": {}}
    return {"bool": {"must": must}}


class OpenSearchRecordSource:
    """Reads translated messages and logs straight from OpenSearch indices."""

    name = "opensearch"

    def __init__(self, client: httpx.AsyncClient, index: str, log_index: str):
        self.client = client
        self.indices = {ActionKind.MESSAGE: index, ActionKind.LOG: log_index}

    @classmethod
    def from_settings(cls, settings) -> "OpenSearchRecordSource":
        auth = None
        if settings.opensearch_username:
            auth = (settings.opensearch_username, settings.opensearch_password or "")
        client = httpx.AsyncClient(
            base_url=settings.opensearch_url,
            auth=auth,
            verify=settings.opensearch_verify_tls,
            timeout=settings.source_timeout_seconds,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        return cls(client, settings.opensearch_index, settings.opensearch_log_index)

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(path, json=body)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("OpenSearch request to %s failed: %s", path, exc)
            raise SourceUnavailable(self.name, str(exc)) from exc

    async def count(self, kind: ActionKind) -> int:
        payload = await self._post(f"/{self.indices[kind]}/_count", {"query": {"match_all": {}}})
        return int(payload.get("count", 0))

    async def _search(self, kind: ActionKind, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        size = await self.count(kind)
        if size == 0:
            return []
        body = {
            "size": size,
            "query": query,
            "sort": [{TIME_FIELDS[kind]: {"order": "desc"}}],
        }
        payload = await self._post(f"/{self.indices[kind]}/_search", body)
        hits = payload.get("hits", {}).get("hits", [])
        return [hit.get("_source") or {} for hit in hits]

    async def fetch_all(self, kind: ActionKind, direction: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._search(kind, build_query(kind, direction=direction))

    async def fetch_in_range(
        self,
        kind: ActionKind,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        direction: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self._search(kind, build_query(kind, from_date, to_date, direction))

    async def fetch_by_id(self, message_id: str) -> Optional[Dict[str, Any]]:
        body = {"size": 1, "query": {"term": {"id.keyword": message_id}}}
        payload = await self._post(f"/{self.indices[ActionKind.MESSAGE]}/_search", body)
        hits = payload.get("hits", {}).get("hits", [])
        if not hits:
            return None
        return hits[0].get("_source") or {}

    async def aclose(self) -> None:
        await self.client.aclose()
