import httpx
import pytest
import pytest_asyncio

from swift_dashboard import main
from swift_dashboard.analytics import AnalyticsService
from swift_dashboard.sources import InMemoryRecordSource
from tests.helpers import NOW, CountingSource, ExplodingSource, FixedClock, raw_log, raw_message, week_of_traffic

PREFIX = main.settings.api_prefix


def install(monkeypatch, source):
    service = AnalyticsService(source, clock=FixedClock(NOW))
    monkeypatch.setattr(main, "service", service)
    return service


@pytest.fixture
def source(monkeypatch):
    source = CountingSource(week_of_traffic(), [raw_log(NOW, "ERROR", "mx_builder", "rejected")])
    install(monkeypatch, source)
    return source


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_health(source, client):
    response = await client.get("/health")
    assert response.json() == {"status": "ok", "backend": "memory"}


@pytest.mark.asyncio
async def test_chart_uses_camel_case(source, client):
    response = await client.get(f"{PREFIX}/chart", params={"timeframe": "Daily"})
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 7
    assert body[-1] == {
        "key": "2025-03-14",
        "displayLabel": "Fri 03/14",
        "inward": {"success": 0, "fail": 2},
        "outward": {"success": 1, "fail": 1},
    }


@pytest.mark.asyncio
async def test_invalid_period_is_rejected(source, client):
    response = await client.get(f"{PREFIX}/chart", params={"timeframe": "yearly"})
    assert response.status_code == 400
    assert "yearly" in response.json()["detail"]


@pytest.mark.asyncio
async def test_invalid_direction_is_rejected(source, client):
    response = await client.get(f"{PREFIX}/stats/counts", params={"direction": "upward"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_period_chart(source, client):
    response = await client.get(f"{PREFIX}/chart/weekly")
    assert [bucket["key"] for bucket in response.json()][0] == "2025-03-10"


@pytest.mark.asyncio
async def test_messages_list_with_dates(source, client):
    response = await client.get(
        f"{PREFIX}/messages-list", params={"fromDate": "2025-03-12", "toDate": "2025-03-13"}
    )
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 2
    assert {"refId", "mtMessageType", "fieldError"} <= set(body[0])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params, detail",
    [
        ({"fromDate": "14-03-2025"}, "Invalid date format. Use YYYY-MM-DD format."),
        ({"fromDate": "2025-02-30"}, "Invalid date '2025-02-30'"),
        ({"fromDate": "2025-03-14", "toDate": "2025-03-01"}, "Start date cannot be after end date"),
    ],
)
async def test_messages_list_rejects_bad_dates(source, client, params, detail):
    response = await client.get(f"{PREFIX}/messages-list", params=params)
    assert response.status_code == 400
    assert response.json() == {"detail": detail}


@pytest.mark.asyncio
async def test_log_list_and_levels(source, client):
    logs = await client.get(f"{PREFIX}/log-list", params={"level": "error"})
    assert [entry["module"] for entry in logs.json()] == ["mx_builder"]
    levels = await client.get(f"{PREFIX}/log-levels")
    assert levels.json() == {"levels": ["ERROR"]}


@pytest.mark.asyncio
async def test_message_detail(source, client):
    source.add_message(raw_message(id="abc", mt_type="MT199"))
    found = await client.get(f"{PREFIX}/message/abc")
    assert found.status_code == 200
    assert found.json()["mtMessageType"] == "MT199"

    missing = await client.get(f"{PREFIX}/message/nope")
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Message 'nope' not found"}


@pytest.mark.asyncio
async def test_recent_messages_route_is_not_shadowed(source, client):
    response = await client.get(f"{PREFIX}/messages/recent", params={"limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert "error" not in body
    assert set(body["recentMessages"][0]) == {"id", "refId", "time", "mtMessageType", "status", "direction"}


@pytest.mark.asyncio
async def test_recent_messages_accepts_time_filter(source, client):
    response = await client.get(f"{PREFIX}/messages/recent", params={"timeFilter": "daily", "limit": 10})
    assert response.json()["count"] == 4
    bad = await client.get(f"{PREFIX}/messages/recent", params={"timeframe": "hourly"})
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_period_messages(source, client):
    response = await client.get(f"{PREFIX}/messages/weekly")
    body = response.json()
    assert body["total"] == 8
    assert body["info"]["startDate"] == "2025-03-10"


@pytest.mark.asyncio
async def test_top_message_types_omits_unset_stats(source, client):
    plain = await client.get(f"{PREFIX}/stats/top-message-types", params={"timeFilter": "daily"})
    body = plain.json()
    assert body["timeFilter"] == "daily"
    assert body["messageTypes"][0] == {"type": "MT103", "count": 2}

    detailed = await client.get(
        f"{PREFIX}/stats/top-message-types", params={"timeFilter": "daily", "includeStats": "true"}
    )
    assert detailed.json()["messageTypes"][0] == {
        "type": "MT103",
        "count": 2,
        "successful": 1,
        "failed": 1,
        "successRateInt": 50,
    }


@pytest.mark.asyncio
async def test_message_counts(source, client):
    response = await client.get(f"{PREFIX}/stats/counts", params={"timeFilter": "daily"})
    body = response.json()
    assert (body["successCount"], body["failCount"], body["totalCount"]) == (1, 3, 4)
    assert body["failPercentage"] == 75


@pytest.mark.asyncio
async def test_error_statistics(source, client):
    response = await client.get(f"{PREFIX}/error-statistics", params={"timeFilter": "Daily"})
    assert response.json() == {
        "fieldErrors": 1,
        "notSupportedErrors": 1,
        "invalidErrors": 0,
        "otherErrors": 1,
        "totalErrors": 3,
    }
    everything = await client.get(f"{PREFIX}/error-statistics")
    assert everything.json()["totalErrors"] == 3


@pytest.mark.asyncio
async def test_cache_refresh(source, client):
    await client.get(f"{PREFIX}/chart")
    await client.get(f"{PREFIX}/chart")
    assert source.fetch_all_calls == 1

    response = await client.post(f"{PREFIX}/cache/refresh")
    assert response.json() == {"message": "Cache invalidated successfully"}

    await client.get(f"{PREFIX}/chart")
    assert source.fetch_all_calls == 2


@pytest.mark.asyncio
async def test_unavailable_source_maps_to_bad_gateway(monkeypatch, client):
    install(monkeypatch, ExplodingSource())
    response = await client.get(f"{PREFIX}/error-statistics")
    assert response.status_code == 502
    assert "connection refused" in response.json()["detail"]


@pytest.mark.asyncio
async def test_recent_messages_survive_unavailable_source(monkeypatch, client):
    install(monkeypatch, ExplodingSource())
    response = await client.get(f"{PREFIX}/messages/recent")
    assert response.status_code == 200
    assert response.json() == {"recentMessages": [], "count": 0, "error": "Error retrieving messages"}


@pytest.mark.asyncio
async def test_empty_source_chart(monkeypatch, client):
    install(monkeypatch, InMemoryRecordSource())
    response = await client.get(f"{PREFIX}/chart", params={"timeframe": "monthly"})
    assert len(response.json()) == 12


@pytest.mark.asyncio
async def test_overview_panels_default_to_current_month(monkeypatch, client):
    old_failure = raw_message(NOW.replace(month=1), status="Failed", invalidError="bad BIC")
    install(monkeypatch, InMemoryRecordSource([old_failure, raw_message(NOW, status="Failed")]))

    recent = await client.get(f"{PREFIX}/messages/recent")
    assert recent.json()["count"] == 1
    errors = await client.get(f"{PREFIX}/error-statistics")
    assert errors.json()["totalErrors"] == 1
    assert errors.json()["invalidErrors"] == 0
