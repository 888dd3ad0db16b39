import sys
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.crisis_data.conflict_service import ConflictDataService
from services.crisis_data.gdelt_client import GDELTClient, build_article_query
from utils.result import Err, ErrorKind, Ok


def _client(handler) -> GDELTClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GDELTClient("https://gdelt.example/api/v2", "https://gdelt.example/api/v2/events/query", http_client=http)


@pytest.mark.asyncio
async def test_fetch_articles_builds_doc_query(killing_articles):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"articles": killing_articles})

    result = await _client(handler).fetch_articles("Sudan", days=7)

    assert result.ok
    assert len(result.value) == 5
    assert seen["path"] == "/api/v2/doc/doc"
    assert seen["params"]["mode"] == "artlist"
    assert seen["params"]["maxrecords"] == "100"
    assert seen["params"]["query"] == build_article_query("Sudan")
    assert seen["params"]["query"].startswith("Sudan (CONFLICT OR CRISES")


@pytest.mark.asyncio
async def test_fetch_articles_without_matches_is_empty_list():
    result = await _client(lambda request: httpx.Response(200, json={})).fetch_articles("Iceland")
    assert result.ok
    assert result.value == []


@pytest.mark.asyncio
async def test_fetch_articles_classifies_failures():
    server_down = await _client(lambda request: httpx.Response(502)).fetch_articles("Sudan")
    not_json = await _client(lambda request: httpx.Response(200, text="<html>")).fetch_articles("Sudan")
    wrong_shape = await _client(lambda request: httpx.Response(200, json={"articles": "none"})).fetch_articles("Sudan")

    assert server_down.kind == ErrorKind.UPSTREAM_UNAVAILABLE
    assert server_down.status_code == 502
    assert not_json.kind == ErrorKind.MALFORMED_RESPONSE
    assert wrong_shape.kind == ErrorKind.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_fetch_events_filters_by_fips_and_conflict_codes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["where"] = request.url.params["where"]
        return httpx.Response(200, json={"data": [["a", "b", "190", -8, 2, -5]]})

    result = await _client(handler).fetch_events("su")

    assert result.ok
    assert result.value == [["a", "b", "190", -8, 2, -5]]
    assert seen["where"].startswith("actiongeo_countrycode='SU' AND eventcode IN (18,19,20")


@pytest.mark.asyncio
async def test_fetch_events_rejects_invalid_codes_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    result = await _client(handler).fetch_events("SUD")
    assert result.kind == ErrorKind.NOT_FOUND


def _service(client, catalog, cache_factory, **kwargs) -> ConflictDataService:
    return ConflictDataService(client, catalog, cache_factory(3600, "conflict"), delay_seconds=0, **kwargs)


@pytest.mark.asyncio
async def test_conflict_data_is_scored_and_cached(catalog, cache_factory, killing_articles):
    client = AsyncMock()
    client.fetch_articles.return_value = Ok(killing_articles, source="GDELT")
    service = _service(client, catalog, cache_factory)

    first = await service.get_country_conflict_data("Sudan")
    second = await service.get_country_conflict_data("Sudan")

    assert first["conflictLevel"] == "CRITICAL"
    assert second is first
    client.fetch_articles.assert_awaited_once_with("Sudan", 7)


@pytest.mark.asyncio
async def test_failure_serves_stale_cache_within_six_hours(catalog, cache_factory, clock, killing_articles):
    client = AsyncMock()
    client.fetch_articles.side_effect = [
        Ok(killing_articles, source="GDELT"),
        Err(ErrorKind.UPSTREAM_UNAVAILABLE, "GDELT timed out"),
        Err(ErrorKind.UPSTREAM_UNAVAILABLE, "GDELT timed out"),
    ]
    service = _service(client, catalog, cache_factory)

    await service.get_country_conflict_data("Sudan")
    clock.advance(2 * 3600)
    stale = await service.get_country_conflict_data("Sudan")
    clock.advance(5 * 3600)
    default = await service.get_country_conflict_data("Sudan")

    assert stale["stale"] is True
    assert stale["intensityScore"] == 85
    assert default["available"] is False
    assert default["intensityScore"] == 0
    assert service.status()["lastErrors"]


@pytest.mark.asyncio
async def test_conflict_events_use_catalog_fips(catalog, cache_factory):
    client = AsyncMock()
    client.fetch_events.return_value = Ok([{"goldsteinscale": -2}], source="GDELT")
    service = _service(client, catalog, cache_factory)

    result = await service.get_country_conflict_events("Myanmar")

    client.fetch_events.assert_awaited_once_with("BM")
    assert result["conflictLevel"] == "MEDIUM"


@pytest.mark.asyncio
async def test_conflict_events_without_fips_return_default(catalog, cache_factory):
    client = AsyncMock()
    service = _service(client, catalog, cache_factory)

    result = await service.get_country_conflict_events("Atlantis")

    client.fetch_events.assert_not_awaited()
    assert result["available"] is False


@pytest.mark.asyncio
async def test_hotspots_query_each_country(catalog, cache_factory):
    articles = [{"title": f"Clashes: fighting and attack {i}"} for i in range(8)]
    client = AsyncMock()

    async def fetch(country, days):
        if country == "Sudan":
            return Ok(articles, source="GDELT")
        if country == "Yemen":
            return Err(ErrorKind.UPSTREAM_UNAVAILABLE, "down")
        return Ok([], source="GDELT")

    client.fetch_articles.side_effect = fetch
    service = _service(client, catalog, cache_factory)

    hotspots = await service.get_conflict_hotspots(["Sudan", "Yemen", "Kenya"], days=3)

    assert [h["country"] for h in hotspots] == ["Sudan"]
    assert hotspots[0]["eventCount"] == 8
    assert client.fetch_articles.await_count == 3


@pytest.mark.asyncio
async def test_realtime_events_keyed_by_country(catalog, cache_factory):
    client = AsyncMock()
    client.fetch_events.return_value = Ok([], source="GDELT")
    service = _service(client, catalog, cache_factory)

    events = await service.get_realtime_conflict_events(["Sudan", "Syria"])

    assert set(events) == {"Sudan", "Syria"}
    assert client.fetch_events.await_count == 2
