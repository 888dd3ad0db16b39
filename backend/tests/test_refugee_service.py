import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.crisis_data.refugee_service import RefugeeDataService, extract_rows, group_by_origin


def _service(handler, catalog, cache_factory) -> RefugeeDataService:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RefugeeDataService(
        "https://unhcr.example/population/v1",
        30,
        cache_factory(6 * 3600, "refugees"),
        catalog,
        http_client=http,
    )


def test_extract_rows_handles_envelopes():
    assert extract_rows([1, 2]) == [1, 2]
    assert extract_rows({"data": [1]}) == [1]
    assert extract_rows({"results": [2]}) == [2]
    assert extract_rows({"page": 1, "rows": [3]}) == [3]
    assert extract_rows({"page": 1}) == []
    assert extract_rows("nope") == []


def test_group_by_origin_sums_and_collects_destinations(unhcr_demographics_payload):
    grouped = group_by_origin(unhcr_demographics_payload["items"])

    venezuela = next(row for row in grouped if row["country"] == "Venezuela")
    assert venezuela["countryCode"] == "VEN"
    assert venezuela["displacement"] == {
        "total": 575000,
        "refugees": 500000,
        "asylum_seekers": 75000,
        "internal": 0,
    }
    assert venezuela["destinations"] == ["Colombia", "Peru"]


def test_group_by_origin_skips_rows_without_origin():
    grouped = group_by_origin([{"coo_name": None}, {"refugees": 5}, {"coo_name": "Mali", "idps": "12"}])
    assert len(grouped) == 1
    assert grouped[0]["countryCode"] == "UNK"
    assert grouped[0]["displacement"]["internal"] == 12


@pytest.mark.asyncio
async def test_live_rows_merge_with_baseline(catalog, cache_factory, unhcr_demographics_payload):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=unhcr_demographics_payload)

    service = _service(handler, catalog, cache_factory)
    result = await service.get_all_refugee_data()

    countries = [row["country"] for row in result["data"]]
    baseline_count = len(service.baseline())
    assert result["source"] == "UNHCR API + Reliable Baseline"
    assert seen["params"]["limit"] == "1000"
    assert "Venezuela" in countries
    # "Syrian Arab Rep." resolves to SYR and the baseline row wins
    assert result["count"] == baseline_count + 1
    syria = next(row for row in result["data"] if row["countryCode"] == "SYR")
    assert syria["displacement"]["total"] == 13500000


@pytest.mark.asyncio
async def test_upstream_failure_serves_baseline(catalog, cache_factory):
    service = _service(lambda request: httpx.Response(503), catalog, cache_factory)

    result = await service.get_all_refugee_data()

    assert result["success"] is True
    assert result["source"] == "Reliable UNHCR-Based Data"
    assert result["count"] == len(service.baseline())
    assert result["totalDisplaced"] == sum(row["displacement"]["total"] for row in result["data"])


@pytest.mark.asyncio
async def test_country_lookup_by_name_code_and_alias(catalog, cache_factory):
    service = _service(lambda request: httpx.Response(503), catalog, cache_factory)

    by_name = await service.get_refugee_data_by_country("Syria")
    by_code = await service.get_refugee_data_by_country("AFG")
    missing = await service.get_refugee_data_by_country("Atlantis")

    assert by_name["success"] and by_name["data"]["countryCode"] == "SYR"
    assert by_code["success"] and by_code["data"]["country"] == "Afghanistan"
    assert missing["success"] is False
    assert missing["error"] == "No refugee data found for Atlantis"
    assert len(missing["availableCountries"]) == 10


@pytest.mark.asyncio
async def test_country_lookup_does_not_cross_resolved_codes(catalog, cache_factory):
    service = _service(lambda request: httpx.Response(503), catalog, cache_factory)

    congo = await service.get_refugee_data_by_country("Congo")
    drc = await service.get_refugee_data_by_country("DR Congo")

    assert catalog.normalize_iso3("Congo") == "COG"
    assert congo["success"] is False
    assert drc["success"] and drc["data"]["countryCode"] == "COD"


@pytest.mark.asyncio
async def test_global_stats_rank_origins(catalog, cache_factory):
    service = _service(lambda request: httpx.Response(503), catalog, cache_factory)

    stats = await service.get_global_displacement_stats()

    origins = stats["data"]["topOriginCountries"]
    displaced = [row["displaced"] for row in origins]
    assert displaced == sorted(displaced, reverse=True)
    assert all(value > 50_000 for value in displaced)
    assert origins[0]["country"] == "Syrian Arab Republic"


@pytest.mark.asyncio
async def test_service_health_fallback_mode(catalog, cache_factory):
    service = _service(lambda request: httpx.Response(503), catalog, cache_factory)

    health = await service.get_service_health()

    assert health["status"] == "operational"
    assert health["apis"]["unhcr"] == "fallback_mode"
