import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from api import routes, routes_ai, routes_countries, routes_crisis, routes_notifications, routes_refugees
from models.crisis import PlanPriority, PlanRequest, RiskLevel
from services.notifications import NotificationService

COUNTRY_OK = {"success": True, "data": {"name": "Sudan"}, "source": "REST Countries API"}
COUNTRY_MISSING = {"success": False, "error": "Country 'Atlantis' not found", "data": None}


def _services(**overrides):
    services = SimpleNamespace(
        settings=SimpleNamespace(CONFLICT_HOTSPOT_COUNTRIES=["Sudan", "Haiti"]),
        geography=SimpleNamespace(
            get_country_by_name=AsyncMock(return_value=COUNTRY_OK),
            get_all_countries=AsyncMock(return_value={"success": True, "data": [], "count": 0}),
            get_countries_by_region=AsyncMock(return_value={"success": True, "data": [], "region": "Africa"}),
            get_service_health=AsyncMock(return_value={"service": "GeographicData", "status": "operational"}),
        ),
        refugees=SimpleNamespace(
            get_all_refugee_data=AsyncMock(return_value={"success": True, "data": [], "count": 0}),
            get_refugee_data_by_country=AsyncMock(return_value={"success": True, "data": {"country": "Sudan"}}),
            get_global_displacement_stats=AsyncMock(return_value={"success": True, "data": {}}),
            get_service_health=AsyncMock(return_value={"service": "RefugeeData", "status": "operational"}),
        ),
        conflict=SimpleNamespace(
            get_conflict_hotspots=AsyncMock(return_value=[{"country": "Sudan", "intensity": 100}]),
            get_country_conflict_data=AsyncMock(return_value={"conflictLevel": "HIGH"}),
            get_country_conflict_events=AsyncMock(return_value={"conflictLevel": "MEDIUM"}),
        ),
        aggregator=SimpleNamespace(
            list_crises=AsyncMock(return_value={"crises": [], "summary": {"total": 0}}),
            get_crisis_detail=AsyncMock(return_value={"success": True, "data": {"id": "SD"}}),
            get_comprehensive_assessment=AsyncMock(return_value={"country": "Sudan", "overallRisk": "HIGH"}),
            geographical_overview=MagicMock(return_value={"locations": [], "count": 0}),
            global_metrics=MagicMock(return_value={"metrics": {"totalDisplaced": 1}, "source": "UNHCR Global Trends"}),
        ),
        analyzer=SimpleNamespace(
            analyze=AsyncMock(return_value={"aiRiskAssessment": "HIGH", "metadata": {"country": "Sudan"}}),
            history=MagicMock(return_value=[]),
            stats=MagicMock(return_value={"analyses": 0}),
        ),
        planner=SimpleNamespace(
            generate_plan=AsyncMock(return_value={"planType": "COMPREHENSIVE", "totalCost": 1}),
            history=MagicMock(return_value=[]),
            stats=MagicMock(return_value={"plans": 0}),
        ),
        llm=SimpleNamespace(
            test_connection=AsyncMock(return_value={"success": True, "model": "primary/model", "responseTime": 120}),
            config_summary=MagicMock(return_value={"hasApiKey": True}),
            primary_model="primary/model",
            configured=True,
        ),
        connections=SimpleNamespace(send_ai_analysis_update=AsyncMock(return_value=0)),
        notifications=NotificationService(),
        status=MagicMock(return_value={"monitor": {"running": False}}),
    )
    for name, value in overrides.items():
        setattr(services, name, value)
    return services


@pytest.mark.asyncio
async def test_api_documentation_lists_endpoints():
    doc = await routes.api_documentation()

    assert doc["name"] == "RefugeeWatch AI API"
    assert doc["status"] == "operational"
    assert any(e["path"] == "POST /api/crisis/{id}/plan" for e in doc["documentation"]["endpoints"])


@pytest.mark.asyncio
async def test_system_status_wraps_container_status():
    result = await routes.get_system_status(services=_services())
    assert result["success"] is True
    assert result["data"] == {"monitor": {"running": False}}


@pytest.mark.asyncio
async def test_services_health_degrades_when_a_probe_fails():
    services = _services()
    services.refugees.get_service_health.side_effect = RuntimeError("boom")

    result = await routes.services_health(services=services)

    assert result["status"] == "degraded"
    assert result["services"]["refugee"] == {"service": "RefugeeData", "status": "error", "error": "boom"}
    assert result["services"]["ai"]["status"] == "operational"


@pytest.mark.asyncio
async def test_services_health_all_operational():
    result = await routes.services_health(services=_services())
    assert result["status"] == "operational"


@pytest.mark.asyncio
async def test_list_crises_passes_filters():
    services = _services()

    result = await routes_crisis.list_crises(region="Africa", riskLevel=RiskLevel.HIGH, limit=10, services=services)

    assert result["success"] is True
    services.aggregator.list_crises.assert_awaited_once_with(region="Africa", risk_level="HIGH", limit=10)


@pytest.mark.asyncio
async def test_geographical_and_global_metrics():
    services = _services()

    geo = await routes_crisis.get_geographical_data(services=services)
    metrics = await routes_crisis.get_global_metrics(timeframe=None, services=services)

    assert geo["source"] == "Geographic + Refugee Data"
    assert metrics["data"] == {"totalDisplaced": 1}
    assert metrics["metadata"]["period"] == "1y"
    assert metrics["metadata"]["source"] == "UNHCR Global Trends"


@pytest.mark.asyncio
async def test_hotspots_use_configured_countries():
    services = _services()

    result = await routes_crisis.get_conflict_hotspots(days=3, services=services)

    services.conflict.get_conflict_hotspots.assert_awaited_once_with(["Sudan", "Haiti"], 3)
    assert result["count"] == 1
    assert result["source"] == "GDELT DOC API"


@pytest.mark.asyncio
async def test_crisis_detail_not_found_raises_404_with_details():
    failure = {"success": False, "error": "Crisis data not found for: Atlantis", "details": "Country 'Atlantis' not found"}
    services = _services()
    services.aggregator.get_crisis_detail.return_value = failure

    with pytest.raises(HTTPException) as exc_info:
        await routes_crisis.get_crisis(crisis_id="Atlantis", services=services)

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == failure


@pytest.mark.asyncio
async def test_conflict_route_returns_articles_and_events():
    result = await routes_crisis.get_crisis_conflict(crisis_id="Sudan", services=_services())
    assert result["data"] == {"articles": {"conflictLevel": "HIGH"}, "events": {"conflictLevel": "MEDIUM"}}


@pytest.mark.asyncio
async def test_analyze_unknown_country_is_404():
    services = _services()
    services.geography.get_country_by_name.return_value = COUNTRY_MISSING

    with pytest.raises(HTTPException) as exc_info:
        await routes_crisis.analyze_crisis(crisis_id="Atlantis", refresh=False, services=services)

    assert exc_info.value.detail == "Crisis not found"
    services.analyzer.analyze.assert_not_awaited()


@pytest.mark.asyncio
async def test_analyze_broadcasts_and_honours_refresh():
    services = _services()

    result = await routes_crisis.analyze_crisis(crisis_id="Sudan", refresh=True, services=services)

    assert result["crisisId"] == "Sudan"
    assert result["data"]["aiRiskAssessment"] == "HIGH"
    services.analyzer.analyze.assert_awaited_once_with({"country": "Sudan", "overallRisk": "HIGH"}, use_cache=False)
    services.connections.send_ai_analysis_update.assert_awaited_once()


@pytest.mark.asyncio
async def test_plan_defaults_request_body():
    services = _services()

    result = await routes_crisis.generate_response_plan(crisis_id="Sudan", request=None, services=services)

    assert result["data"]["planType"] == "COMPREHENSIVE"
    plan_request = services.planner.generate_plan.await_args.args[1]
    assert plan_request == PlanRequest()
    assert plan_request.priority == PlanPriority.HIGH


@pytest.mark.asyncio
async def test_country_routes():
    services = _services()

    assert (await routes_countries.get_country(name="Sudan", services=services)) == COUNTRY_OK
    await routes_countries.get_countries_by_region(region="Africa", services=services)
    services.geography.get_countries_by_region.assert_awaited_once_with("Africa")

    services.geography.get_country_by_name.return_value = COUNTRY_MISSING
    with pytest.raises(HTTPException) as exc_info:
        await routes_countries.get_country(name="Atlantis", services=services)
    assert exc_info.value.detail == COUNTRY_MISSING


@pytest.mark.asyncio
async def test_refugee_routes():
    services = _services()

    all_data = await routes_refugees.get_refugee_data(services=services)
    one = await routes_refugees.get_country_refugee_data(country="Sudan", services=services)

    assert "note" in all_data["metadata"]
    assert one["data"]["country"] == "Sudan"


@pytest.mark.asyncio
async def test_ai_status_probe_failure_is_503():
    services = _services()
    services.llm.test_connection.return_value = {"success": False, "error": "Missing HUGGINGFACE_API_KEY", "responseTime": 0}

    with pytest.raises(HTTPException) as exc_info:
        await routes_ai.get_ai_status(services=services)

    assert exc_info.value.status_code == 503
    assert exc_info.value.detail["error"] == "AI service unavailable"
    assert exc_info.value.detail["details"] == "Missing HUGGINGFACE_API_KEY"


@pytest.mark.asyncio
async def test_ai_status_and_history():
    services = _services()

    status = await routes_ai.get_ai_status(services=services)
    history = await routes_ai.get_ai_history(limit=5, services=services)

    assert status["data"]["model"] == "primary/model"
    assert status["data"]["performance"] == {"responseTime": 120}
    services.analyzer.history.assert_called_once_with(5)
    assert history["stats"]["planner"] == {"plans": 0}


@pytest.mark.asyncio
async def test_notification_routes():
    services = _services()

    feed = await routes_notifications.list_notifications(
        unread_only=True, category=None, min_priority=1, services=services
    )
    marked = await routes_notifications.mark_notification_read(notification_id="1", services=services)

    assert feed["count"] == 5
    assert feed["data"][0]["id"] == "1"
    assert marked["unreadCount"] == 4
    assert marked["data"]["read"] is True

    with pytest.raises(HTTPException) as exc_info:
        await routes_notifications.mark_notification_read(notification_id="404", services=services)
    assert exc_info.value.status_code == 404
