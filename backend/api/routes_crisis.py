"""Crisis routes: summaries, assessments, AI analysis and response plans."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query

from config import settings
from models.crisis import PlanRequest, RiskLevel
from utils.logger import get_logger
from utils.utcnow import utc_iso
from api.routes import get_services

router = APIRouter(tags=["Crisis"])
logger = get_logger("routes")

_CRISIS_ID = Path(..., min_length=2, max_length=50, description="Country name or code")


async def _require_country(services, crisis_id: str) -> dict:
    result = await services.geography.get_country_by_name(crisis_id)
    if not result.get("success"):
        raise HTTPException(status_code=404, detail="Crisis not found")
    return result


@router.get("/crisis")
async def list_crises(
    region: Optional[str] = Query(None, max_length=50),
    riskLevel: Optional[RiskLevel] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    services=Depends(get_services),
):
    """Active crises derived from displacement data."""
    result = await services.aggregator.list_crises(
        region=region,
        risk_level=riskLevel.value if riskLevel else None,
        limit=limit,
    )
    return {"success": True, "data": result}


@router.get("/crisis/geographical")
async def get_geographical_data(services=Depends(get_services)):
    return {
        "success": True,
        "data": services.aggregator.geographical_overview(),
        "source": "Geographic + Refugee Data",
        "lastUpdated": utc_iso(),
    }


@router.get("/crisis/metrics/global")
async def get_global_metrics(
    timeframe: Optional[str] = Query(None, max_length=10),
    services=Depends(get_services),
):
    overview = services.aggregator.global_metrics()
    return {
        "success": True,
        "data": overview["metrics"],
        "metadata": {
            "calculatedAt": utc_iso(),
            "source": overview["source"],
            "period": timeframe or "1y",
        },
    }


@router.get("/crisis/hotspots")
async def get_conflict_hotspots(
    days: int = Query(settings.GDELT_HOTSPOT_DAYS, ge=1, le=30),
    services=Depends(get_services),
):
    """Countries whose recent coverage crosses the hotspot thresholds."""
    hotspots = await services.conflict.get_conflict_hotspots(
        services.settings.CONFLICT_HOTSPOT_COUNTRIES, days
    )
    return {
        "success": True,
        "data": hotspots,
        "count": len(hotspots),
        "source": "GDELT DOC API",
        "timestamp": utc_iso(),
    }


@router.get("/crisis/{crisis_id}")
async def get_crisis(crisis_id: str = _CRISIS_ID, services=Depends(get_services)):
    result = await services.aggregator.get_crisis_detail(crisis_id)
    if not result.get("success"):
        raise HTTPException(status_code=404, detail=result)
    return result


@router.get("/crisis/{crisis_id}/assessment")
async def get_crisis_assessment(crisis_id: str = _CRISIS_ID, services=Depends(get_services)):
    assessment = await services.aggregator.get_comprehensive_assessment(crisis_id)
    return {"success": True, "data": assessment, "timestamp": utc_iso()}


@router.get("/crisis/{crisis_id}/conflict")
async def get_crisis_conflict(crisis_id: str = _CRISIS_ID, services=Depends(get_services)):
    articles = await services.conflict.get_country_conflict_data(crisis_id)
    events = await services.conflict.get_country_conflict_events(crisis_id)
    return {
        "success": True,
        "data": {"articles": articles, "events": events},
        "country": crisis_id,
        "timestamp": utc_iso(),
    }


@router.post("/crisis/{crisis_id}/analyze")
async def analyze_crisis(
    crisis_id: str = _CRISIS_ID,
    refresh: bool = Query(False, description="Bypass the analysis cache"),
    services=Depends(get_services),
):
    await _require_country(services, crisis_id)
    assessment = await services.aggregator.get_comprehensive_assessment(crisis_id)
    analysis = await services.analyzer.analyze(assessment, use_cache=not refresh)
    await services.connections.send_ai_analysis_update(analysis)
    logger.info(
        "Crisis analysis served",
        crisis_id=crisis_id,
        ai_risk=analysis.get("aiRiskAssessment"),
    )
    return {"success": True, "data": analysis, "crisisId": crisis_id, "generated": utc_iso()}


@router.post("/crisis/{crisis_id}/plan")
async def generate_response_plan(
    crisis_id: str = _CRISIS_ID,
    request: Optional[PlanRequest] = Body(None),
    services=Depends(get_services),
):
    await _require_country(services, crisis_id)
    plan_request = request or PlanRequest()
    assessment = await services.aggregator.get_comprehensive_assessment(crisis_id)
    analysis = await services.analyzer.analyze(assessment)
    plan = await services.planner.generate_plan(analysis, plan_request)
    logger.info(
        "Response plan served",
        crisis_id=crisis_id,
        priority=plan_request.priority.value,
        timeline=plan_request.timeline,
    )
    return {"success": True, "data": plan, "crisisId": crisis_id, "generated": utc_iso()}
