import asyncio
import time
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Request

from config import settings
from utils.logger import get_logger
from utils.utcnow import utc_iso

if TYPE_CHECKING:
    from services.container import CrisisServices

router = APIRouter()
logger = get_logger("routes")

_STARTED_AT = time.monotonic()

API_ENDPOINTS = [
    {"path": "GET /api/crisis", "description": "Active crises built from UNHCR displacement data"},
    {"path": "GET /api/crisis/{id}", "description": "Country profile joined with displacement data"},
    {"path": "GET /api/crisis/{id}/assessment", "description": "Multi-source crisis assessment"},
    {"path": "GET /api/crisis/{id}/conflict", "description": "GDELT conflict assessment"},
    {"path": "POST /api/crisis/{id}/analyze", "description": "AI crisis analysis"},
    {"path": "POST /api/crisis/{id}/plan", "description": "AI humanitarian response plan"},
    {"path": "GET /api/crisis/geographical", "description": "Crisis locations for mapping"},
    {"path": "GET /api/crisis/metrics/global", "description": "Global displacement metrics"},
    {"path": "GET /api/crisis/hotspots", "description": "Countries with elevated conflict coverage"},
    {"path": "GET /api/countries", "description": "All countries with coordinates"},
    {"path": "GET /api/refugees/unhcr", "description": "UNHCR displacement by origin country"},
    {"path": "GET /api/ai/status", "description": "Live language model probe"},
    {"path": "GET /api/notifications", "description": "Dashboard notification feed"},
]

DATA_SOURCES = [
    "GDELT DOC 2.0 API (conflict news coverage)",
    "GDELT Events API (conflict events)",
    "UNHCR Population API (displacement)",
    "REST Countries (country profiles and coordinates)",
    "Hugging Face Inference Router (AI analysis)",
]


def get_services(request: Request):
    return request.app.state.services


def uptime_seconds() -> float:
    return round(time.monotonic() - _STARTED_AT, 1)


@router.get("")
async def api_documentation():
    """Endpoint index and data sources."""
    return {
        "name": "RefugeeWatch AI API",
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "documentation": {"endpoints": API_ENDPOINTS},
        "dataSources": DATA_SOURCES,
        "status": "operational",
        "lastUpdate": utc_iso(),
    }


@router.get("/status")
async def get_system_status(services=Depends(get_services)):
    return {"success": True, "data": services.status(), "timestamp": utc_iso()}


@router.get("/health")
async def api_health(request: Request):
    services = getattr(request.app.state, "services", None)
    operational = "operational" if services is not None else "error"
    return {
        "status": "healthy",
        "timestamp": utc_iso(),
        "version": settings.APP_VERSION,
        "uptime": uptime_seconds(),
        "services": {
            "api": "operational",
            "geographic": operational,
            "unhcr": operational,
            "conflict": operational,
            "ai": "operational" if services is not None and services.llm.configured else "not_configured",
        },
    }


async def _probe(name: str, check) -> dict[str, Any]:
    try:
        return await check()
    except Exception as e:
        logger.warning("Service health probe failed", service=name, error=str(e))
        return {"service": name, "status": "error", "error": str(e)}


async def _probe_ai(services: "CrisisServices") -> dict[str, Any]:
    probe = await services.llm.test_connection()
    return {
        "service": "AIProvider",
        "status": "operational" if probe.get("success") else "degraded",
        "model": probe.get("model") or services.llm.primary_model,
        "responseTime": probe.get("responseTime"),
        **({"error": probe["error"]} if probe.get("error") else {}),
    }


@router.get("/health/services")
async def services_health(services=Depends(get_services)):
    """Probe each upstream; overall status is degraded when any probe is not operational."""
    geographic, refugee, ai = await asyncio.gather(
        _probe("GeographicData", services.geography.get_service_health),
        _probe("RefugeeData", services.refugees.get_service_health),
        _probe("AIProvider", lambda: _probe_ai(services)),
    )
    probes = {"geographic": geographic, "refugee": refugee, "ai": ai}
    overall = "operational" if all(p.get("status") == "operational" for p in probes.values()) else "degraded"
    return {
        "success": True,
        "status": overall,
        "services": {**probes, "timestamp": utc_iso()},
    }
