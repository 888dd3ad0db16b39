"""
API routes for the AI crisis intelligence features.

Provides endpoints for:
- Live model status
- Analysis and response plan history
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from utils.utcnow import utc_iso
from api.routes import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["AI Intelligence"])

CAPABILITIES = [
    "Multi-factor crisis analysis",
    "Displacement prediction",
    "Response plan generation",
    "Risk assessment reasoning",
]


# === Status ===


@router.get("/ai/status")
async def get_ai_status(services=Depends(get_services)):
    """Probe the primary model; 503 when it cannot be reached."""
    probe = await services.llm.test_connection()
    if not probe.get("success"):
        logger.warning("AI status probe failed: %s", probe.get("error"))
        raise HTTPException(
            status_code=503,
            detail={
                "success": False,
                "error": "AI service unavailable",
                "details": probe.get("error"),
                "config": services.llm.config_summary(),
            },
        )
    return {
        "success": True,
        "data": {
            "status": "operational",
            "model": probe.get("model"),
            "provider": "Hugging Face Inference Router",
            "capabilities": CAPABILITIES,
            "performance": {"responseTime": probe.get("responseTime")},
            "config": services.llm.config_summary(),
            "lastTest": utc_iso(),
        },
    }


# === History ===


@router.get("/ai/history")
async def get_ai_history(
    limit: int = Query(10, ge=1, le=100),
    services=Depends(get_services),
):
    return {
        "success": True,
        "data": {
            "analyses": services.analyzer.history(limit),
            "plans": services.planner.history(limit),
        },
        "stats": {
            "analyzer": services.analyzer.stats(),
            "planner": services.planner.stats(),
        },
    }
