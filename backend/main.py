import sys
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from api import router, handle_websocket, manager
from api.routes import uptime_seconds
from api.routes_ai import router as ai_router
from api.routes_countries import router as countries_router
from api.routes_crisis import router as crisis_router
from api.routes_notifications import router as notifications_router
from api.routes_refugees import router as refugees_router
from services.container import build_crisis_services
from services.crisis_data import CountryCatalog, load_country_reference
from utils.logger import setup_logging, get_logger, api_logger
from utils.utcnow import utc_iso

# Setup logging
setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, log_file=settings.LOG_FILE)
logger = get_logger("main")

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /health",
    "GET /api",
    "GET /api/status",
    "GET /api/health",
    "GET /api/health/services",
    "GET /api/crisis",
    "GET /api/crisis/{id}",
    "GET /api/crisis/{id}/assessment",
    "GET /api/crisis/{id}/conflict",
    "POST /api/crisis/{id}/analyze",
    "POST /api/crisis/{id}/plan",
    "GET /api/crisis/geographical",
    "GET /api/crisis/metrics/global",
    "GET /api/crisis/hotspots",
    "GET /api/countries",
    "GET /api/countries/{name}",
    "GET /api/countries/region/{region}",
    "GET /api/refugees/unhcr",
    "GET /api/refugees/unhcr/{country}",
    "GET /api/refugees/unhcr/stats/global",
    "GET /api/ai/status",
    "GET /api/ai/history",
    "GET /api/notifications",
    "POST /api/notifications/{id}/read",
    "WS /ws",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting RefugeeWatch AI backend...", environment=settings.ENVIRONMENT)

    catalog = CountryCatalog()
    reference_status = await load_country_reference(
        catalog,
        base_url=settings.REST_COUNTRIES_API_URL,
        timeout=settings.REST_COUNTRIES_TIMEOUT_SECONDS,
        enabled=settings.COUNTRY_REFERENCE_SYNC_ENABLED,
    )
    logger.info("Country reference ready", **reference_status)

    # A broken service graph is fatal; everything after this degrades gracefully.
    services = build_crisis_services(settings, catalog=catalog, connections=manager)
    services.reference_status = reference_status
    app.state.services = services

    if not services.llm.configured:
        logger.warning("HUGGINGFACE_API_KEY not set; AI endpoints will serve fallback analyses")

    try:
        await services.connections.start_heartbeat(settings.WS_HEARTBEAT_SECONDS)
    except Exception as e:
        logger.warning(f"Failed to start WebSocket heartbeat: {e}")

    if settings.ENABLE_BACKGROUND_MONITORING:
        try:
            await services.monitor.start()
        except Exception as e:
            logger.warning(f"Failed to start crisis monitor: {e}")

    logger.info("Backend started", host=settings.HOST, port=settings.PORT)

    try:
        yield
    finally:
        logger.info("Shutting down...")
        try:
            await services.monitor.stop()
        except Exception as e:
            logger.warning(f"Failed to stop crisis monitor: {e}")
        try:
            await services.connections.close()
        except Exception as e:
            logger.warning(f"Failed to close WebSocket connections: {e}")
        logger.info("Shutdown complete")


app = FastAPI(
    title="RefugeeWatch AI",
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every request with an X-Request-ID and write an access log line."""
    request.state.request_id = uuid.uuid4().hex[:8]
    request_log = api_logger.with_context(request_id=request.state.request_id)
    started = time.monotonic()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    request_log.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        request_id=_request_id(request),
        error=str(exc),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "requestId": _request_id(request)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and request.scope.get("endpoint") is None:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "Endpoint not found",
                "path": request.url.path,
                "method": request.method,
                "availableEndpoints": AVAILABLE_ENDPOINTS,
            },
        )
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)


# API routes
app.include_router(router, prefix="/api")
app.include_router(crisis_router, prefix="/api")
app.include_router(countries_router, prefix="/api")
app.include_router(refugees_router, prefix="/api")
app.include_router(ai_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


# WebSocket endpoint
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    services = getattr(websocket.app.state, "services", None)

    async def status_provider():
        return services.status() if services is not None else {}

    await handle_websocket(websocket, manager, status_provider)


def _memory_mb() -> Optional[float]:
    """Peak resident set size of this process, when the platform reports it."""
    if sys.platform.startswith("win"):
        return None
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes on Linux
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(peak / divisor, 1)


# Health checks
@app.get("/health")
async def health_check(request: Request):
    """Basic health check - for load balancers"""
    return {
        "status": "healthy",
        "timestamp": utc_iso(),
        "requestId": _request_id(request),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "uptime": uptime_seconds(),
        "memory": {"rssMb": _memory_mb()},
    }


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "status": "operational",
        "features": [
            "GDELT conflict monitoring",
            "UNHCR displacement data",
            "Multi-source crisis assessment",
            "AI crisis analysis",
            "AI response planning",
            "Real-time WebSocket updates",
        ],
        "aiModels": {
            "primary": settings.HUGGINGFACE_MODEL,
            "backup": list(settings.HUGGINGFACE_BACKUP_MODELS),
        },
        "endpoints": {
            "api": "/api",
            "health": "/health",
            "status": "/api/status",
            "crisis": "/api/crisis",
            "countries": "/api/countries",
            "refugees": "/api/refugees/unhcr",
            "ai": "/api/ai/status",
            "notifications": "/api/notifications",
            "websocket": "/ws",
        },
        "timestamp": utc_iso(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        # Single worker: the heartbeat, monitor and caches hold in-process state.
        timeout_keep_alive=30,
    )
