"""Application service graph.

``build_crisis_services`` wires every service with its own cache and the
shared country catalog. The FastAPI lifespan stores the result on
``app.state.services``; tests build their own container with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from config import Settings
from utils.cache import TTLCache
from utils.retry import RetryConfig
from api.websocket import ConnectionManager, manager as default_manager
from services.aggregator import CrisisAggregator
from services.ai import CrisisAnalyzer, HuggingFaceRouterProvider, ResponsePlanner
from services.crisis_data import (
    ConflictDataService,
    CountryCatalog,
    GDELTClient,
    GeographicDataService,
    RefugeeDataService,
)
from services.crisis_monitor import CrisisMonitor
from services.notifications import NotificationService


@dataclass
class CrisisServices:
    settings: Settings
    catalog: CountryCatalog
    conflict: ConflictDataService
    geography: GeographicDataService
    refugees: RefugeeDataService
    aggregator: CrisisAggregator
    llm: HuggingFaceRouterProvider
    analyzer: CrisisAnalyzer
    planner: ResponsePlanner
    notifications: NotificationService
    connections: ConnectionManager
    monitor: CrisisMonitor
    reference_status: Optional[dict[str, Any]] = None

    def status(self) -> dict[str, Any]:
        """Per-service status and cache statistics."""
        return {
            "countryReference": {**self.catalog.status(), **(self.reference_status or {})},
            "conflict": self.conflict.status(),
            "geography": self.geography.status(),
            "refugees": self.refugees.status(),
            "aggregator": self.aggregator.system_status(),
            "ai": {
                **self.llm.config_summary(),
                "analyzer": self.analyzer.stats(),
                "planner": self.planner.stats(),
            },
            "websocket": self.connections.stats(),
            "monitor": self.monitor.status(),
        }


def build_crisis_services(
    settings: Settings,
    *,
    catalog: Optional[CountryCatalog] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    connections: Optional[ConnectionManager] = None,
) -> CrisisServices:
    catalog = catalog or CountryCatalog()
    connections = connections or default_manager

    conflict = ConflictDataService(
        GDELTClient(
            settings.GDELT_DOC_API_URL,
            settings.GDELT_EVENTS_API_URL,
            timeout=settings.GDELT_TIMEOUT_SECONDS,
            http_client=http_client,
        ),
        catalog,
        TTLCache(settings.CONFLICT_CACHE_TTL_SECONDS, name="conflict"),
        stale_max_age=settings.STALE_FALLBACK_MAX_AGE_SECONDS,
        delay_seconds=settings.COUNTRY_FETCH_DELAY_SECONDS,
        article_days=settings.GDELT_ARTICLE_DAYS,
    )
    geography = GeographicDataService(
        settings.REST_COUNTRIES_API_URL,
        settings.REST_COUNTRIES_TIMEOUT_SECONDS,
        TTLCache(settings.COUNTRY_CACHE_TTL_SECONDS, name="geography"),
        catalog,
        fields=settings.REST_COUNTRIES_FIELDS,
        http_client=http_client,
    )
    refugees = RefugeeDataService(
        settings.UNHCR_API_URL,
        settings.UNHCR_TIMEOUT_SECONDS,
        TTLCache(settings.REFUGEE_CACHE_TTL_SECONDS, name="refugees"),
        catalog,
        http_client=http_client,
    )
    aggregator = CrisisAggregator(
        conflict,
        refugees,
        geography,
        catalog,
        TTLCache(settings.CONFLICT_CACHE_TTL_SECONDS, name="assessments"),
        delay_seconds=settings.COUNTRY_FETCH_DELAY_SECONDS,
        stale_max_age=settings.STALE_FALLBACK_MAX_AGE_SECONDS,
    )
    llm = HuggingFaceRouterProvider(
        api_key=settings.HUGGINGFACE_API_KEY,
        base_url=settings.HUGGINGFACE_BASE_URL,
        primary_model=settings.HUGGINGFACE_MODEL,
        backup_models=settings.HUGGINGFACE_BACKUP_MODELS,
        timeout=settings.HUGGINGFACE_TIMEOUT_SECONDS,
        retry_config=RetryConfig(
            max_attempts=settings.LLM_MAX_RETRIES,
            base_delay=settings.LLM_RETRY_DELAY_SECONDS,
            backoff="exponential",
        ),
        http_client=http_client,
    )
    monitor = CrisisMonitor(
        aggregator,
        connections,
        settings.MONITORED_COUNTRIES,
        interval_seconds=settings.MONITOR_INTERVAL_SECONDS,
    )
    return CrisisServices(
        settings=settings,
        catalog=catalog,
        conflict=conflict,
        geography=geography,
        refugees=refugees,
        aggregator=aggregator,
        llm=llm,
        analyzer=CrisisAnalyzer(llm, TTLCache(settings.AI_CACHE_TTL_SECONDS, name="ai_analysis")),
        planner=ResponsePlanner(llm, TTLCache(settings.AI_CACHE_TTL_SECONDS, name="response_plans")),
        notifications=NotificationService(),
        connections=connections,
        monitor=monitor,
    )
