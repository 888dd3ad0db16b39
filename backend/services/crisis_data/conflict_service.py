"""Conflict assessments per country from GDELT, with cache fallback."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from utils.cache import TTLCache
from utils.logger import get_logger
from utils.result import Err, Result
from .conflict_scoring import default_assessment, identify_hotspots, score_articles, score_events
from .country_catalog import CountryCatalog
from .gdelt_client import GDELTClient

logger = get_logger("conflict")


class ConflictDataService:
    def __init__(
        self,
        client: GDELTClient,
        catalog: CountryCatalog,
        cache: TTLCache,
        *,
        stale_max_age: float = 6 * 3600,
        delay_seconds: float = 0.5,
        article_days: int = 7,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.cache = cache
        self.stale_max_age = stale_max_age
        self.delay_seconds = delay_seconds
        self.article_days = article_days
        self._last_errors: dict[str, str] = {}

    def _fallback(self, key: str, country: str, err: Err) -> dict[str, Any]:
        self._last_errors[key] = err.message
        stale = self.cache.get(key, max_age=self.stale_max_age)
        if stale is not None:
            logger.warning("Using cached conflict data", country=country, key=key, error=err.message)
            return {**stale, "stale": True}
        return default_assessment(country)

    async def _assess(self, key: str, country: str, fetch, score) -> dict[str, Any]:
        fresh = self.cache.get(key)
        if fresh is not None:
            return fresh

        result: Result = await fetch()
        if not result.ok:
            return self._fallback(key, country, result)

        assessment = score(result.value, country)
        self.cache.set(key, assessment)
        self._last_errors.pop(key, None)
        return assessment

    async def get_country_conflict_data(self, country: str, days: Optional[int] = None) -> dict[str, Any]:
        """Article-based assessment over the last ``days`` days."""
        window = self.article_days if days is None else days
        return await self._assess(
            f"conflict_{country.lower()}_{window}",
            country,
            lambda: self.client.fetch_articles(country, window),
            score_articles,
        )

    async def get_country_conflict_events(self, country: str) -> dict[str, Any]:
        """Event-based assessment; countries without a FIPS code get the default."""
        fips = self.catalog.fips_code(country)
        if not fips:
            logger.warning("No FIPS code for country, skipping GDELT events", country=country)
            return default_assessment(country)
        return await self._assess(
            f"events_{fips}",
            country,
            lambda: self.client.fetch_events(fips),
            score_events,
        )

    async def get_realtime_conflict_events(self, countries: list[str]) -> dict[str, dict[str, Any]]:
        events: dict[str, dict[str, Any]] = {}
        for index, country in enumerate(countries):
            if index and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            events[country] = await self.get_country_conflict_events(country)
        logger.info("Real-time conflict monitoring complete", countries=len(countries))
        return events

    async def get_conflict_hotspots(self, countries: list[str], days: int = 3) -> list[dict[str, Any]]:
        assessments: dict[str, dict[str, Any]] = {}
        for index, country in enumerate(countries):
            if index and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            assessments[country] = await self.get_country_conflict_data(country, days)
        hotspots = identify_hotspots(assessments)
        logger.info("Conflict hotspots identified", queried=len(countries), hotspots=len(hotspots))
        return hotspots

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Conflict data cache cleared")

    def status(self) -> dict[str, Any]:
        return {
            "service": "ConflictData",
            "cache": self.cache.stats(),
            "lastErrors": dict(self._last_errors),
        }
