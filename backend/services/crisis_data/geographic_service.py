"""Country metadata from REST Countries with a bundled fallback set."""

from __future__ import annotations

import time
from typing import Any, Optional
from urllib.parse import quote

import httpx

from utils.cache import TTLCache
from utils.logger import get_logger, log_upstream_call
from utils.result import Err, ErrorKind, Ok, Result, err_from_http
from utils.utcnow import utc_iso
from .catalog_loader import CrisisDataCatalog
from .country_catalog import CountryCatalog

logger = get_logger("geographic")

_USER_AGENT = "RefugeeWatch-AI/2.0"
_ALL_COUNTRIES_KEY = "all_countries"
_HEALTH_TIMEOUT_SECONDS = 5.0


def flag_emoji(alpha2: Optional[str]) -> Optional[str]:
    """Regional-indicator flag for an ISO alpha-2 code."""
    code = str(alpha2 or "").strip().upper()
    if len(code) != 2 or not code.isalpha():
        return None
    return "".join(chr(0x1F1E6 + ord(ch) - ord("A")) for ch in code)


def to_country_record(raw: dict[str, Any], catalog: Optional[CountryCatalog] = None) -> dict[str, Any]:
    """Map one REST Countries v3.1 object to a CountryRecord."""
    names = raw.get("name") if isinstance(raw.get("name"), dict) else {}
    common = names.get("common") or "Unknown"
    alpha3 = raw.get("cca3") or None
    alpha2 = raw.get("cca2") or None
    if not alpha2 and catalog is not None and alpha3:
        row = catalog.resolve(alpha3)
        alpha2 = row["alpha2"] if row else None

    capital = raw.get("capital")
    latlng = raw.get("latlng")
    languages = raw.get("languages")
    currencies = raw.get("currencies")
    borders = raw.get("borders")
    return {
        "name": common,
        "officialName": names.get("official") or common,
        "code": alpha2,
        "code3": alpha3,
        "capital": capital[0] if isinstance(capital, list) and capital else None,
        "region": raw.get("region") or None,
        "subregion": raw.get("subregion") or None,
        "population": raw.get("population") or 0,
        "coordinates": list(latlng) if isinstance(latlng, list) and len(latlng) == 2 else [0, 0],
        "languages": list(languages.values()) if isinstance(languages, dict) else [],
        "currencies": list(currencies.keys()) if isinstance(currencies, dict) else [],
        "borders": list(borders) if isinstance(borders, list) else [],
        "flag": raw.get("flag") or flag_emoji(alpha2),
        "lastUpdated": utc_iso(),
    }


class GeographicDataService:
    def __init__(
        self,
        base_url: str,
        timeout: float,
        cache: TTLCache,
        catalog: CountryCatalog,
        *,
        fields: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        fallback_catalog: Optional[CrisisDataCatalog] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache
        self.catalog = catalog
        self.fields = fields
        self._http_client = http_client
        self._fallback = fallback_catalog or CrisisDataCatalog(
            "fallback_countries.json", {"countries": []}
        )

    async def _get_json(
        self,
        path: str,
        operation: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Result[Any]:
        url = f"{self.base_url}{path}"
        request_timeout = timeout or self.timeout
        started = time.monotonic()
        headers = {"User-Agent": _USER_AGENT}
        try:
            if self._http_client is not None:
                resp = await self._http_client.get(url, params=params, headers=headers, timeout=request_timeout)
            else:
                async with httpx.AsyncClient(timeout=request_timeout) as client:
                    resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            err = err_from_http(exc, "REST Countries")
            log_upstream_call(
                "rest_countries",
                operation,
                False,
                int((time.monotonic() - started) * 1000),
                error=err.message,
            )
            return err
        log_upstream_call("rest_countries", operation, True, int((time.monotonic() - started) * 1000))
        return Ok(payload, source="REST Countries API")

    def fallback_countries(self) -> list[dict[str, Any]]:
        now = utc_iso()
        return [{**row, "lastUpdated": now} for row in self._fallback.section("countries", [])]

    async def get_all_countries(self) -> dict[str, Any]:
        cached = self.cache.get(_ALL_COUNTRIES_KEY)
        if cached is not None:
            return cached

        params = {"fields": self.fields} if self.fields else None
        result = await self._get_json("/all", "all_countries", params=params)
        if result.ok and not isinstance(result.value, list):
            result = Err(ErrorKind.MALFORMED_RESPONSE, "REST Countries /all did not return a list")

        if not result.ok:
            logger.error("Failed to fetch countries data", error=result.message)
            fallback = self.fallback_countries()
            return {
                "success": True,
                "data": fallback,
                "count": len(fallback),
                "source": "Fallback Data",
                "error": result.message,
                "lastUpdated": utc_iso(),
            }

        countries = [
            to_country_record(item, self.catalog) for item in result.value if isinstance(item, dict)
        ]
        response = {
            "success": True,
            "data": countries,
            "count": len(countries),
            "source": "REST Countries API",
            "lastUpdated": utc_iso(),
        }
        self.cache.set(_ALL_COUNTRIES_KEY, response)
        logger.info("Fetched countries", count=len(countries))
        return response

    async def get_country_by_name(self, name: str) -> dict[str, Any]:
        name = str(name or "").strip()
        cache_key = f"country_{name.lower()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        result = await self._get_json(f"/name/{quote(name, safe='')}", "country_by_name")
        if result.ok and (not isinstance(result.value, list) or not result.value):
            result = Err(ErrorKind.NOT_FOUND, f"Country '{name}' not found")

        if result.ok:
            first = result.value[0] if isinstance(result.value[0], dict) else {}
            record = to_country_record(first, self.catalog)
            if record["name"] == "Unknown":
                record["name"] = name
            response = {"success": True, "data": record, "source": "REST Countries API"}
            self.cache.set(cache_key, response)
            return response

        logger.warning("Country lookup failed", country=name, error=result.message)
        needle = name.lower()
        for row in self.fallback_countries():
            candidate = str(row.get("name") or "").lower()
            if candidate and (needle in candidate or candidate in needle):
                return {"success": True, "data": row, "source": "Fallback Data"}

        return {"success": False, "error": f"Country '{name}' not found", "data": None}

    async def get_countries_by_region(self, region: str) -> dict[str, Any]:
        all_countries = await self.get_all_countries()
        needle = str(region or "").strip().lower()
        matches = [
            country
            for country in all_countries.get("data") or []
            if country.get("region") and needle in str(country["region"]).lower()
        ]
        return {
            "success": True,
            "data": matches,
            "count": len(matches),
            "region": region,
            "source": all_countries.get("source"),
        }

    async def get_service_health(self) -> dict[str, Any]:
        health: dict[str, Any] = {"service": "GeographicData", "status": "operational", "apis": {}}
        result = await self._get_json(
            "/all", "health", params={"fields": "name"}, timeout=_HEALTH_TIMEOUT_SECONDS
        )
        if result.ok:
            health["apis"]["restCountries"] = "operational"
        else:
            health["apis"]["restCountries"] = "error"
            health["status"] = "degraded"
        return health

    def status(self) -> dict[str, Any]:
        return {"service": "GeographicData", "cache": self.cache.stats()}
