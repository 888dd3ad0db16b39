"""UNHCR displacement statistics merged with a bundled 2023 baseline."""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from utils.cache import TTLCache
from utils.logger import get_logger, log_upstream_call
from utils.result import Ok, Result, err_from_http
from utils.utcnow import utc_iso, utcnow
from .catalog_loader import CrisisDataCatalog
from .country_catalog import CountryCatalog

logger = get_logger("refugees")

_USER_AGENT = "RefugeeWatch-AI/2.0"
_ALL_DATA_KEY = "all_refugee_data"
_HEALTH_TIMEOUT_SECONDS = 10.0
_GLOBAL_TOP_ORIGINS = 20
_GLOBAL_MIN_DISPLACED = 50_000

# Used when even the merged dataset cannot be produced
_FALLBACK_GLOBAL_TOTALS = {
    "totalDisplaced": 61_400_000,
    "totalRefugees": 20_900_000,
    "totalInternal": 40_500_000,
}


def extract_rows(payload: Any) -> list[Any]:
    """Find the record list in a UNHCR payload of unknown envelope."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for key in ("data", "results", "items"):
        if isinstance(payload.get(key), list):
            return payload[key]
    for value in payload.values():
        if isinstance(value, list):
            return value
    logger.warning("Unexpected UNHCR response structure", keys=list(payload.keys()))
    return []


def _safe_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def group_by_origin(rows: list[Any]) -> list[dict[str, Any]]:
    """Sum UNHCR demographic rows per country of origin."""
    by_origin: dict[str, dict[str, Any]] = {}
    default_year = utcnow().year - 1
    for row in rows:
        if not isinstance(row, dict) or not row.get("coo_name"):
            continue
        name = str(row["coo_name"])
        entry = by_origin.get(name)
        if entry is None:
            entry = {
                "country": name,
                "countryCode": row.get("coo") or "UNK",
                "displacement": {"total": 0, "refugees": 0, "asylum_seekers": 0, "internal": 0},
                "destinations": [],
                "year": row.get("year") or default_year,
                "lastUpdated": utc_iso(),
                "sources": ["UNHCR API"],
            }
            by_origin[name] = entry

        displacement = entry["displacement"]
        displacement["refugees"] += _safe_int(row.get("refugees"))
        displacement["asylum_seekers"] += _safe_int(row.get("asylum_seekers"))
        displacement["internal"] += _safe_int(row.get("idps"))
        displacement["total"] = (
            displacement["refugees"] + displacement["asylum_seekers"] + displacement["internal"]
        )

        destination = row.get("coa_name")
        if destination and destination not in entry["destinations"]:
            entry["destinations"].append(destination)
    return list(by_origin.values())


def _totals(rows: list[dict[str, Any]]) -> dict[str, int]:
    return {
        "totalDisplaced": sum(r["displacement"].get("total", 0) for r in rows),
        "totalRefugees": sum(r["displacement"].get("refugees", 0) for r in rows),
        "totalInternal": sum(r["displacement"].get("internal", 0) for r in rows),
    }


class RefugeeDataService:
    def __init__(
        self,
        base_url: str,
        timeout: float,
        cache: TTLCache,
        catalog: CountryCatalog,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        baseline_catalog: Optional[CrisisDataCatalog] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache
        self.catalog = catalog
        self._http_client = http_client
        self._baseline = baseline_catalog or CrisisDataCatalog(
            "refugee_baseline.json", {"countries": []}
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
        headers = {"User-Agent": _USER_AGENT, "Accept": "application/json"}
        started = time.monotonic()
        try:
            if self._http_client is not None:
                resp = await self._http_client.get(url, params=params, headers=headers, timeout=request_timeout)
            else:
                async with httpx.AsyncClient(timeout=request_timeout) as client:
                    resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            err = err_from_http(exc, "UNHCR")
            log_upstream_call(
                "unhcr", operation, False, int((time.monotonic() - started) * 1000), error=err.message
            )
            return err
        log_upstream_call("unhcr", operation, True, int((time.monotonic() - started) * 1000))
        return Ok(payload, source="UNHCR API")

    def baseline(self) -> list[dict[str, Any]]:
        payload = self._baseline.payload()
        source = payload.get("source") or "UNHCR Global Trends"
        year = payload.get("year")
        now = utc_iso()
        rows = []
        for item in payload.get("countries", []):
            rows.append(
                {
                    "country": item["country"],
                    "countryCode": item.get("countryCode") or "UNK",
                    "displacement": {
                        "total": int(item.get("totalDisplaced") or 0),
                        "refugees": int(item.get("refugees") or 0),
                        "internal": int(item.get("internallyDisplaced") or 0),
                        "asylum_seekers": int(item.get("asylumSeekers") or 0),
                    },
                    "destinations": list(item.get("mainDestinations") or []),
                    "year": year,
                    "lastUpdated": now,
                    "sources": [source],
                }
            )
        return rows

    def _same_origin(self, a: dict[str, Any], b: dict[str, Any]) -> bool:
        code_a = self.catalog.normalize_iso3(a.get("countryCode")) or self.catalog.normalize_iso3(a["country"])
        code_b = self.catalog.normalize_iso3(b.get("countryCode")) or self.catalog.normalize_iso3(b["country"])
        if code_a and code_b:
            return code_a == code_b
        return a["country"].lower() == b["country"].lower()

    def merge_with_baseline(self, live_rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Baseline rows win; live rows only add countries the baseline lacks."""
        combined = self.baseline()
        baseline_rows = list(combined)
        for row in live_rows:
            if not any(self._same_origin(row, base) for base in baseline_rows):
                combined.append(row)
        return combined

    async def get_all_refugee_data(self) -> dict[str, Any]:
        cached = self.cache.get(_ALL_DATA_KEY)
        if cached is not None:
            return cached

        year = utcnow().year
        source = "Reliable UNHCR-Based Data"
        live_rows: list[dict[str, Any]] = []
        result = await self._get_json(
            "/demographics/",
            "demographics",
            params={"limit": 1000, "yearFrom": year - 1, "yearTo": year},
        )
        if result.ok:
            live_rows = group_by_origin(extract_rows(result.value))
            if live_rows:
                source = "UNHCR API + Reliable Baseline"
                logger.info("UNHCR API returned displacement data", countries=len(live_rows))
        else:
            logger.warning("UNHCR API unavailable, using baseline data", error=result.message)

        combined = self.merge_with_baseline(live_rows)
        response = {
            "success": True,
            "data": combined,
            **_totals(combined),
            "count": len(combined),
            "source": source,
            "year": year - 1,
            "lastUpdated": utc_iso(),
            "note": "Combined live UNHCR data with baseline figures for comprehensive coverage",
        }
        self.cache.set(_ALL_DATA_KEY, response)
        return response

    def _matches(self, row: dict[str, Any], search: str) -> bool:
        wanted = self.catalog.normalize_iso3(search)
        have = self.catalog.normalize_iso3(row.get("countryCode")) or self.catalog.normalize_iso3(row["country"])
        if wanted and have:
            # both resolved: "Congo" must not match the DRC row by substring
            return have == wanted
        name = row["country"].lower()
        needle = search.strip().lower()
        return bool(needle) and (name == needle or needle in name or name in needle)

    async def get_refugee_data_by_country(self, country: str) -> dict[str, Any]:
        all_data = await self.get_all_refugee_data()
        rows = all_data.get("data") or []
        for row in rows:
            if self._matches(row, country):
                return {"success": True, "data": row, "source": all_data.get("source")}
        return {
            "success": False,
            "error": f"No refugee data found for {country}",
            "data": None,
            "availableCountries": [row["country"] for row in rows[:10]],
        }

    async def get_global_displacement_stats(self) -> dict[str, Any]:
        all_data = await self.get_all_refugee_data()
        rows = all_data.get("data") or []
        if not rows:
            baseline = self.baseline()
            return {
                "success": True,
                "data": {
                    **_FALLBACK_GLOBAL_TOTALS,
                    "countriesAffected": len(baseline),
                    "topOriginCountries": baseline[:10],
                    "dataYear": utcnow().year - 1,
                    "lastUpdated": utc_iso(),
                },
                "source": "Reliable UNHCR-Based Data",
            }

        top = sorted(
            (r for r in rows if r["displacement"].get("total", 0) > _GLOBAL_MIN_DISPLACED),
            key=lambda r: r["displacement"].get("total", 0),
            reverse=True,
        )[:_GLOBAL_TOP_ORIGINS]
        return {
            "success": True,
            "data": {
                "totalDisplaced": all_data.get("totalDisplaced", 0),
                "totalRefugees": all_data.get("totalRefugees", 0),
                "totalInternal": all_data.get("totalInternal", 0),
                "countriesAffected": all_data.get("count", 0),
                "topOriginCountries": [
                    {
                        "country": r["country"],
                        "countryCode": r["countryCode"],
                        "displaced": r["displacement"].get("total", 0),
                        "refugees": r["displacement"].get("refugees", 0),
                        "internal": r["displacement"].get("internal", 0),
                        "destinations": r.get("destinations") or [],
                    }
                    for r in top
                ],
                "dataYear": all_data.get("year"),
                "lastUpdated": utc_iso(),
            },
            "source": all_data.get("source"),
        }

    async def get_service_health(self) -> dict[str, Any]:
        health: dict[str, Any] = {
            "service": "RefugeeData",
            "status": "operational",
            "dataSource": "UNHCR API + Reliable Baseline",
            "apis": {},
        }
        result = await self._get_json(
            "/countries/", "health", params={"limit": 1}, timeout=_HEALTH_TIMEOUT_SECONDS
        )
        if result.ok:
            health["apis"]["unhcr"] = "operational" if extract_rows(result.value) else "partial"
        else:
            health["apis"]["unhcr"] = "fallback_mode"
            health["note"] = "Using baseline data while the UNHCR API is unavailable"
        return health

    def status(self) -> dict[str, Any]:
        return {"service": "RefugeeData", "cache": self.cache.stats()}
