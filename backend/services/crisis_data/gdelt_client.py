"""GDELT Doc and Event API wrapper returning typed results."""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from utils.logger import log_upstream_call
from utils.result import Err, ErrorKind, Ok, Result, err_from_http
from utils.utcnow import gdelt_window

_USER_AGENT = "RefugeeWatch-AI/2.0 (+humanitarian monitoring)"

CONFLICT_THEMES = (
    "CONFLICT",
    "CRISES",
    "KILL",
    "WOUND",
    "ATTACK",
    "ARMED_CONFLICT",
    "CIVIL_UNREST",
    "TERRORISM",
    "MILITARY",
    "VIOLENCE",
    "PROTEST",
    "FIGHT",
    "WAR",
)

# CAMEO root and sub codes for assault, fight and mass violence
CONFLICT_EVENT_CODES = (
    "18",
    "19",
    "20",
    "145",
    "173",
    "174",
    "180",
    "181",
    "182",
    "183",
    "190",
    "195",
    "196",
)

EVENT_COLUMNS = (
    "actor1name",
    "actor2name",
    "eventcode",
    "goldsteinscale",
    "nummentions",
    "avgtone",
    "actiongeo_countrycode",
    "actiongeo_lat",
    "actiongeo_long",
    "dateadded",
)


def build_article_query(country: str) -> str:
    return f"{country} ({' OR '.join(CONFLICT_THEMES)})"


class GDELTClient:
    def __init__(
        self,
        doc_base_url: str,
        events_url: str,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.doc_base_url = doc_base_url.rstrip("/")
        self.events_url = events_url
        self.timeout = timeout
        self._http_client = http_client

    async def _get_json(self, url: str, params: dict[str, Any], operation: str) -> Result[Any]:
        started = time.monotonic()
        headers = {"User-Agent": _USER_AGENT}
        try:
            if self._http_client is not None:
                resp = await self._http_client.get(url, params=params, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            err = err_from_http(exc, "GDELT")
            log_upstream_call(
                "gdelt",
                operation,
                False,
                int((time.monotonic() - started) * 1000),
                error=err.message,
            )
            return err

        log_upstream_call("gdelt", operation, True, int((time.monotonic() - started) * 1000))
        return Ok(payload, source="GDELT")

    async def fetch_articles(self, country: str, days: int = 7) -> Result[list[dict[str, Any]]]:
        """Conflict-themed article list for ``country`` over the last ``days`` days."""
        start, end = gdelt_window(days)
        params = {
            "query": build_article_query(country),
            "mode": "artlist",
            "maxrecords": 100,
            "format": "json",
            "startdatetime": start,
            "enddatetime": end,
            "sort": "hybridrel",
        }
        result = await self._get_json(f"{self.doc_base_url}/doc/doc", params, "doc_artlist")
        if not result.ok:
            return result

        payload = result.value
        if not isinstance(payload, dict):
            return Err(ErrorKind.MALFORMED_RESPONSE, "GDELT doc response is not an object")
        # GDELT omits "articles" entirely when nothing matched.
        articles = payload.get("articles", [])
        if not isinstance(articles, list):
            return Err(ErrorKind.MALFORMED_RESPONSE, "GDELT articles field is not a list")
        return Ok([a for a in articles if isinstance(a, dict)], source="GDELT")

    async def fetch_events(self, fips_code: str) -> Result[list[Any]]:
        """Most recent conflict-coded events located in ``fips_code``."""
        code = str(fips_code or "").strip().upper()
        if len(code) != 2 or not code.isalpha():
            return Err(ErrorKind.NOT_FOUND, f"Invalid FIPS country code '{fips_code}'")

        params = {
            "select": ",".join(EVENT_COLUMNS),
            "where": (
                f"actiongeo_countrycode='{code}' AND eventcode IN "
                f"({','.join(CONFLICT_EVENT_CODES)})"
            ),
            "orderby": "dateadded DESC",
            "limit": 50,
            "format": "json",
        }
        result = await self._get_json(self.events_url, params, "events_query")
        if not result.ok:
            return result

        payload = result.value
        rows = payload.get("data") if isinstance(payload, dict) else payload
        if rows is None:
            return Ok([], source="GDELT")
        if not isinstance(rows, list):
            return Err(ErrorKind.MALFORMED_RESPONSE, "GDELT events data is not a list")
        return Ok(rows, source="GDELT")
