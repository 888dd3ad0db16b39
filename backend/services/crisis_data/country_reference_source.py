"""Authoritative country-reference sync from REST Countries."""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from utils.logger import get_logger, log_upstream_call
from utils.result import Err, ErrorKind, Ok, Result, err_from_http
from .country_catalog import CountryCatalog

logger = get_logger("country_reference")

_REFERENCE_FIELDS = "name,cca2,cca3,altSpellings"


def _rest_country_rows(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        return []
    rows: list[dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        name_block = item.get("name") if isinstance(item.get("name"), dict) else {}
        name = str(name_block.get("common") or "").strip()
        alpha2 = str(item.get("cca2") or "").strip().upper()
        alpha3 = str(item.get("cca3") or "").strip().upper()
        if not name or len(alpha2) != 2 or len(alpha3) != 3 or not alpha3.isalpha():
            continue
        spellings = item.get("altSpellings") if isinstance(item.get("altSpellings"), list) else []
        rows.append(
            {
                "name": name,
                "official_name": str(name_block.get("official") or "").strip() or name,
                "alpha2": alpha2,
                "alpha3": alpha3,
                # Short entries in altSpellings are codes, not names.
                "aliases": [str(s).strip() for s in spellings if len(str(s or "").strip()) > 3],
            }
        )
    return rows


def merge_reference_rows(
    seed_rows: list[dict[str, Any]],
    api_rows: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Overlay REST Countries rows on the seed.

    The seed keeps its canonical name, FIPS code and aliases; API rows
    contribute extra spellings and any territories the seed lacks.
    """
    by_alpha3 = {row["alpha3"]: dict(row) for row in seed_rows}
    for api_row in api_rows:
        seed = by_alpha3.get(api_row["alpha3"])
        if seed is None:
            by_alpha3[api_row["alpha3"]] = {**api_row, "fips": ""}
            continue
        aliases = list(seed.get("aliases") or [])
        for label in (api_row["name"], api_row["official_name"], *api_row["aliases"]):
            if label and label != seed["name"] and label not in aliases:
                aliases.append(label)
        seed["aliases"] = aliases
    return sorted(by_alpha3.values(), key=lambda row: row["name"])


async def fetch_rest_country_rows(
    base_url: str,
    timeout: float,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Result[list[dict[str, Any]]]:
    url = f"{base_url.rstrip('/')}/all"
    started = time.monotonic()
    client = http_client or httpx.AsyncClient(timeout=timeout)
    try:
        resp = await client.get(url, params={"fields": _REFERENCE_FIELDS}, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        err = err_from_http(exc, "REST Countries")
        log_upstream_call(
            "rest_countries",
            "country_reference",
            False,
            int((time.monotonic() - started) * 1000),
            error=err.message,
        )
        return err
    finally:
        if http_client is None:
            await client.aclose()

    rows = _rest_country_rows(payload)
    log_upstream_call(
        "rest_countries",
        "country_reference",
        bool(rows),
        int((time.monotonic() - started) * 1000),
        count=len(rows),
    )
    if not rows:
        return Err(ErrorKind.MALFORMED_RESPONSE, "REST Countries returned no usable country rows")
    return Ok(rows, source="rest_countries_api")


async def load_country_reference(
    catalog: CountryCatalog,
    *,
    base_url: str,
    timeout: float,
    enabled: bool = True,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """Install the complete reference list into ``catalog``; never raises."""
    seed_rows = catalog.seed_rows()
    if not enabled:
        catalog.set_runtime_rows(seed_rows, source="static_seed")
        return {"updated": False, "source": "static_seed", "count": len(seed_rows), "reason": "disabled"}

    result = await fetch_rest_country_rows(base_url, timeout, http_client)
    if not result.ok:
        logger.warning(
            "Country reference sync failed, using bundled seed",
            error=result.message,
            seed_count=len(seed_rows),
        )
        catalog.set_runtime_rows(seed_rows, source="static_seed")
        return {
            "updated": False,
            "source": "static_seed",
            "count": len(seed_rows),
            "reason": result.kind.value,
        }

    merged = merge_reference_rows(seed_rows, result.value)
    catalog.set_runtime_rows(merged, source=result.source)
    logger.info("Country reference loaded", source=result.source, count=len(merged))
    return {"updated": True, "source": result.source, "count": len(merged), "reason": "synced"}
