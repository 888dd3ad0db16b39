"""Country name/code normalization for crisis data sources.

Rows carry ``name``, ``official_name``, ``alpha2``, ``alpha3``, ``fips``
and ``aliases``. The bundled ``country_reference.json`` seeds the catalog;
``country_reference_source.load_country_reference`` replaces the rows at
startup with the merged REST Countries list when it is reachable.
"""

from __future__ import annotations

import unicodedata
from typing import Any, Optional

from .catalog_loader import CrisisDataCatalog

_DEFAULT = {
    "countries": [],
}


def _fold(value: Any) -> str:
    """Case- and accent-insensitive lookup key."""
    text = unicodedata.normalize("NFKD", str(value or "").strip())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.casefold().split())


def clean_country_rows(rows: Any) -> list[dict[str, Any]]:
    if not isinstance(rows, list):
        return []
    out: list[dict[str, Any]] = []
    seen: set[str] = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        name = str(row.get("name") or "").strip()
        alpha2 = str(row.get("alpha2") or "").strip().upper()
        alpha3 = str(row.get("alpha3") or "").strip().upper()
        if not name or len(alpha2) != 2 or len(alpha3) != 3:
            continue
        if alpha3 in seen:
            continue
        seen.add(alpha3)
        fips = str(row.get("fips") or "").strip().upper()
        aliases = row.get("aliases") if isinstance(row.get("aliases"), list) else []
        out.append(
            {
                "name": name,
                "official_name": str(row.get("official_name") or "").strip() or name,
                "alpha2": alpha2,
                "alpha3": alpha3,
                "fips": fips if len(fips) == 2 else "",
                "aliases": [str(a).strip() for a in aliases if str(a or "").strip()],
            }
        )
    return out


class CountryCatalog:
    def __init__(self, catalog: Optional[CrisisDataCatalog] = None) -> None:
        self._catalog = catalog or CrisisDataCatalog("country_reference.json", _DEFAULT)
        self._runtime_rows: list[dict[str, Any]] | None = None
        self._runtime_source: str | None = None
        self._seed_rows: list[dict[str, Any]] | None = None
        self._seed_version: int | None = None
        self._index_key: tuple[Any, ...] | None = None
        self._index: dict[str, dict[str, Any]] = {}

    def payload(self) -> dict[str, Any]:
        return self._catalog.payload()

    def seed_rows(self) -> list[dict[str, Any]]:
        version = self._catalog.version()
        if self._seed_rows is None or version != self._seed_version:
            raw = self.payload()
            countries = raw if isinstance(raw, list) else raw.get("countries", [])
            self._seed_rows = clean_country_rows(countries)
            self._seed_version = version
        return list(self._seed_rows)

    def set_runtime_rows(
        self,
        rows: list[dict[str, Any]] | None,
        *,
        source: str | None = None,
    ) -> None:
        cleaned = clean_country_rows(rows)
        self._runtime_rows = cleaned or None
        self._runtime_source = (str(source or "").strip() or None) if cleaned else None
        self._index_key = None

    def rows(self) -> list[dict[str, Any]]:
        if self._runtime_rows:
            return list(self._runtime_rows)
        return self.seed_rows()

    def _lookup(self) -> dict[str, dict[str, Any]]:
        # Runtime rows only change through set_runtime_rows, which drops the key.
        key = ("runtime",) if self._runtime_rows else ("seed", self._catalog.version())
        if self._index_key == key and self._index:
            return self._index

        rows = self.rows()

        index: dict[str, dict[str, Any]] = {}
        # Canonical names win over official names, which win over aliases;
        # codes come last so a code never shadows a spelled-out name.
        for row in rows:
            index.setdefault(_fold(row["name"]), row)
        for row in rows:
            index.setdefault(_fold(row["official_name"]), row)
        for row in rows:
            for alias in row["aliases"]:
                index.setdefault(_fold(alias), row)
        for row in rows:
            index.setdefault(_fold(row["alpha3"]), row)
            index.setdefault(_fold(row["alpha2"]), row)
        self._index_key = key
        self._index = index
        return index

    def resolve(self, value: str | None) -> dict[str, Any] | None:
        key = _fold(value)
        if not key:
            return None
        row = self._lookup().get(key)
        return dict(row) if row else None

    def normalize_iso3(self, value: str | None) -> str:
        row = self.resolve(value)
        return row["alpha3"] if row else ""

    def country_name(self, value: str | None) -> str:
        row = self.resolve(value)
        if not row:
            return str(value or "").strip()
        return row["name"]

    def fips_code(self, value: str | None) -> str:
        row = self.resolve(value)
        return row["fips"] if row else ""

    def same_country(self, a: str | None, b: str | None) -> bool:
        iso_a = self.normalize_iso3(a)
        iso_b = self.normalize_iso3(b)
        if iso_a and iso_b:
            return iso_a == iso_b
        folded_a, folded_b = _fold(a), _fold(b)
        return bool(folded_a) and folded_a == folded_b

    def runtime_source(self) -> str | None:
        return self._runtime_source

    def status(self) -> dict[str, Any]:
        rows = self.rows()
        return {
            "source": self._runtime_source or "static_seed",
            "count": len(rows),
            "withFips": sum(1 for row in rows if row["fips"]),
            "seedPath": str(self._catalog.path),
        }
