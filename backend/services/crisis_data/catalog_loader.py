"""Shared JSON catalog loader for bundled crisis reference data."""

from __future__ import annotations

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DATA_ROOT = Path(__file__).resolve().parents[2] / "data" / "crisis_data"


class CrisisDataCatalog:
    """Loads a crisis-data JSON file, re-reading it when its mtime changes."""

    def __init__(
        self,
        filename: str,
        default_payload: dict[str, Any],
        *,
        data_root: Path | None = None,
    ) -> None:
        self._path = (data_root or DATA_ROOT) / filename
        self._default = deepcopy(default_payload)
        self._payload: dict[str, Any] = deepcopy(default_payload)
        self._loaded = False
        self._mtime_ns: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _reload_if_needed(self) -> None:
        if not self._path.exists():
            if not self._loaded:
                logger.warning("Crisis data catalog missing: %s", self._path)
                self._payload = deepcopy(self._default)
                self._loaded = True
            return

        try:
            mtime_ns = int(self._path.stat().st_mtime_ns)
        except OSError as exc:
            logger.warning("Failed to stat catalog %s: %s", self._path, exc)
            if not self._loaded:
                self._payload = deepcopy(self._default)
                self._loaded = True
            return

        if self._loaded and self._mtime_ns == mtime_ns:
            return

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("catalog root must be an object")
            self._payload = raw
        except (OSError, ValueError) as exc:
            logger.error("Failed loading crisis data catalog %s: %s", self._path, exc)
            self._payload = deepcopy(self._default)
        self._loaded = True
        self._mtime_ns = mtime_ns

    def payload(self) -> dict[str, Any]:
        self._reload_if_needed()
        return deepcopy(self._payload)

    def version(self) -> int | None:
        """File mtime of the loaded payload; changes whenever the payload does."""
        self._reload_if_needed()
        return self._mtime_ns

    def section(self, key: str, default: Any = None) -> Any:
        value = self.payload().get(key)
        return default if value is None else value
