"""Shared fixtures for RefugeeWatch backend tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from typing import Callable

import pytest

from services.crisis_data.country_catalog import CountryCatalog
from utils.cache import TTLCache


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_factory(clock) -> Callable[..., TTLCache]:
    def _make(ttl_seconds: float = 3600, name: str = "test") -> TTLCache:
        return TTLCache(ttl_seconds, clock=clock, name=name)

    return _make


@pytest.fixture
def catalog():
    """Catalog backed by the bundled country_reference.json seed."""
    return CountryCatalog()


# ---------------------------------------------------------------------------
# Upstream payload fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def killing_articles():
    """Five titles that each mention a killing and nothing else."""
    return [
        {"title": f"Five killed in overnight raid {i}", "seendate": "20240101T000000Z", "url": f"https://news.example/{i}"}
        for i in range(5)
    ]


@pytest.fixture
def rest_country_payload():
    """REST Countries v3.1 object as returned by /name/{name}."""
    return {
        "name": {"common": "Sudan", "official": "Republic of the Sudan"},
        "cca2": "SD",
        "cca3": "SDN",
        "capital": ["Khartoum"],
        "region": "Africa",
        "subregion": "Northern Africa",
        "population": 43849269,
        "latlng": [15.0, 30.0],
        "languages": {"ara": "Arabic", "eng": "English"},
        "currencies": {"SDG": {"name": "Sudanese pound", "symbol": "PT"}},
        "borders": ["CAF", "TCD", "EGY"],
        "flag": "🇸🇩",
    }


@pytest.fixture
def unhcr_demographics_payload():
    return {
        "items": [
            {"coo_name": "Venezuela", "coo": "VEN", "coa_name": "Colombia", "refugees": 300000, "asylum_seekers": 50000, "idps": 0, "year": 2023},
            {"coo_name": "Venezuela", "coo": "VEN", "coa_name": "Peru", "refugees": 200000, "asylum_seekers": 25000, "idps": 0, "year": 2023},
            {"coo_name": "Syrian Arab Rep.", "coo": "SYR", "coa_name": "Turkey", "refugees": 10, "asylum_seekers": 0, "idps": 0, "year": 2023},
        ]
    }
