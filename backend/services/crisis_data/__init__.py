"""Upstream crisis data: GDELT conflict, REST Countries, UNHCR displacement."""

from .country_catalog import CountryCatalog
from .country_reference_source import load_country_reference
from .gdelt_client import GDELTClient
from .conflict_service import ConflictDataService
from .geographic_service import GeographicDataService
from .refugee_service import RefugeeDataService

__all__ = [
    "CountryCatalog",
    "load_country_reference",
    "GDELTClient",
    "ConflictDataService",
    "GeographicDataService",
    "RefugeeDataService",
]
