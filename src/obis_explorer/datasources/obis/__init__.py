"""OBIS (Ocean Biodiversity Information System) data source.

Public API:
  - client: ObisSource (cursor-paged /occurrence search, per-record MoF lookup)
  - parse: parse_occurrence, parse_measurement
"""

from obis_explorer.datasources.obis.client import API_BASE, MAX_PAGE_SIZE, ObisSource
from obis_explorer.datasources.obis.parse import parse_measurement, parse_occurrence

__all__ = [
    "API_BASE",
    "MAX_PAGE_SIZE",
    "ObisSource",
    "parse_measurement",
    "parse_occurrence",
]
