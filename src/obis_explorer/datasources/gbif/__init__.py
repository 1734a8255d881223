"""GBIF data source.

Public API:
  - client: GbifSource (offset-paged /occurrence/search, verbatim MoF lookup)
  - parse: parse_occurrence, parse_measurement
"""

from obis_explorer.datasources.gbif.client import API_BASE, MAX_PAGE_SIZE, GbifSource
from obis_explorer.datasources.gbif.parse import parse_measurement, parse_occurrence

__all__ = [
    "API_BASE",
    "MAX_PAGE_SIZE",
    "GbifSource",
    "parse_measurement",
    "parse_occurrence",
]
