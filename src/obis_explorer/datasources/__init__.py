"""Occurrence data sources.

Each subdirectory is one aggregator with a consistent structure:

    datasources/{name}/
    ├── __init__.py       # Public API re-exports
    ├── client.py         # API URLs, constants, request building, paging
    └── parse.py          # Raw rows -> Occurrence / MeasurementOrFact

Shared pieces:

    base.py          # OccurrenceSource protocol + Page
    darwin_core.py   # Lenient coercion of Darwin Core values

Adding a new datasource
-----------------------
1. Create ``datasources/{name}/`` with the files above.
   See ``obis/`` for a cursor-paged source, ``gbif/`` for an offset-paged one.

2. Implement the ``OccurrenceSource`` protocol: ``fetch_page``,
   ``fetch_measurements``, ``parse_occurrence``, ``parse_measurement`` and
   the ``name`` / ``pagination`` / ``page_size`` attributes.

3. Map HTTP failures through ``services.http.check_response`` so callers
   see ``QueryRejectedError`` / ``TransientFetchError``.

4. Register it in ``SOURCES`` below and add tests in ``tests/test_{name}.py``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from obis_explorer.datasources.base import OccurrenceSource, Page
from obis_explorer.datasources.gbif import GbifSource
from obis_explorer.datasources.obis import ObisSource
from obis_explorer.services.http import build_retry, create_session

if TYPE_CHECKING:
    import requests

    from obis_explorer.config import Settings

SOURCES = ("obis", "gbif")


def get_source(
    name: str,
    settings: Settings,
    session: requests.Session | None = None,
) -> OccurrenceSource:
    """Build a configured source by name.

    Without an explicit ``session`` a new one is created with the retry
    budget and page timeout from ``settings``.
    """
    if name not in SOURCES:
        msg = f"unknown data source: {name!r} (expected one of {', '.join(SOURCES)})"
        raise ValueError(msg)
    if session is None:
        retry = build_retry(total=settings.max_retries, backoff_factor=settings.backoff_factor)
        session = create_session(retry, timeout=settings.page_timeout)
    if name == "obis":
        return ObisSource(settings.obis_api_url, page_size=settings.page_size, session=session)
    return GbifSource(settings.gbif_api_url, page_size=settings.page_size, session=session)


__all__ = [
    "SOURCES",
    "GbifSource",
    "ObisSource",
    "OccurrenceSource",
    "Page",
    "get_source",
]
