"""
OBIS API client.

Low-level access to the OBIS API v3 occurrence endpoints: building
request parameters, cursor pagination with ``after``, and the per-record
lookup used to pull MeasurementOrFact rows.

API docs: https://api.obis.org/
Darwin Core terms returned by OBIS: https://manual.obis.org/darwin_core.html
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from obis_explorer.datasources.base import Page
from obis_explorer.datasources.obis import parse
from obis_explorer.services.http import get_json
from obis_explorer.services.http import session as default_session

if TYPE_CHECKING:
    from obis_explorer.models import MeasurementOrFact, Occurrence
    from obis_explorer.schemas import OccurrenceQuery

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API configuration
# ---------------------------------------------------------------------------
API_BASE = "https://api.obis.org/v3"
MAX_PAGE_SIZE = 10_000  # API maximum for /occurrence


def query_params(query: OccurrenceQuery, scientific_name: str | None) -> dict[str, Any]:
    """Translate an OccurrenceQuery into OBIS query-string parameters."""
    params: dict[str, Any] = {}
    if scientific_name is not None:
        params["scientificname"] = scientific_name
    if query.taxon_id is not None:
        params["taxonid"] = query.taxon_id
    if query.geometry:
        params["geometry"] = query.geometry
    if query.start_depth is not None:
        params["startdepth"] = _number(query.start_depth)
    if query.end_depth is not None:
        params["enddepth"] = _number(query.end_depth)
    if query.start_date is not None:
        params["startdate"] = query.start_date.isoformat()
    if query.end_date is not None:
        params["enddate"] = query.end_date.isoformat()
    if query.node_id:
        params["nodeid"] = query.node_id
    return params


def _number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


class ObisSource:
    """OBIS occurrence search, paged with the ``after`` cursor."""

    name = "obis"
    pagination = "cursor"

    def __init__(
        self,
        base_url: str = API_BASE,
        *,
        page_size: int = 5000,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.page_size = min(page_size, MAX_PAGE_SIZE)
        self.session = session or default_session

    def _get(
        self, endpoint: str, params: dict[str, Any], timeout: float | None, **context: Any
    ) -> Any:
        return get_json(
            self.session,
            f"{self.base_url}/{endpoint}",
            params=params,
            timeout=timeout,
            label="OBIS",
            **context,
        )

    def fetch_page(
        self,
        query: OccurrenceQuery,
        scientific_name: str | None,
        *,
        cursor: str | None = None,
        offset: int = 0,
        size: int,
        timeout: float | None = None,
    ) -> Page:
        """GET /occurrence: one page, starting after ``cursor``."""
        params = query_params(query, scientific_name)
        params["size"] = min(size, self.page_size)
        if cursor is not None:
            params["after"] = cursor

        data = self._get("occurrence", params, timeout, request_params=params)
        records: list[dict[str, Any]] = data.get("results") or []
        last_id = records[-1].get("id") if records else None
        logger.debug(
            "OBIS page: %d records (total=%s, after=%s)", len(records), data.get("total"), cursor
        )
        return Page(
            records=records,
            next_cursor=str(last_id) if last_id is not None else None,
            total=data.get("total"),
            exhausted=len(records) < params["size"] or last_id is None,
        )

    def fetch_measurements(
        self, occurrence_id: str, *, timeout: float | None = None
    ) -> list[dict[str, Any]]:
        """GET /occurrence/{id}: the record's nested ``mof`` rows."""
        data = self._get(
            f"occurrence/{occurrence_id}", {"mof": "true"}, timeout, occurrence_id=occurrence_id
        )
        record = data
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            record = data["results"][0] if data["results"] else {}
        if not isinstance(record, dict):
            return []
        rows = record.get("mof") or []
        return [r for r in rows if isinstance(r, dict)]

    def parse_occurrence(self, raw: dict[str, Any]) -> Occurrence | None:
        return parse.parse_occurrence(raw)

    def parse_measurement(
        self, raw: dict[str, Any], occurrence_id: str
    ) -> MeasurementOrFact | None:
        return parse.parse_measurement(raw, occurrence_id)
