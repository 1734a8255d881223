"""
GBIF API client.

Offset-paged access to the GBIF occurrence search, used for the
multi-aggregator part of the lesson (GBIF mirrors most OBIS datasets).
Offsets are page size x page index, so later pages can be requested
concurrently once the first page reports the total.

API docs: https://techdocs.gbif.org/en/openapi/v1/occurrence
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from obis_explorer.datasources.base import Page
from obis_explorer.datasources.gbif import parse
from obis_explorer.services.http import get_json
from obis_explorer.services.http import session as default_session

if TYPE_CHECKING:
    from obis_explorer.models import MeasurementOrFact, Occurrence
    from obis_explorer.schemas import OccurrenceQuery

logger = logging.getLogger(__name__)

API_BASE = "https://api.gbif.org/v1"
MAX_PAGE_SIZE = 300  # API maximum ``limit`` for /occurrence/search


def _range(low: Any, high: Any) -> str:
    """GBIF range syntax: ``low,high`` with ``*`` for an open end."""
    lo = "*" if low is None else str(low)
    hi = "*" if high is None else str(high)
    return f"{lo},{hi}"


def _number(value: float | None) -> int | float | None:
    if value is None:
        return None
    return int(value) if float(value).is_integer() else value


def query_params(query: OccurrenceQuery, scientific_name: str | None) -> dict[str, Any]:
    """Translate an OccurrenceQuery into GBIF query-string parameters."""
    params: dict[str, Any] = {}
    if scientific_name is not None:
        params["scientificName"] = scientific_name
    if query.taxon_id is not None:
        params["taxonKey"] = query.taxon_id
    if query.geometry:
        params["geometry"] = query.geometry
    if query.has_depth_filter:
        params["depth"] = _range(_number(query.start_depth), _number(query.end_depth))
    if query.has_date_filter:
        start = query.start_date.isoformat() if query.start_date else None
        end = query.end_date.isoformat() if query.end_date else None
        params["eventDate"] = _range(start, end)
    if query.has_coordinates:
        params["hasCoordinate"] = "true"
    if query.node_id:
        logger.warning("GBIF has no OBIS node filter; ignoring node_id=%s", query.node_id)
    return params


class GbifSource:
    """GBIF occurrence search, paged with ``offset``/``limit``."""

    name = "gbif"
    pagination = "offset"

    def __init__(
        self,
        base_url: str = API_BASE,
        *,
        page_size: int = MAX_PAGE_SIZE,
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
            label="GBIF",
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
        """GET /occurrence/search: ``size`` records starting at ``offset``."""
        params = query_params(query, scientific_name)
        params["limit"] = min(size, self.page_size)
        params["offset"] = offset

        data = self._get("occurrence/search", params, timeout, request_params=params)
        records: list[dict[str, Any]] = data.get("results") or []
        logger.debug(
            "GBIF page: %d records at offset %d (count=%s)", len(records), offset, data.get("count")
        )
        return Page(
            records=records,
            total=data.get("count"),
            exhausted=bool(data.get("endOfRecords")) or not records,
        )

    def fetch_measurements(
        self, occurrence_id: str, *, timeout: float | None = None
    ) -> list[dict[str, Any]]:
        """GET /occurrence/{key}/verbatim: rows of the MoF extensions."""
        data = self._get(
            f"occurrence/{occurrence_id}/verbatim", {}, timeout, occurrence_id=occurrence_id
        )
        extensions = data.get("extensions") if isinstance(data, dict) else None
        if not isinstance(extensions, dict):
            return []
        rows: list[dict[str, Any]] = []
        for uri in parse.MEASUREMENT_EXTENSIONS:
            rows.extend(r for r in extensions.get(uri) or [] if isinstance(r, dict))
        return rows

    def parse_occurrence(self, raw: dict[str, Any]) -> Occurrence | None:
        return parse.parse_occurrence(raw)

    def parse_measurement(
        self, raw: dict[str, Any], occurrence_id: str
    ) -> MeasurementOrFact | None:
        return parse.parse_measurement(raw, occurrence_id)
