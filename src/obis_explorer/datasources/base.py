"""Contract every occurrence data source implements.

The fetcher only talks to sources through ``OccurrenceSource``, so it can
run against any API offering a search-by-taxon operation with optional
geometry/depth/date filters, page- or cursor-based pagination, and a
measurement lookup keyed by occurrence identifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from obis_explorer.models import MeasurementOrFact, Occurrence
    from obis_explorer.schemas import OccurrenceQuery

Pagination = Literal["cursor", "offset"]


@dataclass
class Page:
    """One page of raw records as returned by a source."""

    records: list[dict[str, Any]] = field(default_factory=list)
    #: Cursor for the next page (cursor sources only)
    next_cursor: str | None = None
    #: Total matching records, when the server reports it
    total: int | None = None
    #: Server signalled there is nothing after this page
    exhausted: bool = False


class OccurrenceSource(Protocol):
    """A remote occurrence API."""

    name: str
    pagination: Pagination
    page_size: int

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
        """Fetch one page of occurrences for one name (or the query's taxon id)."""
        ...

    def fetch_measurements(
        self, occurrence_id: str, *, timeout: float | None = None
    ) -> list[dict[str, Any]]:
        """Fetch raw measurement rows related to one occurrence."""
        ...

    def parse_occurrence(self, raw: dict[str, Any]) -> Occurrence | None:
        """Parse a raw row. Returns None when it has no usable identifier."""
        ...

    def parse_measurement(
        self, raw: dict[str, Any], occurrence_id: str
    ) -> MeasurementOrFact | None:
        """Parse a raw measurement row fetched for ``occurrence_id``."""
        ...
