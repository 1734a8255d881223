"""OBIS Explorer - query, join and filter ocean biodiversity occurrence records.

Architecture::

    query.py       Query builder: caller options -> validated OccurrenceQuery
    datasources/   External APIs (OBIS cursor paging, GBIF offset paging)
    fetch.py       Paginated fetcher (limits, worker pool, timeouts, cancellation)
    models.py      Occurrence / Event / MeasurementOrFact / ResultSet
    join.py        MeasurementOrFact -> parent occurrence join, orphan flagging
    filters.py     Post-hoc predicates and column projection
    analysis.py    Counts and summaries (years, datasets, orders)
    store.py       JSON cache with TTL for lesson results
    flows/         Prefect lesson flow
    services/      Shared utilities (HTTP client with retry, logging setup)

Data flow: query -> datasources (via fetch) -> join -> filters -> caller

Extension points (each package docstring has a step-by-step guide):
  - New data source:   datasources/__init__.py
  - New lesson data:   reference/__init__.py
"""

__version__ = "0.1.0"

from obis_explorer.config import Settings
from obis_explorer.errors import (
    InvalidQueryError,
    ObisExplorerError,
    QueryRejectedError,
    QueryTimeoutError,
    TransientFetchError,
    UnknownFieldError,
)
from obis_explorer.fetch import FetchOptions, fetch_occurrences
from obis_explorer.models import Event, MeasurementOrFact, Occurrence, OccurrenceStatus, ResultSet
from obis_explorer.query import build_query
from obis_explorer.schemas import MissingValuePolicy, OccurrenceQuery

__all__ = [
    "Event",
    "FetchOptions",
    "InvalidQueryError",
    "MeasurementOrFact",
    "MissingValuePolicy",
    "ObisExplorerError",
    "Occurrence",
    "OccurrenceQuery",
    "OccurrenceStatus",
    "QueryRejectedError",
    "QueryTimeoutError",
    "ResultSet",
    "Settings",
    "TransientFetchError",
    "UnknownFieldError",
    "__version__",
    "build_query",
    "fetch_occurrences",
]
