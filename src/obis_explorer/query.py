"""
Query builder.

Turns loose caller options into a validated ``OccurrenceQuery``::

    from obis_explorer.query import build_query

    q = build_query(scientific_name="Hoplostethus atlanticus", end_depth=400)
    q = build_query(scientific_name=["Lophelia pertusa", "Madrepora oculata"], start_depth=2000)
    q = build_query(taxon_id=105841, page_limit=500)

All validation happens here, before any network call.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from obis_explorer.errors import InvalidQueryError
from obis_explorer.schemas import OccurrenceQuery

#: Camel-case spellings accepted as aliases (the Darwin Core / OBIS names)
_ALIASES = {
    "scientificName": "scientific_name",
    "taxonId": "taxon_id",
    "taxonid": "taxon_id",
    "startDepth": "start_depth",
    "endDepth": "end_depth",
    "startDate": "start_date",
    "endDate": "end_date",
    "includeMeasurements": "include_measurements",
    "mof": "include_measurements",
    "pageLimit": "page_limit",
    "nodeId": "node_id",
    "nodeid": "node_id",
    "hasCoordinates": "has_coordinates",
    "has_coords": "has_coordinates",
    "missingValues": "missing_values",
}

_OPTIONS = {
    "scientific_name",
    "taxon_id",
    "geometry",
    "start_depth",
    "end_depth",
    "start_date",
    "end_date",
    "include_measurements",
    "page_limit",
    "node_id",
    "has_coordinates",
    "missing_values",
}


def _names(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Iterable):
        names = tuple(value)
        if not names:
            msg = "scientific_name list is empty"
            raise InvalidQueryError(msg)
        if not all(isinstance(n, str) for n in names):
            msg = "scientific_name entries must be strings"
            raise InvalidQueryError(msg, scientific_name=names)
        return names
    msg = f"scientific_name must be a string or a list of strings, not {type(value).__name__}"
    raise InvalidQueryError(msg)


def build_query(**options: Any) -> OccurrenceQuery:
    """
    Build an immutable request descriptor from caller options.

    Args:
        **options: ``scientific_name`` (str or list of str) or ``taxon_id``,
            plus optional ``geometry`` (WKT polygon), ``start_depth``,
            ``end_depth``, ``start_date``, ``end_date``,
            ``include_measurements``, ``page_limit``, ``node_id``,
            ``has_coordinates`` and ``missing_values``. Camel-case names
            (``scientificName``, ``endDepth``...) are accepted too.

    Returns:
        The validated OccurrenceQuery.

    Raises:
        InvalidQueryError: Unknown option, both or neither of name/taxon,
            bad WKT, or an inverted depth/date range.
    """
    normalized: dict[str, Any] = {}
    for key, value in options.items():
        name = _ALIASES.get(key, key)
        if name not in _OPTIONS:
            msg = f"unknown query option: {key}"
            raise InvalidQueryError(msg, option=key)
        if name in normalized:
            msg = f"query option given twice: {key}"
            raise InvalidQueryError(msg, option=key)
        normalized[name] = value

    fields = {k: v for k, v in normalized.items() if k != "scientific_name"}
    fields["scientific_names"] = _names(normalized.get("scientific_name"))

    try:
        return OccurrenceQuery(**fields)
    except ValidationError as e:
        problems = "; ".join(err["msg"] for err in e.errors())
        raise InvalidQueryError(f"invalid query: {problems}", **_safe_context(normalized)) from None


def _safe_context(options: dict[str, Any]) -> dict[str, Any]:
    """Stringify option values so error context never holds live objects."""
    return {
        k: v if v is None or isinstance(v, str | int | float | bool) else str(v)
        for k, v in options.items()
    }
