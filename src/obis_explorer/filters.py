"""
Post-hoc filtering and column projection over a ResultSet.

Every function returns new objects; the input ResultSet is never modified.

    from obis_explorer import filters

    lengths = filters.filter_measurements(
        result, filters.measurement_type_id_equals(OBSERVED_LENGTH)
    )
    rows = filters.project(result, ["scientificName", "decimalLatitude", "decimalLongitude"])
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Any

from shapely import wkt
from shapely.geometry import Point
from shapely.prepared import prep

from obis_explorer.errors import UnknownFieldError
from obis_explorer.join import join_measurements
from obis_explorer.models import (
    MEASUREMENT_FIELDS,
    MEASUREMENT_TERMS,
    OCCURRENCE_FIELDS,
    OCCURRENCE_TERMS,
    MeasurementOrFact,
    Occurrence,
    ResultSet,
)
from obis_explorer.schemas import MissingValuePolicy

if TYPE_CHECKING:
    from obis_explorer.schemas import OccurrenceQuery

OccurrencePredicate = Callable[[Occurrence], bool]
MeasurementPredicate = Callable[[MeasurementOrFact], bool]


# =============================================================================
# Occurrence predicates
# =============================================================================


def depth_between(
    start: float | None = None,
    end: float | None = None,
    *,
    include_missing: bool = True,
) -> OccurrencePredicate:
    """Depth in ``[start, end]`` (either bound optional)."""

    def _pred(occ: Occurrence) -> bool:
        if occ.depth is None:
            return include_missing
        if start is not None and occ.depth < start:
            return False
        return not (end is not None and occ.depth > end)

    return _pred


def date_between(
    start: date | None = None,
    end: date | None = None,
    *,
    include_missing: bool = True,
) -> OccurrencePredicate:
    """Event date in ``[start, end]`` (either bound optional)."""

    def _pred(occ: Occurrence) -> bool:
        if occ.event_date is None:
            return include_missing
        if start is not None and occ.event_date < start:
            return False
        return not (end is not None and occ.event_date > end)

    return _pred


def within_geometry(geometry: str) -> OccurrencePredicate:
    """Point-in-polygon test against a WKT geometry. No coordinates: False."""
    shape = prep(wkt.loads(geometry))

    def _pred(occ: Occurrence) -> bool:
        if occ.latitude is None or occ.longitude is None:
            return False
        # Points on the boundary count as inside
        return shape.intersects(Point(occ.longitude, occ.latitude))

    return _pred


def has_coordinates() -> OccurrencePredicate:
    return lambda occ: occ.has_coordinates


def scientific_name_in(names: Iterable[str]) -> OccurrencePredicate:
    wanted = set(names)
    return lambda occ: occ.scientific_name in wanted


def all_of(*predicates: OccurrencePredicate) -> OccurrencePredicate:
    return lambda occ: all(p(occ) for p in predicates)


def query_predicate(query: OccurrenceQuery) -> OccurrencePredicate:
    """
    Client-side check mirroring a query's depth, date and coordinate filters.

    The same filters are sent to the server; re-applying them here makes
    the result independent of how a server treats records with missing
    values. The query's ``missing_values`` policy decides those.
    """
    include = query.missing_values is MissingValuePolicy.INCLUDE
    checks: list[OccurrencePredicate] = []
    if query.has_depth_filter:
        checks.append(depth_between(query.start_depth, query.end_depth, include_missing=include))
    if query.has_date_filter:
        checks.append(date_between(query.start_date, query.end_date, include_missing=include))
    if query.has_coordinates:
        checks.append(has_coordinates())
    return all_of(*checks)


# =============================================================================
# Measurement predicates
# =============================================================================


def measurement_type_id_equals(uri: str) -> MeasurementPredicate:
    """Exact, case-sensitive match on ``measurement_type_id``."""
    return lambda m: m.measurement_type_id == uri


def measurement_type_equals(label: str) -> MeasurementPredicate:
    """Case-insensitive match on the free-text ``measurement_type``."""
    wanted = label.casefold()
    return lambda m: m.measurement_type is not None and m.measurement_type.casefold() == wanted


def not_orphaned() -> MeasurementPredicate:
    return lambda m: not m.orphaned


# =============================================================================
# Filtering
# =============================================================================


def filter_occurrences(result: ResultSet, predicate: OccurrencePredicate) -> ResultSet:
    """
    Keep occurrences matching ``predicate``.

    Measurements joined to a dropped occurrence are dropped with it, and the
    rest are joined again against the kept occurrences: an event-level
    measurement whose event no longer has a kept occurrence becomes orphaned.
    Orphaned measurements are kept.
    """
    kept = tuple(occ for occ in result.occurrences if predicate(occ))
    kept_ids = {occ.id for occ in kept}
    dropped_ids = {occ.id for occ in result.occurrences} - kept_ids
    measurements = join_measurements(
        kept,
        (m for m in result.measurements if m.orphaned or m.occurrence_id not in dropped_ids),
    )
    return replace(result, occurrences=kept, measurements=measurements)


def filter_measurements(result: ResultSet, predicate: MeasurementPredicate) -> ResultSet:
    """Keep measurements matching ``predicate``; occurrences are unchanged."""
    return replace(result, measurements=tuple(m for m in result.measurements if predicate(m)))


# =============================================================================
# Projection
# =============================================================================


def _resolve(
    requested: Sequence[str], declared: Sequence[str], terms: dict[str, str], entity: str
) -> list[tuple[str, str]]:
    """Map requested names to (column label, attribute name)."""
    resolved: list[tuple[str, str]] = []
    for name in requested:
        attr = name if name in declared else terms.get(name)
        if attr is None:
            msg = f"{entity} has no field {name!r}"
            raise UnknownFieldError(msg, field=name, entity=entity)
        resolved.append((name, attr))
    return resolved


def project(result: ResultSet, fields: Sequence[str] = OCCURRENCE_FIELDS) -> list[dict[str, Any]]:
    """
    Tabular view of the occurrences with only ``fields``, in row order.

    Field names are Occurrence attribute names or Darwin Core terms
    (``scientificName``, ``decimalLatitude``...). Column labels are the
    names as requested.

    Raises:
        UnknownFieldError: A name matches no field.
    """
    columns = _resolve(fields, OCCURRENCE_FIELDS, OCCURRENCE_TERMS, "Occurrence")
    return [{label: getattr(occ, attr) for label, attr in columns} for occ in result.occurrences]


def project_measurements(
    result: ResultSet, fields: Sequence[str] = MEASUREMENT_FIELDS
) -> list[dict[str, Any]]:
    """Tabular view of the attached measurements; see ``project``."""
    columns = _resolve(fields, MEASUREMENT_FIELDS, MEASUREMENT_TERMS, "MeasurementOrFact")
    return [{label: getattr(m, attr) for label, attr in columns} for m in result.measurements]


def measurements_with_occurrence_fields(
    result: ResultSet,
    occurrence_fields: Sequence[str],
    measurement_fields: Sequence[str] = MEASUREMENT_FIELDS,
) -> list[dict[str, Any]]:
    """
    Joined table: one row per attached measurement, widened with columns
    from its parent occurrence (orphans get None for those columns).
    """
    occ_columns = _resolve(occurrence_fields, OCCURRENCE_FIELDS, OCCURRENCE_TERMS, "Occurrence")
    mof_columns = _resolve(
        measurement_fields, MEASUREMENT_FIELDS, MEASUREMENT_TERMS, "MeasurementOrFact"
    )
    by_id = {occ.id: occ for occ in result.occurrences}
    rows: list[dict[str, Any]] = []
    for m in result.measurements:
        parent = None if m.orphaned or m.occurrence_id is None else by_id.get(m.occurrence_id)
        row = {label: getattr(parent, attr) if parent else None for label, attr in occ_columns}
        row.update({label: getattr(m, attr) for label, attr in mof_columns})
        rows.append(row)
    return rows
