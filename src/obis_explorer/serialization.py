"""JSON serialization helpers for result sets."""

from __future__ import annotations

from datetime import date
from typing import Any

from obis_explorer.models import MeasurementOrFact, Occurrence, OccurrenceStatus, ResultSet
from obis_explorer.schemas import OccurrenceQuery


def occurrence_to_dict(occ: Occurrence) -> dict[str, Any]:
    return {
        "id": occ.id,
        "scientific_name": occ.scientific_name,
        "taxon_id": occ.taxon_id,
        "latitude": occ.latitude,
        "longitude": occ.longitude,
        "event_date": occ.event_date.isoformat() if occ.event_date else None,
        "depth": occ.depth,
        "dataset_id": occ.dataset_id,
        "recorded_by": occ.recorded_by,
        "occurrence_status": occ.occurrence_status.value,
        "event_id": occ.event_id,
        "parent_event_id": occ.parent_event_id,
        "extras": dict(occ.extras),
    }


def occurrence_from_dict(data: dict[str, Any]) -> Occurrence:
    event_date = data.get("event_date")
    return Occurrence(
        id=data["id"],
        scientific_name=data.get("scientific_name", ""),
        taxon_id=data.get("taxon_id"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        event_date=date.fromisoformat(event_date) if event_date else None,
        depth=data.get("depth"),
        dataset_id=data.get("dataset_id"),
        recorded_by=data.get("recorded_by"),
        occurrence_status=OccurrenceStatus.parse(data.get("occurrence_status")),
        event_id=data.get("event_id"),
        parent_event_id=data.get("parent_event_id"),
        extras=data.get("extras") or {},
    )


def measurement_to_dict(m: MeasurementOrFact) -> dict[str, Any]:
    return {
        "measurement_type": m.measurement_type,
        "measurement_type_id": m.measurement_type_id,
        "measurement_value": m.measurement_value,
        "measurement_unit": m.measurement_unit,
        "measurement_unit_id": m.measurement_unit_id,
        "measurement_id": m.measurement_id,
        "occurrence_id": m.occurrence_id,
        "event_id": m.event_id,
        "orphaned": m.orphaned,
        "extras": dict(m.extras),
    }


def measurement_from_dict(data: dict[str, Any]) -> MeasurementOrFact:
    return MeasurementOrFact(
        measurement_type=data.get("measurement_type"),
        measurement_type_id=data.get("measurement_type_id"),
        measurement_value=data.get("measurement_value"),
        measurement_unit=data.get("measurement_unit"),
        measurement_unit_id=data.get("measurement_unit_id"),
        measurement_id=data.get("measurement_id"),
        occurrence_id=data.get("occurrence_id"),
        event_id=data.get("event_id"),
        orphaned=bool(data.get("orphaned", False)),
        extras=data.get("extras") or {},
    )


def result_set_to_dict(result: ResultSet) -> dict[str, Any]:
    """Serialize a ResultSet to a JSON-compatible dict.

    Args:
        result: The ResultSet to serialize.

    Returns:
        Dict with query, flags, occurrences and measurements.
    """
    return {
        "query": result.query.model_dump(mode="json") if result.query else None,
        "skipped": result.skipped,
        "truncated": result.truncated,
        "cancelled": result.cancelled,
        "occurrences": [occurrence_to_dict(o) for o in result.occurrences],
        "measurements": [measurement_to_dict(m) for m in result.measurements],
    }


def result_set_from_dict(data: dict[str, Any]) -> ResultSet:
    """Rebuild a ResultSet written by ``result_set_to_dict``."""
    query = data.get("query")
    return ResultSet(
        occurrences=tuple(occurrence_from_dict(o) for o in data.get("occurrences", [])),
        measurements=tuple(measurement_from_dict(m) for m in data.get("measurements", [])),
        skipped=data.get("skipped", 0),
        truncated=data.get("truncated", False),
        cancelled=data.get("cancelled", False),
        query=OccurrenceQuery.model_validate(query) if query else None,
    )
