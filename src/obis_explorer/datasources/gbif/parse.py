"""Parse GBIF occurrence and verbatim extension rows."""

from __future__ import annotations

from typing import Any

from obis_explorer.datasources import darwin_core as dwc
from obis_explorer.models import MeasurementOrFact, Occurrence, OccurrenceStatus

#: Verbatim extension URIs that carry measurement rows
MEASUREMENT_EXTENSIONS = (
    "http://rs.tdwg.org/dwc/terms/MeasurementOrFact",
    "http://rs.iobis.org/obis/terms/ExtendedMeasurementOrFact",
)

_OCCURRENCE_KEYS = frozenset(
    {
        "key",
        "scientificName",
        "taxonKey",
        "decimalLatitude",
        "decimalLongitude",
        "eventDate",
        "depth",
        "datasetKey",
        "recordedBy",
        "occurrenceStatus",
        "eventID",
        "parentEventID",
    }
)

_MEASUREMENT_KEYS = frozenset(
    {
        "measurementType",
        "measurementTypeID",
        "measurementValue",
        "measurementUnit",
        "measurementUnitID",
        "measurementID",
        "eventID",
    }
)


def parse_occurrence(raw: dict[str, Any]) -> Occurrence | None:
    """Parse a single GBIF search result. Returns None if ``key`` is missing."""
    if not isinstance(raw, dict):
        return None
    key = dwc.as_str(raw.get("key"))
    if not key:
        return None
    return Occurrence(
        id=key,
        scientific_name=dwc.as_str(raw.get("scientificName")) or "",
        taxon_id=dwc.as_int(raw.get("taxonKey")),
        latitude=dwc.as_float(raw.get("decimalLatitude")),
        longitude=dwc.as_float(raw.get("decimalLongitude")),
        event_date=dwc.parse_event_date(raw.get("eventDate")),
        depth=dwc.as_float(raw.get("depth")),
        dataset_id=dwc.as_str(raw.get("datasetKey")),
        recorded_by=dwc.as_str(raw.get("recordedBy")),
        occurrence_status=OccurrenceStatus.parse(raw.get("occurrenceStatus")),
        event_id=dwc.as_str(raw.get("eventID")),
        parent_event_id=dwc.as_str(raw.get("parentEventID")),
        extras=dwc.extras(raw, _OCCURRENCE_KEYS),
    )


def parse_measurement(raw: dict[str, Any], occurrence_id: str) -> MeasurementOrFact | None:
    """Parse a verbatim extension row keyed by full term URIs."""
    if not isinstance(raw, dict):
        return None
    row = {dwc.term_name(k): v for k, v in raw.items()}
    event_id = dwc.as_str(row.get("eventID"))
    parent = dwc.as_str(occurrence_id)
    if not parent and not event_id:
        return None
    return MeasurementOrFact(
        measurement_type=dwc.as_str(row.get("measurementType")),
        measurement_type_id=dwc.as_str(row.get("measurementTypeID")),
        measurement_value=dwc.as_str(row.get("measurementValue")),
        measurement_unit=dwc.as_str(row.get("measurementUnit")),
        measurement_unit_id=dwc.as_str(row.get("measurementUnitID")),
        measurement_id=dwc.as_str(row.get("measurementID")),
        occurrence_id=parent,
        event_id=event_id,
        extras=dwc.extras(row, _MEASUREMENT_KEYS),
    )
