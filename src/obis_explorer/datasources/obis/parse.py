"""Parse OBIS occurrence and MeasurementOrFact rows into typed records."""

from __future__ import annotations

from typing import Any

from obis_explorer.datasources import darwin_core as dwc
from obis_explorer.models import MeasurementOrFact, Occurrence, OccurrenceStatus

# Raw keys mapped onto Occurrence fields (everything else goes to extras)
_OCCURRENCE_KEYS = frozenset(
    {
        "id",
        "scientificName",
        "aphiaID",
        "taxonID",
        "decimalLatitude",
        "decimalLongitude",
        "eventDate",
        "depth",
        "dataset_id",
        "datasetID",
        "recordedBy",
        "occurrenceStatus",
        "eventID",
        "parentEventID",
        "mof",
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


def _status(raw: dict[str, Any]) -> OccurrenceStatus:
    status = OccurrenceStatus.parse(raw.get("occurrenceStatus"))
    if status is OccurrenceStatus.UNSPECIFIED and isinstance(raw.get("absence"), bool):
        # OBIS derives a boolean ``absence`` flag during QC
        return OccurrenceStatus.ABSENT if raw["absence"] else OccurrenceStatus.PRESENT
    return status


def parse_occurrence(raw: dict[str, Any]) -> Occurrence | None:
    """Parse a single OBIS occurrence. Returns None if it has no ``id``."""
    if not isinstance(raw, dict):
        return None
    occurrence_id = dwc.as_str(raw.get("id"))
    if not occurrence_id:
        return None

    depth = dwc.as_float(raw.get("depth"))
    if depth is None:
        depth = dwc.midpoint(raw.get("minimumDepthInMeters"), raw.get("maximumDepthInMeters"))

    event_date = dwc.parse_event_date(raw.get("eventDate")) or dwc.date_from_epoch_ms(
        raw.get("date_mid")
    )

    return Occurrence(
        id=occurrence_id,
        scientific_name=dwc.as_str(raw.get("scientificName")) or "",
        taxon_id=dwc.as_int(raw.get("aphiaID")) or dwc.as_int(raw.get("taxonID")),
        latitude=dwc.as_float(raw.get("decimalLatitude")),
        longitude=dwc.as_float(raw.get("decimalLongitude")),
        event_date=event_date,
        depth=depth,
        dataset_id=dwc.as_str(raw.get("dataset_id")) or dwc.as_str(raw.get("datasetID")),
        recorded_by=dwc.as_str(raw.get("recordedBy")),
        occurrence_status=_status(raw),
        event_id=dwc.as_str(raw.get("eventID")),
        parent_event_id=dwc.as_str(raw.get("parentEventID")),
        extras=dwc.extras(raw, _OCCURRENCE_KEYS),
    )


def parse_measurement(raw: dict[str, Any], occurrence_id: str) -> MeasurementOrFact | None:
    """
    Parse one row of an OBIS record's nested ``mof`` list.

    OBIS nests measurements inside the occurrence they were fetched with,
    so the parent's OBIS ``id`` becomes the measurement's occurrence id.
    The publisher's own ``occurrenceID`` is kept in extras.
    """
    if not isinstance(raw, dict):
        return None
    event_id = dwc.as_str(raw.get("eventID"))
    parent = dwc.as_str(occurrence_id)
    if not parent and not event_id:
        return None
    return MeasurementOrFact(
        measurement_type=dwc.as_str(raw.get("measurementType")),
        measurement_type_id=dwc.as_str(raw.get("measurementTypeID")),
        measurement_value=dwc.as_str(raw.get("measurementValue")),
        measurement_unit=dwc.as_str(raw.get("measurementUnit")),
        measurement_unit_id=dwc.as_str(raw.get("measurementUnitID")),
        measurement_id=dwc.as_str(raw.get("measurementID")),
        occurrence_id=parent,
        event_id=event_id,
        extras=dwc.extras(raw, _MEASUREMENT_KEYS),
    )
