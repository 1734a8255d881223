"""
Record model for Darwin Core occurrence data.

Occurrence, Event and MeasurementOrFact are immutable and carry a fixed
set of typed fields. Whatever else a source returns lands in ``extras`` so
schema drift never breaks parsing.

Darwin Core terms: https://dwc.tdwg.org/terms/
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields
from datetime import date
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from obis_explorer.schemas import OccurrenceQuery


class OccurrenceStatus(StrEnum):
    """Darwin Core ``occurrenceStatus``."""

    PRESENT = "present"
    ABSENT = "absent"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: Any) -> OccurrenceStatus:
        """Case-insensitive match; anything unrecognised is UNSPECIFIED."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNSPECIFIED


# =============================================================================
# Entities
# =============================================================================


@dataclass(frozen=True)
class Occurrence:
    """A record of a taxon observed at a place and time."""

    id: str
    scientific_name: str
    taxon_id: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    event_date: date | None = None
    depth: float | None = None
    dataset_id: str | None = None
    recorded_by: str | None = None
    occurrence_status: OccurrenceStatus = OccurrenceStatus.UNSPECIFIED
    event_id: str | None = None
    parent_event_id: str | None = None
    extras: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.id:
            msg = "occurrence id is required"
            raise ValueError(msg)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def year(self) -> int | None:
        return self.event_date.year if self.event_date else None


@dataclass(frozen=True)
class Event:
    """A sampling activity grouping occurrences and measurements."""

    id: str
    parent_event_id: str | None = None


@dataclass(frozen=True)
class MeasurementOrFact:
    """A measurement tied to an occurrence, an event, or both.

    ``measurement_type_id`` (a vocabulary URI) is the canonical type key;
    ``measurement_type`` is a free-text label.
    """

    measurement_type: str | None = None
    measurement_type_id: str | None = None
    measurement_value: str | None = None
    measurement_unit: str | None = None
    measurement_unit_id: str | None = None
    measurement_id: str | None = None
    occurrence_id: str | None = None
    event_id: str | None = None
    orphaned: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.occurrence_id and not self.event_id:
            msg = "measurement must reference an occurrence id or an event id"
            raise ValueError(msg)

    def sort_key(self) -> tuple[str, ...]:
        """Content key giving a stable order independent of arrival order."""
        return (
            self.occurrence_id or "",
            self.event_id or "",
            self.measurement_type_id or "",
            self.measurement_type or "",
            self.measurement_value or "",
            self.measurement_unit or "",
            self.measurement_id or "",
        )


#: Declared field names, in declaration order (``extras`` excluded)
OCCURRENCE_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(Occurrence) if f.name != "extras")
MEASUREMENT_FIELDS: tuple[str, ...] = tuple(
    f.name for f in fields(MeasurementOrFact) if f.name != "extras"
)

#: Darwin Core term -> field name
OCCURRENCE_TERMS: dict[str, str] = {
    "occurrenceID": "id",
    "scientificName": "scientific_name",
    "taxonID": "taxon_id",
    "decimalLatitude": "latitude",
    "decimalLongitude": "longitude",
    "eventDate": "event_date",
    "datasetID": "dataset_id",
    "recordedBy": "recorded_by",
    "occurrenceStatus": "occurrence_status",
    "eventID": "event_id",
    "parentEventID": "parent_event_id",
}
MEASUREMENT_TERMS: dict[str, str] = {
    "measurementType": "measurement_type",
    "measurementTypeID": "measurement_type_id",
    "measurementValue": "measurement_value",
    "measurementUnit": "measurement_unit",
    "measurementUnitID": "measurement_unit_id",
    "measurementID": "measurement_id",
    "occurrenceID": "occurrence_id",
    "eventID": "event_id",
}


# =============================================================================
# Result set
# =============================================================================


@dataclass(frozen=True)
class ResultSet:
    """Occurrences from one query, in arrival order, plus attached measurements.

    ``skipped`` counts raw records dropped for lacking an identifier.
    ``truncated`` / ``cancelled`` mark partial results returned after a
    timeout or a caller cancellation.
    """

    occurrences: tuple[Occurrence, ...] = ()
    measurements: tuple[MeasurementOrFact, ...] = ()
    skipped: int = 0
    truncated: bool = False
    cancelled: bool = False
    query: OccurrenceQuery | None = field(default=None, compare=False)

    def __len__(self) -> int:
        return len(self.occurrences)

    def __iter__(self) -> Iterator[Occurrence]:
        return iter(self.occurrences)

    @property
    def is_partial(self) -> bool:
        return self.truncated or self.cancelled

    @property
    def occurrence_ids(self) -> list[str]:
        return [o.id for o in self.occurrences]

    @property
    def events(self) -> dict[str, Event]:
        """Events referenced by the occurrences, keyed by event id."""
        found: dict[str, Event] = {}
        for occ in self.occurrences:
            if occ.event_id and occ.event_id not in found:
                found[occ.event_id] = Event(id=occ.event_id, parent_event_id=occ.parent_event_id)
        return found

    def event_for(self, occurrence: Occurrence) -> Event | None:
        if not occurrence.event_id:
            return None
        return self.events.get(occurrence.event_id)

    def measurements_for(self, occurrence_id: str) -> list[MeasurementOrFact]:
        """Measurements joined onto the given occurrence."""
        return [
            m for m in self.measurements if not m.orphaned and m.occurrence_id == occurrence_id
        ]

    @property
    def orphaned_measurements(self) -> list[MeasurementOrFact]:
        return [m for m in self.measurements if m.orphaned]
