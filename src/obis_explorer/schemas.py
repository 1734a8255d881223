"""
Query schemas.

Pydantic models describing what a caller may ask for. ``OccurrenceQuery``
is the immutable request descriptor produced by ``query.build_query`` and
consumed by every data source.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from shapely import wkt
from shapely.errors import ShapelyError


class MissingValuePolicy(StrEnum):
    """What to do with records lacking the value a depth/date filter tests."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


class OccurrenceQuery(BaseModel):
    """Validated, immutable description of one occurrence search.

    Either ``scientific_names`` (one name, or several for a batched query)
    or ``taxon_id`` is set, never both.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    scientific_names: tuple[str, ...] = ()
    taxon_id: int | None = Field(default=None, ge=1)
    geometry: str | None = None
    start_depth: float | None = None
    end_depth: float | None = None
    start_date: date | None = None
    end_date: date | None = None
    include_measurements: bool = False
    page_limit: int | None = Field(default=None, ge=1)
    node_id: str | None = None
    has_coordinates: bool = False
    missing_values: MissingValuePolicy = MissingValuePolicy.INCLUDE

    @field_validator("scientific_names")
    @classmethod
    def _names_not_blank(cls, names: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(n.strip() for n in names)
        if any(not n for n in cleaned):
            msg = "scientific names must not be blank"
            raise ValueError(msg)
        # Keep first occurrence of each name, in the order given
        return tuple(dict.fromkeys(cleaned))

    @field_validator("geometry")
    @classmethod
    def _geometry_is_wkt_polygon(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            geom = wkt.loads(value)
        except (ShapelyError, ValueError) as e:
            msg = f"geometry is not valid WKT: {e}"
            raise ValueError(msg) from None
        if geom.is_empty or geom.geom_type not in ("Polygon", "MultiPolygon"):
            msg = f"geometry must be a WKT polygon, got {geom.geom_type}"
            raise ValueError(msg)
        # Normalise whitespace so the descriptor is stable across line breaks
        return " ".join(value.split())

    @model_validator(mode="after")
    def _check_consistency(self) -> OccurrenceQuery:
        if bool(self.scientific_names) == (self.taxon_id is not None):
            msg = "exactly one of scientific_name or taxon_id must be given"
            raise ValueError(msg)
        if (
            self.start_depth is not None
            and self.end_depth is not None
            and self.start_depth > self.end_depth
        ):
            msg = f"start_depth ({self.start_depth}) is greater than end_depth ({self.end_depth})"
            raise ValueError(msg)
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            msg = f"start_date ({self.start_date}) is after end_date ({self.end_date})"
            raise ValueError(msg)
        return self

    @property
    def is_batched(self) -> bool:
        return len(self.scientific_names) > 1

    @property
    def targets(self) -> list[str | None]:
        """Names to query one by one; ``[None]`` for a taxon-id query."""
        return list(self.scientific_names) if self.scientific_names else [None]

    @property
    def has_depth_filter(self) -> bool:
        return self.start_depth is not None or self.end_depth is not None

    @property
    def has_date_filter(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    def describe(self) -> dict[str, Any]:
        """Compact JSON-friendly summary used in logs and error context."""
        return self.model_dump(mode="json", exclude_defaults=True)
