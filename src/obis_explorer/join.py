"""Join MeasurementOrFact rows back onto their parent records.

Measurements are related to occurrences through the occurrence identifier
and, for event-based datasets, to sampling events through the event
identifier. The join is a pure function of its two inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from obis_explorer.models import MeasurementOrFact, Occurrence


def join_measurements(
    occurrences: Sequence[Occurrence],
    measurements: Iterable[MeasurementOrFact],
) -> tuple[MeasurementOrFact, ...]:
    """
    Attach measurements to occurrences (or events) by exact identifier match.

    A measurement with an ``occurrence_id`` is attached when that id is in
    ``occurrences`` and orphaned otherwise, even if its event matches.
    A measurement with only an ``event_id`` is attached when some occurrence
    belongs to that event. Orphans are kept, flagged ``orphaned=True``.

    Output order is fully determined by the inputs' contents: attached
    measurements follow the position of their parent occurrence, then come
    event-level measurements, then orphans; each group is sorted by
    ``MeasurementOrFact.sort_key``.

    Args:
        occurrences: The occurrence sequence of a result set.
        measurements: Measurements fetched for those occurrences.

    Returns:
        Tuple of measurements with ``orphaned`` set accordingly.
    """
    position = {occ.id: i for i, occ in enumerate(occurrences)}
    event_ids = {occ.event_id for occ in occurrences if occ.event_id}

    by_occurrence: list[tuple[int, MeasurementOrFact]] = []
    by_event: list[MeasurementOrFact] = []
    orphans: list[MeasurementOrFact] = []

    for m in measurements:
        if m.occurrence_id:
            if m.occurrence_id in position:
                by_occurrence.append((position[m.occurrence_id], _flag(m, orphaned=False)))
            else:
                orphans.append(_flag(m, orphaned=True))
        elif m.event_id in event_ids:
            by_event.append(_flag(m, orphaned=False))
        else:
            orphans.append(_flag(m, orphaned=True))

    by_occurrence.sort(key=lambda pair: (pair[0], pair[1].sort_key()))
    by_event.sort(key=MeasurementOrFact.sort_key)
    orphans.sort(key=MeasurementOrFact.sort_key)

    return (
        tuple(m for _, m in by_occurrence)
        + tuple(by_event)
        + tuple(orphans)
    )


def group_by_occurrence(
    measurements: Iterable[MeasurementOrFact],
) -> dict[str, list[MeasurementOrFact]]:
    """Index joined (non-orphaned) measurements by occurrence id."""
    grouped: dict[str, list[MeasurementOrFact]] = {}
    for m in measurements:
        if m.orphaned or not m.occurrence_id:
            continue
        grouped.setdefault(m.occurrence_id, []).append(m)
    return grouped


def _flag(m: MeasurementOrFact, *, orphaned: bool) -> MeasurementOrFact:
    return m if m.orphaned == orphaned else replace(m, orphaned=orphaned)
