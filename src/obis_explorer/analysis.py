"""Summaries over a ResultSet.

Pure functions (no I/O) answering the lesson's exploration questions:
which years were sampled, which datasets contributed, how records spread
across taxonomic orders.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from obis_explorer.models import OCCURRENCE_FIELDS, OCCURRENCE_TERMS, ResultSet

#: Dataset landing pages; OBIS ids are dataset UUIDs, GBIF ids are ``datasetKey``s
DATASET_URLS = {
    "obis": "https://obis.org/dataset/{dataset_id}",
    "gbif": "https://www.gbif.org/dataset/{dataset_id}",
}

#: Value used for records lacking the counted field
MISSING = "unknown"


def _value(occ: Any, key: str) -> Any:
    attr = key if key in OCCURRENCE_FIELDS else OCCURRENCE_TERMS.get(key)
    if attr is not None:
        return getattr(occ, attr)
    if key == "year":
        return occ.year
    return occ.extras.get(key)


def count_by(result: ResultSet, key: str) -> dict[Any, int]:
    """
    Count occurrences by a field, a Darwin Core term or an extras key.

    Taxonomic ranks such as ``order`` or ``family`` only exist in
    ``extras`` (OBIS returns them on every record). Records without a
    value are counted under ``"unknown"``.

    Returns:
        Mapping of value -> count, most common first.
    """
    counts = Counter(
        MISSING if (v := _value(occ, key)) in (None, "") else v for occ in result.occurrences
    )
    return dict(counts.most_common())


def count_by_year(result: ResultSet) -> dict[int, int]:
    """Occurrences per event year, ascending; undated records are left out."""
    counts = Counter(occ.year for occ in result.occurrences if occ.year is not None)
    return dict(sorted(counts.items()))


def dataset_ids(result: ResultSet) -> list[str]:
    """Unique dataset ids in first-seen order."""
    return list(dict.fromkeys(occ.dataset_id for occ in result.occurrences if occ.dataset_id))


def dataset_url(dataset_id: str, source: str = "obis") -> str:
    """Landing page of a dataset on the portal of ``source``."""
    try:
        template = DATASET_URLS[source]
    except KeyError:
        msg = f"no dataset pages known for source {source!r}"
        raise ValueError(msg) from None
    return template.format(dataset_id=dataset_id)


def dataset_links(result: ResultSet, source: str = "obis") -> list[dict[str, str]]:
    """Contributing datasets with their landing pages, first-seen order."""
    return [
        {"dataset_id": dataset_id, "url": dataset_url(dataset_id, source)}
        for dataset_id in dataset_ids(result)
    ]


def recorders(result: ResultSet) -> list[str]:
    """Unique ``recordedBy`` values in first-seen order."""
    return list(dict.fromkeys(occ.recorded_by for occ in result.occurrences if occ.recorded_by))


def summarize(result: ResultSet) -> dict[str, Any]:
    """Compact summary for reporting."""
    return {
        "occurrences": len(result.occurrences),
        "measurements": len(result.measurements),
        "orphaned_measurements": len(result.orphaned_measurements),
        "skipped": result.skipped,
        "partial": result.is_partial,
        "species": len({occ.scientific_name for occ in result.occurrences}),
        "datasets": len(dataset_ids(result)),
        "with_coordinates": sum(1 for occ in result.occurrences if occ.has_coordinates),
        "by_status": count_by(result, "occurrence_status"),
    }
