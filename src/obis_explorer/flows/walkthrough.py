"""
Prefect flow running the OBIS lesson queries.

Each lesson step is one query; results are cached in the data store under
``queries/{source}/{step}.json`` and reused while fresh and fetched with
the same query. Derived tables answer the lesson's questions:

- observed-length measurements of *Abra tenuis*;
- how deep-water coral records below 2000 m spread across orders;
- which datasets, recorders and occurrence statuses make up the OBIS
  Canada salmonid records;
- how the GBIF records of the multi-kingdom species list split by species.

Steps may name their own data source (the GBIF species list); the others
use the flow's ``source_name``.

Run locally:
    python -m obis_explorer.flows.walkthrough

Run with Prefect dashboard:
    prefect server start &
    python -m obis_explorer.flows.walkthrough
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from prefect import flow, task

from obis_explorer import analysis, filters
from obis_explorer.config import get_settings
from obis_explorer.datasources import get_source
from obis_explorer.fetch import FetchOptions, fetch_occurrences
from obis_explorer.query import build_query
from obis_explorer.reference.geography import GULF_OF_ST_LAWRENCE_WKT, OBIS_CANADA_NODE_ID
from obis_explorer.reference.taxa import (
    DEEP_WATER_CORAL_ORDERS,
    DEEP_WATER_MIN_DEPTH_M,
    LAMNA_NASUS_APHIA_ID,
    MULTI_KINGDOM_SPECIES,
)
from obis_explorer.reference.vocabulary import OBSERVED_LENGTH
from obis_explorer.serialization import result_set_from_dict, result_set_to_dict
from obis_explorer.store import DataStore

if TYPE_CHECKING:
    from obis_explorer.config import Settings
    from obis_explorer.schemas import OccurrenceQuery

QUERY_TTL = timedelta(hours=24)

#: Lesson step -> query options, plus an optional ``source`` for the step
LESSON_QUERIES: dict[str, dict[str, Any]] = {
    "lamna_nasus": {"scientific_name": "Lamna nasus"},
    "lamna_nasus_by_taxon": {"taxon_id": LAMNA_NASUS_APHIA_ID},
    "salmonidae_gulf_of_st_lawrence": {
        "scientific_name": "Salmonidae",
        "geometry": GULF_OF_ST_LAWRENCE_WKT,
    },
    "orange_roughy_shallow": {"scientific_name": "Hoplostethus atlanticus", "end_depth": 400},
    "lionfish_before_1980": {"scientific_name": "Pterois volitans", "end_date": "1980-01-01"},
    "lionfish": {"scientific_name": "Pterois volitans"},
    "abra_tenuis_measurements": {"scientific_name": "Abra tenuis", "include_measurements": True},
    "deep_water_corals": {
        "scientific_name": list(DEEP_WATER_CORAL_ORDERS),
        "start_depth": DEEP_WATER_MIN_DEPTH_M,
    },
    # One query across aggregators: 100 records per species from GBIF
    "gbif_species": {
        "source": "gbif",
        "scientific_name": list(MULTI_KINGDOM_SPECIES),
        "has_coordinates": True,
        "page_limit": 100 * len(MULTI_KINGDOM_SPECIES),
    },
    "salmonidae_obis_canada": {
        "source": "obis",
        "scientific_name": "Salmonidae",
        "node_id": OBIS_CANADA_NODE_ID,
        "has_coordinates": True,
        "page_limit": 200,
    },
}

ABRA_LENGTHS = "abra_tenuis_observed_length"
CORAL_ORDERS = "deep_water_corals_by_order"
SALMONIDAE_PROVENANCE = "salmonidae_obis_canada_provenance"
GBIF_SPECIES_COUNTS = "gbif_species_counts"
SUMMARY = "summary"


def step_source(step: str, source_name: str) -> str:
    """Data source for ``step``: its own when it names one, else ``source_name``."""
    return str(LESSON_QUERIES[step].get("source", source_name))


def step_query(step: str, page_limit: int | None, settings: Settings) -> OccurrenceQuery:
    """Build the query for ``step``; a step's own ``page_limit`` wins."""
    options = {k: v for k, v in LESSON_QUERIES[step].items() if k != "source"}
    if page_limit is not None:
        options.setdefault("page_limit", page_limit)
    options.setdefault("missing_values", settings.missing_values)
    return build_query(**options)


@task(name="run-query")
def run_query(step: str, query: OccurrenceQuery, source_name: str = "obis") -> dict[str, Any]:
    """Run one lesson query, returning the serialized ResultSet."""
    settings = get_settings()
    source = get_source(source_name, settings)
    result = fetch_occurrences(query, source, options=FetchOptions.from_settings(settings))
    print(
        f"{step} ({source_name}): {len(result)} occurrences, "
        f"{len(result.measurements)} measurements"
    )
    return result_set_to_dict(result)


@task(name="save-query")
def save_query(
    store: DataStore, step: str, data: dict[str, Any], source_name: str, query: OccurrenceQuery
) -> Path:
    """Cache a serialized ResultSet under its source."""
    return store.save_result(
        step, data, source=source_name, query=query.describe(), ttl=QUERY_TTL
    )


@task(name="observed-lengths")
def observed_lengths(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Observed-length measurements with position and date of each record."""
    result = filters.filter_measurements(
        result_set_from_dict(data), filters.measurement_type_id_equals(OBSERVED_LENGTH)
    )
    return filters.measurements_with_occurrence_fields(
        result,
        ["scientificName", "decimalLongitude", "decimalLatitude", "eventDate"],
        ["measurementType", "measurementValue", "measurementUnit"],
    )


@task(name="orders")
def orders(data: dict[str, Any]) -> dict[str, int]:
    """Distribution of records across taxonomic orders."""
    return analysis.count_by(result_set_from_dict(data), "order")


@task(name="provenance")
def provenance(data: dict[str, Any], source_name: str) -> dict[str, Any]:
    """Who provided the records: datasets, recorders and presence/absence."""
    result = result_set_from_dict(data)
    return {
        "datasets": analysis.dataset_links(result, source_name),
        "recorded_by": analysis.recorders(result),
        "occurrence_status": analysis.count_by(result, "occurrence_status"),
    }


@flow(name="obis-walkthrough", log_prints=True)
def walkthrough(
    source_name: str = "obis",
    page_limit: int | None = 2000,
    steps: list[str] | None = None,
) -> dict[str, Any]:
    """
    Run the lesson queries.

    Reuses a cached result when it is still fresh and was fetched from the
    same source with the same query; everything else is fetched again.

    Args:
        source_name: Data source for steps that do not name their own.
        page_limit: Cap per query, unless the step sets one; OBIS holds
            millions of records.
        steps: Subset of ``LESSON_QUERIES`` keys (default: all).
    """
    selected = steps or list(LESSON_QUERIES)
    unknown = [s for s in selected if s not in LESSON_QUERIES]
    if unknown:
        msg = f"unknown walkthrough steps: {', '.join(unknown)}"
        raise ValueError(msg)

    settings = get_settings()
    store = DataStore.from_settings(settings)

    datasets: dict[str, dict[str, Any]] = {}
    sources: dict[str, str] = {}
    for step in selected:
        source = sources[step] = step_source(step, source_name)
        query = step_query(step, page_limit, settings)
        cached = store.load_result(step, source=source, query=query.describe())
        if cached is not None:
            print(f"{step} is fresh in the {source} cache, skipping fetch.")
            datasets[step] = cached
        else:
            datasets[step] = run_query(step, query, source)
            saved = save_query(store, step, datasets[step], source, query)
            print(f"Saved {step} to {saved}")

    results: dict[str, Any] = {
        step: len(data.get("occurrences", [])) for step, data in datasets.items()
    }

    if "abra_tenuis_measurements" in datasets:
        rows = observed_lengths(datasets["abra_tenuis_measurements"])
        store.write_derived(ABRA_LENGTHS, rows)
        results["observed_lengths"] = len(rows)

    if "deep_water_corals" in datasets:
        by_order = orders(datasets["deep_water_corals"])
        store.write_derived(CORAL_ORDERS, by_order)
        results["coral_orders"] = by_order

    if "salmonidae_obis_canada" in datasets:
        tables = provenance(
            datasets["salmonidae_obis_canada"], sources["salmonidae_obis_canada"]
        )
        store.write_derived(SALMONIDAE_PROVENANCE, tables)
        results["salmonidae_datasets"] = len(tables["datasets"])

    if "gbif_species" in datasets:
        by_species = analysis.count_by(
            result_set_from_dict(datasets["gbif_species"]), "scientific_name"
        )
        store.write_derived(GBIF_SPECIES_COUNTS, by_species)
        results["gbif_species_counts"] = by_species

    store.write_derived(
        SUMMARY,
        {
            step: {"source": sources[step], **analysis.summarize(result_set_from_dict(d))}
            for step, d in datasets.items()
        },
    )
    return results


if __name__ == "__main__":
    result = walkthrough()
    print(f"Flow complete: {result}")
