"""
Tests for the paginated fetcher.

Tests run against the in-memory ``FakeSource`` from conftest, except the
per-page timeout tests, which go through a real session to a local server.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import date
from typing import Any

import pytest
import requests

from obis_explorer.config import Settings
from obis_explorer.datasources.obis import ObisSource
from obis_explorer.errors import QueryRejectedError, QueryTimeoutError, TransientFetchError
from obis_explorer.fetch import FetchOptions, fetch_occurrences
from obis_explorer.query import build_query
from obis_explorer.reference.taxa import DEEP_WATER_CORAL_ORDERS
from obis_explorer.reference.vocabulary import OBSERVED_LENGTH
from obis_explorer.services.http import build_retry, create_session

Factory = Callable[..., Any]


def _rows(record: Factory, count: int, name: str = "Lamna nasus", **kw: Any) -> list[dict]:
    return [record(f"r{i}", name, **kw) for i in range(count)]


# =============================================================================
# Paging and limits
# =============================================================================


class TestCursorPaging:
    """Sequential pages with the ``after`` cursor."""

    def test_fetches_every_page(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 10)})
        result = fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)

        assert result.occurrence_ids == [f"r{i}" for i in range(10)]
        assert [c["cursor"] for c in source.calls] == [None, "r2", "r5", "r8"]
        assert {o.scientific_name for o in result} == {"Lamna nasus"}
        assert not result.is_partial

    def test_page_limit_caps_records(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 10)})
        result = fetch_occurrences(build_query(scientific_name="Lamna nasus", page_limit=5), source)

        assert result.occurrence_ids == ["r0", "r1", "r2", "r3", "r4"]
        assert len(source.calls) == 2

    def test_page_limit_smaller_than_page(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 10)})
        result = fetch_occurrences(build_query(scientific_name="Lamna nasus", page_limit=2), source)

        assert len(result) == 2
        assert source.calls[0]["size"] == 2

    def test_empty_result(self, fake_source: Factory) -> None:
        result = fetch_occurrences(build_query(scientific_name="Nothing here"), fake_source({}))
        assert len(result) == 0
        assert not result.is_partial

    def test_taxon_query(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({None: _rows(record, 4)})
        result = fetch_occurrences(build_query(taxon_id=105841), source)
        assert len(result) == 4
        assert {c["name"] for c in source.calls} == {None}

    def test_repeatable(self, fake_source: Factory, record: Factory) -> None:
        records = {"Lamna nasus": _rows(record, 7)}
        query = build_query(scientific_name="Lamna nasus")
        assert fetch_occurrences(query, fake_source(records)) == fetch_occurrences(
            query, fake_source(records)
        )


class TestOffsetPaging:
    """Concurrent offset pages, reassembled in order."""

    def test_pages_reassembled_in_order(self, fake_source: Factory, record: Factory) -> None:
        # The second page is the slowest to arrive
        source = fake_source(
            {"Lamna nasus": _rows(record, 10)},
            pagination="offset",
            delay=lambda offset: 0.1 if offset == 3 else 0.0,
        )
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus"), source, options=FetchOptions(max_workers=3)
        )

        assert result.occurrence_ids == [f"r{i}" for i in range(10)]
        assert sorted(c["offset"] for c in source.calls) == [0, 3, 6, 9]

    def test_offsets_are_page_multiples(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 8)}, pagination="offset", page_size=4)
        fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)
        assert sorted(c["offset"] for c in source.calls) == [0, 4]
        assert {c["size"] for c in source.calls} == {4}

    def test_without_total_walks_pages(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {"Lamna nasus": _rows(record, 7)}, pagination="offset", report_total=False
        )
        result = fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)
        assert result.occurrence_ids == [f"r{i}" for i in range(7)]
        assert [c["offset"] for c in source.calls] == [0, 3, 6]

    def test_page_limit(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 30)}, pagination="offset")
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus", page_limit=7),
            source,
            options=FetchOptions(max_workers=2),
        )
        assert result.occurrence_ids == [f"r{i}" for i in range(7)]
        assert max(c["offset"] for c in source.calls) < 30


class TestBatchedNames:
    """One pass per name, unioned in name order."""

    def test_union_in_name_order(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {
                "Abra alba": [record("a1", "Abra alba"), record("a2", "Abra alba")],
                "Abra tenuis": [record("t1", "Abra tenuis")],
            }
        )
        result = fetch_occurrences(
            build_query(scientific_name=["Abra alba", "Abra tenuis"]), source
        )
        assert result.occurrence_ids == ["a1", "a2", "t1"]

    def test_duplicate_ids_dropped(self, fake_source: Factory, record: Factory) -> None:
        shared = record("s1", "Lophelia pertusa")
        source = fake_source(
            {
                "Scleractinia": [record("c1", "Lophelia pertusa"), shared],
                "Caryophylliidae": [shared, record("c2", "Desmophyllum dianthus")],
            }
        )
        result = fetch_occurrences(
            build_query(scientific_name=["Scleractinia", "Caryophylliidae"]), source
        )
        assert result.occurrence_ids == ["c1", "s1", "c2"]

    def test_limit_applies_to_union(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {
                "Abra alba": _rows(record, 4, "Abra alba"),
                "Abra tenuis": [record("t1", "Abra tenuis")],
            }
        )
        result = fetch_occurrences(
            build_query(scientific_name=["Abra alba", "Abra tenuis"], page_limit=4), source
        )
        assert len(result) == 4
        assert {c["name"] for c in source.calls} == {"Abra alba"}


# =============================================================================
# Client-side filters and missing values
# =============================================================================


class TestDepthAndDateFilters:
    """Filters re-applied client-side with the missing-value policy."""

    @pytest.fixture
    def coral_records(self, record: Factory) -> dict[str | None, list[dict]]:
        return {
            order: [
                record(f"{order}-shallow", order, depth=1500),
                record(f"{order}-deep", order, depth=2500),
                record(f"{order}-unknown", order),
            ]
            for order in DEEP_WATER_CORAL_ORDERS
        }

    def test_start_depth_across_names(
        self, fake_source: Factory, coral_records: dict[str | None, list[dict]]
    ) -> None:
        query = build_query(scientific_name=list(DEEP_WATER_CORAL_ORDERS), start_depth=2000)
        result = fetch_occurrences(query, fake_source(coral_records))

        depths = [o.depth for o in result if o.depth is not None]
        assert depths
        assert all(d >= 2000 for d in depths)
        assert {o.scientific_name for o in result} == set(DEEP_WATER_CORAL_ORDERS)

    def test_missing_depth_included_by_default(
        self, fake_source: Factory, coral_records: dict[str | None, list[dict]]
    ) -> None:
        query = build_query(scientific_name=list(DEEP_WATER_CORAL_ORDERS), start_depth=2000)
        result = fetch_occurrences(query, fake_source(coral_records))
        assert len(result) == 6

    def test_missing_depth_excluded(
        self, fake_source: Factory, coral_records: dict[str | None, list[dict]]
    ) -> None:
        query = build_query(
            scientific_name=list(DEEP_WATER_CORAL_ORDERS),
            start_depth=2000,
            missing_values="exclude",
        )
        result = fetch_occurrences(query, fake_source(coral_records))
        assert [o.id for o in result] == [f"{o}-deep" for o in DEEP_WATER_CORAL_ORDERS]

    def test_end_depth(self, fake_source: Factory, record: Factory) -> None:
        name = "Hoplostethus atlanticus"
        source = fake_source(
            {
                name: [
                    record("h100", name, depth=100),
                    record("h400", name, depth=400),
                    record("h800", name, depth=800),
                    record("hnone", name),
                ]
            }
        )
        included = fetch_occurrences(build_query(scientific_name=name, end_depth=400), source)
        excluded = fetch_occurrences(
            build_query(scientific_name=name, end_depth=400, missing_values="exclude"), source
        )
        assert included.occurrence_ids == ["h100", "h400", "hnone"]
        assert excluded.occurrence_ids == ["h100", "h400"]

    def test_end_date(self, fake_source: Factory, record: Factory) -> None:
        name = "Pterois volitans"
        source = fake_source(
            {
                name: [
                    record("p1975", name, event_date="1975-06-01"),
                    record("p1990", name, event_date="1990-01-01"),
                    record("pnone", name),
                ]
            }
        )
        result = fetch_occurrences(
            build_query(scientific_name=name, end_date="1980-01-01", missing_values="exclude"),
            source,
        )
        assert result.occurrence_ids == ["p1975"]
        assert all(o.event_date is not None and o.event_date <= date(1980, 1, 1) for o in result)

    def test_has_coordinates(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {"Lamna nasus": [record("a"), record("b", lat=None, lon=None)]}
        )
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus", has_coordinates=True), source
        )
        assert result.occurrence_ids == ["a"]


class TestSkippedRows:
    """Rows that cannot be parsed are counted, not raised."""

    def test_rows_without_id_counted(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {"Lamna nasus": [record("a"), record(None), record("b"), record(None)]},
            page_size=10,
        )
        result = fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)
        assert result.occurrence_ids == ["a", "b"]
        assert result.skipped == 2


# =============================================================================
# Measurements
# =============================================================================


class TestMeasurements:
    """include_measurements fetches and joins MoF rows."""

    def test_measurements_joined(self, fake_source: Factory, record: Factory) -> None:
        length = {"measurementTypeID": OBSERVED_LENGTH, "measurementValue": "4.2"}
        weight = {"measurementType": "wet weight", "measurementValue": "0.3"}
        source = fake_source(
            {"Abra tenuis": _rows(record, 3, "Abra tenuis")},
            measurements={"r0": [length], "r2": [weight, length]},
        )
        result = fetch_occurrences(
            build_query(scientific_name="Abra tenuis", include_measurements=True),
            source,
            options=FetchOptions(max_workers=2),
        )

        assert sorted(source.measurement_calls) == ["r0", "r1", "r2"]
        assert [m.occurrence_id for m in result.measurements] == ["r0", "r2", "r2"]
        assert not result.orphaned_measurements
        assert len(result.measurements_for("r2")) == 2

    def test_measurements_not_fetched_by_default(
        self, fake_source: Factory, record: Factory
    ) -> None:
        source = fake_source({"Abra tenuis": _rows(record, 3, "Abra tenuis")})
        result = fetch_occurrences(build_query(scientific_name="Abra tenuis"), source)
        assert source.measurement_calls == []
        assert result.measurements == ()


# =============================================================================
# Cancellation, timeouts and errors
# =============================================================================


class TestCancellation:
    """A cancel flag stops the fetch at the next page boundary."""

    def test_cancel_after_first_page(self, fake_source: Factory, record: Factory) -> None:
        cancel = threading.Event()
        source = fake_source(
            {"Lamna nasus": _rows(record, 10)},
            on_page=lambda n: cancel.set(),
        )
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus"), source, cancel=cancel
        )
        assert result.cancelled
        assert result.is_partial
        assert result.occurrence_ids == ["r0", "r1", "r2"]
        assert len(source.calls) == 1

    def test_cancel_before_start(self, fake_source: Factory, record: Factory) -> None:
        cancel = threading.Event()
        cancel.set()
        source = fake_source({"Lamna nasus": _rows(record, 10)})
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus"), source, cancel=cancel
        )
        assert result.cancelled
        assert len(result) == 0
        assert source.calls == []

    def test_cancel_skips_measurements(self, fake_source: Factory, record: Factory) -> None:
        cancel = threading.Event()
        source = fake_source(
            {"Abra tenuis": _rows(record, 6, "Abra tenuis")},
            on_page=lambda n: cancel.set(),
        )
        result = fetch_occurrences(
            build_query(scientific_name="Abra tenuis", include_measurements=True),
            source,
            cancel=cancel,
        )
        assert result.cancelled
        assert source.measurement_calls == []


class TestTimeouts:
    """Total-query budget handling."""

    def test_budget_exceeded_raises(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 10)}, page_size=1, delay=0.1)
        with pytest.raises(QueryTimeoutError) as excinfo:
            fetch_occurrences(
                build_query(scientific_name="Lamna nasus"),
                source,
                options=FetchOptions(total_timeout=0.25),
            )
        err = excinfo.value
        assert isinstance(err, TimeoutError)
        assert err.partial is None
        assert err.context["records_so_far"] >= 1
        assert err.context["source"] == "fake"

    def test_partial_on_timeout(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source({"Lamna nasus": _rows(record, 10)}, page_size=1, delay=0.1)
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus"),
            source,
            options=FetchOptions(total_timeout=0.25, partial_on_timeout=True),
        )
        assert result.truncated
        assert 0 < len(result) < 10
        assert result.occurrence_ids == [f"r{i}" for i in range(len(result))]

    def test_request_timeout_becomes_query_timeout(self, fake_source: Factory) -> None:
        source = fake_source({}, fail_on_call=1, error=requests.Timeout("read timed out"))
        with pytest.raises(QueryTimeoutError):
            fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)

    def test_transient_failure_past_budget_is_timeout(
        self, fake_source: Factory, record: Factory
    ) -> None:
        """Retries that outlast the total budget end as a timeout, not a server error."""

        def retried_until_late(call_number: int) -> None:
            time.sleep(0.3)
            raise TransientFetchError("server still failing after retries: HTTP 503")

        source = fake_source({"Lamna nasus": _rows(record, 3)}, on_page=retried_until_late)
        with pytest.raises(QueryTimeoutError):
            fetch_occurrences(
                build_query(scientific_name="Lamna nasus"),
                source,
                options=FetchOptions(total_timeout=0.2),
            )


class TestTimeoutsOverHttp:
    """Per-page timeouts through a real retrying session against a local server."""

    @staticmethod
    def _source(server: Any) -> ObisSource:
        session = create_session(build_retry(total=3, backoff_factor=0), timeout=5)
        return ObisSource(server.url, page_size=2, session=session)

    def test_slow_page_raises_query_timeout(self, obis_server: Factory, record: Factory) -> None:
        server = obis_server({None: (1.0, {"total": 1, "results": [record("a")]})})
        started = time.monotonic()
        with pytest.raises(QueryTimeoutError):
            fetch_occurrences(
                build_query(scientific_name="Lamna nasus"),
                self._source(server),
                options=FetchOptions(page_timeout=0.2, total_timeout=0.5),
            )
        assert time.monotonic() - started < 0.9
        assert len(server.requests) == 1

    def test_slow_page_partial_result(self, obis_server: Factory, record: Factory) -> None:
        server = obis_server(
            {
                None: (0.0, {"total": 4, "results": [record("a"), record("b")]}),
                "b": (1.0, {"total": 4, "results": [record("c"), record("d")]}),
            }
        )
        result = fetch_occurrences(
            build_query(scientific_name="Lamna nasus"),
            self._source(server),
            options=FetchOptions(page_timeout=0.2, total_timeout=2, partial_on_timeout=True),
        )
        assert result.truncated
        assert result.occurrence_ids == ["a", "b"]
        assert len(server.requests) == 2


class TestErrors:
    """Errors propagate with page context attached."""

    def test_rejected_query_propagates(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {"Lamna nasus": _rows(record, 10)},
            fail_on_call=2,
            error=QueryRejectedError("request rejected: HTTP 400", status_code=400),
        )
        with pytest.raises(QueryRejectedError) as excinfo:
            fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)
        context = excinfo.value.context
        assert context["records_so_far"] == 3
        assert context["page_index"] == 2
        assert context["query"] == {"scientific_names": ["Lamna nasus"]}

    def test_transient_error_from_worker(self, fake_source: Factory, record: Factory) -> None:
        source = fake_source(
            {"Lamna nasus": _rows(record, 12)},
            pagination="offset",
            fail_on_call=2,
            error=TransientFetchError("server still failing", status_code=503),
        )
        with pytest.raises(TransientFetchError) as excinfo:
            fetch_occurrences(build_query(scientific_name="Lamna nasus"), source)
        assert excinfo.value.status_code == 503
        assert excinfo.value.context["records_so_far"] == 3


class TestFetchOptions:
    """Options built from settings."""

    def test_from_settings(self) -> None:
        settings = Settings(
            max_workers=8, page_timeout=5, total_timeout=50, partial_on_timeout=True
        )
        options = FetchOptions.from_settings(settings)
        assert options == FetchOptions(
            max_workers=8, page_timeout=5, total_timeout=50, partial_on_timeout=True
        )
