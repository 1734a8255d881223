"""
Paginated fetcher.

Runs an ``OccurrenceQuery`` against an ``OccurrenceSource`` and assembles
the full ``ResultSet``:

1. One pass per scientific name (batched queries are unioned in name order,
   duplicate ids dropped).
2. Cursor sources are paged sequentially. Offset sources fetch the first
   page, then request later pages in windows of ``max_workers`` concurrent
   requests, reassembled by page index before anything is appended.
3. Rows are parsed, invalid rows counted in ``skipped``, and the query's
   depth/date/coordinate filters are re-applied client-side with the
   query's missing-value policy.
4. With ``include_measurements``, measurements are fetched per occurrence
   id (same worker pool) and joined.

Stops at ``page_limit``, at server exhaustion, on cancellation (partial
result, ``cancelled=True``) or when a time budget runs out
(``QueryTimeoutError``, or a partial result with ``truncated=True`` when
``partial_on_timeout`` is set).

Usage::

    from obis_explorer.datasources.obis import ObisSource
    from obis_explorer.fetch import FetchOptions, fetch_occurrences
    from obis_explorer.query import build_query

    result = fetch_occurrences(
        build_query(scientific_name="Lamna nasus", page_limit=1000),
        ObisSource(),
        options=FetchOptions(total_timeout=120),
    )
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import requests

from obis_explorer.errors import ObisExplorerError, QueryTimeoutError, TransientFetchError
from obis_explorer.filters import query_predicate
from obis_explorer.join import join_measurements
from obis_explorer.models import MeasurementOrFact, Occurrence, ResultSet

if TYPE_CHECKING:
    from collections.abc import Callable

    from obis_explorer.config import Settings
    from obis_explorer.datasources.base import OccurrenceSource, Page
    from obis_explorer.schemas import OccurrenceQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchOptions:
    """Concurrency and time budgets for one query."""

    max_workers: int = 4
    page_timeout: float = 60.0
    total_timeout: float = 600.0
    partial_on_timeout: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> FetchOptions:
        return cls(
            max_workers=settings.max_workers,
            page_timeout=settings.page_timeout,
            total_timeout=settings.total_timeout,
            partial_on_timeout=settings.partial_on_timeout,
        )


class _BudgetExceeded(Exception):
    """Internal signal: the total-query budget ran out."""


class _Budget:
    """Monotonic clock for per-page and total-query timeouts."""

    def __init__(self, page_timeout: float, total_timeout: float) -> None:
        self.page_timeout = page_timeout
        self.deadline = time.monotonic() + total_timeout

    def remaining(self) -> float:
        return self.deadline - time.monotonic()

    def request_timeout(self) -> float:
        """Timeout for the next request, capped by what is left overall."""
        left = self.remaining()
        if left <= 0:
            raise _BudgetExceeded
        return min(self.page_timeout, left)


class _QueryRun:
    """Accumulator for a single query. Never shared between queries."""

    def __init__(
        self,
        query: OccurrenceQuery,
        source: OccurrenceSource,
        options: FetchOptions,
        cancel: threading.Event | None,
    ) -> None:
        self.query = query
        self.source = source
        self.options = options
        self.cancel = cancel
        self.budget = _Budget(options.page_timeout, options.total_timeout)
        self.accepts: Callable[[Occurrence], bool] = query_predicate(query)

        self.occurrences: list[Occurrence] = []
        self.seen: set[str] = set()
        self.measurements: list[MeasurementOrFact] = []
        self.skipped = 0
        self.pages = 0
        self.truncated = False
        self.cancelled = False

    # -- bookkeeping ---------------------------------------------------------

    def context(self) -> dict[str, Any]:
        return {
            "query": self.query.describe(),
            "source": self.source.name,
            "page_index": self.pages,
            "records_so_far": len(self.occurrences),
        }

    def limit_reached(self) -> bool:
        limit = self.query.page_limit
        return limit is not None and len(self.occurrences) >= limit

    def should_stop(self) -> bool:
        """Checked at every page boundary."""
        if self.limit_reached():
            return True
        if self.cancel is not None and self.cancel.is_set():
            if not self.cancelled:
                logger.info("Fetch cancelled after %d pages", self.pages)
            self.cancelled = True
            return True
        if self.budget.remaining() <= 0:
            raise _BudgetExceeded
        return False

    def check_budget(self, error: Exception) -> None:
        """A transient failure that used up the total budget in retries is a timeout."""
        if isinstance(error, TransientFetchError) and self.budget.remaining() <= 0:
            raise _BudgetExceeded from error

    def page_size(self) -> int:
        limit = self.query.page_limit
        return self.source.page_size if limit is None else min(self.source.page_size, limit)

    def accept(self, records: list[dict[str, Any]]) -> None:
        """Parse a page of raw rows onto the accumulator, in order."""
        for raw in records:
            if self.limit_reached():
                return
            occ = self.source.parse_occurrence(raw)
            if occ is None:
                self.skipped += 1
                continue
            if occ.id in self.seen:
                continue
            if not self.accepts(occ):
                continue
            self.seen.add(occ.id)
            self.occurrences.append(occ)

    # -- requests ------------------------------------------------------------

    def request(
        self, name: str | None, *, cursor: str | None = None, offset: int = 0, size: int
    ) -> Page:
        timeout = self.budget.request_timeout()
        self.pages += 1
        try:
            return self.source.fetch_page(
                self.query, name, cursor=cursor, offset=offset, size=size, timeout=timeout
            )
        except ObisExplorerError as e:
            self.check_budget(e)
            e.context.update(self.context())
            raise

    def fetch_cursor(self, name: str | None) -> None:
        cursor: str | None = None
        while not self.should_stop():
            page = self.request(name, cursor=cursor, size=self.page_size())
            self.accept(page.records)
            if page.exhausted or not page.records:
                return
            if page.next_cursor is None or page.next_cursor == cursor:
                logger.warning(
                    "%s cursor did not advance past %s; stopping", self.source.name, cursor
                )
                return
            cursor = page.next_cursor

    def fetch_offset(self, name: str | None) -> None:
        size = self.page_size()
        if self.should_stop():
            return
        first = self.request(name, offset=0, size=size)
        self.accept(first.records)
        if first.exhausted or len(first.records) < size:
            return

        if first.total is None:
            # No total reported: walk page by page
            index = 1
            while not self.should_stop():
                page = self.request(name, offset=index * size, size=size)
                self.accept(page.records)
                if page.exhausted or len(page.records) < size:
                    return
                index += 1
            return

        page_count = math.ceil(first.total / size)
        workers = max(1, self.options.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page") as pool:
            for window_start in range(1, page_count, workers):
                if self.should_stop():
                    return
                indexes = range(window_start, min(window_start + workers, page_count))
                futures = [self._submit(pool, name, i * size, size) for i in indexes]
                # Append strictly in page-index order
                for future in futures:
                    page = self._result(future, futures)
                    self.accept(page.records)
                    if page.exhausted or len(page.records) < size:
                        _cancel_all(futures)
                        return
                    if self.should_stop():
                        _cancel_all(futures)
                        return

    def _submit(
        self, pool: ThreadPoolExecutor, name: str | None, offset: int, size: int
    ) -> Future[Page]:
        timeout = self.budget.request_timeout()
        self.pages += 1
        return pool.submit(
            self.source.fetch_page,
            self.query,
            name,
            cursor=None,
            offset=offset,
            size=size,
            timeout=timeout,
        )

    def _result(self, future: Future[Any], futures: list[Future[Any]]) -> Any:
        try:
            return future.result(timeout=max(self.budget.remaining(), 0))
        except TimeoutError as e:
            _cancel_all(futures)
            raise _BudgetExceeded from e
        except ObisExplorerError as e:
            _cancel_all(futures)
            self.check_budget(e)
            e.context.update(self.context())
            raise
        except requests.Timeout:
            _cancel_all(futures)
            raise

    # -- measurements --------------------------------------------------------

    def fetch_measurements(self) -> None:
        ids = [occ.id for occ in self.occurrences]
        if not ids:
            return
        workers = max(1, self.options.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mof") as pool:
            for window_start in range(0, len(ids), workers):
                if self.cancel is not None and self.cancel.is_set():
                    self.cancelled = True
                    return
                if self.budget.remaining() <= 0:
                    raise _BudgetExceeded
                window = ids[window_start : window_start + workers]
                futures = [
                    pool.submit(
                        self.source.fetch_measurements,
                        occurrence_id,
                        timeout=self.budget.request_timeout(),
                    )
                    for occurrence_id in window
                ]
                for occurrence_id, future in zip(window, futures, strict=True):
                    for raw in self._result(future, futures):
                        mof = self.source.parse_measurement(raw, occurrence_id)
                        if mof is None:
                            self.skipped += 1
                        else:
                            self.measurements.append(mof)

    # -- driver --------------------------------------------------------------

    def execute(self) -> ResultSet:
        logger.info("Querying %s: %s", self.source.name, self.query.describe())
        started = time.monotonic()
        try:
            for name in self.query.targets:
                if self.should_stop():
                    break
                if self.source.pagination == "offset":
                    self.fetch_offset(name)
                else:
                    self.fetch_cursor(name)
            if self.query.include_measurements and not self.cancelled:
                self.fetch_measurements()
        except (_BudgetExceeded, requests.Timeout) as e:
            context = self.context()
            if not self.options.partial_on_timeout:
                msg = "query exceeded its time budget; partial result discarded"
                raise QueryTimeoutError(msg, **context) from e
            logger.warning("Query timed out, returning %d partial records", len(self.occurrences))
            self.truncated = True

        result = ResultSet(
            occurrences=tuple(self.occurrences),
            measurements=join_measurements(self.occurrences, self.measurements),
            skipped=self.skipped,
            truncated=self.truncated,
            cancelled=self.cancelled,
            query=self.query,
        )
        logger.info(
            "Fetched %d occurrences, %d measurements (%d skipped) from %s in %d pages, %.1fs",
            len(result.occurrences),
            len(result.measurements),
            result.skipped,
            self.source.name,
            self.pages,
            time.monotonic() - started,
        )
        return result


def _cancel_all(futures: list[Future[Any]]) -> None:
    for f in futures:
        f.cancel()


def fetch_occurrences(
    query: OccurrenceQuery,
    source: OccurrenceSource,
    *,
    options: FetchOptions | None = None,
    cancel: threading.Event | None = None,
) -> ResultSet:
    """
    Fetch every occurrence matching ``query`` from ``source``.

    Args:
        query: Validated request descriptor (see ``query.build_query``).
        source: Data source to page through.
        options: Worker count and time budgets. Defaults to ``FetchOptions()``.
        cancel: Set from another thread to stop at the next page boundary.

    Returns:
        ResultSet in arrival order, with joined measurements when requested.

    Raises:
        QueryRejectedError: The server refused the query.
        TransientFetchError: Retries exhausted on network/429/5xx failures.
        QueryTimeoutError: A time budget ran out and partial results were
            not requested.
    """
    return _QueryRun(query, source, options or FetchOptions(), cancel).execute()
