"""Shared fixtures: an in-memory occurrence source, a local OBIS server, OBIS-shaped records."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from obis_explorer.datasources.base import Page
from obis_explorer.datasources.obis import parse
from obis_explorer.models import MeasurementOrFact, Occurrence
from obis_explorer.schemas import OccurrenceQuery


def obis_record(
    record_id: str | None,
    name: str = "Lamna nasus",
    *,
    depth: float | None = None,
    event_date: str | None = None,
    lat: float | None = 45.0,
    lon: float | None = -60.0,
    **extra: Any,
) -> dict[str, Any]:
    """An OBIS /occurrence row with the fields the tests care about."""
    raw: dict[str, Any] = {"scientificName": name, "decimalLatitude": lat, "decimalLongitude": lon}
    if record_id is not None:
        raw["id"] = record_id
    if depth is not None:
        raw["depth"] = depth
    if event_date is not None:
        raw["eventDate"] = event_date
    raw.update(extra)
    return raw


class FakeSource:
    """In-memory OccurrenceSource.

    ``records`` maps a scientific name (None for taxon-id queries) to raw
    rows. Supports both pagination styles and a few failure hooks.
    """

    name = "fake"

    def __init__(
        self,
        records: dict[str | None, list[dict[str, Any]]],
        *,
        pagination: str = "cursor",
        page_size: int = 3,
        measurements: dict[str, list[dict[str, Any]]] | None = None,
        report_total: bool = True,
        delay: float | Callable[[int], float] = 0.0,
        fail_on_call: int | None = None,
        error: Exception | None = None,
        on_page: Callable[[int], None] | None = None,
    ) -> None:
        self.records = records
        self.pagination = pagination
        self.page_size = page_size
        self.measurements = measurements or {}
        self.report_total = report_total
        self.delay = delay
        self.fail_on_call = fail_on_call
        self.error = error
        self.on_page = on_page
        self.calls: list[dict[str, Any]] = []
        self.measurement_calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_page(
        self,
        query: OccurrenceQuery,
        scientific_name: str | None,
        *,
        cursor: str | None = None,
        offset: int = 0,
        size: int,
        timeout: float | None = None,
    ) -> Page:
        with self._lock:
            self.calls.append(
                {"name": scientific_name, "cursor": cursor, "offset": offset, "size": size}
            )
            call_number = len(self.calls)
        if self.fail_on_call is not None and call_number >= self.fail_on_call:
            assert self.error is not None
            raise self.error

        delay = self.delay(offset) if callable(self.delay) else self.delay
        if delay:
            time.sleep(delay)

        rows = self.records.get(scientific_name, [])
        if self.pagination == "cursor":
            start = 0
            if cursor is not None:
                ids = [r.get("id") for r in rows]
                start = ids.index(cursor) + 1
        else:
            start = offset
        chunk = rows[start : start + size]
        if self.on_page is not None:
            self.on_page(call_number)
        last_id = chunk[-1].get("id") if chunk else None
        return Page(
            records=chunk,
            next_cursor=last_id,
            total=len(rows) if self.report_total else None,
            exhausted=start + size >= len(rows),
        )

    def fetch_measurements(
        self, occurrence_id: str, *, timeout: float | None = None
    ) -> list[dict[str, Any]]:
        with self._lock:
            self.measurement_calls.append(occurrence_id)
        return self.measurements.get(occurrence_id, [])

    def parse_occurrence(self, raw: dict[str, Any]) -> Occurrence | None:
        return parse.parse_occurrence(raw)

    def parse_measurement(
        self, raw: dict[str, Any], occurrence_id: str
    ) -> MeasurementOrFact | None:
        return parse.parse_measurement(raw, occurrence_id)


@pytest.fixture
def record() -> Callable[..., dict[str, Any]]:
    """Factory for OBIS-shaped raw rows."""
    return obis_record


@pytest.fixture
def fake_source() -> Callable[..., FakeSource]:
    """Factory for in-memory sources."""
    return FakeSource


class _PageHandler(BaseHTTPRequestHandler):
    """Answers ``GET /v3/occurrence`` from the server's canned pages."""

    server: SlowObisServer

    def do_GET(self) -> None:
        after = parse_qs(urlsplit(self.path).query).get("after", [None])[0]
        self.server.requests.append(self.path)
        delay, body = self.server.pages[after]
        time.sleep(delay)
        payload = json.dumps(body).encode()
        try:
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)
        except (BrokenPipeError, ConnectionResetError):
            pass  # client already gave up

    def log_message(self, format: str, *args: Any) -> None:
        pass


class SlowObisServer(ThreadingHTTPServer):
    """Local OBIS stand-in; ``pages`` maps the ``after`` cursor to (delay, body)."""

    daemon_threads = True

    def __init__(self, pages: dict[str | None, tuple[float, dict[str, Any]]]) -> None:
        super().__init__(("127.0.0.1", 0), _PageHandler)
        self.pages = pages
        self.requests: list[str] = []

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server_port}/v3"


@pytest.fixture
def obis_server() -> Iterator[Callable[..., SlowObisServer]]:
    """Factory starting local OBIS servers; all are shut down after the test."""
    servers: list[SlowObisServer] = []

    def start(pages: dict[str | None, tuple[float, dict[str, Any]]]) -> SlowObisServer:
        server = SlowObisServer(pages)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()
