"""Cache of serialized result sets, keyed by data source and lesson step.

Layout under the base directory:
  - queries/{source}/{step}.json: a serialized ResultSet. The envelope
    records the query descriptor it was fetched with, so a cached result
    is only reused for an identical query against the same source.
  - derived/{name}.json: tables computed from cached results, rewritten
    on every run and never considered fresh.

Every file is a JSON envelope ``{"meta": {...}, "data": ...}``. Partial
results (truncated or cancelled) are stored without ``valid_until`` so the
next run fetches them again.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from obis_explorer.config import Settings


class DataStore:
    """Reads and writes enveloped JSON under ``base_dir``."""

    def __init__(self, base_dir: Path) -> None:
        self.base = base_dir
        self.queries = base_dir / "queries"
        self.derived = base_dir / "derived"

    @classmethod
    def from_settings(cls, settings: Settings) -> DataStore:
        return cls(settings.data_dir)

    # =========================================================================
    # Query results
    # =========================================================================

    @staticmethod
    def query_path(source: str, step: str) -> Path:
        return Path("queries") / source / f"{step}.json"

    def save_result(
        self,
        step: str,
        data: dict[str, Any],
        *,
        source: str,
        query: dict[str, Any],
        ttl: timedelta,
    ) -> Path:
        """
        Cache a serialized ResultSet.

        Args:
            step: Lesson step (file name).
            data: Output of ``result_set_to_dict``.
            source: Data source the result came from (directory name).
            query: ``OccurrenceQuery.describe()`` of the query that was run.
            ttl: How long a complete result stays fresh.

        Returns:
            Absolute path of the written file.
        """
        partial = bool(data.get("truncated") or data.get("cancelled"))
        return self.write(
            self.query_path(source, step),
            data,
            source=source,
            valid_until=None if partial else datetime.now(UTC) + ttl,
            query=query,
            occurrences=len(data.get("occurrences", [])),
            measurements=len(data.get("measurements", [])),
            partial=partial,
        )

    def load_result(
        self, step: str, *, source: str, query: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Cached result for ``step``, or None unless fresh and fetched with ``query``."""
        path = self.query_path(source, step)
        envelope = self.read_raw(path)
        if envelope is None or not self.is_fresh(path):
            return None
        if envelope.get("meta", {}).get("query") != query:
            return None
        data: dict[str, Any] = envelope.get("data", {})
        return data

    def write_derived(self, name: str, data: Any, **params: Any) -> Path:
        """Write a table computed from cached results."""
        return self.write(Path("derived") / f"{name}.json", data, source="derived", **params)

    # =========================================================================
    # Envelopes
    # =========================================================================

    def read(self, path: Path) -> Any | None:
        """The ``data`` payload of an envelope, or None if the file is missing."""
        envelope = self.read_raw(path)
        if envelope is None:
            return None
        return envelope.get("data", envelope)

    def read_raw(self, path: Path) -> dict[str, Any] | None:
        full = self._resolve(path)
        if not full.exists():
            return None
        with full.open() as f:
            envelope: dict[str, Any] = json.load(f)
        return envelope

    def write(
        self,
        path: Path,
        data: Any,
        source: str,
        valid_until: datetime | None = None,
        **params: Any,
    ) -> Path:
        """Write ``data`` wrapped in a metadata envelope.

        Args:
            path: Relative path under the base directory.
            data: Payload stored under ``data``; dates and other non-JSON
                values are written as strings.
            source: Where the data came from (``obis``, ``gbif``, ``derived``).
            valid_until: Expiry timestamp. None means never fresh.
            **params: Extra metadata fields.
        """
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)

        meta: dict[str, Any] = {"source": source, "fetched_at": datetime.now(UTC).isoformat()}
        if valid_until is not None:
            meta["valid_until"] = valid_until.isoformat()
        meta.update(params)

        with full.open("w") as f:
            json.dump({"meta": meta, "data": data}, f, indent=2, default=str)
        return full

    def is_fresh(self, path: Path) -> bool:
        """True while the file exists and its ``valid_until`` is in the future.

        Naive timestamps are read as UTC.
        """
        envelope = self.read_raw(path)
        if envelope is None:
            return False
        valid_until = envelope.get("meta", {}).get("valid_until")
        if valid_until is None:
            return False
        expiry = datetime.fromisoformat(valid_until)
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        return datetime.now(UTC) < expiry

    def _resolve(self, path: Path) -> Path:
        full = path if path.is_absolute() else self.base / path
        try:
            full.resolve().relative_to(self.base.resolve())
        except ValueError:
            msg = f"path escapes the store directory: {path}"
            raise ValueError(msg) from None
        return full
