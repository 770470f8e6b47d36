"""Quote record storage.

Two backends implement the ``QuoteRepository`` protocol:

- ``InMemoryQuoteRepository``: process-local, the default for the poll loop,
  keeping the newest ``max_records_per_symbol`` records per symbol.
- ``JsonFileQuoteRepository``: one JSON file per symbol per UTC day under
  ``{data_dir}/ohlc/``, capped at 1000 records per file.

Neither backend assumes records arrive in order; reads sort newest-first.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

from pydantic import ValidationError

from market_sentinel.core.config import MAX_RECORDS_PER_SYMBOL, StorageConfig
from market_sentinel.core.exceptions import StorageError
from market_sentinel.core.models import QuoteRecord, StorageBackend, Symbol

logger = logging.getLogger(__name__)

MAX_RECORDS_PER_FILE = 1000


@runtime_checkable
class QuoteRepository(Protocol):
    """Protocol for quote persistence backends."""

    async def save(self, record: QuoteRecord) -> QuoteRecord:
        """Store one record and return it."""
        ...

    async def save_batch(self, records: Sequence[QuoteRecord]) -> list[QuoteRecord]:
        """Store records atomically with respect to readers."""
        ...

    async def get_all(
        self, symbol: Symbol | None = None, limit: int | None = None
    ) -> list[QuoteRecord]:
        """Return stored records, newest first."""
        ...

    async def get_latest(self, symbol: Symbol) -> QuoteRecord | None:
        """Return the newest record for a symbol."""
        ...

    async def symbols(self) -> list[Symbol]:
        """Return the symbols with at least one stored record."""
        ...


async def previous_close(repository: QuoteRepository, symbol: Symbol) -> float | None:
    """Close of the newest stored record, the enricher's lookup."""
    latest = await repository.get_latest(symbol)
    return latest.close if latest is not None else None


def _newest_first(records: list[QuoteRecord], limit: int | None) -> list[QuoteRecord]:
    ordered = sorted(records, key=lambda r: r.timestamp, reverse=True)
    return ordered[:limit] if limit is not None else ordered


class InMemoryQuoteRepository:
    """Process-local repository guarded by a single ``asyncio.Lock``.

    ``save_batch`` holds the lock for the whole batch and readers take the
    same lock, so a reader sees either none or all of a batch.

    Args:
        max_records_per_symbol: Oldest records (by timestamp) beyond this
            many per symbol are dropped. ``None`` keeps everything.
    """

    def __init__(self, max_records_per_symbol: int | None = MAX_RECORDS_PER_SYMBOL) -> None:
        if max_records_per_symbol is not None and max_records_per_symbol < 1:
            raise ValueError("max_records_per_symbol must be >= 1")
        self._records: dict[Symbol, list[QuoteRecord]] = defaultdict(list)
        self._max_per_symbol = max_records_per_symbol
        self._lock = asyncio.Lock()

    def _append(self, records: Sequence[QuoteRecord]) -> None:
        touched: set[Symbol] = set()
        for record in records:
            self._records[record.symbol].append(record)
            touched.add(record.symbol)
        if self._max_per_symbol is None:
            return
        for symbol in touched:
            stored = self._records[symbol]
            if len(stored) > self._max_per_symbol:
                stored.sort(key=lambda r: r.timestamp)
                del stored[: len(stored) - self._max_per_symbol]

    async def save(self, record: QuoteRecord) -> QuoteRecord:
        async with self._lock:
            self._append([record])
        return record

    async def save_batch(self, records: Sequence[QuoteRecord]) -> list[QuoteRecord]:
        async with self._lock:
            self._append(records)
        return list(records)

    async def get_all(
        self, symbol: Symbol | None = None, limit: int | None = None
    ) -> list[QuoteRecord]:
        async with self._lock:
            if symbol is not None:
                records = list(self._records.get(symbol, []))
            else:
                records = [r for rs in self._records.values() for r in rs]
        return _newest_first(records, limit)

    async def get_latest(self, symbol: Symbol) -> QuoteRecord | None:
        async with self._lock:
            records = self._records.get(symbol)
            if not records:
                return None
            return max(records, key=lambda r: r.timestamp)

    async def symbols(self) -> list[Symbol]:
        async with self._lock:
            return sorted(s for s, rs in self._records.items() if rs)

    async def count(self) -> int:
        async with self._lock:
            return sum(len(rs) for rs in self._records.values())


class JsonFileQuoteRepository:
    """File-backed repository: ``{data_dir}/ohlc/{SYMBOL}_{YYYY-MM-DD}.json``.

    Each file holds a JSON array sorted by timestamp ascending. Writes go
    through a temp file and ``os.replace`` so readers never see a partial
    file.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir) / "ohlc"
        self._lock = asyncio.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, symbol: Symbol, day: date) -> Path:
        return self._dir / f"{symbol}_{day.isoformat()}.json"

    def _files(self, symbol: Symbol | None = None) -> list[tuple[Symbol, date, Path]]:
        if not self._dir.exists():
            return []
        found: list[tuple[Symbol, date, Path]] = []
        for path in self._dir.glob("*.json"):
            name, _, day = path.stem.rpartition("_")
            try:
                file_date = date.fromisoformat(day)
            except ValueError:
                logger.debug("Ignoring unexpected file %s", path)
                continue
            if not name or (symbol is not None and name != symbol):
                continue
            found.append((name, file_date, path))
        return sorted(found, key=lambda f: f[1], reverse=True)

    def _read(self, path: Path) -> list[QuoteRecord]:
        try:
            raw = json.loads(path.read_text())
            return [QuoteRecord.model_validate(item) for item in raw]
        except FileNotFoundError:
            return []
        except (OSError, ValueError, ValidationError) as e:
            raise StorageError(
                f"Cannot read quote file {path.name}: {e}",
                context={"path": str(path)},
            ) from e

    def _write(self, path: Path, records: list[QuoteRecord]) -> None:
        payload: list[dict[str, Any]] = [r.model_dump(mode="json") for r in records]
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(payload, f)
                os.replace(tmp, path)
            except Exception:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(
                f"Cannot write quote file {path.name}: {e}",
                context={"path": str(path)},
            ) from e

    def _append(self, records: Sequence[QuoteRecord]) -> None:
        groups: dict[tuple[Symbol, date], list[QuoteRecord]] = defaultdict(list)
        for record in records:
            groups[(record.symbol, record.timestamp.date())].append(record)

        for (symbol, day), new in groups.items():
            path = self._path(symbol, day)
            merged = sorted(self._read(path) + new, key=lambda r: r.timestamp)
            if len(merged) > MAX_RECORDS_PER_FILE:
                merged = merged[-MAX_RECORDS_PER_FILE:]
            self._write(path, merged)

    async def save(self, record: QuoteRecord) -> QuoteRecord:
        await self.save_batch([record])
        return record

    async def save_batch(self, records: Sequence[QuoteRecord]) -> list[QuoteRecord]:
        async with self._lock:
            await asyncio.to_thread(self._append, records)
        logger.debug("Stored %d quote records in %s", len(records), self._dir)
        return list(records)

    def _collect(self, symbol: Symbol | None, limit: int | None) -> list[QuoteRecord]:
        records: list[QuoteRecord] = []
        for _, _, path in self._files(symbol):
            records.extend(self._read(path))
            # files are newest day first, so enough records means we can stop
            if limit is not None and symbol is not None and len(records) >= limit:
                break
        return _newest_first(records, limit)

    async def get_all(
        self, symbol: Symbol | None = None, limit: int | None = None
    ) -> list[QuoteRecord]:
        async with self._lock:
            return await asyncio.to_thread(self._collect, symbol, limit)

    async def get_latest(self, symbol: Symbol) -> QuoteRecord | None:
        records = await self.get_all(symbol, limit=1)
        return records[0] if records else None

    async def symbols(self) -> list[Symbol]:
        async with self._lock:
            return sorted({name for name, _, _ in self._files()})

    async def summary(self) -> dict[str, Any]:
        """Total records, symbols and the oldest/latest stored day."""
        async with self._lock:
            files = self._files()
            total = 0
            for _, _, path in files:
                total += len(await asyncio.to_thread(self._read, path))
        days = [d for _, d, _ in files]
        return {
            "total_records": total,
            "symbols": sorted({name for name, _, _ in files}),
            "oldest_date": min(days).isoformat() if days else None,
            "latest_date": max(days).isoformat() if days else None,
        }


def build_repository(config: StorageConfig) -> QuoteRepository:
    """Create the repository selected by ``storage.backend``."""
    if config.backend == StorageBackend.JSON:
        return JsonFileQuoteRepository(config.data_dir)
    return InMemoryQuoteRepository(config.max_records_per_symbol)
