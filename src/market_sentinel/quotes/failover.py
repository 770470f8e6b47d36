"""Ordered provider failover.

Adapters are tried one at a time in priority order. The first adapter that
returns at least ``min_records`` usable records wins and its records are
returned unmodified; later adapters are not called and results are never
merged across adapters.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from market_sentinel.core.config import SentinelConfig
from market_sentinel.core.exceptions import (
    AuthenticationError,
    ProviderNotConfiguredError,
)
from market_sentinel.core.models import ProviderName, QuoteRecord, Symbol
from market_sentinel.quotes.angel_one import AngelOneAdapter
from market_sentinel.quotes.csv_adapter import CsvReplayAdapter
from market_sentinel.quotes.nse import NseIndicesAdapter
from market_sentinel.quotes.provider import QuoteAdapter, is_usable, validate_symbols
from market_sentinel.quotes.yahoo import YahooChartAdapter

logger = logging.getLogger(__name__)


@dataclass
class ProviderHealth:
    """Last-known outcome of calls to one adapter."""

    name: ProviderName
    last_success: datetime | None = None
    last_failure: datetime | None = None
    consecutive_failures: int = 0
    last_error: str | None = None
    total_calls: int = 0

    @property
    def healthy(self) -> bool:
        return self.consecutive_failures == 0

    def record_success(self) -> None:
        self.total_calls += 1
        self.last_success = datetime.now(timezone.utc)
        self.consecutive_failures = 0
        self.last_error = None

    def record_failure(self, error: str) -> None:
        self.total_calls += 1
        self.last_failure = datetime.now(timezone.utc)
        self.consecutive_failures += 1
        self.last_error = error


@dataclass
class FetchAttempt:
    provider: ProviderName
    outcome: str
    records: int = 0


@dataclass
class FetchReport:
    """What happened during the most recent ``fetch`` call."""

    symbols: list[Symbol] = field(default_factory=list)
    attempts: list[FetchAttempt] = field(default_factory=list)
    provider: ProviderName | None = None

    @property
    def chain(self) -> list[str]:
        return [f"{a.provider}:{a.outcome}" for a in self.attempts]


class FailoverFetcher:
    """Fetch quotes from the first adapter that yields enough usable data.

    Args:
        adapters: Adapters in priority order.
        timeout_seconds: Per-adapter deadline; expiry counts as failure.
        min_records: Usable records an adapter must return to win.
    """

    def __init__(
        self,
        adapters: Sequence[QuoteAdapter],
        timeout_seconds: float = 8.0,
        min_records: int = 1,
    ) -> None:
        if not adapters:
            raise ValueError("FailoverFetcher needs at least one adapter")
        if min_records < 1:
            raise ValueError("min_records must be >= 1")
        self._adapters = list(adapters)
        self._timeout = timeout_seconds
        self._min_records = min_records
        self._health = {a.name: ProviderHealth(name=a.name) for a in self._adapters}
        self._last_report = FetchReport()

    @classmethod
    def from_config(cls, config: SentinelConfig) -> FailoverFetcher:
        """Build adapters for the enabled providers in ``providers.order``."""
        providers = config.providers
        adapters: list[QuoteAdapter] = []
        for name in providers.order:
            if name == "angel_one" and providers.angel_one.enabled:
                adapters.append(AngelOneAdapter(providers.angel_one))
            elif name == "yahoo" and providers.yahoo.enabled:
                adapters.append(
                    YahooChartAdapter(
                        base_url=providers.yahoo.base_url,
                        requests_per_second=providers.yahoo.requests_per_second,
                    )
                )
            elif name == "nse" and providers.nse.enabled:
                adapters.append(NseIndicesAdapter(base_url=providers.nse.base_url))
            elif name == "csv" and providers.csv.enabled and providers.csv.path:
                adapters.append(CsvReplayAdapter(providers.csv.path))
            else:
                logger.debug("Provider %s disabled, not added to failover chain", name)
        return cls(
            adapters,
            timeout_seconds=providers.timeout_seconds,
            min_records=providers.min_records,
        )

    @property
    def adapters(self) -> list[QuoteAdapter]:
        return list(self._adapters)

    @property
    def last_provider(self) -> ProviderName | None:
        """Name of the adapter that satisfied the most recent fetch."""
        return self._last_report.provider

    @property
    def last_report(self) -> FetchReport:
        return self._last_report

    def health(self) -> dict[ProviderName, ProviderHealth]:
        return dict(self._health)

    async def connect(self) -> None:
        """Give adapters with a session a chance to authenticate once."""
        for adapter in self._adapters:
            connect = getattr(adapter, "connect", None)
            if connect is None:
                continue
            ok = await connect()
            if not ok:
                logger.warning("Provider %s did not authenticate", adapter.name)

    async def fetch(self, symbols: Sequence[str]) -> list[QuoteRecord]:
        """Return records from the first adapter meeting the threshold.

        Never raises: total exhaustion yields an empty list.
        """
        valid = validate_symbols(symbols)
        report = FetchReport(symbols=valid)
        self._last_report = report
        if not valid:
            logger.warning("No valid symbols to fetch from %s", list(symbols))
            return []

        for adapter in self._adapters:
            health = self._health[adapter.name]
            try:
                records = await asyncio.wait_for(adapter.fetch(valid), self._timeout)
            except asyncio.TimeoutError:
                self._fail(report, health, "timeout", f"timed out after {self._timeout}s")
                continue
            except (ProviderNotConfiguredError, AuthenticationError) as e:
                self._fail(report, health, "unavailable", str(e), level=logging.INFO)
                continue
            except Exception as e:
                self._fail(report, health, "error", f"{type(e).__name__}: {e}")
                continue

            usable = [r for r in records if is_usable(r, valid)]
            if len(usable) < self._min_records:
                self._fail(
                    report,
                    health,
                    "insufficient",
                    f"{len(usable)} usable records, need {self._min_records}",
                    records=len(usable),
                )
                continue

            health.record_success()
            report.attempts.append(FetchAttempt(adapter.name, "ok", len(usable)))
            report.provider = adapter.name
            logger.info(
                "Fetched %d quotes from %s (chain: %s)",
                len(usable),
                adapter.name,
                " -> ".join(report.chain),
            )
            return usable

        logger.warning(
            "All providers failed for %s (chain: %s)",
            valid,
            " -> ".join(report.chain),
        )
        return []

    def _fail(
        self,
        report: FetchReport,
        health: ProviderHealth,
        outcome: str,
        error: str,
        records: int = 0,
        level: int = logging.WARNING,
    ) -> None:
        health.record_failure(error)
        report.attempts.append(FetchAttempt(health.name, outcome, records))
        logger.log(level, "Provider %s failed (%s): %s", health.name, outcome, error)
