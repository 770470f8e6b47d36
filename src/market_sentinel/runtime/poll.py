"""Poll loop: the scheduler that drives fetch, store, analyze and publish.

One cycle:

    FailoverFetcher.fetch → SeriesEnricher.enrich → repository.save_batch
        → publish MARKET_DATA_UPDATE
        → (every ``indicator_every`` cycles) repository.get_all
            → IndicatorEngine → SignalScorer → ConsensusAggregator
            → publish SIGNAL_UPDATE / HIGH_CONFIDENCE_SIGNAL

Cycles never overlap. A tick that fires while a cycle is still running is
skipped and counted. Nothing raised inside a cycle stops the loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from market_sentinel.analysis.engine import IndicatorEngine
from market_sentinel.core.config import SentinelConfig
from market_sentinel.core.models import (
    ConsensusDecision,
    IndicatorSet,
    ProviderName,
    QuoteRecord,
    SignalDecision,
    SignalType,
    Symbol,
    Timeframe,
)
from market_sentinel.quotes.enricher import SeriesEnricher
from market_sentinel.quotes.failover import FailoverFetcher
from market_sentinel.quotes.provider import validate_symbols
from market_sentinel.quotes.repository import (
    QuoteRepository,
    build_repository,
    previous_close,
)
from market_sentinel.runtime.publisher import (
    EventType,
    LoggingPublisher,
    MarketEvent,
    Publisher,
)
from market_sentinel.signals.consensus import ConsensusAggregator
from market_sentinel.signals.scorer import SignalScorer

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """Summary of one completed poll cycle."""

    cycle: int
    provider: ProviderName | None = None
    quotes: int = 0
    analyzed: bool = False
    indicators: dict[Symbol, IndicatorSet] = field(default_factory=dict)
    signals: dict[Symbol, SignalDecision] = field(default_factory=dict)
    consensus: dict[Symbol, ConsensusDecision] = field(default_factory=dict)


class PollLoop:
    """Single-flight poll scheduler.

    Args:
        fetcher: Failover fetcher over the configured adapters.
        repository: Shared quote store.
        symbols: Symbols to poll. Invalid ones are dropped at construction.
        enricher: Fills absent opens before storage.
        engine: Indicator engine used on recompute cycles.
        scorer: Turns indicator sets into decisions.
        aggregator: Multi-timeframe vote.
        publisher: Event sink. Failures are logged and ignored.
        interval_seconds: Time between ticks.
        indicator_every: Recompute indicators every N completed fetch cycles.
        high_confidence_strength: Non-HOLD signals above this strength are
            also published as HIGH_CONFIDENCE_SIGNAL.
        history_limit: Newest records per symbol read back for analysis.
            ``None`` reads the whole stored history.
    """

    def __init__(
        self,
        fetcher: FailoverFetcher,
        repository: QuoteRepository,
        symbols: Sequence[str],
        *,
        enricher: SeriesEnricher | None = None,
        engine: IndicatorEngine | None = None,
        scorer: SignalScorer | None = None,
        aggregator: ConsensusAggregator | None = None,
        publisher: Publisher | None = None,
        interval_seconds: float = 5.0,
        indicator_every: int = 6,
        high_confidence_strength: int = 70,
        history_limit: int | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if indicator_every < 1:
            raise ValueError("indicator_every must be >= 1")

        self._fetcher = fetcher
        self._repository = repository
        self._symbols = validate_symbols(symbols)
        self._enricher = enricher or SeriesEnricher()
        self._engine = engine or IndicatorEngine()
        self._scorer = scorer or SignalScorer()
        self._aggregator = aggregator or ConsensusAggregator()
        self._publisher: Publisher = publisher or LoggingPublisher()
        self._interval = interval_seconds
        self._indicator_every = indicator_every
        self._high_confidence = high_confidence_strength
        self._history_limit = history_limit

        self._in_progress = False
        self._started = False
        self._running = False
        self._cycles = 0
        self._skipped_ticks = 0
        self._failed_cycles = 0
        self._last_result: CycleResult | None = None

    @classmethod
    def from_config(
        cls,
        config: SentinelConfig,
        *,
        fetcher: FailoverFetcher | None = None,
        repository: QuoteRepository | None = None,
        publisher: Publisher | None = None,
        scorer: SignalScorer | None = None,
    ) -> PollLoop:
        return cls(
            fetcher or FailoverFetcher.from_config(config),
            repository or build_repository(config.storage),
            config.symbols,
            engine=IndicatorEngine(config.analysis),
            scorer=scorer,
            aggregator=ConsensusAggregator(config.analysis.timeframes),
            publisher=publisher,
            interval_seconds=config.poll.interval_seconds,
            indicator_every=config.poll.indicator_every,
            high_confidence_strength=config.analysis.high_confidence_strength,
            history_limit=config.storage.max_records_per_symbol,
        )

    # --- state ---

    @property
    def symbols(self) -> list[Symbol]:
        return list(self._symbols)

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    @property
    def failed_cycles(self) -> int:
        return self._failed_cycles

    @property
    def last_result(self) -> CycleResult | None:
        return self._last_result

    @property
    def fetcher(self) -> FailoverFetcher:
        return self._fetcher

    # --- lifecycle ---

    async def start(self) -> None:
        """Authenticate session-based adapters once, before the first tick."""
        if self._started:
            return
        self._started = True
        await self._fetcher.connect()
        logger.info(
            "Poll loop started for %s every %.1fs (indicators every %d cycles)",
            self._symbols,
            self._interval,
            self._indicator_every,
        )

    def stop(self) -> None:
        self._running = False

    async def run_forever(self, cycles: int | None = None) -> None:
        """Fire a tick every interval until stopped or ``cycles`` ticks fired.

        Each tick runs as its own task so a slow cycle does not delay the
        schedule; the single-flight guard skips ticks that land on a
        running cycle.
        """
        await self.start()
        self._running = True
        pending: set[asyncio.Task[CycleResult | None]] = set()
        ticks = 0
        try:
            while self._running and (cycles is None or ticks < cycles):
                ticks += 1
                task = asyncio.create_task(self.run_cycle())
                pending.add(task)
                task.add_done_callback(pending.discard)
                if cycles is not None and ticks >= cycles:
                    break
                await asyncio.sleep(self._interval)
        finally:
            self._running = False
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def run_cycle(self) -> CycleResult | None:
        """Run one cycle unless another is in progress.

        Returns None when the tick was skipped or the cycle failed.
        """
        if self._in_progress:
            self._skipped_ticks += 1
            logger.warning(
                "Previous cycle still running, skipping tick (%d skipped so far)",
                self._skipped_ticks,
            )
            return None

        self._in_progress = True
        try:
            result = await self._cycle()
            self._last_result = result
            return result
        except Exception:
            self._failed_cycles += 1
            logger.exception("Poll cycle %d failed", self._cycles)
            return None
        finally:
            self._in_progress = False

    # --- cycle ---

    async def _cycle(self) -> CycleResult:
        self._cycles += 1
        result = CycleResult(cycle=self._cycles)

        records = await self._fetcher.fetch(self._symbols)
        result.provider = self._fetcher.last_provider
        if records:
            lookup = functools.partial(previous_close, self._repository)
            enriched = await self._enricher.enrich(records, lookup)
            saved = await self._repository.save_batch(enriched)
            result.quotes = len(saved)
            await self._publish(
                EventType.MARKET_DATA_UPDATE,
                {
                    "provider": result.provider,
                    "quotes": [r.model_dump(mode="json") for r in saved],
                },
            )
        else:
            logger.warning("Cycle %d: no market data from any provider", self._cycles)

        if self._cycles % self._indicator_every == 0:
            await self._recompute(result)

        logger.info(
            "Cycle %d: %d quotes from %s%s",
            result.cycle,
            result.quotes,
            result.provider or "no provider",
            f", {len(result.signals)} signals" if result.analyzed else "",
        )
        return result

    async def _recompute(self, result: CycleResult) -> None:
        history: list[QuoteRecord] = []
        for symbol in self._symbols:
            history.extend(
                await self._repository.get_all(symbol, limit=self._history_limit)
            )
        result.analyzed = True
        result.indicators = self._engine.analyze(history)
        per_timeframe = self._engine.analyze_timeframes(
            history, self._aggregator.timeframes
        )

        for symbol, indicators in result.indicators.items():
            result.signals[symbol] = self._scorer.score(indicators)

        for symbol, by_tf in per_timeframe.items():
            if not by_tf:
                continue
            decisions: dict[Timeframe, SignalDecision] = {
                tf: self._scorer.score(ind) for tf, ind in by_tf.items()
            }
            result.consensus[symbol] = self._aggregator.consensus(symbol, decisions)

        if not result.signals and not result.consensus:
            return

        await self._publish(
            EventType.SIGNAL_UPDATE,
            {
                "indicators": {
                    s: i.model_dump(mode="json") for s, i in result.indicators.items()
                },
                "signals": {
                    s: d.model_dump(mode="json") for s, d in result.signals.items()
                },
                "consensus": {
                    s: c.model_dump(mode="json") for s, c in result.consensus.items()
                },
            },
        )

        for symbol, decision in result.signals.items():
            if decision.signal != SignalType.HOLD and decision.strength > self._high_confidence:
                logger.info(
                    "High confidence %s signal for %s (%d%%): %s",
                    decision.signal,
                    symbol,
                    decision.strength,
                    decision.reasoning_text,
                )
                await self._publish(
                    EventType.HIGH_CONFIDENCE_SIGNAL,
                    {"symbol": symbol, **decision.model_dump(mode="json")},
                )

    async def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        try:
            await self._publisher.publish(MarketEvent(type=event_type, payload=payload))
        except Exception as e:
            logger.warning("Publisher failed for %s: %s", event_type, e)
