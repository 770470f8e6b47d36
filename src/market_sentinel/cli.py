"""Click-based CLI for market-sentinel.

Thin wrapper around library modules. Zero business logic; every operation
delegates to quotes, analysis, signals, or runtime modules.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from market_sentinel.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise SystemExit(2) from e
    return ctx.obj["config"]


def _resolve_symbols(symbols: str | None, config) -> list[str]:
    """Comma-separated override, or the configured symbol list."""
    if not symbols:
        return list(config.symbols)
    return [s.strip().upper() for s in symbols.split(",") if s.strip()]


def _signal_style(signal: str) -> str:
    return {"BUY": "green", "SELL": "red"}.get(signal, "yellow")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="MARKET_SENTINEL_CONFIG",
    default=None,
    help="Path to market-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="market-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Market Sentinel: Indian index quotes, indicators and signals."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--symbols",
    "-s",
    type=str,
    default=None,
    help="Comma-separated symbols. Default: configured symbols.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def fetch(ctx: click.Context, symbols: str | None, output_format: str) -> None:
    """Fetch one round of quotes through the provider failover chain."""
    async def _run():
        from market_sentinel.quotes import FailoverFetcher

        config = _load_config(ctx)
        fetcher = FailoverFetcher.from_config(config)
        await fetcher.connect()
        records = await fetcher.fetch(_resolve_symbols(symbols, config))

        if not records:
            console.print("[yellow]No quotes returned by any provider.[/yellow]")
            raise SystemExit(1)

        if output_format == "json":
            click.echo(
                json.dumps([r.model_dump(mode="json") for r in records], indent=2)
            )
            return

        table = Table(title=f"Quotes ({fetcher.last_provider})")
        table.add_column("Symbol", style="bold")
        table.add_column("Price", justify="right")
        table.add_column("Change", justify="right")
        table.add_column("Change %", justify="right")
        table.add_column("Open", justify="right")
        table.add_column("High", justify="right")
        table.add_column("Low", justify="right")
        table.add_column("Volume", justify="right")
        table.add_column("Time")

        for r in records:
            style = "green" if r.change >= 0 else "red"
            table.add_row(
                r.symbol,
                f"{r.close:,.2f}",
                f"[{style}]{r.change:+,.2f}[/{style}]",
                f"[{style}]{r.change_percent:+.2f}%[/{style}]",
                f"{r.open:,.2f}" if r.open is not None else "-",
                f"{r.high:,.2f}",
                f"{r.low:,.2f}",
                f"{r.volume:,}",
                r.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z"),
            )
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# poll
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--cycles",
    "-n",
    type=int,
    default=None,
    help="Stop after N ticks. Default: run until interrupted.",
)
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between ticks. Default: poll.interval_seconds.",
)
@click.pass_context
def poll(ctx: click.Context, cycles: int | None, interval: float | None) -> None:
    """Run the poll loop: fetch, store, analyze and publish."""
    from market_sentinel.runtime import PollLoop

    config = _load_config(ctx)
    if interval is not None:
        config = config.model_copy(
            update={"poll": config.poll.model_copy(update={"interval_seconds": interval})}
        )
    loop = PollLoop.from_config(config)

    console.print(
        f"Polling {', '.join(loop.symbols)} every {config.poll.interval_seconds:g}s "
        f"via {' -> '.join(a.name for a in loop.fetcher.adapters)}"
    )
    try:
        _run_async(loop.run_forever(cycles=cycles))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")

    console.print(
        f"Completed {loop.cycles} cycles "
        f"({loop.skipped_ticks} skipped, {loop.failed_cycles} failed)"
    )
    result = loop.last_result
    if result is not None and result.signals:
        _output_signals_table(result.signals, result.consensus, result.indicators)


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="CSV of recorded quotes (symbol, timestamp, open, high, low, close, volume).",
)
@click.option(
    "--symbol",
    type=str,
    default=None,
    help="Symbol to use when the CSV has no symbol column.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.option(
    "--advise",
    is_flag=True,
    default=False,
    help="Ask the advisory model for commentary (needs advisory.api_key).",
)
@click.pass_context
def analyze(
    ctx: click.Context,
    csv_path: str,
    symbol: str | None,
    output_format: str,
    advise: bool,
) -> None:
    """Run the gate, indicators, signals and consensus over recorded quotes."""
    async def _run():
        from market_sentinel.analysis import IndicatorEngine
        from market_sentinel.quotes import load_csv_quotes
        from market_sentinel.runtime import OpenRouterAdvisor
        from market_sentinel.signals import ConsensusAggregator, SignalScorer

        config = _load_config(ctx)
        try:
            records = load_csv_quotes(csv_path, symbol=symbol.upper() if symbol else None)
        except ValueError as e:
            raise click.UsageError(str(e)) from e
        if not records:
            console.print("[yellow]No usable rows in CSV.[/yellow]")
            raise SystemExit(1)

        engine = IndicatorEngine(config.analysis)
        scorer = SignalScorer()
        aggregator = ConsensusAggregator(config.analysis.timeframes)

        indicators = engine.analyze(records)
        reports = engine.last_reports
        per_tf = engine.analyze_timeframes(records)

        signals = {s: scorer.score(ind) for s, ind in indicators.items()}
        consensus = {
            s: aggregator.consensus(s, {tf: scorer.score(i) for tf, i in by_tf.items()})
            for s, by_tf in per_tf.items()
            if by_tf
        }

        advisory = None
        if advise:
            advisory = await OpenRouterAdvisor(config.advisory).analyze(records, indicators)

        if output_format == "json":
            output = {
                "indicators": {s: i.model_dump(mode="json") for s, i in indicators.items()},
                "signals": {s: d.model_dump(mode="json") for s, d in signals.items()},
                "consensus": {s: c.model_dump(mode="json") for s, c in consensus.items()},
                "insufficient": {
                    s: r.reasons for (s, _), r in reports.items() if not r.sufficient
                },
            }
            if advisory is not None:
                output["advisory"] = advisory.model_dump(mode="json")
            click.echo(json.dumps(output, indent=2, default=str))
            return

        for (sym, _), report in reports.items():
            if not report.sufficient:
                console.print(
                    f"[yellow]{sym}: insufficient data[/yellow] ({'; '.join(report.reasons)})"
                )
        if signals:
            _output_signals_table(signals, consensus, indicators)
        if advisory is not None:
            console.print(
                f"[bold]Advisory:[/bold] {advisory.sentiment} "
                f"({advisory.confidence}%) {advisory.text}"
            )

    _run_async(_run())


def _output_signals_table(signals, consensus, indicators) -> None:
    """Render per-symbol signals as a Rich table."""
    table = Table(title="Signals")
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("RSI", justify="right")
    table.add_column("MACD", justify="right")
    table.add_column("EMA20/50", justify="right")
    table.add_column("Supertrend")
    table.add_column("Signal")
    table.add_column("Strength", justify="right")
    table.add_column("Consensus")
    table.add_column("Reasoning")

    for sym, decision in sorted(signals.items()):
        ind = indicators[sym]
        style = _signal_style(decision.signal)
        agg = consensus.get(sym)
        agg_text = (
            f"[{_signal_style(agg.signal)}]{agg.signal}[/] {agg.strength}% "
            f"({agg.counts.buy}/{agg.counts.sell}/{agg.counts.hold})"
            if agg is not None
            else "-"
        )
        table.add_row(
            sym,
            f"{ind.last_price:,.2f}",
            f"{ind.rsi:.1f}",
            f"{ind.macd.macd:.2f}",
            f"{ind.ema20:,.2f} / {ind.ema50:,.2f}",
            str(ind.supertrend.direction),
            f"[{style}]{decision.signal}[/{style}]",
            str(decision.strength),
            agg_text,
            decision.reasoning_text,
        )

    console.print(table)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show external service status and stored data coverage."""
    async def _run():
        from market_sentinel.core import StorageBackend, service_statuses
        from market_sentinel.quotes import JsonFileQuoteRepository

        config = _load_config(ctx)

        table = Table(title="Market Sentinel Status")
        table.add_column("Service", style="bold")
        table.add_column("Status")
        table.add_column("Detail")

        for svc in service_statuses(config):
            style = "green" if svc.status == "connected" else "red"
            table.add_row(svc.name, f"[{style}]{svc.status}[/{style}]", svc.error or "")

        table.add_section()
        table.add_row("Provider order", " -> ".join(config.providers.order), "")
        table.add_row("Symbols", ", ".join(config.symbols), "")
        table.add_row("Storage backend", config.storage.backend.value, config.storage.data_dir)

        if config.storage.backend == StorageBackend.JSON:
            summary = await JsonFileQuoteRepository(config.storage.data_dir).summary()
            table.add_row("Stored records", str(summary["total_records"]), "")
            table.add_row(
                "Date range",
                f"{summary['oldest_date']} → {summary['latest_date']}"
                if summary["total_records"] > 0
                else "N/A",
                "",
            )

        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
