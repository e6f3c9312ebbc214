"""Click-based CLI for factor-data.

Thin wrapper around the registry and cache. Every command builds a registry
from configuration, runs one operation, prints the result and closes the
cache.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, timedelta

import click
import pandas as pd
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    from factor_data.core import DataError

    try:
        return asyncio.run(coro)
    except DataError as e:
        raise click.ClickException(str(e)) from e


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call, and set up logging."""
    if "config" not in ctx.obj:
        from factor_data.core import DataError, load_config

        try:
            config = load_config(config_path=ctx.obj.get("config_path"))
        except DataError as e:
            raise click.ClickException(str(e)) from e
        level = logging.DEBUG if ctx.obj.get("verbose") else config.log_level
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        ctx.obj["config"] = config
    return ctx.obj["config"]


async def _create_registry_async(config):
    from factor_data.registry import create_registry

    return await create_registry(config)


async def _close_cache(registry) -> None:
    close = getattr(registry.cache, "close", None)
    if close is not None:
        await close()


def _parse_date(value: str, option: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint=option)


def _require_persistent(config, command: str) -> None:
    """Maintenance commands only make sense for a cache that outlives the process."""
    from factor_data.core import CacheBackend

    if config.cache.backend != CacheBackend.SQLITE:
        raise click.ClickException(
            f"cache {command}: the {config.cache.backend.value} cache does not persist "
            "between runs, there is nothing to maintain (set cache.backend: sqlite)"
        )


def _fmt(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, float):
        return f"{value:,.4f}" if abs(value) < 1e6 else f"{value:,.0f}"
    return str(value)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FACTOR_DATA_CONFIG",
    default=None,
    help="Path to factor-data.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="factor-data")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """factor-data: cached, multi-source market and fundamental data."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# ohlcv
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.option("--start", "-s", type=str, required=True, help="Start date (YYYY-MM-DD).")
@click.option("--end", "-e", type=str, required=True, help="End date (YYYY-MM-DD).")
@click.option(
    "--frequency",
    "-f",
    type=click.Choice(["1d", "1wk", "1mo"], case_sensitive=False),
    default="1d",
    help="Bar frequency.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def ohlcv(
    ctx: click.Context,
    symbols: tuple[str, ...],
    start: str,
    end: str,
    frequency: str,
    output_format: str,
) -> None:
    """Fetch OHLCV bars for one or more SYMBOLS.

    A single symbol goes through the cache; several symbols are fetched as
    one batch straight from the sources.
    """
    from factor_data.core import DataFrequency

    config = _load_config(ctx)
    start_date = _parse_date(start, "--start")
    end_date = _parse_date(end, "--end")
    if start_date > end_date:
        raise click.BadParameter("start must not be after end", param_hint="--start")
    freq = DataFrequency(frequency.lower())

    async def _run():
        registry = await _create_registry_async(config)
        try:
            if len(symbols) == 1:
                return await registry.fetch_ohlcv(symbols[0], start_date, end_date, freq)
            return await registry.fetch_ohlcv_batch(list(symbols), start_date, end_date, freq)
        finally:
            await _close_cache(registry)

    frame = _run_async(_run())

    if output_format == "json":
        records = frame.assign(date=frame["date"].astype(str))
        click.echo(records.to_json(orient="records", indent=2))
    elif output_format == "csv":
        click.echo(frame.to_csv(index=False), nl=False)
    else:
        _output_ohlcv_table(frame)


def _output_ohlcv_table(frame: pd.DataFrame) -> None:
    """Render an OHLCV frame as a Rich table."""
    table = Table(title=f"OHLCV ({len(frame)} bars)")
    table.add_column("Symbol", style="bold")
    table.add_column("Date")
    for col in ("Open", "High", "Low", "Close", "Volume", "Adj Close"):
        table.add_column(col, justify="right")

    for row in frame.to_dict("records"):
        table.add_row(
            str(row.get("symbol", "")),
            str(row["date"]),
            _fmt(row["open"]),
            _fmt(row["high"]),
            _fmt(row["low"]),
            _fmt(row["close"]),
            f"{row['volume']:,.0f}",
            _fmt(row.get("adjusted_close")),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# financials / metrics
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbol")
@click.option(
    "--period",
    "-p",
    type=click.Choice(["annual", "quarterly"], case_sensitive=False),
    default="annual",
    help="Reporting period.",
)
@click.option("--limit", "-n", type=int, default=None, help="Most recent N statements.")
@click.pass_context
def financials(ctx: click.Context, symbol: str, period: str, limit: int | None) -> None:
    """Fetch financial statements for SYMBOL.

    No fundamental source ships with factor-data, so this command fails with
    "Provider not configured" unless the registry is extended with one
    through DataSourceRegistry.register_fundamental.
    """
    from factor_data.core import PeriodType

    config = _load_config(ctx)

    async def _run():
        registry = await _create_registry_async(config)
        try:
            return await registry.fetch_financials(symbol, PeriodType(period.lower()), limit)
        finally:
            await _close_cache(registry)

    statements = _run_async(_run())
    output = [s.model_dump(mode="json", exclude_none=True) for s in statements]
    click.echo(json.dumps(output, indent=2))


@cli.command()
@click.argument("symbol")
@click.option("--date", "-d", "as_of", type=str, default=None, help="As-of date (YYYY-MM-DD).")
@click.pass_context
def metrics(ctx: click.Context, symbol: str, as_of: str | None) -> None:
    """Fetch key metrics for SYMBOL as of a date (default: today).

    Like `financials`, this needs a fundamental source registered through
    DataSourceRegistry.register_fundamental; none is bundled.
    """
    config = _load_config(ctx)
    as_of_date = _parse_date(as_of, "--date") if as_of else date.today()

    async def _run():
        registry = await _create_registry_async(config)
        try:
            return await registry.fetch_metrics(symbol, as_of_date)
        finally:
            await _close_cache(registry)

    result = _run_async(_run())

    table = Table(title=f"Key metrics: {result.symbol} @ {result.date}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for name, value in result.model_dump(exclude={"symbol", "date"}, exclude_none=True).items():
        table.add_row(name, _fmt(value))
    console.print(table)


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


@cli.group()
def cache() -> None:
    """Maintain the configured cache."""


@cache.command("clear")
@click.pass_context
def cache_clear(ctx: click.Context) -> None:
    """Remove every cached entry."""
    from factor_data.cache import create_cache

    config = _load_config(ctx)
    _require_persistent(config, "clear")

    async def _run():
        backend = await create_cache(config.cache)
        try:
            await backend.clear()
        finally:
            close = getattr(backend, "close", None)
            if close is not None:
                await close()

    _run_async(_run())
    console.print(f"[green]✓[/green] Cleared {config.cache.backend.value} cache")


@cache.command("invalidate")
@click.option(
    "--ttl",
    type=int,
    default=None,
    help="Max entry age in seconds (default: cache.ttl_seconds).",
)
@click.pass_context
def cache_invalidate(ctx: click.Context, ttl: int | None) -> None:
    """Remove entries older than the TTL."""
    from factor_data.cache import create_cache

    config = _load_config(ctx)
    _require_persistent(config, "invalidate")
    if ttl is not None and ttl < 0:
        raise click.BadParameter("must be >= 0", param_hint="--ttl")
    max_age = timedelta(seconds=ttl) if ttl is not None else config.cache.ttl

    async def _run():
        backend = await create_cache(config.cache)
        try:
            return await backend.invalidate_stale(max_age)
        finally:
            close = getattr(backend, "close", None)
            if close is not None:
                await close()

    removed = _run_async(_run())
    console.print(
        f"[green]✓[/green] Removed {removed} stale entries "
        f"(older than {int(max_age.total_seconds())}s)"
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configured cache and registered sources."""
    config = _load_config(ctx)

    async def _run():
        registry = await _create_registry_async(config)
        try:
            health_check = getattr(registry.cache, "health_check", None)
            healthy = await health_check() if health_check is not None else True
            return registry, healthy
        finally:
            await _close_cache(registry)

    registry, healthy = _run_async(_run())

    table = Table(title="factor-data Status")
    table.add_column("Setting", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Cache backend", config.cache.backend.value)
    if config.cache.backend.value == "sqlite":
        table.add_row("Database path", config.cache.sqlite_path)
    table.add_row("Cache TTL", f"{config.cache.ttl_seconds}s")
    table.add_row("Cache healthy", "yes" if healthy else "[red]no[/red]")
    table.add_section()
    table.add_row("Price sources", ", ".join(registry.price_sources) or "none")
    table.add_row("Fundamental sources", ", ".join(registry.fundamental_sources) or "none")
    table.add_row("Log level", config.log_level)

    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
