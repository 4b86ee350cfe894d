"""Markets subcommand: seed, list, show."""

from __future__ import annotations

import random
from datetime import datetime

import typer

from predvenue.models.market import OUTCOME_ORDER
from predvenue.pricing.lmsr import market_b, probabilities
from predvenue.pricing.policy import bet_cap, format_amount, format_percentage
from predvenue.storage.store import DuckDBStore

app = typer.Typer(help="Market seeding and listing")


@app.command("seed")
def seed(
    ctx: typer.Context,
    seed: int | None = typer.Option(None, "--seed", help="RNG seed for the opening pools"),
) -> None:
    """Create the starting fixtures if the store is empty."""
    settings = ctx.obj["settings"]
    store = DuckDBStore.open(settings.db_path)
    try:
        n = store.seed(rng=random.Random(seed))
        typer.echo(f"Seeded {n} markets." if n else "Store already has markets; nothing seeded.")
    finally:
        store.close()


@app.command("list")
def list_markets(ctx: typer.Context) -> None:
    """List markets with current prices."""
    settings = ctx.obj["settings"]
    store = DuckDBStore.open(settings.db_path)
    try:
        markets = store.load_markets(settings.history_limit)
        for m in markets:
            probs = probabilities(m)
            prices = "  ".join(f"{o}={format_percentage(probs[o])}" for o in OUTCOME_ORDER)
            typer.echo(f"  {m.id:<10} {m.home_team} v {m.away_team:<20} {prices}")
        typer.echo(f"Total: {len(markets)} markets")
    finally:
        store.close()


@app.command("show")
def show(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show pools, limits and recent history for one market."""
    settings = ctx.obj["settings"]
    store = DuckDBStore.open(settings.db_path)
    try:
        market = next((m for m in store.load_markets(settings.history_limit) if m.id == market_id), None)
        if market is None:
            typer.echo(f"Market not found: {market_id}")
            raise typer.Exit(1)
        probs = probabilities(market)
        typer.echo(f"{market.league}: {market.home_team} v {market.away_team}  ({market.start_time})")
        typer.echo(f"Liquidity: {format_amount(market.liquidity)}  b: {market_b(market):.1f}  Max bet: {format_amount(bet_cap(market))}")
        for o in market.outcomes:
            typer.echo(f"  {o.label:<6} pool={o.pool:10.2f}  p={format_percentage(probs[o.id])}")
        typer.echo(f"History ({len(market.history)} points):")
        for snap in market.history[-10:]:
            ts = datetime.fromtimestamp(snap.timestamp / 1000).strftime("%H:%M:%S")
            row = "  ".join(format_percentage(snap.probabilities.get(o, 0.0)) for o in OUTCOME_ORDER)
            typer.echo(f"  {ts}  {row}")
    finally:
        store.close()
