"""Sim subcommand: run synthetic order flow against the store."""

from __future__ import annotations

import asyncio

import typer

from predvenue.models.market import OUTCOME_ORDER
from predvenue.pricing.lmsr import probabilities
from predvenue.pricing.policy import format_percentage
from predvenue.venue.manager import VenueManager

app = typer.Typer(help="Synthetic trader simulation")


async def _run(venue: VenueManager, seconds: float) -> None:
    try:
        await venue.run_simulation(seconds)
    finally:
        await venue.close()


@app.command("run")
def run_sim(
    ctx: typer.Context,
    seconds: float = typer.Option(10.0, "--seconds", "-s", help="How long to run"),
) -> None:
    """Run synthetic traders for a while and print the resulting prices."""
    settings = ctx.obj["settings"]
    venue = VenueManager(settings)
    venue.hydrate()
    asyncio.run(_run(venue, seconds))
    stats = venue.driver.stats
    typer.echo(
        f"Ticks: {stats.ticks}  Trades: {stats.dispatched}  Rejected: {stats.rejected}  Shocks: {stats.shocks}"
    )
    typer.echo(f"Confirms: {venue.reconciler.confirmed}  Failed: {venue.reconciler.failed}")
    for m in venue.markets():
        probs = probabilities(m)
        prices = "  ".join(f"{o}={format_percentage(probs[o])}" for o in OUTCOME_ORDER)
        typer.echo(f"  {m.id:<10} {prices}")
