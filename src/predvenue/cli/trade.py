"""Trade subcommand: bet, close, positions, top-up."""

from __future__ import annotations

import asyncio

import typer

from predvenue.config.settings import Settings
from predvenue.pricing.policy import format_amount
from predvenue.trading.coordinator import DispatchResult
from predvenue.venue.manager import VenueManager

app = typer.Typer(help="Place and close bets as the local user")


async def _apply(settings: Settings, op) -> tuple[DispatchResult | None, VenueManager]:
    venue = VenueManager(settings)
    venue.hydrate()
    try:
        result = op(venue)
        await venue.settle()
        if result is not None:
            outcome = venue.reconciler.pop_outcome(result.action_id)
            if outcome is not None and not outcome.accepted:
                result = outcome
    finally:
        await venue.close()
    return result, venue


def _report(result: DispatchResult | None, venue: VenueManager) -> None:
    if result is not None and not result.accepted:
        typer.echo(f"Rejected ({result.code}): {result.message}")
        raise typer.Exit(1)
    if venue.state.last_message:
        typer.echo(venue.state.last_message)
    typer.echo(f"Balance: {format_amount(venue.state.account.balance)}")


@app.command("bet")
def bet(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market ID"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="home, draw or away"),
    amount: float = typer.Option(..., "--amount", "-a", help="Stake"),
) -> None:
    """Place a bet and wait for the store to confirm it."""
    if outcome not in ("home", "draw", "away"):
        typer.echo("--outcome must be one of home, draw, away")
        raise typer.Exit(1)
    result, venue = asyncio.run(
        _apply(ctx.obj["settings"], lambda v: v.place_bet(market, outcome, amount))
    )
    _report(result, venue)


@app.command("close")
def close(
    ctx: typer.Context,
    position_id: str = typer.Argument(..., help="Position ID (see `trade positions`)"),
) -> None:
    """Sell a whole position back to the market maker."""
    result, venue = asyncio.run(_apply(ctx.obj["settings"], lambda v: v.close_position(position_id)))
    _report(result, venue)


@app.command("positions")
def positions(ctx: typer.Context) -> None:
    """List the local user's open positions."""
    _, venue = asyncio.run(_apply(ctx.obj["settings"], lambda v: None))
    for p in venue.positions():
        typer.echo(
            f"  {p.id}  {p.market_id:<10} {p.outcome_id:<5} shares={p.shares:.3f} "
            f"avg={p.avg_price:.4f} spent={format_amount(p.amount_spent)}"
        )
    typer.echo(f"Total: {len(venue.positions())} positions  Balance: {format_amount(venue.state.account.balance)}")


@app.command("top-up")
def top_up(
    ctx: typer.Context,
    amount: float = typer.Option(..., "--amount", "-a", help="Amount to credit"),
) -> None:
    """Credit the local user's account."""
    def credit(venue: VenueManager) -> None:
        venue.top_up(amount)

    _, venue = asyncio.run(_apply(ctx.obj["settings"], credit))
    typer.echo(f"Balance: {format_amount(venue.state.account.balance)}")
