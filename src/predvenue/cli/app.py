"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predvenue import __version__
from predvenue.config import get_settings
from predvenue.config.settings import configure_logging

app = typer.Typer(
    name="predvenue",
    help="PredVenue - simulated 1X2 prediction market with LMSR pricing and synthetic order flow.",
    no_args_is_help=True,
)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"predvenue {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
    db: Path | None = typer.Option(None, "--db", help="DuckDB file, overrides [storage] db_path"),
    log_level: str | None = typer.Option(None, "--log-level", help="Overrides [logging] level"),
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Resolve settings once; every subcommand reads them from ctx.obj."""
    settings = get_settings(profile, config_dir)
    if db is not None:
        settings.storage = {**settings.storage, "db_path": str(db)}
    if log_level is not None:
        settings.logging = {**settings.logging, "level": log_level}
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from predvenue.cli import api_cmd, markets, sim, trade  # noqa: E402

app.add_typer(markets.app, name="markets")
app.add_typer(trade.app, name="trade")
app.add_typer(sim.app, name="sim")
app.add_typer(api_cmd.app, name="api")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
