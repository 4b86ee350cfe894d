"""API server command."""

import typer

from predvenue.api.main import run_api

app = typer.Typer(help="Serve the venue over HTTP")


@app.callback(invoke_without_command=True)
def api(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    simulate: bool = typer.Option(False, "--simulate", help="Start synthetic order flow on startup"),
) -> None:
    """Run uvicorn with the settings resolved by the root command."""
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"] if ctx.obj else None
    run_api(host=host, port=port, settings=settings, simulate=simulate)
