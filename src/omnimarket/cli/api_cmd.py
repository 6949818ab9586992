"""API server command."""

import typer

from omnimarket.api.main import run_api

app = typer.Typer(help="Start the dashboard API (and the refresh loop)")


@app.callback(invoke_without_command=True)
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Bind host (default from config)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default from config)"),
    with_refresh: bool = typer.Option(
        True, "--with-refresh/--no-refresh", help="Run the periodic refresh loop in the same process",
    ),
) -> None:
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"]
    run_api(
        host=host or settings.api_host,
        port=port or settings.api_port,
        with_refresh=with_refresh,
        profile=ctx.obj["profile"],
        config_dir=ctx.obj["config_dir"],
    )


if __name__ == "__main__":
    app()
