"""CLI entry point for the order entry engine."""

from enum import Enum
from typing import Optional

import typer

from orderentry.cli import app as cli_app
from orderentry.config import get_config


class RunMode(str, Enum):
    cli = "cli"
    api = "api"


app = typer.Typer(
    help="Order entry tool - CLI or API mode.",
    no_args_is_help=False,
)
app.add_typer(cli_app, name="", help="Order entry CLI commands.")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    mode: RunMode = typer.Option(
        RunMode.cli,
        "--mode",
        case_sensitive=False,
        help="Run mode: cli (default) or api",
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="API bind address (default: API_HOST)"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", min=1, max=65535, help="API port (default: API_PORT)"
    ),
) -> None:
    """Order entry tool - CLI or API mode."""
    if mode is RunMode.api:
        import uvicorn

        # Fails fast on a bad catalog URL or timeout before the server binds.
        config = get_config()
        uvicorn.run(
            "orderentry.api:app",
            host=host or config.api_host,
            port=port or config.api_port,
            reload=False,
        )
        raise typer.Exit()

    if host is not None or port is not None:
        raise typer.BadParameter("--host/--port only apply to --mode api")

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


if __name__ == "__main__":
    app()
