"""CLI interface for order entry drafts and catalog checks."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .catalog import HttpCatalogLookup, InMemoryCatalogLookup, build_catalog_lookup
from .config import OrderEntryConfig, get_config
from .exceptions import VerificationTransportError
from .form import OrderEntryForm
from .persistence import DraftPersistence
from .repositories.file import JsonFileDraftStore

app = typer.Typer(
    name="orderentry",
    help="""
    [bold]Order Entry CLI[/bold]

    Inspect persisted order drafts and check barcodes against the catalog.

    [cyan]Examples:[/cyan]
      orderentry check 8901234567890
      orderentry show-draft --draft-id default
      orderentry clear-draft --draft-id default
    """,
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

_STATUS_STYLE = {
    "pending": "dim",
    "checking": "yellow",
    "valid": "green",
    "invalid": "red",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _draft_persistence(
    config: OrderEntryConfig, draft_id: str, draft_dir: Optional[Path]
) -> DraftPersistence:
    store = JsonFileDraftStore(draft_dir or config.draft_dir)
    return DraftPersistence(store, config.draft_key(draft_id))


@app.command()
def check(
    barcode: str = typer.Argument(..., help="Barcode to look up"),
    mock: bool = typer.Option(
        False,
        "--mock",
        help="Use the in-memory catalog (MOCK_KNOWN_BARCODES) instead of the products service",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Check whether a barcode exists in the catalog."""
    _configure_logging(verbose)
    config = get_config()

    if mock:
        lookup = InMemoryCatalogLookup(config.get_known_barcodes())
    else:
        lookup = build_catalog_lookup(config)

    async def _run() -> bool:
        try:
            outcome = await lookup.check_exists(barcode.strip())
        finally:
            if isinstance(lookup, HttpCatalogLookup):
                await lookup.aclose()
        return outcome.exists

    try:
        exists = asyncio.run(_run())
    except VerificationTransportError as e:
        console.print(f"[bold red]✗ Verification failed:[/bold red] {e}")
        raise typer.Exit(code=1)

    if exists:
        console.print(f"[bold green]✓ {barcode.strip()} exists[/bold green]")
    else:
        console.print(f"[bold yellow]✗ Product with barcode: {barcode.strip()} not found[/bold yellow]")
        raise typer.Exit(code=2)


@app.command("show-draft")
def show_draft(
    draft_id: str = typer.Option("default", "--draft-id", help="Draft session id"),
    draft_dir: Optional[Path] = typer.Option(
        None, "--draft-dir", help="Draft directory (default: DRAFT_DIR)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the draft as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Show a persisted draft with its row states and errors."""
    _configure_logging(verbose)
    config = get_config()
    persistence = _draft_persistence(config, draft_id, draft_dir)
    form = OrderEntryForm(config, InMemoryCatalogLookup(), persistence=persistence)

    if not form.restored:
        console.print(f"[yellow]No draft found for {draft_id}[/yellow]")
        return

    view = form.view(draft_id)
    if as_json:
        print(json.dumps(view.model_dump(mode="json"), indent=2))
        return

    table = Table(title=f"Draft {draft_id}")
    table.add_column("#", justify="right")
    table.add_column("Barcode")
    table.add_column("Qty", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column("Status")
    table.add_column("Errors")
    for row in view.rows:
        style = _STATUS_STYLE.get(row.validation.status, "")
        status = row.validation.status
        if row.validation.reason:
            status = f"{status} ({row.validation.reason})"
        table.add_row(
            str(row.position),
            row.barcode,
            row.quantity,
            row.unit_price,
            f"[{style}]{status}[/{style}]" if style else status,
            "; ".join(row.errors.values()),
        )
    console.print(table)

    if view.is_valid:
        console.print("[bold green]✓ Ready to submit[/bold green]")
    else:
        console.print("[bold yellow]⚠️  Not ready to submit[/bold yellow]")


@app.command("clear-draft")
def clear_draft(
    draft_id: str = typer.Option("default", "--draft-id", help="Draft session id"),
    draft_dir: Optional[Path] = typer.Option(
        None, "--draft-dir", help="Draft directory (default: DRAFT_DIR)"
    ),
):
    """Delete a persisted draft."""
    config = get_config()
    _draft_persistence(config, draft_id, draft_dir).clear()
    console.print(f"[dim]Cleared draft {draft_id}[/dim]")


@app.command()
def version():
    """Show version information."""
    console.print("orderentry version 0.1.0")


if __name__ == "__main__":
    app()
