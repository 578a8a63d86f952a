"""
Command-line interface for Org Pulse.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from org_pulse.batch import ProgressStream, analyze_companies
from org_pulse.config import (
    get_window_days,
    set_batch_size,
    set_verify_ssl,
    set_window_days,
)
from org_pulse.core import default_since
from org_pulse.models import CompanyInput, CompanyResult, EventType

# --- Typer App ---
app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

# --- Helper Functions ---


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_companies(path: Path) -> list[CompanyInput]:
    """Load a JSON array of {company_name, github_org_url} objects.

    Raises:
        ValueError: If the file is not a JSON array of objects.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, list) or not data:
        raise ValueError(f"{path} must contain a non-empty JSON array")
    if not all(isinstance(entry, dict) for entry in data):
        raise ValueError(f"Every entry in {path} must be an object")

    return [CompanyInput.from_dict(entry) for entry in data]


def display_results(results: list[CompanyResult]):
    """Display the analysis results in a rich table."""
    table = Table(title=f"Org Pulse Report (last {get_window_days()} days)")
    table.add_column("Company", justify="left", style="cyan", no_wrap=True)
    table.add_column("Most Active Repo", justify="left")
    table.add_column("Commits", justify="right", style="magenta")
    table.add_column("Top Contributor", justify="left")
    table.add_column("Notes", justify="left")

    for result in results:
        if result.error:
            notes = f"[red]{result.error}[/red]"
        elif result.commit_count == 0:
            notes = "[yellow]No recent activity[/yellow]"
        else:
            notes = ""

        repo = result.most_active_repo
        if result.most_active_repo_url.startswith("http"):
            repo = f"[link={result.most_active_repo_url}]{repo}[/link]"

        table.add_row(
            result.company_name,
            repo,
            str(result.commit_count),
            result.top_contributor,
            notes,
        )

    console.print(table)


async def _run_with_progress(
    token: str, companies: list[CompanyInput], since: str, quiet: bool
) -> list[CompanyResult]:
    stream = ProgressStream()
    batch = asyncio.create_task(analyze_companies(token, companies, since, stream))
    batch.add_done_callback(lambda _: stream.finish())

    async for event in stream.events():
        if quiet:
            continue
        counter = f"[dim]({event.completed}/{event.total})[/dim]"
        if event.type is EventType.ERROR:
            console.print(f"{counter} [red]{event.message}[/red]")
        elif event.type is EventType.RESULT:
            console.print(f"{counter} [green]{event.message}[/green]")
        elif event.type is EventType.DONE:
            console.print(f"[bold]{event.message}[/bold]")
        else:
            console.print(f"{counter} [dim]{event.message}[/dim]")

    return await batch


# --- Commands ---


@app.command()
def analyze(
    companies_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="JSON file with an array of {company_name, github_org_url} objects.",
    ),
    token: str | None = typer.Option(
        None,
        "--token",
        "-t",
        help="GitHub token. Defaults to the GITHUB_TOKEN environment variable.",
    ),
    window_days: int | None = typer.Option(
        None,
        "--window-days",
        min=1,
        help="Length of the trailing activity window in days.",
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        min=1,
        help="Number of companies analyzed concurrently.",
    ),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        help="Disable SSL certificate verification.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print results as JSON instead of a table.",
    ),
):
    """Find each company's most active repository and top contributor."""
    configure_logging(verbose)

    token = token or os.getenv("GITHUB_TOKEN")
    if not token:
        console.print(
            "[red]A GitHub token is required. Pass --token or set GITHUB_TOKEN.[/red]"
        )
        raise typer.Exit(code=1)

    try:
        companies = load_companies(companies_file)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    if insecure:
        set_verify_ssl(False)
    if window_days is not None:
        set_window_days(window_days)
    if batch_size is not None:
        set_batch_size(batch_size)

    try:
        since = default_since()
        results = asyncio.run(
            _run_with_progress(token, companies, since, quiet=as_json)
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    if as_json:
        print(json.dumps([result.to_dict() for result in results], indent=2))
    else:
        display_results(results)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Run the streaming HTTP API."""
    import uvicorn

    configure_logging(verbose)
    uvicorn.run("org_pulse.server:app", host=host, port=port)


if __name__ == "__main__":
    app()
