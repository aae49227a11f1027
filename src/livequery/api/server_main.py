#!/usr/bin/env python3
"""Command line interface for the live query server."""

import json
import logging
import sys
from pathlib import Path

import requests
import typer
import uvicorn
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from livequery.api.app import ServerSettings, create_app
from livequery.results.artifacts import DEFAULT_OUTPUT_DIR, ArtifactLoader
from livequery.results.metadata import BuildStateMetadataIndex

logger = logging.getLogger(__name__)

app = typer.Typer(help="Live Query Server - push query results to development clients")
console = Console()


def configure_logging(debug: bool) -> None:
    """Configure logging with Rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


@app.command()
def serve(
    project_root: Path | None = typer.Option(
        None, "--root", help="Root directory of the project being developed"
    ),
    metadata_file: Path | None = typer.Option(
        None, "--metadata", help="JSON snapshot of the pipeline's query metadata"
    ),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8765, "--port", help="Bind port"),
    output_dir: str | None = typer.Option(
        None, "--output-dir", help="Artifact directory under the root"
    ),
    page_delivery: str | None = typer.Option(
        None, "--page-delivery", help="'broadcast' or 'room'"
    ),
    max_connections: int | None = typer.Option(
        None, "--max-connections", help="Maximum concurrent clients"
    ),
    debug: bool | None = typer.Option(
        None, "--debug/--no-debug", help="Enable debug logging"
    ),
) -> None:
    """Start the live query server.

    Options left unset fall back to the LIVEQUERY_* environment, which may
    come from a .env file.
    """
    load_dotenv()

    if page_delivery is not None and page_delivery not in ("broadcast", "room"):
        console.print(f"[red]Invalid --page-delivery: {page_delivery}[/red]")
        raise typer.Exit(code=2)

    overrides = {
        "debug": debug,
        "project_root": str(project_root) if project_root else None,
        "output_dir": output_dir,
        "metadata_file": str(metadata_file) if metadata_file else None,
        "max_connections": max_connections,
        "page_delivery": page_delivery,
    }
    try:
        settings = ServerSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        console.print(f"[red]Invalid settings: {e}[/red]")
        raise typer.Exit(code=2) from e
    configure_logging(settings.debug)

    console.print(
        Panel.fit(
            f"[bold green]Starting Live Query Server[/bold green]\n"
            f"Root: {settings.project_root}\n"
            f"Metadata: {settings.metadata_file or '-'}\n"
            f"Page delivery: {settings.page_delivery}\n"
            f"Listening: ws://{host}:{port}/ws",
            title="Live Query Server",
            border_style="green",
        )
    )

    try:
        uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")


@app.command()
def inspect(
    metadata_file: Path = typer.Argument(..., help="JSON snapshot of query metadata"),
    project_root: Path = typer.Option(Path.cwd(), "--root", help="Project root"),
    output_dir: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output-dir"),
) -> None:
    """Show which pages and static queries have a persisted result."""
    try:
        index = BuildStateMetadataIndex.from_file(metadata_file)
    except (OSError, ValueError, KeyError) as e:
        console.print(f"[red]Could not read metadata: {e}[/red]")
        raise typer.Exit(code=1) from e

    loader = ArtifactLoader(project_root, output_dir=output_dir)

    def status(artifact_id: str | None) -> str:
        if artifact_id is None:
            return "[yellow]not run[/yellow]"
        if loader.artifact_path(artifact_id).exists():
            return "[green]cached[/green]"
        return "[red]missing[/red]"

    table = Table(title="Query Results", show_header=True, header_style="bold magenta")
    table.add_column("Kind", style="cyan")
    table.add_column("Key")
    table.add_column("Artifact")
    table.add_column("Status")

    for path in sorted(index.pages):
        artifact_id = index.page_artifact(path)
        table.add_row("page", path, artifact_id or "-", status(artifact_id))
    for query_hash, meta in sorted(index.shared_artifacts().items()):
        table.add_row(
            "static",
            f"{query_hash} ({meta.source_path})" if meta.source_path else query_hash,
            meta.artifact_id or "-",
            status(meta.artifact_id),
        )

    console.print(table)


@app.command()
def publish(
    result_file: Path = typer.Argument(..., help="JSON file holding the result value"),
    key: str = typer.Option(..., "--id", help="Page path or static query hash"),
    static: bool = typer.Option(False, "--static", help="Publish a static query result"),
    server: str = typer.Option("http://127.0.0.1:8765", "--server", help="Server URL"),
) -> None:
    """Push a result to a running server."""
    try:
        result = json.loads(result_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read {result_file}: {e}[/red]")
        raise typer.Exit(code=1) from e

    kind = "static" if static else "page"
    try:
        response = requests.post(
            f"{server.rstrip('/')}/api/v1/results/{kind}",
            json={"id": key, "result": result},
            timeout=10,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        console.print(f"[red]Publish failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Published {kind} result for {key}[/green]")


def main() -> None:
    app()


if __name__ == "__main__":
    sys.exit(main())
