#!/usr/bin/env python3
"""
Command-line interface for the HTTP Trace SDK.

This module provides a command-line interface using typer and rich for
making traced HTTP calls and inspecting stored debugging payloads.
"""

import json
from pathlib import Path
from typing import List, Optional

import httpx
import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from http_trace_sdk.collector import TraceCollector
from http_trace_sdk.common.config import HttpTraceConfig, load_config, save_config
from http_trace_sdk.common.errors import RequestNotFoundError, StorageError
from http_trace_sdk.common.logger import get_logger
from http_trace_sdk.request import DebugRequest
from http_trace_sdk.storage import JsonlStorage, MemoryStorage

app = typer.Typer(
    name="http-trace",
    help="Record outgoing HTTP calls and inspect debugging payloads",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__)


def _inner_transport(ctx: typer.Context) -> Optional[httpx.BaseTransport]:
    """
    Transport wrapped by the tracing transport.

    Embedding applications pass one through the context object,
    ``app(obj={"transport": transport})``; None selects the httpx default.
    """
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    return obj.get("transport")


def _error_panel(message: str) -> Panel:
    return Panel(
        f"[red]✗ {message}[/red]",
        title="[bold red]Error[/bold red]",
        box=box.ROUNDED,
        border_style="red",
    )


def _parse_headers(values: List[str]) -> List[tuple]:
    headers = []
    for value in values:
        if ":" not in value:
            raise typer.BadParameter(f"Header must look like 'Name: value', got '{value}'")
        name, _, header_value = value.partition(":")
        headers.append((name.strip(), header_value.strip()))
    return headers


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    if size < 1024:
        return f"{size} B"
    return f"{size / 1024:.1f} KB"


def _render_request(debug_request: DebugRequest) -> None:
    console.print(Rule(f"[bold cyan]{debug_request.method or ''} {debug_request.uri or ''}[/bold cyan]"))
    console.print(f"[bold]Request ID:[/bold] {debug_request.id}")

    table = Table(title="HTTP Calls", box=box.ROUNDED)
    table.add_column("Method", style="cyan")
    table.add_column("URL", overflow="fold")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Downloaded", justify="right")

    for record in debug_request.http_requests:
        if record.error:
            status = f"[red]{record.error}[/red]"
        elif record.response is not None:
            style = "green" if record.response.status < 400 else "yellow"
            status = f"[{style}]{record.response.status}[/{style}]"
        else:
            status = "[dim]pending[/dim]"
        duration = f"{record.duration:.1f} ms" if record.duration is not None else "-"
        size = record.stats.size.download if record.stats else None
        table.add_row(record.request.method, record.request.url, status, duration, _format_size(size))

    console.print(table)

    for record in debug_request.http_requests:
        timing = record.stats.timing if record.stats else None
        if timing is not None:
            console.print(
                f"[dim]{record.request.url}: lookup {timing.lookup:.1f} ms, "
                f"connect {timing.connect:.1f} ms, waiting {timing.waiting:.1f} ms, "
                f"transfer {timing.transfer:.1f} ms[/dim]"
            )


@app.command()
def init(
    output: str = typer.Option(
        "http_trace.yaml",
        "--output", "-o",
        help="Output file path"
    )
):
    """
    Write a configuration file with the default settings.
    """
    output_path = Path(output)

    if output_path.exists():
        console.print(f"[yellow]⚠[/yellow]  File [cyan]{output_path}[/cyan] already exists.")
        if not typer.confirm("  Overwrite?", default=False):
            console.print("[dim]Cancelled[/dim]")
            raise typer.Abort()

    try:
        save_config(HttpTraceConfig(), str(output_path))
    except OSError as e:
        console.print(_error_panel(f"Failed to write configuration:\n\n{e}"))
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Configuration written to [cyan]{output_path}[/cyan]")


@app.command()
def validate(
    file: str = typer.Argument(..., help="Path to configuration YAML file")
):
    """
    Validate a configuration file.
    """
    try:
        config = load_config(file)
    except FileNotFoundError:
        console.print(_error_panel(f"File not found:\n\n{file}"))
        raise typer.Exit(1)
    except (ValidationError, ValueError) as e:
        console.print(_error_panel(f"Validation failed:\n\n{e}"))
        raise typer.Exit(1)

    table = Table(title="Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Enabled", str(config.enabled))
    table.add_row("Storage", f"{config.storage.driver} ({config.storage.path})")
    table.add_row("Ignored URLs", str(len(config.ignored_urls)))
    table.add_row("Redacted headers", ", ".join(config.redact_headers) or "-")
    table.add_row("Payload API", config.web.path_prefix)
    console.print(table)
    console.print("[green]✓ Validation passed![/green]")


@app.command()
def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to request"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    header: List[str] = typer.Option([], "--header", "-H", help="Request header 'Name: value'"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration YAML file"),
    save: Optional[str] = typer.Option(None, "--save", help="Append the payload to a JSONL store"),
    timeout: float = typer.Option(30.0, "--timeout", help="Timeout in seconds"),
    follow_redirects: bool = typer.Option(False, "--follow-redirects", "-L", help="Follow redirects"),
    json_output: bool = typer.Option(False, "--json", help="Print the payload as JSON"),
):
    """
    Make an HTTP call through a traced client and show what was recorded.
    """
    try:
        settings = load_config(config)
    except (FileNotFoundError, ValidationError, ValueError) as e:
        console.print(_error_panel(f"Invalid configuration:\n\n{e}"))
        raise typer.Exit(1)

    storage = JsonlStorage(save) if save else MemoryStorage()
    collector = TraceCollector(config=settings, storage=storage)
    debug_request = collector.start_request("CLI", f"{method.upper()} {url}")

    status = None
    failed = False
    with collector.client(
        transport=_inner_transport(ctx),
        timeout=timeout,
        follow_redirects=follow_redirects,
    ) as client:
        try:
            response = client.request(
                method.upper(),
                url,
                headers=_parse_headers(header),
                content=data.encode("utf-8") if data is not None else None,
            )
            status = response.status_code
        except httpx.InvalidURL as e:
            console.print(_error_panel(f"Invalid URL:\n\n{e}"))
            raise typer.Exit(1)
        except httpx.HTTPError as e:
            failed = True
            logger.debug(f"Request to {url} failed: {e}")

    try:
        debug_request = collector.finish_request(debug_request, status=status)
    except StorageError as e:
        console.print(_error_panel(str(e)))
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(debug_request.to_dict(), indent=2, ensure_ascii=False))
    else:
        _render_request(debug_request)

    if failed:
        raise typer.Exit(1)


@app.command()
def show(
    file: str = typer.Argument(..., help="JSONL store written by --save or the jsonl driver"),
    request_id: Optional[str] = typer.Option(None, "--id", help="Request ID (latest by default)"),
    json_output: bool = typer.Option(False, "--json", help="Print the payload as JSON"),
):
    """
    Show a stored debugging payload.
    """
    storage = JsonlStorage(file)
    try:
        debug_request = storage.find(request_id) if request_id else storage.latest()
    except RequestNotFoundError as e:
        console.print(_error_panel(str(e)))
        raise typer.Exit(1)

    if debug_request is None:
        console.print(_error_panel(f"No requests stored in {file}"))
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(debug_request.to_dict(), indent=2, ensure_ascii=False))
    else:
        _render_request(debug_request)


@app.command()
def serve(
    file: str = typer.Argument(..., help="JSONL store to serve"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8765, "--port", help="Port to listen on"),
    prefix: str = typer.Option("/__trace", "--prefix", help="Payload API prefix"),
):
    """
    Serve a JSONL store over the payload API.
    """
    import uvicorn

    from http_trace_sdk.web import create_app

    console.print(f"[bold cyan]Serving[/bold cyan] {file} at http://{host}:{port}{prefix}")
    uvicorn.run(create_app(JsonlStorage(file), prefix=prefix), host=host, port=port)


if __name__ == "__main__":
    app()
