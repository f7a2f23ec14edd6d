#!/usr/bin/env python3
"""Main CLI entry point for Browser Export using Typer.

Commands:

- ``config``: describe the environment variables read by the server
- ``start``: serve the HTTP API with uvicorn
- ``export``: export one page to PDF with a browser launched for the call
- ``example``: print an example export payload
- ``version``
"""

import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..config import ENVIRONMENT_VARIABLES, ConfigurationError, configure_logging, load_config
from ..export.browser_factory import BrowserConfig
from ..export.engine import DEFAULT_TIMEOUT_IN_SECONDS, export_document
from ..export.errors import BrowserExportError, ExportTimeoutError
from ..export.paper import AVAILABLE_PAPER_FORMATS
from ..models.export import EXAMPLE_PAYLOAD


class ExitCode(Enum):
    """CLI exit codes."""
    SUCCESS = 0
    EXPORT_FAILED = 1
    TIMEOUT = 2
    CONFIG_ERROR = 3


app = typer.Typer(
    name="browser-export",
    help="Browser Export - print rendered web pages to PDF with Headless Chromium",
    add_completion=False,
    rich_markup_mode="rich"
)


@app.callback()
def main():
    """
    Browser Export - print rendered web pages to PDF with Headless Chromium.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"Browser Export v{__version__}")


@app.command(name="config")
def show_config():
    """List the environment variables read by the server."""
    for name, spec in ENVIRONMENT_VARIABLES.items():
        typer.echo(name)
        typer.echo(f"    {spec['description']}")
        if "default" in spec:
            typer.echo(f"    default: {spec['default']}")
        if "dev_default" in spec:
            typer.echo(f"    development default: {spec['dev_default']}")


@app.command(name="example")
def show_example():
    """Print an example export payload."""
    typer.echo(json.dumps(EXAMPLE_PAYLOAD, indent=2))


@app.command()
def start(
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file")
    ] = None,

    env: Annotated[
        Optional[str],
        typer.Option("--env", "-e", help="Environment (production, development, test)")
    ] = None,

    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Interface to bind")
    ] = None,
):
    """
    Start the HTTP server.

    Settings are read from the environment, see the config command.
    """
    import uvicorn

    from ..api.main import create_app

    try:
        overrides = {"server": {"host": host}} if host else None
        config = load_config(
            config_path=str(config_file) if config_file else None,
            environment=env,
            overrides=overrides,
        )
    except ConfigurationError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    configure_logging(config.server.log_level)
    typer.echo(f"Serving on {config.server.host}:{config.server.port}")

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
        access_log=True,
    )


def build_payload(
    url: str,
    payload_file: Optional[Path],
    network_idle: bool,
    paper_format: Optional[str],
    landscape: bool,
) -> Dict[str, Any]:
    """Build the export payload from a JSON file and command-line flags."""
    payload: Dict[str, Any] = {}
    if payload_file:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))

    payload["url"] = url
    if paper_format:
        payload["paper"] = {"format": paper_format, "landscape": landscape}
    elif landscape:
        payload["paper"] = {"format": "letter", "landscape": True}
    if network_idle:
        payload["waitUntil"] = {"networkIdle": True}

    return payload


@app.command()
def export(
    url: Annotated[
        str,
        typer.Argument(help="URL of the page to export")
    ],

    out: Annotated[
        Path,
        typer.Option("--out", "-o", help="PDF file to write")
    ] = Path("export.pdf"),

    payload_file: Annotated[
        Optional[Path],
        typer.Option("--payload", "-p", help="JSON file with authentication, paper and waitUntil settings")
    ] = None,

    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Export timeout in seconds")
    ] = DEFAULT_TIMEOUT_IN_SECONDS,

    network_idle: Annotated[
        bool,
        typer.Option("--network-idle", help="Wait until there are no pending network requests")
    ] = False,

    paper_format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help=f"Paper format ({', '.join(AVAILABLE_PAPER_FORMATS)})")
    ] = None,

    landscape: Annotated[
        bool,
        typer.Option("--landscape", help="Landscape orientation")
    ] = False,

    chromium: Annotated[
        Optional[Path],
        typer.Option("--chromium", help="Chromium executable (Playwright's bundled one by default)")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log every export step")
    ] = False,
):
    """
    Export one page to PDF.

    Examples:

        # Letter paper, default timeout
        browser-export export https://example.com

        # A4 landscape once the network is idle
        browser-export export https://example.com --format a4 --landscape --network-idle -o report.pdf
    """
    configure_logging("debug" if verbose else "warning")

    if payload_file and not payload_file.exists():
        typer.echo(f"❌ Payload file not found: {payload_file}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    try:
        payload = build_payload(url, payload_file, network_idle, paper_format, landscape)
    except ValueError as e:
        typer.echo(f"❌ Invalid payload file: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    try:
        pdf = asyncio.run(export_document(
            payload,
            timeout,
            browser_config=BrowserConfig(executable_path=chromium),
        ))
    except ExportTimeoutError as e:
        typer.echo(f"❌ {e.message}", err=True)
        raise typer.Exit(code=ExitCode.TIMEOUT.value)
    except BrowserExportError as e:
        typer.echo(f"❌ Export failed: {e.message}", err=True)
        raise typer.Exit(code=ExitCode.EXPORT_FAILED.value)

    out.write_bytes(pdf)
    typer.echo(f"✅ Exported {url} to {out} ({len(pdf)} bytes)")


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    app()
