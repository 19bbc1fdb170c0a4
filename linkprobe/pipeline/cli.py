"""CLI entry point for the link test worker and tools."""

import asyncio
import base64
import json
import logging
import sys
import uuid
from pathlib import Path

import typer
from aiohttp import web

from linkprobe.pipeline.exceptions import ExecutionError
from linkprobe.pipeline.models.config import ReportLimits, WorkerConfig
from linkprobe.pipeline.models.worker_protocol import RunRequest
from linkprobe.pipeline.report_builder import build_report
from linkprobe.pipeline.rules_loader import load_detection_rules
from linkprobe.pipeline.server import create_app
from linkprobe.pipeline.url_utils import is_http_url
from linkprobe.pipeline.worker import BrowserWorker
from linkprobe.pipeline.worker_client import WorkerClient

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Test affiliate links in a real browser.")

KINDS = ("quick_check", "cmp_test")


def _build_worker(rules: Path | None, config: WorkerConfig) -> BrowserWorker:
    """Create a browser worker, exiting on unreadable rules."""
    try:
        detection_rules = load_detection_rules(rules)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to load detection rules: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if rules is not None:
        logger.info(f"Loaded detection rules from {rules}")
    return BrowserWorker.from_rules(detection_rules, config)


@app.command()
def worker(
    host: str = typer.Option("0.0.0.0", help="Bind address"),  # noqa: S104
    port: int = typer.Option(8080, envvar="PORT", help="Listen port"),
    secret: str | None = typer.Option(
        None, envvar="LINKPROBE_WORKER_SECRET", help="Shared bearer token for /run"
    ),
    rules: Path | None = typer.Option(  # noqa: B008
        None, envvar="LINKPROBE_RULES", help="YAML detection rules file"
    ),
    execution_timeout: float = typer.Option(60.0, help="Seconds allowed per run"),
    navigation_timeout: float = typer.Option(45.0, help="Seconds allowed to load"),
) -> None:
    """Serve the browser worker control protocol."""
    config = WorkerConfig(
        host=host,
        port=port,
        shared_secret=secret,
        execution_timeout=execution_timeout,
        navigation_timeout=navigation_timeout,
    )
    browser_worker = _build_worker(rules, config)
    if not secret:
        logger.warning("No shared secret configured, /run accepts any caller")

    logger.info(f"Worker listening on {host}:{port}")
    web.run_app(create_app(browser_worker, secret), host=host, port=port)


@app.command()
def check(
    url: str = typer.Argument(..., help="Link to test"),
    kind: str = typer.Option("quick_check", help="quick_check or cmp_test"),
    rules: Path | None = typer.Option(  # noqa: B008
        None, envvar="LINKPROBE_RULES", help="YAML detection rules file"
    ),
    screenshot: Path | None = typer.Option(  # noqa: B008
        None, help="Write the final screenshot PNG here"
    ),
) -> None:
    """Run one test in-process and print its trimmed report."""
    if kind not in KINDS:
        typer.echo(
            f"Error: Unknown kind: {kind}. Must be one of: {', '.join(KINDS)}",
            err=True,
        )
        raise typer.Exit(code=1)
    if not is_http_url(url):
        typer.echo(f"Error: Invalid URL: {url}", err=True)
        raise typer.Exit(code=1)

    browser_worker = _build_worker(rules, WorkerConfig())
    request = RunRequest(
        id=uuid.uuid4().hex, url=url, kind=kind  # type: ignore[arg-type]
    )

    try:
        result = asyncio.run(browser_worker.execute(request))
    except ExecutionError as e:
        logger.error(f"Test failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception("Test run crashed")
        typer.echo(f"Error: {str(e) or type(e).__name__}", err=True)
        raise typer.Exit(code=1)

    if screenshot is not None and result.screenshot:
        try:
            screenshot.write_bytes(base64.b64decode(result.screenshot))
        except OSError as e:
            typer.echo(f"Error: Could not write screenshot: {e}", err=True)
            raise typer.Exit(code=1)
        logger.info(f"Screenshot written to {screenshot}")

    report = build_report(request.kind, result, ReportLimits())
    typer.echo(json.dumps(report.to_json_dict(), indent=2))


@app.command()
def health(
    worker_url: str = typer.Option(
        ..., envvar="BROWSER_WORKER_URL", help="Base URL of the worker"
    ),
    timeout: float = typer.Option(10.0, help="Seconds to wait"),
) -> None:
    """Probe a running worker's health endpoint."""
    client = WorkerClient(worker_url, timeout=timeout)
    try:
        response = asyncio.run(client.health())
    except ExecutionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(response.to_json_dict()))


if __name__ == "__main__":  # pragma: no cover
    app()
