"""HTTP control protocol for the browser worker."""

import hmac
import logging
from datetime import datetime, timezone

from aiohttp import web
from pydantic import ValidationError

from linkprobe.pipeline.exceptions import ExecutionError
from linkprobe.pipeline.models.worker_protocol import (
    ErrorResponse,
    HealthResponse,
    RunRequest,
)
from linkprobe.pipeline.url_utils import is_http_url
from linkprobe.pipeline.worker import BrowserWorker

logger = logging.getLogger(__name__)

WORKER_KEY = web.AppKey("worker", BrowserWorker)
SECRET_KEY = web.AppKey("shared_secret", str)

SUPPORTED_KINDS = ("quick_check", "cmp_test")


def _error(status: int, message: str) -> web.Response:
    return web.json_response(ErrorResponse(error=message).to_json_dict(), status=status)


def is_authorized(header: str | None, secret: str) -> bool:
    """Check a bearer Authorization header against the shared secret."""
    if not secret:
        return True
    if not header or not header.startswith("Bearer "):
        return False
    token = header[len("Bearer ") :]
    return hmac.compare_digest(token.encode(), secret.encode())


async def handle_health(request: web.Request) -> web.Response:
    """Liveness probe."""
    body = HealthResponse(timestamp=datetime.now(timezone.utc))
    return web.json_response(body.to_json_dict())


async def handle_run(request: web.Request) -> web.Response:
    """Validate a run request, execute it and map failures to status codes."""
    secret = request.app[SECRET_KEY]
    if not is_authorized(request.headers.get("Authorization"), secret):
        logger.warning(f"Rejected unauthorized run request from {request.remote}")
        return _error(401, "Unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Request body must be valid JSON")

    if not isinstance(payload, dict):
        return _error(400, "Request body must be a JSON object")

    if not payload.get("id") or not payload.get("url") or not payload.get("kind"):
        return _error(400, "id, url, and kind are required")

    if payload["kind"] not in SUPPORTED_KINDS:
        return _error(400, f"Unsupported kind: {payload['kind']}")

    if not isinstance(payload["url"], str) or not is_http_url(payload["url"]):
        return _error(400, f"Invalid URL: {payload['url']}")

    try:
        run_request = RunRequest.model_validate(payload)
    except ValidationError as e:
        return _error(400, f"Invalid run request: {e.error_count()} validation errors")

    worker = request.app[WORKER_KEY]
    try:
        result = await worker.execute(run_request)
    except ExecutionError as e:
        logger.error(f"Run {run_request.id} failed: {e}")
        return _error(500, str(e))
    except Exception as e:
        logger.exception(f"Run {run_request.id} crashed")
        return _error(500, str(e) or type(e).__name__)

    return web.json_response(result.to_json_dict())


def create_app(
    worker: BrowserWorker, shared_secret: str | None = None
) -> web.Application:
    """Build the worker web application."""
    app = web.Application(client_max_size=2 * 1024 * 1024)
    app[WORKER_KEY] = worker
    app[SECRET_KEY] = shared_secret or ""
    app.router.add_get("/health", handle_health)
    app.router.add_post("/run", handle_run)
    return app
