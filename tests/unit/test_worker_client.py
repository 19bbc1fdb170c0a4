"""Tests for the browser worker client."""

import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest
from aioresponses import aioresponses

from linkprobe.pipeline.exceptions import (
    ExecutionTimeout,
    WorkerMisconfigured,
    WorkerReportedFailure,
    WorkerUnreachable,
)
from linkprobe.pipeline.models.link_test import LinkTest
from linkprobe.pipeline.worker_client import WorkerClient

WORKER_URL = "http://worker.internal:8080"


@pytest.fixture
def link_test() -> LinkTest:
    """Create a queued test."""
    return LinkTest(
        id="t1",
        account_id="acct",
        url="https://www.awin1.com/cread.php?x=1",
        kind="quick_check",
        status="running",
        credits_charged=1,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def success_payload() -> dict[str, object]:
    """Worker success body."""
    return {
        "id": "t1",
        "success": True,
        "redirectChain": [
            {
                "url": "https://www.awin1.com/cread.php?x=1",
                "statusCode": 302,
                "headers": {},
            },
            {"url": "https://shop.example/?x=1", "statusCode": 200, "headers": {}},
        ],
        "finalUrl": "https://shop.example/?x=1",
        "cookies": [
            {
                "name": "awc",
                "value": "abc",
                "domain": ".shop.example",
                "path": "/",
                "expires": -1,
                "httpOnly": True,
                "secure": True,
                "sameSite": "Lax",
            }
        ],
        "networkDetected": "awin",
        "parameterPreservation": True,
        "screenshot": "aGVsbG8=",
        "timing": {
            "startedAt": "2026-01-01T00:00:00Z",
            "finishedAt": "2026-01-01T00:00:02Z",
            "durationMs": 2000,
        },
    }


async def test_run_success(link_test: LinkTest) -> None:
    """run posts the test and validates the result."""
    client = WorkerClient(WORKER_URL, secret="s3cret")

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", payload=success_payload())

        result = await client.run(link_test)

        request = next(iter(m.requests.values()))[0]
        assert request.kwargs["json"] == {
            "id": "t1",
            "url": "https://www.awin1.com/cread.php?x=1",
            "kind": "quick_check",
        }
        assert request.kwargs["headers"]["Authorization"] == "Bearer s3cret"

    assert result.network_detected == "awin"
    assert result.cookies[0].http_only is True
    assert result.timing.duration_ms == 2000


async def test_run_without_secret_sends_no_auth(link_test: LinkTest) -> None:
    """No Authorization header is sent without a secret."""
    client = WorkerClient(WORKER_URL + "/")

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", payload=success_payload())
        await client.run(link_test)
        request = next(iter(m.requests.values()))[0]

    assert "Authorization" not in request.kwargs["headers"]


async def test_run_misconfigured(link_test: LinkTest) -> None:
    """A missing worker URL fails without any request."""
    client = WorkerClient(None)

    with pytest.raises(WorkerMisconfigured, match="BROWSER_WORKER_URL not configured"):
        await client.run(link_test)


async def test_run_non_200(link_test: LinkTest) -> None:
    """Non-200 responses carry status and body in the error."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(
            f"{WORKER_URL}/run",
            status=500,
            body='{"success": false, "error": "Navigation failed"}',
        )
        with pytest.raises(WorkerReportedFailure, match="Worker returned 500"):
            await client.run(link_test)


async def test_run_success_false(link_test: LinkTest) -> None:
    """A 200 with success false uses the worker's error message."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", payload={"success": False, "error": "boom"})
        with pytest.raises(WorkerReportedFailure, match="^boom$"):
            await client.run(link_test)


async def test_run_success_false_without_message(link_test: LinkTest) -> None:
    """A failure without an error message gets a generic one."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", payload={"success": False})
        with pytest.raises(WorkerReportedFailure, match="Worker reported failure"):
            await client.run(link_test)


async def test_run_malformed_result(link_test: LinkTest) -> None:
    """A success body missing required fields is a reported failure."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", payload={"success": True, "id": "t1"})
        with pytest.raises(WorkerReportedFailure, match="malformed result"):
            await client.run(link_test)


async def test_run_invalid_json(link_test: LinkTest) -> None:
    """A body that isn't JSON is a reported failure."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", body="<html>bad gateway</html>")
        with pytest.raises(WorkerReportedFailure, match="invalid JSON"):
            await client.run(link_test)


async def test_run_unreachable(link_test: LinkTest) -> None:
    """Connection errors become WorkerUnreachable."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", exception=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(WorkerUnreachable, match="refused"):
            await client.run(link_test)


async def test_run_timeout(link_test: LinkTest) -> None:
    """Timeouts become ExecutionTimeout."""
    client = WorkerClient(WORKER_URL, timeout=75)

    with aioresponses() as m:
        m.post(f"{WORKER_URL}/run", exception=asyncio.TimeoutError())
        with pytest.raises(ExecutionTimeout, match="within 75 seconds"):
            await client.run(link_test)


async def test_health() -> None:
    """health parses the liveness body."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.get(
            f"{WORKER_URL}/health",
            payload={"status": "ok", "timestamp": "2026-01-01T00:00:00Z"},
        )
        response = await client.health()

    assert response.status == "ok"


async def test_health_unreachable() -> None:
    """health reports connection failures."""
    client = WorkerClient(WORKER_URL)

    with aioresponses() as m:
        m.get(f"{WORKER_URL}/health", exception=aiohttp.ClientConnectionError("down"))
        with pytest.raises(WorkerUnreachable):
            await client.health()
