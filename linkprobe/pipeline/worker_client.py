"""Client for the browser worker control protocol."""

import asyncio
import logging
from collections.abc import Mapping

import aiohttp
from pydantic import ValidationError

from linkprobe.pipeline.exceptions import (
    ExecutionTimeout,
    WorkerMisconfigured,
    WorkerReportedFailure,
    WorkerUnreachable,
)
from linkprobe.pipeline.models.link_test import LinkTest
from linkprobe.pipeline.models.worker_protocol import (
    HealthResponse,
    RunRequest,
    RunResult,
)

logger = logging.getLogger(__name__)


class WorkerClient:
    """Calls a remote browser worker, enforcing its own timeout budget."""

    def __init__(
        self,
        base_url: str | None,
        secret: str | None = None,
        timeout: float = 75.0,
    ) -> None:
        """Initialize client; a missing base_url fails every call."""
        self.base_url = base_url.rstrip("/") if base_url else None
        self.secret = secret
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        return headers

    def _require_base_url(self) -> str:
        if not self.base_url:
            raise WorkerMisconfigured("BROWSER_WORKER_URL not configured")
        return self.base_url

    async def run(self, test: LinkTest) -> RunResult:
        """Execute a test on the worker and return its validated result.

        Args:
            test: Test to execute

        Returns:
            Worker result

        Raises:
            WorkerMisconfigured: If no worker URL is configured
            WorkerUnreachable: If the worker cannot be contacted
            ExecutionTimeout: If no response arrives within the budget
            WorkerReportedFailure: If the worker reports failure or returns
                a malformed result

        """
        base_url = self._require_base_url()
        url = f"{base_url}/run"
        payload = RunRequest(id=test.id, url=test.url, kind=test.kind).to_json_dict()
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(
                    url, headers=self._headers(), json=payload
                ) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise WorkerReportedFailure(
                            f"Worker returned {response.status}: {text}"
                        )
                    try:
                        data: Mapping[str, object] = await response.json(
                            content_type=None
                        )
                    except ValueError as e:
                        raise WorkerReportedFailure(
                            f"Worker returned invalid JSON: {e}"
                        ) from e
        except asyncio.TimeoutError:
            raise ExecutionTimeout(
                f"Worker did not respond within {self.timeout:g} seconds"
            ) from None
        except aiohttp.ClientError as e:
            raise WorkerUnreachable(f"Worker unreachable: {e}") from e

        if not isinstance(data, Mapping):
            raise WorkerReportedFailure("Worker returned a non-object body")

        if data.get("success") is not True:
            error = data.get("error")
            raise WorkerReportedFailure(
                str(error) if error else "Worker reported failure"
            )

        try:
            return RunResult.model_validate(data)
        except ValidationError as e:
            raise WorkerReportedFailure(
                f"Worker returned a malformed result: {e}"
            ) from e

    async def health(self) -> HealthResponse:
        """Probe the worker's liveness endpoint."""
        base_url = self._require_base_url()
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.get(f"{base_url}/health") as response:
                    if response.status != 200:
                        text = await response.text()
                        raise WorkerReportedFailure(
                            f"Worker health check returned {response.status}: {text}"
                        )
                    data = await response.json()
        except asyncio.TimeoutError:
            raise ExecutionTimeout("Worker health check timed out") from None
        except aiohttp.ClientError as e:
            raise WorkerUnreachable(f"Worker unreachable: {e}") from e

        return HealthResponse.model_validate(data)
