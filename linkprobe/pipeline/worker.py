"""Execute one browser-driven link test in an isolated session."""

import asyncio
import logging
from datetime import datetime, timezone

from playwright.async_api import Error as PlaywrightError

from linkprobe.pipeline.browser_session import (
    SessionFactory,
    capture_cookies,
    capture_screenshot,
    open_browser_session,
)
from linkprobe.pipeline.consent import ConsentEngine
from linkprobe.pipeline.exceptions import ExecutionTimeout, NavigationFailed
from linkprobe.pipeline.models.config import WorkerConfig
from linkprobe.pipeline.models.report import Timing
from linkprobe.pipeline.models.rules import DetectionRules
from linkprobe.pipeline.models.worker_protocol import (
    RawCmpResult,
    RunRequest,
    RunResult,
)
from linkprobe.pipeline.network_classifier import NetworkClassifier
from linkprobe.pipeline.redirect_chain import observed_urls, record_redirect_chain
from linkprobe.pipeline.url_utils import parameters_preserved

logger = logging.getLogger(__name__)


class BrowserWorker:
    """Runs link tests, each in its own browser session."""

    def __init__(
        self,
        config: WorkerConfig | None = None,
        classifier: NetworkClassifier | None = None,
        consent_engine: ConsentEngine | None = None,
        session_factory: SessionFactory = open_browser_session,
    ) -> None:
        """Initialize worker with configuration and injected collaborators."""
        self.config = config or WorkerConfig()
        self.classifier = classifier or NetworkClassifier()
        self.consent_engine = consent_engine or ConsentEngine(
            settle_delay=self.config.consent_settle_delay
        )
        self.session_factory = session_factory

    @classmethod
    def from_rules(
        cls, rules: DetectionRules, config: WorkerConfig | None = None
    ) -> "BrowserWorker":
        """Create a worker whose tables come from loaded detection rules."""
        config = config or WorkerConfig()
        return cls(
            config=config,
            classifier=NetworkClassifier(rules.networks),
            consent_engine=ConsentEngine.from_rules(
                rules, settle_delay=config.consent_settle_delay
            ),
        )

    async def execute(self, request: RunRequest) -> RunResult:
        """Run a test within the overall execution budget.

        Args:
            request: Test identifier, URL and kind

        Returns:
            Untrimmed run result

        Raises:
            NavigationFailed: If the target URL produced no response
            ExecutionTimeout: If the run exceeded the execution timeout

        """
        timeout = self.config.execution_timeout
        logger.info(f"Starting {request.kind} run {request.id} for {request.url}")
        try:
            result = await asyncio.wait_for(self._run(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Run {request.id} timed out after {timeout:g} seconds")
            raise ExecutionTimeout(
                f"Test timed out after {timeout:g} seconds"
            ) from None

        logger.info(
            f"Run {request.id} finished: network={result.network_detected} "
            f"hops={len(result.redirect_chain)} cookies={len(result.cookies)}"
        )
        return result

    async def _run(self, request: RunRequest) -> RunResult:
        started_at = datetime.now(timezone.utc)

        async with self.session_factory(self.config.browser) as session:
            page = session.page
            context = session.context

            try:
                response = await page.goto(
                    request.url,
                    wait_until="load",
                    timeout=self.config.navigation_timeout * 1000,
                )
            except PlaywrightError as e:
                raise NavigationFailed(f"Navigation failed: {e.message}") from e
            if response is None:
                raise NavigationFailed("Navigation failed: no response received")

            hops = await record_redirect_chain(response)
            final_url = response.url
            urls = observed_urls(hops, final_url)
            network = self.classifier.classify(urls)
            preserved = parameters_preserved(urls[0], final_url)

            cmp_result: RawCmpResult | None = None
            if request.kind == "cmp_test":
                cmp_result = await self.consent_engine.interact(page, context)

            cookies = await capture_cookies(context)
            screenshot = await capture_screenshot(page)

        finished_at = datetime.now(timezone.utc)
        duration_ms = int((finished_at - started_at).total_seconds() * 1000)

        return RunResult(
            id=request.id,
            redirect_chain=hops,
            final_url=final_url,
            cookies=cookies,
            network_detected=network,
            parameter_preservation=preserved,
            screenshot=screenshot,
            timing=Timing(
                started_at=started_at,
                finished_at=finished_at,
                duration_ms=max(0, duration_ms),
            ),
            cmp_result=cmp_result,
        )
