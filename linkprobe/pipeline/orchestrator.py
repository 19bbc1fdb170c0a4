"""Link test lifecycle: creation, dispatch, refunds and stale recovery."""

import asyncio
import base64
import binascii
import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from linkprobe.pipeline.exceptions import (
    InvalidURL,
    TaskStale,
    TestNotFound,
)
from linkprobe.pipeline.identity import IdentityResolver
from linkprobe.pipeline.models.config import OrchestratorConfig
from linkprobe.pipeline.models.link_test import (
    IN_FLIGHT_STATUSES,
    CreditTransaction,
    DashboardStats,
    LinkTest,
    TestKind,
    TestStatus,
)
from linkprobe.pipeline.models.report import Report
from linkprobe.pipeline.models.worker_protocol import RunResult
from linkprobe.pipeline.report_builder import build_report
from linkprobe.pipeline.store import TestStore
from linkprobe.pipeline.url_utils import is_http_url
from linkprobe.pipeline.worker_client import WorkerClient

logger = logging.getLogger(__name__)

FAILED_REFUND_NOTE = "Refund for failed test"
STALE_REFUND_NOTE = "Refund for timed-out test"
STALE_ERROR_MESSAGE = "Test timed out (no response from worker)"
STATS_WINDOW = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskOrchestrator:
    """Owns test state, the credit ledger and dispatch to the worker."""

    def __init__(
        self,
        store: TestStore,
        worker: WorkerClient,
        identity: IdentityResolver,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize orchestrator with its collaborators."""
        self.store = store
        self.worker = worker
        self.identity = identity
        self.config = config or OrchestratorConfig()
        self.clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        store: TestStore,
        identity: IdentityResolver,
        config: OrchestratorConfig,
    ) -> "TaskOrchestrator":
        """Create an orchestrator with a worker client built from config."""
        worker = WorkerClient(
            config.worker_url,
            secret=config.worker_secret,
            timeout=config.request_timeout,
        )
        return cls(store, worker, identity, config)

    def price_of(self, kind: TestKind) -> int:
        """Credits charged for a test kind."""
        return self.config.credit_prices[kind]

    async def create_test(self, caller: str | None, url: str, kind: TestKind) -> str:
        """Validate, charge and queue a new test, then schedule its dispatch.

        Args:
            caller: Caller token resolved through the identity resolver
            url: Absolute http(s) link to test
            kind: Kind of test

        Returns:
            Identifier of the created test

        Raises:
            InvalidURL: If url is not an absolute http(s) URL
            Unauthenticated: If the caller cannot be identified
            ProfileNotFound: If the caller has no account
            InsufficientCredits: If the balance is below the price

        """
        if not is_http_url(url):
            raise InvalidURL(f"Invalid URL: {url}")

        account_id = await self.identity.resolve(caller)
        credits = self.price_of(kind)

        test = await self.store.create_test_with_charge(
            account_id, url, kind, credits, self.clock(), created_by=caller
        )
        logger.info(
            f"Created {kind} test {test.id} for account {account_id}, "
            f"charged {credits} credits"
        )

        self._schedule_dispatch(test.id)
        return test.id

    def _schedule_dispatch(self, test_id: str) -> None:
        """Start dispatch in the background; the stale sweep covers failures."""
        try:
            task = asyncio.create_task(self.dispatch(test_id))
        except RuntimeError:
            logger.exception(f"Could not schedule dispatch for test {test_id}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_dispatches(self) -> None:
        """Wait until every scheduled dispatch has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def dispatch(self, test_id: str) -> None:
        """Run a queued test on the worker and record its outcome.

        Never raises: worker failures end the test as failed and refund it,
        and a crash here leaves the test for the stale sweep.
        """
        try:
            await self._dispatch(test_id)
        except Exception:
            logger.exception(f"Dispatch of test {test_id} crashed")

    async def _dispatch(self, test_id: str) -> None:
        test = await self.store.get_test(test_id)
        if test is None:
            logger.error(f"Test {test_id} not found")
            return

        if not await self.store.mark_running(test_id):
            logger.warning(f"Test {test_id} is {test.status}, not dispatching")
            return

        logger.info(f"Dispatching test {test_id}: {test.kind} {test.url}")
        try:
            result = await self.worker.run(test)
            report = build_report(test.kind, result, self.config.report_limits)
            await self._save_screenshots(test_id, result)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Test {test_id} failed: {message}")
            await self._fail_and_refund(test_id, message, FAILED_REFUND_NOTE)
            return

        status = self._completion_status(report)
        completed = await self.store.complete_test(
            test_id, status, report, report.network_detected, self.clock()
        )
        if completed:
            logger.info(
                f"Test {test_id} completed: {status}, "
                f"network={report.network_detected}"
            )
        else:
            logger.warning(f"Test {test_id} was finalized elsewhere, result dropped")

    def _completion_status(self, report: Report) -> TestStatus:
        """Status assigned to a test whose worker run succeeded.

        Only ``success`` is produced; ``partial`` is reserved for runs that
        complete with degraded evidence.
        """
        return "success"

    async def _save_screenshots(self, test_id: str, result: RunResult) -> None:
        screenshots = {"final": result.screenshot}
        if result.cmp_result is not None:
            screenshots["before_consent"] = result.cmp_result.screenshot_before
            screenshots["after_consent"] = result.cmp_result.screenshot_after

        for step, encoded in screenshots.items():
            if not encoded:
                continue
            try:
                data = base64.b64decode(encoded, validate=True)
            except binascii.Error as e:
                logger.warning(f"Skipping bad {step} screenshot for {test_id}: {e}")
                continue
            await self.store.save_screenshot(test_id, step, data)

    async def _fail_and_refund(self, test_id: str, message: str, note: str) -> bool:
        refunded = await self.store.fail_and_refund(
            test_id, message, note, self.clock()
        )
        if refunded:
            logger.info(f"Test {test_id} failed and refunded")
        else:
            logger.info(f"Test {test_id} already finalized, no refund issued")
        return refunded

    async def run_stale_sweep(self) -> int:
        """Fail and refund in-flight tests older than the staleness threshold.

        Returns:
            Number of tests reclaimed by this sweep

        """
        cutoff = self.clock() - timedelta(seconds=self.config.stale_after)
        stale_tests = await self.store.find_stale_tests(cutoff)

        cleaned = 0
        for test in stale_tests:
            error = TaskStale(STALE_ERROR_MESSAGE)
            if await self._fail_and_refund(test.id, str(error), STALE_REFUND_NOTE):
                cleaned += 1

        if cleaned:
            logger.info(f"Stale sweep reclaimed {cleaned} tests")
        return cleaned

    async def get_test(self, caller: str | None, test_id: str) -> LinkTest:
        """Return a test owned by the caller's account.

        Raises:
            TestNotFound: If no such test exists for the caller

        """
        account_id = await self.identity.resolve(caller)
        test = await self.store.get_test(test_id)
        if test is None or test.account_id != account_id:
            raise TestNotFound(f"Test not found: {test_id}")
        return test

    async def list_tests(
        self, caller: str | None, status: TestStatus | None = None
    ) -> list[LinkTest]:
        """List the caller's tests, newest first, optionally by status."""
        account_id = await self.identity.resolve(caller)
        return await self.store.list_tests(account_id, status=status)

    async def get_credit_history(
        self, caller: str | None, limit: int = 50
    ) -> list[CreditTransaction]:
        """Return the caller's most recent ledger entries."""
        account_id = await self.identity.resolve(caller)
        return await self.store.list_transactions(account_id, limit=limit)

    async def get_dashboard_stats(self, caller: str | None) -> DashboardStats:
        """Summarize the caller's most recent tests."""
        account_id = await self.identity.resolve(caller)
        tests = await self.store.list_tests(account_id, limit=STATS_WINDOW)

        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        networks = Counter(t.network_detected for t in tests if t.network_detected)

        return DashboardStats(
            total_tests=len(tests),
            success_count=sum(1 for t in tests if t.status == "success"),
            failed_count=sum(1 for t in tests if t.status == "failed"),
            in_flight_count=sum(1 for t in tests if t.status in IN_FLIGHT_STATUSES),
            network_counts=dict(networks),
            recent_tests=tests[:5],
            credits_used_this_month=sum(
                t.credits_charged for t in tests if t.created_at >= month_start
            ),
        )


class StaleSweeper:
    """Runs the orchestrator's stale sweep on a fixed interval."""

    def __init__(
        self, orchestrator: TaskOrchestrator, interval: float | None = None
    ) -> None:
        self.orchestrator = orchestrator
        self.interval = interval or orchestrator.config.sweep_interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop in the background."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Stale sweeper started, interval {self.interval:g}s")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stale sweeper stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.orchestrator.run_stale_sweep()
            except Exception:
                logger.exception("Stale sweep failed")
            await asyncio.sleep(self.interval)
