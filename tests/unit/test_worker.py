"""Tests for the browser worker execution flow."""

import asyncio
import base64

import pytest
from browser_fakes import (
    FakeContext,
    FakeLocator,
    FakePage,
    FakeSessionFactory,
    build_navigation,
    cookie,
)

from linkprobe.pipeline.consent import ConsentEngine
from linkprobe.pipeline.exceptions import ExecutionTimeout, NavigationFailed
from linkprobe.pipeline.models.config import WorkerConfig
from linkprobe.pipeline.models.rules import DetectionRules, NetworkPattern
from linkprobe.pipeline.models.worker_protocol import RunRequest
from linkprobe.pipeline.worker import BrowserWorker

AFFILIATE_HOPS = [
    (
        "https://www.awin1.com/cread.php?awinmid=1&clickref=abc",
        302,
        {"location": "https://shop.example/p?awinmid=1&clickref=abc"},
    ),
    ("https://shop.example/p?awinmid=1&clickref=abc&utm=x", 200, {"server": "nginx"}),
]


def make_worker(page: FakePage, context: FakeContext, **config: object) -> tuple[
    BrowserWorker, FakeSessionFactory
]:
    """Create a worker bound to a fake session."""
    factory = FakeSessionFactory(page, context)
    worker = BrowserWorker(
        config=WorkerConfig(**config),  # type: ignore[arg-type]
        consent_engine=ConsentEngine(
            banner_selectors=["#cmp"], accept_selectors=["#cmp-accept"], settle_delay=0
        ),
        session_factory=factory,
    )
    return worker, factory


async def test_execute_quick_check() -> None:
    """A quick check records chain, network, preservation, cookies and timing."""
    page = FakePage(response=build_navigation(AFFILIATE_HOPS))
    context = FakeContext([cookie("awc", value="tracking")])
    worker, factory = make_worker(page, context)

    result = await worker.execute(
        RunRequest(id="t1", url=AFFILIATE_HOPS[0][0], kind="quick_check")
    )

    assert result.id == "t1"
    assert result.success is True
    assert [hop.status_code for hop in result.redirect_chain] == [302, 200]
    assert result.final_url == AFFILIATE_HOPS[1][0]
    assert result.network_detected == "awin"
    assert result.parameter_preservation is True
    assert [c.name for c in result.cookies] == ["awc"]
    assert result.cmp_result is None
    assert base64.b64decode(result.screenshot or "") == b"\x89PNG fake"
    assert result.timing.duration_ms >= 0
    assert result.timing.finished_at >= result.timing.started_at
    assert factory.opened == 1
    assert factory.released == 1
    assert page.closed and context.closed


async def test_execute_detects_dropped_parameters() -> None:
    """Parameters lost on the way to the final URL fail preservation."""
    hops = [
        ("https://amzn.to/abc?ref=1", 301, {}),
        ("https://www.amazon.com/dp/B000?tag=x-20", 200, {}),
    ]
    page = FakePage(response=build_navigation(hops))
    worker, _ = make_worker(page, FakeContext())

    request = RunRequest(id="t2", url=hops[0][0], kind="quick_check")
    result = await worker.execute(request)

    assert result.network_detected == "amazon"
    assert result.parameter_preservation is False


async def test_execute_cmp_test_runs_consent_before_final_capture() -> None:
    """CMP tests interact with the banner and then capture the final state."""
    context = FakeContext([cookie("sid")])
    accept = FakeLocator(on_click=lambda: context.jar.append(cookie("_ga")))
    page = FakePage(
        response=build_navigation(AFFILIATE_HOPS),
        locators={"#cmp": FakeLocator(), "#cmp-accept": accept},
    )
    worker, factory = make_worker(page, context)

    result = await worker.execute(
        RunRequest(id="t3", url=AFFILIATE_HOPS[0][0], kind="cmp_test")
    )

    assert result.cmp_result is not None
    assert result.cmp_result.detected is True
    assert result.cmp_result.selector == "#cmp"
    assert result.cmp_result.consent_accepted is True
    assert [c.name for c in result.cmp_result.new_cookies] == ["_ga"]
    assert [c.name for c in result.cookies] == ["sid", "_ga"]
    assert page.events == ["goto", "screenshot", "screenshot", "screenshot"]
    assert factory.released == 1


async def test_execute_navigation_without_response() -> None:
    """No response from navigation fails with NavigationFailed."""
    page = FakePage(response=None)
    context = FakeContext()
    worker, factory = make_worker(page, context)

    with pytest.raises(NavigationFailed, match="no response received"):
        await worker.execute(
            RunRequest(id="t4", url="https://dead.example/", kind="quick_check")
        )

    assert factory.released == 1


async def test_execute_navigation_error() -> None:
    """Browser navigation errors become NavigationFailed."""
    page = FakePage(goto_error="net::ERR_NAME_NOT_RESOLVED")
    worker, factory = make_worker(page, FakeContext())

    with pytest.raises(NavigationFailed, match="ERR_NAME_NOT_RESOLVED"):
        await worker.execute(
            RunRequest(id="t5", url="https://nx.example/", kind="quick_check")
        )

    assert factory.released == 1


async def test_execute_timeout_releases_session() -> None:
    """Exceeding the execution budget fails and still releases the browser."""
    page = FakePage(response=build_navigation(AFFILIATE_HOPS), goto_delay=5)
    context = FakeContext()
    worker, factory = make_worker(page, context, execution_timeout=0.05)

    with pytest.raises(ExecutionTimeout, match="timed out after 0.05 seconds"):
        await worker.execute(
            RunRequest(id="t6", url=AFFILIATE_HOPS[0][0], kind="quick_check")
        )

    assert factory.released == 1
    assert page.closed and context.closed


async def test_concurrent_runs_use_separate_sessions() -> None:
    """Each run opens its own session."""
    page = FakePage(response=build_navigation(AFFILIATE_HOPS))
    worker, factory = make_worker(page, FakeContext())

    await asyncio.gather(
        *(
            worker.execute(
                RunRequest(id=f"c{i}", url=AFFILIATE_HOPS[0][0], kind="quick_check")
            )
            for i in range(3)
        )
    )

    assert factory.opened == 3
    assert factory.released == 3


def test_from_rules_injects_tables() -> None:
    """Workers built from rules classify with the rule table."""
    rules = DetectionRules(
        networks=(NetworkPattern(name="inhouse", pattern=r"go\.shop"),)
    )

    worker = BrowserWorker.from_rules(rules, WorkerConfig(consent_settle_delay=0.25))

    assert worker.classifier.networks == ["inhouse"]
    assert worker.consent_engine.settle_delay == 0.25
