"""Trim a raw worker result into the persisted report shape."""

from collections.abc import Iterable

from linkprobe.pipeline.exceptions import WorkerReportedFailure
from linkprobe.pipeline.models.config import ReportLimits
from linkprobe.pipeline.models.link_test import TestKind
from linkprobe.pipeline.models.report import (
    CmpResult,
    CmpTestReport,
    QuickCheckReport,
    Report,
    ReportCookie,
    ReportHop,
)
from linkprobe.pipeline.models.worker_protocol import (
    RawCmpResult,
    RawCookie,
    RawHop,
    RunResult,
)


def trim_hops(hops: Iterable[RawHop], allow_list: Iterable[str]) -> list[ReportHop]:
    """Keep only allow-listed headers on each hop."""
    allowed = {name.lower() for name in allow_list}
    return [
        ReportHop(
            url=hop.url,
            status_code=hop.status_code,
            headers={
                name.lower(): value
                for name, value in hop.headers.items()
                if name.lower() in allowed
            },
        )
        for hop in hops
    ]


def trim_cookies(
    cookies: Iterable[RawCookie], max_cookies: int, max_value_length: int
) -> list[ReportCookie]:
    """Cap the number of cookies and the length of each value."""
    trimmed: list[ReportCookie] = []
    for cookie in cookies:
        if len(trimmed) >= max_cookies:
            break
        trimmed.append(
            ReportCookie(
                name=cookie.name,
                domain=cookie.domain,
                path=cookie.path,
                value=cookie.value[:max_value_length],
                http_only=cookie.http_only,
                secure=cookie.secure,
                same_site=cookie.same_site,
                expires=cookie.expires,
            )
        )
    return trimmed


def trim_cmp_result(raw: RawCmpResult, limits: ReportLimits) -> CmpResult:
    """Reduce cookie jars to counts and cap the new-cookie list."""
    return CmpResult(
        detected=raw.detected,
        selector=raw.selector,
        accept_attempted=raw.accept_attempted,
        consent_accepted=raw.consent_accepted,
        cookies_before_count=len(raw.cookies_before),
        cookies_after_count=len(raw.cookies_after),
        new_cookies=raw.new_cookies[: limits.max_new_cookies],
    )


def build_report(
    kind: TestKind, result: RunResult, limits: ReportLimits | None = None
) -> Report:
    """Build the stored report for a test of the given kind.

    Only fidelity is reduced here; oversized input is trimmed, never
    rejected. Screenshots are not part of the report.

    Args:
        kind: Kind of the test the result belongs to
        result: Validated worker result
        limits: Caps to apply (defaults when omitted)

    Returns:
        Report matching the test kind

    Raises:
        WorkerReportedFailure: If a cmp_test result carries no consent outcome

    """
    limits = limits or ReportLimits()
    common = {
        "redirect_chain": trim_hops(result.redirect_chain, limits.header_allow_list),
        "final_url": result.final_url,
        "network_detected": result.network_detected,
        "parameter_preservation": result.parameter_preservation,
        "timing": result.timing,
        "cookies": trim_cookies(
            result.cookies, limits.max_cookies, limits.max_cookie_value_length
        ),
    }

    if kind == "cmp_test":
        if result.cmp_result is None:
            raise WorkerReportedFailure("Worker result for cmp_test has no cmpResult")
        return CmpTestReport(
            **common, cmp_result=trim_cmp_result(result.cmp_result, limits)
        )

    return QuickCheckReport(**common)
