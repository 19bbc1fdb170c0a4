"""Persisted, size-bounded report shapes attached to a completed test."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import Field

from linkprobe.pipeline.models.base import CamelModel


class Timing(CamelModel):
    """Wall-clock timing of one execution."""

    started_at: datetime = Field(..., description="Execution start (UTC)")
    finished_at: datetime = Field(..., description="Execution end (UTC)")
    duration_ms: int = Field(..., ge=0, description="Elapsed milliseconds")


class ReportHop(CamelModel):
    """One hop of a redirect chain with allow-listed headers only."""

    url: str = Field(..., description="URL of the response")
    status_code: int = Field(..., description="HTTP status code")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Allow-listed response headers"
    )


class ReportCookie(CamelModel):
    """Cookie as stored in a report, value truncated."""

    name: str
    domain: str
    path: str = "/"
    value: str = Field(default="", description="Possibly truncated value")
    http_only: bool = False
    secure: bool = False
    same_site: str | None = None
    expires: float | None = None


class ConsentCookie(CamelModel):
    """Cookie that appeared after consent; value intentionally omitted."""

    name: str
    domain: str
    http_only: bool = False
    secure: bool = False


class CmpResult(CamelModel):
    """Outcome of consent banner detection and interaction."""

    detected: bool = Field(..., description="Whether a consent banner was found")
    selector: str | None = Field(
        default=None, description="Selector that matched the banner"
    )
    accept_attempted: bool = Field(
        default=False, description="Whether an accept interaction was tried"
    )
    consent_accepted: bool = Field(
        default=False, description="Whether an accept control was clicked"
    )
    cookies_before_count: int = Field(default=0, ge=0)
    cookies_after_count: int = Field(default=0, ge=0)
    new_cookies: list[ConsentCookie] = Field(
        default_factory=list, description="Cookies present only after consent"
    )


class BaseReport(CamelModel):
    """Fields common to every report kind."""

    redirect_chain: list[ReportHop] = Field(default_factory=list)
    final_url: str
    network_detected: str
    parameter_preservation: bool
    timing: Timing
    cookies: list[ReportCookie] = Field(default_factory=list)


class QuickCheckReport(BaseReport):
    """Report for a quick_check test."""

    kind: Literal["quick_check"] = "quick_check"


class CmpTestReport(BaseReport):
    """Report for a cmp_test, including the consent interaction outcome."""

    kind: Literal["cmp_test"] = "cmp_test"
    cmp_result: CmpResult


Report = Annotated[QuickCheckReport | CmpTestReport, Field(discriminator="kind")]
