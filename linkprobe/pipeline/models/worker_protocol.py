"""Request and response bodies of the browser worker control protocol."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from linkprobe.pipeline.models.base import CamelModel
from linkprobe.pipeline.models.link_test import TestKind
from linkprobe.pipeline.models.report import ConsentCookie, Timing


class RunRequest(CamelModel):
    """Body of ``POST /run``."""

    id: str = Field(..., min_length=1, description="Test identifier")
    url: str = Field(..., min_length=1, description="Link to test")
    kind: TestKind = Field(..., description="Kind of test to execute")


class RawHop(CamelModel):
    """Redirect hop as observed by the browser, with every header."""

    url: str
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)


class RawCookie(CamelModel):
    """Cookie exactly as reported by the browsing context."""

    name: str
    value: str = ""
    domain: str = ""
    path: str = "/"
    expires: float | None = None
    http_only: bool = False
    secure: bool = False
    same_site: str | None = None


class RawCmpResult(CamelModel):
    """Untrimmed consent interaction outcome."""

    detected: bool
    selector: str | None = None
    accept_attempted: bool = False
    consent_accepted: bool = False
    cookies_before: list[RawCookie] = Field(default_factory=list)
    cookies_after: list[RawCookie] = Field(default_factory=list)
    new_cookies: list[ConsentCookie] = Field(default_factory=list)
    screenshot_before: str | None = Field(
        default=None, description="Base64 PNG captured before interaction"
    )
    screenshot_after: str | None = Field(
        default=None, description="Base64 PNG captured after interaction"
    )


class RunResult(CamelModel):
    """Successful ``POST /run`` response."""

    id: str
    success: Literal[True] = True
    redirect_chain: list[RawHop] = Field(default_factory=list)
    final_url: str
    cookies: list[RawCookie] = Field(default_factory=list)
    network_detected: str
    parameter_preservation: bool
    screenshot: str | None = Field(default=None, description="Base64 PNG")
    timing: Timing
    cmp_result: RawCmpResult | None = None


class ErrorResponse(CamelModel):
    """Failed ``POST /run`` response."""

    success: Literal[False] = False
    error: str


class HealthResponse(CamelModel):
    """Body of ``GET /health``."""

    status: Literal["ok"] = "ok"
    timestamp: datetime
