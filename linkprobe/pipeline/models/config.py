"""Configuration models for the browser worker and the orchestrator."""

from pydantic import BaseModel, Field

from linkprobe.pipeline.models.link_test import TestKind


class BrowserConfig(BaseModel):
    """Configuration for the isolated browser session."""

    headless: bool = Field(default=True, description="Run Chromium headless")
    viewport_width: int = Field(default=1280, gt=0)
    viewport_height: int = Field(default=800, gt=0)
    user_agent: str | None = Field(
        default=None, description="Override the browser user agent"
    )
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-backgrounding-occluded-windows",
        ],
        description="Extra Chromium command line flags",
    )


class WorkerConfig(BaseModel):
    """Configuration for the browser worker process."""

    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=8080, description="Listen port")
    shared_secret: str | None = Field(
        default=None, description="Bearer token required on /run when set"
    )
    navigation_timeout: float = Field(
        default=45.0, gt=0, description="Seconds allowed for the initial navigation"
    )
    execution_timeout: float = Field(
        default=60.0, gt=0, description="Seconds allowed for a whole run"
    )
    consent_settle_delay: float = Field(
        default=2.0, ge=0, description="Seconds to wait after clicking accept"
    )
    browser: BrowserConfig = Field(default_factory=BrowserConfig)


class ReportLimits(BaseModel):
    """Caps applied when trimming a raw result into a stored report."""

    max_cookies: int = Field(default=100, ge=0)
    max_cookie_value_length: int = Field(default=200, ge=0)
    max_new_cookies: int = Field(default=100, ge=0)
    header_allow_list: tuple[str, ...] = Field(
        default=("server", "location", "set-cookie"),
        description="Lower-cased header names kept on each hop",
    )


class OrchestratorConfig(BaseModel):
    """Configuration for test lifecycle management."""

    worker_url: str | None = Field(
        default=None, description="Base URL of the browser worker"
    )
    worker_secret: str | None = Field(
        default=None, description="Bearer token sent to the worker"
    )
    request_timeout: float = Field(
        default=75.0, gt=0, description="Seconds to wait for a worker response"
    )
    stale_after: float = Field(
        default=300.0, gt=0, description="Seconds before an in-flight test is stale"
    )
    sweep_interval: float = Field(
        default=300.0, gt=0, description="Seconds between stale sweeps"
    )
    credit_prices: dict[TestKind, int] = Field(
        default_factory=lambda: {"quick_check": 1, "cmp_test": 3},
        description="Credits charged per test kind",
    )
    report_limits: ReportLimits = Field(default_factory=ReportLimits)
