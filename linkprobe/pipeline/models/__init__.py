"""Data models for link tests, reports, worker protocol and configuration."""

from linkprobe.pipeline.models.config import (
    BrowserConfig,
    OrchestratorConfig,
    ReportLimits,
    WorkerConfig,
)
from linkprobe.pipeline.models.link_test import (
    Account,
    CreditTransaction,
    DashboardStats,
    LinkTest,
    TestKind,
    TestStatus,
)
from linkprobe.pipeline.models.report import (
    CmpResult,
    CmpTestReport,
    ConsentCookie,
    QuickCheckReport,
    Report,
    ReportCookie,
    ReportHop,
    Timing,
)
from linkprobe.pipeline.models.rules import DetectionRules, NetworkPattern
from linkprobe.pipeline.models.worker_protocol import (
    ErrorResponse,
    HealthResponse,
    RawCmpResult,
    RawCookie,
    RawHop,
    RunRequest,
    RunResult,
)

__all__ = [
    "Account",
    "BrowserConfig",
    "CmpResult",
    "CmpTestReport",
    "ConsentCookie",
    "CreditTransaction",
    "DashboardStats",
    "DetectionRules",
    "ErrorResponse",
    "HealthResponse",
    "LinkTest",
    "NetworkPattern",
    "OrchestratorConfig",
    "QuickCheckReport",
    "RawCmpResult",
    "RawCookie",
    "RawHop",
    "Report",
    "ReportCookie",
    "ReportHop",
    "ReportLimits",
    "RunRequest",
    "RunResult",
    "TestKind",
    "TestStatus",
    "Timing",
    "WorkerConfig",
]
