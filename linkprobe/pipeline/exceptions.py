"""Error taxonomy for link test creation and execution."""


class LinkProbeError(Exception):
    """Base class for all link test pipeline errors."""


class CreationError(LinkProbeError):
    """Raised synchronously when a test cannot be created.

    These never create a test record and are never retried.
    """


class InvalidURL(CreationError):
    """Target URL is not an absolute http(s) URL."""


class Unauthenticated(CreationError):
    """Caller identity could not be established."""


class ProfileNotFound(CreationError):
    """Caller is authenticated but has no account."""


class InsufficientCredits(CreationError):
    """Account balance is below the price of the requested test kind."""


class TestNotFound(LinkProbeError):
    """No test with the given id is visible to the caller."""

    __test__ = False


class ExecutionError(LinkProbeError):
    """Raised while executing a test; terminates the test as failed."""


class WorkerUnreachable(ExecutionError):
    """Browser worker could not be contacted."""


class WorkerMisconfigured(ExecutionError):
    """No browser worker endpoint is configured."""


class WorkerReportedFailure(ExecutionError):
    """Browser worker answered with a failure or an unusable result."""


class NavigationFailed(ExecutionError):
    """Browser received no response when navigating to the target URL."""


class ExecutionTimeout(ExecutionError):
    """Test execution exceeded its overall time budget."""


class TaskStale(ExecutionError):
    """Test stayed in flight past the staleness threshold."""
