"""Tests for worker protocol models."""

import pytest
from pydantic import ValidationError

from linkprobe.pipeline.models.worker_protocol import (
    ErrorResponse,
    RawCookie,
    RunRequest,
    RunResult,
)


def test_run_request_accepts_camel_and_snake_case() -> None:
    """Requests validate from the wire body."""
    request = RunRequest.model_validate(
        {"id": "t1", "url": "https://amzn.to/x", "kind": "cmp_test"}
    )

    assert request.kind == "cmp_test"
    assert request.to_json_dict() == {
        "id": "t1",
        "url": "https://amzn.to/x",
        "kind": "cmp_test",
    }


@pytest.mark.parametrize(
    "body",
    [
        {"url": "https://amzn.to/x", "kind": "quick_check"},
        {"id": "t1", "url": "", "kind": "quick_check"},
        {"id": "t1", "url": "https://amzn.to/x", "kind": "full_audit"},
    ],
)
def test_run_request_invalid(body: dict[str, str]) -> None:
    """Missing ids, empty URLs and unknown kinds are rejected."""
    with pytest.raises(ValidationError):
        RunRequest.model_validate(body)


def test_run_result_from_wire() -> None:
    """Results parse camelCase fields, including nested cookies."""
    result = RunResult.model_validate(
        {
            "id": "t1",
            "success": True,
            "redirectChain": [
                {"url": "https://amzn.to/x", "statusCode": 301, "headers": {}}
            ],
            "finalUrl": "https://www.amazon.com/dp/X",
            "cookies": [
                {
                    "name": "session-id",
                    "value": "1",
                    "domain": ".amazon.com",
                    "httpOnly": True,
                }
            ],
            "networkDetected": "amazon",
            "parameterPreservation": False,
            "timing": {
                "startedAt": "2026-03-15T12:00:00Z",
                "finishedAt": "2026-03-15T12:00:02Z",
                "durationMs": 2000,
            },
        }
    )

    assert result.redirect_chain[0].status_code == 301
    assert result.cookies == [
        RawCookie(name="session-id", value="1", domain=".amazon.com", http_only=True)
    ]
    assert result.screenshot is None
    assert result.cmp_result is None


def test_run_result_rejects_failure_flag() -> None:
    """A body flagged unsuccessful is not a result."""
    with pytest.raises(ValidationError):
        RunResult.model_validate(
            {
                "id": "t1",
                "success": False,
                "finalUrl": "https://shop.example/",
                "networkDetected": "unknown",
                "parameterPreservation": True,
                "timing": {
                    "startedAt": "2026-03-15T12:00:00Z",
                    "finishedAt": "2026-03-15T12:00:00Z",
                    "durationMs": 0,
                },
            }
        )


def test_error_response_json() -> None:
    """Error responses carry success false and a message."""
    assert ErrorResponse(error="Unauthorized").to_json_dict() == {
        "success": False,
        "error": "Unauthorized",
    }
