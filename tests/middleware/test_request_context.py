"""Request ID assignment and propagation into log records."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from app.core.logging import RequestContextFilter


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "trace-abc-123"})
    assert resp.headers.get("x-request-id") == "trace-abc-123"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get(f"/v1/courses/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.headers.get("x-request-id") is not None


def test_service_logs_carry_the_request_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.handler.addFilter(RequestContextFilter())
    with caplog.at_level(logging.INFO, logger="app.api.courses"):
        client.post(
            "/v1/courses",
            json={"slug": "traced", "title": "Traced"},
            headers={"X-Request-ID": "trace-course-1"},
        )

    created = [r for r in caplog.records if r.name == "app.api.courses"]
    assert created
    ids = {getattr(r, "request_id", None) for r in created}
    assert ids == {"trace-course-1"}


def test_request_summary_is_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="app.middleware.request_context"):
        client.get("/health")

    [line] = [
        r for r in caplog.records if r.name == "app.middleware.request_context"
    ]
    assert line.path == "/health"  # type: ignore[attr-defined]
    assert line.status_code == 200  # type: ignore[attr-defined]
