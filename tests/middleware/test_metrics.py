"""Prometheus metrics middleware and domain counters.

prometheus-client keeps one global registry and counters only go up, so
every assertion here compares the value before and after an action.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import post_course, post_enrollment, post_event


def _sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_uses_route_template(client: TestClient) -> None:
    labels = {
        "method": "GET",
        "endpoint": "/v1/enrollments/{enrollment_id}",
        "status_code": "404",
    }
    before = _sample("http_requests_total", labels)
    client.get(f"/v1/enrollments/{uuid4()}")
    client.get(f"/v1/enrollments/{uuid4()}")
    assert _sample("http_requests_total", labels) - before == 2


def test_unknown_path_is_labelled_unmatched(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "unmatched", "status_code": "404"}
    before = _sample("http_requests_total", labels)
    client.get("/no/such/route")
    assert _sample("http_requests_total", labels) - before == 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _sample("http_request_duration_seconds_count", labels) - before == 1


def test_metrics_endpoint_is_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _sample("http_requests_total", labels) == before


def test_metrics_endpoint_exposes_domain_metrics(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    for name in (
        "http_requests_total",
        "progress_events_total",
        "quiz_attempts_graded_total",
        "enrollment_completions_total",
        "progress_recompute_duration_seconds",
    ):
        assert name in resp.text


def test_tracked_events_are_counted_by_outcome(client: TestClient) -> None:
    course = post_course(
        client, [[{"title": "Reading", "content_type": "TEXT"}]]
    )
    enrollment = post_enrollment(client, course["id"])
    text = course["modules"][0]["lessons"][0]["contents"][0]
    done = {"content_type": "TEXT", "completed": "true"}
    not_done = {"content_type": "TEXT", "completed": "false"}
    completions = _sample("enrollment_completions_total")
    before_done = _sample("progress_events_total", done)
    before_not_done = _sample("progress_events_total", not_done)

    post_event(client, enrollment["id"], text["id"], "VIEW")
    post_event(client, enrollment["id"], text["id"], "DOWNLOAD")
    post_event(client, enrollment["id"], text["id"], "VIEW")

    assert _sample("progress_events_total", done) - before_done == 2
    assert _sample("progress_events_total", not_done) - before_not_done == 1
    # Completed once, regressed, completed again: counted the first time only
    assert _sample("enrollment_completions_total") - completions == 1
