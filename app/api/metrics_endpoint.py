"""Prometheus scrape endpoint.

Returns the text exposition format (not JSON), e.g.::

  # TYPE progress_events_total counter
  progress_events_total{completed="true",content_type="VIDEO"} 42.0

Restrict access to /metrics at the ingress in production; counts by
route and content type reveal usage patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
