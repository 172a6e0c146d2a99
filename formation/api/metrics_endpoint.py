"""Prometheus scrape endpoint.

Returns the default registry in text exposition format (not JSON):

  # TYPE content_completions_total counter
  content_completions_total 42.0
  http_requests_total{endpoint="/v1/contents/{content_id}/progress",method="POST",status_code="200"} 1432.0

Restrict access to this path at the ingress in production; label values
reveal the route map and traffic shape.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
