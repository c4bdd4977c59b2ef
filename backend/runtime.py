"""API Gateway Lambda runtime handler for every learning-management route."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from backend import (
    adaptive_content,
    anthropic_upload,
    assignments,
    audit_logs,
    auth,
    bundles,
    chapters,
    courses,
    materials,
    questions,
    results,
    s3_upload,
    sections,
    sessions,
    standards,
    subjects,
    tags,
)
from backend.api_gateway import ApiRequest, dispatch, json_response, route

logger = logging.getLogger(__name__)


def _health(_request: ApiRequest) -> Dict[str, Any]:
    return json_response(200, {"status": "ok"})


ROUTES = [
    route("GET", "/health", _health, "Health check failed"),
    *courses.ROUTES,
    *subjects.ROUTES,
    *chapters.ROUTES,
    *sections.ROUTES,
    *assignments.ROUTES,
    *bundles.ROUTES,
    *questions.ROUTES,
    *results.ROUTES,
    *materials.ROUTES,
    *tags.ROUTES,
    *standards.ROUTES,
    *audit_logs.ROUTES,
    *auth.ROUTES,
    *sessions.ROUTES,
    *s3_upload.ROUTES,
    *anthropic_upload.ROUTES,
    *adaptive_content.ROUTES,
]


def lambda_handler(event: Mapping[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway Lambda entrypoint for all routes."""
    response = dispatch(ROUTES, event)
    if response["statusCode"] >= 500:
        request_id = getattr(context, "aws_request_id", None)
        logger.error("request failed with %s (request id %s)", response["statusCode"], request_id)
    return response
