"""Standard (grade level) routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import as_number, is_missing, normalize_choice
from learnhub.resources import COURSE_STATUSES, STANDARDS, SUBJECTS
from learnhub.store import equals_filter

SUBJECTS_PAGE_LIMIT = 50


def create_standard(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    if is_missing(body.get("name")):
        raise ValidationError("name is required")
    if is_missing(body.get("courseId")):
        raise ValidationError("courseId is required")

    standard = aws.resource_service(STANDARDS).create(
        {
            "name": str(body["name"]).strip(),
            "course_id": body["courseId"],
            "description": body.get("description"),
            "order_index": as_number(body.get("orderIndex", 0), field="orderIndex"),
            "status": normalize_choice(body.get("status"), COURSE_STATUSES, label="status", default="active"),
        }
    )
    return success(standard, message="Standard created successfully", status_code=201)


def list_standards(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), COURSE_STATUSES, label="status")
    index = ("courseId-index", "course_id", query["courseId"]) if query.get("courseId") else None
    page = aws.resource_service(STANDARDS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=index,
    )
    return page_response(page)


def get_standard(request: ApiRequest) -> Dict[str, Any]:
    return success(aws.resource_service(STANDARDS).get(request.param("standardId")))


def update_standard(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(STANDARDS).update(request.param("standardId"), request.json_body())
    return success(updated, message="Standard updated successfully")


def delete_standard(request: ApiRequest) -> Dict[str, Any]:
    archived = aws.resource_service(STANDARDS).soft_delete(request.param("standardId"))
    return success(archived, message="Standard deleted (archived) successfully")


def standard_subjects(request: ApiRequest) -> Dict[str, Any]:
    standard_id = request.param("standardId")
    aws.resource_service(STANDARDS).get(standard_id)
    page = aws.resource_service(SUBJECTS).list_page(
        limit=request.limit(SUBJECTS_PAGE_LIMIT),
        start_key=request.start_key(),
        index=("standardId-index", "standard_id", standard_id),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/standards", create_standard, "Failed to create standard"),
    route("GET", "/standards", list_standards, "Failed to retrieve standards"),
    route(
        "GET",
        "/standards/{standardId}/subjects",
        standard_subjects,
        "Failed to retrieve subjects for standard",
    ),
    route("GET", "/standards/{standardId}", get_standard, "Failed to retrieve standard details"),
    route("PUT", "/standards/{standardId}", update_standard, "Failed to update standard"),
    route("DELETE", "/standards/{standardId}", delete_standard, "Failed to delete standard"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the standard routes."""
    return dispatch(ROUTES, event)
