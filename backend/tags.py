"""Material tag routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import is_missing, normalize_choice
from learnhub.resources import MATERIALS, STANDARD_STATUSES, TAGS
from learnhub.store import contains_filter, equals_filter


def create_tag(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    if is_missing(body.get("tag_name")):
        raise ValidationError("tag_name is required")

    tag = aws.resource_service(TAGS).create(
        {
            "tag_name": str(body["tag_name"]).strip(),
            "description": body.get("description"),
            "status": "active",
        }
    )
    return success(tag, message="Tag created successfully", status_code=201)


def list_tags(request: ApiRequest) -> Dict[str, Any]:
    status = normalize_choice(request.query.get("status"), STANDARD_STATUSES, label="status")
    page = aws.resource_service(TAGS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
    )
    return page_response(page)


def get_tag(request: ApiRequest) -> Dict[str, Any]:
    return success(aws.resource_service(TAGS).get(request.param("tagId")))


def update_tag(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(TAGS).update(request.param("tagId"), request.json_body())
    return success(updated, message="Tag updated successfully")


def delete_tag(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(TAGS).soft_delete(request.param("tagId"))
    return success(removed, message="Tag deleted successfully")


def materials_by_tag(request: ApiRequest) -> Dict[str, Any]:
    tag_id = request.param("tagId")
    page = aws.resource_service(MATERIALS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=contains_filter("tags", tag_id),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/material-tags", create_tag, "Failed to create tag"),
    route("GET", "/material-tags", list_tags, "Failed to fetch tags"),
    route("GET", "/material-tags/{tagId}/materials", materials_by_tag, "Failed to fetch tagged materials"),
    route("GET", "/material-tags/{tagId}", get_tag, "Failed to fetch tag"),
    route("PUT", "/material-tags/{tagId}", update_tag, "Failed to update tag"),
    route("DELETE", "/material-tags/{tagId}", delete_tag, "Failed to delete tag"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the tag routes."""
    return dispatch(ROUTES, event)
