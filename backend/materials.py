"""Learning material routes and search."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import as_bool, as_string_list, normalize_choice, require_fields
from learnhub.resources import MATERIAL_TYPES, MATERIALS, STANDARD_STATUSES
from learnhub.store import combine_filters, contains_filter, equals_filter

SEARCH_LIMIT = 50


def create_material(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("title", "type", "createdBy"))

    material = aws.resource_service(MATERIALS).create(
        {
            "title": str(body["title"]).strip(),
            "type": normalize_choice(body["type"], MATERIAL_TYPES, label="type"),
            "url": body.get("url"),
            "language": body.get("language"),
            "tts_available": as_bool(body.get("ttsAvailable")),
            "ai_tutor_enabled": as_bool(body.get("aiTutorEnabled")),
            "is_gamified": as_bool(body.get("isGamified")),
            "created_by": body["createdBy"],
            "status": normalize_choice(body.get("status"), STANDARD_STATUSES, label="status", default="active"),
            "course_id": body.get("courseId"),
            "subject_id": body.get("subjectId"),
            "chapter_id": body.get("chapterId"),
            "section_id": body.get("sectionId"),
            "standard_id": body.get("standardId"),
            "tags": as_string_list(body.get("tags")),
        }
    )
    return success(material, message="Material created successfully", status_code=201)


def list_materials(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    page = aws.resource_service(MATERIALS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(
            type=normalize_choice(query.get("type"), MATERIAL_TYPES, label="type"),
            course_id=query.get("courseId"),
            subject_id=query.get("subjectId"),
            status=normalize_choice(query.get("status"), STANDARD_STATUSES, label="status"),
        ),
    )
    return page_response(page)


def get_material(request: ApiRequest) -> Dict[str, Any]:
    return success(aws.resource_service(MATERIALS).get(request.param("materialId")))


def update_material(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(MATERIALS).update(request.param("materialId"), request.json_body())
    return success(updated, message="Material updated successfully")


def delete_material(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(MATERIALS).soft_delete(request.param("materialId"))
    return success(removed, message="Material deleted successfully")


def search_materials(request: ApiRequest) -> Dict[str, Any]:
    text = request.query.get("q", "").strip()
    if not text:
        raise ValidationError("Search query (q) is required")
    page = aws.resource_service(MATERIALS).list_page(
        limit=request.limit(SEARCH_LIMIT),
        start_key=request.start_key(),
        filter_expression=combine_filters(
            contains_filter("title", text),
            equals_filter(type=normalize_choice(request.query.get("type"), MATERIAL_TYPES, label="type")),
        ),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/materials", create_material, "Failed to create material"),
    route("GET", "/materials", list_materials, "Failed to fetch materials"),
    route("GET", "/materials/search", search_materials, "Failed to search materials"),
    route("GET", "/materials/{materialId}", get_material, "Failed to fetch material"),
    route("PUT", "/materials/{materialId}", update_material, "Failed to update material"),
    route("DELETE", "/materials/{materialId}", delete_material, "Failed to delete material"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the material routes."""
    return dispatch(ROUTES, event)
