"""Section routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.records import as_number, normalize_choice, require_fields
from learnhub.resources import MATERIALS, SECTIONS, STANDARD_STATUSES
from learnhub.store import equals_filter


def create_section(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("name", "chapterId"))

    order_index = body.get("orderIndex", body.get("order_index", 0))
    section = aws.resource_service(SECTIONS).create(
        {
            "name": str(body["name"]).strip(),
            "chapter_id": body["chapterId"],
            "description": body.get("description", ""),
            "order_index": as_number(order_index, field="orderIndex"),
            "duration": body.get("duration"),
            "subject_id": body.get("subjectId"),
            "material_id": body.get("materialId"),
            "course_id": body.get("courseId"),
            "standard_id": body.get("standardId"),
            "status": normalize_choice(body.get("status"), STANDARD_STATUSES, label="status", default="active"),
        }
    )
    return success(section, message="Section created successfully", status_code=201)


def list_sections(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), STANDARD_STATUSES, label="status")
    index = None
    if query.get("chapterId"):
        index = ("chapterId-index", "chapter_id", query["chapterId"])
    elif query.get("subjectId"):
        index = ("subjectId-index", "subject_id", query["subjectId"])
    page = aws.resource_service(SECTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=index,
    )
    return page_response(page)


def get_section(request: ApiRequest) -> Dict[str, Any]:
    section = aws.resource_service(SECTIONS).get(request.param("sectionId"))
    materials = []
    if section.get("material_id"):
        material = aws.resource_service(MATERIALS).find(section["material_id"])
        if material is not None:
            materials.append(material)
    return success({**section, "materials": materials})


def update_section(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(SECTIONS).update(request.param("sectionId"), request.json_body())
    return success(updated, message="Section updated successfully")


def delete_section(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(SECTIONS).soft_delete(request.param("sectionId"))
    return success(removed, message="Section deleted successfully")


def section_materials(request: ApiRequest) -> Dict[str, Any]:
    page = aws.resource_service(MATERIALS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("sectionId-index", "section_id", request.param("sectionId")),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/sections", create_section, "Failed to create section"),
    route("GET", "/sections", list_sections, "Failed to fetch sections"),
    route("GET", "/sections/{sectionId}/materials", section_materials, "Failed to fetch materials"),
    route("GET", "/sections/{sectionId}", get_section, "Failed to fetch section"),
    route("PUT", "/sections/{sectionId}", update_section, "Failed to update section"),
    route("DELETE", "/sections/{sectionId}", delete_section, "Failed to delete section"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the section routes."""
    return dispatch(ROUTES, event)
