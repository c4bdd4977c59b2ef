"""Chapter routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.records import as_number, normalize_choice, require_fields
from learnhub.resources import CHAPTERS, COURSE_STATUSES, SECTIONS
from learnhub.store import equals_filter


def create_chapter(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("name", "subjectId"))

    order_index = body.get("orderIndex", body.get("order_index", 0))
    chapter = aws.resource_service(CHAPTERS).create(
        {
            "name": str(body["name"]).strip(),
            "subject_id": body["subjectId"],
            "description": body.get("description", ""),
            "order_index": as_number(order_index, field="orderIndex"),
            "material_id": body.get("materialId"),
            "course_id": body.get("courseId"),
            "section_id": body.get("sectionId"),
            "standard_id": body.get("standardId"),
            "status": normalize_choice(body.get("status"), COURSE_STATUSES, label="status", default="active"),
        }
    )
    return success(chapter, message="Chapter created successfully", status_code=201)


def list_chapters(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), COURSE_STATUSES, label="status")
    index = None
    if query.get("subjectId"):
        index = ("subjectId-index", "subject_id", query["subjectId"])
    page = aws.resource_service(CHAPTERS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=index,
    )
    return page_response(page)


def get_chapter(request: ApiRequest) -> Dict[str, Any]:
    chapter = aws.resource_service(CHAPTERS).get(request.param("chapterId"))
    sections = aws.resource_store(SECTIONS).query_all("chapterId-index", "chapter_id", chapter["chapter_id"])
    return success({**chapter, "sections": sections})


def update_chapter(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(CHAPTERS).update(request.param("chapterId"), request.json_body())
    return success(updated, message="Chapter updated successfully")


def delete_chapter(request: ApiRequest) -> Dict[str, Any]:
    archived = aws.resource_service(CHAPTERS).soft_delete(request.param("chapterId"))
    return success(archived, message="Chapter archived successfully")


def chapter_sections(request: ApiRequest) -> Dict[str, Any]:
    page = aws.resource_service(SECTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("chapterId-index", "chapter_id", request.param("chapterId")),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/chapters", create_chapter, "Failed to create chapter"),
    route("GET", "/chapters", list_chapters, "Failed to fetch chapters"),
    route("GET", "/chapters/{chapterId}/sections", chapter_sections, "Failed to fetch sections"),
    route("GET", "/chapters/{chapterId}", get_chapter, "Failed to fetch chapter"),
    route("PUT", "/chapters/{chapterId}", update_chapter, "Failed to update chapter"),
    route("DELETE", "/chapters/{chapterId}", delete_chapter, "Failed to delete chapter"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the chapter routes."""
    return dispatch(ROUTES, event)
