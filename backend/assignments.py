"""Course assignment routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.records import as_bool, as_number, normalize_choice, require_fields
from learnhub.resources import ASSIGNMENTS, MATERIALS, STANDARD_STATUSES
from learnhub.store import equals_filter


def create_assignment(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("courseId", "title", "dueDate", "totalMarks", "createdBy"))

    assignment = aws.resource_service(ASSIGNMENTS).create(
        {
            "course_id": body["courseId"],
            "title": str(body["title"]).strip(),
            "description": body.get("description", ""),
            "due_date": body["dueDate"],
            "total_marks": as_number(body["totalMarks"], field="totalMarks"),
            "created_by": body["createdBy"],
            "status": normalize_choice(body.get("status"), STANDARD_STATUSES, label="status", default="active"),
            "material_id": body.get("materialId"),
            "standard_id": body.get("standardId"),
            "subject_id": body.get("subjectId"),
            "chapter_id": body.get("chapterId"),
            "section_id": body.get("sectionId"),
            "url": body.get("url"),
            "language": body.get("language"),
            "tts_available": as_bool(body.get("ttsAvailable")),
            "ai_tutor_enabled": as_bool(body.get("aiTutorEnabled")),
        }
    )
    return success(assignment, message="Assignment created successfully", status_code=201)


def list_assignments(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), STANDARD_STATUSES, label="status")
    index = None
    if query.get("courseId"):
        index = ("courseId-index", "course_id", query["courseId"])
    elif query.get("subjectId"):
        index = ("subjectId-index", "subject_id", query["subjectId"])
    page = aws.resource_service(ASSIGNMENTS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=index,
    )
    return page_response(page)


def get_assignment(request: ApiRequest) -> Dict[str, Any]:
    return success(aws.resource_service(ASSIGNMENTS).get(request.param("assignmentId")))


def update_assignment(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(ASSIGNMENTS).update(request.param("assignmentId"), request.json_body())
    return success(updated, message="Assignment updated successfully")


def delete_assignment(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(ASSIGNMENTS).soft_delete(request.param("assignmentId"))
    return success(removed, message="Assignment deleted successfully")


def assignment_materials(request: ApiRequest) -> Dict[str, Any]:
    assignment = aws.resource_service(ASSIGNMENTS).get(request.param("assignmentId"))
    materials = []
    if assignment.get("material_id"):
        material = aws.resource_service(MATERIALS).find(assignment["material_id"])
        if material is not None:
            materials.append(material)
    return success(materials, count=len(materials))


ROUTES = [
    route("POST", "/assignments", create_assignment, "Failed to create assignment"),
    route("GET", "/assignments", list_assignments, "Failed to fetch assignments"),
    route(
        "GET",
        "/assignments/{assignmentId}/materials",
        assignment_materials,
        "Failed to fetch assignment materials",
    ),
    route("GET", "/assignments/{assignmentId}", get_assignment, "Failed to fetch assignment"),
    route("PUT", "/assignments/{assignmentId}", update_assignment, "Failed to update assignment"),
    route("DELETE", "/assignments/{assignmentId}", delete_assignment, "Failed to delete assignment"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the assignment routes."""
    return dispatch(ROUTES, event)
