"""Subject routes and subject-to-course linking."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import is_missing, normalize_choice, require_fields
from learnhub.resources import CHAPTERS, COURSE_STATUSES, COURSES, SUBJECTS
from learnhub.store import equals_filter


def create_subject(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("name",))
    if is_missing(body.get("standardId")) and is_missing(body.get("courseId")):
        raise ValidationError("Either standardId or courseId is required")

    subject = aws.resource_service(SUBJECTS).create(
        {
            "name": str(body["name"]).strip(),
            "code": body.get("code"),
            "description": body.get("description", ""),
            "standard_id": body.get("standardId"),
            "course_id": body.get("courseId"),
            "chapter_id": body.get("chapterId"),
            "section_id": body.get("sectionId"),
            "material_id": body.get("materialId"),
            "status": normalize_choice(body.get("status"), COURSE_STATUSES, label="status", default="active"),
        }
    )
    return success(subject, message="Subject created successfully", status_code=201)


def list_subjects(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), COURSE_STATUSES, label="status")
    index = None
    if query.get("standardId"):
        index = ("standardId-index", "standard_id", query["standardId"])
    elif query.get("courseId"):
        index = ("courseId-index", "course_id", query["courseId"])

    page = aws.resource_service(SUBJECTS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=index,
    )
    return page_response(page)


def get_subject(request: ApiRequest) -> Dict[str, Any]:
    subject = aws.resource_service(SUBJECTS).get(request.param("subjectId"))
    chapters = aws.resource_store(CHAPTERS).query_all("subjectId-index", "subject_id", subject["subject_id"])
    return success({**subject, "chapters": chapters})


def update_subject(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(SUBJECTS).update(request.param("subjectId"), request.json_body())
    return success(updated, message="Subject updated successfully")


def delete_subject(request: ApiRequest) -> Dict[str, Any]:
    archived = aws.resource_service(SUBJECTS).soft_delete(request.param("subjectId"))
    return success(archived, message="Subject archived successfully")


def subject_chapters(request: ApiRequest) -> Dict[str, Any]:
    subject_id = request.param("subjectId")
    page = aws.resource_service(CHAPTERS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("subjectId-index", "subject_id", subject_id),
    )
    return page_response(page)


def link_subject_to_course(request: ApiRequest) -> Dict[str, Any]:
    course_id = request.param("courseId")
    body = request.json_body()
    require_fields(body, ("subjectId",))

    aws.resource_service(COURSES).get(course_id)
    subjects = aws.resource_service(SUBJECTS)
    subject_id = str(body["subjectId"]).strip()
    subjects.get(subject_id)
    linked = subjects.set_fields(subject_id, {"course_id": course_id})
    return success(linked, message="Subject linked to course successfully")


ROUTES = [
    route("POST", "/subjects", create_subject, "Failed to create subject"),
    route("GET", "/subjects", list_subjects, "Failed to fetch subjects"),
    route("GET", "/subjects/{subjectId}/chapters", subject_chapters, "Failed to fetch chapters"),
    route("GET", "/subjects/{subjectId}", get_subject, "Failed to fetch subject"),
    route("PUT", "/subjects/{subjectId}", update_subject, "Failed to update subject"),
    route("DELETE", "/subjects/{subjectId}", delete_subject, "Failed to delete subject"),
    route("POST", "/courses/{courseId}/subjects", link_subject_to_course, "Failed to link subject"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the subject routes."""
    return dispatch(ROUTES, event)
