"""Course bundle routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import as_number, as_string_list, normalize_choice, require_fields
from learnhub.resources import BUNDLES, COURSES, STANDARD_STATUSES
from learnhub.store import equals_filter


def create_bundle(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("name", "createdBy"))

    bundle = aws.resource_service(BUNDLES).create(
        {
            "name": str(body["name"]).strip(),
            "description": body.get("description", ""),
            "course_ids": as_string_list(body.get("courseIds")),
            "standard_id": body.get("standardId"),
            "maxSelectableCourses": as_number(
                body.get("maxSelectableCourses", 0), field="maxSelectableCourses"
            ),
            "created_by": body["createdBy"],
            "status": normalize_choice(body.get("status"), STANDARD_STATUSES, label="status", default="active"),
            "subject_id": body.get("subjectId"),
            "material_id": body.get("materialId"),
            "chapter_id": body.get("chapterId"),
            "section_id": body.get("sectionId"),
        }
    )
    return success(bundle, message="Bundle created successfully", status_code=201)


def list_bundles(request: ApiRequest) -> Dict[str, Any]:
    status = normalize_choice(request.query.get("status"), STANDARD_STATUSES, label="status")
    page = aws.resource_service(BUNDLES).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
    )
    return page_response(page)


def get_bundle(request: ApiRequest) -> Dict[str, Any]:
    bundle = aws.resource_service(BUNDLES).get(request.param("bundleId"))
    courses = aws.resource_service(COURSES).find_many(as_string_list(bundle.get("course_ids")))
    return success({**bundle, "courses": courses})


def update_bundle(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(BUNDLES).update(request.param("bundleId"), request.json_body())
    return success(updated, message="Bundle updated successfully")


def delete_bundle(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(BUNDLES).soft_delete(request.param("bundleId"))
    return success(removed, message="Bundle deleted successfully")


def add_courses_to_bundle(request: ApiRequest) -> Dict[str, Any]:
    bundle_id = request.param("bundleId")
    body = request.json_body()
    new_ids = as_string_list(body.get("courseIds"))
    if not new_ids:
        raise ValidationError("courseIds must be a non-empty array")

    bundles = aws.resource_service(BUNDLES)
    bundle = bundles.get(bundle_id)
    merged = list(dict.fromkeys(as_string_list(bundle.get("course_ids")) + new_ids))
    updated = bundles.set_fields(bundle_id, {"course_ids": merged})
    return success(updated, message="Courses added to bundle successfully")


ROUTES = [
    route("POST", "/course-bundles", create_bundle, "Failed to create bundle"),
    route("GET", "/course-bundles", list_bundles, "Failed to fetch bundles"),
    route("PUT", "/course-bundles/{bundleId}/add-course", add_courses_to_bundle, "Failed to add courses"),
    route("GET", "/course-bundles/{bundleId}", get_bundle, "Failed to fetch bundle"),
    route("PUT", "/course-bundles/{bundleId}", update_bundle, "Failed to update bundle"),
    route("DELETE", "/course-bundles/{bundleId}", delete_bundle, "Failed to delete bundle"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the bundle routes."""
    return dispatch(ROUTES, event)
