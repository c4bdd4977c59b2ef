"""Course catalogue routes: CRUD, instructor assignment and course structure."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import (
    ApiRequest,
    dispatch,
    nested_page_response,
    page_response,
    route,
    success,
)
from learnhub.errors import NotFoundError
from learnhub.records import as_bool, as_string_list, normalize_choice, require_fields
from learnhub.resources import (
    CHAPTERS,
    COURSE_STATUSES,
    COURSES,
    DIFFICULTY_LEVELS,
    MATERIALS,
    SECTIONS,
    STANDARDS,
    SUBJECTS,
    SYLLABUS,
    USERS,
)
from learnhub.store import combine_filters, contains_filter, equals_filter

logger = logging.getLogger(__name__)

AUDIT_MODULE = "Course"


def _instructor_summary(user: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "userId": user.get("user_id"),
        "fullName": user.get("full_name"),
        "email": user.get("email"),
    }


def _lookup(label: str, loader: Any, *args: Any) -> Any:
    try:
        return loader(*args)
    except Exception:
        logger.warning("course enrichment lookup failed for %s", label, exc_info=True)
        return None


def _audit(request: ApiRequest, *, user_id: str, action: str, details: Mapping[str, Any]) -> None:
    aws.audit_writer(AUDIT_MODULE).record(
        user_id=user_id,
        action=action,
        details=details,
        ip_address=request.client_ip,
    )


def create_course(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_fields(body, ("name", "createdBy"))

    difficulty = normalize_choice(
        body.get("difficultyLevel"), DIFFICULTY_LEVELS, label="difficulty level", default="basic"
    )
    status = normalize_choice(body.get("status"), COURSE_STATUSES, label="status", default="active")

    course = aws.resource_service(COURSES).create(
        {
            "name": str(body["name"]).strip(),
            "description": body.get("description", ""),
            "standard_id": body.get("standardId"),
            "subject_ids": as_string_list(body.get("subjectIds")),
            "bundle_id": body.get("bundleId"),
            "duration": body.get("duration"),
            "difficulty_level": difficulty,
            "instructor_id": body.get("instructorId"),
            "chapter_id": body.get("chapterId"),
            "section_id": body.get("sectionId"),
            "material_id": body.get("materialId"),
            "syllabus_id": body.get("syllabusId"),
            "created_by": body["createdBy"],
            "status": status,
            "enrollment_count": 0,
            "material_count": 0,
        }
    )
    _audit(
        request,
        user_id=str(body["createdBy"]),
        action="create",
        details={"course_id": course["course_id"], "name": course["name"]},
    )
    return success(course, message="Course created successfully", status_code=201)


def list_courses(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    status = normalize_choice(query.get("status"), COURSE_STATUSES, label="status")
    difficulty = normalize_choice(query.get("difficultyLevel"), DIFFICULTY_LEVELS, label="difficulty level")
    page = aws.resource_service(COURSES).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(
            status=status,
            difficulty_level=difficulty,
            standard_id=query.get("standardId"),
            syllabus_id=query.get("syllabusId"),
        ),
    )
    return page_response(page)


def get_course(request: ApiRequest) -> Dict[str, Any]:
    course = aws.resource_service(COURSES).get(request.param("courseId"))

    details: Dict[str, Any] = dict(course)
    instructor = None
    if course.get("instructor_id"):
        user = _lookup("instructor", aws.resource_service(USERS).find, course["instructor_id"])
        if user is not None:
            instructor = _instructor_summary(user)
    details["instructor"] = instructor

    details["standard"] = (
        _lookup("standard", aws.resource_service(STANDARDS).find, course["standard_id"])
        if course.get("standard_id")
        else None
    )
    details["syllabus"] = (
        _lookup("syllabus", aws.resource_service(SYLLABUS).find, course["syllabus_id"])
        if course.get("syllabus_id")
        else None
    )
    subject_ids = as_string_list(course.get("subject_ids"))
    details["subjects"] = (
        _lookup("subjects", aws.resource_service(SUBJECTS).find_many, subject_ids) or []
    )
    return success(details)


def update_course(request: ApiRequest) -> Dict[str, Any]:
    course_id = request.param("courseId")
    body = request.json_body()
    updated = aws.resource_service(COURSES).update(course_id, body)
    _audit(
        request,
        user_id=str(body.get("userId") or "system"),
        action="update",
        details={"course_id": course_id, "fields": sorted(key for key in body if key != "userId")},
    )
    return success(updated, message="Course updated successfully")


def delete_course(request: ApiRequest) -> Dict[str, Any]:
    course_id = request.param("courseId")
    service = aws.resource_service(COURSES)
    actor = str(request.query.get("userId") or "system")

    if as_bool(request.query.get("permanent")):
        service.hard_delete(course_id)
        _audit(request, user_id=actor, action="delete", details={"course_id": course_id})
        return success(message="Course permanently deleted")

    archived = service.soft_delete(course_id)
    _audit(request, user_id=actor, action="archive", details={"course_id": course_id})
    return success(archived, message="Course archived successfully")


def assign_instructor(request: ApiRequest) -> Dict[str, Any]:
    course_id = request.param("courseId")
    body = request.json_body()
    require_fields(body, ("instructorId",))
    instructor_id = str(body["instructorId"]).strip()

    courses = aws.resource_service(COURSES)
    courses.get(course_id)
    user = aws.resource_service(USERS).find(instructor_id)
    if user is None:
        raise NotFoundError("Instructor not found")

    courses.set_fields(course_id, {"instructor_id": instructor_id})
    return success(
        {
            "courseId": course_id,
            "instructorId": instructor_id,
            "instructor": _instructor_summary(user),
        },
        message="Instructor assigned successfully",
    )


def course_materials(request: ApiRequest) -> Dict[str, Any]:
    course_id = request.param("courseId")
    page = aws.resource_service(MATERIALS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("courseId-index", "course_id", course_id),
    )
    return nested_page_response(page, label="materials", courseId=course_id)


def _order_key(row: Mapping[str, Any]) -> Any:
    order = row.get("order_index")
    return (0, order) if isinstance(order, (int, float)) else (1, 0)


def course_structure(request: ApiRequest) -> Dict[str, Any]:
    course = aws.resource_service(COURSES).get(request.param("courseId"))
    subjects_service = aws.resource_service(SUBJECTS)
    chapters_store = aws.resource_store(CHAPTERS)
    sections_store = aws.resource_store(SECTIONS)

    subjects: Dict[str, Dict[str, Any]] = {}
    for subject in subjects_service.find_many(as_string_list(course.get("subject_ids"))):
        subjects[subject["subject_id"]] = subject
    for subject in subjects_service.store.query_all("courseId-index", "course_id", course["course_id"]):
        subjects.setdefault(subject["subject_id"], subject)

    tree = []
    for subject in subjects.values():
        chapters = []
        for chapter in sorted(
            chapters_store.query_all("subjectId-index", "subject_id", subject["subject_id"]),
            key=_order_key,
        ):
            sections = sorted(
                sections_store.query_all("chapterId-index", "chapter_id", chapter["chapter_id"]),
                key=_order_key,
            )
            chapters.append({**chapter, "sections": sections})
        tree.append({**subject, "chapters": chapters})

    standard = aws.resource_service(STANDARDS).find(course.get("standard_id", ""))
    syllabus = aws.resource_service(SYLLABUS).find(course.get("syllabus_id", ""))
    return success({"course": course, "syllabus": syllabus, "standard": standard, "subjects": tree})


def courses_by_standard(request: ApiRequest) -> Dict[str, Any]:
    standard_id = request.param("standardId")
    status = normalize_choice(request.query.get("status"), COURSE_STATUSES, label="status")
    page = aws.resource_service(COURSES).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(status=status),
        index=("standardId-index", "standard_id", standard_id),
    )
    return nested_page_response(page, label="courses", standardId=standard_id)


def courses_by_subject(request: ApiRequest) -> Dict[str, Any]:
    subject_id = request.param("subjectId")
    status = normalize_choice(request.query.get("status"), COURSE_STATUSES, label="status")
    page = aws.resource_service(COURSES).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=combine_filters(
            contains_filter("subject_ids", subject_id), equals_filter(status=status)
        ),
    )
    return nested_page_response(page, label="courses", subjectId=subject_id)


def courses_by_syllabus(request: ApiRequest) -> Dict[str, Any]:
    syllabus_id = request.param("syllabusId")
    page = aws.resource_service(COURSES).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("syllabusId-index", "syllabus_id", syllabus_id),
    )
    return nested_page_response(page, label="courses", syllabusId=syllabus_id)


ROUTES = [
    route("POST", "/courses", create_course, "Failed to create course", authenticated=True),
    route("GET", "/courses", list_courses, "Failed to fetch courses", authenticated=True),
    route(
        "GET",
        "/courses/{courseId}/materials",
        course_materials,
        "Failed to fetch course materials",
        authenticated=True,
    ),
    route(
        "GET",
        "/courses/{courseId}/structure",
        course_structure,
        "Failed to fetch course structure",
        authenticated=True,
    ),
    route(
        "PUT",
        "/courses/{courseId}/instructor",
        assign_instructor,
        "Failed to assign instructor",
        authenticated=True,
    ),
    route("GET", "/courses/{courseId}", get_course, "Failed to fetch course", authenticated=True),
    route("PUT", "/courses/{courseId}", update_course, "Failed to update course", authenticated=True),
    route("DELETE", "/courses/{courseId}", delete_course, "Failed to delete course", authenticated=True),
    route(
        "GET",
        "/standards/{standardId}/courses",
        courses_by_standard,
        "Failed to fetch courses by standard",
        authenticated=True,
    ),
    route(
        "GET",
        "/subjects/{subjectId}/courses",
        courses_by_subject,
        "Failed to fetch courses by subject",
        authenticated=True,
    ),
    route(
        "GET",
        "/syllabus/{syllabusId}/courses",
        courses_by_syllabus,
        "Failed to fetch courses by syllabus",
        authenticated=True,
    ),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the course routes."""
    return dispatch(ROUTES, event)
