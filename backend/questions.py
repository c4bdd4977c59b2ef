"""Question bank routes."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ValidationError
from learnhub.records import as_number, normalize_choice, require_all
from learnhub.resources import (
    OPTIONS,
    QUESTION_DIFFICULTIES,
    QUESTION_TYPES,
    QUESTIONS,
    STANDARD_STATUSES,
)
from learnhub.store import combine_filters, contains_filter, equals_filter

REQUIRED_FIELDS = (
    "standard_id",
    "course_id",
    "subject_id",
    "chapter_id",
    "section_id",
    "question_text",
    "type",
    "difficulty_level",
    "marks",
    "created_by",
)


def create_question(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_all(body, REQUIRED_FIELDS, message="Missing required fields")

    question = aws.resource_service(QUESTIONS).create(
        {
            "standard_id": body["standard_id"],
            "course_id": body["course_id"],
            "subject_id": body["subject_id"],
            "chapter_id": body["chapter_id"],
            "section_id": body["section_id"],
            "question_text": str(body["question_text"]).strip(),
            "type": normalize_choice(body["type"], QUESTION_TYPES, label="type"),
            "difficulty_level": normalize_choice(
                body["difficulty_level"], QUESTION_DIFFICULTIES, label="difficulty_level"
            ),
            "marks": as_number(body["marks"], field="marks"),
            "correct_answer": body.get("correct_answer"),
            "explanation": body.get("explanation"),
            "created_by": body["created_by"],
            "status": normalize_choice(body.get("status"), STANDARD_STATUSES, label="status", default="active"),
        }
    )
    return success(question, message="Question created", status_code=201)


def list_questions(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    page = aws.resource_service(QUESTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=equals_filter(
            course_id=query.get("courseId"),
            subject_id=query.get("subjectId"),
            difficulty_level=normalize_choice(
                query.get("difficulty"), QUESTION_DIFFICULTIES, label="difficulty_level"
            ),
            status=normalize_choice(query.get("status"), STANDARD_STATUSES, label="status"),
        ),
    )
    return page_response(page)


def get_question(request: ApiRequest) -> Dict[str, Any]:
    question = aws.resource_service(QUESTIONS).get(request.param("questionId"))
    options = aws.resource_store(OPTIONS).query_all("questionId-index", "question_id", question["question_id"])
    return success({**question, "options": options})


def update_question(request: ApiRequest) -> Dict[str, Any]:
    updated = aws.resource_service(QUESTIONS).update(request.param("questionId"), request.json_body())
    return success(updated, message="Question updated")


def delete_question(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(QUESTIONS).soft_delete(request.param("questionId"))
    return success(removed, message="Question deleted")


def search_questions(request: ApiRequest) -> Dict[str, Any]:
    text = request.query.get("query", "").strip()
    if not text:
        raise ValidationError('Search query parameter "query" is required')
    page = aws.resource_service(QUESTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        filter_expression=combine_filters(
            contains_filter("question_text", text), equals_filter(status=request.query.get("status"))
        ),
    )
    return page_response(page)


def questions_by_subject(request: ApiRequest) -> Dict[str, Any]:
    page = aws.resource_service(QUESTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("subjectId-index", "subject_id", request.param("subjectId")),
    )
    return page_response(page)


def questions_by_chapter(request: ApiRequest) -> Dict[str, Any]:
    page = aws.resource_service(QUESTIONS).list_page(
        limit=request.limit(),
        start_key=request.start_key(),
        index=("chapterId-index", "chapter_id", request.param("chapterId")),
    )
    return page_response(page)


ROUTES = [
    route("POST", "/questions", create_question, "Failed to create question"),
    route("GET", "/questions", list_questions, "Failed to fetch questions"),
    route("GET", "/questions/search", search_questions, "Failed to search questions"),
    route("GET", "/questions/{questionId}", get_question, "Failed to fetch question"),
    route("PUT", "/questions/{questionId}", update_question, "Failed to update question"),
    route("DELETE", "/questions/{questionId}", delete_question, "Failed to delete question"),
    route("GET", "/subjects/{subjectId}/questions", questions_by_subject, "Failed to fetch questions"),
    route("GET", "/chapters/{chapterId}/questions", questions_by_chapter, "Failed to fetch questions"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the question routes."""
    return dispatch(ROUTES, event)
