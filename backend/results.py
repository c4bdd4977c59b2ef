"""Exam result routes: generation, lookups, leaderboards and CSV export."""

from __future__ import annotations

import csv
import io
from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, route, success, text_response
from learnhub.errors import NotFoundError
from learnhub.records import as_number, require_all
from learnhub.resources import RESULTS

PASS_PERCENTAGE = 40
LEADERBOARD_SIZE = 10
TOP_PERFORMERS_SIZE = 5
CSV_FIELDS = (
    "result_id",
    "user_id",
    "exam_id",
    "total_score",
    "total_possible",
    "percentage",
    "remarks",
    "status",
    "created_at",
)


def percentage_of(score: float, possible: float) -> float:
    if possible <= 0:
        return 0
    return round(score / possible * 100, 2)


def _score(row: Mapping[str, Any]) -> float:
    value = row.get("total_score")
    return value if isinstance(value, (int, float)) else 0


def _exam_results(exam_id: str) -> list[dict[str, Any]]:
    return aws.resource_store(RESULTS).query_all("examId-index", "exam_id", exam_id)


def generate_result(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    require_all(body, ("user_id", "exam_id", "total_score", "total_possible"), message="Missing required fields")

    score = as_number(body["total_score"], field="total_score")
    possible = as_number(body["total_possible"], field="total_possible")
    result = aws.resource_service(RESULTS).create(
        {
            "user_id": body["user_id"],
            "exam_id": body["exam_id"],
            "total_score": score,
            "total_possible": possible,
            "percentage": percentage_of(score, possible),
            "remarks": body.get("remarks", ""),
            "status": str(body.get("status") or "completed").lower(),
        }
    )
    return success(result, message="Result generated", status_code=201)


def user_exam_result(request: ApiRequest) -> Dict[str, Any]:
    user_id = request.param("userId")
    exam_id = request.param("examId")
    page = aws.resource_store(RESULTS).query_page(
        "userExam-index",
        "user_id",
        user_id,
        sort_key=("exam_id", exam_id),
        limit=1,
    )
    if not page.items:
        raise NotFoundError("Result not found")
    return success(page.items[0])


def exam_results(request: ApiRequest) -> Dict[str, Any]:
    rows = _exam_results(request.param("examId"))
    return success(rows, count=len(rows))


def user_results(request: ApiRequest) -> Dict[str, Any]:
    rows = aws.resource_store(RESULTS).query_all("userId-index", "user_id", request.param("userId"))
    return success(rows, count=len(rows))


def update_result(request: ApiRequest) -> Dict[str, Any]:
    result_id = request.param("resultId")
    body = request.json_body()
    service = aws.resource_service(RESULTS)
    changes = service.updatable_changes(body)

    if ("total_score" in changes or "total_possible" in changes) and "percentage" not in changes:
        current = service.get(result_id)
        score = as_number(changes.get("total_score", current.get("total_score", 0)), field="total_score")
        possible = as_number(
            changes.get("total_possible", current.get("total_possible", 0)), field="total_possible"
        )
        changes["percentage"] = percentage_of(score, possible)

    updated = service.update(result_id, changes)
    return success(updated, message="Result updated")


def delete_result(request: ApiRequest) -> Dict[str, Any]:
    removed = aws.resource_service(RESULTS).soft_delete(request.param("resultId"))
    return success(removed, message="Result deleted")


def leaderboard(request: ApiRequest) -> Dict[str, Any]:
    exam_id = request.param("examId")
    ranked = sorted(_exam_results(exam_id), key=_score, reverse=True)[:LEADERBOARD_SIZE]
    return success(ranked, count=len(ranked))


def summarize(rows: list[Mapping[str, Any]]) -> Dict[str, Any]:
    """Aggregate exam results into totals, averages and the top performers."""
    total = len(rows)
    if total == 0:
        return {"totalStudents": 0, "avgMarks": 0, "passPercentage": 0, "topPerformers": []}

    avg_marks = round(sum(_score(row) for row in rows) / total, 2)
    passed = sum(1 for row in rows if (row.get("percentage") or 0) >= PASS_PERCENTAGE)
    top = sorted(rows, key=_score, reverse=True)[:TOP_PERFORMERS_SIZE]
    return {
        "totalStudents": total,
        "avgMarks": avg_marks,
        "passPercentage": round(passed / total * 100, 2),
        "topPerformers": top,
    }


def result_summary(request: ApiRequest) -> Dict[str, Any]:
    return success(summarize(_exam_results(request.param("examId"))))


def results_csv(rows: list[Mapping[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({name: row.get(name, "") for name in CSV_FIELDS})
    return buffer.getvalue()


def export_results(request: ApiRequest) -> Dict[str, Any]:
    exam_id = request.param("examId")
    return text_response(
        200,
        results_csv(_exam_results(exam_id)),
        content_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="exam_{exam_id}_results.csv"'},
    )


ROUTES = [
    route("POST", "/results/generate", generate_result, "Failed to generate result"),
    route(
        "GET",
        "/results/users/{userId}/exams/{examId}/result",
        user_exam_result,
        "Failed to fetch result",
    ),
    route("GET", "/results/users/{userId}/results", user_results, "Failed to fetch results"),
    route("GET", "/results/exams/{examId}/results/export", export_results, "Failed to export results"),
    route("GET", "/results/exams/{examId}/results", exam_results, "Failed to fetch results"),
    route("GET", "/results/exams/{examId}/leaderboard", leaderboard, "Failed to fetch leaderboard"),
    route("GET", "/results/exams/{examId}/result-summary", result_summary, "Failed to fetch summary"),
    route("PUT", "/results/{resultId}", update_result, "Failed to update result"),
    route("DELETE", "/results/{resultId}", delete_result, "Failed to delete result"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the result routes."""
    return dispatch(ROUTES, event)
