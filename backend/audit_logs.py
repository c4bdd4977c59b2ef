"""Audit log routes: explicit writes, filtered lookups, statistics, export and cleanup."""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from dataclasses import replace
from datetime import timedelta
from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import (
    ApiRequest,
    dispatch,
    nested_page_response,
    page_response,
    route,
    success,
    text_response,
)
from learnhub.audit import AUDIT_RETENTION_DAYS, build_audit_item
from learnhub.errors import ValidationError
from learnhub.pagination import Page
from learnhub.records import as_number, is_missing, to_rfc3339, utc_now, utc_now_rfc3339
from learnhub.resources import AUDIT_LOGS, USERS
from learnhub.store import combine_filters, equals_filter, range_condition

logger = logging.getLogger(__name__)

VALID_MODULES = (
    "User",
    "Role",
    "Profile",
    "Session",
    "Course",
    "Subject",
    "Category",
    "Material",
    "Quiz",
    "Assignment",
    "Grade",
    "Enrollment",
    "Authentication",
    "System",
    "Settings",
)
LOG_PAGE_LIMIT = 100
STATISTICS_TOP_SIZE = 10
CSV_COLUMNS = (
    ("Log ID", "log_id"),
    ("User ID", "user_id"),
    ("Action", "action"),
    ("Module", "module"),
    ("Status", "status"),
    ("IP Address", "ip_address"),
    ("Timestamp", "timestamp"),
)


def _validate_module(module: Any) -> str:
    if module not in VALID_MODULES:
        raise ValidationError(f"Invalid module. Must be one of: {', '.join(VALID_MODULES)}")
    return module


def _lowered(value: str | None) -> str | None:
    return value.lower() if value else None


def _newest_first(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda row: str(row.get("timestamp") or ""), reverse=True)


def _sorted_page(page: Page) -> Page:
    return replace(page, items=_newest_first(page.items))


def log_action(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    for name in ("userId", "action", "module"):
        if is_missing(body.get(name)):
            raise ValidationError(f"{name} is required")
    module = _validate_module(body["module"])

    item = build_audit_item(
        user_id=str(body["userId"]),
        action=str(body["action"]).lower(),
        module=module,
        details=body.get("details") or {},
        ip_address=request.client_ip,
        status=str(body.get("status") or "success").lower(),
        resource_id=body.get("resourceId"),
        resource_type=body.get("resourceType"),
        error_message=body.get("errorMessage"),
        user_agent=request.user_agent,
    )
    stored = aws.resource_store(AUDIT_LOGS).put(item)
    return success(
        {"logId": stored["log_id"], "timestamp": stored["timestamp"]},
        message="Audit log created successfully",
        status_code=201,
    )


def list_logs(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    page = aws.resource_store(AUDIT_LOGS).scan_page(
        limit=request.limit(LOG_PAGE_LIMIT),
        start_key=request.start_key(),
        filter_expression=combine_filters(
            equals_filter(
                module=query.get("module"),
                action=_lowered(query.get("action")),
                status=query.get("status"),
            ),
            range_condition("timestamp", query.get("startDate"), query.get("endDate")),
        ),
    )
    return page_response(_sorted_page(page))


def log_details(request: ApiRequest) -> Dict[str, Any]:
    log = aws.resource_service(AUDIT_LOGS).get(request.param("logId"))
    user = aws.resource_service(USERS).find(str(log.get("user_id") or ""))
    summary = None
    if user is not None:
        summary = {
            "userId": user.get("user_id"),
            "email": user.get("email"),
            "fullName": user.get("full_name"),
            "roleId": user.get("role_id"),
        }
    return success({**log, "user": summary})


def user_logs(request: ApiRequest) -> Dict[str, Any]:
    user_id = request.param("userId")
    query = request.query
    page = aws.resource_store(AUDIT_LOGS).query_page(
        "userId-timestamp-index",
        "user_id",
        user_id,
        limit=request.limit(LOG_PAGE_LIMIT),
        start_key=request.start_key(),
        filter_expression=equals_filter(action=_lowered(query.get("action")), module=query.get("module")),
        scan_forward=False,
        sort_condition=range_condition(
            "timestamp", query.get("startDate"), query.get("endDate"), on_key=True
        ),
    )
    return nested_page_response(page, label="logs", user=user_id)


def module_logs(request: ApiRequest) -> Dict[str, Any]:
    module = _validate_module(request.param("moduleName"))
    query = request.query
    page = aws.resource_store(AUDIT_LOGS).query_page(
        "module-timestamp-index",
        "module",
        module,
        limit=request.limit(LOG_PAGE_LIMIT),
        start_key=request.start_key(),
        filter_expression=equals_filter(action=_lowered(query.get("action")), user_id=query.get("userId")),
        scan_forward=False,
    )
    return nested_page_response(page, label="logs", module=module)


def action_logs(request: ApiRequest) -> Dict[str, Any]:
    action = request.param("action").lower()
    query = request.query
    page = aws.resource_store(AUDIT_LOGS).scan_page(
        limit=request.limit(LOG_PAGE_LIMIT),
        start_key=request.start_key(),
        filter_expression=equals_filter(action=action, module=query.get("module"), user_id=query.get("userId")),
    )
    return nested_page_response(_sorted_page(page), label="logs", action=action)


def summarize_logs(logs: list[Mapping[str, Any]]) -> Dict[str, Any]:
    """Counts by module, action, status and day plus the busiest users."""
    by_status: Dict[str, int] = {"success": 0, "failure": 0, "warning": 0}
    for log in logs:
        if log.get("status"):
            by_status[log["status"]] = by_status.get(log["status"], 0) + 1
    top_users = Counter(str(log.get("user_id")) for log in logs).most_common(STATISTICS_TOP_SIZE)
    return {
        "totalLogs": len(logs),
        "byModule": dict(Counter(str(log.get("module")) for log in logs)),
        "byAction": dict(Counter(str(log.get("action")) for log in logs)),
        "byStatus": by_status,
        "byDate": dict(Counter(str(log.get("timestamp") or "").split("T")[0] for log in logs)),
        "topUsers": [{"userId": user_id, "count": count} for user_id, count in top_users],
        "recentActivity": _newest_first(list(logs))[:STATISTICS_TOP_SIZE],
    }


def statistics(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    window = None
    if query.get("startDate"):
        window = range_condition("timestamp", query["startDate"], query.get("endDate") or utc_now_rfc3339())
    logs = aws.resource_store(AUDIT_LOGS).scan_all(
        filter_expression=combine_filters(window, equals_filter(user_id=query.get("userId")))
    )
    return success(summarize_logs(logs))


def logs_csv(logs: list[Mapping[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for log in logs:
        writer.writerow([log.get(field, "") for _, field in CSV_COLUMNS])
    return buffer.getvalue()


def export_logs(request: ApiRequest) -> Dict[str, Any]:
    query = request.query
    export_format = (query.get("format") or "json").lower()
    if export_format not in ("json", "csv"):
        raise ValidationError("Invalid format. Must be one of: json, csv")

    window = None
    if query.get("startDate") and query.get("endDate"):
        window = range_condition("timestamp", query["startDate"], query["endDate"])
    logs = _newest_first(
        aws.resource_store(AUDIT_LOGS).scan_all(
            filter_expression=combine_filters(
                equals_filter(module=query.get("module"), user_id=query.get("userId")), window
            )
        )
    )

    if export_format == "csv":
        stamp = int(utc_now().timestamp() * 1000)
        return text_response(
            200,
            logs_csv(logs),
            content_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="audit-logs-{stamp}.csv"'},
        )
    return success({"logs": logs, "count": len(logs), "exportedAt": utc_now_rfc3339()})


def _days_old(raw: str | None) -> int:
    if is_missing(raw):
        return AUDIT_RETENTION_DAYS
    value = as_number(raw, field="daysOld")
    if not isinstance(value, int) or value <= 0:
        raise ValidationError("daysOld must be a positive integer")
    return value


def _before(cutoff: str) -> Any:
    from boto3.dynamodb.conditions import Attr

    return Attr("timestamp").lt(cutoff)


def cleanup_logs(request: ApiRequest) -> Dict[str, Any]:
    days_old = _days_old(request.query.get("daysOld"))
    cutoff = to_rfc3339(utc_now() - timedelta(days=days_old))
    store = aws.resource_store(AUDIT_LOGS)
    expired = store.scan_all(filter_expression=_before(cutoff))
    deleted = store.delete_many(str(log["log_id"]) for log in expired)
    logger.info("deleted %d audit logs older than %s", deleted, cutoff)
    return success(
        {"deletedCount": deleted, "cutoffDate": cutoff},
        message=f"Deleted {deleted} logs older than {days_old} days",
    )


ROUTES = [
    route("POST", "/audit-logs", log_action, "Failed to create audit log", authenticated=True),
    route("GET", "/audit-logs", list_logs, "Failed to retrieve audit logs", authenticated=True),
    route("GET", "/audit-logs/statistics", statistics, "Failed to retrieve audit statistics", authenticated=True),
    route("GET", "/audit-logs/export", export_logs, "Failed to export logs", authenticated=True),
    route("DELETE", "/audit-logs/cleanup", cleanup_logs, "Failed to delete old logs", authenticated=True),
    route(
        "GET",
        "/audit-logs/details/{logId}",
        log_details,
        "Failed to retrieve log details",
        authenticated=True,
    ),
    route("GET", "/audit-logs/user/{userId}", user_logs, "Failed to retrieve user logs", authenticated=True),
    route(
        "GET",
        "/audit-logs/module/{moduleName}",
        module_logs,
        "Failed to retrieve module logs",
        authenticated=True,
    ),
    route(
        "GET",
        "/audit-logs/action/{action}",
        action_logs,
        "Failed to retrieve logs by action",
        authenticated=True,
    ),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the audit log routes."""
    return dispatch(ROUTES, event)
