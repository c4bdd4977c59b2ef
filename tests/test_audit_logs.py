"""Unit tests for audit log routes."""

from __future__ import annotations

import unittest
from datetime import timedelta
from unittest.mock import patch

from backend.audit_logs import lambda_handler, summarize_logs
from learnhub.records import to_rfc3339, utc_now
from tests.fakes import FakeDynamo, api_event, body_of

LOGS = (
    {
        "log_id": "l-1",
        "user_id": "u-1",
        "module": "Course",
        "action": "create",
        "status": "success",
        "ip_address": "198.51.100.1",
        "timestamp": "2026-03-01T10:00:00Z",
    },
    {
        "log_id": "l-2",
        "user_id": "u-1",
        "module": "Course",
        "action": "update",
        "status": "failure",
        "ip_address": "198.51.100.1",
        "timestamp": "2026-03-02T10:00:00Z",
    },
    {
        "log_id": "l-3",
        "user_id": "u-2",
        "module": "Session",
        "action": "login",
        "status": "success",
        "ip_address": "198.51.100.2",
        "timestamp": "2026-03-03T09:00:00Z",
    },
    {
        "log_id": "l-4",
        "user_id": "u-1",
        "module": "Session",
        "action": "login",
        "status": "warning",
        "ip_address": "Unknown",
        "timestamp": "2025-01-01T00:00:00Z",
    },
)


class AuditLogRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dynamo = FakeDynamo()
        for patcher in (
            patch("backend.aws.dynamodb_table", self.dynamo.table),
            patch.dict("os.environ", {}, clear=True),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
        self.logs = self.dynamo.for_env("AUDIT_LOGS_TABLE")
        self.users = self.dynamo.for_env("USERS_TABLE")
        self.logs.seed(*LOGS)

    def _call(self, method: str, path: str, **kwargs) -> tuple[int, dict]:
        response = lambda_handler(api_event(method, path, **kwargs), None)
        return response["statusCode"], body_of(response)

    @staticmethod
    def _ids(rows: list[dict]) -> list[str]:
        return [row["log_id"] for row in rows]

    def test_log_action_stores_request_context(self) -> None:
        status, payload = self._call(
            "POST",
            "/audit-logs",
            body={"userId": "u-9", "action": "EXPORT", "module": "Course", "resourceId": "c-1"},
            headers={"X-Forwarded-For": "198.51.100.9"},
        )
        self.assertEqual(status, 201)
        self.assertEqual(payload["message"], "Audit log created successfully")
        row = self.logs.rows[payload["data"]["logId"]]
        self.assertEqual(row["action"], "export")
        self.assertEqual(row["status"], "success")
        self.assertEqual(row["resource_id"], "c-1")
        self.assertEqual(row["ip_address"], "198.51.100.9")
        self.assertIn("Chrome", row["user_agent"])
        self.assertNotIn("error_message", row)
        self.assertEqual(row["timestamp"], payload["data"]["timestamp"])
        self.assertGreater(row["ttl"], 0)

    def test_log_action_validation(self) -> None:
        status, payload = self._call("POST", "/audit-logs", body={"userId": "u-1", "module": "Course"})
        self.assertEqual((status, payload["message"]), (400, "action is required"))

        status, payload = self._call(
            "POST", "/audit-logs", body={"userId": "u-1", "action": "create", "module": "Billing"}
        )
        self.assertEqual(status, 400)
        self.assertTrue(payload["message"].startswith("Invalid module. Must be one of: User, Role"))

    def test_list_logs_filters_and_sorts_newest_first(self) -> None:
        status, payload = self._call("GET", "/audit-logs", query={"module": "Course"})
        self.assertEqual(status, 200)
        self.assertEqual(self._ids(payload["data"]), ["l-2", "l-1"])
        self.assertEqual(payload["count"], 2)

        _, payload = self._call("GET", "/audit-logs", query={"action": "CREATE"})
        self.assertEqual(self._ids(payload["data"]), ["l-1"])

        _, payload = self._call(
            "GET",
            "/audit-logs",
            query={"startDate": "2026-03-02T00:00:00Z", "endDate": "2026-03-31T00:00:00Z"},
        )
        self.assertEqual(self._ids(payload["data"]), ["l-3", "l-2"])

    def test_log_details_include_user_summary(self) -> None:
        self.users.seed(
            {"user_id": "u-1", "email": "ada@example.com", "full_name": "Ada L", "role_id": "admin"}
        )
        status, payload = self._call("GET", "/audit-logs/details/l-1")
        self.assertEqual(status, 200)
        self.assertEqual(payload["data"]["action"], "create")
        self.assertEqual(
            payload["data"]["user"],
            {"userId": "u-1", "email": "ada@example.com", "fullName": "Ada L", "roleId": "admin"},
        )

        _, payload = self._call("GET", "/audit-logs/details/l-3")
        self.assertIsNone(payload["data"]["user"])

        status, payload = self._call("GET", "/audit-logs/details/missing")
        self.assertEqual((status, payload["message"]), (404, "Audit log not found"))

    def test_user_logs_query_the_timestamp_index(self) -> None:
        status, payload = self._call(
            "GET", "/audit-logs/user/u-1", query={"startDate": "2026-01-01T00:00:00Z"}
        )
        self.assertEqual(status, 200)
        data = payload["data"]
        self.assertEqual(data["user"], "u-1")
        self.assertEqual(self._ids(data["logs"]), ["l-2", "l-1"])
        self.assertEqual(data["count"], 2)
        query = self.logs.queries[-1]
        self.assertEqual(query["IndexName"], "userId-timestamp-index")
        self.assertIs(query["ScanIndexForward"], False)

        _, payload = self._call("GET", "/audit-logs/user/u-1", query={"action": "login"})
        self.assertEqual(self._ids(payload["data"]["logs"]), ["l-4"])

    def test_module_logs_validate_the_module(self) -> None:
        status, payload = self._call("GET", "/audit-logs/module/Session")
        self.assertEqual(status, 200)
        self.assertEqual(payload["data"]["module"], "Session")
        self.assertEqual(self._ids(payload["data"]["logs"]), ["l-3", "l-4"])
        self.assertEqual(self.logs.queries[-1]["IndexName"], "module-timestamp-index")

        _, payload = self._call("GET", "/audit-logs/module/Session", query={"userId": "u-2"})
        self.assertEqual(self._ids(payload["data"]["logs"]), ["l-3"])

        status, _ = self._call("GET", "/audit-logs/module/Billing")
        self.assertEqual(status, 400)

    def test_action_logs_lowercase_the_action(self) -> None:
        status, payload = self._call("GET", "/audit-logs/action/LOGIN")
        self.assertEqual(status, 200)
        self.assertEqual(payload["data"]["action"], "login")
        self.assertEqual(self._ids(payload["data"]["logs"]), ["l-3", "l-4"])

        _, payload = self._call("GET", "/audit-logs/action/login", query={"userId": "u-2"})
        self.assertEqual(payload["data"]["count"], 1)

    def test_statistics_aggregate_the_matching_logs(self) -> None:
        status, payload = self._call("GET", "/audit-logs/statistics")
        self.assertEqual(status, 200)
        stats = payload["data"]
        self.assertEqual(stats["totalLogs"], 4)
        self.assertEqual(stats["byModule"], {"Course": 2, "Session": 2})
        self.assertEqual(stats["byStatus"], {"success": 2, "failure": 1, "warning": 1})
        self.assertEqual(stats["byDate"]["2026-03-01"], 1)
        self.assertEqual(stats["topUsers"][0], {"userId": "u-1", "count": 3})
        self.assertEqual(stats["recentActivity"][0]["log_id"], "l-3")

        _, payload = self._call(
            "GET",
            "/audit-logs/statistics",
            query={"startDate": "2026-03-02T00:00:00Z", "endDate": "2026-03-31T00:00:00Z"},
        )
        self.assertEqual(payload["data"]["totalLogs"], 2)

        _, payload = self._call("GET", "/audit-logs/statistics", query={"userId": "u-2"})
        self.assertEqual(payload["data"]["byAction"], {"login": 1})

    def test_summary_of_no_logs_keeps_status_buckets(self) -> None:
        stats = summarize_logs([])
        self.assertEqual(stats["totalLogs"], 0)
        self.assertEqual(stats["byStatus"], {"success": 0, "failure": 0, "warning": 0})
        self.assertEqual(stats["topUsers"], [])

    def test_export_as_json(self) -> None:
        status, payload = self._call("GET", "/audit-logs/export", query={"module": "Course"})
        self.assertEqual(status, 200)
        self.assertEqual(payload["data"]["count"], 2)
        self.assertEqual(self._ids(payload["data"]["logs"]), ["l-2", "l-1"])
        self.assertIn("exportedAt", payload["data"])

    def test_export_as_csv(self) -> None:
        response = lambda_handler(
            api_event("GET", "/audit-logs/export", query={"format": "csv", "userId": "u-2"}), None
        )
        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(response["headers"]["Content-Type"], "text/csv")
        self.assertTrue(
            response["headers"]["Content-Disposition"].startswith('attachment; filename="audit-logs-')
        )
        lines = response["body"].splitlines()
        self.assertEqual(lines[0], "Log ID,User ID,Action,Module,Status,IP Address,Timestamp")
        self.assertEqual(lines[1:], ["l-3,u-2,login,Session,success,198.51.100.2,2026-03-03T09:00:00Z"])

    def test_export_rejects_unknown_format(self) -> None:
        status, payload = self._call("GET", "/audit-logs/export", query={"format": "xml"})
        self.assertEqual((status, payload["message"]), (400, "Invalid format. Must be one of: json, csv"))

    def test_cleanup_deletes_logs_older_than_the_cutoff(self) -> None:
        now = utc_now()
        self.logs.rows.clear()
        self.logs.seed(
            {"log_id": "old", "user_id": "u-1", "timestamp": to_rfc3339(now - timedelta(days=120))},
            {"log_id": "recent", "user_id": "u-1", "timestamp": to_rfc3339(now - timedelta(days=1))},
        )
        status, payload = self._call("DELETE", "/audit-logs/cleanup")
        self.assertEqual(status, 200)
        self.assertEqual(payload["message"], "Deleted 1 logs older than 90 days")
        self.assertEqual(payload["data"]["deletedCount"], 1)
        self.assertEqual(list(self.logs.rows), ["recent"])
        self.assertEqual(self.logs.batches, 1)

        _, payload = self._call("DELETE", "/audit-logs/cleanup", query={"daysOld": "0"})
        self.assertEqual(payload["message"], "daysOld must be a positive integer")

    def test_routes_require_authentication(self) -> None:
        status, _ = self._call("GET", "/audit-logs", user_id=None)
        self.assertEqual(status, 401)


if __name__ == "__main__":
    unittest.main()
