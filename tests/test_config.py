"""Unit tests for environment-backed settings and audit records."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from learnhub.audit import AuditLogWriter, build_audit_item
from learnhub.config import (
    int_setting,
    require_setting,
    session_expiry_hours,
    table_name,
    upload_bucket,
)
from learnhub.errors import ConfigurationError


class ConfigTests(unittest.TestCase):
    def test_table_name_prefers_environment(self) -> None:
        with patch.dict("os.environ", {"COURSES_TABLE": " ProdCourses "}, clear=True):
            self.assertEqual(table_name("COURSES_TABLE"), "ProdCourses")
            self.assertEqual(table_name("SUBJECTS_TABLE"), "TestSubjects")
        with self.assertRaises(KeyError):
            table_name("NOPE_TABLE")

    def test_require_setting_raises_configuration_error(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(ConfigurationError) as ctx:
                require_setting("USER_POOL_ID")
        self.assertEqual(str(ctx.exception), "server misconfiguration: USER_POOL_ID missing")

    def test_upload_bucket_fallbacks(self) -> None:
        with patch.dict("os.environ", {"S3_BUCKET_NAME": "legacy"}, clear=True):
            self.assertEqual(upload_bucket(), "legacy")
        with patch.dict("os.environ", {"S3_UPLOAD_BUCKET": "primary", "S3_BUCKET_NAME": "legacy"}, clear=True):
            self.assertEqual(upload_bucket(), "primary")

    def test_integer_settings(self) -> None:
        with patch.dict("os.environ", {"SESSION_EXPIRY_HOURS": "12"}, clear=True):
            self.assertEqual(session_expiry_hours(), 12)
        with patch.dict("os.environ", {}, clear=True):
            self.assertEqual(session_expiry_hours(), 24)
        with patch.dict("os.environ", {"WORKERS": "many"}, clear=True):
            self.assertEqual(int_setting("WORKERS", 3), 3)


class _FailingStore:
    def put(self, item: dict) -> dict:
        raise RuntimeError("table offline")


class AuditTests(unittest.TestCase):
    def test_build_audit_item_defaults(self) -> None:
        item = build_audit_item(user_id="", action="create", module="Course", details={"a": 1}, ip_address="")
        self.assertEqual(item["user_id"], "system")
        self.assertEqual(item["ip_address"], "Unknown")
        self.assertEqual(item["status"], "success")
        self.assertGreater(item["ttl"], 0)

    def test_audit_failures_are_logged_not_raised(self) -> None:
        writer = AuditLogWriter(_FailingStore(), module="Course")
        with self.assertLogs("learnhub.audit", level="WARNING"):
            self.assertIsNone(writer.record(user_id="u-1", action="update", details={}, ip_address="1.2.3.4"))


if __name__ == "__main__":
    unittest.main()
