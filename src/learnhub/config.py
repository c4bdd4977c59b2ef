"""Environment-backed settings for tables, buckets and upstream services."""

from __future__ import annotations

import os

from .errors import ConfigurationError

TABLE_DEFAULTS = {
    "COURSES_TABLE": "TestCourses",
    "SUBJECTS_TABLE": "TestSubjects",
    "CHAPTERS_TABLE": "TestChapters",
    "SECTIONS_TABLE": "TestSections",
    "ASSIGNMENTS_TABLE": "TestCourseAssignments",
    "COURSE_BUNDLES_TABLE": "TestCourseBundles",
    "QUESTIONS_TABLE": "TestQuestions",
    "OPTIONS_TABLE": "TestAssignmentQuestionOptions",
    "RESULTS_TABLE": "TestResults",
    "MATERIALS_TABLE": "TestLearningMaterials",
    "MATERIAL_TAGS_TABLE": "TestMaterialTags",
    "SESSIONS_TABLE": "UserSessions",
    "USERS_TABLE": "TestUsers",
    "STANDARDS_TABLE": "TestStandards",
    "SYLLABUS_TABLE": "TestSyllabus",
    "AUDIT_LOGS_TABLE": "TestAuditLogs",
}

DEFAULT_UPLOAD_BUCKET = "test-api-uploads-ap-south-1"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
DEFAULT_SESSION_EXPIRY_HOURS = 24


def setting(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def require_setting(name: str) -> str:
    """Return a mandatory setting or raise ``ConfigurationError``."""
    value = setting(name)
    if not value:
        raise ConfigurationError(f"server misconfiguration: {name} missing")
    return value


def table_name(env_name: str) -> str:
    if env_name not in TABLE_DEFAULTS:
        raise KeyError(f"unknown table setting {env_name}")
    return setting(env_name) or TABLE_DEFAULTS[env_name]


def upload_bucket() -> str:
    return setting("S3_UPLOAD_BUCKET") or setting("S3_BUCKET_NAME") or DEFAULT_UPLOAD_BUCKET


def anthropic_api_key() -> str:
    return setting("CLAUDE_API_KEY")


def anthropic_model() -> str:
    return setting("ANTHROPIC_MODEL") or DEFAULT_ANTHROPIC_MODEL


def anthropic_base_url() -> str:
    return (setting("ANTHROPIC_API_BASE_URL") or DEFAULT_ANTHROPIC_BASE_URL).rstrip("/")


def int_setting(name: str, default_value: int) -> int:
    raw = setting(name)
    if not raw:
        return default_value
    try:
        value = int(raw)
    except ValueError:
        return default_value
    return value if value > 0 else default_value


def session_expiry_hours() -> int:
    return int_setting("SESSION_EXPIRY_HOURS", DEFAULT_SESSION_EXPIRY_HOURS)
