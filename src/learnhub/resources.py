"""Resource definitions and the generic create/read/update/delete service."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import NotFoundError, ValidationError
from .pagination import Page
from .records import is_missing, new_id, normalize_choice, utc_now_rfc3339
from .store import DynamoDbResourceStore

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

COURSE_STATUSES = ("active", "inactive", "archived")
DIFFICULTY_LEVELS = ("basic", "intermediate", "advanced")
QUESTION_TYPES = ("mcq", "true_false", "short", "descriptive")
QUESTION_DIFFICULTIES = ("easy", "medium", "hard")
MATERIAL_TYPES = ("text", "video", "image", "pdf", "simulation", "flashcard", "concept_map")
STANDARD_STATUSES = ("active", "inactive")


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def is_reference_field(name: str) -> bool:
    """Foreign-key attributes are the only ones an update may clear with null."""
    return name.endswith(("_id", "_ids"))


@dataclass(frozen=True)
class ResourceSpec:
    """Static description of one entity table."""

    name: str
    table_env: str
    key_name: str
    updatable: frozenset[str]
    choices: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    soft_delete_status: str = "inactive"

    def not_found_message(self) -> str:
        return f"{self.name} not found"


COURSES = ResourceSpec(
    name="Course",
    table_env="COURSES_TABLE",
    key_name="course_id",
    updatable=frozenset(
        {
            "name", "description", "standard_id", "subject_ids", "bundle_id", "duration",
            "difficulty_level", "instructor_id", "status", "chapter_id", "section_id",
            "material_id", "syllabus_id",
        }
    ),
    choices={"difficulty_level": DIFFICULTY_LEVELS, "status": COURSE_STATUSES},
    soft_delete_status="archived",
)
SUBJECTS = ResourceSpec(
    name="Subject",
    table_env="SUBJECTS_TABLE",
    key_name="subject_id",
    updatable=frozenset(
        {
            "name", "description", "code", "status", "standard_id", "course_id",
            "chapter_id", "section_id", "material_id",
        }
    ),
    choices={"status": COURSE_STATUSES},
    soft_delete_status="archived",
)
CHAPTERS = ResourceSpec(
    name="Chapter",
    table_env="CHAPTERS_TABLE",
    key_name="chapter_id",
    updatable=frozenset(
        {
            "name", "description", "order_index", "material_id", "course_id", "section_id",
            "standard_id", "status", "subject_id",
        }
    ),
    choices={"status": COURSE_STATUSES},
    soft_delete_status="archived",
)
SECTIONS = ResourceSpec(
    name="Section",
    table_env="SECTIONS_TABLE",
    key_name="section_id",
    updatable=frozenset(
        {
            "name", "description", "order_index", "duration", "status", "subject_id",
            "material_id", "course_id", "standard_id", "chapter_id",
        }
    ),
    choices={"status": STANDARD_STATUSES},
)
ASSIGNMENTS = ResourceSpec(
    name="Assignment",
    table_env="ASSIGNMENTS_TABLE",
    key_name="assignment_id",
    updatable=frozenset(
        {
            "title", "description", "due_date", "total_marks", "status", "material_id",
            "standard_id", "subject_id", "chapter_id", "section_id", "url", "language",
            "tts_available", "ai_tutor_enabled",
        }
    ),
    choices={"status": STANDARD_STATUSES},
)
BUNDLES = ResourceSpec(
    name="Bundle",
    table_env="COURSE_BUNDLES_TABLE",
    key_name="bundle_id",
    updatable=frozenset(
        {
            "name", "description", "course_ids", "standard_id", "maxSelectableCourses",
            "status", "subject_id", "material_id", "chapter_id", "section_id",
        }
    ),
    choices={"status": STANDARD_STATUSES},
)
QUESTIONS = ResourceSpec(
    name="Question",
    table_env="QUESTIONS_TABLE",
    key_name="question_id",
    updatable=frozenset(
        {
            "question_text", "type", "difficulty_level", "marks", "correct_answer",
            "explanation", "status",
        }
    ),
    choices={
        "type": QUESTION_TYPES,
        "difficulty_level": QUESTION_DIFFICULTIES,
        "status": STANDARD_STATUSES,
    },
)
OPTIONS = ResourceSpec(
    name="Option",
    table_env="OPTIONS_TABLE",
    key_name="option_id",
    updatable=frozenset(),
)
RESULTS = ResourceSpec(
    name="Result",
    table_env="RESULTS_TABLE",
    key_name="result_id",
    updatable=frozenset({"remarks", "total_score", "total_possible", "percentage", "status"}),
)
MATERIALS = ResourceSpec(
    name="Material",
    table_env="MATERIALS_TABLE",
    key_name="material_id",
    updatable=frozenset(
        {
            "title", "type", "url", "language", "tts_available", "ai_tutor_enabled",
            "is_gamified", "status", "course_id", "subject_id", "chapter_id", "section_id",
            "standard_id", "tags",
        }
    ),
    choices={"type": MATERIAL_TYPES, "status": STANDARD_STATUSES},
)
TAGS = ResourceSpec(
    name="Tag",
    table_env="MATERIAL_TAGS_TABLE",
    key_name="tag_id",
    updatable=frozenset({"tag_name", "status"}),
    choices={"status": STANDARD_STATUSES},
)
SESSIONS = ResourceSpec(
    name="Session",
    table_env="SESSIONS_TABLE",
    key_name="session_id",
    updatable=frozenset(),
)
USERS = ResourceSpec(name="User", table_env="USERS_TABLE", key_name="user_id", updatable=frozenset())
STANDARDS = ResourceSpec(
    name="Standard",
    table_env="STANDARDS_TABLE",
    key_name="standard_id",
    updatable=frozenset({"name", "description", "order_index", "status"}),
    choices={"status": COURSE_STATUSES},
    soft_delete_status="archived",
)
SYLLABUS = ResourceSpec(
    name="Syllabus", table_env="SYLLABUS_TABLE", key_name="syllabus_id", updatable=frozenset()
)
AUDIT_LOGS = ResourceSpec(
    name="Audit log", table_env="AUDIT_LOGS_TABLE", key_name="log_id", updatable=frozenset()
)


class ResourceService:
    """CRUD operations over one table, driven by a ``ResourceSpec``."""

    def __init__(self, spec: ResourceSpec, store: DynamoDbResourceStore) -> None:
        self.spec = spec
        self.store = store

    def create(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        now = utc_now_rfc3339()
        item = {self.spec.key_name: new_id(), **attributes, "created_at": now, "updated_at": now}
        return self.store.put(item)

    def find(self, record_id: str) -> dict[str, Any] | None:
        if not record_id:
            return None
        return self.store.get(record_id)

    def get(self, record_id: str) -> dict[str, Any]:
        item = self.find(record_id)
        if item is None:
            raise NotFoundError(self.spec.not_found_message())
        return item

    def updatable_changes(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Keep allow-listed fields, accepting camelCase spellings of them.

        Enumerated fields must carry one of their allowed values. ``None`` clears
        a reference field and is rejected for every other field.
        """
        changes: dict[str, Any] = {}
        for raw_name, value in body.items():
            name = raw_name if raw_name in self.spec.updatable else camel_to_snake(raw_name)
            if name not in self.spec.updatable or name == self.spec.key_name:
                continue
            label = name.replace("_", " ")
            allowed = self.spec.choices.get(name)
            if allowed is not None:
                if is_missing(value):
                    raise ValidationError(f"Invalid {label}. Must be one of: {', '.join(allowed)}")
                value = normalize_choice(value, allowed, label=label)
            elif value is None and not is_reference_field(name):
                raise ValidationError(f"Invalid {label}. Value cannot be null")
            changes[name] = value
        return changes

    def update(self, record_id: str, body: Mapping[str, Any]) -> dict[str, Any]:
        changes = self.updatable_changes(body)
        if not changes:
            raise ValidationError("No valid fields to update")
        self.get(record_id)
        changes["updated_at"] = utc_now_rfc3339()
        return self.store.update(record_id, changes)

    def set_fields(self, record_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Write ``changes`` without allow-list filtering; caller owns validation."""
        return self.store.update(record_id, {**changes, "updated_at": utc_now_rfc3339()})

    def soft_delete(self, record_id: str) -> dict[str, Any]:
        self.get(record_id)
        return self.set_fields(record_id, {"status": self.spec.soft_delete_status})

    def hard_delete(self, record_id: str) -> None:
        self.get(record_id)
        self.store.delete(record_id)

    def list_page(
        self,
        *,
        limit: int,
        start_key: Mapping[str, Any] | None = None,
        filter_expression: Any = None,
        index: tuple[str, str, Any] | None = None,
    ) -> Page:
        """Query ``index`` (name, attribute, value) when given, otherwise scan."""
        if index is not None:
            index_name, attribute, value = index
            return self.store.query_page(
                index_name,
                attribute,
                value,
                limit=limit,
                start_key=start_key,
                filter_expression=filter_expression,
            )
        return self.store.scan_page(limit=limit, start_key=start_key, filter_expression=filter_expression)

    def find_many(self, record_ids: list[str]) -> list[dict[str, Any]]:
        rows = []
        for record_id in record_ids:
            item = self.find(record_id)
            if item is not None:
                rows.append(item)
        return rows
