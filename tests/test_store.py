"""Unit tests for the DynamoDB resource store and generic resource service."""

from __future__ import annotations

import unittest

from learnhub.errors import NotFoundError, ValidationError
from learnhub.resources import CHAPTERS, COURSES, ResourceService, camel_to_snake
from learnhub.store import DynamoDbResourceStore, contains_filter, equals_filter, range_condition
from tests.fakes import FakeTable


class DynamoDbResourceStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.table = FakeTable("course_id")
        self.store = DynamoDbResourceStore(self.table, "course_id")

    def test_put_drops_none_and_get_converts_decimals(self) -> None:
        self.store.put({"course_id": "c-1", "name": "Physics", "fee": 99.5, "standard_id": None})
        self.assertNotIn("standard_id", self.table.rows["c-1"])
        self.assertEqual(self.store.get("c-1"), {"course_id": "c-1", "name": "Physics", "fee": 99.5})
        self.assertIsNone(self.store.get("missing"))

    def test_update_sets_and_removes_attributes(self) -> None:
        self.store.put({"course_id": "c-1", "name": "Physics", "syllabus_id": "s-1"})
        updated = self.store.update("c-1", {"name": "Chemistry", "syllabus_id": None})
        self.assertEqual(updated, {"course_id": "c-1", "name": "Chemistry"})

    def test_update_without_changes_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.store.update("c-1", {})

    def test_scan_page_reports_last_key_and_resumes(self) -> None:
        self.table.seed(*({"course_id": f"c-{i}", "status": "active"} for i in range(3)))
        first = self.store.scan_page(limit=2)
        self.assertEqual(len(first.items), 2)
        self.assertEqual(first.last_key, {"course_id": "c-1"})
        second = self.store.scan_page(limit=2, start_key=first.last_key)
        self.assertEqual([row["course_id"] for row in second.items], ["c-2"])
        self.assertIsNone(second.last_key)

    def test_filters_skip_empty_values(self) -> None:
        self.table.seed(
            {"course_id": "c-1", "status": "active", "subject_ids": ["m-1"]},
            {"course_id": "c-2", "status": "archived", "subject_ids": ["m-2"]},
        )
        rows = self.store.scan_all(filter_expression=equals_filter(status="active", difficulty_level=None))
        self.assertEqual([row["course_id"] for row in rows], ["c-1"])
        self.assertIsNone(equals_filter(status=""))
        rows = self.store.scan_all(filter_expression=contains_filter("subject_ids", "m-2"))
        self.assertEqual([row["course_id"] for row in rows], ["c-2"])

    def test_query_all_uses_index_key(self) -> None:
        self.table.seed(
            {"course_id": "c-1", "standard_id": "std-1"},
            {"course_id": "c-2", "standard_id": "std-2"},
        )
        rows = self.store.query_all("standardId-index", "standard_id", "std-2")
        self.assertEqual([row["course_id"] for row in rows], ["c-2"])
        self.assertEqual(self.table.queries[0]["IndexName"], "standardId-index")

    def test_range_condition_uses_the_bounds_given(self) -> None:
        self.table.seed(
            {"course_id": "c-1", "created_at": "2026-01-01T00:00:00Z"},
            {"course_id": "c-2", "created_at": "2026-02-01T00:00:00Z"},
            {"course_id": "c-3", "created_at": "2026-03-01T00:00:00Z"},
        )
        self.assertIsNone(range_condition("created_at"))
        cases = (
            (("2026-01-15T00:00:00Z", "2026-02-15T00:00:00Z"), ["c-2"]),
            (("2026-01-15T00:00:00Z", None), ["c-2", "c-3"]),
            ((None, "2026-02-01T00:00:00Z"), ["c-1", "c-2"]),
        )
        for (start, end), expected in cases:
            with self.subTest(start=start, end=end):
                rows = self.store.scan_all(filter_expression=range_condition("created_at", start, end))
                self.assertEqual(sorted(row["course_id"] for row in rows), expected)

    def test_query_page_adds_sort_condition_to_key_condition(self) -> None:
        self.table.seed(
            {"course_id": "c-1", "user_id": "u-1", "created_at": "2026-01-01T00:00:00Z"},
            {"course_id": "c-2", "user_id": "u-1", "created_at": "2026-03-01T00:00:00Z"},
            {"course_id": "c-3", "user_id": "u-2", "created_at": "2026-03-01T00:00:00Z"},
        )
        page = self.store.query_page(
            "userId-index",
            "user_id",
            "u-1",
            sort_condition=range_condition("created_at", "2026-02-01T00:00:00Z", on_key=True),
        )
        self.assertEqual([row["course_id"] for row in page.items], ["c-2"])

    def test_delete_many_uses_one_batch(self) -> None:
        self.table.seed({"course_id": "c-1"}, {"course_id": "c-2"}, {"course_id": "c-3"})
        self.assertEqual(self.store.delete_many(["c-1", "c-3"]), 2)
        self.assertEqual(list(self.table.rows), ["c-2"])
        self.assertEqual(self.table.batches, 1)


class ResourceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.table = FakeTable("chapter_id")
        self.service = ResourceService(CHAPTERS, DynamoDbResourceStore(self.table, "chapter_id"))

    def test_camel_to_snake(self) -> None:
        self.assertEqual(camel_to_snake("subjectId"), "subject_id")
        self.assertEqual(camel_to_snake("name"), "name")

    def test_create_assigns_id_and_timestamps(self) -> None:
        item = self.service.create({"name": "Kinematics", "subject_id": "m-1"})
        self.assertIn(item["chapter_id"], self.table.rows)
        self.assertEqual(item["created_at"], item["updated_at"])

    def test_update_keeps_allow_listed_fields_only(self) -> None:
        self.table.seed({"chapter_id": "ch-1", "name": "Old"})
        updated = self.service.update("ch-1", {"name": "New", "chapterId": "hijack", "unknown": 1})
        self.assertEqual(updated["name"], "New")
        self.assertEqual(updated["chapter_id"], "ch-1")
        self.assertNotIn("unknown", updated)

    def test_update_errors(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.service.update("ch-1", {"unknown": 1})
        self.assertEqual(ctx.exception.message, "No valid fields to update")
        with self.assertRaises(NotFoundError):
            self.service.update("ch-missing", {"name": "x"})

    def test_soft_delete_sets_status(self) -> None:
        self.table.seed({"chapter_id": "ch-1", "name": "Old", "status": "active"})
        self.assertEqual(self.service.soft_delete("ch-1")["status"], CHAPTERS.soft_delete_status)

    def test_course_choices_are_validated_on_update(self) -> None:
        table = FakeTable("course_id")
        table.seed({"course_id": "c-1", "name": "Physics"})
        service = ResourceService(COURSES, DynamoDbResourceStore(table, "course_id"))
        with self.assertRaises(ValidationError):
            service.update("c-1", {"status": "deleted"})

    def test_null_cannot_clear_status_or_required_fields(self) -> None:
        table = FakeTable("course_id")
        table.seed({"course_id": "c-1", "name": "Physics", "status": "active"})
        service = ResourceService(COURSES, DynamoDbResourceStore(table, "course_id"))
        with self.assertRaises(ValidationError) as ctx:
            service.update("c-1", {"status": None})
        self.assertEqual(ctx.exception.message, "Invalid status. Must be one of: active, inactive, archived")
        with self.assertRaises(ValidationError) as ctx:
            service.update("c-1", {"difficultyLevel": ""})
        self.assertTrue(ctx.exception.message.startswith("Invalid difficulty level."))
        with self.assertRaises(ValidationError) as ctx:
            service.update("c-1", {"name": None})
        self.assertEqual(ctx.exception.message, "Invalid name. Value cannot be null")
        self.assertEqual(table.rows["c-1"], {"course_id": "c-1", "name": "Physics", "status": "active"})

    def test_null_clears_reference_fields(self) -> None:
        self.table.seed({"chapter_id": "ch-1", "name": "Old", "material_id": "mat-1"})
        updated = self.service.update("ch-1", {"materialId": None})
        self.assertNotIn("material_id", updated)
        self.assertEqual(updated["name"], "Old")


if __name__ == "__main__":
    unittest.main()
