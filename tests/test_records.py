"""Unit tests for item helpers, pagination tokens and identity utilities."""

from __future__ import annotations

import base64
import hashlib
import hmac
import unittest
from datetime import datetime, timezone
from decimal import Decimal

from learnhub.errors import ValidationError
from learnhub.identity import device_info, is_e164, map_client_error, normalize_phone, secret_hash
from learnhub.pagination import Page, decode_token, encode_token, parse_limit
from learnhub.records import (
    as_number,
    as_string_list,
    compact,
    normalize_choice,
    require_fields,
    rfc3339_after,
    to_dynamo,
    to_json_safe,
)
from tests.fakes import client_error


class RecordHelperTests(unittest.TestCase):
    def test_rfc3339_after_formats_with_trailing_z(self) -> None:
        now = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(rfc3339_after(seconds=90, now=now), "2026-03-01T12:01:30Z")

    def test_require_fields_names_first_missing_field(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            require_fields({"name": "Algebra", "createdBy": "  "}, ("name", "createdBy"))
        self.assertEqual(ctx.exception.message, "createdBy is required")

    def test_normalize_choice_lowercases_and_rejects_unknown(self) -> None:
        self.assertEqual(normalize_choice("Advanced", ("basic", "advanced"), label="difficulty"), "advanced")
        self.assertEqual(normalize_choice(None, ("basic",), label="difficulty", default="basic"), "basic")
        with self.assertRaises(ValidationError) as ctx:
            normalize_choice("expert", ("basic", "advanced"), label="difficulty level")
        self.assertEqual(ctx.exception.message, "Invalid difficulty level. Must be one of: basic, advanced")

    def test_dynamo_conversion_handles_nested_floats(self) -> None:
        stored = to_dynamo({"score": 72.5, "tags": [1.5, True], "count": 3})
        self.assertEqual(stored["score"], Decimal("72.5"))
        self.assertIs(stored["tags"][1], True)
        self.assertEqual(to_json_safe(stored), {"score": 72.5, "tags": [1.5, True], "count": 3})

    def test_compact_drops_none_only(self) -> None:
        self.assertEqual(compact({"a": None, "b": "", "c": 0}), {"b": "", "c": 0})

    def test_as_number_parses_strings_and_rejects_booleans(self) -> None:
        self.assertEqual(as_number("40", field="totalMarks"), 40)
        self.assertEqual(as_number("12.5", field="totalMarks"), 12.5)
        with self.assertRaises(ValidationError):
            as_number(True, field="totalMarks")
        with self.assertRaises(ValidationError):
            as_number("many", field="totalMarks")

    def test_as_string_list_accepts_single_string(self) -> None:
        self.assertEqual(as_string_list("c-1"), ["c-1"])
        self.assertEqual(as_string_list(["c-1", "", None, "c-2"]), ["c-1", "c-2"])


class PaginationTests(unittest.TestCase):
    def test_token_round_trip_and_page_property(self) -> None:
        key = {"course_id": "c-9"}
        self.assertEqual(decode_token(encode_token(key)), key)
        self.assertEqual(Page(items=[], last_key=key).next_token, encode_token(key))
        self.assertIsNone(Page(items=[]).next_token)

    def test_decode_token_rejects_garbage(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            decode_token("not-base64!!")
        self.assertEqual(ctx.exception.message, "Invalid lastKey")
        with self.assertRaises(ValidationError):
            decode_token("\u00e9t\u00e9")
        self.assertIsNone(decode_token(""))

    def test_parse_limit_defaults_and_caps(self) -> None:
        self.assertEqual(parse_limit(None), 50)
        self.assertEqual(parse_limit("5000"), 1000)
        with self.assertRaises(ValidationError):
            parse_limit("0")


class IdentityHelperTests(unittest.TestCase):
    def test_secret_hash_matches_hmac_definition(self) -> None:
        expected = base64.b64encode(
            hmac.new(b"secret", b"ada@example.comclient", hashlib.sha256).digest()
        ).decode("ascii")
        self.assertEqual(secret_hash("ada@example.com", client_id="client", client_secret="secret"), expected)

    def test_phone_helpers(self) -> None:
        self.assertEqual(normalize_phone(" 919876543210 "), "+919876543210")
        self.assertTrue(is_e164("+919876543210"))
        self.assertFalse(is_e164("+0123"))

    def test_device_info_summarizes_user_agent(self) -> None:
        self.assertEqual(
            device_info("Mozilla/5.0 (Windows NT 10.0) Chrome/120.0"), "Desktop - Windows - Chrome"
        )
        self.assertEqual(device_info(""), "Unknown Device")

    def test_map_client_error_uses_lookup_table(self) -> None:
        exc = client_error("UsernameExistsException", "User already exists")
        error = map_client_error(
            exc,
            {"UsernameExistsException": (409, "Email already registered")},
            default=(400, "Signup failed"),
        )
        self.assertEqual(error.status_code, 409)
        self.assertEqual(
            error.to_payload(),
            {"success": False, "message": "Email already registered", "error": "User already exists"},
        )

        fallback = map_client_error(client_error("Boom"), {}, default=(400, "Signup failed"))
        self.assertEqual((fallback.status_code, fallback.message), (400, "Signup failed"))


if __name__ == "__main__":
    unittest.main()
