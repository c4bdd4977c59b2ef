"""Unit tests for request parsing, envelopes and route dispatch."""

from __future__ import annotations

import base64
import json
import unittest
from unittest.mock import patch

from backend.api_gateway import ApiRequest, dispatch, page_response, route, success
from learnhub.errors import ConfigurationError, NotFoundError, ValidationError
from learnhub.pagination import Page, decode_token
from tests.fakes import api_event, body_of


def _echo(request: ApiRequest) -> dict:
    return success({"params": request.path_params, "user": request.user})


def _missing(_request: ApiRequest) -> dict:
    raise NotFoundError("Widget not found")


def _misconfigured(_request: ApiRequest) -> dict:
    raise ConfigurationError("server misconfiguration: WIDGETS_TABLE missing")


def _explode(_request: ApiRequest) -> dict:
    raise RuntimeError("boom")


ROUTES = [
    route("GET", "/widgets/search", _echo, "Failed to search widgets"),
    route("GET", "/widgets/{widgetId}", _echo, "Failed to fetch widget"),
    route("DELETE", "/widgets/{widgetId}", _missing, "Failed to delete widget"),
    route("GET", "/private/{widgetId}", _echo, "Failed to fetch widget", authenticated=True),
    route("GET", "/broken", _misconfigured, "Failed to fetch broken"),
    route("GET", "/explode", _explode, "Failed to explode"),
]


class DispatchTests(unittest.TestCase):
    def _dispatch(self, event: dict) -> dict:
        with patch.dict("os.environ", {}, clear=True):
            return dispatch(ROUTES, event)

    def test_path_template_captures_parameters(self) -> None:
        response = self._dispatch(api_event("GET", "/widgets/w-1/", user_id=None))
        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(body_of(response)["data"]["params"], {"widgetId": "w-1"})

    def test_literal_route_wins_when_listed_first(self) -> None:
        response = self._dispatch(api_event("GET", "/widgets/search", user_id=None))
        self.assertEqual(body_of(response)["data"]["params"], {})

    def test_stage_prefix_is_stripped(self) -> None:
        event = api_event("GET", "/dev/widgets/w-2", user_id=None)
        event["requestContext"]["stage"] = "dev"
        self.assertEqual(body_of(self._dispatch(event))["data"]["params"], {"widgetId": "w-2"})

    def test_options_preflight_and_unknown_routes(self) -> None:
        preflight = self._dispatch(api_event("OPTIONS", "/anything", user_id=None))
        self.assertEqual(preflight["statusCode"], 200)
        self.assertIn("DELETE", preflight["headers"]["Access-Control-Allow-Methods"])

        missing = self._dispatch(api_event("GET", "/nope", user_id=None))
        self.assertEqual(missing["statusCode"], 404)
        self.assertEqual(body_of(missing), {"success": False, "message": "Route not found"})

        wrong_method = self._dispatch(api_event("PATCH", "/widgets/w-1", user_id=None))
        self.assertEqual(wrong_method["statusCode"], 405)

    def test_api_errors_become_envelopes(self) -> None:
        response = self._dispatch(api_event("DELETE", "/widgets/w-1", user_id=None))
        self.assertEqual(response["statusCode"], 404)
        self.assertEqual(body_of(response), {"success": False, "message": "Widget not found"})

    def test_configuration_errors_and_crashes_are_500(self) -> None:
        broken = self._dispatch(api_event("GET", "/broken", user_id=None))
        self.assertEqual(broken["statusCode"], 500)
        self.assertEqual(body_of(broken)["message"], "Server configuration error")

        with self.assertLogs("backend.api_gateway", level="ERROR"):
            crashed = self._dispatch(api_event("GET", "/explode", user_id=None))
        self.assertEqual(crashed["statusCode"], 500)
        self.assertEqual(body_of(crashed), {"success": False, "message": "Failed to explode", "error": "boom"})

    def test_authenticated_route_requires_bearer_token(self) -> None:
        response = self._dispatch(api_event("GET", "/private/w-1", user_id=None))
        self.assertEqual(response["statusCode"], 401)
        self.assertEqual(body_of(response)["error"], "Access token required")

    def test_authenticated_route_accepts_gateway_claims(self) -> None:
        response = self._dispatch(api_event("GET", "/private/w-1", user_id="user-7"))
        self.assertEqual(body_of(response)["data"]["user"]["userId"], "user-7")

    def test_bearer_token_without_pool_settings_is_configuration_error(self) -> None:
        event = api_event("GET", "/private/w-1", user_id=None, headers={"Authorization": "Bearer abc"})
        response = self._dispatch(event)
        self.assertEqual(response["statusCode"], 500)
        self.assertEqual(body_of(response)["message"], "Server configuration error")


class ApiRequestTests(unittest.TestCase):
    def test_json_body_errors(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            ApiRequest.from_event(api_event("POST", "/x")).json_body()
        self.assertEqual(ctx.exception.message, "Request body is required")

        with self.assertRaises(ValidationError) as ctx:
            ApiRequest.from_event(api_event("POST", "/x", body="{oops")).json_body()
        self.assertEqual(ctx.exception.message, "Invalid JSON format in request body")

        with self.assertRaises(ValidationError):
            ApiRequest.from_event(api_event("POST", "/x", body="[1, 2]")).json_body()

    def test_base64_body_is_decoded(self) -> None:
        event = api_event("POST", "/x", body=base64.b64encode(b'{"name": "n"}').decode("ascii"))
        event["isBase64Encoded"] = True
        self.assertEqual(ApiRequest.from_event(event).json_body(), {"name": "n"})

    def test_base64_body_with_non_ascii_text_is_rejected(self) -> None:
        event = api_event("POST", "/x", body="\u00e9t\u00e9")
        event["isBase64Encoded"] = True
        with self.assertRaises(ValidationError) as ctx:
            ApiRequest.from_event(event).json_body()
        self.assertEqual(ctx.exception.message, "Invalid JSON format in request body")

    def test_client_ip_is_forwarded_header_or_unknown(self) -> None:
        request = ApiRequest.from_event(
            api_event("GET", "/x", headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
        )
        self.assertEqual(request.client_ip, "198.51.100.1")
        # requestContext sourceIp is ignored
        self.assertEqual(ApiRequest.from_event(api_event("GET", "/x")).client_ip, "Unknown")

    def test_page_response_includes_count_and_next_token(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            response = page_response(Page(items=[{"a": 1}], last_key={"course_id": "c-1"}))
        payload = json.loads(response["body"])
        self.assertEqual(payload["count"], 1)
        self.assertEqual(decode_token(payload["nextToken"]), {"course_id": "c-1"})


if __name__ == "__main__":
    unittest.main()
