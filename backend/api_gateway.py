"""API Gateway request parsing, JSON envelopes and route dispatch."""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Sequence

from learnhub.errors import ApiError, ConfigurationError, ValidationError
from learnhub.pagination import Page, decode_token, parse_limit
from learnhub.records import to_json_safe

logger = logging.getLogger(__name__)

_DEFAULT_ALLOW_METHODS = "OPTIONS,POST,GET,PUT,DELETE"
_DEFAULT_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"
_PATH_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _cors_headers() -> Dict[str, str]:
    origin = os.getenv("CORS_ALLOW_ORIGIN", "*").strip() or "*"
    methods = os.getenv("CORS_ALLOW_METHODS", _DEFAULT_ALLOW_METHODS).strip() or _DEFAULT_ALLOW_METHODS
    allow_headers = (
        os.getenv("CORS_ALLOW_HEADERS", _DEFAULT_ALLOW_HEADERS).strip() or _DEFAULT_ALLOW_HEADERS
    )
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": allow_headers,
    }


def json_response(status_code: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Build API Gateway Lambda proxy response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **_cors_headers()},
        "body": json.dumps(to_json_safe(dict(payload))),
    }


def text_response(
    status_code: int,
    body: str,
    *,
    content_type: str,
    headers: Mapping[str, str] | None = None,
) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": content_type, **_cors_headers(), **dict(headers or {})},
        "body": body,
    }


def success(
    data: Any = None,
    *,
    message: str | None = None,
    status_code: int = 200,
    **extra: Any,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": True}
    if message is not None:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    return json_response(status_code, payload)


def page_response(page: Page, *, message: str | None = None) -> Dict[str, Any]:
    extra: Dict[str, Any] = {"count": len(page.items)}
    if page.next_token:
        extra["nextToken"] = page.next_token
    return success(page.items, message=message, **extra)


def error_response(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    return json_response(status_code, {"success": False, "message": message, **extra})


def preflight_response() -> Dict[str, Any]:
    return json_response(200, {"message": "OK"})


def request_method(event: Mapping[str, Any]) -> str:
    if isinstance(event.get("requestContext"), dict):
        context = event["requestContext"]
        if isinstance(context.get("http"), dict):
            method = context["http"].get("method")
            if isinstance(method, str) and method:
                return method.upper()

    method = event.get("httpMethod", "")
    if isinstance(method, str):
        return method.upper()
    return ""


def request_path(event: Mapping[str, Any]) -> str:
    raw_path = event.get("rawPath")
    if isinstance(raw_path, str) and raw_path:
        return raw_path

    path = event.get("path")
    if isinstance(path, str) and path:
        return path

    return "/"


def normalized_path(event: Mapping[str, Any], path: str) -> str:
    """Strip API Gateway stage prefixes (for example '/dev') from request paths."""
    context = event.get("requestContext")
    if isinstance(context, dict):
        stage = context.get("stage")
        if isinstance(stage, str) and stage.strip() and stage.strip() != "$default":
            stage_prefix = f"/{stage.strip()}"
            if path == stage_prefix:
                return "/"
            if path.startswith(f"{stage_prefix}/"):
                path = path[len(stage_prefix) :]
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def _string_map(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {key: value for key, value in raw.items() if isinstance(key, str) and isinstance(value, str)}


def _headers(event: Mapping[str, Any]) -> dict[str, str]:
    return {key.lower(): value for key, value in _string_map(event.get("headers")).items()}


@dataclass(frozen=True)
class ApiRequest:
    """Parsed view of an API Gateway proxy event."""

    event: Mapping[str, Any]
    method: str
    path: str
    path_params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    user: dict[str, Any] | None = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "ApiRequest":
        return cls(
            event=event,
            method=request_method(event),
            path=normalized_path(event, request_path(event)),
            path_params=_string_map(event.get("pathParameters")),
            query=_string_map(event.get("queryStringParameters")),
            headers=_headers(event),
        )

    def param(self, name: str) -> str:
        value = self.path_params.get(name, "").strip()
        if not value:
            raise ValidationError(f"{name} is required")
        return value

    def _raw_body(self) -> Any:
        body = self.event.get("body")
        if isinstance(body, str) and self.event.get("isBase64Encoded"):
            try:
                return base64.b64decode(body).decode("utf-8")
            except ValueError as exc:
                raise ValidationError("Invalid JSON format in request body") from exc
        return body

    def json_body(self) -> dict[str, Any]:
        """Decode the JSON object body or raise ``ValidationError``."""
        body = self._raw_body()
        if isinstance(body, dict):
            return body
        if body is None or (isinstance(body, str) and not body.strip()):
            raise ValidationError("Request body is required")
        if not isinstance(body, str):
            raise ValidationError("request body must be a JSON object")
        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ValidationError("Invalid JSON format in request body") from exc
        if not isinstance(decoded, dict):
            raise ValidationError("request body must be a JSON object")
        return decoded

    def optional_json_body(self) -> dict[str, Any]:
        body = self._raw_body()
        if body is None or (isinstance(body, str) and not body.strip()):
            return {}
        return self.json_body()

    @property
    def client_ip(self) -> str:
        forwarded = self.headers.get("x-forwarded-for", "")
        if forwarded.strip():
            return forwarded.split(",")[0].strip()
        return "Unknown"

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def bearer_token(self) -> str | None:
        header = self.headers.get("authorization", "")
        if not header.startswith("Bearer "):
            return None
        token = header[len("Bearer ") :].strip()
        return token or None

    def limit(self, default_value: int | None = None) -> int:
        if default_value is None:
            return parse_limit(self.query.get("limit"))
        return parse_limit(self.query.get("limit"), default_value)

    def start_key(self) -> dict[str, Any] | None:
        return decode_token(self.query.get("lastKey"))


Handler = Callable[[ApiRequest], Dict[str, Any]]


@dataclass(frozen=True)
class Route:
    """One (method, path template) binding with its failure message."""

    method: str
    pattern: re.Pattern[str]
    handler: Handler
    failure_message: str
    authenticated: bool = False

    def match(self, path: str) -> dict[str, str] | None:
        found = self.pattern.fullmatch(path)
        if found is None:
            return None
        return found.groupdict()


def route(
    method: str,
    template: str,
    handler: Handler,
    failure_message: str,
    *,
    authenticated: bool = False,
) -> Route:
    """Compile ``/courses/{courseId}`` style templates into a ``Route``."""
    regex = _PATH_PARAM.sub(lambda found: f"(?P<{found.group(1)}>[^/]+)", template)
    return Route(
        method=method.upper(),
        pattern=re.compile(regex),
        handler=handler,
        failure_message=failure_message,
        authenticated=authenticated,
    )


def _invoke(route_def: Route, request: ApiRequest) -> Dict[str, Any]:
    from backend.authorizer import authenticate

    try:
        if route_def.authenticated:
            request = replace(request, user=authenticate(request))
        return route_def.handler(request)
    except ApiError as exc:
        if exc.status_code >= 500:
            logger.error("%s: %s", route_def.failure_message, exc.message)
        return json_response(exc.status_code, exc.to_payload())
    except ConfigurationError as exc:
        logger.exception("%s", route_def.failure_message)
        return error_response(500, "Server configuration error", error=str(exc))
    except Exception as exc:
        logger.exception("%s", route_def.failure_message)
        return error_response(500, route_def.failure_message, error=str(exc))


def dispatch(routes: Sequence[Route], event: Mapping[str, Any]) -> Dict[str, Any]:
    """Route an API Gateway event to the first matching handler."""
    request = ApiRequest.from_event(event)
    if request.method == "OPTIONS":
        return preflight_response()

    path_matched = False
    for route_def in routes:
        params = route_def.match(request.path)
        if params is None:
            continue
        path_matched = True
        if route_def.method != request.method:
            continue
        merged = {**request.path_params, **params}
        return _invoke(route_def, replace(request, path_params=merged))

    if path_matched:
        return error_response(405, "Method not allowed")
    return error_response(404, "Route not found")


def nested_page_response(page: Page, *, label: str, **context: Any) -> Dict[str, Any]:
    """Wrap a page under ``data`` together with the identifiers it was fetched for."""
    data: Dict[str, Any] = {**context, label: page.items, "count": len(page.items)}
    if page.next_token:
        data["nextToken"] = page.next_token
    return success(data)
