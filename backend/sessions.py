"""Tracked user sessions: login, validation, refresh and revocation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, nested_page_response, route, success
from backend.auth import call_cognito, cognito_settings, user_attributes
from learnhub.config import session_expiry_hours
from learnhub.errors import (
    ApiError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from learnhub.identity import device_info, hash_token
from learnhub.pagination import Page
from learnhub.records import (
    as_bool,
    is_missing,
    new_id,
    parse_rfc3339,
    rfc3339_after,
    utc_now,
    utc_now_rfc3339,
)
from learnhub.resources import SESSIONS, USERS
from learnhub.store import DynamoDbResourceStore, equals_filter

logger = logging.getLogger(__name__)

REMEMBER_ME_SECONDS = 30 * 24 * 3600
MAX_ACTIVE_SESSIONS = 5
LOGIN_ERRORS = {
    "NotAuthorizedException": (401, "Incorrect email or password"),
    "UserNotConfirmedException": (401, "User account not confirmed"),
    "UserNotFoundException": (401, "User not found"),
    "TooManyRequestsException": (401, "Too many attempts. Please try again later"),
}


def _sessions() -> DynamoDbResourceStore:
    return aws.resource_store(SESSIONS)


def session_summary(session: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "sessionId": session.get("session_id"),
        "deviceInfo": session.get("device_info"),
        "ipAddress": session.get("ip_address"),
        "lastActive": session.get("last_active_at"),
        "expiresAt": session.get("expires_at"),
        "createdAt": session.get("created_at"),
        "isActive": bool(session.get("is_active")),
    }


def user_summary(user: Mapping[str, Any] | None) -> Dict[str, Any] | None:
    if user is None:
        return None
    return {
        "userId": user.get("user_id"),
        "email": user.get("email"),
        "fullName": user.get("full_name"),
        "roleId": user.get("role_id"),
        "status": user.get("status"),
    }


def _last_active(session: Mapping[str, Any]) -> str:
    return str(session.get("last_active_at") or session.get("created_at") or "")


def _active_sessions(user_id: str) -> list[dict[str, Any]]:
    rows = _sessions().query_all(
        "userId-index", "user_id", user_id, filter_expression=equals_filter(is_active=True)
    )
    return sorted(rows, key=_last_active, reverse=True)


def _deactivate(session_id: str, **stamps: str) -> dict[str, Any]:
    return _sessions().update(session_id, {"is_active": False, "updated_at": utc_now_rfc3339(), **stamps})


def cleanup_old_sessions(user_id: str, *, keep: int = MAX_ACTIVE_SESSIONS) -> int:
    """Deactivate the oldest active sessions beyond ``keep``; return how many."""
    stale = _active_sessions(user_id)[keep:]
    for session in stale:
        _deactivate(session["session_id"])
    return len(stale)


def _require_session(session_id: str) -> dict[str, Any]:
    session = _sessions().get(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session


def login(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    if is_missing(body.get("email")) or is_missing(body.get("password")):
        raise ValidationError("Email and password are required")
    email = str(body["email"]).strip().lower()

    settings = cognito_settings()
    client = aws.cognito_client()
    auth = call_cognito(
        lambda: client.initiate_auth(
            AuthFlow="USER_PASSWORD_AUTH",
            ClientId=settings.client_id,
            AuthParameters={
                "USERNAME": email,
                "PASSWORD": str(body["password"]),
                "SECRET_HASH": settings.secret_hash(email),
            },
        ),
        LOGIN_ERRORS,
        default=(401, "Authentication failed"),
    )
    result = auth.get("AuthenticationResult")
    if not isinstance(result, dict):
        raise AuthenticationError("Authentication failed", error=auth.get("ChallengeName"))

    cognito_user = call_cognito(
        lambda: client.get_user(AccessToken=result["AccessToken"]),
        LOGIN_ERRORS,
        default=(401, "Authentication failed"),
    )
    user_id = user_attributes(cognito_user).get("sub") or cognito_user.get("Username")

    user = aws.resource_service(USERS).find(str(user_id))
    if user is None:
        raise NotFoundError("User profile not found")
    status = str(user.get("status") or "active").lower()
    if status != "active":
        raise ForbiddenError(f"Account is {status}. Please contact support.")

    expires_in = REMEMBER_ME_SECONDS if as_bool(body.get("rememberMe")) else session_expiry_hours() * 3600
    now = utc_now_rfc3339()
    session_id = new_id()
    _sessions().put(
        {
            "session_id": session_id,
            "user_id": user_id,
            "token_sha": hash_token(result["AccessToken"]),
            "device_info": device_info(request.user_agent),
            "ip_address": request.client_ip,
            "last_active_at": now,
            "is_active": True,
            "expires_at": rfc3339_after(seconds=expires_in),
            "created_at": now,
        }
    )
    cleanup_old_sessions(str(user_id))

    return success(
        {
            "sessionId": session_id,
            "accessToken": result.get("AccessToken"),
            "refreshToken": result.get("RefreshToken"),
            "idToken": result.get("IdToken"),
            "expiresIn": expires_in,
            "user": user_summary(user),
        },
        message="Login successful",
    )


def logout(request: ApiRequest) -> Dict[str, Any]:
    from botocore.exceptions import ClientError

    body = request.json_body()
    if is_missing(body.get("sessionId")):
        raise ValidationError("sessionId is required")
    session_id = str(body["sessionId"]).strip()
    _require_session(session_id)
    _deactivate(session_id, logged_out_at=utc_now_rfc3339())

    access_token = body.get("accessToken")
    if isinstance(access_token, str) and access_token.strip():
        try:
            aws.cognito_client().global_sign_out(AccessToken=access_token.strip())
        except ClientError:
            logger.warning("global sign-out failed for session %s", session_id, exc_info=True)
    return success(message="Logout successful")


def validate(request: ApiRequest) -> Dict[str, Any]:
    from botocore.exceptions import ClientError

    token = request.bearer_token
    if token is None:
        raise AuthenticationError("Authorization token required")

    matches = _sessions().scan_all(
        filter_expression=equals_filter(token_sha=hash_token(token), is_active=True)
    )
    if not matches:
        raise AuthenticationError("Invalid or expired token")
    session = matches[0]
    session_id = session["session_id"]

    expires_at = session.get("expires_at")
    if isinstance(expires_at, str) and parse_rfc3339(expires_at) < utc_now():
        _deactivate(session_id)
        raise AuthenticationError("Session expired")

    try:
        aws.cognito_client().get_user(AccessToken=token)
    except ClientError as exc:
        _deactivate(session_id)
        raise AuthenticationError("Token validation failed", error=str(exc)) from exc

    session = _sessions().update(session_id, {"last_active_at": utc_now_rfc3339()})
    user = user_summary(aws.resource_service(USERS).find(str(session.get("user_id", ""))))
    if user is not None:
        user.pop("userId")
    return success(
        {
            "sessionId": session_id,
            "userId": session.get("user_id"),
            "user": user,
            "sessionInfo": {
                "deviceInfo": session.get("device_info"),
                "ipAddress": session.get("ip_address"),
                "lastActive": session.get("last_active_at"),
                "expiresAt": session.get("expires_at"),
            },
        },
        message="Session is valid",
    )


def refresh(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    if is_missing(body.get("refreshToken")):
        raise ValidationError("refreshToken is required")

    session = None
    username = str(body.get("email") or body.get("username") or "").strip()
    if not is_missing(body.get("sessionId")):
        session = _require_session(str(body["sessionId"]).strip())
        user = aws.resource_service(USERS).find(str(session.get("user_id", "")))
        if user is not None and user.get("email"):
            username = str(user["email"])
    if not username:
        raise ValidationError("sessionId or email is required to refresh tokens")

    settings = cognito_settings()
    try:
        response = call_cognito(
            lambda: aws.cognito_client().initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=settings.client_id,
                AuthParameters={
                    "REFRESH_TOKEN": str(body["refreshToken"]),
                    "SECRET_HASH": settings.secret_hash(username),
                },
            ),
            {},
            default=(401, "Token refresh failed. Please login again."),
        )
    except ApiError as exc:
        raise AuthenticationError("Token refresh failed. Please login again.", error=exc.error) from exc

    result = response.get("AuthenticationResult") or {}
    expires_in = int(result.get("ExpiresIn", 3600))
    if session is not None and result.get("AccessToken"):
        _sessions().update(
            session["session_id"],
            {
                "token_sha": hash_token(result["AccessToken"]),
                "last_active_at": utc_now_rfc3339(),
                "expires_at": rfc3339_after(seconds=expires_in),
            },
        )
    return success(
        {
            "accessToken": result.get("AccessToken"),
            "idToken": result.get("IdToken"),
            "expiresIn": expires_in,
        },
        message="Token refreshed successfully",
    )


def active_sessions(request: ApiRequest) -> Dict[str, Any]:
    user_id = request.param("userId")
    sessions = [session_summary(row) for row in _active_sessions(user_id)]
    return success({"userId": user_id, "activeSessionsCount": len(sessions), "sessions": sessions})


def all_sessions(request: ApiRequest) -> Dict[str, Any]:
    user_id = request.param("userId")
    page = _sessions().query_page(
        "userId-index",
        "user_id",
        user_id,
        limit=request.limit(),
        start_key=request.start_key(),
        scan_forward=False,
    )
    summarized = Page(items=[session_summary(row) for row in page.items], last_key=page.last_key)
    return nested_page_response(summarized, label="sessions", userId=user_id)


def session_details(request: ApiRequest) -> Dict[str, Any]:
    session = _require_session(request.param("sessionId"))
    user = aws.resource_service(USERS).find(str(session.get("user_id", "")))
    summary = user_summary(user)
    if summary is not None:
        summary.pop("roleId")
    session.pop("token_sha", None)
    return success({"session": session, "user": summary})


def revoke_session(request: ApiRequest) -> Dict[str, Any]:
    session_id = request.param("sessionId")
    _require_session(session_id)
    _deactivate(session_id, revoked_at=utc_now_rfc3339())
    return success(message="Session revoked successfully")


def revoke_all_sessions(request: ApiRequest) -> Dict[str, Any]:
    user_id = request.param("userId")
    except_session_id = request.optional_json_body().get("exceptSessionId")
    sessions = _active_sessions(user_id)

    revoked_at = utc_now_rfc3339()
    revoked = 0
    for session in sessions:
        if session["session_id"] == except_session_id:
            continue
        _deactivate(session["session_id"], revoked_at=revoked_at)
        revoked += 1
    return success(
        {"revokedCount": revoked, "totalSessions": len(sessions)},
        message=f"{revoked} session(s) revoked successfully",
    )


ROUTES = [
    route("POST", "/sessions/login", login, "Login failed"),
    route("POST", "/sessions/logout", logout, "Logout failed"),
    route("GET", "/sessions/validate", validate, "Session validation failed"),
    route("POST", "/sessions/refresh", refresh, "Token refresh failed"),
    route("GET", "/sessions/details/{sessionId}", session_details, "Failed to fetch session"),
    route("GET", "/sessions/{userId}/all", all_sessions, "Failed to fetch sessions"),
    route("DELETE", "/sessions/{userId}/all", revoke_all_sessions, "Failed to revoke sessions"),
    route("GET", "/sessions/{userId}", active_sessions, "Failed to fetch active sessions"),
    route("DELETE", "/sessions/{sessionId}", revoke_session, "Failed to revoke session"),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the session routes."""
    return dispatch(ROUTES, event)
