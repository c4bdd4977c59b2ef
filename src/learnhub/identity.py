"""Identity-provider helpers: secret hashes, phone numbers, device fingerprints."""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
from typing import Any, Mapping

from .errors import ApiError

_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def secret_hash(username: str, *, client_id: str, client_secret: str) -> str:
    """Compute the Cognito SECRET_HASH for an app client with a secret."""
    digest = hmac.new(
        client_secret.encode("utf-8"),
        (username + client_id).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_phone(phone_number: str) -> str:
    phone = phone_number.strip()
    return phone if phone.startswith("+") else f"+{phone}"


def is_e164(phone_number: str) -> bool:
    return bool(_E164_PATTERN.match(phone_number))


def device_info(user_agent: str | None) -> str:
    """Summarize a User-Agent header as ``Device - OS - Browser``."""
    if not user_agent:
        return "Unknown Device"

    os_name = "Unknown OS"
    if "Windows" in user_agent:
        os_name = "Windows"
    elif "Mac" in user_agent:
        os_name = "MacOS"
    elif "Linux" in user_agent:
        os_name = "Linux"
    elif "Android" in user_agent:
        os_name = "Android"
    elif any(marker in user_agent for marker in ("iOS", "iPhone", "iPad")):
        os_name = "iOS"

    device = "Desktop"
    if any(marker in user_agent for marker in ("Mobile", "Android", "iPhone")):
        device = "Mobile"
    elif "Tablet" in user_agent or "iPad" in user_agent:
        device = "Tablet"

    browser = "Unknown Browser"
    if "Chrome" in user_agent:
        browser = "Chrome"
    elif "Safari" in user_agent:
        browser = "Safari"
    elif "Firefox" in user_agent:
        browser = "Firefox"
    elif "Edge" in user_agent:
        browser = "Edge"

    return f"{device} - {os_name} - {browser}"


def client_error_code(exc: BaseException) -> str:
    """Return the vendor error code from a botocore ``ClientError``."""
    response = getattr(exc, "response", None)
    if isinstance(response, Mapping):
        error = response.get("Error")
        if isinstance(error, Mapping):
            code = error.get("Code")
            if isinstance(code, str):
                return code
    return type(exc).__name__


def client_error_message(exc: BaseException) -> str:
    response = getattr(exc, "response", None)
    if isinstance(response, Mapping):
        error = response.get("Error")
        if isinstance(error, Mapping):
            message = error.get("Message")
            if isinstance(message, str) and message:
                return message
    return str(exc)


def map_client_error(
    exc: BaseException,
    table: Mapping[str, tuple[int, str]],
    *,
    default: tuple[int, str],
    extra: Mapping[str, Any] | None = None,
) -> ApiError:
    """Translate a provider error into an ``ApiError`` using a code lookup table."""
    code = client_error_code(exc)
    status_code, message = table.get(code, default)
    return ApiError(
        message,
        status_code=status_code,
        error=client_error_message(exc),
        extra=extra,
    )
