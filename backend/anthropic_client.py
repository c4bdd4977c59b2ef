"""Anthropic SDK access for the Files and Messages APIs."""

from __future__ import annotations

from typing import Any, Mapping

import anthropic

from learnhub.config import anthropic_base_url

FILES_API_BETA = "files-api-2025-04-14"
_DEFAULT_TIMEOUT_SECONDS = 60.0


class AnthropicApiError(RuntimeError):
    """Raised when an Anthropic response is missing the data callers need."""


def sdk_client(api_key: str) -> anthropic.Anthropic:
    return anthropic.Anthropic(
        api_key=api_key,
        base_url=anthropic_base_url(),
        timeout=_DEFAULT_TIMEOUT_SECONDS,
    )


def _file_record(uploaded: Any) -> dict[str, Any]:
    created_at = getattr(uploaded, "created_at", None)
    return {
        "id": getattr(uploaded, "id", None),
        "filename": getattr(uploaded, "filename", None),
        "size_bytes": getattr(uploaded, "size_bytes", None),
        "mime_type": getattr(uploaded, "mime_type", None),
        "created_at": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
        "expires_at": getattr(uploaded, "expires_at", None),
    }


def upload_file(*, api_key: str, filename: str, content_type: str, data: bytes) -> dict[str, Any]:
    """Upload one file to the Files API and return its metadata as a plain dict."""
    uploaded = sdk_client(api_key).beta.files.upload(
        file=(filename, data, content_type or "application/octet-stream"),
    )
    record = _file_record(uploaded)
    if not isinstance(record["id"], str) or not record["id"]:
        raise AnthropicApiError("files API response missing id")
    return record


def create_message(
    *,
    api_key: str,
    model: str,
    content: list[dict[str, Any]],
    max_tokens: int,
) -> str:
    """Send one user turn to the Messages API and return the concatenated text blocks."""
    response = sdk_client(api_key).beta.messages.create(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": content}],
        betas=[FILES_API_BETA],
    )
    parts = [
        getattr(block, "text", "")
        for block in getattr(response, "content", None) or []
        if getattr(block, "type", None) == "text"
    ]
    text = "".join(parts).strip()
    if not text:
        raise AnthropicApiError("messages API returned no text")
    return text


def error_detail(exc: BaseException) -> str:
    """Best human-readable reason carried by an SDK or client error."""
    body = getattr(exc, "body", None)
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    return str(getattr(exc, "message", None) or exc)


def file_summary(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "fileId": payload.get("id"),
        "filename": payload.get("filename"),
        "size": payload.get("size_bytes"),
        "createdAt": payload.get("created_at"),
        "expiresAt": payload.get("expires_at"),
    }
