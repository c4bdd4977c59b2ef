"""Batch uploads to the Anthropic Files API, direct or via presigned S3 staging."""

from __future__ import annotations

import base64
import binascii
import time
from typing import Any, Dict, Mapping

from backend import anthropic_client, aws
from backend.api_gateway import ApiRequest, dispatch, route, success
from backend.s3_upload import (
    MAX_UPLOAD_BYTES,
    UPLOAD_URL_EXPIRY_SECONDS,
    forward_to_anthropic,
    original_file_name,
    read_object,
    size_in_mb,
)
from learnhub.config import anthropic_api_key, upload_bucket
from learnhub.errors import PayloadTooLargeError, ValidationError
from learnhub.records import as_string_list, is_missing

MAX_DIRECT_FILE_BYTES = 10 * 1024 * 1024
MAX_DIRECT_PAYLOAD_BYTES = 5 * 1024 * 1024
_PRESIGNED_HINT = "Use /anthropic/get-upload-urls and /anthropic/confirm-upload for large files"


def _require_api_key() -> str:
    api_key = anthropic_api_key()
    if not api_key:
        raise ValidationError("Anthropic API key not configured")
    return api_key


def _file_list(body: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    files = body.get("files")
    if not isinstance(files, list) or not files:
        raise ValidationError("files must be a non-empty array")
    for entry in files:
        if not isinstance(entry, dict) or is_missing(entry.get("filename")):
            raise ValidationError("each file requires a filename")
    return files


def get_upload_urls(request: ApiRequest) -> Dict[str, Any]:
    files = _file_list(request.json_body())
    oversized = [
        {"filename": entry["filename"], "size": size_in_mb(entry["size"])}
        for entry in files
        if isinstance(entry.get("size"), (int, float)) and entry["size"] > MAX_UPLOAD_BYTES
    ]
    if oversized:
        raise PayloadTooLargeError(
            "Some files exceed 100MB limit", extra={"maxSize": "100MB", "oversizedFiles": oversized}
        )

    user_id = (request.user or {}).get("userId") or "anonymous"
    bucket = upload_bucket()
    client = aws.s3_client()
    stamp = int(time.time() * 1000)
    upload_urls = []
    for entry in files:
        key = f"anthropic-uploads/{user_id}/{stamp}-{entry['filename']}"
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if entry.get("contentType"):
            params["ContentType"] = entry["contentType"]
        upload_urls.append(
            {
                "filename": entry["filename"],
                "uploadUrl": client.generate_presigned_url(
                    "put_object",
                    Params=params,
                    ExpiresIn=UPLOAD_URL_EXPIRY_SECONDS,
                    HttpMethod="PUT",
                ),
                "fileKey": key,
            }
        )
    return success(
        {"uploadUrls": upload_urls, "expiresIn": UPLOAD_URL_EXPIRY_SECONDS},
        message="Upload URLs generated successfully",
    )


def _upload_result(body: Mapping[str, Any], files: list[Dict[str, Any]]) -> Dict[str, Any]:
    return success(
        {
            "uploadedCount": len(files),
            "topicName": body.get("topicName"),
            "contentType": body.get("contentType"),
            "files": files,
        },
        message="Files uploaded to Anthropic successfully",
    )


def confirm_upload(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    keys = as_string_list(body.get("fileKeys"))
    if not keys:
        raise ValidationError("fileKeys must be a non-empty array")
    api_key = _require_api_key()

    client = aws.s3_client()
    bucket = upload_bucket()
    uploaded = []
    for key in keys:
        data, content_type = read_object(client, bucket=bucket, key=key)
        payload = forward_to_anthropic(
            api_key=api_key, filename=original_file_name(key), content_type=content_type, data=data
        )
        uploaded.append(anthropic_client.file_summary(payload))
    return _upload_result(body, uploaded)


def _decode(entry: Mapping[str, Any]) -> bytes:
    raw = entry.get("data")
    if not isinstance(raw, str) or not raw:
        raise ValidationError(f"file {entry['filename']} is missing base64 data")
    try:
        return base64.b64decode(raw, validate=True)
    except binascii.Error as exc:
        raise ValidationError(f"file {entry['filename']} data must be base64") from exc


def upload_files(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    files = _file_list(body)
    decoded = [(entry, _decode(entry)) for entry in files]

    oversized = [
        {"filename": entry["filename"], "size": size_in_mb(len(data))}
        for entry, data in decoded
        if len(data) > MAX_DIRECT_FILE_BYTES
    ]
    if oversized:
        raise PayloadTooLargeError(
            "Some files exceed 10MB limit", extra={"maxSize": "10MB", "oversizedFiles": oversized}
        )
    total = sum(len(data) for _, data in decoded)
    if total > MAX_DIRECT_PAYLOAD_BYTES:
        raise PayloadTooLargeError(
            "Payload too large for direct upload",
            extra={"maxSize": "5MB", "providedSize": size_in_mb(total), "hint": _PRESIGNED_HINT},
        )

    api_key = _require_api_key()
    uploaded = []
    for entry, data in decoded:
        payload = forward_to_anthropic(
            api_key=api_key,
            filename=str(entry["filename"]),
            content_type=str(entry.get("contentType") or "application/octet-stream"),
            data=data,
        )
        uploaded.append(anthropic_client.file_summary(payload))
    return _upload_result(body, uploaded)


ROUTES = [
    route(
        "POST",
        "/anthropic/get-upload-urls",
        get_upload_urls,
        "Failed to generate upload URLs",
        authenticated=True,
    ),
    route("POST", "/anthropic/confirm-upload", confirm_upload, "Failed to upload files", authenticated=True),
    route("POST", "/anthropic/upload-files", upload_files, "Failed to upload files", authenticated=True),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the Anthropic upload routes."""
    return dispatch(ROUTES, event)
