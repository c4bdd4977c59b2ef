"""Presigned S3 uploads and forwarding stored files to the Anthropic Files API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol

import anthropic

from backend import anthropic_client, aws
from backend.api_gateway import ApiRequest, dispatch, route, success
from learnhub.config import anthropic_api_key, upload_bucket
from learnhub.errors import ApiError, NotFoundError, PayloadTooLargeError, ValidationError
from learnhub.records import is_missing, utc_now_rfc3339

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 100 * 1024 * 1024
UPLOAD_URL_EXPIRY_SECONDS = 3600


class S3UploadClient(Protocol):
    """Protocol for the boto3 S3 client methods used by this module."""

    def generate_presigned_url(
        self,
        ClientMethod: str,  # noqa: N803 - boto3 naming
        Params: Dict[str, Any],  # noqa: N803 - boto3 naming
        ExpiresIn: int,  # noqa: N803 - boto3 naming
        HttpMethod: str | None = ...,  # noqa: N803 - boto3 naming
    ) -> str: ...

    def head_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]: ...  # noqa: N803 - boto3 naming

    def get_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]: ...  # noqa: N803 - boto3 naming


@dataclass(frozen=True)
class UploadRequest:
    """Validated presigned-upload request payload."""

    file_name: str
    file_type: str
    file_size: int | None = None


def size_in_mb(size_bytes: int | float) -> str:
    return f"{size_bytes / (1024 * 1024):.2f}MB"


def _bare_file_name(raw: str) -> str:
    basename = Path(raw.strip()).name
    if basename != raw.strip() or basename in {"", ".", ".."}:
        raise ValidationError("fileName must be a bare file name")
    return basename


def parse_upload_request(payload: Mapping[str, Any]) -> UploadRequest:
    if is_missing(payload.get("fileName")) or is_missing(payload.get("fileType")):
        raise ValidationError("fileName and fileType are required")

    file_size = payload.get("fileSize")
    if file_size is not None and (isinstance(file_size, bool) or not isinstance(file_size, (int, float))):
        raise ValidationError("fileSize must be a number of bytes")
    if isinstance(file_size, (int, float)) and file_size > MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError(
            "File size exceeds 100MB limit",
            extra={"maxSize": "100MB", "providedSize": size_in_mb(file_size)},
        )

    return UploadRequest(
        file_name=_bare_file_name(str(payload["fileName"])),
        file_type=str(payload["fileType"]).strip(),
        file_size=int(file_size) if isinstance(file_size, (int, float)) else None,
    )


def build_s3_key(upload: UploadRequest, user_id: str | None, *, now_ms: int | None = None) -> str:
    """Build the object key ``uploads/<user>/<epoch ms>-<file name>``."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"uploads/{user_id or 'anonymous'}/{stamp}-{upload.file_name}"


def original_file_name(key: str) -> str:
    name = key.rsplit("/", 1)[-1]
    prefix, _, rest = name.partition("-")
    return rest if prefix.isdigit() and rest else name


def create_presigned_upload(
    payload: Mapping[str, Any],
    *,
    user_id: str | None,
    bucket: str,
    s3_client: S3UploadClient,
    expires_in_seconds: int = UPLOAD_URL_EXPIRY_SECONDS,
) -> Dict[str, Any]:
    upload = parse_upload_request(payload)
    key = build_s3_key(upload, user_id)
    presigned_url = s3_client.generate_presigned_url(
        "put_object",
        Params={
            "Bucket": bucket,
            "Key": key,
            "ContentType": upload.file_type,
            "Metadata": {"userId": user_id or "anonymous", "uploadedAt": utc_now_rfc3339()},
        },
        ExpiresIn=expires_in_seconds,
        HttpMethod="PUT",
    )
    return {
        "presignedUrl": presigned_url,
        "fileKey": key,
        "bucketName": bucket,
        "expiresIn": expires_in_seconds,
        "uploadInstructions": {
            "method": "PUT",
            "headers": {"Content-Type": upload.file_type},
        },
    }


def _require_file_key(payload: Mapping[str, Any]) -> str:
    if is_missing(payload.get("fileKey")):
        raise ValidationError("fileKey is required")
    return str(payload["fileKey"]).strip()


def _head(s3_client: S3UploadClient, *, bucket: str, key: str) -> Dict[str, Any]:
    from botocore.exceptions import ClientError

    try:
        return s3_client.head_object(Bucket=bucket, Key=key)
    except ClientError as exc:
        raise NotFoundError("File not found in S3", error=str(exc)) from exc


def read_object(s3_client: S3UploadClient, *, bucket: str, key: str) -> tuple[bytes, str]:
    """Download one object, returning its bytes and stored content type."""
    from botocore.exceptions import ClientError

    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
    except ClientError as exc:
        raise NotFoundError("File not found in S3", error=str(exc)) from exc
    return response["Body"].read(), str(response.get("ContentType") or "application/octet-stream")


def forward_to_anthropic(*, api_key: str, filename: str, content_type: str, data: bytes) -> Dict[str, Any]:
    """Upload bytes to the Files API, translating upstream failures into API errors."""
    try:
        return anthropic_client.upload_file(
            api_key=api_key, filename=filename, content_type=content_type, data=data
        )
    except anthropic.APITimeoutError as exc:
        raise ApiError("Request timeout", status_code=504, error=str(exc)) from exc
    except (anthropic.APIError, anthropic_client.AnthropicApiError) as exc:
        detail = anthropic_client.error_detail(exc)
        logger.warning("anthropic upload failed for %s: %s", filename, detail)
        raise ApiError("Failed to upload to Anthropic", status_code=400, error=detail) from exc


def generate_presigned_url(request: ApiRequest) -> Dict[str, Any]:
    user_id = (request.user or {}).get("userId")
    data = create_presigned_upload(
        request.json_body(),
        user_id=user_id,
        bucket=upload_bucket(),
        s3_client=aws.s3_client(),
    )
    return success(data, message="Presigned URL generated successfully")


def process_file(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    key = _require_file_key(body)
    bucket = upload_bucket()
    head = _head(aws.s3_client(), bucket=bucket, key=key)

    last_modified = head.get("LastModified")
    uploaded_at = last_modified.isoformat() if hasattr(last_modified, "isoformat") else last_modified
    metadata = head.get("Metadata") or {}
    return success(
        {
            "fileKey": key,
            "fileName": body.get("fileName") or original_file_name(key),
            "fileType": body.get("fileType") or head.get("ContentType"),
            "fileSize": size_in_mb(head.get("ContentLength", 0)),
            "bucketName": bucket,
            "uploadedAt": metadata.get("uploadedat") or uploaded_at,
        },
        message="File processed successfully",
    )


def upload_to_anthropic(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    key = _require_file_key(body)
    api_key = anthropic_api_key()
    if not api_key:
        raise ValidationError("Anthropic API key not configured")

    data, content_type = read_object(aws.s3_client(), bucket=upload_bucket(), key=key)
    filename = str(body.get("fileName") or original_file_name(key))
    uploaded = forward_to_anthropic(
        api_key=api_key,
        filename=filename,
        content_type=str(body.get("fileType") or content_type),
        data=data,
    )
    return success(
        {
            "fileId": uploaded.get("id"),
            "fileName": uploaded.get("filename", filename),
            "size": uploaded.get("size_bytes", len(data)),
            "createdAt": uploaded.get("created_at"),
            "expiresAt": uploaded.get("expires_at"),
            "s3FileKey": key,
        },
        message="File uploaded to Anthropic successfully",
    )


ROUTES = [
    route(
        "POST",
        "/s3-upload/generate-presigned-url",
        generate_presigned_url,
        "Failed to generate presigned URL",
        authenticated=True,
    ),
    route("POST", "/s3-upload/process-file", process_file, "Failed to process file", authenticated=True),
    route(
        "POST",
        "/s3-upload/upload-to-anthropic",
        upload_to_anthropic,
        "Failed to upload to Anthropic",
        authenticated=True,
    ),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the S3 upload routes."""
    return dispatch(ROUTES, event)
