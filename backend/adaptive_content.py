"""Adaptive lesson generation from uploaded files via the Anthropic Messages API."""

from __future__ import annotations

import base64
import json
import logging
import re
import socket
from typing import Any, Dict, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import anthropic

from backend import anthropic_client
from backend.api_gateway import ApiRequest, dispatch, json_response, route, success
from learnhub.config import anthropic_api_key, anthropic_model, setting
from learnhub.errors import ApiError, ValidationError
from learnhub.records import missing_fields

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("fileId", "sectionNumber", "topicName", "contentType")
GENERATION_MAX_TOKENS = 2048
EXTRACTION_PROMPT = (
    "Extract pure HTML content from the following text and return only the HTML content "
    "without any additional text or explanation:\n\n"
)
CONVERSION_TIMEOUT_SECONDS = 60
_HTML_FENCE = re.compile(r"^```(?:html)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

_CONTENT_GUIDANCE = {
    "summary": "Write a concise summary with headings and short paragraphs.",
    "notes": "Write structured study notes with headings, bullet points and key definitions.",
    "flashcards": "Write question and answer flashcards, one card per key concept.",
    "quiz": "Write a short multiple-choice quiz with the correct answer marked after each question.",
    "mindmap": "Write a nested outline that can be drawn as a concept map.",
    "lesson": "Write a complete lesson with an introduction, worked examples and a recap.",
}
_DEFAULT_GUIDANCE = "Write clear learning content that explains the key ideas step by step."


def build_prompt(body: Mapping[str, Any]) -> str:
    """Assemble the generation prompt from the request options."""
    content_key = str(body.get("contentTypeId") or body.get("contentType") or "").strip().lower()
    guidance = _CONTENT_GUIDANCE.get(content_key, _DEFAULT_GUIDANCE)
    depth = body.get("contentDepth") or "intermediate"
    style = body.get("visualStyle") or "academic"
    language = body.get("outputLanguage") or "english"
    return (
        f"Using the attached document, create {body['contentType']} content for section "
        f"{body['sectionNumber']} on the topic \"{body['topicName']}\".\n"
        f"{guidance}\n"
        f"Target depth: {depth}. Visual style: {style}. Write the content in {language}.\n"
        "Format the answer as a single self-contained HTML document with inline CSS."
    )


def strip_html_fence(text: str) -> str:
    stripped = text.strip()
    match = _HTML_FENCE.match(stripped)
    return match.group(1).strip() if match else stripped


def _ask(*, api_key: str, content: list[Dict[str, Any]], failure_message: str) -> str:
    try:
        return anthropic_client.create_message(
            api_key=api_key,
            model=anthropic_model(),
            content=content,
            max_tokens=GENERATION_MAX_TOKENS,
        )
    except anthropic.APITimeoutError as exc:
        raise ApiError("Request timeout", status_code=504, error=str(exc)) from exc
    except (anthropic.APIError, anthropic_client.AnthropicApiError) as exc:
        detail = anthropic_client.error_detail(exc)
        logger.warning("%s: %s", failure_message, detail)
        raise ApiError(failure_message, status_code=400, error=detail) from exc


def convert_html(html: str, *, url: str) -> Dict[str, Any]:
    """Post HTML to the image conversion service and shape its answer."""
    body = json.dumps({"pages": 1, "htmlText": [html]}).encode("utf-8")
    req = Request(
        url=url,
        data=body,
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )
    try:
        with urlopen(req, timeout=CONVERSION_TIMEOUT_SECONDS) as resp:
            raw = resp.read()
            content_type = resp.headers.get("Content-Type", "")
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        raise ApiError("Failed to convert HTML to image", status_code=502, error=detail or str(exc)) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise ApiError("Image conversion timeout", status_code=504, error=str(exc)) from exc
    except URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise ApiError("Image conversion timeout", status_code=504, error=str(exc)) from exc
        raise ApiError("Failed to convert HTML to image", status_code=502, error=str(exc.reason)) from exc

    payload: Any = raw
    if "json" in content_type.lower():
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ApiError(
                "Failed to convert HTML to image", status_code=502, error="invalid JSON response"
            ) from exc

    if isinstance(payload, dict) and "images" in payload:
        return {"success": True, "images": payload["images"]}
    if isinstance(payload, (bytes, bytearray)):
        return {
            "success": True,
            "conversion": {
                "contentType": content_type,
                "data": base64.b64encode(bytes(payload)).decode("ascii"),
            },
        }
    return {"success": True, "conversion": payload}


def generate_adaptive_content(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    missing = missing_fields(body, REQUIRED_FIELDS)
    if missing:
        raise ValidationError(
            "Missing required fields",
            extra={"requiredFields": list(REQUIRED_FIELDS), "missingFields": missing},
        )

    api_key = anthropic_api_key()
    if not api_key:
        raise ValidationError("Anthropic API key not configured")

    generated = _ask(
        api_key=api_key,
        content=[
            {"type": "text", "text": build_prompt(body)},
            {"type": "document", "source": {"type": "file", "file_id": body["fileId"]}},
        ],
        failure_message="Failed to generate adaptive content",
    )
    html = strip_html_fence(
        _ask(
            api_key=api_key,
            content=[{"type": "text", "text": EXTRACTION_PROMPT + generated}],
            failure_message="Failed to extract HTML content",
        )
    )

    conversion_url = setting("HTML_CONVERSION_URL")
    if conversion_url:
        return json_response(200, convert_html(html, url=conversion_url))

    return success(
        {
            "html": html,
            "topicName": body["topicName"],
            "sectionNumber": body["sectionNumber"],
            "contentType": body["contentType"],
        },
        message="Adaptive content generated successfully",
    )


ROUTES = [
    route(
        "POST",
        "/adaptive-content/generate",
        generate_adaptive_content,
        "Failed to generate adaptive content",
        authenticated=True,
    ),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for adaptive content generation."""
    return dispatch(ROUTES, event)
