"""Opaque continuation tokens for paginated scans and queries."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from .errors import ValidationError
from .records import to_json_safe

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 1000


@dataclass(frozen=True)
class Page:
    """One page of items plus the key to resume from."""

    items: list[dict[str, Any]] = field(default_factory=list)
    last_key: Dict[str, Any] | None = None

    @property
    def next_token(self) -> str | None:
        if not self.last_key:
            return None
        return encode_token(self.last_key)


def encode_token(last_key: Mapping[str, Any]) -> str:
    raw = json.dumps(to_json_safe(dict(last_key)), sort_keys=True).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_token(token: str | None) -> Dict[str, Any] | None:
    """Decode a ``lastKey`` query parameter back into an ExclusiveStartKey."""
    if token is None or not token.strip():
        return None
    try:
        decoded = json.loads(base64.b64decode(token.strip(), validate=True).decode("utf-8"))
    except ValueError as exc:
        raise ValidationError("Invalid lastKey") from exc
    if not isinstance(decoded, dict) or not decoded:
        raise ValidationError("Invalid lastKey")
    return decoded


def parse_limit(raw: str | None, default_value: int = DEFAULT_PAGE_LIMIT) -> int:
    if raw is None or not raw.strip():
        return default_value
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValidationError("limit must be a positive integer") from exc
    if value <= 0:
        raise ValidationError("limit must be a positive integer")
    return min(value, MAX_PAGE_LIMIT)
