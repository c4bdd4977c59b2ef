"""Item-building helpers shared by resource handlers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence
from uuid import uuid4

from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now_rfc3339() -> str:
    """Return the current UTC timestamp in RFC3339 form with trailing Z."""
    return to_rfc3339(utc_now())


def parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def rfc3339_after(*, seconds: int, now: datetime | None = None) -> str:
    base = now or utc_now()
    return to_rfc3339(base + timedelta(seconds=seconds))


def new_id() -> str:
    return str(uuid4())


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def missing_fields(payload: Mapping[str, Any], fields: Sequence[str]) -> list[str]:
    return [field for field in fields if is_missing(payload.get(field))]


def require_fields(payload: Mapping[str, Any], fields: Sequence[str]) -> None:
    """Raise ``ValidationError`` naming the first absent field."""
    for field in missing_fields(payload, fields):
        raise ValidationError(f"{field} is required")


def require_all(payload: Mapping[str, Any], fields: Sequence[str], *, message: str) -> None:
    """Raise one ``ValidationError`` with a fixed message when any field is absent."""
    if missing_fields(payload, fields):
        raise ValidationError(message)


def normalize_choice(
    value: Any,
    allowed: Iterable[str],
    *,
    label: str,
    default: str | None = None,
) -> str | None:
    """Lowercase ``value`` and check it against the allowed values."""
    if is_missing(value):
        return default
    normalized = str(value).strip().lower()
    choices = tuple(allowed)
    if normalized not in choices:
        raise ValidationError(f"Invalid {label}. Must be one of: {', '.join(choices)}")
    return normalized


def to_dynamo(value: Any) -> Any:
    """Convert floats to ``Decimal`` so the boto3 serializer accepts them."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {key: to_dynamo(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(inner) for inner in value]
    return value


def to_json_safe(value: Any) -> Any:
    """Convert boto3 ``Decimal`` numbers back to int/float for JSON encoding."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {key: to_json_safe(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_safe(inner) for inner in value]
    return value


def compact(item: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None`` attributes so sparse index keys stay absent."""
    return {key: value for key, value in item.items() if value is not None}


def as_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(entry) for entry in value if not is_missing(entry)]
    raise ValidationError("expected a list of identifiers")


def as_number(value: Any, *, field: str) -> int | float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return to_json_safe(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError as exc:
            raise ValidationError(f"{field} must be a number") from exc
        return int(parsed) if parsed.is_integer() else parsed
    raise ValidationError(f"{field} must be a number")


def as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
