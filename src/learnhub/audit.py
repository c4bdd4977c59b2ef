"""Audit trail writes for administrative changes."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping

from .records import new_id, to_rfc3339, utc_now
from .store import DynamoDbResourceStore

logger = logging.getLogger(__name__)

AUDIT_RETENTION_DAYS = 90


def build_audit_item(
    *,
    user_id: str,
    action: str,
    module: str,
    details: Mapping[str, Any],
    ip_address: str,
    status: str = "success",
    **extra: Any,
) -> dict[str, Any]:
    now = utc_now()
    return {
        "log_id": new_id(),
        "user_id": user_id or "system",
        "action": action,
        "module": module,
        "details": dict(details),
        "ip_address": ip_address or "Unknown",
        "status": status,
        "timestamp": to_rfc3339(now),
        "ttl": int((now + timedelta(days=AUDIT_RETENTION_DAYS)).timestamp()),
        **extra,
    }


class AuditLogWriter:
    """Best-effort writer: a failed audit write is logged and never raised."""

    def __init__(self, store: DynamoDbResourceStore, *, module: str) -> None:
        self._store = store
        self._module = module

    def record(
        self,
        *,
        user_id: str,
        action: str,
        details: Mapping[str, Any],
        ip_address: str,
    ) -> dict[str, Any] | None:
        item = build_audit_item(
            user_id=user_id,
            action=action,
            module=self._module,
            details=details,
            ip_address=ip_address,
        )
        try:
            return self._store.put(item)
        except Exception:
            logger.warning("audit log write failed for %s %s", self._module, action, exc_info=True)
            return None
