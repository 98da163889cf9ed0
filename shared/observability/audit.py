"""Audit helpers for recording administrative activity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from .logger import get_actor_id, get_logger, get_request_id

__all__ = [
    "ActivityAudit",
    "AuditRepository",
    "StdoutAuditRepository",
    "get_audit_repository",
    "record_activity_audit",
]


@dataclass(slots=True)
class ActivityAudit:
    """Structured payload describing an auditable dashboard action."""

    event: str
    actor: str | None = None
    subject: str | None = None
    clinic_id: str | None = None
    request_id: str | None = None
    service: str | None = None
    success: bool | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation of the audit entry."""

        return {
            "event": self.event,
            "actor": self.actor,
            "subject": self.subject,
            "clinicId": self.clinic_id,
            "requestId": self.request_id,
            "service": self.service,
            "success": self.success,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
        }


class AuditRepository(Protocol):
    """Contract for persisting audit events."""

    async def persist(self, audit: ActivityAudit) -> None:  # pragma: no cover - interface definition
        """Persist ``audit`` to the underlying storage backend."""


class StdoutAuditRepository:
    """Persist audit entries to the configured logger."""

    def __init__(self) -> None:
        self._logger = get_logger("audit")

    async def persist(self, audit: ActivityAudit) -> None:
        self._logger.info("activity_audit", **audit.to_dict())


_DEFAULT_REPOSITORY: AuditRepository | None = None


def get_audit_repository() -> AuditRepository:
    """Return the globally configured audit repository."""

    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = StdoutAuditRepository()
    return _DEFAULT_REPOSITORY


async def record_activity_audit(
    event: str,
    *,
    actor: str | None = None,
    subject: str | None = None,
    clinic_id: str | None = None,
    success: bool | None = None,
    metadata: dict[str, Any] | None = None,
    repository: AuditRepository | None = None,
    request_id: str | None = None,
    service: str | None = None,
) -> ActivityAudit:
    """Capture an audit event and persist it using the configured repository.

    ``actor`` falls back to the actor bound by ``request_context``.
    """

    repo = repository or get_audit_repository()
    context = structlog.contextvars.get_contextvars()

    audit_entry = ActivityAudit(
        event=event,
        actor=actor or get_actor_id(),
        subject=subject,
        clinic_id=clinic_id,
        request_id=request_id or get_request_id(),
        service=service or context.get("service"),
        success=success,
        metadata=dict(metadata or {}),
    )

    await repo.persist(audit_entry)
    return audit_entry
