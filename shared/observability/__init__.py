"""Observability utilities shared across clinic dashboard services."""

from .logger import (
    configure_logging,
    generate_request_id,
    get_actor_id,
    get_logger,
    get_request_id,
    request_context,
)
from .middleware import CorrelationIdMiddleware, RequestTimingMiddleware
from .audit import (
    ActivityAudit,
    AuditRepository,
    StdoutAuditRepository,
    get_audit_repository,
    record_activity_audit,
)

__all__ = [
    "ActivityAudit",
    "AuditRepository",
    "CorrelationIdMiddleware",
    "RequestTimingMiddleware",
    "StdoutAuditRepository",
    "configure_logging",
    "generate_request_id",
    "get_actor_id",
    "get_audit_repository",
    "get_logger",
    "get_request_id",
    "record_activity_audit",
    "request_context",
]
