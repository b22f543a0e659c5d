# Overview: Append-only audit trail of actor actions.

from __future__ import annotations

from datetime import datetime

from flask import has_request_context, request

from ..errors import ValidationError
from ..extensions import db
from ..models import AuditLog, User
from ..models.audit import AUDIT_RESOURCES, AUDIT_SEVERITIES, AUDIT_STATUSES
from .pagination import paginate

"""
Audit log invariants

- Entries are written inside the same transaction as the change they record,
  so a rolled-back change leaves no entry behind.
- Entries are never updated or deleted (enforced in models/audit.py).
- actor_name / actor_role are copied at write time; later renames or role
  changes do not rewrite history.
"""


def log_action(
    *,
    action: str,
    resource: str,
    description: str,
    resource_id: int | None = None,
    actor: User | None = None,
    changes: dict | None = None,
    metadata: dict | None = None,
    severity: str = "low",
    status: str = "success",
    commit: bool = False,
) -> AuditLog:
    if resource not in AUDIT_RESOURCES:
        raise ValueError(f"Unknown audit resource: {resource}")
    if severity not in AUDIT_SEVERITIES:
        raise ValueError(f"Unknown audit severity: {severity}")
    if status not in AUDIT_STATUSES:
        raise ValueError(f"Unknown audit status: {status}")

    entry = AuditLog(
        action=action,
        resource=resource,
        resource_id=resource_id,
        actor_user_id=actor.id if actor is not None else None,
        actor_name=actor.full_name if actor is not None else None,
        actor_role=actor.role if actor is not None else None,
        description=description[:500],
        changes=changes,
        details=metadata or {},
        severity=severity,
        status=status,
    )
    if has_request_context():
        entry.ip_address = request.remote_addr
        entry.user_agent = (request.headers.get("User-Agent") or "")[:512] or None

    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def list_logs(
    *,
    actor_user_id: int | None = None,
    resource: str | None = None,
    resource_id: int | None = None,
    action: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
):
    if resource is not None and resource not in AUDIT_RESOURCES:
        raise ValidationError(f"resource must be one of: {', '.join(AUDIT_RESOURCES)}")

    query = AuditLog.query
    if actor_user_id is not None:
        query = query.filter(AuditLog.actor_user_id == actor_user_id)
    if resource:
        query = query.filter(AuditLog.resource == resource)
    if resource_id is not None:
        query = query.filter(AuditLog.resource_id == resource_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if start is not None:
        query = query.filter(AuditLog.created_at >= start)
    if end is not None:
        query = query.filter(AuditLog.created_at <= end)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate(query, page, per_page)
