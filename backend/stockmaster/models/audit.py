from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..errors import AuditLogImmutableError
from ..extensions import db
from ..time_utils import to_utc_z, utcnow

AUDIT_RESOURCES = ("user", "item", "category", "sale", "alert", "system")
AUDIT_SEVERITIES = ("low", "medium", "high", "critical")
AUDIT_STATUSES = ("success", "failed", "pending")


class AuditLog(db.Model):
    """
    Append-only record of who did what.

    IMMUTABLE: rows are inserted once. ORM updates/deletes and bulk
    Query.update()/delete() against this table raise AuditLogImmutableError.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_actor_created", "actor_user_id", "created_at"),
        db.Index("ix_audit_logs_resource_ref", "resource", "resource_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. sale.create, item.restock
    resource = db.Column(db.String(16), nullable=False, index=True)
    resource_id = db.Column(db.Integer, nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_name = db.Column(db.String(101), nullable=True)
    actor_role = db.Column(db.String(16), nullable=True)

    description = db.Column(db.String(500), nullable=False)
    changes = db.Column(db.JSON, nullable=True)  # {"before": {...}, "after": {...}}
    details = db.Column("metadata", db.JSON, nullable=True)

    severity = db.Column(db.String(16), nullable=False, default="low", index=True)
    status = db.Column(db.String(16), nullable=False, default="success", index=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "actor": {
                "user_id": self.actor_user_id,
                "name": self.actor_name,
                "role": self.actor_role,
            },
            "description": self.description,
            "changes": self.changes,
            "metadata": self.details or {},
            "severity": self.severity,
            "status": self.status,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError()


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError()


@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_audit_writes(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if AuditLog.__mapper__ in orm_execute_state.all_mappers:
        raise AuditLogImmutableError()
