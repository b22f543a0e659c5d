from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ALERT_LOW_STOCK = "low_stock"
ALERT_OUT_OF_STOCK = "out_of_stock"
ALERT_EXPIRY_WARNING = "expiry_warning"
ALERT_SYSTEM = "system"
ALERT_USER_ACTION = "user_action"
ALERT_SECURITY = "security"
ALERT_TYPES = (
    ALERT_LOW_STOCK,
    ALERT_OUT_OF_STOCK,
    ALERT_EXPIRY_WARNING,
    ALERT_SYSTEM,
    ALERT_USER_ACTION,
    ALERT_SECURITY,
)
STOCK_ALERT_TYPES = (ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK)

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"
ALERT_SEVERITIES = (SEVERITY_INFO, SEVERITY_WARNING, SEVERITY_CRITICAL)

DEFAULT_TITLES = {
    ALERT_LOW_STOCK: "Low Stock Alert",
    ALERT_OUT_OF_STOCK: "Out of Stock Alert",
    ALERT_EXPIRY_WARNING: "Expiry Warning",
    ALERT_SYSTEM: "System Notification",
    ALERT_USER_ACTION: "User Action Required",
    ALERT_SECURITY: "Security Alert",
}

_SEVERITY_POINTS = {SEVERITY_CRITICAL: 100, SEVERITY_WARNING: 50, SEVERITY_INFO: 10}


class Alert(db.Model):
    """
    Operational notice, mostly raised by the stock reconciler.

    At most one unresolved stock alert exists per (item_id, type); the partial unique
    index enforces it for databases that support filtered indexes.

    The JSON column is named "metadata" in the table and exposed as
    ``details`` on the model because declarative reserves ``metadata``.
    """
    __tablename__ = "alerts"
    __table_args__ = (
        db.Index(
            "uq_alerts_open_item_type",
            "item_id",
            "type",
            unique=True,
            sqlite_where=db.text(
                "is_resolved = 0 AND item_id IS NOT NULL AND type IN ('low_stock', 'out_of_stock')"
            ),
            postgresql_where=db.text(
                "NOT is_resolved AND item_id IS NOT NULL AND type IN ('low_stock', 'out_of_stock')"
            ),
        ),
        db.Index("ix_alerts_resolved_severity", "is_resolved", "severity"),
        db.Index("ix_alerts_read_created", "is_read", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    severity = db.Column(db.String(16), nullable=False, default=SEVERITY_INFO, index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    details = db.Column("metadata", db.JSON, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolution_notes = db.Column(db.String(500), nullable=True)

    email_notified = db.Column(db.Boolean, nullable=False, default=False)
    push_notified = db.Column(db.Boolean, nullable=False, default=False)
    sms_notified = db.Column(db.Boolean, nullable=False, default=False)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    item = db.relationship("Item", backref=db.backref("alerts", lazy="dynamic"))
    user = db.relationship("User", foreign_keys=[user_id])
    resolved_by = db.relationship("User", foreign_keys=[resolved_by_user_id])
    read_receipts = db.relationship(
        "AlertReadReceipt",
        backref="alert",
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def age_seconds(self) -> int:
        if self.created_at is None:
            return 0
        return max(0, int((utcnow() - self.created_at).total_seconds()))

    @property
    def urgency_score(self) -> int:
        score = _SEVERITY_POINTS.get(self.severity, 0)
        # One point per hour of age, capped
        score += min(self.age_seconds // 3600, 50)
        if not self.is_read:
            score += 25
        if not self.is_resolved:
            score += 25
        return score

    def __repr__(self) -> str:
        return f"<Alert id={self.id} type={self.type} item_id={self.item_id} resolved={self.is_resolved}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "item_id": self.item_id,
            "item": {"id": self.item.id, "name": self.item.name, "sku": self.item.sku} if self.item else None,
            "user_id": self.user_id,
            "metadata": self.details or {},
            "is_read": self.is_read,
            "read_by": [receipt.to_dict() for receipt in self.read_receipts],
            "is_resolved": self.is_resolved,
            "resolved_at": to_utc_z(self.resolved_at),
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolution_notes": self.resolution_notes,
            "email_notified": self.email_notified,
            "expires_at": to_utc_z(self.expires_at),
            "age_seconds": self.age_seconds,
            "urgency_score": self.urgency_score,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AlertReadReceipt(db.Model):
    __tablename__ = "alert_read_receipts"
    __table_args__ = (
        db.UniqueConstraint("alert_id", "user_id", name="uq_alert_read_receipts_alert_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    alert_id = db.Column(db.Integer, db.ForeignKey("alerts.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "read_at": to_utc_z(self.read_at),
        }
