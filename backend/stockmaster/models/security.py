from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class RateLimitHit(db.Model):
    """
    One attempt counted against a rate limit bucket.

    Backs DatabaseRateLimitStore so limits are shared across processes and
    survive restarts. Rows older than the window are pruned on access.
    """
    __tablename__ = "rate_limit_hits"
    __table_args__ = (
        db.Index("ix_rate_limit_hits_key_occurred", "key", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "occurred_at": to_utc_z(self.occurred_at),
        }
