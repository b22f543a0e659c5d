from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"
SALE_REFUNDED = "refunded"
SALE_STATUSES = (SALE_COMPLETED, SALE_CANCELLED, SALE_REFUNDED)

PAYMENT_PAID = "paid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PENDING = "pending"
PAYMENT_STATUSES = (PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_PENDING)

PAYMENT_METHODS = ("cash", "card", "transfer", "pos", "other")

ADJUSTMENT_PERCENTAGE = "percentage"
ADJUSTMENT_FIXED = "fixed"
ADJUSTMENT_TYPES = (ADJUSTMENT_PERCENTAGE, ADJUSTMENT_FIXED)


class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    Aggregate money columns are recomputed from the lines by
    sale_service.compute_sale_totals whenever the sale is saved; clients only
    supply the raw inputs (discount/tax type and value, amount paid).

    discount_value / tax_value hold basis points for percentage adjustments
    and cents for fixed ones.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_seller_created", "sold_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # SALE-YYMMDD-NNNN
    sale_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)

    discount_type = db.Column(db.String(16), nullable=False, default=ADJUSTMENT_FIXED)
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    tax_type = db.Column(db.String(16), nullable=False, default=ADJUSTMENT_PERCENTAGE)
    tax_value = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    total_items = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PAID, index=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.String(500), nullable=True)

    sold_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Cancellation / refund audit trail
    refund_reason = db.Column(db.String(255), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sold_by = db.relationship("User", foreign_keys=[sold_by_user_id])
    refunded_by = db.relationship("User", foreign_keys=[refunded_by_user_id])
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "status": self.status,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "tax_type": self.tax_type,
            "tax_value": self.tax_value,
            "tax_cents": self.tax_cents,
            "total_amount_cents": self.total_amount_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "total_items": self.total_items,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
                "address": self.customer_address,
            },
            "notes": self.notes,
            "sold_by": self.sold_by.to_summary() if self.sold_by else None,
            "refund_reason": self.refund_reason,
            "refunded_at": to_utc_z(self.refunded_at),
            "refunded_by_user_id": self.refunded_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SaleLine(db.Model):
    """Frozen snapshot of one sold item: name, sku and prices as of sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    item_name = db.Column(db.String(100), nullable=False)
    item_sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "item_sku": self.item_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "subtotal_cents": self.subtotal_cents,
            "profit_cents": self.profit_cents,
        }
