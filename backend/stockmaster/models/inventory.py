from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..stock_status import AVAILABLE, DEFAULT_LOW_STOCK_THRESHOLD, derive_stock_status
from ..time_utils import to_utc_z, utcnow


class Category(db.Model):
    """
    Item grouping. Categories may nest one level via parent_id.

    item_count / total_value_cents are computed by query in category_service,
    never stored here.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_active_order", "is_active", "display_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(50), nullable=False, unique=True)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.String(500), nullable=True)

    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("subcategories", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Item(db.Model):
    """
    Sellable product with its stock position.

    stock_status is derived from (stock_quantity, low_stock_threshold) on every
    flush by the mapper listeners below. Services that need to know whether it
    changed capture the old status with stock_service.capture_status before
    mutating, since any autoflush runs these listeners early.

    version_id guards against lost updates when two sales touch the same row.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_items_stock_quantity_non_negative"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_items_threshold_non_negative"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_items_cost_price_non_negative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_items_selling_price_non_negative"),
        db.Index("ix_items_category_active", "category_id", "is_active"),
        db.Index("ix_items_status_active", "stock_status", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    description = db.Column(db.String(1000), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)
    stock_status = db.Column(db.String(16), nullable=False, default=AVAILABLE)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    total_restocked = db.Column(db.Integer, nullable=False, default=0)
    total_sold = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    view_count = db.Column(db.Integer, nullable=False, default=0)

    unit = db.Column(db.String(32), nullable=False, default="piece")
    tags = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("items", lazy="dynamic"))
    restock_entries = db.relationship(
        "RestockEntry",
        backref="item",
        lazy=True,
        order_by="RestockEntry.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def profit_per_unit_cents(self) -> int:
        return (self.selling_price_cents or 0) - (self.cost_price_cents or 0)

    @property
    def profit_margin(self) -> float:
        cost = self.cost_price_cents or 0
        if cost <= 0:
            return 0.0
        return round(self.profit_per_unit_cents / cost * 100, 2)

    @property
    def inventory_value_cents(self) -> int:
        return (self.stock_quantity or 0) * (self.cost_price_cents or 0)

    @property
    def potential_revenue_cents(self) -> int:
        return (self.stock_quantity or 0) * (self.selling_price_cents or 0)

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r} qty={self.stock_quantity} status={self.stock_status}>"

    def to_dict(self, include_restocks: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "stock_status": self.stock_status,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "profit_per_unit_cents": self.profit_per_unit_cents,
            "profit_margin": self.profit_margin,
            "inventory_value_cents": self.inventory_value_cents,
            "potential_revenue_cents": self.potential_revenue_cents,
            "total_restocked": self.total_restocked,
            "total_sold": self.total_sold,
            "total_revenue_cents": self.total_revenue_cents,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "last_sold_at": to_utc_z(self.last_sold_at),
            "view_count": self.view_count,
            "unit": self.unit,
            "tags": list(self.tags or []),
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_restocks:
            data["restock_history"] = [entry.to_dict() for entry in self.restock_entries]
        return data


class RestockEntry(db.Model):
    """Append-only restock ledger row."""
    __tablename__ = "restock_entries"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_restock_entries_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    restocked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    restocked_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "supplier": self.supplier,
            "reference": self.reference,
            "notes": self.notes,
            "restocked_by_user_id": self.restocked_by_user_id,
            "restocked_at": to_utc_z(self.restocked_at),
        }


@event.listens_for(Item, "before_insert")
@event.listens_for(Item, "before_update")
def _derive_item_stock_status(mapper, connection, target: Item) -> None:
    target.stock_status = derive_stock_status(target.stock_quantity, target.low_stock_threshold)
