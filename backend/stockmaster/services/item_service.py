# Overview: Item catalogue and stock movements (create, update, restock, sale decrement, restore).

from __future__ import annotations

import random
import re
import time

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Alert, Category, Item, RestockEntry, User
from ..stock_status import LOW_STOCK, OUT_OF_STOCK, STOCK_STATUSES
from ..time_utils import utcnow
from . import audit_service, notification_service, stock_service
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate

SORTABLE_FIELDS = {
    "name": Item.name,
    "sku": Item.sku,
    "created_at": Item.created_at,
    "selling_price_cents": Item.selling_price_cents,
    "stock_quantity": Item.stock_quantity,
    "total_sold": Item.total_sold,
}

# Fields that describe an item; stock counters only move through restock/sale.
UPDATABLE_FIELDS = {
    "name", "description", "barcode", "category_id", "cost_price_cents",
    "selling_price_cents", "low_stock_threshold", "unit", "tags",
    "is_active", "is_featured",
}


def _audit_snapshot(item: Item) -> dict:
    return {
        "name": item.name,
        "sku": item.sku,
        "category_id": item.category_id,
        "cost_price_cents": item.cost_price_cents,
        "selling_price_cents": item.selling_price_cents,
        "stock_quantity": item.stock_quantity,
        "low_stock_threshold": item.low_stock_threshold,
        "stock_status": item.stock_status,
        "is_active": item.is_active,
    }


def sku_prefix(category_name: str) -> str:
    prefix = re.sub(r"[^A-Za-z0-9]", "", category_name or "").upper()[:20]
    return prefix or "ITEM"


def generate_sku(prefix: str = "ITEM") -> str:
    """<PREFIX>-<last 6 digits of epoch millis>-<3 random digits>, retried until unused."""
    for _ in range(10):
        stamp = str(int(time.time() * 1000))[-6:]
        suffix = f"{random.randint(0, 999):03d}"
        candidate = f"{prefix}-{stamp}-{suffix}"
        if not db.session.query(Item.id).filter_by(sku=candidate).first():
            return candidate
    raise ConflictError("Could not generate a unique SKU, please retry")


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


def view_item(item_id: int) -> Item:
    item = get_item(item_id)
    item.view_count = (item.view_count or 0) + 1
    db.session.commit()
    return item


def create_item(*, patch: dict, actor: User) -> Item:
    category_id = patch.get("category_id")
    category = db.session.get(Category, category_id) if category_id is not None else None
    if category is None:
        raise NotFoundError("Category not found")

    sku = patch.pop("sku", None)
    if sku:
        if db.session.query(Item.id).filter_by(sku=sku).first():
            raise ConflictError(f"Item with SKU {sku} already exists")
    else:
        sku = generate_sku(sku_prefix(category.name))

    item = Item(sku=sku, created_by_user_id=actor.id, updated_by_user_id=actor.id)
    for key, value in patch.items():
        setattr(item, key, value)

    created = stock_service.save_item(item, actor_id=actor.id)
    audit_service.log_action(
        action="item.create",
        resource="item",
        resource_id=item.id,
        actor=actor,
        description=f"Created item: {item.name} ({item.sku})",
    )
    db.session.commit()
    notification_service.notify_admins(created)
    current_app.logger.info("Item %s created by user %s", item.sku, actor.id)
    return item


def update_item(item_id: int, *, patch: dict, actor: User) -> Item:
    item = get_item(item_id)
    before = _audit_snapshot(item)
    previous_status = stock_service.capture_status(item)

    if "category_id" in patch and patch["category_id"] != item.category_id:
        if db.session.get(Category, patch["category_id"]) is None:
            raise NotFoundError("Category not found")

    for key, value in patch.items():
        if key not in UPDATABLE_FIELDS:
            continue
        setattr(item, key, value)
    item.updated_by_user_id = actor.id

    created = stock_service.save_item(item, previous_status=previous_status, actor_id=actor.id)
    audit_service.log_action(
        action="item.update",
        resource="item",
        resource_id=item.id,
        actor=actor,
        description=f"Updated item: {item.name} ({item.sku})",
        changes={"before": before, "after": _audit_snapshot(item)},
    )
    db.session.commit()
    notification_service.notify_admins(created)
    return item


def delete_item(item_id: int, *, actor: User) -> Item:
    """Soft delete: the row stays for sale history."""
    item = get_item(item_id)
    item.is_active = False
    item.updated_by_user_id = actor.id
    audit_service.log_action(
        action="item.delete",
        resource="item",
        resource_id=item.id,
        actor=actor,
        description=f"Deleted item: {item.name} ({item.sku})",
        severity="medium",
    )
    db.session.commit()
    return item


def restock_item(
    item_id: int,
    *,
    quantity: int,
    actor: User,
    cost_price_cents: int | None = None,
    supplier: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> Item:
    """
    Add received stock and append a restock ledger entry.

    A cost price that differs from the item's current one replaces it.
    """
    if quantity <= 0:
        raise ValidationError("Valid quantity is required")

    def _op():
        item = lock_for_update(Item.query.filter_by(id=item_id)).first()
        if item is None:
            raise NotFoundError("Item not found")

        previous_status = stock_service.capture_status(item)
        item.stock_quantity = (item.stock_quantity or 0) + quantity
        item.total_restocked = (item.total_restocked or 0) + quantity
        item.last_restocked_at = utcnow()
        if cost_price_cents is not None and cost_price_cents != item.cost_price_cents:
            item.cost_price_cents = cost_price_cents
        item.updated_by_user_id = actor.id
        item.restock_entries.append(
            RestockEntry(
                quantity=quantity,
                cost_price_cents=cost_price_cents,
                supplier=supplier,
                reference=reference,
                notes=notes,
                restocked_by_user_id=actor.id,
            )
        )

        created = stock_service.save_item(item, previous_status=previous_status, actor_id=actor.id)
        audit_service.log_action(
            action="item.restock",
            resource="item",
            resource_id=item.id,
            actor=actor,
            description=f"Restocked {quantity} units of {item.name}",
            metadata={
                "quantity": quantity,
                "cost_price_cents": cost_price_cents,
                "supplier": supplier,
                "new_stock_level": item.stock_quantity,
                "stock_status": item.stock_status,
            },
        )
        db.session.commit()
        return item, created

    item, created = run_with_retry(_op)
    notification_service.notify_admins(created)
    current_app.logger.info("Restocked %s: +%s (now %s, %s)", item.sku, quantity, item.stock_quantity, item.stock_status)
    return item


def reduce_stock(item: Item, quantity: int, *, revenue_cents: int, actor_id: int | None = None) -> list[Alert]:
    """
    Take ``quantity`` units out of stock for a sale line. Flushes, does not commit.

    Raises ConflictError when stock is short; the caller's savepoint keeps the
    failure contained to this line.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    current = item.stock_quantity or 0
    if current < quantity:
        raise ConflictError(
            f"Insufficient stock for {item.name}",
            details={"item_id": item.id, "available": current, "requested": quantity},
        )
    previous_status = stock_service.capture_status(item)
    item.stock_quantity = current - quantity
    item.total_sold = (item.total_sold or 0) + quantity
    item.total_revenue_cents = (item.total_revenue_cents or 0) + revenue_cents
    item.last_sold_at = utcnow()
    return stock_service.save_item(item, previous_status=previous_status, actor_id=actor_id)


def restore_stock(item: Item, quantity: int, *, revenue_cents: int, actor_id: int | None = None) -> list[Alert]:
    """Inverse of reduce_stock for a cancelled sale line. Counters never go below zero."""
    previous_status = stock_service.capture_status(item)
    item.stock_quantity = (item.stock_quantity or 0) + quantity
    item.total_sold = max(0, (item.total_sold or 0) - quantity)
    item.total_revenue_cents = max(0, (item.total_revenue_cents or 0) - revenue_cents)
    return stock_service.save_item(item, previous_status=previous_status, actor_id=actor_id)


def list_items(
    *,
    search: str | None = None,
    category_id: int | None = None,
    stock_status: str | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    is_active: bool | None = True,
    sort: str = "created_at",
    order: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
):
    query = Item.query
    if is_active is not None:
        query = query.filter(Item.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Item.name.ilike(pattern), Item.sku.ilike(pattern), Item.barcode.ilike(pattern)))
    if category_id is not None:
        query = query.filter(Item.category_id == category_id)
    if stock_status:
        if stock_status not in STOCK_STATUSES:
            raise ValidationError(f"stock_status must be one of: {', '.join(STOCK_STATUSES)}")
        query = query.filter(Item.stock_status == stock_status)
    if min_price_cents is not None:
        query = query.filter(Item.selling_price_cents >= min_price_cents)
    if max_price_cents is not None:
        query = query.filter(Item.selling_price_cents <= max_price_cents)

    column = SORTABLE_FIELDS.get(sort, Item.created_at)
    query = query.order_by(column.asc() if order == "asc" else column.desc(), Item.id.asc())
    return paginate(query, page, per_page)


def search_items(q: str, *, limit: int = 10) -> list[Item]:
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    pattern = f"%{q.strip()}%"
    return (
        Item.query.filter(
            Item.is_active.is_(True),
            or_(Item.name.ilike(pattern), Item.sku.ilike(pattern), Item.barcode.ilike(pattern)),
        )
        .order_by(Item.name.asc())
        .limit(max(1, min(limit, 50)))
        .all()
    )


def low_stock_items() -> list[Item]:
    return (
        Item.query.filter(Item.is_active.is_(True), Item.stock_status.in_((LOW_STOCK, OUT_OF_STOCK)))
        .order_by(Item.stock_quantity.asc(), Item.id.asc())
        .all()
    )


def category_breakdown() -> list[dict]:
    rows = (
        db.session.query(
            Category.id,
            Category.name,
            func.count(Item.id),
            func.coalesce(func.sum(Item.cost_price_cents * Item.stock_quantity), 0),
            func.coalesce(func.sum(Item.stock_quantity), 0),
        )
        .join(Item, Item.category_id == Category.id)
        .filter(Item.is_active.is_(True))
        .group_by(Category.id, Category.name)
        .order_by(Category.name.asc())
        .all()
    )
    return [
        {
            "category_id": category_id,
            "category_name": name,
            "count": count,
            "total_value_cents": int(value or 0),
            "total_stock": int(stock or 0),
        }
        for category_id, name, count, value, stock in rows
    ]


def inventory_stats() -> dict:
    active = Item.query.filter(Item.is_active.is_(True))
    total_value = (
        db.session.query(func.coalesce(func.sum(Item.cost_price_cents * Item.stock_quantity), 0))
        .filter(Item.is_active.is_(True))
        .scalar()
    )
    return {
        "total_items": Item.query.count(),
        "active_items": active.count(),
        "total_value_cents": int(total_value or 0),
        "low_stock_count": active.filter(Item.stock_status == LOW_STOCK).count(),
        "out_of_stock_count": active.filter(Item.stock_status == OUT_OF_STOCK).count(),
        "category_breakdown": category_breakdown(),
    }
