# Overview: Sale ledger; totals, creation with stock decrement, cancellation, payment, reporting.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import func, or_

from ..errors import NotFoundError, ValidationError, ConflictError
from ..extensions import db
from ..models import Alert, Item, Sale, SaleLine, User
from ..models.sales import (
    ADJUSTMENT_FIXED,
    ADJUSTMENT_PERCENTAGE,
    ADJUSTMENT_TYPES,
    PAYMENT_METHODS,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    SALE_CANCELLED,
    SALE_COMPLETED,
    SALE_STATUSES,
)
from ..time_utils import days_ago, end_of_day, start_of_day, utcnow
from ..validation import coerce_percentage_bps, coerce_positive_int, coerce_price_cents
from . import audit_service, item_service, notification_service
from .concurrency import RETRYABLE_ERRORS, lock_for_update, run_with_retry
from .document_service import next_sale_number
from .pagination import paginate

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineInput:
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int


@dataclass(frozen=True)
class Adjustment:
    """Discount or tax. value is basis points for percentage, cents for fixed."""
    type: str = ADJUSTMENT_FIXED
    value: int = 0


@dataclass(frozen=True)
class LineTotals:
    subtotal_cents: int
    profit_cents: int


@dataclass(frozen=True)
class SaleTotals:
    lines: tuple[LineTotals, ...]
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_amount_cents: int
    total_cost_cents: int
    total_profit_cents: int
    total_items: int
    amount_due_cents: int
    payment_status: str


def _apply_rate(base_cents: int, bps: int) -> int:
    """base * bps / 10000 rounded half up, in integer arithmetic."""
    return (base_cents * bps + 5000) // 10000


def _adjustment_amount(adjustment: Adjustment | None, base_cents: int) -> int:
    if adjustment is None or not adjustment.value:
        return 0
    if adjustment.type == ADJUSTMENT_PERCENTAGE:
        return _apply_rate(base_cents, adjustment.value)
    return adjustment.value


def derive_payment_status(amount_paid_cents: int, total_amount_cents: int) -> str:
    if amount_paid_cents >= total_amount_cents:
        return PAYMENT_PAID
    if amount_paid_cents > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_PENDING


def compute_sale_totals(
    lines: Iterable[LineInput],
    discount: Adjustment | None = None,
    tax: Adjustment | None = None,
    amount_paid_cents: int = 0,
) -> SaleTotals:
    """
    Pure money math for a sale.

    Discount is clamped to [0, subtotal]. Tax applies to the post-discount
    subtotal. The total never goes below zero. Profit is line profit minus
    the discount.
    """
    line_totals = []
    total_cost = 0
    total_items = 0
    for line in lines:
        subtotal = line.quantity * line.unit_price_cents
        profit = (line.unit_price_cents - line.unit_cost_cents) * line.quantity
        line_totals.append(LineTotals(subtotal_cents=subtotal, profit_cents=profit))
        total_cost += line.quantity * line.unit_cost_cents
        total_items += line.quantity

    subtotal = sum(lt.subtotal_cents for lt in line_totals)

    discount_cents = min(max(_adjustment_amount(discount, subtotal), 0), subtotal)
    taxable = subtotal - discount_cents
    tax_cents = max(_adjustment_amount(tax, taxable), 0)

    total = max(0, subtotal - discount_cents + tax_cents)
    profit = sum(lt.profit_cents for lt in line_totals) - discount_cents
    paid = max(0, amount_paid_cents or 0)

    return SaleTotals(
        lines=tuple(line_totals),
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        total_amount_cents=total,
        total_cost_cents=total_cost,
        total_profit_cents=profit,
        total_items=total_items,
        amount_due_cents=max(0, total - paid),
        payment_status=derive_payment_status(paid, total),
    )


def parse_adjustment(raw: Any, field: str) -> Adjustment:
    """
    Accepts {"type": "percentage", "value": 5} (percent) or
    {"type": "fixed", "value": 2000} (cents). None means no adjustment.
    """
    if raw is None:
        return Adjustment()
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be an object with type and value")
    kind = raw.get("type") or ADJUSTMENT_FIXED
    if kind not in ADJUSTMENT_TYPES:
        raise ValidationError(f"{field}.type must be one of: {', '.join(ADJUSTMENT_TYPES)}")
    value = raw.get("value")
    if value is None or value == "":
        return Adjustment(type=kind, value=0)
    if kind == ADJUSTMENT_PERCENTAGE:
        return Adjustment(type=kind, value=coerce_percentage_bps(value, f"{field}.value"))
    return Adjustment(type=kind, value=coerce_price_cents(value, f"{field}.value"))


# ---------------------------------------------------------------------------
# Create / cancel / payment
# ---------------------------------------------------------------------------

@dataclass
class _PreparedLine:
    item: Item
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _prepare_lines(raw_lines: list) -> list[_PreparedLine]:
    """
    Validate every requested line against current stock before anything is
    written. Quantities for the same item are summed for the stock check.
    """
    prepared: list[_PreparedLine] = []
    requested: dict[int, int] = {}
    items: dict[int, Item] = {}

    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each sale line must be an object")
        quantity = coerce_positive_int(raw.get("quantity"), "quantity")

        item_id = raw.get("item_id", raw.get("item"))
        try:
            item_id = int(item_id)
        except (TypeError, ValueError):
            raise ValidationError("item_id is required for each sale line")

        item = items.get(item_id)
        if item is None:
            item = lock_for_update(Item.query.filter_by(id=item_id)).first()
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
            items[item_id] = item
        if not item.is_active:
            raise ValidationError(f"Item {item.name} is not active")

        requested[item_id] = requested.get(item_id, 0) + quantity

        unit_price = raw.get("unit_price_cents")
        if _is_number(unit_price):
            unit_price = coerce_price_cents(unit_price, "unit_price_cents")
        else:
            unit_price = item.selling_price_cents or 0

        prepared.append(
            _PreparedLine(
                item=item,
                quantity=quantity,
                unit_price_cents=unit_price,
                unit_cost_cents=item.cost_price_cents or 0,
            )
        )

    for item_id, quantity in requested.items():
        item = items[item_id]
        available = item.stock_quantity or 0
        if available < quantity:
            raise ConflictError(
                f"Insufficient stock for {item.name}. Available: {available}, Requested: {quantity}",
                details={"item_id": item_id, "available": available, "requested": quantity},
            )

    return prepared


def _customer_fields(customer: Any) -> dict:
    if customer is None:
        return {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    fields = {}
    for key, limit in (("name", 100), ("phone", 32), ("email", 255), ("address", 255)):
        value = customer.get(key)
        if value is not None and str(value).strip():
            fields[f"customer_{key}"] = str(value).strip()[:limit]
    return fields


def create_sale(
    *,
    lines: list,
    actor: User,
    payment_method: str = "cash",
    amount_paid: Any = None,
    discount: Any = None,
    tax: Any = None,
    customer: Any = None,
    notes: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Sale:
    """
    Record a completed sale and take its quantities out of stock.

    Every line is validated before the sale row is written, so a rejected
    sale leaves all items untouched. Stock is then decremented line by line,
    each inside its own savepoint: a line that fails there is logged and
    skipped while the sale and the other lines still commit.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Sale must contain at least one item")
    payment_method = payment_method or "cash"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    discount_adj = parse_adjustment(discount, "discount")
    tax_adj = parse_adjustment(tax, "tax")
    amount_paid_cents = 0
    if amount_paid is not None and amount_paid != "":
        amount_paid_cents = coerce_price_cents(amount_paid, "amount_paid")
    customer_fields = _customer_fields(customer)

    def _op():
        prepared = _prepare_lines(lines)
        totals = compute_sale_totals(
            [LineInput(p.quantity, p.unit_price_cents, p.unit_cost_cents) for p in prepared],
            discount_adj,
            tax_adj,
            amount_paid_cents,
        )

        sale = Sale(
            sale_number=next_sale_number(),
            status=SALE_COMPLETED,
            discount_type=discount_adj.type,
            discount_value=discount_adj.value,
            tax_type=tax_adj.type,
            tax_value=tax_adj.value,
            payment_method=payment_method,
            amount_paid_cents=amount_paid_cents,
            notes=(notes or "").strip()[:500] or None,
            sold_by_user_id=actor.id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
            **customer_fields,
        )
        _apply_totals(sale, totals)
        for p, lt in zip(prepared, totals.lines):
            sale.lines.append(
                SaleLine(
                    item_id=p.item.id,
                    item_name=p.item.name,
                    item_sku=p.item.sku,
                    quantity=p.quantity,
                    unit_price_cents=p.unit_price_cents,
                    unit_cost_cents=p.unit_cost_cents,
                    subtotal_cents=lt.subtotal_cents,
                    profit_cents=lt.profit_cents,
                )
            )
        db.session.add(sale)
        db.session.flush()

        created: list[Alert] = []
        skipped: list[int] = []
        for p, lt in zip(prepared, totals.lines):
            nested = db.session.begin_nested()
            try:
                created.extend(
                    item_service.reduce_stock(p.item, p.quantity, revenue_cents=lt.subtotal_cents, actor_id=actor.id)
                )
                nested.commit()
            except RETRYABLE_ERRORS:
                nested.rollback()
                raise
            except Exception:
                nested.rollback()
                skipped.append(p.item.id)
                current_app.logger.exception(
                    "Stock update failed for item %s on sale %s", p.item.id, sale.sale_number
                )

        audit_service.log_action(
            action="sale.create",
            resource="sale",
            resource_id=sale.id,
            actor=actor,
            description=f"Created sale {sale.sale_number} - {sale.total_amount_cents} cents",
            metadata={
                "total_amount_cents": sale.total_amount_cents,
                "total_profit_cents": sale.total_profit_cents,
                "item_count": sale.total_items,
                "stock_update_failed_item_ids": skipped,
            },
        )
        db.session.commit()
        return sale, created

    sale, created = run_with_retry(_op)
    notification_service.notify_admins(created)
    current_app.logger.info("Sale %s recorded by user %s", sale.sale_number, actor.id)
    return sale


def _apply_totals(sale: Sale, totals: SaleTotals) -> None:
    sale.subtotal_cents = totals.subtotal_cents
    sale.discount_cents = totals.discount_cents
    sale.tax_cents = totals.tax_cents
    sale.total_amount_cents = totals.total_amount_cents
    sale.total_cost_cents = totals.total_cost_cents
    sale.total_profit_cents = totals.total_profit_cents
    sale.total_items = totals.total_items
    sale.amount_due_cents = totals.amount_due_cents
    sale.payment_status = totals.payment_status


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def cancel_sale(sale_id: int, *, actor: User, reason: str | None = None) -> Sale:
    """
    Reverse a completed sale: every line's quantity goes back into stock and
    the item counters are reduced by the recorded line values. All lines or
    none, in one transaction.
    """
    def _op():
        sale = lock_for_update(Sale.query.filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found")
        if sale.status != SALE_COMPLETED:
            raise ValidationError("Only completed sales can be cancelled")

        created: list[Alert] = []
        for line in sale.lines:
            item = lock_for_update(Item.query.filter_by(id=line.item_id)).first()
            if item is None:
                current_app.logger.warning("Item %s missing while cancelling sale %s", line.item_id, sale.sale_number)
                continue
            created.extend(
                item_service.restore_stock(item, line.quantity, revenue_cents=line.subtotal_cents, actor_id=actor.id)
            )
            current_app.logger.info(
                "Stock restored for %s: +%s (now %s)", item.sku, line.quantity, item.stock_quantity
            )

        sale.status = SALE_CANCELLED
        sale.refund_reason = (reason or "").strip()[:255] or None
        sale.refunded_at = utcnow()
        sale.refunded_by_user_id = actor.id

        audit_service.log_action(
            action="sale.cancel",
            resource="sale",
            resource_id=sale.id,
            actor=actor,
            description=f"Cancelled sale {sale.sale_number}",
            severity="medium",
            metadata={"reason": sale.refund_reason},
        )
        db.session.commit()
        return sale, created

    sale, created = run_with_retry(_op)
    notification_service.notify_admins(created)
    return sale


def update_payment(sale_id: int, *, amount_paid: Any, actor: User) -> Sale:
    """Record a new amount paid. payment_status is always re-derived, never taken from the client."""
    sale = get_sale(sale_id)
    if sale.status != SALE_COMPLETED:
        raise ValidationError("Cannot update payment for non-completed sales")
    if amount_paid is None or amount_paid == "":
        raise ValidationError("amount_paid is required")

    before = {"amount_paid_cents": sale.amount_paid_cents, "payment_status": sale.payment_status}
    sale.amount_paid_cents = coerce_price_cents(amount_paid, "amount_paid")
    sale.amount_due_cents = max(0, sale.total_amount_cents - sale.amount_paid_cents)
    sale.payment_status = derive_payment_status(sale.amount_paid_cents, sale.total_amount_cents)

    audit_service.log_action(
        action="sale.update",
        resource="sale",
        resource_id=sale.id,
        actor=actor,
        description=f"Updated payment for sale {sale.sale_number}",
        changes={
            "before": before,
            "after": {"amount_paid_cents": sale.amount_paid_cents, "payment_status": sale.payment_status},
        },
    )
    db.session.commit()
    return sale


# ---------------------------------------------------------------------------
# Listing and reporting (completed sales only)
# ---------------------------------------------------------------------------

def list_sales(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    sold_by_user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
):
    query = Sale.query
    if status:
        if status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        query = query.filter(Sale.status == status)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
        query = query.filter(Sale.payment_status == payment_status)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)
    if sold_by_user_id is not None:
        query = query.filter(Sale.sold_by_user_id == sold_by_user_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Sale.sale_number.ilike(pattern), Sale.customer_name.ilike(pattern)))

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page)


def resolve_period(period: str | None, start: datetime | None = None, end: datetime | None = None,
                   now: datetime | None = None) -> tuple[datetime, datetime]:
    """Explicit start+end win; otherwise today, yesterday, week, month, quarter or year back from now."""
    if start is not None and end is not None:
        if start > end:
            raise ValidationError("start_date must be before end_date")
        return start, end

    now = now or utcnow()
    today = start_of_day(now)
    if period == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, end_of_day(yesterday)
    if period in PERIOD_DAYS:
        return days_ago(PERIOD_DAYS[period], now), now
    return today, now


def _completed_between(query, start: datetime | None, end: datetime | None):
    query = query.filter(Sale.status == SALE_COMPLETED)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def sales_statistics(start: datetime | None, end: datetime | None) -> dict:
    count, revenue, profit, items = _completed_between(
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
            func.coalesce(func.sum(Sale.total_profit_cents), 0),
            func.coalesce(func.sum(Sale.total_items), 0),
        ),
        start,
        end,
    ).one()
    count = int(count or 0)
    revenue = int(revenue or 0)
    profit = int(profit or 0)
    return {
        "total_sales": count,
        "total_revenue_cents": revenue,
        "total_profit_cents": profit,
        "total_items_sold": int(items or 0),
        "average_sale_value_cents": revenue // count if count else 0,
        "profit_margin": round(profit / revenue * 100, 2) if revenue else 0.0,
    }


def top_selling_items(*, limit: int = 10, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    quantity = func.sum(SaleLine.quantity)
    rows = (
        _completed_between(
            db.session.query(
                SaleLine.item_id,
                func.max(SaleLine.item_name),
                func.max(SaleLine.item_sku),
                quantity,
                func.sum(SaleLine.subtotal_cents),
                func.sum(SaleLine.profit_cents),
                func.count(SaleLine.id),
            ).join(Sale, Sale.id == SaleLine.sale_id),
            start,
            end,
        )
        .group_by(SaleLine.item_id)
        .order_by(quantity.desc(), SaleLine.item_id.asc())
        .limit(max(1, min(limit, 100)))
        .all()
    )
    return [
        {
            "item_id": item_id,
            "item_name": name,
            "item_sku": sku,
            "total_quantity": int(qty or 0),
            "total_revenue_cents": int(revenue or 0),
            "total_profit_cents": int(profit or 0),
            "sales_count": int(sales or 0),
        }
        for item_id, name, sku, qty, revenue, profit, sales in rows
    ]


def _bucket_report(start: datetime, end: datetime, key_fn, *, with_margin: bool = False) -> list[dict]:
    rows = (
        _completed_between(
            db.session.query(Sale.created_at, Sale.total_amount_cents, Sale.total_profit_cents, Sale.total_items),
            start,
            end,
        )
        .order_by(Sale.created_at.asc())
        .all()
    )
    buckets: "OrderedDict[str, dict]" = OrderedDict()
    for created_at, amount, profit, items in rows:
        key = key_fn(created_at)
        bucket = buckets.setdefault(
            key,
            {"date": key, "total_sales": 0, "total_revenue_cents": 0, "total_profit_cents": 0, "total_items": 0},
        )
        bucket["total_sales"] += 1
        bucket["total_revenue_cents"] += amount or 0
        bucket["total_profit_cents"] += profit or 0
        bucket["total_items"] += items or 0

    report = []
    for bucket in buckets.values():
        bucket["average_sale_value_cents"] = bucket["total_revenue_cents"] // bucket["total_sales"]
        if with_margin:
            revenue = bucket["total_revenue_cents"]
            bucket["profit_margin"] = round(bucket["total_profit_cents"] / revenue * 100, 2) if revenue else 0.0
        report.append(bucket)
    return report


def daily_report(*, days: int = 30, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    return _bucket_report(days_ago(days, now), now, lambda dt: dt.strftime("%Y-%m-%d"))


def monthly_report(*, months: int = 12, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    year, month = now.year, now.month - months
    while month <= 0:
        month += 12
        year -= 1
    start = now.replace(year=year, month=month, day=1, hour=0, minute=0, second=0, microsecond=0)
    return _bucket_report(start, now, lambda dt: dt.strftime("%Y-%m-01"), with_margin=True)


def sales_by_payment_method(*, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    total = func.coalesce(func.sum(Sale.total_amount_cents), 0)
    rows = (
        _completed_between(
            db.session.query(Sale.payment_method, func.count(Sale.id), total),
            start,
            end,
        )
        .group_by(Sale.payment_method)
        .order_by(total.desc())
        .all()
    )
    return [
        {
            "payment_method": method,
            "count": int(count or 0),
            "total_amount_cents": int(amount or 0),
            "average_amount_cents": int(amount or 0) // int(count) if count else 0,
        }
        for method, count, amount in rows
    ]
