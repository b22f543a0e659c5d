"""
Sale ledger.

Verifies:
- Integer-cent totals with percentage discount and tax
- Creating a sale decrements stock and bumps item counters
- Over-stock requests are rejected before anything is written
- Cancelling restores exactly the recorded quantities
- Audit entries travel with the transaction
- A line whose stock update fails is skipped while the sale and other lines commit
"""

from datetime import datetime

import pytest

from stockmaster.errors import ConflictError, NotFoundError, ValidationError
from stockmaster.models import Alert, AuditLog, Item, Sale
from stockmaster.models.sales import (
    ADJUSTMENT_FIXED,
    ADJUSTMENT_PERCENTAGE,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    SALE_CANCELLED,
)
from stockmaster.services import sale_service
from stockmaster.services.sale_service import Adjustment, LineInput, compute_sale_totals
from stockmaster.stock_status import LOW_STOCK


# =============================================================================
# TOTALS
# =============================================================================


class TestComputeSaleTotals:

    def test_percentage_discount_and_tax(self):
        # 2 x 100.00 at cost 70.00, 10% off, 5% tax
        totals = compute_sale_totals(
            [LineInput(quantity=2, unit_price_cents=10000, unit_cost_cents=7000)],
            discount=Adjustment(ADJUSTMENT_PERCENTAGE, 1000),
            tax=Adjustment(ADJUSTMENT_PERCENTAGE, 500),
            amount_paid_cents=18900,
        )

        assert totals.subtotal_cents == 20000
        assert totals.discount_cents == 2000
        assert totals.subtotal_cents - totals.discount_cents == 18000
        assert totals.tax_cents == 900
        assert totals.total_amount_cents == 18900
        assert totals.total_cost_cents == 14000
        assert totals.total_profit_cents == 4000
        assert totals.total_items == 2
        assert totals.amount_due_cents == 0
        assert totals.payment_status == PAYMENT_PAID

    def test_line_profit_before_discount(self):
        totals = compute_sale_totals(
            [LineInput(quantity=2, unit_price_cents=10000, unit_cost_cents=7000)],
            discount=Adjustment(ADJUSTMENT_PERCENTAGE, 1000),
        )
        assert totals.lines[0].profit_cents == 6000

    def test_fixed_discount_clamped_to_subtotal(self):
        totals = compute_sale_totals(
            [LineInput(quantity=1, unit_price_cents=500, unit_cost_cents=100)],
            discount=Adjustment(ADJUSTMENT_FIXED, 2000),
            tax=Adjustment(ADJUSTMENT_FIXED, 0),
        )
        assert totals.discount_cents == 500
        assert totals.total_amount_cents == 0

    def test_rounding_half_up(self):
        # 7.5% of 333 cents = 24.975 -> 25
        totals = compute_sale_totals(
            [LineInput(quantity=1, unit_price_cents=333, unit_cost_cents=0)],
            tax=Adjustment(ADJUSTMENT_PERCENTAGE, 750),
        )
        assert totals.tax_cents == 25

    @pytest.mark.parametrize(
        "paid,expected",
        [(0, PAYMENT_PENDING), (500, PAYMENT_PARTIAL), (1000, PAYMENT_PAID), (5000, PAYMENT_PAID)],
    )
    def test_payment_status_derived(self, paid, expected):
        totals = compute_sale_totals([LineInput(1, 1000, 0)], amount_paid_cents=paid)
        assert totals.payment_status == expected
        assert totals.amount_due_cents == max(0, 1000 - paid)


class TestParseAdjustment:

    def test_percentage_becomes_basis_points(self):
        assert sale_service.parse_adjustment({"type": "percentage", "value": "12.5"}, "tax") == Adjustment(
            ADJUSTMENT_PERCENTAGE, 1250
        )

    def test_none_is_zero(self):
        assert sale_service.parse_adjustment(None, "discount") == Adjustment()

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            sale_service.parse_adjustment({"type": "bogus", "value": 1}, "discount")

    def test_rejects_over_100_percent(self):
        with pytest.raises(ValidationError):
            sale_service.parse_adjustment({"type": "percentage", "value": 150}, "discount")


# =============================================================================
# CREATE / CANCEL
# =============================================================================


class TestCreateSale:

    def test_decrements_stock_and_counters(self, db_session, make_item, staff):
        item = make_item(stock_quantity=10, low_stock_threshold=5, selling_price_cents=2500, cost_price_cents=1000)

        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 3}], actor=staff, amount_paid=7500)

        db_session.expire_all()
        item = db_session.get(Item, item.id)
        assert item.stock_quantity == 7
        assert item.total_sold == 3
        assert item.total_revenue_cents == 7500
        assert item.last_sold_at is not None

        assert sale.total_amount_cents == 7500
        assert sale.total_profit_cents == 4500
        assert sale.payment_status == PAYMENT_PAID
        assert sale.sale_number.startswith("SALE-")
        assert sale.lines[0].item_sku == item.sku
        assert sale.sold_by_user_id == staff.id

    def test_amount_paid_defaults_to_pending(self, make_item, staff):
        item = make_item()
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)
        assert sale.amount_paid_cents == 0
        assert sale.payment_status == PAYMENT_PENDING

    def test_sale_numbers_are_sequential(self, make_item, staff):
        item = make_item(stock_quantity=50)
        first = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)
        second = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)

        assert first.sale_number.endswith("-0001")
        assert second.sale_number.endswith("-0002")

    def test_over_stock_rejected_without_mutation(self, db_session, make_item, staff):
        plenty = make_item(stock_quantity=10)
        scarce = make_item(stock_quantity=2)

        with pytest.raises(ConflictError) as exc:
            sale_service.create_sale(
                lines=[{"item_id": plenty.id, "quantity": 1}, {"item_id": scarce.id, "quantity": 3}],
                actor=staff,
            )
        db_session.rollback()

        assert "Available: 2, Requested: 3" in exc.value.message
        assert Sale.query.count() == 0
        assert db_session.get(Item, plenty.id).stock_quantity == 10
        assert db_session.get(Item, scarce.id).stock_quantity == 2

    def test_same_item_twice_is_checked_in_total(self, db_session, make_item, staff):
        item = make_item(stock_quantity=4)

        with pytest.raises(ConflictError):
            sale_service.create_sale(
                lines=[{"item_id": item.id, "quantity": 3}, {"item_id": item.id, "quantity": 2}],
                actor=staff,
            )
        db_session.rollback()
        assert db_session.get(Item, item.id).stock_quantity == 4

    def test_unknown_item(self, db_session, staff):
        with pytest.raises(NotFoundError):
            sale_service.create_sale(lines=[{"item_id": 9999, "quantity": 1}], actor=staff)
        db_session.rollback()

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5])
    def test_invalid_quantity(self, db_session, make_item, staff, quantity):
        item = make_item()
        with pytest.raises(ValidationError):
            sale_service.create_sale(lines=[{"item_id": item.id, "quantity": quantity}], actor=staff)
        db_session.rollback()

    def test_empty_sale(self, staff):
        with pytest.raises(ValidationError):
            sale_service.create_sale(lines=[], actor=staff)

    def test_inactive_item_rejected(self, db_session, make_item, staff):
        item = make_item(is_active=False)
        with pytest.raises(ValidationError):
            sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)
        db_session.rollback()

    def test_crossing_threshold_raises_alert(self, make_item, staff):
        item = make_item(stock_quantity=10, low_stock_threshold=5)

        sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 6}], actor=staff)

        alerts = Alert.query.filter_by(item_id=item.id, is_resolved=False).all()
        assert [a.type for a in alerts] == [LOW_STOCK]

    def test_failed_stock_update_skips_only_that_line(self, db_session, make_item, staff, monkeypatch):
        broken = make_item(stock_quantity=10)
        healthy = make_item(stock_quantity=10)
        original = sale_service.item_service.reduce_stock

        def reduce_stock(item, quantity, **kwargs):
            if item.id == broken.id:
                raise RuntimeError("row unavailable")
            return original(item, quantity, **kwargs)

        monkeypatch.setattr(sale_service.item_service, "reduce_stock", reduce_stock)

        sale = sale_service.create_sale(
            lines=[{"item_id": broken.id, "quantity": 2}, {"item_id": healthy.id, "quantity": 3}],
            actor=staff,
        )

        db_session.expire_all()
        assert Sale.query.count() == 1
        assert len(db_session.get(Sale, sale.id).lines) == 2
        assert db_session.get(Item, broken.id).stock_quantity == 10
        assert db_session.get(Item, healthy.id).stock_quantity == 7

        entry = AuditLog.query.filter_by(action="sale.create").one()
        assert entry.details["stock_update_failed_item_ids"] == [broken.id]

    def test_writes_audit_entry(self, make_item, staff):
        item = make_item()
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)

        entry = AuditLog.query.filter_by(action="sale.create").one()
        assert entry.resource_id == sale.id
        assert entry.actor_user_id == staff.id
        assert entry.actor_role == "staff"


class TestCancelSale:

    def test_restores_recorded_quantities(self, db_session, make_item, staff, admin):
        item = make_item(stock_quantity=10, low_stock_threshold=5, selling_price_cents=1000)
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 3}], actor=staff)

        # Stock moves between sale and cancellation
        sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)

        cancelled = sale_service.cancel_sale(sale.id, actor=admin, reason="Customer returned goods")

        db_session.expire_all()
        item = db_session.get(Item, item.id)
        assert cancelled.status == SALE_CANCELLED
        assert cancelled.refund_reason == "Customer returned goods"
        assert cancelled.refunded_by_user_id == admin.id
        assert item.stock_quantity == 9
        assert item.total_sold == 1
        assert item.total_revenue_cents == 1000

    def test_cannot_cancel_twice(self, db_session, make_item, staff, admin):
        item = make_item()
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 2}], actor=staff)
        sale_service.cancel_sale(sale.id, actor=admin)

        with pytest.raises(ValidationError):
            sale_service.cancel_sale(sale.id, actor=admin)
        db_session.rollback()

        assert db_session.get(Item, item.id).stock_quantity == 10

    def test_cancel_resolves_stock_alert(self, make_item, staff, admin):
        item = make_item(stock_quantity=6, low_stock_threshold=5)
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 6}], actor=staff)
        assert Alert.query.filter_by(item_id=item.id, is_resolved=False).count() == 1

        sale_service.cancel_sale(sale.id, actor=admin)

        assert Alert.query.filter_by(item_id=item.id, is_resolved=False).count() == 0

    def test_cancelled_sales_excluded_from_statistics(self, make_item, staff, admin):
        item = make_item(stock_quantity=20, selling_price_cents=1000)
        kept = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 2}], actor=staff)
        dropped = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 5}], actor=staff)
        sale_service.cancel_sale(dropped.id, actor=admin)

        stats = sale_service.sales_statistics(None, None)

        assert stats["total_sales"] == 1
        assert stats["total_revenue_cents"] == kept.total_amount_cents
        assert stats["total_items_sold"] == 2


class TestUpdatePayment:

    def test_status_rederived(self, make_item, staff):
        item = make_item(selling_price_cents=1000)
        sale = sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 2}], actor=staff)

        sale = sale_service.update_payment(sale.id, amount_paid=500, actor=staff)
        assert sale.payment_status == PAYMENT_PARTIAL
        assert sale.amount_due_cents == 1500

        sale = sale_service.update_payment(sale.id, amount_paid=2000, actor=staff)
        assert sale.payment_status == PAYMENT_PAID
        assert sale.amount_due_cents == 0


class TestReports:

    def test_top_selling_orders_by_quantity(self, make_item, staff):
        slow = make_item(stock_quantity=20)
        fast = make_item(stock_quantity=20)
        sale_service.create_sale(lines=[{"item_id": slow.id, "quantity": 1}], actor=staff)
        sale_service.create_sale(
            lines=[{"item_id": fast.id, "quantity": 4}, {"item_id": slow.id, "quantity": 1}],
            actor=staff,
        )

        top = sale_service.top_selling_items(limit=5)

        assert [row["item_id"] for row in top] == [fast.id, slow.id]
        assert top[0]["total_quantity"] == 4
        assert top[1]["sales_count"] == 2

    def test_daily_report_buckets_today(self, make_item, staff):
        item = make_item(selling_price_cents=1000)
        sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 1}], actor=staff)
        sale_service.create_sale(lines=[{"item_id": item.id, "quantity": 2}], actor=staff)

        report = sale_service.daily_report(days=7)

        assert len(report) == 1
        assert report[0]["total_sales"] == 2
        assert report[0]["total_revenue_cents"] == 3000
        assert report[0]["average_sale_value_cents"] == 1500

    def test_period_rejects_inverted_range(self):
        with pytest.raises(ValidationError):
            sale_service.resolve_period(None, datetime(2024, 2, 1), datetime(2024, 1, 1))

    @pytest.mark.parametrize(
        "period,expected_start",
        [
            ("today", datetime(2026, 3, 15)),
            ("week", datetime(2026, 3, 8, 14, 30)),
            ("quarter", datetime(2025, 12, 15, 14, 30)),
        ],
    )
    def test_named_periods(self, period, expected_start):
        now = datetime(2026, 3, 15, 14, 30)
        assert sale_service.resolve_period(period, now=now) == (expected_start, now)

    def test_yesterday_covers_whole_day(self):
        start, end = sale_service.resolve_period("yesterday", now=datetime(2026, 3, 15, 9, 0))

        assert start == datetime(2026, 3, 14)
        assert end == datetime(2026, 3, 14, 23, 59, 59, 999999)
