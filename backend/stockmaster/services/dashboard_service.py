# Overview: Read-only dashboard aggregates composed from the inventory, sales, alert and user services.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Alert, AuditLog, Item, Sale
from ..models.alerts import SEVERITY_CRITICAL
from ..models.sales import SALE_COMPLETED
from ..stock_status import STOCK_STATUSES
from ..time_utils import days_ago, end_of_day, start_of_day, to_utc_z, utcnow
from . import alert_service, item_service, sale_service, user_service


def _unresolved_alerts():
    return Alert.query.filter(Alert.is_resolved.is_(False))


def overview(now: datetime | None = None) -> dict:
    now = now or utcnow()
    today = start_of_day(now)
    month_start = today.replace(day=1)

    inventory = item_service.inventory_stats()
    users = user_service.user_stats()

    recent_sales = (
        Sale.query.filter(Sale.status == SALE_COMPLETED)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )
    recent_items = (
        Item.query.filter(Item.is_active.is_(True))
        .order_by(Item.created_at.desc(), Item.id.desc())
        .limit(5)
        .all()
    )

    return {
        "inventory": {
            "total_items": inventory["active_items"],
            "total_value_cents": inventory["total_value_cents"],
            "low_stock_count": inventory["low_stock_count"],
            "out_of_stock_count": inventory["out_of_stock_count"],
        },
        "sales": {
            "today": sale_service.sales_statistics(today, now),
            "month": sale_service.sales_statistics(month_start, now),
        },
        "alerts": {
            "unresolved": _unresolved_alerts().count(),
            "critical": _unresolved_alerts().filter(Alert.severity == SEVERITY_CRITICAL).count(),
        },
        "users": {
            "total": users["total_users"],
            "active": users["active_users"],
        },
        "recent_sales": [sale.to_dict() for sale in recent_sales],
        "recent_items": [item.to_dict() for item in recent_items],
        "top_selling_items": sale_service.top_selling_items(limit=5),
    }


def sales_analytics(period: str = "month", now: datetime | None = None) -> dict:
    if period not in sale_service.PERIOD_DAYS:
        raise ValidationError(f"period must be one of: {', '.join(sale_service.PERIOD_DAYS)}")
    now = now or utcnow()
    days = sale_service.PERIOD_DAYS[period]
    start = days_ago(days, now)

    return {
        "period": period,
        "start_date": to_utc_z(start),
        "end_date": to_utc_z(now),
        "statistics": sale_service.sales_statistics(start, now),
        "daily_trend": sale_service.daily_report(days=days, now=now),
        "top_items": sale_service.top_selling_items(limit=10, start=start, end=now),
        "payment_methods": sale_service.sales_by_payment_method(start=start, end=now),
    }


def inventory_analytics() -> dict:
    distribution = {status: 0 for status in STOCK_STATUSES}
    rows = (
        db.session.query(Item.stock_status, func.count(Item.id))
        .filter(Item.is_active.is_(True))
        .group_by(Item.stock_status)
        .all()
    )
    for status, count in rows:
        distribution[status] = count

    value = Item.cost_price_cents * Item.stock_quantity
    top_value = (
        Item.query.filter(Item.is_active.is_(True))
        .order_by(value.desc(), Item.id.asc())
        .limit(10)
        .all()
    )

    return {
        "category_breakdown": item_service.category_breakdown(),
        "status_distribution": distribution,
        "low_stock_items": [item.to_dict() for item in item_service.low_stock_items()[:20]],
        "top_value_items": [
            {
                "id": item.id,
                "name": item.name,
                "sku": item.sku,
                "stock_quantity": item.stock_quantity,
                "inventory_value_cents": item.inventory_value_cents,
            }
            for item in top_value
        ],
    }


def recent_activity(*, limit: int = 20) -> list[AuditLog]:
    limit = max(1, min(limit, 100))
    return AuditLog.query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()


def _growth(current: int, previous: int) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def executive_summary(now: datetime | None = None) -> dict:
    """Today against yesterday, plus rolling week and month figures."""
    now = now or utcnow()
    today = start_of_day(now)
    yesterday = today - timedelta(days=1)
    month_ago = today - timedelta(days=30)

    today_stats = sale_service.sales_statistics(today, now)
    yesterday_stats = sale_service.sales_statistics(yesterday, end_of_day(yesterday))
    critical = alert_service.critical_alerts()

    return {
        "today": today_stats,
        "yesterday": yesterday_stats,
        "week": sale_service.sales_statistics(today - timedelta(days=7), now),
        "month": sale_service.sales_statistics(month_ago, now),
        "growth": {
            "revenue": _growth(today_stats["total_revenue_cents"], yesterday_stats["total_revenue_cents"]),
            "sales": _growth(today_stats["total_sales"], yesterday_stats["total_sales"]),
        },
        "inventory": {"total_value_cents": item_service.inventory_stats()["total_value_cents"]},
        "alerts": {
            "critical": len(critical),
            "items": [alert.to_dict() for alert in critical[:5]],
        },
        "top_products": sale_service.top_selling_items(limit=5, start=month_ago, end=now),
    }
