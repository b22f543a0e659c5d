# Overview: Stock status refresh for items and the save path that feeds the alert reconciler.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Alert, Item
from ..stock_status import StockTransition, derive_stock_status
from . import alert_service, notification_service

_UNSET = object()


def capture_status(item: Item) -> str | None:
    """Status to compare against once the item has been mutated; None for unsaved items."""
    return item.stock_status if item.id is not None else None


def refresh_stock_status(item: Item, *, previous=_UNSET) -> StockTransition | None:
    """
    Recompute item.stock_status from its current quantity and threshold.

    Returns the (previous, current) pair when the status changed, None
    otherwise. New items report a transition from None so a brand new item
    created at low stock raises its alert.

    Pass ``previous`` when the item was mutated before this call: any
    autoflush in between (a lazy load, a query) runs the mapper listener,
    which overwrites stock_status in memory.
    """
    if previous is _UNSET:
        previous = capture_status(item)
    current = derive_stock_status(item.stock_quantity, item.low_stock_threshold)
    item.stock_status = current
    if previous == current:
        return None
    return StockTransition(previous=previous, current=current)


def save_item(item: Item, *, previous_status=_UNSET, actor_id: int | None = None) -> list[Alert]:
    """
    Flush the item and reconcile its alerts in the current transaction.

    ``previous_status`` is the status captured with capture_status() before
    the caller changed the item. Returns alerts created by the
    reconciliation; the caller notifies admins once the surrounding
    transaction has committed.
    """
    transition = refresh_stock_status(item, previous=previous_status)
    db.session.add(item)
    db.session.flush()
    if transition is None:
        return []
    current_app.logger.info(
        "Item %s stock status %s -> %s", item.sku, transition.previous, transition.current
    )
    return alert_service.reconcile_item_alerts(item, transition, actor_id=actor_id)


def recalculate_all() -> dict:
    """
    Re-derive the status of every item and reconcile alerts for the ones that
    drifted. Used by the ``inventory recalculate-status`` command.
    """
    checked = 0
    changed = 0
    created: list[Alert] = []
    # Read the persisted status; the insert/update listeners may have been
    # bypassed by bulk SQL.
    for item in Item.query.order_by(Item.id).all():
        checked += 1
        transition = refresh_stock_status(item)
        if transition is None:
            continue
        changed += 1
        db.session.flush()
        created.extend(alert_service.reconcile_item_alerts(item, transition))
    db.session.commit()
    notification_service.notify_admins(created)
    return {"checked": checked, "updated": changed, "alerts_created": len(created)}
