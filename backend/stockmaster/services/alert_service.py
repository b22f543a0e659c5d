# Overview: Alert reconciliation for stock transitions plus manual alert management.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Alert, AlertReadReceipt, Item
from ..models.alerts import (
    ALERT_SECURITY,
    ALERT_SEVERITIES,
    ALERT_TYPES,
    DEFAULT_TITLES,
    SEVERITY_CRITICAL,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    STOCK_ALERT_TYPES,
)
from ..stock_status import AVAILABLE, LOW_STOCK, OUT_OF_STOCK, StockTransition
from ..time_utils import utcnow
from . import notification_service
from .pagination import paginate

AUTO_RESOLVE_NOTE = "Stock replenished - auto-resolved"

ACTION_CREATE = "create"
ACTION_RESOLVE = "resolve"

@dataclass(frozen=True)
class AlertCommand:
    """
    One step the reconciler wants applied.

    create  -> raise a single alert of types[0]
    resolve -> close every open alert of the listed types for the item
    """
    action: str
    types: tuple[str, ...]
    severity: str | None = None
    message: str | None = None
    metadata: dict = field(default_factory=dict)


def default_expiry(severity: str, alert_type: str, now: datetime | None = None) -> datetime | None:
    """Security alerts never expire; info lasts 7 days, everything else 30."""
    if alert_type == ALERT_SECURITY:
        return None
    now = now or utcnow()
    days = 7 if severity == SEVERITY_INFO else 30
    return now + timedelta(days=days)


def _stock_message(item: Item, status: str) -> str:
    if status == OUT_OF_STOCK:
        return f"{item.name} is out of stock"
    return f"{item.name} stock is running low ({item.stock_quantity} {item.unit or 'piece'} remaining)"


def plan_alert_commands(
    transition: StockTransition | None,
    item: Item,
    open_alert_types: set[str] | frozenset[str],
) -> list[AlertCommand]:
    """
    Decide what the alert table should do about a stock status transition.

    Pure: reads only its arguments.
    - no transition                    -> nothing
    - low/out -> available             -> resolve every open stock alert
    - anything -> low_stock/out_of_stock -> create one alert of that type,
      unless one is already open
    """
    if transition is None or not transition.changed:
        return []

    if transition.current == AVAILABLE:
        if transition.previous in (LOW_STOCK, OUT_OF_STOCK):
            return [AlertCommand(action=ACTION_RESOLVE, types=STOCK_ALERT_TYPES)]
        return []

    if transition.current not in (LOW_STOCK, OUT_OF_STOCK):
        return []

    alert_type = transition.current
    if alert_type in open_alert_types:
        return []

    return [
        AlertCommand(
            action=ACTION_CREATE,
            types=(alert_type,),
            severity=SEVERITY_CRITICAL if alert_type == OUT_OF_STOCK else SEVERITY_WARNING,
            message=_stock_message(item, alert_type),
            metadata={
                "current_stock": item.stock_quantity,
                "threshold": item.low_stock_threshold,
                "sku": item.sku,
            },
        )
    ]


def open_stock_alert_types(item_id: int) -> set[str]:
    rows = (
        db.session.query(Alert.type)
        .filter(
            Alert.item_id == item_id,
            Alert.type.in_(STOCK_ALERT_TYPES),
            Alert.is_resolved.is_(False),
        )
        .all()
    )
    return {row[0] for row in rows}


def apply_alert_commands(item: Item, commands: list[AlertCommand], actor_id: int | None = None) -> list[Alert]:
    """Execute planned commands in the current transaction; returns the alerts created."""
    created: list[Alert] = []
    now = utcnow()

    for command in commands:
        if command.action == ACTION_RESOLVE:
            open_alerts = Alert.query.filter(
                Alert.item_id == item.id,
                Alert.type.in_(command.types),
                Alert.is_resolved.is_(False),
            ).all()
            for alert in open_alerts:
                alert.is_resolved = True
                alert.resolved_at = now
                alert.resolved_by_user_id = actor_id
                alert.resolution_notes = AUTO_RESOLVE_NOTE
            if open_alerts:
                current_app.logger.info("Auto-resolved %s stock alert(s) for %s", len(open_alerts), item.sku)

        elif command.action == ACTION_CREATE:
            alert_type = command.types[0]
            alert = Alert(
                type=alert_type,
                severity=command.severity,
                title=DEFAULT_TITLES[alert_type],
                message=command.message,
                item_id=item.id,
                details=dict(command.metadata),
                expires_at=default_expiry(command.severity, alert_type, now),
                created_at=now,
            )
            db.session.add(alert)
            created.append(alert)
            current_app.logger.info("Raised %s alert for %s", alert_type, item.sku)

        else:
            raise ValueError(f"Unknown alert command: {command.action}")

    db.session.flush()
    return created


def reconcile_item_alerts(
    item: Item,
    transition: StockTransition | None,
    *,
    actor_id: int | None = None,
) -> list[Alert]:
    """
    Bring the item's stock alerts in line with a status transition.

    Runs in a savepoint. Failures are logged and rolled back to the savepoint;
    they never abort the stock change that triggered them.
    """
    if transition is None or not transition.changed:
        return []

    nested = db.session.begin_nested()
    try:
        commands = plan_alert_commands(transition, item, open_stock_alert_types(item.id))
        created = apply_alert_commands(item, commands, actor_id=actor_id)
        nested.commit()
        return created
    except Exception:
        nested.rollback()
        current_app.logger.exception("Alert reconciliation failed for item %s", item.id)
        return []


# ---------------------------------------------------------------------------
# Manual alert management
# ---------------------------------------------------------------------------

def _not_expired(query):
    now = utcnow()
    return query.filter((Alert.expires_at.is_(None)) | (Alert.expires_at > now))


def _severity_order():
    return db.case(
        (Alert.severity == SEVERITY_CRITICAL, 3),
        (Alert.severity == SEVERITY_WARNING, 2),
        else_=1,
    )


def get_alert(alert_id: int) -> Alert:
    alert = db.session.get(Alert, alert_id)
    if alert is None:
        raise NotFoundError("Alert not found")
    return alert


def create_alert(
    *,
    alert_type: str,
    message: str,
    severity: str = SEVERITY_INFO,
    title: str | None = None,
    item_id: int | None = None,
    user_id: int | None = None,
    metadata: dict | None = None,
    expires_at: datetime | None = None,
) -> Alert:
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ALERT_TYPES)}")
    if severity not in ALERT_SEVERITIES:
        raise ValidationError(f"severity must be one of: {', '.join(ALERT_SEVERITIES)}")
    if not message or not str(message).strip():
        raise ValidationError("message is required")
    if item_id is not None and db.session.get(Item, item_id) is None:
        raise NotFoundError("Item not found")
    if item_id is not None and alert_type in STOCK_ALERT_TYPES:
        duplicate = Alert.query.filter_by(item_id=item_id, type=alert_type, is_resolved=False).first()
        if duplicate is not None:
            raise ConflictError(
                f"An open {alert_type} alert already exists for this item",
                details={"alert_id": duplicate.id},
            )

    now = utcnow()
    alert = Alert(
        type=alert_type,
        severity=severity,
        title=(title or "").strip() or DEFAULT_TITLES[alert_type],
        message=str(message).strip(),
        item_id=item_id,
        user_id=user_id,
        details=metadata or {},
        expires_at=expires_at if expires_at is not None else default_expiry(severity, alert_type, now),
        created_at=now,
    )
    db.session.add(alert)
    db.session.commit()
    return alert


def list_alerts(
    *,
    alert_type: str | None = None,
    severity: str | None = None,
    is_read: bool | None = None,
    is_resolved: bool | None = None,
    item_id: int | None = None,
    sort: str = "created_at",
    order: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
):
    query = _not_expired(Alert.query)
    if alert_type:
        query = query.filter(Alert.type == alert_type)
    if severity:
        query = query.filter(Alert.severity == severity)
    if is_read is not None:
        query = query.filter(Alert.is_read.is_(is_read))
    if is_resolved is not None:
        query = query.filter(Alert.is_resolved.is_(is_resolved))
    if item_id is not None:
        query = query.filter(Alert.item_id == item_id)

    if sort == "severity":
        sort_column = _severity_order()
    else:
        sort_column = getattr(Alert, sort, None) if sort in {"created_at", "updated_at", "type"} else Alert.created_at
    query = query.order_by(sort_column.asc() if order == "asc" else sort_column.desc(), Alert.id.desc())

    return paginate(query, page, per_page)


def unread_alerts() -> list[Alert]:
    return (
        _not_expired(Alert.query)
        .filter(Alert.is_read.is_(False), Alert.is_resolved.is_(False))
        .order_by(_severity_order().desc(), Alert.created_at.desc())
        .all()
    )


def unresolved_alerts() -> list[Alert]:
    return (
        _not_expired(Alert.query)
        .filter(Alert.is_resolved.is_(False))
        .order_by(_severity_order().desc(), Alert.created_at.desc())
        .all()
    )


def critical_alerts() -> list[Alert]:
    return (
        _not_expired(Alert.query)
        .filter(Alert.severity == SEVERITY_CRITICAL, Alert.is_resolved.is_(False))
        .order_by(Alert.created_at.desc())
        .all()
    )


def alerts_by_type(alert_type: str, *, include_resolved: bool = False) -> list[Alert]:
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ALERT_TYPES)}")
    query = _not_expired(Alert.query).filter(Alert.type == alert_type)
    if not include_resolved:
        query = query.filter(Alert.is_resolved.is_(False))
    return query.order_by(Alert.created_at.desc()).all()


def alerts_by_severity(severity: str, *, include_resolved: bool = False) -> list[Alert]:
    if severity not in ALERT_SEVERITIES:
        raise ValidationError(f"severity must be one of: {', '.join(ALERT_SEVERITIES)}")
    query = _not_expired(Alert.query).filter(Alert.severity == severity)
    if not include_resolved:
        query = query.filter(Alert.is_resolved.is_(False))
    return query.order_by(Alert.created_at.desc()).all()


def _record_read(alert: Alert, user_id: int, now: datetime) -> None:
    alert.is_read = True
    already = any(receipt.user_id == user_id for receipt in alert.read_receipts)
    if not already:
        alert.read_receipts.append(AlertReadReceipt(user_id=user_id, read_at=now))


def mark_read(alert_id: int, *, user_id: int) -> Alert:
    alert = get_alert(alert_id)
    _record_read(alert, user_id, utcnow())
    db.session.commit()
    return alert


def mark_many_read(alert_ids: list, *, user_id: int) -> int:
    if not isinstance(alert_ids, list) or not alert_ids:
        raise ValidationError("alert_ids must be a non-empty list")
    now = utcnow()
    alerts = Alert.query.filter(Alert.id.in_(alert_ids)).all()
    for alert in alerts:
        _record_read(alert, user_id, now)
    db.session.commit()
    return len(alerts)


def mark_all_read(*, user_id: int) -> int:
    now = utcnow()
    alerts = Alert.query.filter(Alert.is_read.is_(False), Alert.is_resolved.is_(False)).all()
    for alert in alerts:
        _record_read(alert, user_id, now)
    db.session.commit()
    return len(alerts)


def resolve_alert(alert_id: int, *, user_id: int, notes: str | None = None) -> Alert:
    alert = get_alert(alert_id)
    if alert.is_resolved:
        raise ValidationError("Alert is already resolved")
    alert.is_resolved = True
    alert.resolved_at = utcnow()
    alert.resolved_by_user_id = user_id
    alert.resolution_notes = (notes or "").strip() or None
    db.session.commit()
    return alert


def delete_alert(alert_id: int) -> dict:
    alert = get_alert(alert_id)
    snapshot = {"type": alert.type, "severity": alert.severity, "message": alert.message}
    db.session.delete(alert)
    db.session.commit()
    return snapshot


def alert_stats() -> dict:
    base = _not_expired(Alert.query)
    total = base.count()
    unread = base.filter(Alert.is_read.is_(False)).count()
    unresolved = base.filter(Alert.is_resolved.is_(False)).count()

    by_severity = {severity: 0 for severity in ALERT_SEVERITIES}
    for severity, count in (
        _not_expired(db.session.query(Alert.severity, func.count(Alert.id)))
        .filter(Alert.is_resolved.is_(False))
        .group_by(Alert.severity)
        .all()
    ):
        by_severity[severity] = count

    by_type = {alert_type: 0 for alert_type in ALERT_TYPES}
    for alert_type, count in (
        _not_expired(db.session.query(Alert.type, func.count(Alert.id)))
        .filter(Alert.is_resolved.is_(False))
        .group_by(Alert.type)
        .all()
    ):
        by_type[alert_type] = count

    return {
        "total": total,
        "unread": unread,
        "unresolved": unresolved,
        "by_severity": by_severity,
        "by_type": by_type,
    }


def cleanup_alerts(*, days: int = 90) -> dict:
    """Delete resolved alerts older than ``days`` plus every expired alert."""
    if days < 0:
        raise ValidationError("days cannot be negative")
    now = utcnow()
    cutoff = now - timedelta(days=days)

    stale = Alert.query.filter(
        ((Alert.is_resolved.is_(True)) & (Alert.resolved_at < cutoff))
        | ((Alert.expires_at.isnot(None)) & (Alert.expires_at <= now))
    ).all()
    for alert in stale:
        db.session.delete(alert)
    db.session.commit()

    current_app.logger.info("Alert cleanup removed %s alert(s) (older than %s days or expired)", len(stale), days)
    return {"deleted": len(stale), "days": days}


def resend_notification(alert_id: int) -> dict:
    alert = get_alert(alert_id)
    sent = notification_service.notify_admins([alert])
    return {"alert_id": alert.id, "emails_sent": sent}
