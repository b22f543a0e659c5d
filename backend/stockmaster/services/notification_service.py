# Overview: Outbound email for stock alerts and account flows (Flask-Mail).

from __future__ import annotations

from flask import current_app
from flask_mail import Message
from markupsafe import escape

from ..extensions import db, mail
from ..models import Alert, User
from ..models.alerts import ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK
from ..models.auth import ROLE_ADMIN


def _send(*, to: str, subject: str, html: str) -> None:
    message = Message(subject=subject, recipients=[to], html=html)
    mail.send(message)


def low_stock_email(item_name: str, current_stock: int, threshold: int) -> tuple[str, str]:
    subject = f"Low Stock Alert: {item_name}"
    html = (
        "<h2>Low Stock Alert</h2>"
        f"<p><strong>{escape(item_name)}</strong> is running low.</p>"
        f"<p>Current stock: <strong>{current_stock}</strong><br>"
        f"Low stock threshold: {threshold}</p>"
        "<p>Please restock this item soon to avoid running out.</p>"
    )
    return subject, html


def out_of_stock_email(item_name: str, sku: str) -> tuple[str, str]:
    subject = f"OUT OF STOCK: {item_name}"
    html = (
        "<h2>Out of Stock</h2>"
        f"<p><strong>{escape(item_name)}</strong> (SKU {escape(sku)}) is out of stock.</p>"
        "<p>Sales of this item will be rejected until it is restocked.</p>"
    )
    return subject, html


def generic_alert_email(alert: Alert) -> tuple[str, str]:
    subject = f"{alert.title}"
    html = (
        f"<h2>{escape(alert.title)}</h2><p>{escape(alert.message)}</p>"
        f"<p>Severity: {escape(alert.severity)}</p>"
    )
    return subject, html


def _render(alert: Alert) -> tuple[str, str]:
    details = alert.details or {}
    item = alert.item
    if alert.type == ALERT_OUT_OF_STOCK and item is not None:
        return out_of_stock_email(item.name, details.get("sku", item.sku))
    if alert.type == ALERT_LOW_STOCK and item is not None:
        return low_stock_email(
            item.name,
            details.get("current_stock", item.stock_quantity),
            details.get("threshold", item.low_stock_threshold),
        )
    return generic_alert_email(alert)


def active_admins() -> list[User]:
    return User.query.filter(User.role == ROLE_ADMIN, User.is_active.is_(True)).order_by(User.id).all()


def notify_admins(alerts: list[Alert]) -> int:
    """
    Email every active admin about each alert.

    Best-effort: one failed send is logged and the rest continue. Nothing
    is retried. alert.email_notified is set once at least one email for it
    went out. Returns the number of emails sent.
    """
    if not alerts:
        return 0

    admins = active_admins()
    if not admins:
        current_app.logger.warning("No active admin users found to send stock alerts")
        return 0

    sent_total = 0
    for alert in alerts:
        try:
            subject, html = _render(alert)
        except Exception:
            current_app.logger.exception("Could not render notification for alert %s", alert.id)
            continue

        sent = 0
        for admin in admins:
            try:
                _send(to=admin.email, subject=subject, html=html)
                sent += 1
            except Exception:
                current_app.logger.exception("Failed to send alert %s email to %s", alert.id, admin.email)

        if sent:
            alert.email_notified = True
            sent_total += sent
            current_app.logger.info("Alert %s emailed to %s admin(s)", alert.id, sent)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Could not record email_notified flags")

    return sent_total


def send_password_reset_otp(user: User, otp: str, *, expires_minutes: int) -> bool:
    subject = "Password Reset OTP - StockMaster"
    html = (
        f"<p>Hello {escape(user.first_name)},</p>"
        "<p>Use the code below to reset your StockMaster password:</p>"
        f"<h1 style=\"letter-spacing: 6px\">{otp}</h1>"
        f"<p>The code expires in {expires_minutes} minutes. "
        "If you did not request a reset you can ignore this email.</p>"
    )
    try:
        _send(to=user.email, subject=subject, html=html)
        return True
    except Exception:
        current_app.logger.exception("Failed to send password reset email to %s", user.email)
        return False


def send_welcome_email(user: User) -> bool:
    subject = "Welcome to StockMaster"
    html = (
        f"<p>Hello {escape(user.first_name)},</p>"
        "<p>Your StockMaster account is ready. You can now sign in and start managing inventory.</p>"
    )
    try:
        _send(to=user.email, subject=subject, html=html)
        return True
    except Exception:
        current_app.logger.exception("Failed to send welcome email to %s", user.email)
        return False
