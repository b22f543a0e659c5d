# Overview: Flask API routes for alerts; parses input and returns JSON responses.

# backend/stockmaster/routes/alerts.py
"""
Alert routes.

Stock alerts are raised and auto-resolved by the reconciler; these routes
list them, record reads, resolve manually and let admins raise system alerts.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission, require_role
from ..errors import ValidationError
from ..models.alerts import ALERT_SEVERITIES, ALERT_TYPES, SEVERITY_INFO
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..permissions import ALERT, CREATE, DELETE, READ, RESOLVE, UPDATE
from ..responses import json_body, page_args, success
from ..services import alert_service
from ..time_utils import parse_iso_datetime
from ..validation import coerce_int, parse_bool_arg

alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/v1/alerts")


def _alerts(alerts):
    return success({"alerts": [a.to_dict() for a in alerts]}, results=len(alerts))


@alerts_bp.get("")
@require_auth
@require_permission(ALERT, READ)
def list_alerts_route():
    """
    Query params: type, severity, is_read, is_resolved, item_id,
    sort (created_at | updated_at | type | severity), order, page, per_page (or limit).
    """
    page, per_page = page_args()
    alerts, pagination = alert_service.list_alerts(
        alert_type=request.args.get("type"),
        severity=request.args.get("severity"),
        is_read=parse_bool_arg(request.args.get("is_read")),
        is_resolved=parse_bool_arg(request.args.get("is_resolved")),
        item_id=request.args.get("item_id", type=int),
        sort=request.args.get("sort", "created_at"),
        order=request.args.get("order", "desc"),
        page=page,
        per_page=per_page,
    )
    return success({"alerts": [a.to_dict() for a in alerts]}, pagination=pagination, results=len(alerts))


@alerts_bp.get("/unread")
@require_auth
@require_permission(ALERT, READ)
def unread_alerts_route():
    return _alerts(alert_service.unread_alerts())


@alerts_bp.get("/unresolved")
@require_auth
@require_permission(ALERT, READ)
def unresolved_alerts_route():
    return _alerts(alert_service.unresolved_alerts())


@alerts_bp.get("/critical")
@require_auth
@require_permission(ALERT, READ)
def critical_alerts_route():
    return _alerts(alert_service.critical_alerts())


@alerts_bp.get("/statistics")
@require_auth
@require_permission(ALERT, READ)
def alert_statistics_route():
    return success({"statistics": alert_service.alert_stats()})


@alerts_bp.get("/type/<alert_type>")
@require_auth
@require_permission(ALERT, READ)
def alerts_by_type_route(alert_type: str):
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ALERT_TYPES)}")
    include_resolved = parse_bool_arg(request.args.get("include_resolved")) or False
    return _alerts(alert_service.alerts_by_type(alert_type, include_resolved=include_resolved))


@alerts_bp.get("/severity/<severity>")
@require_auth
@require_permission(ALERT, READ)
def alerts_by_severity_route(severity: str):
    if severity not in ALERT_SEVERITIES:
        raise ValidationError(f"severity must be one of: {', '.join(ALERT_SEVERITIES)}")
    include_resolved = parse_bool_arg(request.args.get("include_resolved")) or False
    return _alerts(alert_service.alerts_by_severity(severity, include_resolved=include_resolved))


@alerts_bp.post("/mark-all-read")
@require_auth
@require_permission(ALERT, UPDATE)
def mark_all_read_route():
    count = alert_service.mark_all_read(user_id=g.current_user.id)
    return success({"marked": count}, message=f"{count} alert(s) marked as read")


@alerts_bp.post("/mark-multiple-read")
@require_auth
@require_permission(ALERT, UPDATE)
def mark_multiple_read_route():
    count = alert_service.mark_many_read(json_body().get("alert_ids"), user_id=g.current_user.id)
    return success({"marked": count}, message=f"{count} alert(s) marked as read")


@alerts_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(ALERT, CREATE)
def create_alert_route():
    """Body: type, message, severity, title, item_id, user_id, metadata, expires_at."""
    payload = json_body()
    expires_at = None
    if payload.get("expires_at"):
        try:
            expires_at = parse_iso_datetime(str(payload["expires_at"]))
        except ValueError:
            raise ValidationError("expires_at must be an ISO-8601 datetime")
    metadata = payload.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    alert = alert_service.create_alert(
        alert_type=payload.get("type"),
        message=payload.get("message"),
        severity=payload.get("severity") or SEVERITY_INFO,
        title=payload.get("title"),
        item_id=coerce_int(payload["item_id"], "item_id") if payload.get("item_id") is not None else None,
        user_id=coerce_int(payload["user_id"], "user_id") if payload.get("user_id") is not None else None,
        metadata=metadata,
        expires_at=expires_at,
    )
    return success({"alert": alert.to_dict()}, 201, message="Alert created successfully")


@alerts_bp.post("/cleanup")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(ALERT, DELETE)
def cleanup_alerts_route():
    days = request.args.get("days", 90, type=int)
    result = alert_service.cleanup_alerts(days=days)
    return success(result, message=f"{result['deleted']} alert(s) removed")


@alerts_bp.get("/<int:alert_id>")
@require_auth
@require_permission(ALERT, READ)
def get_alert_route(alert_id: int):
    return success({"alert": alert_service.get_alert(alert_id).to_dict()})


@alerts_bp.post("/<int:alert_id>/read")
@require_auth
@require_permission(ALERT, UPDATE)
def mark_read_route(alert_id: int):
    alert = alert_service.mark_read(alert_id, user_id=g.current_user.id)
    return success({"alert": alert.to_dict()}, message="Alert marked as read")


@alerts_bp.post("/<int:alert_id>/resolve")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(ALERT, RESOLVE)
def resolve_alert_route(alert_id: int):
    alert = alert_service.resolve_alert(alert_id, user_id=g.current_user.id, notes=json_body().get("notes"))
    return success({"alert": alert.to_dict()}, message="Alert resolved successfully")


@alerts_bp.post("/<int:alert_id>/notify")
@require_auth
@require_role(ROLE_ADMIN)
def resend_notification_route(alert_id: int):
    result = alert_service.resend_notification(alert_id)
    return success(result, message="Notification sent")


@alerts_bp.delete("/<int:alert_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(ALERT, DELETE)
def delete_alert_route(alert_id: int):
    alert_service.delete_alert(alert_id)
    return success(message="Alert deleted successfully")
