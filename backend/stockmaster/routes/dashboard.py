# Overview: Flask API routes for dashboard aggregates; returns JSON responses.

# backend/stockmaster/routes/dashboard.py

from flask import Blueprint, request

from ..decorators import require_auth, require_permission, require_role
from ..models.auth import ROLE_ADMIN
from ..permissions import AUDIT, DASHBOARD, READ
from ..responses import date_arg, page_args, success
from ..services import audit_service, dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.get("/overview")
@require_auth
@require_permission(DASHBOARD, READ)
def overview_route():
    return success(dashboard_service.overview())


@dashboard_bp.get("/analytics/sales")
@require_auth
@require_permission(DASHBOARD, READ)
def sales_analytics_route():
    """period: week | month | quarter | year (default month)."""
    return success(dashboard_service.sales_analytics(request.args.get("period", "month")))


@dashboard_bp.get("/analytics/inventory")
@require_auth
@require_permission(DASHBOARD, READ)
def inventory_analytics_route():
    return success(dashboard_service.inventory_analytics())


@dashboard_bp.get("/activity")
@require_auth
@require_permission(AUDIT, READ)
def activity_route():
    entries = dashboard_service.recent_activity(limit=request.args.get("limit", 20, type=int))
    return success({"activities": [e.to_dict() for e in entries]}, results=len(entries))


@dashboard_bp.get("/executive-summary")
@require_auth
@require_role(ROLE_ADMIN)
def executive_summary_route():
    return success(dashboard_service.executive_summary())


@dashboard_bp.get("/audit-logs")
@require_auth
@require_permission(AUDIT, READ)
def audit_logs_route():
    """Query params: actor_id, resource, resource_id, action, start_date, end_date, page, per_page (or limit)."""
    page, per_page = page_args()
    entries, pagination = audit_service.list_logs(
        actor_user_id=request.args.get("actor_id", type=int),
        resource=request.args.get("resource"),
        resource_id=request.args.get("resource_id", type=int),
        action=request.args.get("action"),
        start=date_arg("start_date"),
        end=date_arg("end_date", inclusive_end=True),
        page=page,
        per_page=per_page,
    )
    return success({"audit_logs": [e.to_dict() for e in entries]}, pagination=pagination, results=len(entries))
