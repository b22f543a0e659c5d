# Overview: Flask API routes for sales, cancellations and sales reporting; returns JSON responses.

# backend/stockmaster/routes/sales.py
"""
Sale routes.

SECURITY: All routes require authentication.
- Recording a sale: admin, staff (sale:create)
- Cancelling a sale: admin only (sale:cancel)
- Payment updates: sale:update
- Everything else is read-only (sale:read)

Amounts are integer cents; percentage discounts and taxes are sent as
percent values and stored as basis points.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission, require_role
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..permissions import CANCEL, CREATE, READ, SALE, UPDATE
from ..responses import client_ip, date_arg, json_body, page_args, success, user_agent
from ..services import sale_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/v1/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(SALE, CREATE)
def create_sale_route():
    """
    Body:
    - items: [{"item_id": 1, "quantity": 2, "unit_price_cents": 10000?}, ...]
    - payment_method: cash | card | transfer | pos | other
    - amount_paid: cents (defaults to 0)
    - discount / tax: {"type": "percentage" | "fixed", "value": ...}
    - customer: {"name", "phone", "email", "address"}
    - notes
    """
    payload = json_body()
    sale = sale_service.create_sale(
        lines=payload.get("items"),
        actor=g.current_user,
        payment_method=payload.get("payment_method") or "cash",
        amount_paid=payload.get("amount_paid"),
        discount=payload.get("discount"),
        tax=payload.get("tax"),
        customer=payload.get("customer"),
        notes=payload.get("notes"),
        ip_address=client_ip(),
        user_agent=user_agent(),
    )
    return success({"sale": sale.to_dict()}, 201, message="Sale created successfully")


@sales_bp.get("")
@require_auth
@require_permission(SALE, READ)
def list_sales_route():
    """
    Query params: status, payment_status, payment_method, sold_by,
    start_date, end_date, search, page, per_page (or limit).
    """
    page, per_page = page_args()
    sales, pagination = sale_service.list_sales(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        payment_method=request.args.get("payment_method"),
        sold_by_user_id=request.args.get("sold_by", type=int),
        start=date_arg("start_date"),
        end=date_arg("end_date", inclusive_end=True),
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    )
    return success({"sales": [s.to_dict() for s in sales]}, pagination=pagination, results=len(sales))


@sales_bp.get("/statistics")
@require_auth
@require_permission(SALE, READ)
def sales_statistics_route():
    """period: today | yesterday | week | month | quarter | year, or start_date + end_date."""
    period = request.args.get("period", "today")
    start, end = sale_service.resolve_period(
        period, date_arg("start_date"), date_arg("end_date", inclusive_end=True)
    )
    stats = sale_service.sales_statistics(start, end)
    return success({"period": period, "statistics": stats})


@sales_bp.get("/top-selling")
@require_auth
@require_permission(SALE, READ)
def top_selling_route():
    items = sale_service.top_selling_items(
        limit=request.args.get("limit", 10, type=int),
        start=date_arg("start_date"),
        end=date_arg("end_date", inclusive_end=True),
    )
    return success({"items": items}, results=len(items))


@sales_bp.get("/reports/daily")
@require_auth
@require_permission(SALE, READ)
def daily_report_route():
    days = max(1, min(request.args.get("days", 30, type=int), 366))
    report = sale_service.daily_report(days=days)
    return success({"report": report}, results=len(report))


@sales_bp.get("/reports/monthly")
@require_auth
@require_permission(SALE, READ)
def monthly_report_route():
    months = max(1, min(request.args.get("months", 12, type=int), 60))
    report = sale_service.monthly_report(months=months)
    return success({"report": report}, results=len(report))


@sales_bp.get("/payment-methods")
@require_auth
@require_permission(SALE, READ)
def payment_methods_route():
    methods = sale_service.sales_by_payment_method(
        start=date_arg("start_date"), end=date_arg("end_date", inclusive_end=True)
    )
    return success({"payment_methods": methods})


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(SALE, READ)
def get_sale_route(sale_id: int):
    return success({"sale": sale_service.get_sale(sale_id).to_dict()})


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(SALE, CANCEL)
def cancel_sale_route(sale_id: int):
    sale = sale_service.cancel_sale(sale_id, actor=g.current_user, reason=json_body().get("reason"))
    return success({"sale": sale.to_dict()}, message="Sale cancelled successfully")


@sales_bp.patch("/<int:sale_id>/payment")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(SALE, UPDATE)
def update_payment_route(sale_id: int):
    sale = sale_service.update_payment(sale_id, amount_paid=json_body().get("amount_paid"), actor=g.current_user)
    return success({"sale": sale.to_dict()}, message="Payment updated successfully")
