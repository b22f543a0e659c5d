# Overview: Flask API routes for items and restocking; parses input and returns JSON responses.

# backend/stockmaster/routes/items.py
"""
Item routes.

SECURITY: All routes require authentication.
- Read operations require item:read
- Create/update require item:create / item:update (admin, staff)
- Restock requires item:restock
- Delete (soft) is admin-only

stock_status is never writable; it is derived from stock_quantity and
low_stock_threshold on every save. stock_quantity can be set on create only
and afterwards moves through restock and sales.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission, require_role
from ..models import Item
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..permissions import CREATE, DELETE, ITEM, READ, RESTOCK, UPDATE
from ..responses import json_body, page_args, success
from ..services import item_service
from ..validation import (
    ModelValidationPolicy,
    coerce_price_cents,
    enforce_rules_item,
    enforce_rules_restock,
    parse_bool_arg,
    validate_payload,
)

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "barcode", "category_id", "stock_quantity",
        "low_stock_threshold", "cost_price_cents", "selling_price_cents", "unit",
        "tags", "is_active", "is_featured",
    },
    required_on_create={"name", "category_id", "cost_price_cents", "selling_price_cents"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(item_service.UPDATABLE_FIELDS),
)

items_bp = Blueprint("items", __name__, url_prefix="/api/v1/items")


def _price_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return coerce_price_cents(raw, name)


@items_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(ITEM, CREATE)
def create_item_route():
    patch = validate_payload(model=Item, payload=json_body(), policy=ITEM_CREATE_POLICY, partial=False)
    enforce_rules_item(patch)
    item = item_service.create_item(patch=patch, actor=g.current_user)
    return success({"item": item.to_dict()}, 201, message="Item created successfully")


@items_bp.get("")
@require_auth
@require_permission(ITEM, READ)
def list_items_route():
    """
    List items.

    Query params:
    - search: matches name, sku or barcode
    - category_id, stock_status, min_price, max_price (cents)
    - is_active: defaults to active items only
    - sort: name | sku | created_at | selling_price_cents | stock_quantity | total_sold
    - order: asc | desc
    - page, per_page (or limit)
    """
    page, per_page = page_args()
    is_active = parse_bool_arg(request.args.get("is_active"))
    items, pagination = item_service.list_items(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        stock_status=request.args.get("stock_status"),
        min_price_cents=_price_arg("min_price"),
        max_price_cents=_price_arg("max_price"),
        is_active=True if is_active is None else is_active,
        sort=request.args.get("sort", "created_at"),
        order=request.args.get("order", "desc"),
        page=page,
        per_page=per_page,
    )
    return success({"items": [i.to_dict() for i in items]}, pagination=pagination, results=len(items))


@items_bp.get("/search")
@require_auth
@require_permission(ITEM, READ)
def search_items_route():
    items = item_service.search_items(request.args.get("q", ""), limit=request.args.get("limit", 10, type=int))
    return success({"items": [i.to_dict() for i in items]}, results=len(items))


@items_bp.get("/low-stock")
@require_auth
@require_permission(ITEM, READ)
def low_stock_route():
    items = item_service.low_stock_items()
    return success({"items": [i.to_dict() for i in items]}, results=len(items))


@items_bp.get("/statistics")
@require_auth
@require_permission(ITEM, READ)
def item_statistics_route():
    return success({"statistics": item_service.inventory_stats()})


@items_bp.get("/<int:item_id>")
@require_auth
@require_permission(ITEM, READ)
def get_item_route(item_id: int):
    item = item_service.view_item(item_id)
    return success({"item": item.to_dict(include_restocks=True)})


@items_bp.patch("/<int:item_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(ITEM, UPDATE)
def update_item_route(item_id: int):
    patch = validate_payload(model=Item, payload=json_body(), policy=ITEM_UPDATE_POLICY, partial=True)
    enforce_rules_item(patch)
    item = item_service.update_item(item_id, patch=patch, actor=g.current_user)
    return success({"item": item.to_dict()}, message="Item updated successfully")


@items_bp.delete("/<int:item_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(ITEM, DELETE)
def delete_item_route(item_id: int):
    item_service.delete_item(item_id, actor=g.current_user)
    return success(message="Item deleted successfully")


@items_bp.post("/<int:item_id>/restock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(ITEM, RESTOCK)
def restock_item_route(item_id: int):
    """
    Body: quantity (required, > 0), cost_price_cents, supplier, reference, notes.
    """
    payload = json_body()
    quantity, cost = enforce_rules_restock(payload.get("quantity"), payload.get("cost_price_cents"))
    item = item_service.restock_item(
        item_id,
        quantity=quantity,
        actor=g.current_user,
        cost_price_cents=cost,
        supplier=(payload.get("supplier") or "").strip()[:255] or None,
        reference=(payload.get("reference") or "").strip()[:128] or None,
        notes=(payload.get("notes") or "").strip()[:500] or None,
    )
    return success({"item": item.to_dict(include_restocks=True)}, message="Item restocked successfully")
