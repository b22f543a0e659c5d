# Overview: Flask API routes for categories; parses input and returns JSON responses.

# backend/stockmaster/routes/categories.py
"""
Category routes.

SECURITY: All routes require authentication.
- Read operations require category:read
- Create is open to admin and staff
- Update, reorder and delete are admin-only
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission, require_role
from ..models import Category
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..permissions import CATEGORY, CREATE, DELETE, READ, UPDATE
from ..responses import json_body, page_args, success
from ..services import category_service
from ..validation import ModelValidationPolicy, parse_bool_arg, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "parent_id", "is_active", "display_order"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/v1/categories")


@categories_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
@require_permission(CATEGORY, CREATE)
def create_category_route():
    patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
    category = category_service.create_category(patch=patch, actor=g.current_user)
    return success({"category": category_service.serialize(category)}, 201, message="Category created successfully")


@categories_bp.get("")
@require_auth
@require_permission(CATEGORY, READ)
def list_categories_route():
    """
    Query params:
    - is_active: true | false (omit for all)
    - include_subcategories: true to nest each category's children
    """
    categories = category_service.list_categories(is_active=parse_bool_arg(request.args.get("is_active")))
    with_subs = parse_bool_arg(request.args.get("include_subcategories")) or False
    data = [category_service.serialize(c, with_metrics=True, with_subcategories=with_subs) for c in categories]
    return success({"categories": data}, results=len(data))


@categories_bp.get("/statistics")
@require_auth
@require_permission(CATEGORY, READ)
def category_statistics_route():
    return success({"statistics": category_service.category_stats()})


@categories_bp.post("/reorder")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(CATEGORY, UPDATE)
def reorder_categories_route():
    """Body: {"categories": [id, id, ...]} in the desired display order."""
    updated = category_service.reorder_categories(json_body().get("categories"), actor=g.current_user)
    return success({"updated": updated}, message="Categories reordered successfully")


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission(CATEGORY, READ)
def get_category_route(category_id: int):
    category = category_service.get_category(category_id)
    return success({"category": category_service.serialize(category, with_metrics=True, with_subcategories=True)})


@categories_bp.get("/<int:category_id>/items")
@require_auth
@require_permission(CATEGORY, READ)
def category_items_route(category_id: int):
    page, per_page = page_args()
    category, items, pagination = category_service.category_items(category_id, page=page, per_page=per_page)
    return success(
        {"category": category.to_dict(), "items": [i.to_dict() for i in items]},
        pagination=pagination,
        results=len(items),
    )


@categories_bp.patch("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(CATEGORY, UPDATE)
def update_category_route(category_id: int):
    patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=True)
    category = category_service.update_category(category_id, patch=patch, actor=g.current_user)
    return success({"category": category_service.serialize(category)}, message="Category updated successfully")


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(CATEGORY, DELETE)
def delete_category_route(category_id: int):
    category_service.delete_category(category_id, actor=g.current_user)
    return success(message="Category deleted successfully")
