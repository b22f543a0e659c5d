# Overview: Flask API routes for user administration and self-service profile; returns JSON responses.

# backend/stockmaster/routes/users.py
"""
User routes.

SECURITY:
- /profile, /deactivate and /activity/me act on the caller only
- every other route is admin-only and additionally checked against the
  role matrix
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission, require_role
from ..errors import ValidationError
from ..models.auth import ROLE_ADMIN, USER_ROLES
from ..permissions import CREATE, DELETE, READ, UPDATE, USER
from ..responses import json_body, page_args, success
from ..services import auth_service, user_service
from ..validation import coerce_bool, parse_bool_arg

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, READ)
def list_users_route():
    """
    Query params: role, is_active, search, page, per_page (or limit).
    """
    page, per_page = page_args()
    users, pagination = user_service.list_users(
        role=request.args.get("role"),
        is_active=parse_bool_arg(request.args.get("is_active")),
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    )
    return success({"users": [u.to_dict() for u in users]}, pagination=pagination, results=len(users))


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, CREATE)
def create_user_route():
    """Admin-created account; no tokens are issued to the caller."""
    user = user_service.create_user(payload=json_body(), actor=g.current_user)
    return success({"user": user.to_dict()}, 201)


@users_bp.get("/statistics")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, READ)
def user_statistics_route():
    return success({"statistics": user_service.user_stats()})


@users_bp.get("/role/<role>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, READ)
def users_by_role_route(role: str):
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    page, per_page = page_args()
    users, pagination = user_service.list_users(role=role, page=page, per_page=per_page)
    return success({"users": [u.to_dict() for u in users]}, pagination=pagination, results=len(users))


@users_bp.patch("/profile")
@require_auth
def update_profile_route():
    user = user_service.update_profile(g.current_user, patch=json_body())
    return success({"user": user.to_dict()}, message="Profile updated successfully")


@users_bp.post("/deactivate")
@require_auth
def deactivate_self_route():
    user_service.deactivate_self(g.current_user)
    return success(message="Account deactivated successfully")


@users_bp.get("/activity/me")
@require_auth
def my_activity_route():
    limit = request.args.get("limit", 50, type=int)
    entries = user_service.user_activity(g.current_user.id, limit=limit)
    return success({"activities": [e.to_dict() for e in entries]}, results=len(entries))


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, READ)
def get_user_route(user_id: int):
    return success({"user": auth_service.get_user_or_404(user_id).to_dict()})


@users_bp.get("/<int:user_id>/activity")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, READ)
def user_activity_route(user_id: int):
    auth_service.get_user_or_404(user_id)
    limit = request.args.get("limit", 50, type=int)
    entries = user_service.user_activity(user_id, limit=limit)
    return success({"activities": [e.to_dict() for e in entries]}, results=len(entries))


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, UPDATE)
def update_user_route(user_id: int):
    payload = json_body()
    if "is_active" in payload:
        payload["is_active"] = coerce_bool(payload["is_active"], "is_active")
    if "is_email_verified" in payload:
        payload["is_email_verified"] = coerce_bool(payload["is_email_verified"], "is_email_verified")
    user = user_service.update_user(user_id, patch=payload, actor=g.current_user)
    return success({"user": user.to_dict()}, message="User updated successfully")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, DELETE)
def delete_user_route(user_id: int):
    user_service.delete_user(user_id, actor=g.current_user)
    return success(message="User deleted successfully")


@users_bp.patch("/<int:user_id>/role")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, UPDATE)
def change_role_route(user_id: int):
    user = user_service.change_role(user_id, role=json_body().get("role"), actor=g.current_user)
    return success({"user": user.to_dict()}, message="User role updated successfully")


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, UPDATE)
def deactivate_user_route(user_id: int):
    user = user_service.set_active(user_id, active=False, actor=g.current_user)
    return success({"user": user.to_dict()}, message="User deactivated successfully")


@users_bp.post("/<int:user_id>/reactivate")
@require_auth
@require_role(ROLE_ADMIN)
@require_permission(USER, UPDATE)
def reactivate_user_route(user_id: int):
    user = user_service.set_active(user_id, active=True, actor=g.current_user)
    return success({"user": user.to_dict()}, message="User reactivated successfully")
