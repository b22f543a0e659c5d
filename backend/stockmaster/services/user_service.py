# Overview: User administration and self-service profile operations.

from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import AuditLog, Sale, User
from ..models.auth import ROLE_STAFF, USER_ROLES
from . import audit_service, auth_service, token_service
from .auth_service import get_user_or_404, normalize_email
from .pagination import paginate

ADMIN_EDITABLE = {"first_name", "last_name", "email", "phone", "role", "is_active", "is_email_verified"}
PROFILE_EDITABLE = {"first_name", "last_name", "phone"}


def _snapshot(user: User) -> dict:
    return {
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "is_active": user.is_active,
    }


def _apply(user: User, patch: dict, allowed: set[str]) -> None:
    for key, value in patch.items():
        if key not in allowed:
            continue
        if key in {"first_name", "last_name"}:
            value = (value or "").strip()
            if not value:
                raise ValidationError(f"{key} cannot be blank")
            if len(value) > 50:
                raise ValidationError(f"{key} exceeds max length 50")
        elif key == "email":
            value = normalize_email(value)
            if value != user.email and User.query.filter(User.email == value, User.id != user.id).first():
                raise ConflictError("Email already exists")
        elif key == "role":
            if value not in USER_ROLES:
                raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
        elif key == "phone":
            value = (value or "").strip() or None
        setattr(user, key, value)


def list_users(
    *,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
):
    query = User.query
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
        )
    query = query.order_by(User.created_at.desc(), User.id.desc())
    return paginate(query, page, per_page)


def create_user(*, payload: dict, actor: User) -> User:
    """Admin-created account. No tokens are issued."""
    user = auth_service.create_user(
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        email=payload.get("email"),
        password=payload.get("password"),
        role=payload.get("role") or ROLE_STAFF,
        phone=payload.get("phone"),
        created_by=actor,
    )
    audit_service.log_action(
        action="user.create",
        resource="user",
        resource_id=user.id,
        actor=actor,
        description=f"Created user: {user.email}",
    )
    db.session.commit()
    return user


def update_user(user_id: int, *, patch: dict, actor: User) -> User:
    user = get_user_or_404(user_id)
    before = _snapshot(user)
    _apply(user, patch, ADMIN_EDITABLE)
    user.updated_by_user_id = actor.id
    if before["is_active"] and not user.is_active:
        token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.update",
        resource="user",
        resource_id=user.id,
        actor=actor,
        description=f"Updated user: {user.email}",
        changes={"before": before, "after": _snapshot(user)},
    )
    db.session.commit()
    return user


def update_profile(user: User, *, patch: dict) -> User:
    before = _snapshot(user)
    _apply(user, patch, PROFILE_EDITABLE)
    user.updated_by_user_id = user.id
    audit_service.log_action(
        action="user.update",
        resource="user",
        resource_id=user.id,
        actor=user,
        description="Updated user profile",
        changes={"before": before, "after": _snapshot(user)},
    )
    db.session.commit()
    return user


def change_role(user_id: int, *, role, actor: User) -> User:
    if not role:
        raise ValidationError("Role is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    user = get_user_or_404(user_id)
    old_role = user.role
    user.role = role
    user.updated_by_user_id = actor.id
    audit_service.log_action(
        action="user.role_change",
        resource="user",
        resource_id=user.id,
        actor=actor,
        description=f"Changed role of {user.email} from {old_role} to {role}",
        severity="high",
        changes={"before": {"role": old_role}, "after": {"role": role}},
    )
    db.session.commit()
    return user


def set_active(user_id: int, *, active: bool, actor: User) -> User:
    user = get_user_or_404(user_id)
    if not active and user.id == actor.id:
        raise ValidationError("Use the account deactivation endpoint to deactivate yourself")
    user.is_active = active
    user.updated_by_user_id = actor.id
    if not active:
        token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.update",
        resource="user",
        resource_id=user.id,
        actor=actor,
        description=f"{'Reactivated' if active else 'Deactivated'} user account: {user.email}",
        severity="low" if active else "medium",
    )
    db.session.commit()
    return user


def deactivate_self(user: User) -> None:
    user.is_active = False
    token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.delete",
        resource="user",
        resource_id=user.id,
        actor=user,
        description="User deactivated their account",
        severity="medium",
    )
    db.session.commit()


def delete_user(user_id: int, *, actor: User) -> None:
    if user_id == actor.id:
        raise ValidationError("You cannot delete your own account")
    user = get_user_or_404(user_id)
    if db.session.query(Sale.id).filter(Sale.sold_by_user_id == user.id).first() is not None:
        raise ConflictError("User has recorded sales; deactivate the account instead")
    audit_service.log_action(
        action="user.delete",
        resource="user",
        resource_id=user.id,
        actor=actor,
        description=f"Deleted user: {user.email}",
        severity="high",
        metadata={"email": user.email, "role": user.role},
    )
    db.session.delete(user)
    db.session.commit()


def user_stats() -> dict:
    by_role = {role: 0 for role in USER_ROLES}
    for role, count in db.session.query(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = count
    total = User.query.count()
    active = User.query.filter(User.is_active.is_(True)).count()
    return {
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "by_role": by_role,
    }


def user_activity(user_id: int, *, limit: int = 50) -> list[AuditLog]:
    limit = max(1, min(limit, 200))
    return (
        AuditLog.query.filter(AuditLog.actor_user_id == user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
