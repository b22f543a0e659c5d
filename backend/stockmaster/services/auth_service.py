# Overview: Registration, login with lockout, token refresh, logout, password change and OTP reset.

"""
Authentication service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, 12 in production)
- Minimum 8 characters with upper, lower, digit and special character
- MAX_FAILED_LOGINS wrong passwords lock the account for ACCOUNT_LOCK_MINUTES
- Unknown email and wrong password produce the same 401 message
- Password reset OTPs are 6 digits, stored as SHA-256, valid for
  PASSWORD_RESET_OTP_MINUTES
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app

from ..errors import AppError, AuthenticationError, ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_STAFF, USER_ROLES
from ..time_utils import utcnow
from . import audit_service, notification_service, token_service
from .token_service import TokenPair

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-+=?/\\\[\]~`;]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("Please provide a valid email")
    return email.strip().lower()


def find_by_email(email: str) -> User | None:
    return User.query.filter(User.email == email.strip().lower()).first()


def create_user(
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: str = ROLE_STAFF,
    phone: str | None = None,
    created_by: User | None = None,
) -> User:
    """Create and flush a user. Caller commits."""
    email = normalize_email(email)
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("first_name and last_name are required")
    if len(first_name) > 50 or len(last_name) > 50:
        raise ValidationError("Names cannot exceed 50 characters")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    if find_by_email(email) is not None:
        raise ConflictError("Email already registered")

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        phone=(phone or "").strip() or None,
        created_by_user_id=created_by.id if created_by is not None else None,
    )
    db.session.add(user)
    db.session.flush()
    return user


def register(
    *,
    payload: dict,
    actor: User | None = None,
    device: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, TokenPair]:
    """
    Self-service sign-up creates a staff account. Only an authenticated
    admin may choose another role.
    """
    role = payload.get("role") or ROLE_STAFF
    if role != ROLE_STAFF and (actor is None or actor.role != "admin"):
        raise PermissionDeniedError("Only administrators can assign roles")

    user = create_user(
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        email=payload.get("email"),
        password=payload.get("password"),
        role=role,
        phone=payload.get("phone"),
        created_by=actor,
    )
    tokens = token_service.issue_token_pair(user, device=device, ip_address=ip_address)
    audit_service.log_action(
        action="user.create",
        resource="user",
        resource_id=user.id,
        actor=actor or user,
        description=f"User registered: {user.email}",
    )
    db.session.commit()
    notification_service.send_welcome_email(user)
    return user, tokens


def _register_failure(user: User) -> None:
    """Count a wrong password; the MAX_FAILED_LOGINS-th one locks the account."""
    now = utcnow()
    if user.locked_until and user.locked_until <= now:
        user.failed_login_attempts = 0
        user.locked_until = None
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= current_app.config.get("MAX_FAILED_LOGINS", 5):
        user.locked_until = now + timedelta(minutes=current_app.config.get("ACCOUNT_LOCK_MINUTES", 120))


def login(*, email, password, device: str | None = None, ip_address: str | None = None) -> tuple[User, TokenPair]:
    if not email or not password:
        raise ValidationError("Please provide email and password")

    user = find_by_email(str(email))
    if user is None:
        raise AuthenticationError("Invalid email or password")

    if user.is_locked:
        audit_service.log_action(
            action="security.login.failed",
            resource="user",
            resource_id=user.id,
            actor=user,
            description="Login attempt on locked account",
            severity="high",
            status="failed",
            metadata={"reason": "account_locked"},
            commit=True,
        )
        raise PermissionDeniedError("Account is locked. Please contact support.")

    if not user.is_active:
        raise PermissionDeniedError("Account is deactivated. Please contact support.")

    if not verify_password(str(password), user.password_hash):
        _register_failure(user)
        audit_service.log_action(
            action="security.login.failed",
            resource="user",
            resource_id=user.id,
            actor=user,
            description="Failed login attempt - invalid password",
            severity="medium",
            status="failed",
            metadata={"reason": "invalid_password", "failed_attempts": user.failed_login_attempts},
        )
        db.session.commit()
        current_app.logger.warning("Failed login for user %s (%s attempts)", user.id, user.failed_login_attempts)
        raise AuthenticationError("Invalid email or password")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = utcnow()
    token_service.prune_expired(user.id)
    tokens = token_service.issue_token_pair(user, device=device, ip_address=ip_address)
    audit_service.log_action(
        action="user.login",
        resource="user",
        resource_id=user.id,
        actor=user,
        description=f"User {user.email} logged in successfully",
    )
    db.session.commit()
    return user, tokens


def refresh_access_token(refresh_token: str) -> tuple[str, int]:
    if not refresh_token:
        raise ValidationError("Refresh token is required")
    user, _record = token_service.verify_refresh_token(refresh_token)
    access_token, expires_at = token_service.generate_access_token(user)
    return access_token, int((expires_at - utcnow()).total_seconds())


def logout(user: User, refresh_token: str | None) -> None:
    if refresh_token:
        token_service.revoke_refresh_token(refresh_token, user_id=user.id)
    audit_service.log_action(
        action="user.logout",
        resource="user",
        resource_id=user.id,
        actor=user,
        description=f"User {user.email} logged out",
    )
    db.session.commit()


def logout_all(user: User) -> int:
    revoked = token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.logout_all",
        resource="user",
        resource_id=user.id,
        actor=user,
        description=f"User {user.email} logged out from all devices",
        metadata={"sessions_revoked": revoked},
    )
    db.session.commit()
    return revoked


def change_password(user: User, *, current_password, new_password) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current and new passwords are required")
    if not verify_password(str(current_password), user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    user.password_hash = hash_password(str(new_password))
    token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.password_change",
        resource="user",
        resource_id=user.id,
        actor=user,
        description="Password changed",
        severity="medium",
    )
    db.session.commit()


# ---------------------------------------------------------------------------
# OTP password reset
# ---------------------------------------------------------------------------

def _hash_otp(otp: str) -> str:
    return hashlib.sha256(otp.encode("utf-8")).hexdigest()


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def request_password_reset(email) -> None:
    """
    Email a reset OTP when the address belongs to an active account.
    Unknown addresses are silently ignored so callers cannot probe accounts.
    """
    if not email:
        raise ValidationError("Email is required")
    user = find_by_email(str(email))
    if user is None or not user.is_active:
        return

    minutes = current_app.config.get("PASSWORD_RESET_OTP_MINUTES", 10)
    otp = generate_otp()
    user.password_reset_otp_hash = _hash_otp(otp)
    user.password_reset_otp_expires_at = utcnow() + timedelta(minutes=minutes)
    db.session.commit()

    if not notification_service.send_password_reset_otp(user, otp, expires_minutes=minutes):
        user.password_reset_otp_hash = None
        user.password_reset_otp_expires_at = None
        db.session.commit()
        raise AppError("Failed to send password reset email", status_code=500)


def _check_otp(email, otp) -> User:
    if not email or not otp:
        raise ValidationError("Email and OTP are required")
    user = find_by_email(str(email))
    if user is None or not user.password_reset_otp_hash:
        raise ValidationError("Invalid OTP")
    if user.password_reset_otp_expires_at is None or user.password_reset_otp_expires_at < utcnow():
        raise ValidationError("Invalid or expired OTP")
    if not hmac.compare_digest(user.password_reset_otp_hash, _hash_otp(str(otp).strip())):
        raise ValidationError("Invalid or expired OTP")
    return user


def verify_reset_otp(email, otp) -> bool:
    _check_otp(email, otp)
    return True


def reset_password(email, otp, new_password) -> User:
    if not new_password:
        raise ValidationError("Email, OTP, and new password are required")
    user = _check_otp(email, otp)
    user.password_hash = hash_password(str(new_password))
    user.password_reset_otp_hash = None
    user.password_reset_otp_expires_at = None
    user.failed_login_attempts = 0
    user.locked_until = None
    token_service.revoke_all_for_user(user.id)
    audit_service.log_action(
        action="user.password_reset",
        resource="user",
        resource_id=user.id,
        actor=user,
        description="Password reset via OTP",
        severity="medium",
    )
    db.session.commit()
    return user


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
