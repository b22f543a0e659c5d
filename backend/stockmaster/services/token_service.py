# Overview: Signed access/refresh token pair (PyJWT) and server-side refresh token records.

"""
Token model

- Access token: short lived, verified by signature only (no DB lookup).
- Refresh token: long lived, carries a jti and is also stored server-side as a
  SHA-256 hash. It is accepted only while its row exists, is unrevoked and
  unexpired, so logout / password change can cut it off.
- Access and refresh tokens are signed with different secrets and carry a
  "type" claim; one can never be used in place of the other.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from ..errors import AuthenticationError
from ..extensions import db
from ..models import RefreshToken, User
from ..time_utils import utcnow

ACCESS = "access"
REFRESH = "refresh"
ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": int((self.access_expires_at - utcnow()).total_seconds()),
        }


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _secret(kind: str) -> str:
    key = "JWT_ACCESS_SECRET" if kind == ACCESS else "JWT_REFRESH_SECRET"
    return current_app.config[key]


def _encode(claims: dict, kind: str, issued_at: datetime, expires_at: datetime) -> str:
    payload = dict(claims)
    payload.update(
        {
            "type": kind,
            "iss": current_app.config["JWT_ISSUER"],
            "aud": current_app.config["JWT_AUDIENCE"],
            "iat": issued_at.replace(tzinfo=timezone.utc),
            "exp": expires_at.replace(tzinfo=timezone.utc),
        }
    )
    return jwt.encode(payload, _secret(kind), algorithm=ALGORITHM)


def generate_access_token(user: User, now: datetime | None = None) -> tuple[str, datetime]:
    now = now or utcnow()
    expires_at = now + timedelta(minutes=current_app.config["JWT_ACCESS_EXPIRES_MINUTES"])
    token = _encode({"sub": str(user.id), "email": user.email, "role": user.role}, ACCESS, now, expires_at)
    return token, expires_at


def generate_refresh_token(user: User, now: datetime | None = None) -> tuple[str, str, datetime]:
    now = now or utcnow()
    expires_at = now + timedelta(days=current_app.config["JWT_REFRESH_EXPIRES_DAYS"])
    jti = secrets.token_hex(16)
    token = _encode({"sub": str(user.id), "jti": jti}, REFRESH, now, expires_at)
    return token, jti, expires_at


def decode_token(token: str, kind: str) -> dict:
    """
    Verify signature, issuer, audience, expiry and token type.

    Raises AuthenticationError with a client-safe message on any failure.
    """
    if not token:
        raise AuthenticationError("No token provided")
    try:
        claims = jwt.decode(
            token,
            _secret(kind),
            algorithms=[ALGORITHM],
            audience=current_app.config["JWT_AUDIENCE"],
            issuer=current_app.config["JWT_ISSUER"],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if claims.get("type") != kind:
        raise AuthenticationError("Invalid token type")
    return claims


def issue_token_pair(user: User, *, device: str | None = None, ip_address: str | None = None) -> TokenPair:
    """Create an access/refresh pair and persist the refresh token hash. Caller commits."""
    now = utcnow()
    access_token, access_expires = generate_access_token(user, now)
    refresh_token, jti, refresh_expires = generate_refresh_token(user, now)
    db.session.add(
        RefreshToken(
            user_id=user.id,
            jti=jti,
            token_hash=hash_token(refresh_token),
            created_at=now,
            expires_at=refresh_expires,
            device=(device or "")[:512] or None,
            ip_address=ip_address,
        )
    )
    return TokenPair(access_token, refresh_token, access_expires, refresh_expires)


def verify_refresh_token(token: str) -> tuple[User, RefreshToken]:
    claims = decode_token(token, REFRESH)
    record = RefreshToken.query.filter_by(token_hash=hash_token(token)).first()
    if record is None or record.jti != claims.get("jti") or not record.is_usable:
        raise AuthenticationError("Invalid or expired refresh token")

    user = db.session.get(User, int(claims["sub"]))
    if user is None or not user.is_active or user.id != record.user_id:
        raise AuthenticationError("Invalid or expired refresh token")
    return user, record


def revoke_refresh_token(token: str, *, user_id: int | None = None) -> bool:
    record = RefreshToken.query.filter_by(token_hash=hash_token(token)).first()
    if record is None or (user_id is not None and record.user_id != user_id):
        return False
    if record.revoked_at is None:
        record.revoked_at = utcnow()
    return True


def revoke_all_for_user(user_id: int) -> int:
    now = utcnow()
    records = RefreshToken.query.filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None)).all()
    for record in records:
        record.revoked_at = now
    return len(records)


def prune_expired(user_id: int) -> int:
    """Drop this user's refresh tokens that are expired or were revoked."""
    now = utcnow()
    stale = RefreshToken.query.filter(
        RefreshToken.user_id == user_id,
        (RefreshToken.expires_at <= now) | (RefreshToken.revoked_at.isnot(None)),
    ).all()
    for record in stale:
        db.session.delete(record)
    return len(stale)
