# Overview: Request authentication, role and permission decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, PermissionDeniedError, RateLimitError
from .extensions import db
from .models import User
from .permissions import has_permission
from .services import audit_service, token_service
from .services.rate_limit_service import get_login_limiter


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthenticationError("Authentication required")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise AuthenticationError("Authentication required")
    return token


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid access token.

    Sets g.current_user to the token's user.

    SECURITY: 401 when the header is missing, the token is invalid/expired or
    the user no longer exists; 403 when the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        claims = token_service.decode_token(_bearer_token(), token_service.ACCESS)
        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise AuthenticationError("Invalid token")

        user = db.session.get(User, user_id)
        if user is None:
            raise AuthenticationError("The user belonging to this token no longer exists")
        if not user.is_active:
            raise PermissionDeniedError("Your account has been deactivated")

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given roles. Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise AuthenticationError("Authentication required")
            if g.current_user.role not in roles:
                raise PermissionDeniedError("You do not have permission to perform this action")
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_permission(resource: str, action: str):
    """
    Require ``action`` on ``resource`` according to the role matrix.

    Denials are written to the audit log as security.permission.denied.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise AuthenticationError("Authentication required")

            user = g.current_user
            if not has_permission(user.role, resource, action):
                audit_service.log_action(
                    action="security.permission.denied",
                    resource="system",
                    actor=user,
                    description=f"Denied {action} on {resource} ({request.method} {request.path})",
                    severity="medium",
                    status="failed",
                    metadata={"resource": resource, "action": action},
                    commit=True,
                )
                raise PermissionDeniedError(f"You do not have permission to {action} {resource}")

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def rate_limit_login(f):
    """Per-client-IP sliding window on the login endpoint."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        key = f"login:{request.remote_addr or 'unknown'}"
        decision = get_login_limiter().hit(key)
        if not decision.allowed:
            raise RateLimitError(
                "Too many login attempts. Please try again later.",
                retry_after=decision.retry_after_seconds,
            )
        return f(*args, **kwargs)

    return decorated_function


def optional_current_user() -> User | None:
    """The bearer token's user when a valid header is present, else None."""
    if not request.headers.get("Authorization", "").startswith("Bearer "):
        return None
    claims = token_service.decode_token(_bearer_token(), token_service.ACCESS)
    user = db.session.get(User, int(claims["sub"]))
    if user is None or not user.is_active:
        return None
    return user
