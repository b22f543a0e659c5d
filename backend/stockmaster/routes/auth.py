# Overview: Flask API routes for authentication; parses input and returns JSON responses.

# backend/stockmaster/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password change
- Per-IP login rate limiting plus per-account lockout
- Short-lived access token, revocable server-side refresh token
- Password reset by emailed one-time code; unknown emails get the same answer
"""

from flask import Blueprint, g

from ..decorators import optional_current_user, rate_limit_login, require_auth
from ..permissions import permissions_for
from ..responses import client_ip, json_body, success, user_agent
from ..services import auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

RESET_REQUESTED_MESSAGE = "If an account exists with this email, a password reset code has been sent"


@auth_bp.post("/register")
def register_route():
    """
    Create an account and return a token pair.

    Self-service sign-up always yields a staff account; an authenticated
    admin may pass "role".
    """
    payload = json_body()
    user, tokens = auth_service.register(
        payload=payload,
        actor=optional_current_user(),
        device=user_agent(),
        ip_address=client_ip(),
    )
    return success({"user": user.to_dict(), "tokens": tokens.to_dict()}, 201, message="User registered successfully")


@auth_bp.post("/login")
@rate_limit_login
def login_route():
    payload = json_body()
    user, tokens = auth_service.login(
        email=payload.get("email"),
        password=payload.get("password"),
        device=user_agent(),
        ip_address=client_ip(),
    )
    return success({"user": user.to_dict(), "tokens": tokens.to_dict()}, message="Login successful")


@auth_bp.post("/refresh-token")
def refresh_token_route():
    payload = json_body()
    access_token, expires_in = auth_service.refresh_access_token(payload.get("refresh_token"))
    return success({"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in})


@auth_bp.post("/request-password-reset")
def request_password_reset_route():
    payload = json_body()
    auth_service.request_password_reset(payload.get("email"))
    return success(message=RESET_REQUESTED_MESSAGE)


@auth_bp.post("/verify-otp")
def verify_otp_route():
    payload = json_body()
    auth_service.verify_reset_otp(payload.get("email"), payload.get("otp"))
    return success({"valid": True}, message="OTP verified successfully")


@auth_bp.post("/reset-password")
def reset_password_route():
    payload = json_body()
    auth_service.reset_password(payload.get("email"), payload.get("otp"), payload.get("new_password"))
    return success(message="Password reset successful. Please log in with your new password")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    payload = json_body()
    auth_service.logout(g.current_user, payload.get("refresh_token"))
    return success(message="Logged out successfully")


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    revoked = auth_service.logout_all(g.current_user)
    return success({"sessions_revoked": revoked}, message="Logged out from all devices")


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    payload = json_body()
    auth_service.change_password(
        g.current_user,
        current_password=payload.get("current_password"),
        new_password=payload.get("new_password"),
    )
    return success(message="Password changed successfully. Please log in again")


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return success({"user": user.to_dict(), "permissions": permissions_for(user.role)})
