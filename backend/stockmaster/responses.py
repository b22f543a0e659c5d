# Overview: JSON envelope and query-string helpers shared by the API blueprints.

from __future__ import annotations

from flask import jsonify, request

from .errors import ValidationError
from .time_utils import parse_iso_datetime


def success(data=None, status_code: int = 200, *, message: str | None = None, **extra):
    """{"status": "success", "data": ...} plus any extra top-level keys (pagination, results)."""
    body = {"status": "success"}
    if message:
        body["message"] = message
    body.update(extra)
    body["data"] = data if data is not None else {}
    response = jsonify(body)
    response.status_code = status_code
    return response


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def page_args() -> tuple[int | None, int | None]:
    """page and per_page; ``limit`` is accepted as an alias for per_page."""
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    if per_page is None:
        per_page = request.args.get("limit", type=int)
    return page, per_page


def date_arg(name: str, *, inclusive_end: bool = False):
    """ISO date or datetime query arg; a bare end date covers that whole day."""
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = parse_iso_datetime(raw, inclusive_end=inclusive_end)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    if value is None:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    return value


def client_ip() -> str | None:
    return request.remote_addr


def user_agent() -> str | None:
    return request.headers.get("User-Agent")
