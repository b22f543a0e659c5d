"""
Role permission matrix

WHY: Route guards ask one question, "may this role perform ACTION on
RESOURCE?". Keeping the whole answer in one table makes the access model
reviewable at a glance.

ROLES:
- admin: everything
- staff: day-to-day selling and stock keeping; no deletes, no cancellations
- auditor: read-only, plus the audit trail
"""

from __future__ import annotations

from .models.auth import ROLE_ADMIN, ROLE_AUDITOR, ROLE_STAFF

# =============================================================================
# RESOURCES AND ACTIONS
# =============================================================================

USER = "user"
ITEM = "item"
CATEGORY = "category"
SALE = "sale"
ALERT = "alert"
AUDIT = "audit"
DASHBOARD = "dashboard"

CREATE = "create"
READ = "read"
UPDATE = "update"
DELETE = "delete"
RESTOCK = "restock"
CANCEL = "cancel"
RESOLVE = "resolve"


# =============================================================================
# DEFAULT ROLE MATRIX
# =============================================================================

ROLE_PERMISSIONS: dict[str, dict[str, frozenset[str]]] = {
    ROLE_ADMIN: {
        USER: frozenset({CREATE, READ, UPDATE, DELETE}),
        ITEM: frozenset({CREATE, READ, UPDATE, DELETE, RESTOCK}),
        CATEGORY: frozenset({CREATE, READ, UPDATE, DELETE}),
        SALE: frozenset({CREATE, READ, UPDATE, DELETE, CANCEL}),
        ALERT: frozenset({CREATE, READ, UPDATE, DELETE, RESOLVE}),
        AUDIT: frozenset({READ}),
        DASHBOARD: frozenset({READ}),
    },
    ROLE_STAFF: {
        USER: frozenset({READ}),
        ITEM: frozenset({CREATE, READ, UPDATE, RESTOCK}),
        CATEGORY: frozenset({CREATE, READ}),
        SALE: frozenset({CREATE, READ}),
        ALERT: frozenset({READ, UPDATE, RESOLVE}),
        AUDIT: frozenset(),
        DASHBOARD: frozenset({READ}),
    },
    ROLE_AUDITOR: {
        USER: frozenset({READ}),
        ITEM: frozenset({READ}),
        CATEGORY: frozenset({READ}),
        SALE: frozenset({READ}),
        ALERT: frozenset({READ, UPDATE}),
        AUDIT: frozenset({READ}),
        DASHBOARD: frozenset({READ}),
    },
}


def has_permission(role: str, resource: str, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(role, {}).get(resource, frozenset())


def permissions_for(role: str) -> dict[str, list[str]]:
    """Sorted, JSON-friendly view of one role's row, used by /auth/me."""
    return {resource: sorted(actions) for resource, actions in ROLE_PERMISSIONS.get(role, {}).items()}
