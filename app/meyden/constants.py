"""
Central constants for the Meyden application.
"""
from __future__ import annotations

# Roles
ROLE_USER = "USER"
ROLE_VENDOR = "VENDOR"
ROLE_ADMIN = "ADMIN"
ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLES = (ROLE_USER, ROLE_VENDOR, ROLE_ADMIN, ROLE_SUPER_ADMIN)
ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)
SELF_ASSIGNABLE_ROLES = (ROLE_USER, ROLE_VENDOR)

# Account status
USER_ACTIVE = "ACTIVE"
USER_PENDING_VERIFICATION = "PENDING_VERIFICATION"
USER_SUSPENDED = "SUSPENDED"
USER_DELETED = "DELETED"
USER_STATUSES = (USER_ACTIVE, USER_PENDING_VERIFICATION, USER_SUSPENDED, USER_DELETED)
MODERATED_USER_STATUSES = (USER_ACTIVE, USER_SUSPENDED, USER_DELETED)

# Vendor status
VENDOR_ACTIVE = "ACTIVE"
VENDOR_PENDING_APPROVAL = "PENDING_APPROVAL"
VENDOR_INACTIVE = "INACTIVE"
VENDOR_STATUSES = (VENDOR_ACTIVE, VENDOR_PENDING_APPROVAL, VENDOR_INACTIVE)

# Review status
REVIEW_PENDING = "PENDING"
REVIEW_APPROVED = "APPROVED"
REVIEW_REJECTED = "REJECTED"

# Community content
CONTENT_PUBLISHED = "PUBLISHED"
CONTENT_HIDDEN = "HIDDEN"
CONTENT_ARCHIVED = "ARCHIVED"
CONTENT_STATUSES = (CONTENT_PUBLISHED, CONTENT_HIDDEN, CONTENT_ARCHIVED)
POST_TYPES = ("ARTICLE", "QUESTION", "DISCUSSION", "ANNOUNCEMENT", "SHOWCASE")

# Surveys
SURVEY_ACTIVE = "ACTIVE"
SURVEY_DRAFT = "DRAFT"
SURVEY_CLOSED = "CLOSED"
QUESTION_TYPES = ("SINGLE_CHOICE", "MULTIPLE_CHOICE", "SCALE", "BOOLEAN", "TEXT")

# OAuth
OAUTH_PROVIDERS = ("google", "microsoft")
OAUTH_STATE_TTL_MINUTES = 10

# Token lifetimes not driven by env
EMAIL_VERIFICATION_TTL_HOURS = 24
PASSWORD_RESET_TTL_HOURS = 1

JWT_ISSUER = "meyden-api"
JWT_AUDIENCE = "meyden-client"

# Permission keys granted per role. Roles are a fixed set, so the map lives in code.
PERMISSIONS = {
    "admin.view": "Admin: view dashboard",
    "users.view": "Users: list and inspect",
    "users.manage": "Users: change status and role",
    "users.assign_admin": "Users: grant admin roles",
    "vendors.moderate": "Vendors: approve and reject",
    "reviews.moderate": "Reviews: approve and reject",
    "community.moderate": "Community: hide and restore content",
    "surveys.manage": "Surveys: create",
    "settings.manage": "Platform settings: edit",
    "audit.view": "Audit log: view",
}

_ADMIN_PERMISSIONS = frozenset(k for k in PERMISSIONS if k != "users.assign_admin")

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_USER: frozenset(),
    ROLE_VENDOR: frozenset(),
    ROLE_ADMIN: _ADMIN_PERMISSIONS,
    ROLE_SUPER_ADMIN: frozenset(PERMISSIONS),
}
