from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from pydantic import Field, field_validator

from app.meyden.constants import ROLES, USER_STATUSES
from app.meyden.db import db_session
from app.meyden.errors import NotFound, ValidationFailed
from app.meyden.models import User
from app.meyden.modules.users.service import serialize_public_user, serialize_user, update_profile
from app.meyden.rbac import current_user, is_admin, require_active_user, require_auth, require_permission
from app.meyden.schemas import CamelModel, check_url, parse_body
from app.meyden.utils import get_pagination_params, pagination_meta

bp = Blueprint("users", __name__)


class ProfileUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    avatar: str | None = Field(default=None, max_length=1024)

    bio: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=32)
    date_of_birth: date | None = None
    gender: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    city: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=255)
    postal_code: str | None = Field(default=None, max_length=20)
    job_title: str | None = Field(default=None, max_length=100)
    company: str | None = Field(default=None, max_length=100)
    industry: str | None = Field(default=None, max_length=100)
    experience_years: int | None = Field(default=None, ge=0, le=50)
    website: str | None = Field(default=None, max_length=255)
    linkedin: str | None = Field(default=None, max_length=255)
    twitter: str | None = Field(default=None, max_length=255)
    github: str | None = Field(default=None, max_length=255)
    language: str | None = Field(default=None, max_length=10)
    timezone: str | None = Field(default=None, max_length=64)
    email_notifications: bool | None = None
    push_notifications: bool | None = None

    @field_validator("avatar", "website", "linkedin", "twitter", "github")
    @classmethod
    def validate_urls(cls, v: str | None) -> str | None:
        return check_url(v)


@bp.get("/profile")
@require_auth
def get_profile():
    user = current_user()
    return jsonify({"user": serialize_user(user, include_profile=True, include_vendor=True)})


@bp.put("/profile")
@require_active_user
def put_profile():
    body = parse_body(ProfileUpdate)
    changes = body.model_dump(exclude_unset=True)
    # Non-nullable profile columns.
    for field in ("language", "timezone", "email_notifications", "push_notifications"):
        if field in changes and changes[field] is None:
            changes.pop(field)
    s = db_session()
    user = current_user()
    update_profile(s, user, changes)
    s.commit()
    return jsonify(
        {
            "message": "Profile updated successfully",
            "user": serialize_user(user, include_profile=True, include_vendor=True),
        }
    )


@bp.get("/", strict_slashes=False)
@require_permission("users.view")
def list_users():
    page, limit, offset = get_pagination_params()
    role = (request.args.get("role") or "").strip().upper()
    status = (request.args.get("status") or "").strip().upper()
    if role and role not in ROLES:
        raise ValidationFailed(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    if status and status not in USER_STATUSES:
        raise ValidationFailed(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")

    s = db_session()
    q = s.query(User)
    if role:
        q = q.filter(User.role == role)
    if status:
        q = q.filter(User.status == status)
    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
    return jsonify(
        {
            "users": [serialize_user(u, include_profile=True) for u in users],
            "pagination": pagination_meta(page, limit, total),
        }
    )


@bp.get("/<int:user_id>")
@require_auth
def get_user(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    viewer = current_user()
    if viewer.id == user.id or is_admin(viewer):
        return jsonify({"user": serialize_user(user, include_profile=True, include_vendor=True)})
    return jsonify({"user": serialize_public_user(user)})
