from __future__ import annotations

from typing import Literal

from flask import Blueprint, jsonify, request
from pydantic import Field
from sqlalchemy import func

from app.meyden.audit import record_event, serialize_event
from app.meyden.constants import (
    ADMIN_ROLES,
    CONTENT_PUBLISHED,
    REVIEW_APPROVED,
    REVIEW_PENDING,
    REVIEW_REJECTED,
    ROLE_VENDOR,
    USER_ACTIVE,
    VENDOR_ACTIVE,
    VENDOR_INACTIVE,
    VENDOR_PENDING_APPROVAL,
)
from app.meyden.db import db_session
from app.meyden.errors import Forbidden, NotFound, ValidationFailed
from app.meyden.models import AuditEvent, AuthSession, PlatformSetting, User
from app.meyden.modules.ai_readiness.models import SurveyResponse
from app.meyden.modules.community.models import Comment, Post
from app.meyden.modules.community.service import serialize_comment, serialize_post, sync_comment_count
from app.meyden.modules.users.service import serialize_user
from app.meyden.modules.vendors.models import Review, Vendor
from app.meyden.modules.vendors.service import recompute_vendor_rating, serialize_review, serialize_vendor
from app.meyden.rbac import current_user, require_permission, user_has_permission
from app.meyden.schemas import CamelModel, parse_body
from app.meyden.utils import get_pagination_params, iso, pagination_meta

bp = Blueprint("admin", __name__)

MAX_SETTING_KEY_LENGTH = 128


class ModerationRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=512)


class ContentStatusUpdate(ModerationRequest):
    status: Literal["PUBLISHED", "HIDDEN", "ARCHIVED"]


class UserStatusUpdate(ModerationRequest):
    status: Literal["ACTIVE", "SUSPENDED", "DELETED"]


class UserRoleUpdate(ModerationRequest):
    role: Literal["USER", "VENDOR", "ADMIN", "SUPER_ADMIN"]


class SettingUpdate(CamelModel):
    value: str | int | float | bool | None = None
    type: Literal["string", "number", "boolean", "json"] | None = None
    description: str | None = Field(default=None, max_length=512)
    is_public: bool | None = None


def _optional_body(model):
    # Moderation endpoints accept an empty body.
    if not request.get_data():
        return model()
    return parse_body(model)


def _count_by(s, column) -> dict[str, int]:
    return {str(k): int(n) for k, n in s.query(column, func.count()).group_by(column).all()}


def serialize_setting(row: PlatformSetting) -> dict:
    return {
        "key": row.key,
        "value": row.value,
        "type": row.type,
        "description": row.description,
        "isPublic": row.is_public,
        "updatedAt": iso(row.updated_at),
    }


# ---------- Analytics ----------
@bp.get("/analytics")
@require_permission("admin.view")
def analytics():
    s = db_session()
    users_by_status = _count_by(s, User.status)
    vendors_by_status = _count_by(s, Vendor.status)
    response_count, avg_pct = s.query(func.count(SurveyResponse.id), func.avg(SurveyResponse.percentage)).one()
    return jsonify(
        {
            "users": {"total": sum(users_by_status.values()), "byStatus": users_by_status, "byRole": _count_by(s, User.role)},
            "vendors": {"total": sum(vendors_by_status.values()), "byStatus": vendors_by_status},
            "reviews": {"pending": s.query(Review).filter(Review.status == REVIEW_PENDING).count()},
            "surveys": {
                "responses": int(response_count or 0),
                "averagePercentage": round(float(avg_pct), 2) if avg_pct is not None else None,
            },
            "community": {"publishedPosts": s.query(Post).filter(Post.status == CONTENT_PUBLISHED).count()},
        }
    )


# ---------- Settings ----------
@bp.get("/settings")
@require_permission("settings.manage")
def list_settings():
    s = db_session()
    rows = s.query(PlatformSetting).order_by(PlatformSetting.key.asc()).all()
    return jsonify({"settings": [serialize_setting(r) for r in rows]})


@bp.put("/settings/<key>")
@require_permission("settings.manage")
def put_setting(key: str):
    if len(key) > MAX_SETTING_KEY_LENGTH:
        raise ValidationFailed(f"Setting key must be at most {MAX_SETTING_KEY_LENGTH} characters")
    body = parse_body(SettingUpdate)
    s = db_session()
    row = s.query(PlatformSetting).filter(PlatformSetting.key == key).one_or_none()
    created = row is None
    if row is None:
        row = PlatformSetting(key=key)
        s.add(row)
    before = None if created else row.value
    if body.value is not None:
        row.value = str(body.value).lower() if isinstance(body.value, bool) else str(body.value)
    elif created:
        row.value = ""
    if body.type is not None:
        row.type = body.type
    elif created:
        row.type = "string"
    if body.description is not None:
        row.description = body.description
    if body.is_public is not None:
        row.is_public = body.is_public
    elif created:
        row.is_public = False
    record_event(
        s,
        actor=current_user(),
        action="setting.update",
        entity_type="PlatformSetting",
        entity_id=key,
        metadata={"before": before, "after": row.value},
    )
    s.commit()
    return jsonify({"message": "Setting saved", "setting": serialize_setting(row)}), 201 if created else 200


# ---------- Vendors ----------
@bp.get("/vendors/pending")
@require_permission("vendors.moderate")
def pending_vendors():
    page, limit, offset = get_pagination_params()
    s = db_session()
    q = s.query(Vendor).filter(Vendor.status == VENDOR_PENDING_APPROVAL)
    total = q.count()
    rows = q.order_by(Vendor.created_at.asc(), Vendor.id.asc()).offset(offset).limit(limit).all()
    return jsonify({"vendors": [serialize_vendor(v) for v in rows], "pagination": pagination_meta(page, limit, total)})


def _moderate_vendor(vendor_id: int, new_status: str, action: str):
    body = _optional_body(ModerationRequest)
    s = db_session()
    vendor = s.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFound("Vendor not found", code="VENDOR_NOT_FOUND")
    before = vendor.status
    vendor.status = new_status
    if new_status == VENDOR_ACTIVE:
        vendor.is_verified = True
        owner = s.get(User, vendor.user_id) if vendor.user_id else None
        if owner is not None and owner.role not in ADMIN_ROLES:
            owner.role = ROLE_VENDOR
    record_event(
        s,
        actor=current_user(),
        action=action,
        entity_type="Vendor",
        entity_id=str(vendor.id),
        reason=body.reason,
        metadata={"before": before, "after": new_status},
    )
    s.commit()
    return jsonify({"message": f"Vendor {new_status.lower()}", "vendor": serialize_vendor(vendor)})


@bp.patch("/vendors/<int:vendor_id>/approve")
@require_permission("vendors.moderate")
def approve_vendor(vendor_id: int):
    return _moderate_vendor(vendor_id, VENDOR_ACTIVE, "vendor.approve")


@bp.patch("/vendors/<int:vendor_id>/reject")
@require_permission("vendors.moderate")
def reject_vendor(vendor_id: int):
    return _moderate_vendor(vendor_id, VENDOR_INACTIVE, "vendor.reject")


# ---------- Reviews ----------
@bp.get("/reviews/pending")
@require_permission("reviews.moderate")
def pending_reviews():
    page, limit, offset = get_pagination_params()
    s = db_session()
    q = s.query(Review).filter(Review.status == REVIEW_PENDING)
    total = q.count()
    rows = q.order_by(Review.created_at.asc(), Review.id.asc()).offset(offset).limit(limit).all()
    return jsonify({"reviews": [serialize_review(r) for r in rows], "pagination": pagination_meta(page, limit, total)})


def _moderate_review(review_id: int, new_status: str, action: str):
    body = _optional_body(ModerationRequest)
    s = db_session()
    review = s.get(Review, review_id)
    if review is None:
        raise NotFound("Review not found", code="REVIEW_NOT_FOUND")
    before = review.status
    review.status = new_status
    s.flush()
    vendor = s.get(Vendor, review.vendor_id)
    if vendor is not None:
        recompute_vendor_rating(s, vendor)
    record_event(
        s,
        actor=current_user(),
        action=action,
        entity_type="Review",
        entity_id=str(review.id),
        reason=body.reason,
        metadata={"before": before, "after": new_status, "vendorId": review.vendor_id},
    )
    s.commit()
    return jsonify({"message": f"Review {new_status.lower()}", "review": serialize_review(review)})


@bp.patch("/reviews/<int:review_id>/approve")
@require_permission("reviews.moderate")
def approve_review(review_id: int):
    return _moderate_review(review_id, REVIEW_APPROVED, "review.approve")


@bp.patch("/reviews/<int:review_id>/reject")
@require_permission("reviews.moderate")
def reject_review(review_id: int):
    return _moderate_review(review_id, REVIEW_REJECTED, "review.reject")


# ---------- Community ----------
@bp.patch("/posts/<int:post_id>/status")
@require_permission("community.moderate")
def post_status(post_id: int):
    body = parse_body(ContentStatusUpdate)
    s = db_session()
    post = s.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found", code="POST_NOT_FOUND")
    before = post.status
    post.status = body.status
    record_event(
        s,
        actor=current_user(),
        action="post.status",
        entity_type="Post",
        entity_id=str(post.id),
        reason=body.reason,
        metadata={"before": before, "after": body.status},
    )
    s.commit()
    return jsonify({"message": "Post status updated", "post": serialize_post(post)})


@bp.patch("/comments/<int:comment_id>/status")
@require_permission("community.moderate")
def comment_status(comment_id: int):
    body = parse_body(ContentStatusUpdate)
    s = db_session()
    comment = s.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment not found", code="COMMENT_NOT_FOUND")
    before = comment.status
    comment.status = body.status
    s.flush()
    post = s.get(Post, comment.post_id)
    if post is not None:
        sync_comment_count(s, post)
    record_event(
        s,
        actor=current_user(),
        action="comment.status",
        entity_type="Comment",
        entity_id=str(comment.id),
        reason=body.reason,
        metadata={"before": before, "after": body.status, "postId": comment.post_id},
    )
    s.commit()
    return jsonify({"message": "Comment status updated", "comment": serialize_comment(comment)})


# ---------- Users ----------
def _target_user(user_id: int) -> User:
    u = db_session().get(User, user_id)
    if u is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return u


@bp.patch("/users/<int:user_id>/status")
@require_permission("users.manage")
def user_status(user_id: int):
    body = parse_body(UserStatusUpdate)
    actor = current_user()
    if actor.id == user_id:
        raise Forbidden("You cannot change your own status", code="SELF_MODIFICATION")
    s = db_session()
    target = _target_user(user_id)
    if target.role in ADMIN_ROLES and not user_has_permission(actor, "users.assign_admin"):
        raise Forbidden("Insufficient permissions", code="INSUFFICIENT_PERMISSIONS", required="users.assign_admin")
    before = target.status
    target.status = body.status
    if body.status == USER_ACTIVE:
        target.login_attempts = 0
        target.lockout_until = None
    else:
        s.query(AuthSession).filter(AuthSession.user_id == target.id).delete()
    record_event(
        s,
        actor=actor,
        action="user.status",
        entity_type="User",
        entity_id=str(target.id),
        reason=body.reason,
        metadata={"before": before, "after": body.status},
    )
    s.commit()
    return jsonify({"message": "User status updated", "user": serialize_user(target)})


@bp.patch("/users/<int:user_id>/role")
@require_permission("users.manage")
def user_role(user_id: int):
    body = parse_body(UserRoleUpdate)
    actor = current_user()
    s = db_session()
    target = _target_user(user_id)
    touches_admin = body.role in ADMIN_ROLES or target.role in ADMIN_ROLES
    if touches_admin and not user_has_permission(actor, "users.assign_admin"):
        raise Forbidden("Insufficient permissions", code="INSUFFICIENT_PERMISSIONS", required="users.assign_admin")
    if actor.id == target.id and body.role not in ADMIN_ROLES:
        raise ValidationFailed("You cannot remove your own admin role", code="SELF_MODIFICATION")
    before = target.role
    target.role = body.role
    record_event(
        s,
        actor=actor,
        action="user.role",
        entity_type="User",
        entity_id=str(target.id),
        reason=body.reason,
        metadata={"before": before, "after": body.role},
    )
    s.commit()
    return jsonify({"message": "User role updated", "user": serialize_user(target)})


# ---------- Audit ----------
@bp.get("/audit-events")
@require_permission("audit.view")
def audit_events():
    page, limit, offset = get_pagination_params(default_limit=50, max_limit=200)
    s = db_session()
    q = s.query(AuditEvent)
    action = (request.args.get("action") or "").strip()
    if action:
        q = q.filter(AuditEvent.action == action)
    total = q.count()
    rows = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).offset(offset).limit(limit).all()
    return jsonify({"events": [serialize_event(e) for e in rows], "pagination": pagination_meta(page, limit, total)})
