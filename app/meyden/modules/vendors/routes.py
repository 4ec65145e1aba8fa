from __future__ import annotations

from datetime import date

from flask import Blueprint, g, jsonify, request
from pydantic import Field, field_validator, model_validator

from app.meyden.audit import record_event
from app.meyden.constants import VENDOR_ACTIVE
from app.meyden.db import db_session
from app.meyden.errors import APIError, Conflict, NotFound, ValidationFailed
from app.meyden.mailer import get_email_service
from app.meyden.models import User
from app.meyden.modules.vendors.models import Review, Vendor
from app.meyden.modules.vendors.service import (
    active_services,
    create_review,
    create_vendor,
    search_vendors_query,
    serialize_review,
    serialize_vendor,
    visible_reviews_query,
)
from app.meyden.rbac import current_user, require_active_user
from app.meyden.schemas import CamelModel, check_email, check_url, parse_body
from app.meyden.utils import get_pagination_params, mask_pii, pagination_meta

bp = Blueprint("vendors", __name__)


class VendorCreate(CamelModel):
    company_name: str = Field(min_length=1, max_length=255)
    business_name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=10, max_length=5000)
    email: str = Field(max_length=320)
    phone: str | None = Field(default=None, max_length=32)
    website: str | None = Field(default=None, max_length=255)
    logo: str | None = Field(default=None, max_length=1024)
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    country: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)
    business_type: str = Field(min_length=1, max_length=100)
    year_established: int | None = Field(default=None, ge=1800)
    employee_count: str | None = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return check_email(v)

    @field_validator("website", "logo")
    @classmethod
    def validate_urls(cls, v: str | None) -> str | None:
        return check_url(v)

    @field_validator("year_established")
    @classmethod
    def not_in_future(cls, v: int | None) -> int | None:
        if v is not None and v > date.today().year:
            raise ValueError("Year established cannot be in the future")
        return v


class ReviewCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=10, max_length=5000)
    overall_rating: int = Field(ge=1, le=5)
    quality_rating: int | None = Field(default=None, ge=1, le=5)
    communication_rating: int | None = Field(default=None, ge=1, le=5)
    timeliness_rating: int | None = Field(default=None, ge=1, le=5)
    value_rating: int | None = Field(default=None, ge=1, le=5)
    is_public: bool = True


class ContactRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=320)
    subject: str | None = Field(default=None, max_length=200)
    message: str = Field(min_length=10, max_length=5000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return check_email(v)


class VendorSearch(CamelModel):
    query: str | None = Field(default=None, max_length=200)
    industry: str | None = None
    country: str | None = None
    city: str | None = None
    min_rating: float | None = Field(default=None, ge=0, le=5)

    @model_validator(mode="before")
    @classmethod
    def drop_blank(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v not in (None, "")}
        return data


def _active_vendor(vendor_id: int) -> Vendor:
    s = db_session()
    vendor = s.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFound("Vendor not found", code="VENDOR_NOT_FOUND")
    if vendor.status != VENDOR_ACTIVE:
        raise NotFound("Vendor is not available", code="VENDOR_UNAVAILABLE")
    return vendor


@bp.get("/", strict_slashes=False)
def list_vendors():
    page, limit, offset = get_pagination_params()
    filters = VendorSearch.model_validate(request.args.to_dict()).model_dump()
    s = db_session()
    q = search_vendors_query(s, filters)
    total = q.count()
    vendors = q.offset(offset).limit(limit).all()
    data = [
        serialize_vendor(
            v,
            services=active_services(v, limit=5),
            reviews=visible_reviews_query(s, v.id).limit(3).all(),
        )
        for v in vendors
    ]
    return jsonify({"vendors": data, "pagination": pagination_meta(page, limit, total)})


@bp.get("/popular/list")
def popular_vendors():
    try:
        limit = max(1, min(50, int(request.args.get("limit") or 10)))
    except ValueError:
        raise ValidationFailed("limit must be a number")
    s = db_session()
    vendors = (
        s.query(Vendor)
        .filter(Vendor.status == VENDOR_ACTIVE, Vendor.total_reviews > 0)
        .order_by(Vendor.average_rating.desc(), Vendor.total_reviews.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"vendors": [serialize_vendor(v, services=active_services(v, limit=3)) for v in vendors]})


@bp.get("/<int:vendor_id>")
def get_vendor(vendor_id: int):
    vendor = _active_vendor(vendor_id)
    s = db_session()
    reviews = visible_reviews_query(s, vendor.id).limit(20).all()
    return jsonify({"vendor": serialize_vendor(vendor, services=active_services(vendor), reviews=reviews)})


@bp.post("/", strict_slashes=False)
@require_active_user
def post_vendor():
    body = parse_body(VendorCreate)
    s = db_session()
    user = current_user()
    if s.query(Vendor.id).filter(Vendor.user_id == user.id).first() is not None:
        raise Conflict("You already have a vendor profile", code="VENDOR_EXISTS")
    vendor = create_vendor(s, body.model_dump(), user)
    s.commit()
    return (
        jsonify(
            {
                "message": "Vendor profile created and pending approval",
                "vendor": serialize_vendor(vendor, services=[]),
            }
        ),
        201,
    )


@bp.get("/<int:vendor_id>/reviews")
def list_reviews(vendor_id: int):
    vendor = _active_vendor(vendor_id)
    page, limit, offset = get_pagination_params(default_limit=10)
    s = db_session()
    q = visible_reviews_query(s, vendor.id)
    total = q.count()
    reviews = q.offset(offset).limit(limit).all()
    return jsonify(
        {
            "reviews": [serialize_review(r) for r in reviews],
            "pagination": pagination_meta(page, limit, total),
        }
    )


@bp.post("/<int:vendor_id>/reviews")
@require_active_user
def post_review(vendor_id: int):
    vendor = _active_vendor(vendor_id)
    body = parse_body(ReviewCreate)
    s = db_session()
    user = current_user()
    if vendor.user_id == user.id:
        raise ValidationFailed("You cannot review your own vendor profile", code="SELF_REVIEW")
    exists = s.query(Review.id).filter(Review.vendor_id == vendor.id, Review.user_id == user.id).first()
    if exists is not None:
        raise Conflict("You have already reviewed this vendor", code="REVIEW_EXISTS")
    review = create_review(s, vendor, body.model_dump(), user)
    s.commit()
    return jsonify({"message": "Review submitted for moderation", "review": serialize_review(review)}), 201


@bp.post("/<int:vendor_id>/contact")
def contact_vendor(vendor_id: int):
    vendor = _active_vendor(vendor_id)
    body = parse_body(ContactRequest)
    sender: User | None = getattr(g, "current_user", None)
    sent = get_email_service().send_vendor_contact_email(
        vendor.email,
        vendor.company_name,
        sender_name=body.name,
        sender_email=body.email,
        subject=body.subject,
        message=body.message,
    )
    if not sent:
        raise APIError("Unable to deliver your message right now", status_code=502, code="EMAIL_FAILED")
    s = db_session()
    record_event(
        s,
        actor=sender,
        action="vendor.contact",
        entity_type="Vendor",
        entity_id=str(vendor.id),
        metadata=mask_pii({"email": body.email}),
    )
    s.commit()
    return jsonify({"message": "Your message has been sent to the vendor"})
