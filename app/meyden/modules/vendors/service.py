from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.meyden.audit import record_event
from app.meyden.constants import REVIEW_APPROVED, REVIEW_PENDING, VENDOR_ACTIVE, VENDOR_PENDING_APPROVAL
from app.meyden.modules.users.service import serialize_author
from app.meyden.modules.vendors.models import Review, Vendor, VendorService
from app.meyden.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.meyden.models import User


def serialize_service(svc: VendorService) -> dict[str, Any]:
    return {
        "id": svc.id,
        "name": svc.name,
        "description": svc.description,
        "category": svc.category,
        "subcategory": svc.subcategory,
        "basePrice": svc.base_price,
        "priceUnit": svc.price_unit,
        "isActive": svc.is_active,
        "isFeatured": svc.is_featured,
    }


def serialize_review(review: Review) -> dict[str, Any]:
    return {
        "id": review.id,
        "vendorId": review.vendor_id,
        "title": review.title,
        "content": review.content,
        "overallRating": review.overall_rating,
        "qualityRating": review.quality_rating,
        "communicationRating": review.communication_rating,
        "timelinessRating": review.timeliness_rating,
        "valueRating": review.value_rating,
        "status": review.status,
        "isPublic": review.is_public,
        "isVerified": review.is_verified,
        "createdAt": iso(review.created_at),
        "user": serialize_author(review.user),
    }


def serialize_vendor(
    vendor: Vendor,
    *,
    services: list[VendorService] | None = None,
    reviews: list[Review] | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": vendor.id,
        "userId": vendor.user_id,
        "companyName": vendor.company_name,
        "businessName": vendor.business_name,
        "description": vendor.description,
        "email": vendor.email,
        "phone": vendor.phone,
        "website": vendor.website,
        "logo": vendor.logo,
        "address": vendor.address,
        "city": vendor.city,
        "state": vendor.state,
        "country": vendor.country,
        "postalCode": vendor.postal_code,
        "businessType": vendor.business_type,
        "yearEstablished": vendor.year_established,
        "employeeCount": vendor.employee_count,
        "status": vendor.status,
        "isVerified": vendor.is_verified,
        "averageRating": round(vendor.average_rating or 0.0, 2),
        "totalReviews": vendor.total_reviews,
        "createdAt": iso(vendor.created_at),
    }
    if services is not None:
        data["services"] = [serialize_service(x) for x in services]
    if reviews is not None:
        data["reviews"] = [serialize_review(r) for r in reviews]
    return data


def active_services(vendor: Vendor, limit: int | None = None) -> list[VendorService]:
    svcs = sorted(
        (x for x in vendor.services if x.is_active),
        key=lambda x: (not x.is_featured, x.id),
    )
    return svcs[:limit] if limit is not None else svcs


def visible_reviews_query(s: "Session", vendor_id: int) -> "Query":
    return (
        s.query(Review)
        .filter(Review.vendor_id == vendor_id, Review.status == REVIEW_APPROVED, Review.is_public.is_(True))
        .order_by(Review.created_at.desc(), Review.id.desc())
    )


def search_vendors_query(s: "Session", filters: dict[str, Any]) -> "Query":
    q = s.query(Vendor).filter(Vendor.status == VENDOR_ACTIVE)
    term = (filters.get("query") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(
            or_(
                Vendor.company_name.ilike(like),
                Vendor.business_name.ilike(like),
                Vendor.description.ilike(like),
            )
        )
    if filters.get("industry"):
        q = q.filter(Vendor.business_type.ilike(f"%{filters['industry']}%"))
    if filters.get("country"):
        q = q.filter(Vendor.country.ilike(filters["country"]))
    if filters.get("city"):
        q = q.filter(Vendor.city.ilike(filters["city"]))
    if filters.get("min_rating") is not None:
        q = q.filter(Vendor.average_rating >= filters["min_rating"])
    return q.order_by(Vendor.average_rating.desc(), Vendor.total_reviews.desc(), Vendor.id.asc())


def create_vendor(s: "Session", payload: dict[str, Any], user: "User") -> Vendor:
    """New vendor profiles wait for admin approval."""
    vendor = Vendor(
        user_id=user.id,
        company_name=payload["company_name"],
        business_name=payload["business_name"],
        description=payload["description"],
        email=payload["email"],
        phone=payload.get("phone"),
        website=payload.get("website"),
        logo=payload.get("logo"),
        address=payload.get("address"),
        city=payload.get("city"),
        state=payload.get("state"),
        country=payload.get("country"),
        postal_code=payload.get("postal_code"),
        business_type=payload["business_type"],
        year_established=payload.get("year_established"),
        employee_count=payload.get("employee_count"),
        status=VENDOR_PENDING_APPROVAL,
    )
    s.add(vendor)
    s.flush()
    record_event(
        s,
        actor=user,
        action="vendor.create",
        entity_type="Vendor",
        entity_id=str(vendor.id),
        metadata={"companyName": vendor.company_name},
    )
    return vendor


def create_review(s: "Session", vendor: Vendor, payload: dict[str, Any], user: "User") -> Review:
    review = Review(
        vendor_id=vendor.id,
        user_id=user.id,
        title=payload["title"],
        content=payload["content"],
        overall_rating=payload["overall_rating"],
        quality_rating=payload.get("quality_rating"),
        communication_rating=payload.get("communication_rating"),
        timeliness_rating=payload.get("timeliness_rating"),
        value_rating=payload.get("value_rating"),
        is_public=payload.get("is_public", True),
        status=REVIEW_PENDING,
    )
    s.add(review)
    s.flush()
    record_event(
        s,
        actor=user,
        action="review.create",
        entity_type="Review",
        entity_id=str(review.id),
        metadata={"vendorId": vendor.id, "rating": review.overall_rating},
    )
    return review


def recompute_vendor_rating(s: "Session", vendor: Vendor) -> None:
    """Average/count over approved reviews only."""
    avg, count = (
        s.query(func.avg(Review.overall_rating), func.count(Review.id))
        .filter(Review.vendor_id == vendor.id, Review.status == REVIEW_APPROVED)
        .one()
    )
    vendor.total_reviews = int(count or 0)
    vendor.average_rating = round(float(avg), 2) if avg is not None else 0.0
