from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.meyden.audit import record_event
from app.meyden.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meyden.models import Profile, User


PROFILE_FIELDS = (
    "bio",
    "phone",
    "date_of_birth",
    "gender",
    "country",
    "state",
    "city",
    "address",
    "postal_code",
    "job_title",
    "company",
    "industry",
    "experience_years",
    "website",
    "linkedin",
    "twitter",
    "github",
    "language",
    "timezone",
    "email_notifications",
    "push_notifications",
)


def serialize_profile(profile: "Profile | None") -> dict[str, Any] | None:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "bio": profile.bio,
        "phone": profile.phone,
        "dateOfBirth": profile.date_of_birth.isoformat() if profile.date_of_birth else None,
        "gender": profile.gender,
        "country": profile.country,
        "state": profile.state,
        "city": profile.city,
        "address": profile.address,
        "postalCode": profile.postal_code,
        "jobTitle": profile.job_title,
        "company": profile.company,
        "industry": profile.industry,
        "experienceYears": profile.experience_years,
        "website": profile.website,
        "linkedin": profile.linkedin,
        "twitter": profile.twitter,
        "github": profile.github,
        "language": profile.language,
        "timezone": profile.timezone,
        "emailNotifications": profile.email_notifications,
        "pushNotifications": profile.push_notifications,
        "updatedAt": iso(profile.updated_at),
    }


def serialize_user(user: "User", *, include_profile: bool = False, include_vendor: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "avatar": user.avatar,
        "role": user.role,
        "status": user.status,
        "emailVerified": user.email_verified,
        "lastLogin": iso(user.last_login),
        "createdAt": iso(user.created_at),
    }
    if include_profile:
        data["profile"] = serialize_profile(user.profile)
    if include_vendor:
        v = user.vendor
        data["vendor"] = (
            {"id": v.id, "companyName": v.company_name, "status": v.status} if v is not None else None
        )
    return data


def serialize_public_user(user: "User") -> dict[str, Any]:
    """What other members may see about a user."""
    profile = user.profile
    return {
        "id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "avatar": user.avatar,
        "role": user.role,
        "createdAt": iso(user.created_at),
        "profile": (
            {
                "bio": profile.bio,
                "jobTitle": profile.job_title,
                "company": profile.company,
                "industry": profile.industry,
                "country": profile.country,
                "city": profile.city,
                "website": profile.website,
                "linkedin": profile.linkedin,
                "twitter": profile.twitter,
                "github": profile.github,
            }
            if profile is not None
            else None
        ),
    }


def serialize_author(user: "User | None") -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "firstName": user.first_name, "lastName": user.last_name, "avatar": user.avatar}


def update_profile(s: "Session", user: "User", changes: dict[str, Any]) -> "User":
    """
    Apply a partial profile update. Name fields live on the user row; everything
    else is upserted into the profile.
    """
    from app.meyden.models import Profile

    changed: list[str] = []
    for field in ("first_name", "last_name", "avatar"):
        if field in changes and changes[field] != getattr(user, field):
            setattr(user, field, changes[field])
            changed.append(field)

    profile_changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
    if profile_changes:
        profile = user.profile
        if profile is None:
            profile = Profile(user_id=user.id)
            s.add(profile)
            user.profile = profile
        for field, value in profile_changes.items():
            if getattr(profile, field) != value:
                setattr(profile, field, value)
                changed.append(field)

    if changed:
        record_event(
            s,
            actor=user,
            action="user.profile_update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"fields": sorted(changed)},
        )
    return user
