# Overview: Service-layer operations for brand and creator profiles.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import BrandProfile, CreatorProfile
from .concurrency import run_with_retry


def get_brand_profile(brand_profile_id: int) -> BrandProfile:
    brand = db.session.get(BrandProfile, brand_profile_id)
    if brand is None:
        raise NotFoundError(f"Brand profile {brand_profile_id} not found")
    return brand


def get_creator_profile(creator_profile_id: int) -> CreatorProfile:
    creator = db.session.get(CreatorProfile, creator_profile_id)
    if creator is None:
        raise NotFoundError(f"Creator profile {creator_profile_id} not found")
    return creator


def create_brand_profile(*, user_id: int, company_name: str, email: str | None = None) -> BrandProfile:
    """
    Register a brand. Every brand starts on the free 'none' tier so that an
    active subscription row always exists.
    """
    from .subscription_service import ensure_free_tier

    if not company_name or not company_name.strip():
        raise ValidationError("company_name is required")

    def _op():
        if db.session.query(BrandProfile).filter_by(user_id=user_id).first():
            raise ValidationError(f"User {user_id} already has a brand profile")
        brand = BrandProfile(user_id=user_id, company_name=company_name.strip(), email=email)
        db.session.add(brand)
        db.session.flush()
        ensure_free_tier(brand.id)
        db.session.commit()
        return brand

    return run_with_retry(_op)


def create_creator_profile(*, user_id: int, display_name: str, email: str | None = None) -> CreatorProfile:
    if not display_name or not display_name.strip():
        raise ValidationError("display_name is required")

    def _op():
        if db.session.query(CreatorProfile).filter_by(user_id=user_id).first():
            raise ValidationError(f"User {user_id} already has a creator profile")
        creator = CreatorProfile(user_id=user_id, display_name=display_name.strip(), email=email)
        db.session.add(creator)
        db.session.commit()
        return creator

    return run_with_retry(_op)
