from datetime import date
from typing import List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from geo import bounding_box, haversine_km
from models import Category, Donation
from schemas import DonationRead

logger = logging.getLogger(__name__)


def _base_query(category: str, sealed_only: bool, today: date):
    query = select(Donation).where(
        Donation.is_hidden == False,  # noqa: E712
        Donation.status == "available",
        Donation.expiry_date >= today,
    )
    if category and category != "all":
        query = query.join(Category, Category.id == Donation.category_id).where(
            Category.name == category
        )
    if sealed_only:
        query = query.where(Donation.condition == "sealed")
    return query


def query_listings(
    session: Session,
    *,
    category: str = "all",
    sealed_only: bool = False,
    sort: str = "newest",
    radius_km: float = 5.0,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    limit: int = 50,
    offset: int = 0,
    today: Optional[date] = None,
) -> List[DonationRead]:
    """
    Listings visible to a browsing user.

    Hidden, non-available and expired listings never appear. The radius filter
    and distance sort only apply when both coordinates are given; without them
    the radius is ignored and `distance` sorts like `newest`.
    Pagination runs after every filter.
    """
    today = today or date.today()
    has_origin = lat is not None and lng is not None

    query = _base_query(category, sealed_only, today)
    if has_origin:
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
        query = query.where(
            Donation.location_lat >= min_lat,
            Donation.location_lat <= max_lat,
            Donation.location_lng >= min_lng,
            Donation.location_lng <= max_lng,
        )

    if sort == "expiry":
        query = query.order_by(Donation.expiry_date.asc(), Donation.id.asc())
    else:
        query = query.order_by(Donation.created_at.desc(), Donation.id.desc())

    if not has_origin:
        query = query.offset(offset).limit(limit)

    try:
        rows = session.exec(query).all()
    except SQLAlchemyError:
        logger.exception("Listing query failed; returning no results")
        session.rollback()
        return []

    if not has_origin:
        return [DonationRead.model_validate(d) for d in rows]

    within: List[Tuple[Donation, float]] = []
    for donation in rows:
        distance = haversine_km(lat, lng, donation.location_lat, donation.location_lng)
        if distance <= radius_km:
            within.append((donation, distance))

    if sort == "distance":
        # stable sort keeps newest-first among equal distances
        within.sort(key=lambda pair: pair[1])

    page = within[offset:offset + limit]
    return [
        DonationRead.model_validate(d).model_copy(update={"distance_km": round(dist, 3)})
        for d, dist in page
    ]
