from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response
from starlette.datastructures import UploadFile
from sqlmodel import select

from config import settings
from db import SessionDep
from discovery import query_listings
from geocoding import GeocodeError, GeocoderDep
from lifecycle import cancel_donation
from models import Category, Donation, Reservation
from moderation import delete_donation, is_moderator
from schemas import DonationCreate, DonationRead, SortKey
from storage import ALLOWED_IMAGE_TYPES, save_donation_image
from .auth import CurrentUserDep, OptionalUserDep

router = APIRouter(tags=["donations"])

MAX_IMAGES_PER_DONATION = 3


def _get_donation_or_404(session: SessionDep, donation_id: int) -> Donation:
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    return donation


def _ensure_owner(donation: Donation, user_id: Optional[int]) -> None:
    if donation.donor_id != user_id:
        raise HTTPException(
            status_code=403,
            detail="You can only manage donations you created.",
        )


@router.get("/", response_model=List[DonationRead])
def list_donations(
    session: SessionDep,
    category: str = "all",
    sealed_only: bool = False,
    sort: SortKey = "newest",
    radius_km: float = Query(default=settings.default_radius_km, ge=1, le=25),
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    limit: int = Query(default=50, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
):
    """
    Browse available listings. Radius filtering and distance sorting only
    apply when the caller shares a location.
    """
    return query_listings(
        session,
        category=category,
        sealed_only=sealed_only,
        sort=sort,
        radius_km=radius_km,
        lat=lat,
        lng=lng,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=DonationRead, status_code=201)
def create_donation(
    donation_in: DonationCreate,
    session: SessionDep,
    current: CurrentUserDep,
    geocoder: GeocoderDep,
):
    """
    Create a new listing owned by the caller.
    Without coordinates, the address is geocoded once.
    """
    if current.is_banned:
        raise HTTPException(status_code=403, detail="Your account is banned")

    category = session.exec(
        select(Category).where(Category.name == donation_in.category)
    ).first()
    if category is None:
        raise HTTPException(status_code=400, detail=f"Unknown category: {donation_in.category}")

    lat, lng = donation_in.location_lat, donation_in.location_lng
    if lat is None or lng is None:
        try:
            lat, lng, _ = geocoder.search(donation_in.address_text)
        except GeocodeError:
            raise HTTPException(
                status_code=400,
                detail="Could not determine coordinates. Please select location on the map.",
            )

    donation = Donation(
        donor_id=current.id,
        category_id=category.id,
        title=donation_in.title,
        description=donation_in.description,
        quantity=donation_in.quantity,
        condition=donation_in.condition,
        storage_type=donation_in.storage_type,
        expiry_date=donation_in.expiry_date,
        pickup_window_start=donation_in.pickup_window_start,
        pickup_window_end=donation_in.pickup_window_end,
        location_lat=lat,
        location_lng=lng,
        address_text=donation_in.address_text,
        status="available",
    )
    session.add(donation)
    session.commit()
    session.refresh(donation)
    return donation


@router.get("/mine", response_model=List[DonationRead])
def my_donations(session: SessionDep, current: CurrentUserDep):
    return session.exec(
        select(Donation)
        .where(Donation.donor_id == current.id)
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    ).all()


@router.get("/{donation_id}", response_model=DonationRead)
def get_donation(donation_id: int, session: SessionDep, current: OptionalUserDep):
    """
    Get a single listing by ID. Hidden listings are only visible to their
    owner and to moderators.
    """
    donation = _get_donation_or_404(session, donation_id)
    if donation.is_hidden:
        allowed = current is not None and (
            current.id == donation.donor_id or is_moderator(current)
        )
        if not allowed:
            raise HTTPException(status_code=404, detail="Donation not found")
    return donation


@router.get("/{donation_id}/reservations", response_model=List[Reservation])
def donation_reservations(donation_id: int, session: SessionDep, current: CurrentUserDep):
    donation = _get_donation_or_404(session, donation_id)
    _ensure_owner(donation, current.id)
    return session.exec(
        select(Reservation)
        .where(Reservation.donation_id == donation_id)
        .order_by(Reservation.created_at.asc(), Reservation.id.asc())
    ).all()


@router.post("/{donation_id}/images", response_model=DonationRead)
async def upload_donation_images(
    donation_id: int,
    request: Request,
    session: SessionDep,
    current: CurrentUserDep,
):
    donation = _get_donation_or_404(session, donation_id)
    _ensure_owner(donation, current.id)

    form = await request.form()
    uploads = [f for f in form.getlist("images") if isinstance(f, UploadFile)]
    if not uploads:
        raise HTTPException(status_code=400, detail="No images provided")
    existing = list(donation.images or [])
    if len(existing) + len(uploads) > MAX_IMAGES_PER_DONATION:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {MAX_IMAGES_PER_DONATION} images per donation",
        )
    for upload in uploads:
        if upload.content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported image type: {upload.content_type}",
            )

    for upload in uploads:
        content = await upload.read()
        existing.append(save_donation_image(donation.id, content, upload.content_type))

    # reassign so the JSON column is marked dirty
    donation.images = existing
    donation.updated_at = datetime.now(timezone.utc)
    session.add(donation)
    session.commit()
    session.refresh(donation)
    return donation


@router.post("/{donation_id}/cancel", response_model=DonationRead)
def cancel_own_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    donation = _get_donation_or_404(session, donation_id)
    return cancel_donation(session, current, donation)


@router.delete("/{donation_id}", status_code=204)
def delete_own_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    donation = _get_donation_or_404(session, donation_id)
    _ensure_owner(donation, current.id)
    delete_donation(session, donation)
    return Response(status_code=204)
