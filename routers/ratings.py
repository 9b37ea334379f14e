from typing import Optional
import logging
import math

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from db import SessionDep
from models import Donation, Profile, Rating, Reservation
from notifier import notify
from schemas import RatingCreate, RatingEligibility
from .auth import CurrentUserDep

router = APIRouter(tags=["ratings"])

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


def _counterpart(session: Session, donation: Donation, user_id: int) -> Optional[int]:
    """
    The other party of a completed reservation on this listing, or None.
    """
    completed = session.exec(
        select(Reservation)
        .where(Reservation.donation_id == donation.id, Reservation.status == "completed")
        .order_by(Reservation.updated_at.desc(), Reservation.id.desc())
    ).all()
    if user_id == donation.donor_id:
        return completed[0].recipient_id if completed else None
    for reservation in completed:
        if reservation.recipient_id == user_id:
            return donation.donor_id
    return None


def _already_rated(session: Session, donation_id: int, rater_id: int, rated_id: int) -> bool:
    return session.exec(
        select(Rating.id).where(
            Rating.donation_id == donation_id,
            Rating.rater_id == rater_id,
            Rating.rated_id == rated_id,
        )
    ).first() is not None


def _is_linked(session: Session, donation: Donation, rater_id: int, rated_id: int) -> bool:
    if donation.donor_id == rater_id:
        recipient_id = rated_id
    elif donation.donor_id == rated_id:
        recipient_id = rater_id
    else:
        return False
    return session.exec(
        select(Reservation.id).where(
            Reservation.donation_id == donation.id,
            Reservation.recipient_id == recipient_id,
            Reservation.status == "completed",
        )
    ).first() is not None


def _refresh_reputation(session: Session, profile: Profile, new_rating: int) -> None:
    total = profile.reputation_score * profile.reputation_count + new_rating
    profile.reputation_count += 1
    profile.reputation_score = round(total / profile.reputation_count, 2)
    session.add(profile)


@router.get("/eligibility", response_model=RatingEligibility)
def rating_eligibility(donation_id: int, session: SessionDep, current: CurrentUserDep):
    """
    Whether the caller may leave a review on this listing and for whom.
    Once a review exists the answer stays `eligible: false`.
    """
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    counterpart = _counterpart(session, donation, current.id)
    if counterpart is None:
        return RatingEligibility(eligible=False)
    already = _already_rated(session, donation.id, current.id, counterpart)
    return RatingEligibility(eligible=not already, rated_id=counterpart, already_reviewed=already)


@router.post("/", response_model=Rating, status_code=201)
def create_rating(data: RatingCreate, session: SessionDep, current: CurrentUserDep):
    # halves round up
    rating_value = math.floor(data.rating + 0.5)
    if rating_value < 1 or rating_value > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    if data.rated_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot rate yourself")

    donation = session.get(Donation, data.donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    rated = session.get(Profile, data.rated_id)
    if rated is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not _is_linked(session, donation, current.id, rated.id):
        raise HTTPException(
            status_code=403,
            detail="You can only rate the other party of a completed reservation.",
        )
    if _already_rated(session, donation.id, current.id, rated.id):
        raise HTTPException(
            status_code=409,
            detail="You already left a review for this user on this donation.",
        )

    comment = data.comment[:MAX_COMMENT_LENGTH] if data.comment else None
    rating = Rating(
        donation_id=donation.id,
        rater_id=current.id,
        rated_id=rated.id,
        rating=rating_value,
        comment=comment,
    )
    session.add(rating)
    _refresh_reputation(session, rated, rating_value)
    notify(
        session,
        rated.id,
        "rating_received",
        "New review",
        f'You received a {rating_value}-star review for "{donation.title}".',
        {"donation_id": donation.id},
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409,
            detail="You already left a review for this user on this donation.",
        )
    session.refresh(rating)
    logger.info("Rating %s: user %s rated %s on donation %s", rating.id, current.id, rated.id, donation.id)
    return rating
