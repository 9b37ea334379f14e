from typing import List, Optional

from fastapi import APIRouter, HTTPException, Response
from sqlmodel import select

from db import SessionDep
from lifecycle import expire_donations
from models import Donation, Flag, Profile
from moderation import (
    collect_stats,
    delete_donation,
    ensure_moderator,
    ensure_outranks,
    review_flag,
    set_donation_hidden,
    set_user_banned,
)
from schemas import AdminStats, DonationRead, FlagReview, ProfileRead
from .auth import CurrentUserDep

router = APIRouter(tags=["admin"])


def _get_donation(session: SessionDep, donation_id: int) -> Donation:
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    return donation


def _get_user(session: SessionDep, user_id: int) -> Profile:
    user = session.get(Profile, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/stats", response_model=AdminStats)
def stats(session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    return collect_stats(session)


@router.get("/flags", response_model=List[Flag])
def list_flags(session: SessionDep, current: CurrentUserDep, status: Optional[str] = None):
    """
    The moderation queue, newest first.
    """
    ensure_moderator(current)
    query = select(Flag)
    if status is not None:
        query = query.where(Flag.status == status)
    return session.exec(query.order_by(Flag.created_at.desc(), Flag.id.desc())).all()


@router.post("/flags/{flag_id}/review", response_model=Flag)
def review(flag_id: int, data: FlagReview, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    flag = session.get(Flag, flag_id)
    if flag is None:
        raise HTTPException(status_code=404, detail="Flag not found")
    return review_flag(session, current, flag, data.status)


@router.post("/donations/{donation_id}/hide", response_model=DonationRead)
def hide_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    return set_donation_hidden(session, _get_donation(session, donation_id), True)


@router.post("/donations/{donation_id}/unhide", response_model=DonationRead)
def unhide_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    return set_donation_hidden(session, _get_donation(session, donation_id), False)


@router.delete("/donations/{donation_id}", status_code=204)
def remove_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    donation = _get_donation(session, donation_id)
    owner = session.get(Profile, donation.donor_id)
    if owner is not None:
        ensure_outranks(current, owner)
    delete_donation(session, donation)
    return Response(status_code=204)


@router.post("/users/{user_id}/ban", response_model=ProfileRead)
def ban_user(user_id: int, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    user = _get_user(session, user_id)
    if user.id == current.id:
        raise HTTPException(status_code=400, detail="You cannot ban yourself")
    ensure_outranks(current, user)
    return set_user_banned(session, user, True)


@router.post("/users/{user_id}/unban", response_model=ProfileRead)
def unban_user(user_id: int, session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    user = _get_user(session, user_id)
    ensure_outranks(current, user)
    return set_user_banned(session, user, False)


@router.post("/expire")
def expire(session: SessionDep, current: CurrentUserDep):
    ensure_moderator(current)
    return {"expired": expire_donations(session)}
