from datetime import datetime, timezone
import logging

from fastapi import HTTPException, status
from sqlalchemy import delete, func
from sqlmodel import Session, select

from models import Donation, Flag, Message, Profile, Rating, Reservation
from notifier import notify
from schemas import AdminStats
from storage import remove_images

logger = logging.getLogger(__name__)

MODERATOR_ROLES = {"admin", "ngo"}


def is_moderator(profile: Profile) -> bool:
    return profile.role in MODERATOR_ROLES


def ensure_moderator(profile: Profile) -> None:
    if not is_moderator(profile) or profile.is_banned:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only moderators can access this section.",
        )


def ensure_outranks(actor: Profile, target: Profile) -> None:
    """Only an admin may act against an admin account."""
    if target.role == "admin" and actor.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can moderate admin accounts.",
        )


def set_donation_hidden(session: Session, donation: Donation, hidden: bool) -> Donation:
    if donation.is_hidden == hidden:
        return donation
    donation.is_hidden = hidden
    donation.updated_at = datetime.now(timezone.utc)
    session.add(donation)
    if hidden:
        notify(
            session,
            donation.donor_id,
            "donation_hidden",
            "Donation hidden",
            f'"{donation.title}" was hidden by a moderator.',
            {"donation_id": donation.id},
        )
    session.commit()
    session.refresh(donation)
    logger.info("Donation %s %s", donation.id, "hidden" if hidden else "unhidden")
    return donation


def delete_donation(session: Session, donation: Donation) -> None:
    """
    Delete a listing and the rows hanging off it.

    Image files go afterwards and only best-effort: a file that cannot be
    removed is logged and never blocks the row deletion.
    """
    images = list(donation.images or [])
    donation_id = donation.id
    session.exec(delete(Rating).where(Rating.donation_id == donation_id))  # type: ignore[call-overload]
    session.exec(delete(Message).where(Message.donation_id == donation_id))  # type: ignore[call-overload]
    session.exec(delete(Reservation).where(Reservation.donation_id == donation_id))  # type: ignore[call-overload]
    session.delete(donation)
    session.commit()
    removed = remove_images(images)
    logger.info("Donation %s deleted (%d/%d images removed)", donation_id, removed, len(images))


def set_user_banned(session: Session, user: Profile, banned: bool) -> Profile:
    """Toggle the ban flag. Existing listings and reservations are left alone."""
    if user.is_banned == banned:
        return user
    user.is_banned = banned
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    if banned:
        notify(
            session,
            user.id,
            "account_banned",
            "Account suspended",
            "Your account was suspended by a moderator.",
        )
    session.commit()
    session.refresh(user)
    logger.info("User %s %s", user.id, "banned" if banned else "unbanned")
    return user


def review_flag(session: Session, reviewer: Profile, flag: Flag, new_status: str) -> Flag:
    flag.status = new_status
    flag.reviewed_by = reviewer.id
    flag.reviewed_at = datetime.now(timezone.utc)
    session.add(flag)
    session.commit()
    session.refresh(flag)
    logger.info("Flag %s marked %s by %s", flag.id, new_status, reviewer.id)
    return flag


def collect_stats(session: Session) -> AdminStats:
    def count(query) -> int:
        return session.exec(query).one()

    return AdminStats(
        total_users=count(select(func.count()).select_from(Profile)),
        total_donations=count(select(func.count()).select_from(Donation)),
        active_donations=count(
            select(func.count()).select_from(Donation).where(Donation.status == "available")
        ),
        pending_flags=count(select(func.count()).select_from(Flag).where(Flag.status == "pending")),
    )
