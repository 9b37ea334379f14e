"""
Reservation lifecycle.

Reservation states: pending -> accepted | declined, accepted -> completed |
canceled. Listing states follow: available -> reserved -> picked_up, with
canceled / expired reachable before pickup.

Every operation stages all of its writes on the caller's session and commits
once; an exception rolls the whole operation back.
"""
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, List, Optional, Tuple
import logging

from fastapi import HTTPException, status
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from models import Donation, Message, Profile, Reservation, utcnow
from notifier import notify, notify_many
from schemas import ReservationCreate

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_MESSAGE = "Your reservation has been accepted."


@contextmanager
def _transaction(session: Session) -> Iterator[None]:
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


def _get_reservation(session: Session, reservation_id: int) -> Reservation:
    reservation = session.get(Reservation, reservation_id)
    if reservation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


def _get_donation(session: Session, donation_id: int) -> Donation:
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    return donation


def get_owned_reservation(
    session: Session, owner: Profile, reservation_id: int
) -> Tuple[Reservation, Donation]:
    reservation = _get_reservation(session, reservation_id)
    donation = _get_donation(session, reservation.donation_id)
    if donation.donor_id != owner.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage reservations for your own donations.",
        )
    return reservation, donation


def _require_status(reservation: Reservation, expected: str) -> None:
    if reservation.status != expected:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only {expected} reservations can be updated (current: {reservation.status})",
        )


def _send_message(session: Session, donation: Donation, sender_id: int, recipient_id: int, content: str) -> None:
    session.add(
        Message(
            donation_id=donation.id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
        )
    )


def create_reservation(
    session: Session,
    requester: Profile,
    data: ReservationCreate,
    today: Optional[date] = None,
) -> Reservation:
    today = today or date.today()
    donation = _get_donation(session, data.donation_id)
    if donation.is_hidden:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    if donation.donor_id == requester.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot reserve your own donation",
        )
    if requester.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account is banned")
    if donation.status != "available" or donation.expiry_date < today:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This donation is no longer available",
        )

    existing = session.exec(
        select(Reservation.id).where(
            Reservation.donation_id == donation.id,
            Reservation.recipient_id == requester.id,
        )
    ).first()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have a reservation for this donation",
        )

    reservation = Reservation(
        donation_id=donation.id,
        recipient_id=requester.id,
        status="pending",
        message=data.message,
        pickup_time=data.pickup_time,
    )
    try:
        with _transaction(session):
            session.add(reservation)
            notify(
                session,
                donation.donor_id,
                "reservation_request",
                "New reservation request",
                f'Someone wants to reserve your "{donation.title}"',
                {"donation_id": donation.id, "recipient_id": requester.id},
            )
    except IntegrityError:
        # lost a race against the same requester's parallel request
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have a reservation for this donation",
        )
    session.refresh(reservation)
    logger.info("Reservation %s created on donation %s by user %s", reservation.id, donation.id, requester.id)
    return reservation


def approve_reservation(
    session: Session,
    owner: Profile,
    reservation_id: int,
    message: Optional[str] = None,
    pickup_time: Optional[datetime] = None,
) -> Reservation:
    """
    Accept one pending request and decline every competing one.

    The listing is claimed with a conditional update (available -> reserved)
    before anything else is written, so two approvals racing on the same
    listing cannot both succeed.
    """
    reservation, donation = get_owned_reservation(session, owner, reservation_id)
    _require_status(reservation, "pending")

    with _transaction(session):
        claimed = session.exec(  # type: ignore[call-overload]
            update(Donation)
            .where(Donation.id == donation.id, Donation.status == "available")
            .values(status="reserved", updated_at=utcnow())
        )
        if claimed.rowcount != 1:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This donation is no longer available",
            )

        reservation.status = "accepted"
        if pickup_time is not None:
            reservation.pickup_time = pickup_time
        reservation.updated_at = utcnow()
        session.add(reservation)

        text = (message or "").strip() or DEFAULT_ACCEPT_MESSAGE
        _send_message(session, donation, owner.id, reservation.recipient_id, text)
        notify(
            session,
            reservation.recipient_id,
            "reservation_accepted",
            "Reservation accepted",
            "Your reservation was accepted. Check messages for pickup details.",
            {"donation_id": donation.id, "reservation_id": reservation.id},
        )

        others: List[Reservation] = list(
            session.exec(
                select(Reservation).where(
                    Reservation.donation_id == donation.id,
                    Reservation.status == "pending",
                    Reservation.id != reservation.id,
                )
            ).all()
        )
        if others:
            session.exec(  # type: ignore[call-overload]
                update(Reservation)
                .where(
                    Reservation.donation_id == donation.id,
                    Reservation.status == "pending",
                    Reservation.id != reservation.id,
                )
                .values(status="declined", updated_at=utcnow())
            )
            notify_many(
                session,
                [other.recipient_id for other in others],
                "reservation_declined",
                "Reservation unavailable",
                "Another request was accepted for this donation.",
                {"donation_id": donation.id},
            )

    session.refresh(reservation)
    logger.info(
        "Reservation %s accepted on donation %s; %d competing requests declined",
        reservation.id,
        donation.id,
        len(others),
    )
    return reservation


def decline_reservation(
    session: Session,
    owner: Profile,
    reservation_id: int,
    message: Optional[str] = None,
) -> Reservation:
    reservation, donation = get_owned_reservation(session, owner, reservation_id)
    _require_status(reservation, "pending")

    with _transaction(session):
        reservation.status = "declined"
        reservation.updated_at = utcnow()
        session.add(reservation)

        text = (message or "").strip()
        if text:
            _send_message(session, donation, owner.id, reservation.recipient_id, text)
        notify(
            session,
            reservation.recipient_id,
            "reservation_declined",
            "Reservation declined",
            "Your reservation request was declined.",
            {"donation_id": donation.id, "reservation_id": reservation.id},
        )

    session.refresh(reservation)
    logger.info("Reservation %s declined on donation %s", reservation.id, donation.id)
    return reservation


def complete_reservation(
    session: Session,
    owner: Profile,
    reservation_id: int,
    confirm: bool,
) -> Reservation:
    reservation, donation = get_owned_reservation(session, owner, reservation_id)
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Marking a donation as picked up must be confirmed",
        )
    _require_status(reservation, "accepted")

    with _transaction(session):
        reservation.status = "completed"
        reservation.updated_at = utcnow()
        donation.status = "picked_up"
        donation.updated_at = utcnow()
        session.add(reservation)
        session.add(donation)
        notify(
            session,
            reservation.recipient_id,
            "reservation_completed",
            "Donation received",
            "The donation was marked as received. Thank you!",
            {"donation_id": donation.id, "reservation_id": reservation.id},
        )

    session.refresh(reservation)
    logger.info("Reservation %s completed; donation %s picked up", reservation.id, donation.id)
    return reservation


def cancel_reservation(session: Session, requester: Profile, reservation_id: int) -> Reservation:
    """The requester withdraws a pending or accepted reservation."""
    reservation = _get_reservation(session, reservation_id)
    if reservation.recipient_id != requester.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only cancel your own reservations.",
        )
    if reservation.status not in ("pending", "accepted"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A {reservation.status} reservation cannot be canceled",
        )
    donation = _get_donation(session, reservation.donation_id)
    was_accepted = reservation.status == "accepted"

    with _transaction(session):
        reservation.status = "canceled"
        reservation.updated_at = utcnow()
        session.add(reservation)
        if was_accepted:
            if donation.status == "reserved":
                donation.status = "available"
                donation.updated_at = utcnow()
                session.add(donation)
            notify(
                session,
                donation.donor_id,
                "reservation_canceled",
                "Reservation canceled",
                f'The accepted reservation for "{donation.title}" was canceled by the requester.',
                {"donation_id": donation.id, "reservation_id": reservation.id},
            )

    session.refresh(reservation)
    logger.info("Reservation %s canceled by requester %s", reservation.id, requester.id)
    return reservation


def cancel_donation(session: Session, owner: Profile, donation: Donation) -> Donation:
    """The owner withdraws a listing; open reservations on it are canceled."""
    if donation.donor_id != owner.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only cancel your own donations.",
        )
    if donation.status not in ("available", "reserved"):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A {donation.status} donation cannot be canceled",
        )

    with _transaction(session):
        open_reservations = session.exec(
            select(Reservation).where(
                Reservation.donation_id == donation.id,
                col(Reservation.status).in_(["pending", "accepted"]),
            )
        ).all()
        for reservation in open_reservations:
            reservation.status = "canceled"
            reservation.updated_at = utcnow()
            session.add(reservation)
        notify_many(
            session,
            [r.recipient_id for r in open_reservations],
            "donation_canceled",
            "Donation canceled",
            f'"{donation.title}" was withdrawn by the donor.',
            {"donation_id": donation.id},
        )
        donation.status = "canceled"
        donation.updated_at = utcnow()
        session.add(donation)

    session.refresh(donation)
    logger.info("Donation %s canceled by owner", donation.id)
    return donation


def expire_donations(session: Session, today: Optional[date] = None) -> int:
    """Mark available or reserved listings past their expiry date as expired."""
    today = today or date.today()
    with _transaction(session):
        result = session.exec(  # type: ignore[call-overload]
            update(Donation)
            .where(
                col(Donation.status).in_(["available", "reserved"]),
                Donation.expiry_date < today,
            )
            .values(status="expired", updated_at=utcnow())
        )
    count = result.rowcount or 0
    if count:
        logger.info("Expired %d donations", count)
    return count
