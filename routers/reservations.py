from typing import List, Optional

from fastapi import APIRouter, HTTPException
from sqlmodel import select

from db import SessionDep
from lifecycle import (
    approve_reservation,
    cancel_reservation,
    complete_reservation,
    create_reservation,
    decline_reservation,
)
from models import Donation, Reservation
from schemas import ApproveData, CompleteData, DeclineData, ReservationCreate
from .auth import CurrentUserDep

router = APIRouter(tags=["reservations"])


@router.post("/", response_model=Reservation, status_code=201)
def request_reservation(data: ReservationCreate, session: SessionDep, current: CurrentUserDep):
    return create_reservation(session, current, data)


@router.get("/", response_model=List[Reservation])
def list_my_reservations(
    session: SessionDep,
    current: CurrentUserDep,
    status: Optional[str] = None,
):
    """
    Reservations the caller has requested, newest first.
    """
    query = select(Reservation).where(Reservation.recipient_id == current.id)
    if status is not None:
        query = query.where(Reservation.status == status)
    return session.exec(query.order_by(Reservation.created_at.desc(), Reservation.id.desc())).all()


@router.get("/{reservation_id}", response_model=Reservation)
def get_reservation(reservation_id: int, session: SessionDep, current: CurrentUserDep):
    reservation = session.get(Reservation, reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    donation = session.get(Donation, reservation.donation_id)
    if current.id not in (reservation.recipient_id, donation.donor_id if donation else None):
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


@router.post("/{reservation_id}/approve", response_model=Reservation)
def approve(reservation_id: int, data: ApproveData, session: SessionDep, current: CurrentUserDep):
    return approve_reservation(
        session,
        current,
        reservation_id,
        message=data.message,
        pickup_time=data.pickup_time,
    )


@router.post("/{reservation_id}/decline", response_model=Reservation)
def decline(reservation_id: int, data: DeclineData, session: SessionDep, current: CurrentUserDep):
    return decline_reservation(session, current, reservation_id, message=data.message)


@router.post("/{reservation_id}/complete", response_model=Reservation)
def complete(reservation_id: int, data: CompleteData, session: SessionDep, current: CurrentUserDep):
    """
    Mark an accepted reservation as picked up. Terminal, so the body must
    carry {"confirm": true}.
    """
    return complete_reservation(session, current, reservation_id, confirm=data.confirm)


@router.post("/{reservation_id}/cancel", response_model=Reservation)
def cancel(reservation_id: int, session: SessionDep, current: CurrentUserDep):
    return cancel_reservation(session, current, reservation_id)
