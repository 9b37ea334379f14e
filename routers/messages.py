from typing import List

from fastapi import APIRouter, HTTPException
from sqlmodel import and_, or_, select

from db import SessionDep
from models import Donation, Message, Reservation
from schemas import MessageCreate
from .auth import CurrentUserDep

router = APIRouter(tags=["messages"])


def _ensure_conversation(session: SessionDep, donation: Donation, user_a: int, user_b: int) -> None:
    """
    A thread exists between a listing's owner and someone holding a
    reservation on it.
    """
    if donation.donor_id == user_a:
        other = user_b
    elif donation.donor_id == user_b:
        other = user_a
    else:
        raise HTTPException(status_code=403, detail="Messages are between the donor and a requester.")
    has_reservation = session.exec(
        select(Reservation.id).where(
            Reservation.donation_id == donation.id,
            Reservation.recipient_id == other,
        )
    ).first()
    if has_reservation is None:
        raise HTTPException(status_code=403, detail="No reservation links these users on this donation.")


@router.post("/", response_model=Message, status_code=201)
def send_message(data: MessageCreate, session: SessionDep, current: CurrentUserDep):
    donation = session.get(Donation, data.donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    if data.recipient_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot message yourself")
    _ensure_conversation(session, donation, current.id, data.recipient_id)

    message = Message(
        donation_id=donation.id,
        sender_id=current.id,
        recipient_id=data.recipient_id,
        content=data.content,
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


@router.get("/", response_model=List[Message])
def read_thread(donation_id: int, with_user: int, session: SessionDep, current: CurrentUserDep):
    """
    The conversation between the caller and `with_user` on one listing,
    oldest first. Messages addressed to the caller are marked read.
    """
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise HTTPException(status_code=404, detail="Donation not found")
    _ensure_conversation(session, donation, current.id, with_user)

    messages = session.exec(
        select(Message)
        .where(
            Message.donation_id == donation_id,
            or_(
                and_(Message.sender_id == current.id, Message.recipient_id == with_user),
                and_(Message.sender_id == with_user, Message.recipient_id == current.id),
            ),
        )
        .order_by(Message.created_at.asc(), Message.id.asc())
    ).all()

    unread = [m for m in messages if m.recipient_id == current.id and not m.is_read]
    if unread:
        for m in unread:
            m.is_read = True
            session.add(m)
        session.commit()
        for m in messages:
            session.refresh(m)
    return messages
