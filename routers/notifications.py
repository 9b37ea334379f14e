from typing import List

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy import func, update
from sqlmodel import select

from db import SessionDep
from models import Notification
from .auth import CurrentUserDep

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=List[Notification])
def list_notifications(
    session: SessionDep,
    current: CurrentUserDep,
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
):
    query = select(Notification).where(Notification.user_id == current.id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return session.exec(query).all()


@router.get("/unread-count")
def unread_count(session: SessionDep, current: CurrentUserDep):
    count = session.exec(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == current.id, Notification.is_read == False)  # noqa: E712
    ).one()
    return {"unread": count}


@router.post("/read-all")
def mark_all_read(session: SessionDep, current: CurrentUserDep):
    result = session.exec(  # type: ignore[call-overload]
        update(Notification)
        .where(Notification.user_id == current.id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    session.commit()
    return {"updated": result.rowcount or 0}


@router.post("/{notification_id}/read", response_model=Notification)
def mark_read(notification_id: int, session: SessionDep, current: CurrentUserDep):
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != current.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification
