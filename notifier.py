from typing import Any, Iterable, Optional

from sqlmodel import Session

from models import Notification


def notify(
    session: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> Notification:
    """Stage a notification row; the caller's commit persists it."""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
    )
    session.add(notification)
    return notification


def notify_many(
    session: Session,
    user_ids: Iterable[int],
    type: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> int:
    count = 0
    for user_id in user_ids:
        notify(session, user_id, type, title, message, data)
        count += 1
    return count
