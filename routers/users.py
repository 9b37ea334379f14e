# routers/users.py
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, HTTPException
from sqlmodel import select

from db import SessionDep
from models import Profile, Rating
from schemas import ProfilePrivate, ProfileRead, ProfileUpdate
from .auth import CurrentUserDep

router = APIRouter(tags=["users"])


@router.patch("/me", response_model=ProfilePrivate)
def update_own_profile(update: ProfileUpdate, session: SessionDep, current: CurrentUserDep):
    """
    Edit display name, bio, contact and location fields.
    """
    changes = update.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(current, field, value)
    if changes:
        current.updated_at = datetime.now(timezone.utc)
        session.add(current)
        session.commit()
        session.refresh(current)
    return current


@router.get("/{user_id}", response_model=ProfileRead)
def get_user(user_id: int, session: SessionDep):
    """
    Get a single public profile by ID.
    """
    user = session.get(Profile, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/ratings", response_model=List[Rating])
def list_user_ratings(user_id: int, session: SessionDep):
    if session.get(Profile, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return session.exec(
        select(Rating)
        .where(Rating.rated_id == user_id)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
    ).all()
