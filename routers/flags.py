from fastapi import APIRouter, HTTPException

from db import SessionDep
from models import Donation, Flag, Profile
from schemas import FlagCreate
from .auth import CurrentUserDep

router = APIRouter(tags=["flags"])


@router.post("/", response_model=Flag, status_code=201)
def report(data: FlagCreate, session: SessionDep, current: CurrentUserDep):
    """
    File a report against a listing or a user; it lands in the moderation queue.
    """
    target_model = Donation if data.target_type == "donation" else Profile
    if session.get(target_model, data.target_id) is None:
        raise HTTPException(status_code=404, detail=f"{data.target_type.capitalize()} not found")

    flag = Flag(
        reporter_id=current.id,
        target_type=data.target_type,
        target_id=data.target_id,
        reason=data.reason,
        description=data.description,
        status="pending",
    )
    session.add(flag)
    session.commit()
    session.refresh(flag)
    return flag
