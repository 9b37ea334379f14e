from typing import List

from fastapi import APIRouter
from sqlmodel import select

from db import SessionDep
from models import Category

router = APIRouter(tags=["categories"])


@router.get("/", response_model=List[Category])
def list_categories(session: SessionDep):
    return session.exec(select(Category).order_by(Category.name)).all()
