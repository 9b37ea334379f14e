from collections.abc import Generator
from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from config import settings

logger = logging.getLogger(__name__)

# Names match the intake adapter's category enum.
DEFAULT_CATEGORIES = [
    ("bread", "Bread and baked goods", "🍞"),
    ("dairy", "Milk, cheese, yogurt", "🧀"),
    ("produce", "Fruit and vegetables", "🥕"),
    ("canned", "Canned and jarred food", "🥫"),
    ("beverages", "Drinks", "🧃"),
    ("desserts", "Sweets and desserts", "🍰"),
    ("other", "Everything else", "📦"),
]


def _build_engine(url: str):
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across the threadpool.
        return create_engine(
            url,
            echo=settings.sql_echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=settings.sql_echo, pool_pre_ping=True)


engine = _build_engine(settings.database_url)


def create_db_and_tables() -> None:
    """Create all tables in the database if they don't exist."""
    import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def seed_categories() -> None:
    from models import Category

    with Session(engine) as session:
        existing = set(session.exec(select(Category.name)).all())
        added = 0
        for name, description, icon in DEFAULT_CATEGORIES:
            if name in existing:
                continue
            session.add(Category(name=name, description=description, icon=icon))
            added += 1
        session.commit()
    if added:
        logger.info("Seeded %d categories", added)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]
