from datetime import date, datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    display_name: str
    role: str = "recipient"  # donor | recipient | ngo | admin

    bio: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    neighborhood: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None

    reputation_score: float = 0.0
    reputation_count: int = 0
    is_verified: bool = False
    is_banned: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Donation(SQLModel, table=True):
    __tablename__ = "donations"

    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="profiles.id", index=True)
    category_id: int = Field(foreign_key="categories.id")

    title: str
    description: str
    quantity: str
    condition: str = "sealed"  # sealed | open
    storage_type: str = "ambient"  # ambient | refrigerated | frozen

    expiry_date: date = Field(index=True)
    pickup_window_start: datetime
    pickup_window_end: datetime

    location_lat: float
    location_lng: float
    address_text: str

    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_hidden: bool = False
    status: str = Field(default="available", index=True)
    # available | reserved | picked_up | canceled | expired

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Reservation(SQLModel, table=True):
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("donation_id", "recipient_id", name="uq_reservation_per_requester"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donations.id", index=True)
    recipient_id: int = Field(foreign_key="profiles.id", index=True)

    status: str = "pending"  # pending | accepted | declined | completed | canceled
    message: Optional[str] = None
    pickup_time: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donations.id", index=True)
    sender_id: int = Field(foreign_key="profiles.id")
    recipient_id: int = Field(foreign_key="profiles.id")
    content: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="profiles.id", index=True)
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Rating(SQLModel, table=True):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("donation_id", "rater_id", "rated_id", name="uq_rating_per_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donations.id", index=True)
    rater_id: int = Field(foreign_key="profiles.id")
    rated_id: int = Field(foreign_key="profiles.id", index=True)
    rating: int
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Flag(SQLModel, table=True):
    __tablename__ = "flags"

    id: Optional[int] = Field(default=None, primary_key=True)
    reporter_id: int = Field(foreign_key="profiles.id")
    target_type: str  # donation | user
    target_id: int
    reason: str  # safety | expired | suspect | spam | inappropriate
    description: Optional[str] = None
    status: str = Field(default="pending", index=True)  # pending | reviewed | resolved
    reviewed_by: Optional[int] = Field(default=None, foreign_key="profiles.id")
    reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
