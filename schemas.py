from datetime import date, datetime
from typing import Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, EmailStr, Field, model_validator


Condition = Literal["sealed", "open"]
StorageType = Literal["ambient", "refrigerated", "frozen"]
SortKey = Literal["newest", "expiry", "distance"]
FlagReason = Literal["safety", "expired", "suspect", "spam", "inappropriate"]


class ProfileCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=4)
    role: Literal["donor", "recipient", "ngo"] = "recipient"


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileRead(BaseModel):
    id: int
    display_name: str
    role: str
    bio: Optional[str] = None
    neighborhood: Optional[str] = None
    avatar_url: Optional[str] = None
    reputation_score: float
    reputation_count: int
    is_verified: bool
    is_banned: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfilePrivate(ProfileRead):
    email: EmailStr
    phone: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    bio: Optional[str] = None
    neighborhood: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class DonationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: str
    quantity: str = Field(min_length=1)
    expiry_date: date
    pickup_window_start: AwareDatetime
    pickup_window_end: AwareDatetime
    condition: Condition = "sealed"
    storage_type: StorageType = "ambient"
    address_text: str = Field(min_length=1)
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_pickup_window(self):
        if self.pickup_window_end <= self.pickup_window_start:
            raise ValueError("pickup_window_end must be after pickup_window_start")
        return self


class DonationRead(BaseModel):
    id: int
    donor_id: int
    category_id: int
    title: str
    description: str
    quantity: str
    condition: str
    storage_type: str
    expiry_date: date
    pickup_window_start: datetime
    pickup_window_end: datetime
    location_lat: float
    location_lng: float
    address_text: str
    images: list[str]
    is_hidden: bool
    status: str
    created_at: datetime
    distance_km: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class ReservationCreate(BaseModel):
    donation_id: int
    message: Optional[str] = Field(default=None, max_length=2000)
    pickup_time: Optional[AwareDatetime] = None


class ApproveData(BaseModel):
    message: Optional[str] = Field(default=None, max_length=2000)
    pickup_time: Optional[AwareDatetime] = None


class DeclineData(BaseModel):
    message: Optional[str] = Field(default=None, max_length=2000)


class CompleteData(BaseModel):
    confirm: bool = False


class MessageCreate(BaseModel):
    donation_id: int
    recipient_id: int
    content: str = Field(min_length=1, max_length=4000)


class RatingCreate(BaseModel):
    donation_id: int
    rated_id: int
    rating: float = Field(allow_inf_nan=False)
    comment: Optional[str] = None


class RatingEligibility(BaseModel):
    eligible: bool
    rated_id: Optional[int] = None
    already_reviewed: bool = False


class FlagCreate(BaseModel):
    target_type: Literal["donation", "user"]
    target_id: int
    reason: FlagReason
    description: Optional[str] = Field(default=None, max_length=2000)


class FlagReview(BaseModel):
    status: str = Field(pattern="^(reviewed|resolved)$")


class AdminStats(BaseModel):
    total_users: int
    total_donations: int
    active_donations: int
    pending_flags: int
