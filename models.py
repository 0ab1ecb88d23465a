from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    MEMBER = "member"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


# ---------- Records ----------
class User(BaseModel):
    id: int
    name: str
    email: str
    role: Role


class Category(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class Session(BaseModel):
    id: int
    name: str
    instructor_id: int
    category_id: int
    starts_at: datetime  # UTC
    ends_at: datetime  # UTC
    capacity: int
    created_at: datetime


class Reservation(BaseModel):
    id: int
    member_id: int
    session_id: int
    created_at: datetime


# ---------- Requests ----------
class UserIn(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    role: Role = Role.MEMBER


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2)
    description: Optional[str] = None


class SessionIn(BaseModel):
    instructor_id: int
    category_id: int
    name: str = Field(..., min_length=2)
    starts_at: datetime
    ends_at: datetime
    capacity: int


class SessionPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    instructor_id: Optional[int] = None
    category_id: Optional[int] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    capacity: Optional[int] = None


class ReserveRequest(BaseModel):
    member_id: int


# ---------- Responses ----------
class SessionOut(Session):
    available_slots: int


class SessionListItem(BaseModel):
    id: int
    name: str
    instructor_id: int
    category_id: int
    start: str  # formatted in the requested timezone
    end: str
    capacity: int
    available_slots: int


class BookingConfirmation(BaseModel):
    reservation: Reservation
    message: str
    available_slots: int


class BookingOut(BaseModel):
    id: int
    session_id: int
    session_name: str
    session_start_local: str
    member_id: int
    booked_at_utc: datetime


class ReservationPage(BaseModel):
    page: int
    limit: int
    items: List[Reservation]
