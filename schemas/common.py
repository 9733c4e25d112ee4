"""Enumerations and small shared schemas used across the API."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class FacilityType(str, Enum):
    college = "college"
    hostel = "hostel"


class MessType(str, Enum):
    college_mess = "college_mess"
    hostel_mess = "hostel_mess"


MESS_TYPE_BY_FACILITY = {
    FacilityType.college.value: MessType.college_mess.value,
    FacilityType.hostel.value: MessType.hostel_mess.value,
}


class Role(str, Enum):
    student = "student"
    mess_admin = "mess_admin"


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class MenuStatus(str, Enum):
    draft = "draft"
    published = "published"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class PreparationStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    ready = "ready"
    served_out = "served_out"


class VoteType(str, Enum):
    up = "up"
    down = "down"


class PhotoRef(BaseModel):
    """Reference to an image kept by the object store; bytes never pass through here."""

    url: str = Field(..., min_length=1, examples=["https://cdn.example.com/mess/abc.jpg"])
    public_id: str = Field(..., min_length=1, examples=["mess/abc"])
    caption: Optional[str] = Field(None, max_length=200)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MessageResponse(BaseModel):
    """Plain acknowledgement for operations with nothing else to return."""

    success: bool = True
    message: str


def photo_dicts(photos: Optional[List[PhotoRef]]) -> list:
    return [p.model_dump() for p in photos or []]
