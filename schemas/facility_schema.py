"""Schemas for the facility and mess directory."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import FacilityType

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class OperatingWindow(BaseModel):
    start: str = Field(..., pattern=HHMM, examples=["07:00"])
    end: str = Field(..., pattern=HHMM, examples=["10:00"])


class OperatingHours(BaseModel):
    breakfast: Optional[OperatingWindow] = None
    lunch: Optional[OperatingWindow] = None
    dinner: Optional[OperatingWindow] = None


class Location(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class ContactInfo(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class FacilityCreateRequest(BaseModel):
    """Payload for creating a facility together with its first mess."""

    name: str = Field(..., min_length=1, max_length=100, examples=["SJ Hall"])
    type: FacilityType = Field(..., examples=["college"])
    mess_name: str = Field(..., min_length=1, max_length=100, examples=["SJ Mess"])
    description: Optional[str] = None
    location: Optional[Location] = None
    contact_info: Optional[ContactInfo] = None


class MessCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["North Mess"])
    description: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    operating_hours: Optional[OperatingHours] = None


class MessUpdateRequest(BaseModel):
    """Field-level patch; keys left unset are not touched."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    operating_hours: Optional[OperatingHours] = None
    is_active: Optional[bool] = None


class MessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mess_id: str
    name: str
    description: Optional[str] = None
    capacity: Optional[int] = None
    operating_hours: Optional[dict] = None
    is_active: bool
    created_at: Optional[datetime] = None


class FacilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    description: Optional[str] = None
    location: Optional[dict] = None
    contact_info: Optional[dict] = None
    is_active: bool
    messes: List[MessResponse] = []
    active_messes_count: int = 0
    created_at: Optional[datetime] = None


class FacilityListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[FacilityResponse]


class AvailabilityResponse(BaseModel):
    success: bool = True
    available: bool
    message: str


class FacilitySummary(BaseModel):
    id: int
    name: str
    type: str


class FacilityByMessResponse(BaseModel):
    facility: FacilitySummary
    mess: MessResponse


class DirectoryEntry(BaseModel):
    """An active facility with only its active messes."""

    facility_id: int
    facility_name: str
    facility_type: str
    messes: List[MessResponse]


class FacilityDetailResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: FacilityResponse


class MessDetailResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: MessResponse


class MessListResponse(BaseModel):
    success: bool = True
    data: List[MessResponse]


class DirectoryResponse(BaseModel):
    success: bool = True
    data: List[DirectoryEntry]


class MessNameUniqueResponse(BaseModel):
    unique: bool
