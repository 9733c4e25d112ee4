"""Schemas for registration, login and profile management."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import FacilityType, Role


class RegisterRequest(BaseModel):
    """Registration payload.

    Students may pick an existing facility and mess. Mess admins either pick
    an existing pair or name a facility and mess to create.
    """

    email: EmailStr = Field(..., examples=["student@example.edu"])
    password: str = Field(..., min_length=6, examples=["s3cret!"])
    name: str = Field(..., min_length=1, max_length=50, examples=["Asha Rao"])
    phone: Optional[str] = Field(None, pattern=r"^[0-9]{10}$", examples=["9876543210"])
    role: Role = Field(..., examples=["student"])

    facility_id: Optional[int] = Field(None, description="Existing facility to join")
    mess_id: Optional[str] = Field(None, description="Existing mess to join")

    course: Optional[str] = None
    year: Optional[int] = Field(None, ge=1, le=5)
    college_id: Optional[str] = Field(None, max_length=50)
    hostel_id: Optional[str] = Field(None, max_length=50)

    facility_name: Optional[str] = Field(None, max_length=100, description="Facility to create (admins)")
    facility_type: Optional[FacilityType] = None
    mess_name: Optional[str] = Field(None, max_length=100, description="Mess to create (admins)")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdateDetailsRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, pattern=r"^[0-9]{10}$")
    course: Optional[str] = None
    year: Optional[int] = Field(None, ge=1, le=5)


class UpdatePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    phone: Optional[str] = None
    is_verified: bool
    facility_id: Optional[int] = None
    facility_name: Optional[str] = None
    facility_type: Optional[str] = None
    mess_id: Optional[str] = None
    mess_type: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    success: bool = True
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserDetailResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: UserResponse
