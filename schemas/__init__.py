"""Pydantic schema package for request and response models."""

from .common import MessageResponse, Pagination, PhotoRef
from .facility_schema import FacilityCreateRequest, FacilityResponse, MessCreateRequest, MessResponse, MessUpdateRequest
from .menu_schema import DailyMenuCreateRequest, DailyMenuResponse, MenuItemCreateRequest, MenuItemResponse
from .rating_schema import RatingCreateRequest, RatingResponse, RatingUpdateRequest, VoteRequest
from .user_schema import LoginRequest, RegisterRequest, TokenResponse, UserResponse

__all__ = [
    "MessageResponse",
    "Pagination",
    "PhotoRef",
    "FacilityCreateRequest",
    "FacilityResponse",
    "MessCreateRequest",
    "MessResponse",
    "MessUpdateRequest",
    "DailyMenuCreateRequest",
    "DailyMenuResponse",
    "MenuItemCreateRequest",
    "MenuItemResponse",
    "RatingCreateRequest",
    "RatingResponse",
    "RatingUpdateRequest",
    "VoteRequest",
    "LoginRequest",
    "RegisterRequest",
    "TokenResponse",
    "UserResponse",
]
