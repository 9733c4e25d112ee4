"""Schemas for rating submission, editing, voting and rating listings."""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .common import MealType, Pagination, PhotoRef, VoteType


class EmojiReaction(str, Enum):
    love = "😍"
    happy = "😊"
    neutral = "😐"
    sad = "😞"
    sick = "🤢"
    thumbs_up = "👍"
    thumbs_down = "👎"
    fire = "🔥"
    cold = "❄️"
    spicy = "🌶️"


class RatingMethod(str, Enum):
    swipe = "swipe"
    tap = "tap"
    detailed_form = "detailed_form"


class DeviceInfo(str, Enum):
    mobile = "mobile"
    tablet = "tablet"
    desktop = "desktop"


class CategoryRatings(BaseModel):
    taste: int = Field(..., ge=1, le=5)
    quantity: int = Field(..., ge=1, le=5)
    freshness: int = Field(..., ge=1, le=5)
    value: int = Field(..., ge=1, le=5)


class Review(BaseModel):
    text: Optional[str] = Field(None, max_length=500)
    is_anonymous: bool = False


class SeatingLocation(BaseModel):
    seating_area: Optional[str] = None
    table_number: Optional[str] = None


class RatingCreateRequest(BaseModel):
    """Payload for rating one item of one meal.

    ``overall_rating`` may be omitted, in which case it is derived from the
    category ratings.
    """

    menu_item_id: int = Field(..., examples=[1])
    daily_menu_id: int = Field(..., examples=[1])
    overall_rating: Optional[int] = Field(None, ge=1, le=5, examples=[4])
    category_ratings: CategoryRatings
    review: Optional[Review] = None
    photos: List[PhotoRef] = []
    emoji_reaction: Optional[EmojiReaction] = None
    meal_type: MealType = Field(..., examples=["lunch"])
    meal_date: date = Field(..., examples=["2024-01-10"])
    rating_method: RatingMethod = RatingMethod.tap
    time_spent: Optional[int] = Field(None, ge=0, description="Seconds")
    device_info: DeviceInfo = DeviceInfo.mobile
    location: Optional[SeatingLocation] = None


class RatingUpdateRequest(BaseModel):
    category_ratings: Optional[CategoryRatings] = None
    review: Optional[Review] = None
    emoji_reaction: Optional[EmojiReaction] = None


class VoteRequest(BaseModel):
    vote_type: VoteType = Field(..., examples=["up"])


class VoteResponse(BaseModel):
    upvotes: int
    downvotes: int
    helpfulness_score: float


class HelpfulVotes(BaseModel):
    upvotes: int
    downvotes: int


class RatingResponse(BaseModel):
    id: int
    student_id: Optional[int] = None
    student_name: Optional[str] = None
    menu_item_id: int
    daily_menu_id: int
    overall_rating: int
    category_ratings: CategoryRatings
    review: Optional[Review] = None
    photos: List[dict] = []
    emoji_reaction: Optional[str] = None
    meal_type: str
    meal_date: date
    facility_id: int
    mess_type: str
    rating_method: str
    time_spent: Optional[int] = None
    device_info: str
    helpful_votes: HelpfulVotes
    helpfulness_score: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RatingSummary(BaseModel):
    total_ratings: int
    average_overall: float
    average_taste: float
    average_quantity: float
    average_freshness: float
    average_value: float
    rating_distribution: Dict[int, int]


class MenuItemRatingsResponse(BaseModel):
    count: int
    pagination: Pagination
    summary: Optional[RatingSummary] = None
    data: List[RatingResponse]


class StudentStats(BaseModel):
    total_ratings: int
    average_rating: float
    ratings_this_month: int


class RatingHistoryResponse(BaseModel):
    count: int
    pagination: Pagination
    stats: Optional[StudentStats] = None
    data: List[RatingResponse]
