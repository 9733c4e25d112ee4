"""Ratings API router.

Students submit, edit and delete their own ratings and vote on others'.
Item rating listings are visible to any signed-in member; facility
statistics are for mess admins.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.logger import get_logger
from core.security import Principal, get_current_principal, require_role
from core.utils import pagination_info, parse_date_range
from database.deps import get_db_read, get_db_write
from schemas.analytics_schema import FacilityStatsResponse
from schemas.common import MealType, MessageResponse
from schemas.rating_schema import (
    MenuItemRatingsResponse,
    RatingCreateRequest,
    RatingHistoryResponse,
    RatingResponse,
    RatingUpdateRequest,
    VoteRequest,
    VoteResponse,
)
from services.feedback import SORT_OPTIONS, feedback_service, helpfulness_score, serialize_rating

logger = get_logger("api.ratings")
router = APIRouter(prefix="/api/ratings", tags=["ratings"])

student_only = require_role("student")


@router.post("", response_model=RatingResponse, status_code=201)
def submit_rating(
    payload: RatingCreateRequest,
    principal: Principal = Depends(student_only),
    db: Session = Depends(get_db_write),
):
    """Rate one item of one meal; only allowed during that meal's window."""
    return serialize_rating(feedback_service.submit_rating(db, principal, payload), reveal_author=True)


@router.get("/item/{menu_item_id}", response_model=MenuItemRatingsResponse)
def menu_item_ratings(
    menu_item_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("newest", alias="sortBy", pattern="^(" + "|".join(SORT_OPTIONS) + ")$"),
    meal_date: Optional[date] = Query(None, alias="mealDate"),
    facility_id: Optional[int] = Query(None, alias="facilityId"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_read),
):
    ratings, total, summary = feedback_service.menu_item_ratings(
        db, menu_item_id, page=page, limit=limit, sort_by=sort_by,
        meal_date=meal_date, facility_id=facility_id,
    )
    return MenuItemRatingsResponse(
        count=len(ratings),
        pagination=pagination_info(page, limit, total),
        summary=summary,
        data=[serialize_rating(r) for r in ratings],
    )


@router.get("/my-history", response_model=RatingHistoryResponse)
def my_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    facility_id: Optional[int] = Query(None, alias="facilityId"),
    date_range: Optional[str] = Query(None, alias="dateRange"),
    principal: Principal = Depends(student_only),
    db: Session = Depends(get_db_read),
):
    bounds = parse_date_range(date_range) if date_range else None
    ratings, total, stats = feedback_service.rating_history(
        db, principal, page=page, limit=limit, facility_id=facility_id, date_range=bounds,
    )
    return RatingHistoryResponse(
        count=len(ratings),
        pagination=pagination_info(page, limit, total),
        stats=stats,
        data=[serialize_rating(r, reveal_author=True) for r in ratings],
    )


@router.get("/stats/facility", response_model=FacilityStatsResponse)
def facility_stats(
    date_range: Optional[str] = Query(None, alias="dateRange"),
    meal_type: Optional[MealType] = Query(None, alias="mealType"),
    principal: Principal = Depends(require_role("mess_admin")),
    db: Session = Depends(get_db_read),
):
    stats = feedback_service.facility_stats(
        db, principal, parse_date_range(date_range), meal_type=meal_type.value if meal_type else None,
    )
    return FacilityStatsResponse(data=stats)


@router.post("/{rating_id}/vote", response_model=VoteResponse)
def vote_on_rating(
    rating_id: int,
    payload: VoteRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db_write),
):
    rating = feedback_service.vote_on_rating(db, principal, rating_id, payload.vote_type.value)
    return VoteResponse(
        upvotes=rating.upvotes,
        downvotes=rating.downvotes,
        helpfulness_score=helpfulness_score(rating.upvotes, rating.downvotes),
    )


@router.put("/{rating_id}", response_model=RatingResponse)
def update_rating(
    rating_id: int,
    payload: RatingUpdateRequest,
    principal: Principal = Depends(student_only),
    db: Session = Depends(get_db_write),
):
    return serialize_rating(feedback_service.update_rating(db, principal, rating_id, payload), reveal_author=True)


@router.delete("/{rating_id}", response_model=MessageResponse)
def delete_rating(rating_id: int, principal: Principal = Depends(student_only), db: Session = Depends(get_db_write)):
    feedback_service.delete_rating(db, principal, rating_id)
    return MessageResponse(message="Rating deleted successfully")
