"""Admin analytics API router.

Every report is limited to the caller's facility and mess type and takes an
optional ``dateRange=start,end`` query value.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.logger import get_logger
from core.security import Principal, require_role
from core.utils import parse_date_range
from database.deps import get_db_read
from schemas.analytics_schema import AnalyticsResponse
from schemas.common import MealType
from schemas.menu_schema import ItemCategory
from services.analytics import analytics_service

logger = get_logger("api.analytics")
router = APIRouter(prefix="/api/analytics", tags=["analytics"])

admin_only = require_role("mess_admin")


@router.get("/dashboard", response_model=AnalyticsResponse)
def dashboard(
    date_range: Optional[str] = Query(None, alias="dateRange"),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_read),
):
    bounds = parse_date_range(date_range, default_days=7)
    return AnalyticsResponse(data=analytics_service.dashboard(db, principal, bounds))


@router.get("/meals", response_model=AnalyticsResponse)
def meal_analytics(
    date_range: Optional[str] = Query(None, alias="dateRange"),
    meal_type: Optional[MealType] = Query(None, alias="mealType"),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_read),
):
    data = analytics_service.meal_analytics(
        db, principal, parse_date_range(date_range), meal_type=meal_type.value if meal_type else None,
    )
    return AnalyticsResponse(data=data)


@router.get("/menu-items", response_model=AnalyticsResponse)
def menu_item_analytics(
    date_range: Optional[str] = Query(None, alias="dateRange"),
    category: Optional[ItemCategory] = None,
    sort_by: str = Query("rating", alias="sortBy", pattern="^(rating|popularity|recent)$"),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_read),
):
    data = analytics_service.menu_item_analytics(
        db, principal, parse_date_range(date_range),
        category=category.value if category else None, sort_by=sort_by,
    )
    return AnalyticsResponse(data=data)


@router.get("/engagement", response_model=AnalyticsResponse)
def engagement(
    date_range: Optional[str] = Query(None, alias="dateRange"),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_read),
):
    return AnalyticsResponse(data=analytics_service.engagement(db, principal, parse_date_range(date_range)))


@router.get("/export", response_model=AnalyticsResponse)
def export(
    export_type: str = Query("ratings", alias="type"),
    date_range: Optional[str] = Query(None, alias="dateRange"),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_read),
):
    data = analytics_service.export(db, principal, parse_date_range(date_range), export_type=export_type)
    logger.info("Export %s generated for facility id=%s", export_type, principal.facility_id)
    return AnalyticsResponse(data=data)
