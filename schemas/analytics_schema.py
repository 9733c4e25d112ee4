"""Response schemas for rating statistics and admin analytics."""

from datetime import date
from typing import Any, Dict, List

from pydantic import BaseModel


class DateRange(BaseModel):
    start: date
    end: date


class MealTypeSummary(BaseModel):
    meal_type: str
    total_ratings: int
    average_overall: float
    average_taste: float
    average_quantity: float
    average_freshness: float
    average_value: float


class DailyTrend(BaseModel):
    date: date
    meal_type: str
    average_rating: float
    total_ratings: int


class FacilityStats(BaseModel):
    summary: List[MealTypeSummary]
    daily_trends: List[DailyTrend]
    date_range: DateRange


class FacilityStatsResponse(BaseModel):
    success: bool = True
    data: FacilityStats


class AnalyticsResponse(BaseModel):
    """Envelope for the dashboard and report endpoints; ``data`` varies per report."""

    success: bool = True
    data: Dict[str, Any]
