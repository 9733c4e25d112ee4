"""Schemas for menu items (dish catalog) and daily menus."""

from datetime import date, datetime
from datetime import date as Date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import CATEGORIES
from .common import MealType, MenuStatus, Pagination, PhotoRef, PreparationStatus


class ItemCategory(str, Enum):
    starter = "starter"
    main_course = "main_course"
    dessert = "dessert"
    beverage = "beverage"
    snack = "snack"
    bread = "bread"
    rice = "rice"
    dal = "dal"
    vegetable = "vegetable"
    pickle = "pickle"
    salad = "salad"


class CuisineType(str, Enum):
    indian = "indian"
    chinese = "chinese"
    continental = "continental"
    south_indian = "south_indian"
    north_indian = "north_indian"
    italian = "italian"
    mexican = "mexican"
    other = "other"


class Allergen(str, Enum):
    nuts = "nuts"
    dairy = "dairy"
    gluten = "gluten"
    soy = "soy"
    eggs = "eggs"
    seafood = "seafood"
    sesame = "sesame"
    mustard = "mustard"


class SpiceLevel(str, Enum):
    mild = "mild"
    medium = "medium"
    spicy = "spicy"
    very_spicy = "very_spicy"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    occasional = "occasional"
    seasonal = "seasonal"


class Weekday(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"


class Ingredient(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: Optional[str] = None
    unit: Optional[str] = None


class NutritionalInfo(BaseModel):
    calories: Optional[float] = Field(None, ge=0)
    protein: Optional[float] = Field(None, ge=0)
    carbs: Optional[float] = Field(None, ge=0)
    fat: Optional[float] = Field(None, ge=0)
    fiber: Optional[float] = Field(None, ge=0)
    sugar: Optional[float] = Field(None, ge=0)


class MenuItemCreateRequest(BaseModel):
    """Payload for adding a dish to the caller's mess catalog."""

    name: str = Field(..., min_length=1, max_length=100, examples=["Paneer Butter Masala"])
    description: Optional[str] = Field(None, max_length=500)
    category: ItemCategory = Field(..., examples=["main_course"])
    meal_type: MealType = Field(..., examples=["lunch"])
    cuisine_type: CuisineType = CuisineType.indian
    is_vegetarian: bool = True
    is_vegan: bool = False
    is_jain: bool = False
    allergens: List[Allergen] = []
    spice_level: SpiceLevel = SpiceLevel.medium
    images: List[PhotoRef] = []
    nutritional_info: Optional[NutritionalInfo] = None
    ingredients: List[Ingredient] = []
    preparation_time: Optional[int] = Field(None, ge=1, description="Minutes")
    serving_size: Optional[str] = None
    cost: Optional[float] = Field(None, ge=0)
    serving_days: List[Weekday] = []
    is_special_item: bool = False
    special_occasion: Optional[str] = None
    frequency: Frequency = Frequency.weekly


class MenuItemUpdateRequest(BaseModel):
    """Field-level patch; rating aggregates are not writable here."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[ItemCategory] = None
    meal_type: Optional[MealType] = None
    cuisine_type: Optional[CuisineType] = None
    is_vegetarian: Optional[bool] = None
    is_vegan: Optional[bool] = None
    is_jain: Optional[bool] = None
    allergens: Optional[List[Allergen]] = None
    spice_level: Optional[SpiceLevel] = None
    images: Optional[List[PhotoRef]] = None
    nutritional_info: Optional[NutritionalInfo] = None
    ingredients: Optional[List[Ingredient]] = None
    preparation_time: Optional[int] = Field(None, ge=1)
    serving_size: Optional[str] = None
    cost: Optional[float] = Field(None, ge=0)
    serving_days: Optional[List[Weekday]] = None
    is_special_item: Optional[bool] = None
    special_occasion: Optional[str] = None
    frequency: Optional[Frequency] = None
    is_available: Optional[bool] = None
    availability_reason: Optional[str] = None
    estimated_available_at: Optional[datetime] = None


class CategoryAggregate(BaseModel):
    average: float
    count: int


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    category: str
    meal_type: str
    cuisine_type: str
    is_vegetarian: bool
    is_vegan: bool
    is_jain: bool
    allergens: List[str] = []
    spice_level: str
    images: List[dict] = []
    nutritional_info: Optional[dict] = None
    ingredients: List[dict] = []
    preparation_time: Optional[int] = None
    serving_size: Optional[str] = None
    cost: Optional[float] = None
    facility_id: int
    mess_type: str
    average_rating: float
    total_ratings: int
    category_ratings: Dict[str, CategoryAggregate] = {}
    popularity_score: float
    is_active: bool
    is_available: bool
    availability_reason: Optional[str] = None
    estimated_available_at: Optional[datetime] = None
    serving_days: List[str] = []
    is_special_item: bool
    special_occasion: Optional[str] = None
    frequency: str
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, item) -> "MenuItemResponse":
        out = cls.model_validate(item)
        out.category_ratings = {
            c: CategoryAggregate(average=getattr(item, f"{c}_average"), count=getattr(item, f"{c}_count"))
            for c in CATEGORIES
        }
        return out


class MenuItemListResponse(BaseModel):
    pagination: Pagination
    data: List[MenuItemResponse]


class DailyMenuItemEntry(BaseModel):
    """An item listed when a daily menu is created or replaced wholesale."""

    item_id: int
    is_available: bool = True
    serving_size: Optional[str] = None
    special_notes: Optional[str] = None
    estimated_quantity: Optional[int] = Field(None, ge=0)
    cost_per_serving: Optional[float] = Field(None, ge=0)


class ServingTime(BaseModel):
    start: datetime
    end: datetime


class SpecialOccasion(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_special: bool = False


class Announcement(BaseModel):
    title: str = Field(..., max_length=100)
    message: str = Field(..., max_length=500)
    type: str = Field("info", pattern=r"^(info|warning|success|error)$")
    is_active: bool = True
    expires_at: Optional[datetime] = None


class BudgetInfo(BaseModel):
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)
    cost_per_student: Optional[float] = Field(None, ge=0)


class DailyMenuCreateRequest(BaseModel):
    date: Date = Field(..., examples=["2024-01-10"])
    meal_type: MealType = Field(..., examples=["lunch"])
    menu_items: List[DailyMenuItemEntry] = []
    serving_time: ServingTime
    expected_students: Optional[int] = Field(None, ge=0)
    special_occasion: Optional[SpecialOccasion] = None
    announcements: List[Announcement] = []


class DailyMenuUpdateRequest(BaseModel):
    """Allowed daily-menu changes; ``status`` goes through the transition table."""

    menu_items: Optional[List[DailyMenuItemEntry]] = None
    serving_time: Optional[ServingTime] = None
    expected_students: Optional[int] = Field(None, ge=0)
    actual_students: Optional[int] = Field(None, ge=0)
    special_occasion: Optional[SpecialOccasion] = None
    announcements: Optional[List[Announcement]] = None
    status: Optional[MenuStatus] = None
    budget_info: Optional[BudgetInfo] = None


class StatusTransitionRequest(BaseModel):
    status: MenuStatus


class AddDailyMenuItemRequest(DailyMenuItemEntry):
    pass


class ItemStatusUpdateRequest(BaseModel):
    status: PreparationStatus
    notes: Optional[str] = None
    actual_quantity: Optional[int] = Field(None, ge=0)
    remaining_quantity: Optional[int] = Field(None, ge=0)


class DailyMenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    item: Optional[MenuItemResponse] = None
    is_available: bool
    serving_size: Optional[str] = None
    special_notes: Optional[str] = None
    estimated_quantity: Optional[int] = None
    actual_quantity: Optional[int] = None
    remaining_quantity: Optional[int] = None
    cost_per_serving: Optional[float] = None
    preparation_status: str
    preparation_started_at: Optional[datetime] = None
    estimated_ready_at: Optional[datetime] = None
    actual_ready_at: Optional[datetime] = None
    added_at: Optional[datetime] = None


class RatingStats(BaseModel):
    total_ratings: int
    average_rating: float
    category_averages: Dict[str, float]
    participation_rate: int
    last_updated: Optional[datetime] = None


class DailyMenuResponse(BaseModel):
    id: int
    date: date
    meal_type: str
    facility_id: int
    mess_type: str
    status: str
    serving_time: ServingTime
    items: List[DailyMenuItemResponse]
    total_items: int
    expected_students: Optional[int] = None
    actual_students: int
    special_occasion: Optional[dict] = None
    announcements: List[dict] = []
    budget_info: BudgetInfo
    rating_stats: RatingStats
    completion_percentage: int
    cost_variance: Optional[float] = None
    timing_status: str
    created_by: int
    last_modified_by: Optional[int] = None
    created_at: Optional[datetime] = None


class DailyMenuListResponse(BaseModel):
    pagination: Pagination
    data: List[DailyMenuResponse]
