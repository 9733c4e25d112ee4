"""Menu API router: the dish catalog and scheduled daily menus.

Everything except ``/today`` is limited to the caller's facility and mess
type. Writes need a mess admin.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from core.logger import get_logger
from core.security import Principal, require_role
from core.utils import pagination_info
from database.deps import get_db_read, get_db_write
from schemas.common import MealType, MenuStatus, MessageResponse, MessType
from schemas.menu_schema import (
    AddDailyMenuItemRequest,
    DailyMenuCreateRequest,
    DailyMenuListResponse,
    DailyMenuResponse,
    DailyMenuUpdateRequest,
    ItemCategory,
    ItemStatusUpdateRequest,
    MenuItemCreateRequest,
    MenuItemListResponse,
    MenuItemResponse,
    MenuItemUpdateRequest,
    StatusTransitionRequest,
)
from services.catalog import catalog_service
from services.scheduling import scheduling_service, serialize_daily_menu

logger = get_logger("api.menu")
router = APIRouter(prefix="/api/menu", tags=["menu"])

admin_only = require_role("mess_admin")
any_member = require_role("student", "mess_admin")


# Menu items

@router.post("/items", response_model=MenuItemResponse, status_code=201)
def create_menu_item(
    payload: MenuItemCreateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return MenuItemResponse.from_model(catalog_service.create_item(db, principal, payload))


@router.get("/items", response_model=MenuItemListResponse)
def list_menu_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[ItemCategory] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    principal: Principal = Depends(any_member),
    db: Session = Depends(get_db_read),
):
    items, total = catalog_service.list_items(
        db, principal, page=page, limit=limit,
        category=category.value if category else None, search=search, is_active=is_active,
    )
    return MenuItemListResponse(
        pagination=pagination_info(page, limit, total),
        data=[MenuItemResponse.from_model(i) for i in items],
    )


@router.get("/items/popular", response_model=List[MenuItemResponse])
def popular_menu_items(
    limit: int = Query(10, ge=1, le=50),
    principal: Principal = Depends(any_member),
    db: Session = Depends(get_db_read),
):
    return [MenuItemResponse.from_model(i) for i in catalog_service.popular_items(db, principal, limit=limit)]


@router.get("/items/{item_id}", response_model=MenuItemResponse)
def get_menu_item(item_id: int, principal: Principal = Depends(any_member), db: Session = Depends(get_db_read)):
    return MenuItemResponse.from_model(catalog_service.get_item(db, principal, item_id))


@router.put("/items/{item_id}", response_model=MenuItemResponse)
def update_menu_item(
    item_id: int,
    payload: MenuItemUpdateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return MenuItemResponse.from_model(catalog_service.update_item(db, principal, item_id, payload))


@router.delete("/items/{item_id}", response_model=MessageResponse)
def delete_menu_item(item_id: int, principal: Principal = Depends(admin_only), db: Session = Depends(get_db_write)):
    catalog_service.delete_item(db, principal, item_id)
    return MessageResponse(message="Menu item deleted successfully")


@router.get("/items/{item_id}/availability")
def check_menu_item_availability(
    item_id: int,
    principal: Principal = Depends(any_member),
    db: Session = Depends(get_db_write),
):
    item, available = catalog_service.check_availability(db, principal, item_id)
    return {
        "success": True,
        "item_id": item.id,
        "is_available": available,
        "availability_reason": item.availability_reason,
        "estimated_available_at": item.estimated_available_at,
    }


# Daily menus

@router.get("/today", response_model=List[DailyMenuResponse])
def today_menus(
    facility_id: Optional[int] = Query(None, alias="facilityId"),
    mess_type: Optional[MessType] = Query(None, alias="messType"),
    meal_type: Optional[MealType] = Query(None, alias="mealType"),
    db: Session = Depends(get_db_read),
):
    """Non-draft menus of today for a facility and mess type."""
    if facility_id is None or mess_type is None:
        raise ValidationError("facilityId and messType are required", field="facilityId")
    menus = scheduling_service.today_menus(
        db, facility_id, mess_type.value, meal_type=meal_type.value if meal_type else None,
    )
    return [serialize_daily_menu(m) for m in menus]


@router.post("/daily", response_model=DailyMenuResponse, status_code=201)
def create_daily_menu(
    payload: DailyMenuCreateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return serialize_daily_menu(scheduling_service.create_daily_menu(db, principal, payload))


@router.get("/daily", response_model=DailyMenuListResponse)
def list_daily_menus(
    on_date: Optional[date] = Query(None, alias="date"),
    meal_type: Optional[MealType] = Query(None, alias="mealType"),
    status: Optional[MenuStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(any_member),
    db: Session = Depends(get_db_read),
):
    menus, total = scheduling_service.list_daily_menus(
        db, principal, on_date=on_date,
        meal_type=meal_type.value if meal_type else None,
        status=status.value if status else None,
        page=page, limit=limit,
    )
    return DailyMenuListResponse(
        pagination=pagination_info(page, limit, total),
        data=[serialize_daily_menu(m) for m in menus],
    )


@router.get("/daily/{menu_id}", response_model=DailyMenuResponse)
def get_daily_menu(menu_id: int, principal: Principal = Depends(any_member), db: Session = Depends(get_db_read)):
    return serialize_daily_menu(scheduling_service.get_daily_menu(db, principal, menu_id))


@router.put("/daily/{menu_id}", response_model=DailyMenuResponse)
def update_daily_menu(
    menu_id: int,
    payload: DailyMenuUpdateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return serialize_daily_menu(scheduling_service.update_daily_menu(db, principal, menu_id, payload))


@router.put("/daily/{menu_id}/publish", response_model=DailyMenuResponse)
def publish_daily_menu(menu_id: int, principal: Principal = Depends(admin_only), db: Session = Depends(get_db_write)):
    return serialize_daily_menu(scheduling_service.publish(db, principal, menu_id))


@router.put("/daily/{menu_id}/status", response_model=DailyMenuResponse)
def transition_daily_menu(
    menu_id: int,
    payload: StatusTransitionRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return serialize_daily_menu(scheduling_service.transition(db, principal, menu_id, payload.status.value))


@router.post("/daily/{menu_id}/items", response_model=DailyMenuResponse, status_code=201)
def add_daily_menu_item(
    menu_id: int,
    payload: AddDailyMenuItemRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    return serialize_daily_menu(scheduling_service.add_item(db, principal, menu_id, payload))


@router.put("/daily/{menu_id}/items/{menu_item_id}/status", response_model=DailyMenuResponse)
def update_daily_menu_item_status(
    menu_id: int,
    menu_item_id: int,
    payload: ItemStatusUpdateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db_write),
):
    menu = scheduling_service.update_item_status(db, principal, menu_id, menu_item_id, payload)
    return serialize_daily_menu(menu)
