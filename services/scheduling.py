"""Daily menu scheduling: the status state machine and per-item preparation."""

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from core.logger import get_logger
from core.repository import BaseRepository, run_in_transaction
from core.utils import round_half_up, utcnow
from database import models
from database.models import CATEGORIES
from schemas.menu_schema import (
    AddDailyMenuItemRequest,
    BudgetInfo,
    DailyMenuCreateRequest,
    DailyMenuItemEntry,
    DailyMenuItemResponse,
    DailyMenuResponse,
    DailyMenuUpdateRequest,
    ItemStatusUpdateRequest,
    MenuItemResponse,
    RatingStats,
    ServingTime,
)
from services.aggregates import participation_rate

logger = get_logger("services.scheduling")

# Allowed status moves. Terminal states have no way out.
TRANSITIONS: Dict[str, Set[str]] = {
    "draft": {"published", "cancelled"},
    "published": {"active", "cancelled"},
    "active": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

DUPLICATE_MENU = "Daily menu already exists for this date and meal type"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _count_available(menu: models.DailyMenu) -> int:
    return sum(1 for entry in menu.items if entry.is_available)


def completion_percentage(menu: models.DailyMenu) -> int:
    if not menu.items:
        return 0
    ready = sum(1 for e in menu.items if e.preparation_status in ("ready", "served_out"))
    return round_half_up(ready / len(menu.items) * 100)


def cost_variance(menu: models.DailyMenu) -> Optional[float]:
    if not menu.estimated_cost or not menu.actual_cost:
        return None
    return (menu.actual_cost - menu.estimated_cost) / menu.estimated_cost * 100


def timing_status(menu: models.DailyMenu, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    if now < menu.serving_start:
        return "upcoming"
    if now <= menu.serving_end:
        return "active"
    return "completed"


def serialize_daily_menu(menu: models.DailyMenu, now: Optional[datetime] = None) -> DailyMenuResponse:
    """Build the API view of a daily menu, including its derived values."""
    entries = []
    for entry in menu.items:
        view = DailyMenuItemResponse.model_validate(entry)
        if entry.menu_item is not None:
            view.item = MenuItemResponse.from_model(entry.menu_item)
        entries.append(view)

    return DailyMenuResponse(
        id=menu.id,
        date=menu.date,
        meal_type=menu.meal_type,
        facility_id=menu.facility_id,
        mess_type=menu.mess_type,
        status=menu.status,
        serving_time=ServingTime(start=menu.serving_start, end=menu.serving_end),
        items=entries,
        total_items=menu.total_items,
        expected_students=menu.expected_students,
        actual_students=menu.actual_students,
        special_occasion=menu.special_occasion,
        announcements=menu.announcements or [],
        budget_info=BudgetInfo(
            estimated_cost=menu.estimated_cost,
            actual_cost=menu.actual_cost,
            cost_per_student=menu.cost_per_student,
        ),
        rating_stats=RatingStats(
            total_ratings=menu.rating_total,
            average_rating=menu.rating_average,
            category_averages={c: getattr(menu, f"{c}_average") for c in CATEGORIES},
            participation_rate=menu.participation_rate,
            last_updated=menu.rating_stats_updated_at,
        ),
        completion_percentage=completion_percentage(menu),
        cost_variance=cost_variance(menu),
        timing_status=timing_status(menu, now),
        created_by=menu.created_by,
        last_modified_by=menu.last_modified_by,
        created_at=menu.created_at,
    )


class SchedulingService:
    """Creates daily menus and moves them through their lifecycle."""

    def _menus(self, session: Session) -> BaseRepository[models.DailyMenu]:
        return BaseRepository(models.DailyMenu, session, resource="Daily menu")

    def _scoped(self, session: Session, principal, menu_id: int) -> models.DailyMenu:
        menu = self._menus(session).first(
            id=menu_id, facility_id=principal.facility_id, mess_type=principal.mess_type,
        )
        if menu is None:
            raise NotFoundError("Daily menu", menu_id)
        return menu

    def _tenant_items(self, session: Session, principal, item_ids: Iterable[int]) -> Dict[int, models.MenuItem]:
        ids = list(item_ids)
        if len(set(ids)) != len(ids):
            raise ValidationError("A menu item can only be listed once per meal", field="menu_items")
        if not ids:
            return {}
        found = (
            session.query(models.MenuItem)
            .filter(
                models.MenuItem.id.in_(ids),
                models.MenuItem.facility_id == principal.facility_id,
                models.MenuItem.mess_type == principal.mess_type,
                models.MenuItem.is_active.is_(True),
            )
            .all()
        )
        if len(found) != len(ids):
            raise ValidationError("Some menu items are invalid or not available", field="menu_items")
        return {item.id: item for item in found}

    def _entry(self, entry: DailyMenuItemEntry, menu_item: models.MenuItem) -> models.DailyMenuItem:
        return models.DailyMenuItem(
            menu_item=menu_item,
            is_available=entry.is_available,
            serving_size=entry.serving_size,
            special_notes=entry.special_notes,
            estimated_quantity=entry.estimated_quantity,
            cost_per_serving=entry.cost_per_serving,
            added_at=utcnow(),
        )

    def _touch(self, menu: models.DailyMenu, principal) -> None:
        menu.total_items = _count_available(menu)
        menu.last_modified_by = principal.id
        menu.updated_at = utcnow()

    # Writes

    def create_daily_menu(self, session: Session, principal, payload: DailyMenuCreateRequest) -> models.DailyMenu:
        """Create a draft menu for one meal of one day.

        Raises:
            ConflictError: If the tenant already has a menu for that date and meal.
            ValidationError: If a listed item is not an active item of the tenant.
        """
        def operation():
            menus = self._menus(session)
            existing = menus.first(
                date=payload.date, meal_type=payload.meal_type.value,
                facility_id=principal.facility_id, mess_type=principal.mess_type,
            )
            if existing is not None:
                raise ConflictError(DUPLICATE_MENU, resource="DailyMenu")
            items = self._tenant_items(session, principal, (e.item_id for e in payload.menu_items))

            menu = models.DailyMenu(
                date=payload.date,
                meal_type=payload.meal_type.value,
                facility_id=principal.facility_id,
                mess_type=principal.mess_type,
                serving_start=_naive_utc(payload.serving_time.start),
                serving_end=_naive_utc(payload.serving_time.end),
                expected_students=payload.expected_students,
                special_occasion=payload.special_occasion.model_dump() if payload.special_occasion else None,
                announcements=[a.model_dump(mode="json") for a in payload.announcements],
                status="draft",
                created_by=principal.id,
            )
            menu.items = [self._entry(e, items[e.item_id]) for e in payload.menu_items]
            menu.total_items = _count_available(menu)
            return menus.add(menu)

        menu = run_in_transaction(session, operation, name="create_daily_menu", conflict_message=DUPLICATE_MENU)
        logger.info("Daily menu created: %s %s (id=%s)", menu.date, menu.meal_type, menu.id)
        return menu

    def update_daily_menu(self, session: Session, principal, menu_id: int, payload: DailyMenuUpdateRequest) -> models.DailyMenu:
        """Apply the fields set in ``payload``.

        Replacing ``menu_items`` swaps the whole entry list. A ``status``
        change goes through the same transition table as `transition`.
        """
        fields = payload.model_fields_set

        def operation():
            menu = self._scoped(session, principal, menu_id)
            if "menu_items" in fields and payload.menu_items is not None:
                items = self._tenant_items(session, principal, (e.item_id for e in payload.menu_items))
                menu.items.clear()
                session.flush()
                menu.items.extend(self._entry(e, items[e.item_id]) for e in payload.menu_items)
            if payload.serving_time is not None:
                menu.serving_start = _naive_utc(payload.serving_time.start)
                menu.serving_end = _naive_utc(payload.serving_time.end)
            if "expected_students" in fields:
                menu.expected_students = payload.expected_students
                menu.participation_rate = participation_rate(menu.rating_total, menu.expected_students)
            if payload.actual_students is not None:
                menu.actual_students = payload.actual_students
            if "special_occasion" in fields:
                menu.special_occasion = payload.special_occasion.model_dump() if payload.special_occasion else None
            if payload.announcements is not None:
                menu.announcements = [a.model_dump(mode="json") for a in payload.announcements]
            if payload.budget_info is not None:
                for key, value in payload.budget_info.model_dump(exclude_unset=True).items():
                    setattr(menu, key, value)
            if payload.status is not None and payload.status.value != menu.status:
                self._apply_transition(menu, payload.status.value)
            self._touch(menu, principal)
            return menu

        menu = run_in_transaction(session, operation, name="update_daily_menu")
        logger.info("Daily menu id=%s updated (%s)", menu_id, ", ".join(sorted(fields)))
        return menu

    def _apply_transition(self, menu: models.DailyMenu, target: str) -> None:
        if target == "published":
            self._check_publishable(menu)
        if target not in TRANSITIONS.get(menu.status, set()):
            raise InvalidStateError(f"Cannot change menu status from {menu.status} to {target}", state=menu.status)
        menu.status = target

    def _check_publishable(self, menu: models.DailyMenu) -> None:
        if menu.status in ("published", "active"):
            raise ConflictError("Menu is already published", resource="DailyMenu")
        if menu.status != "draft":
            raise InvalidStateError(f"Cannot publish a {menu.status} menu", state=menu.status)
        if not menu.items:
            raise InvalidStateError("Cannot publish menu without items", state=menu.status)

    def publish(self, session: Session, principal, menu_id: int) -> models.DailyMenu:
        """Move a draft menu with at least one item to ``published``.

        Raises:
            ConflictError: If the menu is already published or active.
            InvalidStateError: If the menu is terminal or has no items.
        """
        return self.transition(session, principal, menu_id, "published")

    def transition(self, session: Session, principal, menu_id: int, target: str) -> models.DailyMenu:
        def operation():
            menu = self._scoped(session, principal, menu_id)
            previous = menu.status
            self._apply_transition(menu, target)
            self._touch(menu, principal)
            return menu, previous

        menu, previous = run_in_transaction(session, operation, name="transition_daily_menu")
        logger.info("Daily menu id=%s: %s -> %s", menu_id, previous, target)
        return menu

    def add_item(self, session: Session, principal, menu_id: int, payload: AddDailyMenuItemRequest) -> models.DailyMenu:
        """Append an item to a daily menu.

        Raises:
            NotFoundError: If the menu, or an active tenant item, is missing.
            ConflictError: If the item is already part of the menu.
        """
        def operation():
            menu = self._scoped(session, principal, menu_id)
            item = session.query(models.MenuItem).filter_by(
                id=payload.item_id, facility_id=principal.facility_id,
                mess_type=principal.mess_type, is_active=True,
            ).first()
            if item is None:
                raise NotFoundError("Menu item", payload.item_id)
            if any(e.menu_item_id == item.id for e in menu.items):
                raise ConflictError("Menu item already exists in this meal", resource="DailyMenu")
            menu.items.append(self._entry(payload, item))
            self._touch(menu, principal)
            return menu

        menu = run_in_transaction(
            session, operation, name="add_daily_menu_item",
            conflict_message="Menu item already exists in this meal",
        )
        logger.info("Item id=%s added to daily menu id=%s", payload.item_id, menu_id)
        return menu

    def update_item_status(self, session: Session, principal, menu_id: int, menu_item_id: int, payload: ItemStatusUpdateRequest) -> models.DailyMenu:
        """Set an entry's preparation status. Any target status is accepted.

        Moving into ``ready`` stamps ``actual_ready_at``; moving into
        ``in_progress`` stamps ``preparation_started_at`` the first time.
        """
        def operation():
            menu = self._scoped(session, principal, menu_id)
            entry = next((e for e in menu.items if e.menu_item_id == menu_item_id), None)
            if entry is None:
                raise NotFoundError("Menu item", menu_item_id)
            status = payload.status.value
            now = utcnow()
            if status == "ready" and entry.preparation_status != "ready":
                entry.actual_ready_at = now
            if status == "in_progress" and entry.preparation_started_at is None:
                entry.preparation_started_at = now
            entry.preparation_status = status
            if payload.notes:
                entry.special_notes = payload.notes
            if payload.actual_quantity is not None:
                entry.actual_quantity = payload.actual_quantity
            if payload.remaining_quantity is not None:
                entry.remaining_quantity = payload.remaining_quantity
            self._touch(menu, principal)
            return menu

        menu = run_in_transaction(session, operation, name="update_item_status")
        logger.info("Daily menu id=%s item id=%s -> %s", menu_id, menu_item_id, payload.status.value)
        return menu

    # Reads

    def get_daily_menu(self, session: Session, principal, menu_id: int) -> models.DailyMenu:
        return self._scoped(session, principal, menu_id)

    def list_daily_menus(
        self,
        session: Session,
        principal,
        on_date: Optional[date] = None,
        meal_type: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[models.DailyMenu], int]:
        filters = {"facility_id": principal.facility_id, "mess_type": principal.mess_type}
        if on_date is not None:
            filters["date"] = on_date
        if meal_type:
            filters["meal_type"] = meal_type
        if status:
            filters["status"] = status
        repo = self._menus(session)
        total = repo.count(**filters)
        menus = repo.list(
            skip=(page - 1) * limit,
            limit=limit,
            order_by=[models.DailyMenu.date.desc(), models.DailyMenu.serving_start],
            **filters,
        )
        return menus, total

    def today_menus(
        self,
        session: Session,
        facility_id: int,
        mess_type: str,
        meal_type: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[models.DailyMenu]:
        """Menus students can see for one day: everything except drafts."""
        filters = {"facility_id": facility_id, "mess_type": mess_type, "date": today or date.today()}
        if meal_type:
            filters["meal_type"] = meal_type
        return self._menus(session).list(
            models.DailyMenu.status != "draft",
            order_by=models.DailyMenu.serving_start,
            **filters,
        )


scheduling_service = SchedulingService()
