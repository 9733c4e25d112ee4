"""Menu item catalog, scoped to the caller's (facility_id, mess_type)."""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from core.logger import get_logger
from core.repository import BaseRepository, run_in_transaction
from core.utils import utcnow
from database import models
from schemas.menu_schema import MenuItemCreateRequest, MenuItemUpdateRequest

logger = get_logger("services.catalog")

POPULAR_MIN_RATINGS = 5

# Nullable columns a patch may reset by sending an explicit null.
CLEARABLE_FIELDS = {
    "description", "nutritional_info", "preparation_time", "serving_size", "cost",
    "special_occasion", "availability_reason", "estimated_available_at",
}


class CatalogService:
    """CRUD over menu items plus the availability and popularity lookups."""

    def _items(self, session: Session) -> BaseRepository[models.MenuItem]:
        return BaseRepository(models.MenuItem, session, resource="Menu item")

    def _scoped(self, session: Session, principal, item_id: int) -> models.MenuItem:
        item = self._items(session).first(
            id=item_id, facility_id=principal.facility_id, mess_type=principal.mess_type,
        )
        if item is None:
            raise NotFoundError("Menu item", item_id)
        return item

    def create_item(self, session: Session, principal, payload: MenuItemCreateRequest) -> models.MenuItem:
        data = payload.model_dump(mode="json")

        def operation():
            item = models.MenuItem(
                **data,
                created_by=principal.id,
                facility_id=principal.facility_id,
                mess_type=principal.mess_type,
                last_updated=utcnow(),
            )
            return self._items(session).add(item)

        item = run_in_transaction(session, operation, name="create_menu_item")
        logger.info("Menu item created: %s (id=%s, facility=%s)", item.name, item.id, item.facility_id)
        return item

    def list_items(
        self,
        session: Session,
        principal,
        page: int = 1,
        limit: int = 20,
        category: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> Tuple[List[models.MenuItem], int]:
        """Return one page of the tenant's items and the total match count.

        Items are ordered by average rating, then by number of ratings.
        """
        criteria = [
            models.MenuItem.facility_id == principal.facility_id,
            models.MenuItem.mess_type == principal.mess_type,
        ]
        if category:
            criteria.append(models.MenuItem.category == category)
        if is_active is not None:
            criteria.append(models.MenuItem.is_active.is_(is_active))
        if search:
            pattern = f"%{search.strip()}%"
            criteria.append(or_(models.MenuItem.name.ilike(pattern), models.MenuItem.description.ilike(pattern)))

        repo = self._items(session)
        total = repo.count(*criteria)
        items = repo.list(
            *criteria,
            skip=(page - 1) * limit,
            limit=limit,
            order_by=[models.MenuItem.average_rating.desc(), models.MenuItem.total_ratings.desc(), models.MenuItem.id],
        )
        return items, total

    def get_item(self, session: Session, principal, item_id: int) -> models.MenuItem:
        return self._scoped(session, principal, item_id)

    def update_item(self, session: Session, principal, item_id: int, patch: MenuItemUpdateRequest) -> models.MenuItem:
        changes = {
            key: value
            for key, value in patch.model_dump(mode="json", exclude_unset=True).items()
            if value is not None or key in CLEARABLE_FIELDS
        }
        if "estimated_available_at" in changes:
            changes["estimated_available_at"] = patch.estimated_available_at

        def operation():
            item = self._scoped(session, principal, item_id)
            for key, value in changes.items():
                setattr(item, key, value)
            item.last_updated = utcnow()
            return item

        item = run_in_transaction(session, operation, name="update_menu_item")
        logger.info("Menu item id=%s updated (%s)", item_id, ", ".join(sorted(changes)))
        return item

    def delete_item(self, session: Session, principal, item_id: int) -> None:
        """Soft-delete: the item stays so its ratings keep their reference."""
        def operation():
            item = self._scoped(session, principal, item_id)
            item.is_active = False
            item.last_updated = utcnow()

        run_in_transaction(session, operation, name="delete_menu_item")
        logger.info("Menu item id=%s deactivated", item_id)

    def check_availability(self, session: Session, principal, item_id: int, now: Optional[datetime] = None) -> Tuple[models.MenuItem, bool]:
        """Report whether an item can be served right now.

        An unavailable item whose estimated availability time has passed is
        switched back to available.
        """
        now = now or utcnow()

        def operation():
            item = self._scoped(session, principal, item_id)
            if not item.is_active:
                return item, False
            if not item.is_available and item.estimated_available_at is not None and now >= item.estimated_available_at:
                item.is_available = True
                item.availability_reason = None
                item.estimated_available_at = None
                logger.info("Menu item id=%s is available again", item.id)
            return item, item.is_available

        return run_in_transaction(session, operation, name="check_availability")

    def popular_items(self, session: Session, principal, limit: int = 10) -> List[models.MenuItem]:
        return self._items(session).list(
            models.MenuItem.total_ratings >= POPULAR_MIN_RATINGS,
            facility_id=principal.facility_id,
            mess_type=principal.mess_type,
            is_active=True,
            limit=limit,
            order_by=[models.MenuItem.average_rating.desc(), models.MenuItem.total_ratings.desc()],
        )


catalog_service = CatalogService()
