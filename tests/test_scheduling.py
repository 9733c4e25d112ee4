"""Tests for daily menus and their status state machine."""

from datetime import date, datetime, timedelta

import pytest

from conftest import MEAL_DATE
from core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from schemas.menu_schema import (
    AddDailyMenuItemRequest,
    BudgetInfo,
    DailyMenuItemEntry,
    DailyMenuUpdateRequest,
    ItemStatusUpdateRequest,
)
from services.catalog import catalog_service
from services.scheduling import TRANSITIONS, scheduling_service, serialize_daily_menu


def test_new_menu_is_draft(daily_menu, menu_item):
    assert daily_menu.status == "draft"
    assert daily_menu.total_items == 1
    assert daily_menu.items[0].menu_item_id == menu_item.id
    assert daily_menu.items[0].preparation_status == "not_started"


def test_duplicate_menu_conflicts(make_daily_menu, daily_menu, menu_item):
    with pytest.raises(ConflictError) as exc_info:
        make_daily_menu([menu_item])
    assert exc_info.value.message == "Daily menu already exists for this date and meal type"


def test_other_meal_same_day_is_allowed(make_daily_menu, daily_menu, make_item):
    dinner = make_daily_menu([make_item("Dal Tadka", "dal", "dinner")], meal_type="dinner")
    assert dinner.id != daily_menu.id


def test_inactive_item_rejected(db, admin, make_daily_menu, make_item):
    item = make_item()
    catalog_service.delete_item(db, admin, item.id)
    with pytest.raises(ValidationError):
        make_daily_menu([item])


def test_publish_requires_items(db, admin, make_daily_menu):
    empty = make_daily_menu([])
    with pytest.raises(InvalidStateError) as exc_info:
        scheduling_service.publish(db, admin, empty.id)
    assert exc_info.value.message == "Cannot publish menu without items"


def test_publish_draft_with_items(db, admin, daily_menu):
    published = scheduling_service.publish(db, admin, daily_menu.id)
    assert published.status == "published"
    assert published.last_modified_by == admin.id


def test_publish_twice_fails(db, admin, daily_menu):
    scheduling_service.publish(db, admin, daily_menu.id)
    with pytest.raises(ConflictError):
        scheduling_service.publish(db, admin, daily_menu.id)


def test_terminal_states_have_no_exit(db, admin, daily_menu):
    scheduling_service.transition(db, admin, daily_menu.id, "cancelled")
    with pytest.raises(InvalidStateError):
        scheduling_service.transition(db, admin, daily_menu.id, "active")
    with pytest.raises(InvalidStateError):
        scheduling_service.publish(db, admin, daily_menu.id)
    assert TRANSITIONS["completed"] == set()


def test_full_lifecycle(db, admin, daily_menu):
    for target in ("published", "active", "completed"):
        menu = scheduling_service.transition(db, admin, daily_menu.id, target)
        assert menu.status == target


def test_draft_cannot_skip_to_active(db, admin, daily_menu):
    with pytest.raises(InvalidStateError):
        scheduling_service.transition(db, admin, daily_menu.id, "active")


def test_update_status_uses_transition_table(db, admin, daily_menu):
    with pytest.raises(InvalidStateError):
        scheduling_service.update_daily_menu(db, admin, daily_menu.id, DailyMenuUpdateRequest(status="completed"))
    menu = scheduling_service.update_daily_menu(db, admin, daily_menu.id, DailyMenuUpdateRequest(status="published"))
    assert menu.status == "published"


def test_add_item(db, admin, daily_menu, make_item):
    extra = make_item("Jeera Rice", "rice")
    menu = scheduling_service.add_item(db, admin, daily_menu.id, AddDailyMenuItemRequest(item_id=extra.id))
    assert menu.total_items == 2

    with pytest.raises(ConflictError) as exc_info:
        scheduling_service.add_item(db, admin, daily_menu.id, AddDailyMenuItemRequest(item_id=extra.id))
    assert exc_info.value.message == "Menu item already exists in this meal"

    with pytest.raises(NotFoundError):
        scheduling_service.add_item(db, admin, daily_menu.id, AddDailyMenuItemRequest(item_id=9999))


def test_replace_items_and_budget(db, admin, daily_menu, make_item):
    rice = make_item("Jeera Rice", "rice")
    roti = make_item("Butter Roti", "bread")
    payload = DailyMenuUpdateRequest(
        menu_items=[DailyMenuItemEntry(item_id=rice.id), DailyMenuItemEntry(item_id=roti.id, is_available=False)],
        budget_info=BudgetInfo(estimated_cost=1000, actual_cost=1100),
        expected_students=50,
    )
    menu = scheduling_service.update_daily_menu(db, admin, daily_menu.id, payload)

    assert [e.menu_item_id for e in menu.items] == [rice.id, roti.id]
    assert menu.total_items == 1
    view = serialize_daily_menu(menu)
    assert view.cost_variance == pytest.approx(10.0)
    assert view.expected_students == 50


def test_item_status_stamps_times(db, admin, daily_menu, menu_item):
    menu = scheduling_service.update_item_status(
        db, admin, daily_menu.id, menu_item.id, ItemStatusUpdateRequest(status="in_progress"),
    )
    started = menu.items[0].preparation_started_at
    assert started is not None

    menu = scheduling_service.update_item_status(
        db, admin, daily_menu.id, menu_item.id, ItemStatusUpdateRequest(status="ready", remaining_quantity=40),
    )
    entry = menu.items[0]
    assert entry.preparation_status == "ready"
    assert entry.actual_ready_at is not None
    assert entry.preparation_started_at == started
    assert entry.remaining_quantity == 40
    assert serialize_daily_menu(menu).completion_percentage == 100


def test_item_status_for_unlisted_item(db, admin, daily_menu):
    with pytest.raises(NotFoundError):
        scheduling_service.update_item_status(
            db, admin, daily_menu.id, 9999, ItemStatusUpdateRequest(status="ready"),
        )


def test_timing_status(daily_menu):
    start = datetime.combine(MEAL_DATE, datetime.min.time()).replace(hour=12)
    assert serialize_daily_menu(daily_menu, now=start - timedelta(minutes=1)).timing_status == "upcoming"
    assert serialize_daily_menu(daily_menu, now=start + timedelta(hours=1)).timing_status == "active"
    assert serialize_daily_menu(daily_menu, now=start + timedelta(hours=4)).timing_status == "completed"


def test_list_and_today(db, admin, daily_menu, make_daily_menu, make_item):
    make_daily_menu([make_item("Poha", "snack", "breakfast")], meal_type="breakfast")
    menus, total = scheduling_service.list_daily_menus(db, admin, meal_type="lunch")
    assert total == 1
    assert menus[0].id == daily_menu.id

    assert scheduling_service.today_menus(db, admin.facility_id, admin.mess_type, today=MEAL_DATE) == []
    scheduling_service.publish(db, admin, daily_menu.id)
    today = scheduling_service.today_menus(db, admin.facility_id, admin.mess_type, today=MEAL_DATE)
    assert [m.id for m in today] == [daily_menu.id]
    assert scheduling_service.today_menus(db, admin.facility_id, admin.mess_type, today=date(2024, 1, 11)) == []


def test_menus_are_tenant_scoped(db, daily_menu):
    from core.security import AdminPrincipal

    outsider = AdminPrincipal(
        id=77, name="Other", email="o@example.edu",
        facility_id=daily_menu.facility_id + 1, facility_type="college", mess_id="x",
    )
    with pytest.raises(NotFoundError):
        scheduling_service.get_daily_menu(db, outsider, daily_menu.id)
