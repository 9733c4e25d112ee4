"""Two students rating the same meal at once must both be counted."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import LUNCH_NOW, MEAL_DATE
from core.security import principal_from_user
from database import init_db, models
from schemas.facility_schema import FacilityCreateRequest
from schemas.menu_schema import DailyMenuCreateRequest, DailyMenuItemEntry, MenuItemCreateRequest, ServingTime
from schemas.rating_schema import CategoryRatings, RatingCreateRequest
from services.catalog import catalog_service
from services.directory import directory_service
from services.feedback import feedback_service
from services.scheduling import scheduling_service


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a file-backed database shared by several sessions."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ratings.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )
    init_db(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


def seed_lunch(session):
    facility = directory_service.create_facility(
        session, FacilityCreateRequest(name="SJ Hall", type="college", mess_name="SJ Mess"),
    )
    users = []
    for role, name in (("mess_admin", "Ravi"), ("student", "Asha"), ("student", "Bala")):
        user = models.User(
            email=f"{name.lower()}@example.edu",
            password_hash="unused",
            role=role,
            name=name,
            facility_id=facility.id,
            mess_id=facility.messes[0].mess_id,
        )
        session.add(user)
        users.append(user)
    session.commit()
    admin, first, second = (principal_from_user(u) for u in users)

    item = catalog_service.create_item(
        session, admin, MenuItemCreateRequest(name="Veg Biryani", category="rice", meal_type="lunch"),
    )
    menu = scheduling_service.create_daily_menu(session, admin, DailyMenuCreateRequest(
        date=MEAL_DATE,
        meal_type="lunch",
        menu_items=[DailyMenuItemEntry(item_id=item.id)],
        serving_time=ServingTime(start=datetime(2024, 1, 10, 12, 0), end=datetime(2024, 1, 10, 15, 0)),
        expected_students=10,
    ))
    return first, second, item.id, menu.id


def payload(item_id, menu_id, score):
    return RatingCreateRequest(
        menu_item_id=item_id,
        daily_menu_id=menu_id,
        overall_rating=score,
        category_ratings=CategoryRatings(taste=score, quantity=score, freshness=score, value=score),
        meal_type="lunch",
        meal_date=MEAL_DATE,
    )


def test_interleaved_submissions_keep_both_increments(file_sessions, monkeypatch):
    setup = file_sessions()
    first, second, item_id, menu_id = seed_lunch(setup)
    setup.close()

    first_session = file_sessions()
    second_session = file_sessions()
    interleaved = []

    def other_student_commits_first(meal_type, now=None):
        # the first submission has read the aggregates; the second one lands now
        if not interleaved:
            interleaved.append(True)
            feedback_service.submit_rating(second_session, second, payload(item_id, menu_id, 2), now=LUNCH_NOW)

    monkeypatch.setattr("services.feedback.ensure_within_meal_window", other_student_commits_first)
    try:
        feedback_service.submit_rating(first_session, first, payload(item_id, menu_id, 4), now=LUNCH_NOW)
    finally:
        first_session.close()
        second_session.close()

    assert interleaved == [True]
    check = file_sessions()
    try:
        item = check.get(models.MenuItem, item_id)
        menu = check.get(models.DailyMenu, menu_id)
        assert item.total_ratings == 2
        assert item.average_rating == pytest.approx(3.0)
        assert item.taste_count == 2
        assert item.taste_average == pytest.approx(3.0)
        assert menu.rating_total == 2
        assert menu.rating_average == pytest.approx(3.0)
        assert menu.participation_rate == 20
        assert check.query(models.Rating).count() == 2
    finally:
        check.close()
