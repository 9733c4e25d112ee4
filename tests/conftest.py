"""Shared fixtures: an in-memory database per test plus tenant factories."""

import os
import tempfile

# Settings are read at import time, so they must be in place first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "mess_feedback_test_logs"))

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.security import create_access_token, principal_from_user
from database import init_db, models
from database.deps import get_db_read, get_db_write
from schemas.facility_schema import FacilityCreateRequest
from schemas.menu_schema import DailyMenuCreateRequest, DailyMenuItemEntry, MenuItemCreateRequest, ServingTime
from schemas.rating_schema import CategoryRatings, RatingCreateRequest
from services.catalog import catalog_service
from services.directory import directory_service
from services.feedback import feedback_service
from services.scheduling import scheduling_service

MEAL_DATE = date(2024, 1, 10)
LUNCH_NOW = datetime(2024, 1, 10, 13, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def facility(db):
    return directory_service.create_facility(
        db, FacilityCreateRequest(name="SJ Hall", type="college", mess_name="SJ Mess"),
    )


@pytest.fixture
def make_user(db):
    """Insert a user directly; the password hash is a placeholder."""
    counter = {"n": 0}

    def _make(role="student", facility=None, mess=None, name=None):
        counter["n"] += 1
        mess = mess or (facility.messes[0] if facility is not None else None)
        user = models.User(
            email=f"{role}{counter['n']}@example.edu",
            password_hash="unused",
            role=role,
            name=name or f"{role.title()} {counter['n']}",
            facility_id=facility.id if facility is not None else None,
            mess_id=mess.mess_id if mess is not None else None,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def admin_user(make_user, facility):
    return make_user("mess_admin", facility)


@pytest.fixture
def admin(admin_user):
    return principal_from_user(admin_user)


@pytest.fixture
def make_student(make_user, facility):
    def _make(name=None):
        return principal_from_user(make_user("student", facility, name=name))
    return _make


@pytest.fixture
def student(make_student):
    return make_student("Asha Rao")


@pytest.fixture
def make_item(db, admin):
    def _make(name="Paneer Butter Masala", category="main_course", meal_type="lunch"):
        return catalog_service.create_item(
            db, admin, MenuItemCreateRequest(name=name, category=category, meal_type=meal_type),
        )
    return _make


@pytest.fixture
def menu_item(make_item):
    return make_item()


@pytest.fixture
def make_daily_menu(db, admin):
    def _make(items, on_date=MEAL_DATE, meal_type="lunch", expected_students=100):
        payload = DailyMenuCreateRequest(
            date=on_date,
            meal_type=meal_type,
            menu_items=[DailyMenuItemEntry(item_id=i.id) for i in items],
            serving_time=ServingTime(
                start=datetime.combine(on_date, datetime.min.time()).replace(hour=12),
                end=datetime.combine(on_date, datetime.min.time()).replace(hour=15),
            ),
            expected_students=expected_students,
        )
        return scheduling_service.create_daily_menu(db, admin, payload)
    return _make


@pytest.fixture
def daily_menu(make_daily_menu, menu_item):
    return make_daily_menu([menu_item])


@pytest.fixture
def rate(db):
    """Submit a lunch rating during the lunch window."""
    def _rate(principal, item, menu, taste=4, quantity=4, freshness=4, value=4, overall=None, now=LUNCH_NOW, **extra):
        payload = RatingCreateRequest(
            menu_item_id=item.id,
            daily_menu_id=menu.id,
            overall_rating=overall,
            category_ratings=CategoryRatings(taste=taste, quantity=quantity, freshness=freshness, value=value),
            meal_type=menu.meal_type,
            meal_date=menu.date,
            **extra,
        )
        return feedback_service.submit_rating(db, principal, payload, now=now)
    return _rate


@pytest.fixture
def client(db):
    """TestClient whose read and write sessions are the test session."""
    from main import app

    def _override():
        yield db

    app.dependency_overrides[get_db_read] = _override
    app.dependency_overrides[get_db_write] = _override
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}
    return _headers
