"""Tests for the admin analytics reports."""

import pytest

from conftest import MEAL_DATE
from core.exceptions import ValidationError
from schemas.rating_schema import Review
from services.analytics import analytics_service

RANGE = (MEAL_DATE, MEAL_DATE)


@pytest.fixture
def rated(make_student, menu_item, daily_menu, rate):
    """Three lunch ratings (5, 4, 3); the first carries a text review."""
    rate(make_student("Asha"), menu_item, daily_menu, overall=5, review=Review(text="Loved it"))
    rate(make_student("Bala"), menu_item, daily_menu, overall=4)
    rate(make_student("Chitra"), menu_item, daily_menu, overall=3)
    return menu_item


def test_dashboard(db, admin, rated):
    data = analytics_service.dashboard(db, admin, RANGE)
    overview = data["overview"]
    assert overview["total_ratings"] == 3
    assert overview["total_menus"] == 1
    assert overview["active_menu_items"] == 1
    assert overview["total_students"] == 3
    assert data["meal_type_stats"][0]["meal_type"] == "lunch"
    assert data["meal_type_stats"][0]["average_rating"] == pytest.approx(4)
    assert data["daily_trends"] == [{"date": MEAL_DATE, "average_rating": pytest.approx(4), "total_ratings": 3}]
    # fewer than five ratings
    assert data["top_rated_items"] == []
    assert data["participation_rate"] == pytest.approx(3)


def test_meal_analytics(db, admin, rated):
    data = analytics_service.meal_analytics(db, admin, RANGE)
    meal = data["meal_analytics"][0]
    assert meal["total_ratings"] == 3
    assert meal["rating_distribution"] == {1: 0, 2: 0, 3: 1, 4: 1, 5: 1}
    assert data["best_performing_meals"][0]["average_rating"] == pytest.approx(4)
    assert data["category_comparison"][0]["meal_type"] == "lunch"

    assert analytics_service.meal_analytics(db, admin, RANGE, meal_type="dinner")["meal_analytics"] == []


def test_best_and_worst_need_three_ratings(db, admin, make_student, menu_item, daily_menu, rate):
    rate(make_student(), menu_item, daily_menu, overall=5)
    data = analytics_service.meal_analytics(db, admin, RANGE)
    assert data["best_performing_meals"] == []
    assert data["worst_performing_meals"] == []


def test_menu_item_analytics(db, admin, rated, make_item):
    make_item("Gulab Jamun", "dessert")
    data = analytics_service.menu_item_analytics(db, admin, RANGE)
    names = [i["name"] for i in data["menu_items"]]
    assert names == ["Paneer Butter Masala", "Gulab Jamun"]
    assert data["menu_items"][0]["recent_rating_count"] == 3
    assert data["menu_items"][1]["recent_rating_count"] == 0
    assert {b["category"] for b in data["category_breakdown"]} == {"main_course", "dessert"}

    desserts = analytics_service.menu_item_analytics(db, admin, RANGE, category="dessert")
    assert [i["name"] for i in desserts["menu_items"]] == ["Gulab Jamun"]


def test_engagement(db, admin, rated):
    data = analytics_service.engagement(db, admin, RANGE)
    assert data["overview"]["unique_student_count"] == 3
    assert data["overview"]["reviews_with_text"] == 1
    assert data["overview"]["text_review_rate"] == pytest.approx(100 / 3)
    assert data["overview"]["photo_review_rate"] == 0
    assert len(data["active_students"]) == 3


def test_engagement_without_ratings(db, admin):
    assert analytics_service.engagement(db, admin, RANGE)["overview"] == {}


def test_export(db, admin, rated):
    ratings = analytics_service.export(db, admin, RANGE, "ratings")
    assert ratings["metadata"]["record_count"] == 3
    assert ratings["export_data"][0]["menu_item"] == "Paneer Butter Masala"

    performance = analytics_service.export(db, admin, RANGE, "menu-performance")
    assert performance["export_data"][0]["total_ratings"] == 3

    with pytest.raises(ValidationError) as exc_info:
        analytics_service.export(db, admin, RANGE, "everything")
    assert exc_info.value.message == "Invalid export type"
