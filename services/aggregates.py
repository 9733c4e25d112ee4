"""Running-mean bookkeeping for rating aggregates.

Menu items and daily menus cache the mean of their active ratings. The
feedback service keeps those caches exact without rescanning ratings:

    insert:  (avg * n + x) / (n + 1)
    replace: (avg * n - old + new) / n
    remove:  (avg * n - x) / (n - 1)

The functions here only mutate the ORM objects handed to them; the caller
owns the transaction and the version check that protects it.
"""

from datetime import datetime
from typing import NamedTuple, Tuple

from database import models
from database.models import CATEGORIES
from core.utils import round_half_up


class RatingScores(NamedTuple):
    """The five numbers one rating contributes to an aggregate."""

    overall: int
    taste: int
    quantity: int
    freshness: int
    value: int

    @classmethod
    def of(cls, rating: models.Rating) -> "RatingScores":
        return cls(rating.overall_rating, rating.taste, rating.quantity, rating.freshness, rating.value)

    def category(self, name: str) -> int:
        return getattr(self, name)


def derive_overall(taste: int, quantity: int, freshness: int, value: int) -> int:
    """Overall rating as the half-up rounded mean of the four categories."""
    return round_half_up((taste + quantity + freshness + value) / 4)


def mean_insert(average: float, count: int, value: float) -> Tuple[float, int]:
    count += 1
    return (average * (count - 1) + value) / count, count


def mean_replace(average: float, count: int, old: float, new: float) -> float:
    if count <= 0:
        return average
    return (average * count - old + new) / count


def mean_remove(average: float, count: int, value: float) -> Tuple[float, int]:
    if count <= 1:
        return 0.0, 0
    return (average * count - value) / (count - 1), count - 1


def participation_rate(total_ratings: int, expected_students) -> int:
    """Share of expected students who rated, as a whole percentage."""
    if not expected_students:
        return 0
    return round_half_up(total_ratings / expected_students * 100)


def refresh_popularity(item: models.MenuItem) -> None:
    item.popularity_score = item.average_rating * 0.7 + min(item.total_ratings / 100, 1) * 0.3


# Menu item aggregates: overall and each category keep their own count.

def add_to_menu_item(item: models.MenuItem, scores: RatingScores, now: datetime) -> None:
    item.average_rating, item.total_ratings = mean_insert(item.average_rating, item.total_ratings, scores.overall)
    for name in CATEGORIES:
        avg, count = mean_insert(getattr(item, f"{name}_average"), getattr(item, f"{name}_count"), scores.category(name))
        setattr(item, f"{name}_average", avg)
        setattr(item, f"{name}_count", count)
    refresh_popularity(item)
    item.last_updated = now


def replace_in_menu_item(item: models.MenuItem, old: RatingScores, new: RatingScores, now: datetime) -> None:
    item.average_rating = mean_replace(item.average_rating, item.total_ratings, old.overall, new.overall)
    for name in CATEGORIES:
        setattr(item, f"{name}_average", mean_replace(
            getattr(item, f"{name}_average"), getattr(item, f"{name}_count"),
            old.category(name), new.category(name),
        ))
    refresh_popularity(item)
    item.last_updated = now


def remove_from_menu_item(item: models.MenuItem, scores: RatingScores, now: datetime) -> None:
    item.average_rating, item.total_ratings = mean_remove(item.average_rating, item.total_ratings, scores.overall)
    for name in CATEGORIES:
        avg, count = mean_remove(getattr(item, f"{name}_average"), getattr(item, f"{name}_count"), scores.category(name))
        setattr(item, f"{name}_average", avg)
        setattr(item, f"{name}_count", count)
    refresh_popularity(item)
    item.last_updated = now


# Daily menu aggregates: every rating carries all four categories, so one
# count (rating_total) serves them all.

def add_to_daily_menu(menu: models.DailyMenu, scores: RatingScores, now: datetime) -> None:
    n = menu.rating_total
    for name in CATEGORIES:
        avg, _ = mean_insert(getattr(menu, f"{name}_average"), n, scores.category(name))
        setattr(menu, f"{name}_average", avg)
    menu.rating_average, menu.rating_total = mean_insert(menu.rating_average, n, scores.overall)
    _touch_daily_menu(menu, now)


def replace_in_daily_menu(menu: models.DailyMenu, old: RatingScores, new: RatingScores, now: datetime) -> None:
    n = menu.rating_total
    menu.rating_average = mean_replace(menu.rating_average, n, old.overall, new.overall)
    for name in CATEGORIES:
        setattr(menu, f"{name}_average", mean_replace(getattr(menu, f"{name}_average"), n, old.category(name), new.category(name)))
    _touch_daily_menu(menu, now)


def remove_from_daily_menu(menu: models.DailyMenu, scores: RatingScores, now: datetime) -> None:
    n = menu.rating_total
    for name in CATEGORIES:
        avg, _ = mean_remove(getattr(menu, f"{name}_average"), n, scores.category(name))
        setattr(menu, f"{name}_average", avg)
    menu.rating_average, menu.rating_total = mean_remove(menu.rating_average, n, scores.overall)
    _touch_daily_menu(menu, now)


def _touch_daily_menu(menu: models.DailyMenu, now: datetime) -> None:
    menu.participation_rate = participation_rate(menu.rating_total, menu.expected_students)
    menu.rating_stats_updated_at = now
