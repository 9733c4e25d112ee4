"""Read-only analytics for mess admins, scoped to their (facility_id, mess_type).

All figures are computed from active ratings whose meal date falls in the
requested range, except the catalog-wide numbers (active items, category
breakdown, menu performance) which read the cached item aggregates.
"""

from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from core.logger import get_logger
from core.utils import utcnow
from database import models
from database.models import CATEGORIES

logger = get_logger("services.analytics")

R = models.Rating
MI = models.MenuItem
DM = models.DailyMenu

BEST_WORST_MIN_RATINGS = 3
TOP_ITEMS_MIN_RATINGS = 5
EXPORT_TYPES = ("ratings", "menu-performance")


def _avg(value) -> float:
    return float(value) if value is not None else 0.0


def _category_columns():
    return [func.avg(getattr(R, c)) for c in CATEGORIES]


def _category_dict(values) -> Dict[str, float]:
    return {c: _avg(v) for c, v in zip(CATEGORIES, values)}


class AnalyticsService:
    """Dashboard and report queries over ratings, menus and items."""

    def _rating_scope(self, principal, date_range: Tuple[date, date]) -> list:
        return [
            R.facility_id == principal.facility_id,
            R.mess_type == principal.mess_type,
            R.is_active.is_(True),
            R.meal_date.between(*date_range),
        ]

    def _date_range_dict(self, date_range: Tuple[date, date]) -> dict:
        return {"start": date_range[0], "end": date_range[1]}

    def dashboard(self, session: Session, principal, date_range: Tuple[date, date]) -> dict:
        """Headline counts, per-meal averages, daily trend and top items."""
        scope = self._rating_scope(principal, date_range)
        total_ratings = session.query(func.count(R.id)).filter(*scope).scalar()
        total_menus = (
            session.query(func.count(DM.id))
            .filter(
                DM.facility_id == principal.facility_id,
                DM.mess_type == principal.mess_type,
                DM.date.between(*date_range),
            )
            .scalar()
        )
        active_items = (
            session.query(func.count(MI.id))
            .filter(MI.facility_id == principal.facility_id, MI.mess_type == principal.mess_type, MI.is_active.is_(True))
            .scalar()
        )
        total_students = (
            session.query(func.count(models.User.id))
            .filter(
                models.User.role == "student",
                models.User.is_active.is_(True),
                models.User.facility_id == principal.facility_id,
            )
            .scalar()
        )

        meal_rows = (
            session.query(R.meal_type, func.avg(R.overall_rating), func.count(R.id), *_category_columns())
            .filter(*scope)
            .group_by(R.meal_type)
            .order_by(R.meal_type)
            .all()
        )
        meal_type_stats = [
            {
                "meal_type": row[0],
                "average_rating": _avg(row[1]),
                "total_ratings": row[2],
                "category_averages": _category_dict(row[3:]),
            }
            for row in meal_rows
        ]

        daily_rows = (
            session.query(R.meal_date, func.avg(R.overall_rating), func.count(R.id))
            .filter(*scope)
            .group_by(R.meal_date)
            .order_by(R.meal_date)
            .all()
        )
        daily_trends = [
            {"date": row[0], "average_rating": _avg(row[1]), "total_ratings": row[2]} for row in daily_rows
        ]

        top_items = (
            session.query(MI)
            .filter(
                MI.facility_id == principal.facility_id,
                MI.mess_type == principal.mess_type,
                MI.is_active.is_(True),
                MI.total_ratings >= TOP_ITEMS_MIN_RATINGS,
            )
            .order_by(MI.average_rating.desc(), MI.total_ratings.desc())
            .limit(5)
            .all()
        )
        participation = (
            session.query(func.avg(DM.participation_rate))
            .filter(
                DM.facility_id == principal.facility_id,
                DM.mess_type == principal.mess_type,
                DM.date.between(*date_range),
            )
            .scalar()
        )

        return {
            "overview": {
                "total_ratings": total_ratings,
                "total_menus": total_menus,
                "active_menu_items": active_items,
                "total_students": total_students,
                "date_range": self._date_range_dict(date_range),
            },
            "meal_type_stats": meal_type_stats,
            "daily_trends": daily_trends,
            "top_rated_items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "category": item.category,
                    "average_rating": item.average_rating,
                    "total_ratings": item.total_ratings,
                }
                for item in top_items
            ],
            "participation_rate": _avg(participation),
        }

    def meal_analytics(self, session: Session, principal, date_range: Tuple[date, date], meal_type: Optional[str] = None) -> dict:
        """Per (date, meal) performance, category comparison and best/worst meals."""
        scope = self._rating_scope(principal, date_range)
        if meal_type:
            scope.append(R.meal_type == meal_type)

        distribution_columns = [func.sum(case((R.overall_rating == s, 1), else_=0)) for s in range(1, 6)]
        rows = (
            session.query(
                R.meal_date, R.meal_type, func.avg(R.overall_rating), func.count(R.id),
                *_category_columns(), *distribution_columns,
            )
            .filter(*scope)
            .group_by(R.meal_date, R.meal_type)
            .order_by(R.meal_date.desc(), R.meal_type)
            .all()
        )
        n_cats = len(CATEGORIES)
        meals = []
        for row in rows:
            meals.append({
                "date": row[0],
                "meal_type": row[1],
                "average_rating": _avg(row[2]),
                "total_ratings": row[3],
                "category_averages": _category_dict(row[4:4 + n_cats]),
                "rating_distribution": {s: int(row[4 + n_cats + s - 1] or 0) for s in range(1, 6)},
            })

        comparison_rows = (
            session.query(R.meal_type, *_category_columns())
            .filter(*scope)
            .group_by(R.meal_type)
            .order_by(R.meal_type)
            .all()
        )
        category_comparison = [{"meal_type": row[0], **_category_dict(row[1:])} for row in comparison_rows]

        eligible = [
            {"date": m["date"], "meal_type": m["meal_type"], "average_rating": m["average_rating"], "total_ratings": m["total_ratings"]}
            for m in meals
            if m["total_ratings"] >= BEST_WORST_MIN_RATINGS
        ]
        best = sorted(eligible, key=lambda m: m["average_rating"], reverse=True)[:5]
        worst = sorted(eligible, key=lambda m: m["average_rating"])[:5]

        return {
            "meal_analytics": meals,
            "category_comparison": category_comparison,
            "best_performing_meals": best,
            "worst_performing_meals": worst,
            "date_range": self._date_range_dict(date_range),
        }

    def menu_item_analytics(
        self,
        session: Session,
        principal,
        date_range: Tuple[date, date],
        category: Optional[str] = None,
        sort_by: str = "rating",
    ) -> dict:
        """Recent rating figures per active item plus a per-category breakdown."""
        recent = (
            session.query(
                R.menu_item_id.label("menu_item_id"),
                func.count(R.id).label("recent_count"),
                func.avg(R.overall_rating).label("recent_avg"),
                *[func.avg(getattr(R, c)).label(f"recent_{c}") for c in CATEGORIES],
            )
            .filter(*self._rating_scope(principal, date_range))
            .group_by(R.menu_item_id)
            .subquery()
        )
        item_filters = [MI.facility_id == principal.facility_id, MI.mess_type == principal.mess_type, MI.is_active.is_(True)]
        if category:
            item_filters.append(MI.category == category)

        rows = (
            session.query(
                MI, recent.c.recent_count, recent.c.recent_avg,
                *[recent.c[f"recent_{c}"] for c in CATEGORIES],
            )
            .outerjoin(recent, recent.c.menu_item_id == MI.id)
            .filter(*item_filters)
            .all()
        )
        items = []
        for row in rows:
            item = row[0]
            items.append({
                "id": item.id,
                "name": item.name,
                "category": item.category,
                "cuisine_type": item.cuisine_type,
                "average_rating": item.average_rating,
                "total_ratings": item.total_ratings,
                "popularity_score": item.popularity_score,
                "is_vegetarian": item.is_vegetarian,
                "last_served_date": item.last_served_date,
                "recent_rating_count": row.recent_count or 0,
                "recent_average_rating": _avg(row.recent_avg),
                "recent_category_ratings": {c: _avg(getattr(row, f"recent_{c}")) for c in CATEGORIES},
            })

        sort_key = {
            "popularity": lambda i: i["popularity_score"],
            "recent": lambda i: i["recent_rating_count"],
        }.get(sort_by, lambda i: i["recent_average_rating"])
        items.sort(key=sort_key, reverse=True)

        breakdown_rows = (
            session.query(MI.category, func.count(MI.id), func.avg(MI.average_rating), func.sum(MI.total_ratings))
            .filter(MI.facility_id == principal.facility_id, MI.mess_type == principal.mess_type, MI.is_active.is_(True))
            .group_by(MI.category)
            .all()
        )
        breakdown = sorted(
            (
                {"category": row[0], "item_count": row[1], "average_rating": _avg(row[2]), "total_ratings": int(row[3] or 0)}
                for row in breakdown_rows
            ),
            key=lambda b: b["average_rating"],
            reverse=True,
        )
        return {"menu_items": items, "category_breakdown": breakdown, "date_range": self._date_range_dict(date_range)}

    def engagement(self, session: Session, principal, date_range: Tuple[date, date]) -> dict:
        """Participation figures: unique students, review rates and the most active students."""
        scope = self._rating_scope(principal, date_range)
        has_text = case((R.review_text.isnot(None), 1), else_=0)

        total, unique_students, avg_time, with_text = (
            session.query(func.count(R.id), func.count(func.distinct(R.student_id)), func.avg(R.time_spent), func.sum(has_text))
            .filter(*scope)
            .one()
        )
        photos = [p for (p,) in session.query(R.photos).filter(*scope)]
        with_photos = sum(1 for p in photos if p)
        methods: Dict[str, int] = {}
        for method, count in session.query(R.rating_method, func.count(R.id)).filter(*scope).group_by(R.rating_method):
            methods[method] = count

        overview = {}
        if total:
            overview = {
                "total_ratings": total,
                "unique_student_count": unique_students,
                "average_time_spent": _avg(avg_time),
                "reviews_with_text": int(with_text or 0),
                "reviews_with_photos": with_photos,
                "text_review_rate": int(with_text or 0) / total * 100,
                "photo_review_rate": with_photos / total * 100,
                "rating_method_breakdown": methods,
            }

        daily_rows = (
            session.query(R.meal_date, func.count(R.id), func.count(func.distinct(R.student_id)), func.avg(R.overall_rating))
            .filter(*scope)
            .group_by(R.meal_date)
            .order_by(R.meal_date)
            .all()
        )
        daily = [
            {"date": row[0], "total_ratings": row[1], "unique_student_count": row[2], "average_rating": _avg(row[3])}
            for row in daily_rows
        ]

        student_rows = (
            session.query(models.User.id, models.User.name, func.count(R.id), func.avg(R.overall_rating), func.sum(has_text))
            .select_from(R)
            .join(models.User, models.User.id == R.student_id)
            .filter(*scope)
            .group_by(models.User.id, models.User.name)
            .order_by(func.count(R.id).desc(), models.User.id)
            .limit(10)
            .all()
        )
        active_students = [
            {"student_id": row[0], "name": row[1], "total_ratings": row[2], "average_rating": _avg(row[3]), "reviews_count": int(row[4] or 0)}
            for row in student_rows
        ]
        return {
            "overview": overview,
            "daily_engagement": daily,
            "active_students": active_students,
            "date_range": self._date_range_dict(date_range),
        }

    def export(self, session: Session, principal, date_range: Tuple[date, date], export_type: str = "ratings") -> dict:
        """Raw rows for offline analysis.

        Raises:
            ValidationError: If ``export_type`` is not a known export.
        """
        if export_type not in EXPORT_TYPES:
            raise ValidationError("Invalid export type", field="type")

        if export_type == "ratings":
            rows = (
                session.query(R, models.User.name, MI.name, MI.category)
                .join(models.User, models.User.id == R.student_id)
                .join(MI, MI.id == R.menu_item_id)
                .filter(*self._rating_scope(principal, date_range))
                .order_by(R.meal_date, R.id)
                .all()
            )
            data: List[dict] = [
                {
                    "rating_id": rating.id,
                    "student_name": None if rating.review_is_anonymous else student_name,
                    "menu_item": item_name,
                    "category": item_category,
                    "overall_rating": rating.overall_rating,
                    "category_ratings": {c: getattr(rating, c) for c in CATEGORIES},
                    "meal_type": rating.meal_type,
                    "meal_date": rating.meal_date,
                    "review": rating.review_text,
                }
                for rating, student_name, item_name, item_category in rows
            ]
        else:
            items = (
                session.query(MI)
                .filter(MI.facility_id == principal.facility_id, MI.mess_type == principal.mess_type, MI.is_active.is_(True))
                .order_by(MI.name)
                .all()
            )
            data = [
                {
                    "id": item.id,
                    "name": item.name,
                    "category": item.category,
                    "average_rating": item.average_rating,
                    "total_ratings": item.total_ratings,
                    "popularity_score": item.popularity_score,
                }
                for item in items
            ]

        logger.info("Exported %s %s rows for facility id=%s", len(data), export_type, principal.facility_id)
        return {
            "export_data": data,
            "metadata": {
                "type": export_type,
                "date_range": self._date_range_dict(date_range),
                "record_count": len(data),
                "generated_at": utcnow(),
                "facility_id": principal.facility_id,
                "mess_type": principal.mess_type,
            },
        }


analytics_service = AnalyticsService()
