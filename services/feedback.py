"""Rating submission, editing, deletion and helpfulness voting.

Ratings are the only source of the aggregates cached on menu items and
daily menus. Each write here runs as one unit of work that inserts or
changes the rating and adjusts both aggregates; the version columns on all
three rows turn a concurrent writer into a replay of the whole unit.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from core.config import RATING_DELETE_WINDOW_HOURS, RATING_EDIT_WINDOW_HOURS
from core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from core.logger import get_logger
from core.repository import BaseRepository, run_in_transaction
from core.utils import utcnow
from database import models
from schemas.common import photo_dicts
from schemas.rating_schema import (
    CategoryRatings,
    HelpfulVotes,
    RatingCreateRequest,
    RatingResponse,
    RatingUpdateRequest,
    Review,
)
from services import aggregates
from services.aggregates import RatingScores
from services.meal_time import ensure_within_meal_window

logger = get_logger("services.feedback")

DUPLICATE_RATING = "You have already rated this meal today"

SORT_OPTIONS = {
    "newest": [models.Rating.created_at.desc()],
    "helpful": [models.Rating.upvotes.desc(), models.Rating.created_at.desc()],
    "rating_high": [models.Rating.overall_rating.desc(), models.Rating.created_at.desc()],
    "rating_low": [models.Rating.overall_rating.asc(), models.Rating.created_at.desc()],
}


def helpfulness_score(upvotes: int, downvotes: int) -> float:
    total = upvotes + downvotes
    if total == 0:
        return 0.0
    return upvotes / total * 100


def ensure_rateable(principal, item: models.MenuItem, menu: models.DailyMenu, meal_date: date, meal_type: str) -> None:
    """Reject a rating whose item and menu are not the meal being rated.

    The daily menu must be the student's own mess serving on ``meal_date``
    for ``meal_type``, and the item must be an active entry on it.
    """
    if (menu.facility_id, menu.mess_type) != (principal.facility_id, principal.mess_type):
        raise ValidationError("Daily menu does not belong to your mess", field="daily_menu_id")
    if menu.date != meal_date or menu.meal_type != meal_type:
        raise ValidationError("Meal date and type must match the daily menu", field="meal_date")
    if not item.is_active:
        raise ValidationError("Menu item is no longer active", field="menu_item_id")
    if item.id not in {entry.menu_item_id for entry in menu.items}:
        raise ValidationError("Menu item is not on this daily menu", field="menu_item_id")


def serialize_rating(rating: models.Rating, reveal_author: bool = False) -> RatingResponse:
    """API view of a rating. Anonymous reviews hide their author unless ``reveal_author``."""
    hidden = rating.review_is_anonymous and not reveal_author
    review = None
    if rating.review_text is not None or rating.review_is_anonymous:
        review = Review(text=rating.review_text, is_anonymous=rating.review_is_anonymous)
    return RatingResponse(
        id=rating.id,
        student_id=None if hidden else rating.student_id,
        student_name=None if hidden or rating.student is None else rating.student.name,
        menu_item_id=rating.menu_item_id,
        daily_menu_id=rating.daily_menu_id,
        overall_rating=rating.overall_rating,
        category_ratings=CategoryRatings(
            taste=rating.taste, quantity=rating.quantity, freshness=rating.freshness, value=rating.value,
        ),
        review=review,
        photos=rating.photos or [],
        emoji_reaction=rating.emoji_reaction,
        meal_type=rating.meal_type,
        meal_date=rating.meal_date,
        facility_id=rating.facility_id,
        mess_type=rating.mess_type,
        rating_method=rating.rating_method,
        time_spent=rating.time_spent,
        device_info=rating.device_info,
        helpful_votes=HelpfulVotes(upvotes=rating.upvotes, downvotes=rating.downvotes),
        helpfulness_score=helpfulness_score(rating.upvotes, rating.downvotes),
        is_active=rating.is_active,
        created_at=rating.created_at,
        updated_at=rating.updated_at,
    )


class FeedbackService:
    """Owns ratings and keeps the cached aggregates in step with them."""

    def _ratings(self, session: Session) -> BaseRepository[models.Rating]:
        return BaseRepository(models.Rating, session, resource="Rating")

    def _owned_rating(self, session: Session, principal, rating_id: int) -> models.Rating:
        rating = self._ratings(session).get_by_id(rating_id)
        if rating is None or not rating.is_active:
            raise NotFoundError("Rating", rating_id)
        if rating.student_id != principal.id:
            raise ForbiddenError("You can only change your own ratings")
        return rating

    def submit_rating(self, session: Session, principal, payload: RatingCreateRequest, now: Optional[datetime] = None) -> models.Rating:
        """Record a rating and fold it into both aggregates.

        ``now`` is the local wall-clock time checked against the meal windows.

        Raises:
            ConflictError: If the student already rated this item for this meal.
            NotFoundError: If the menu item or daily menu does not exist.
            ValidationError: If the meal type cannot be rated, or the item
                and menu do not match the rated meal and the student's mess.
            InvalidStateError: If submitted outside the meal window.
        """
        cats = payload.category_ratings
        overall = payload.overall_rating or aggregates.derive_overall(cats.taste, cats.quantity, cats.freshness, cats.value)
        meal_type = payload.meal_type.value

        def operation():
            existing = self._ratings(session).first(
                student_id=principal.id, menu_item_id=payload.menu_item_id,
                meal_date=payload.meal_date, meal_type=meal_type,
            )
            if existing is not None:
                raise ConflictError(DUPLICATE_RATING, resource="Rating")

            item = session.get(models.MenuItem, payload.menu_item_id)
            if item is None:
                raise NotFoundError("Menu item", payload.menu_item_id)
            menu = session.get(models.DailyMenu, payload.daily_menu_id)
            if menu is None:
                raise NotFoundError("Daily menu", payload.daily_menu_id)
            ensure_rateable(principal, item, menu, payload.meal_date, meal_type)
            ensure_within_meal_window(meal_type, now)

            stamp = utcnow()
            rating = models.Rating(
                student_id=principal.id,
                menu_item_id=item.id,
                daily_menu_id=menu.id,
                overall_rating=overall,
                taste=cats.taste,
                quantity=cats.quantity,
                freshness=cats.freshness,
                value=cats.value,
                review_text=payload.review.text if payload.review else None,
                review_is_anonymous=payload.review.is_anonymous if payload.review else False,
                photos=photo_dicts(payload.photos),
                emoji_reaction=payload.emoji_reaction.value if payload.emoji_reaction else None,
                meal_type=meal_type,
                meal_date=payload.meal_date,
                facility_id=principal.facility_id,
                mess_type=principal.mess_type,
                rating_method=payload.rating_method.value,
                time_spent=payload.time_spent,
                device_info=payload.device_info.value,
                location=payload.location.model_dump() if payload.location else None,
                created_at=stamp,
                updated_at=stamp,
            )
            session.add(rating)
            scores = RatingScores.of(rating)
            aggregates.add_to_menu_item(item, scores, stamp)
            aggregates.add_to_daily_menu(menu, scores, stamp)
            session.flush()
            return rating

        rating = run_in_transaction(session, operation, name="submit_rating", conflict_message=DUPLICATE_RATING)
        logger.info(
            "Rating id=%s by student id=%s for item id=%s (%s %s)",
            rating.id, principal.id, payload.menu_item_id, payload.meal_date, meal_type,
        )
        return rating

    def update_rating(self, session: Session, principal, rating_id: int, payload: RatingUpdateRequest) -> models.Rating:
        """Edit categories, review or emoji within the edit window.

        Changed categories recompute the overall rating, and both aggregates
        swap the old contribution for the new one with their counts unchanged.

        Raises:
            NotFoundError: If the rating does not exist or was deleted.
            ForbiddenError: If the caller did not write the rating.
            InvalidStateError: If the edit window has passed.
        """
        fields = payload.model_fields_set

        def operation():
            rating = self._owned_rating(session, principal, rating_id)
            now = utcnow()
            if now - rating.created_at > timedelta(hours=RATING_EDIT_WINDOW_HOURS):
                raise InvalidStateError(
                    f"Rating can only be updated within {RATING_EDIT_WINDOW_HOURS} hours of submission",
                    state="edit_window_closed",
                )

            old = RatingScores.of(rating)
            if payload.category_ratings is not None:
                cats = payload.category_ratings
                rating.taste, rating.quantity = cats.taste, cats.quantity
                rating.freshness, rating.value = cats.freshness, cats.value
                rating.overall_rating = aggregates.derive_overall(cats.taste, cats.quantity, cats.freshness, cats.value)
            if "review" in fields:
                rating.review_text = payload.review.text if payload.review else None
                rating.review_is_anonymous = payload.review.is_anonymous if payload.review else False
            if "emoji_reaction" in fields:
                rating.emoji_reaction = payload.emoji_reaction.value if payload.emoji_reaction else None
            rating.updated_at = now

            new = RatingScores.of(rating)
            if new != old:
                item = session.get(models.MenuItem, rating.menu_item_id)
                if item is not None:
                    aggregates.replace_in_menu_item(item, old, new, now)
                menu = session.get(models.DailyMenu, rating.daily_menu_id)
                if menu is not None:
                    aggregates.replace_in_daily_menu(menu, old, new, now)
            session.flush()
            return rating

        rating = run_in_transaction(session, operation, name="update_rating")
        logger.info("Rating id=%s updated by student id=%s", rating_id, principal.id)
        return rating

    def delete_rating(self, session: Session, principal, rating_id: int) -> None:
        """Soft-delete a rating within the delete window and withdraw it from both aggregates.

        The row keeps its unique key, so the same meal cannot be rated again.
        """
        def operation():
            rating = self._owned_rating(session, principal, rating_id)
            now = utcnow()
            if now - rating.created_at > timedelta(hours=RATING_DELETE_WINDOW_HOURS):
                raise InvalidStateError(
                    f"Rating can only be deleted within {RATING_DELETE_WINDOW_HOURS} hour of submission",
                    state="delete_window_closed",
                )
            rating.is_active = False
            rating.updated_at = now
            scores = RatingScores.of(rating)
            item = session.get(models.MenuItem, rating.menu_item_id)
            if item is not None:
                aggregates.remove_from_menu_item(item, scores, now)
            menu = session.get(models.DailyMenu, rating.daily_menu_id)
            if menu is not None:
                aggregates.remove_from_daily_menu(menu, scores, now)
            session.flush()

        run_in_transaction(session, operation, name="delete_rating")
        logger.info("Rating id=%s deleted by student id=%s", rating_id, principal.id)

    def vote_on_rating(self, session: Session, principal, rating_id: int, vote_type: str) -> models.Rating:
        """Record the caller's helpfulness vote, replacing any earlier one.

        Vote counts are recounted from the ledger after every vote.

        Raises:
            NotFoundError: If the rating does not exist or was deleted.
            ForbiddenError: If the caller wrote the rating.
        """
        def operation():
            rating = self._ratings(session).get_by_id(rating_id)
            if rating is None or not rating.is_active:
                raise NotFoundError("Rating", rating_id)
            if rating.student_id == principal.id:
                raise ForbiddenError("Cannot vote on your own rating")

            now = utcnow()
            vote = next((v for v in rating.votes if v.user_id == principal.id), None)
            if vote is None:
                rating.votes.append(models.RatingVote(user_id=principal.id, vote=vote_type, voted_at=now))
            else:
                vote.vote = vote_type
                vote.voted_at = now
            rating.upvotes = sum(1 for v in rating.votes if v.vote == "up")
            rating.downvotes = sum(1 for v in rating.votes if v.vote == "down")
            rating.updated_at = now
            session.flush()
            return rating

        rating = run_in_transaction(session, operation, name="vote_on_rating")
        logger.info("Vote %s on rating id=%s by user id=%s", vote_type, rating_id, principal.id)
        return rating

    # Reads

    def menu_item_ratings(
        self,
        session: Session,
        menu_item_id: int,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "newest",
        meal_date: Optional[date] = None,
        facility_id: Optional[int] = None,
    ) -> Tuple[List[models.Rating], int, Optional[dict]]:
        """Active ratings of one item, their total and a summary block."""
        filters = {"menu_item_id": menu_item_id, "is_active": True}
        if meal_date is not None:
            filters["meal_date"] = meal_date
        if facility_id is not None:
            filters["facility_id"] = facility_id

        repo = self._ratings(session)
        total = repo.count(**filters)
        ratings = (
            repo.query(**filters)
            .options(joinedload(models.Rating.student))
            .order_by(*SORT_OPTIONS.get(sort_by, SORT_OPTIONS["newest"]), models.Rating.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return ratings, total, self._summary(session, filters) if total else None

    def _summary(self, session: Session, filters: dict) -> dict:
        R = models.Rating
        criteria = [getattr(R, key) == value for key, value in filters.items()]
        row = (
            session.query(
                func.count(R.id), func.avg(R.overall_rating), func.avg(R.taste),
                func.avg(R.quantity), func.avg(R.freshness), func.avg(R.value),
            )
            .filter(*criteria)
            .one()
        )
        distribution = {score: 0 for score in range(1, 6)}
        for score, count in session.query(R.overall_rating, func.count(R.id)).filter(*criteria).group_by(R.overall_rating):
            distribution[score] = count
        return {
            "total_ratings": row[0],
            "average_overall": float(row[1] or 0),
            "average_taste": float(row[2] or 0),
            "average_quantity": float(row[3] or 0),
            "average_freshness": float(row[4] or 0),
            "average_value": float(row[5] or 0),
            "rating_distribution": distribution,
        }

    def rating_history(
        self,
        session: Session,
        principal,
        page: int = 1,
        limit: int = 20,
        facility_id: Optional[int] = None,
        date_range: Optional[Tuple[date, date]] = None,
        today: Optional[date] = None,
    ) -> Tuple[List[models.Rating], int, Optional[dict]]:
        """The caller's own active ratings, newest meal first, with personal stats."""
        R = models.Rating
        criteria = [R.student_id == principal.id, R.is_active.is_(True)]
        if facility_id is not None:
            criteria.append(R.facility_id == facility_id)
        if date_range is not None:
            criteria.append(R.meal_date.between(*date_range))

        repo = self._ratings(session)
        total = repo.count(*criteria)
        ratings = repo.list(
            *criteria,
            skip=(page - 1) * limit,
            limit=limit,
            order_by=[R.meal_date.desc(), R.created_at.desc(), R.id.desc()],
        )

        mine = [R.student_id == principal.id, R.is_active.is_(True)]
        count, average = session.query(func.count(R.id), func.avg(R.overall_rating)).filter(*mine).one()
        if not count:
            return ratings, total, None
        month_start = (today or date.today()).replace(day=1)
        this_month = repo.count(*mine, R.meal_date >= month_start)
        stats = {"total_ratings": count, "average_rating": float(average or 0), "ratings_this_month": this_month}
        return ratings, total, stats

    def facility_stats(
        self,
        session: Session,
        principal,
        date_range: Tuple[date, date],
        meal_type: Optional[str] = None,
    ) -> dict:
        """Per-meal-type averages and per-day trends for the caller's tenant."""
        R = models.Rating
        scope = [
            R.facility_id == principal.facility_id,
            R.mess_type == principal.mess_type,
            R.is_active.is_(True),
            R.meal_date.between(*date_range),
        ]
        summary_rows = (
            session.query(
                R.meal_type, func.count(R.id), func.avg(R.overall_rating), func.avg(R.taste),
                func.avg(R.quantity), func.avg(R.freshness), func.avg(R.value),
            )
            .filter(*scope)
            .group_by(R.meal_type)
            .order_by(R.meal_type)
            .all()
        )
        summary = [
            {
                "meal_type": row[0],
                "total_ratings": row[1],
                "average_overall": float(row[2] or 0),
                "average_taste": float(row[3] or 0),
                "average_quantity": float(row[4] or 0),
                "average_freshness": float(row[5] or 0),
                "average_value": float(row[6] or 0),
            }
            for row in summary_rows
        ]

        trend_scope = scope + ([R.meal_type == meal_type] if meal_type else [])
        trend_rows = (
            session.query(R.meal_date, R.meal_type, func.avg(R.overall_rating), func.count(R.id))
            .filter(*trend_scope)
            .group_by(R.meal_date, R.meal_type)
            .order_by(R.meal_date, R.meal_type)
            .all()
        )
        trends = [
            {"date": row[0], "meal_type": row[1], "average_rating": float(row[2] or 0), "total_ratings": row[3]}
            for row in trend_rows
        ]
        return {
            "summary": summary,
            "daily_trends": trends,
            "date_range": {"start": date_range[0], "end": date_range[1]},
        }


feedback_service = FeedbackService()
