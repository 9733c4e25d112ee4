"""Tests for helpfulness voting on ratings."""

import pytest

from core.exceptions import ForbiddenError, NotFoundError
from services.feedback import feedback_service, helpfulness_score


@pytest.fixture
def rating(student, menu_item, daily_menu, rate):
    return rate(student, menu_item, daily_menu)


def test_vote_counts(db, make_student, rating):
    feedback_service.vote_on_rating(db, make_student(), rating.id, "up")
    feedback_service.vote_on_rating(db, make_student(), rating.id, "up")
    updated = feedback_service.vote_on_rating(db, make_student(), rating.id, "down")

    assert updated.upvotes == 2
    assert updated.downvotes == 1
    assert len(updated.votes) == 3


def test_second_vote_replaces_first(db, make_student, rating):
    voter = make_student()
    feedback_service.vote_on_rating(db, voter, rating.id, "up")
    updated = feedback_service.vote_on_rating(db, voter, rating.id, "down")

    assert updated.upvotes == 0
    assert updated.downvotes == 1
    assert len(updated.votes) == 1
    assert updated.votes[0].vote == "down"


def test_repeated_same_vote_counts_once(db, make_student, rating):
    voter = make_student()
    feedback_service.vote_on_rating(db, voter, rating.id, "up")
    updated = feedback_service.vote_on_rating(db, voter, rating.id, "up")
    assert updated.upvotes == 1


def test_cannot_vote_on_own_rating(db, student, rating):
    with pytest.raises(ForbiddenError) as exc_info:
        feedback_service.vote_on_rating(db, student, rating.id, "up")
    assert exc_info.value.message == "Cannot vote on your own rating"


def test_admin_can_vote(db, admin, rating):
    updated = feedback_service.vote_on_rating(db, admin, rating.id, "up")
    assert updated.upvotes == 1


def test_vote_on_deleted_rating_not_found(db, student, make_student, rating):
    feedback_service.delete_rating(db, student, rating.id)
    with pytest.raises(NotFoundError):
        feedback_service.vote_on_rating(db, make_student(), rating.id, "up")


def test_helpful_sort_orders_by_upvotes(db, make_student, menu_item, daily_menu, rate):
    quiet = rate(make_student(), menu_item, daily_menu)
    popular = rate(make_student(), menu_item, daily_menu)
    feedback_service.vote_on_rating(db, make_student(), popular.id, "up")

    ratings, _, _ = feedback_service.menu_item_ratings(db, menu_item.id, sort_by="helpful")
    assert [r.id for r in ratings] == [popular.id, quiet.id]


def test_helpfulness_score():
    assert helpfulness_score(0, 0) == 0.0
    assert helpfulness_score(3, 1) == 75.0
