"""SQLAlchemy ORM models for the mess feedback service.

Facilities own their messes, daily menus own their item entries and ratings
own their helpfulness votes; each owned collection is a child table reached
through an ordered relationship. Models stay behavior-free: rules live in the
`services` package.

Rows that hold aggregates or owned collections (Facility, MenuItem,
DailyMenu, Rating) carry a ``version`` column used by SQLAlchemy as an
optimistic-concurrency counter: every UPDATE is issued as
``... WHERE id = :id AND version = :expected`` and a lost race raises
``StaleDataError``.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

from core.utils import utcnow

Base = declarative_base()

CATEGORIES = ("taste", "quantity", "freshness", "value")


class Facility(Base):
    """A college or hostel that hosts one or more messes."""

    __tablename__ = "facilities"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    type = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(JSON, nullable=True)
    contact_info = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    messes = relationship(
        "Mess",
        back_populates="facility",
        order_by="Mess.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_facilities_type_active", "type", "is_active"),)
    __mapper_args__ = {"version_id_col": version}


class Mess(Base):
    """A dining hall inside a facility. Never hard-deleted."""

    __tablename__ = "messes"
    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False, index=True)
    mess_id = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=True)
    operating_hours = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    facility = relationship("Facility", back_populates="messes")


class User(Base):
    """Student or mess admin account.

    Both roles point at one facility and one mess; the role decides how the
    pointer is interpreted (see `core.security.Principal`).
    """

    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    name = Column(String(50), nullable=False)
    phone = Column(String(10), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=True, index=True)
    mess_id = Column(String(255), nullable=True, index=True)
    course = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)
    college_id = Column(String(50), nullable=True)
    hostel_id = Column(String(50), nullable=True)
    email_verification_token = Column(String(64), nullable=True)
    email_verification_expires = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    facility = relationship("Facility")


class MenuItem(Base):
    """A reusable dish definition scoped to (facility_id, mess_type).

    ``average_rating``/``total_ratings`` and the per-category
    ``<category>_average``/``<category>_count`` pairs are running means over
    the active ratings of the item.
    """

    __tablename__ = "menu_items"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=False)
    meal_type = Column(String(20), nullable=False)
    cuisine_type = Column(String(30), nullable=False, default="indian")
    is_vegetarian = Column(Boolean, nullable=False, default=True)
    is_vegan = Column(Boolean, nullable=False, default=False)
    is_jain = Column(Boolean, nullable=False, default=False)
    allergens = Column(JSON, nullable=False, default=list)
    spice_level = Column(String(20), nullable=False, default="medium")
    images = Column(JSON, nullable=False, default=list)
    nutritional_info = Column(JSON, nullable=True)
    ingredients = Column(JSON, nullable=False, default=list)
    preparation_time = Column(Integer, nullable=True)
    serving_size = Column(String(50), nullable=True)
    cost = Column(Float, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    mess_type = Column(String(20), nullable=False)

    total_ratings = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    taste_average = Column(Float, nullable=False, default=0.0)
    taste_count = Column(Integer, nullable=False, default=0)
    quantity_average = Column(Float, nullable=False, default=0.0)
    quantity_count = Column(Integer, nullable=False, default=0)
    freshness_average = Column(Float, nullable=False, default=0.0)
    freshness_count = Column(Integer, nullable=False, default=0)
    value_average = Column(Float, nullable=False, default=0.0)
    value_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    availability_reason = Column(String(50), nullable=True)
    estimated_available_at = Column(DateTime, nullable=True)
    serving_days = Column(JSON, nullable=False, default=list)
    is_special_item = Column(Boolean, nullable=False, default=False)
    special_occasion = Column(String(100), nullable=True)
    popularity_score = Column(Float, nullable=False, default=0.0)
    last_served_date = Column(Date, nullable=True)
    frequency = Column(String(20), nullable=False, default="weekly")
    last_updated = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_menu_items_scope_meal", "facility_id", "mess_type", "meal_type"),
        Index("ix_menu_items_rating", "average_rating", "total_ratings"),
    )
    __mapper_args__ = {"version_id_col": version}


class DailyMenu(Base):
    """One meal service: (date, meal_type, facility_id, mess_type) is unique."""

    __tablename__ = "daily_menus"
    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    meal_type = Column(String(20), nullable=False)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    mess_type = Column(String(20), nullable=False)
    serving_start = Column(DateTime, nullable=False)
    serving_end = Column(DateTime, nullable=False)
    total_items = Column(Integer, nullable=False, default=0)
    expected_students = Column(Integer, nullable=True)
    actual_students = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="draft")
    special_occasion = Column(JSON, nullable=True)
    announcements = Column(JSON, nullable=False, default=list)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    cost_per_student = Column(Float, nullable=True)

    rating_total = Column(Integer, nullable=False, default=0)
    rating_average = Column(Float, nullable=False, default=0.0)
    taste_average = Column(Float, nullable=False, default=0.0)
    quantity_average = Column(Float, nullable=False, default=0.0)
    freshness_average = Column(Float, nullable=False, default=0.0)
    value_average = Column(Float, nullable=False, default=0.0)
    participation_rate = Column(Integer, nullable=False, default=0)
    rating_stats_updated_at = Column(DateTime, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    last_modified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    items = relationship(
        "DailyMenuItem",
        back_populates="daily_menu",
        order_by="DailyMenuItem.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("date", "meal_type", "facility_id", "mess_type", name="unique_daily_menu"),
        Index("ix_daily_menus_scope_date", "facility_id", "mess_type", "date"),
        Index("ix_daily_menus_status_date", "status", "date"),
    )
    __mapper_args__ = {"version_id_col": version}


class DailyMenuItem(Base):
    """A menu item served in a daily menu, with its preparation tracking."""

    __tablename__ = "daily_menu_items"
    id = Column(Integer, primary_key=True, index=True)
    daily_menu_id = Column(Integer, ForeignKey("daily_menus.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    serving_size = Column(String(50), nullable=True)
    special_notes = Column(Text, nullable=True)
    estimated_quantity = Column(Integer, nullable=True)
    actual_quantity = Column(Integer, nullable=True)
    remaining_quantity = Column(Integer, nullable=True)
    cost_per_serving = Column(Float, nullable=True)
    preparation_status = Column(String(20), nullable=False, default="not_started")
    preparation_started_at = Column(DateTime, nullable=True)
    estimated_ready_at = Column(DateTime, nullable=True)
    actual_ready_at = Column(DateTime, nullable=True)
    added_at = Column(DateTime, default=utcnow)

    daily_menu = relationship("DailyMenu", back_populates="items")
    menu_item = relationship("MenuItem")

    __table_args__ = (UniqueConstraint("daily_menu_id", "menu_item_id", name="unique_item_per_daily_menu"),)


class Rating(Base):
    """One student's feedback on one menu item for one meal instance."""

    __tablename__ = "ratings"
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    daily_menu_id = Column(Integer, ForeignKey("daily_menus.id"), nullable=False)
    overall_rating = Column(Integer, nullable=False)
    taste = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    freshness = Column(Integer, nullable=False)
    value = Column(Integer, nullable=False)
    review_text = Column(String(500), nullable=True)
    review_is_anonymous = Column(Boolean, nullable=False, default=False)
    photos = Column(JSON, nullable=False, default=list)
    emoji_reaction = Column(String(8), nullable=True)
    meal_type = Column(String(20), nullable=False)
    meal_date = Column(Date, nullable=False)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    mess_type = Column(String(20), nullable=False)
    rating_method = Column(String(20), nullable=False, default="tap")
    time_spent = Column(Integer, nullable=True)
    device_info = Column(String(20), nullable=False, default="mobile")
    location = Column(JSON, nullable=True)
    upvotes = Column(Integer, nullable=False, default=0)
    downvotes = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    student = relationship("User")
    menu_item = relationship("MenuItem")
    votes = relationship(
        "RatingVote",
        back_populates="rating",
        order_by="RatingVote.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id", "menu_item_id", "meal_date", "meal_type",
            name="one_rating_per_meal_per_day",
        ),
        Index("ix_ratings_scope_date", "facility_id", "mess_type", "meal_date"),
        Index("ix_ratings_item_date", "menu_item_id", "meal_date"),
    )
    __mapper_args__ = {"version_id_col": version}


class RatingVote(Base):
    """A helpfulness vote; at most one per (rating, user)."""

    __tablename__ = "rating_votes"
    id = Column(Integer, primary_key=True, index=True)
    rating_id = Column(Integer, ForeignKey("ratings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vote = Column(String(4), nullable=False)
    voted_at = Column(DateTime, default=utcnow)

    rating = relationship("Rating", back_populates="votes")

    __table_args__ = (UniqueConstraint("rating_id", "user_id", name="one_vote_per_user"),)
