"""Meal-time window check applied before a rating is accepted."""

from datetime import datetime, time
from typing import Dict, Optional, Tuple

from core.config import MEAL_TIME_WINDOWS
from core.exceptions import InvalidStateError, ValidationError


def _format(t: time) -> str:
    return t.strftime("%I:%M %p").lstrip("0")


def ensure_within_meal_window(
    meal_type: str,
    now: Optional[datetime] = None,
    windows: Dict[str, Tuple[time, time]] = MEAL_TIME_WINDOWS,
) -> None:
    """Reject a rating submitted outside the window for ``meal_type``.

    Windows are compared at minute resolution and both ends are inclusive,
    so a lunch rating at 16:00 is accepted and one at 16:01 is not.

    Raises:
        ValidationError: If the meal type has no rating window (e.g. snack).
        InvalidStateError: If ``now`` falls outside the window.
    """
    meal = (meal_type or "").lower()
    window = windows.get(meal)
    if window is None:
        raise ValidationError("Invalid meal type. Must be breakfast, lunch, or dinner", field="meal_type")

    now = now or datetime.now()
    current = time(now.hour, now.minute)
    start, end = window
    if current < start or current > end:
        raise InvalidStateError(
            f"You can only review {meal} between {_format(start)} and {_format(end)}",
            state="outside_meal_window",
        )
