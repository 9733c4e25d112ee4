"""Repository base class and the transaction runner used by services.

`BaseRepository` wraps the lookups every service repeats (fetch by id or
raise, filtered listing, counting). `run_in_transaction` commits one unit of
work and replays it when a versioned row was changed underneath it.
"""

from typing import TypeVar, Generic, Type, Optional, List, Any, Callable

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, Query
from sqlalchemy.orm.exc import StaleDataError

from core.config import AGGREGATE_UPDATE_RETRIES
from core.exceptions import AppException, ConflictError, NotFoundError, UnavailableError
from core.logger import get_logger
from database.models import Base

T = TypeVar('T', bound=Base)
R = TypeVar('R')

logger = get_logger("core.repository")


class BaseRepository(Generic[T]):
    """Generic repository for common database operations.

    Attributes:
        model: SQLAlchemy model class to operate on.
        session: Database session for executing queries.
        resource: Name used in NotFound messages.
    """

    def __init__(self, model: Type[T], session: Session, resource: Optional[str] = None):
        self.model = model
        self.session = session
        self.resource = resource or model.__name__

    def get_by_id(self, id: Any) -> Optional[T]:
        """Retrieve an object by its primary key, or None."""
        return self.session.get(self.model, id)

    def get_or_raise(self, id: Any) -> T:
        """Retrieve an object by its primary key.

        Raises:
            NotFoundError: If no row has that key.
        """
        obj = self.get_by_id(id)
        if obj is None:
            raise NotFoundError(self.resource, id)
        return obj

    def query(self, *criteria, **filters) -> Query:
        """Return a query on the model narrowed by criteria and equality filters."""
        q = self.session.query(self.model)
        if criteria:
            q = q.filter(*criteria)
        if filters:
            q = q.filter_by(**filters)
        return q

    def first(self, *criteria, **filters) -> Optional[T]:
        return self.query(*criteria, **filters).first()

    def list(self, *criteria, skip: int = 0, limit: int = 100, order_by=None, **filters) -> List[T]:
        """Retrieve matching objects with pagination."""
        q = self.query(*criteria, **filters)
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)
        return q.offset(skip).limit(limit).all()

    def count(self, *criteria, **filters) -> int:
        return self.query(*criteria, **filters).count()

    def add(self, obj: T) -> T:
        """Stage a new object and flush so its primary key is assigned."""
        self.session.add(obj)
        self.session.flush()
        return obj


def run_in_transaction(
    session: Session,
    operation: Callable[[], R],
    *,
    name: str = "operation",
    conflict_message: str = "Duplicate field value entered",
    retries: int = AGGREGATE_UPDATE_RETRIES,
) -> R:
    """Run ``operation`` and commit, replaying it after lost version races.

    ``operation`` must load everything it mutates itself, since a replay
    starts from a rolled-back session. Uniqueness violations become
    ConflictError; connectivity failures and exhausted retries become
    UnavailableError. Any AppException raised by the operation rolls the
    session back and propagates unchanged.
    """
    for attempt in range(1, retries + 1):
        try:
            result = operation()
            session.commit()
            return result
        except StaleDataError:
            session.rollback()
            logger.warning("%s lost a concurrent update (attempt %s/%s)", name, attempt, retries)
        except IntegrityError as exc:
            session.rollback()
            logger.warning("%s rejected by constraint: %s", name, exc.orig)
            raise ConflictError(conflict_message)
        except OperationalError:
            session.rollback()
            logger.exception("%s failed: storage unavailable", name)
            raise UnavailableError(operation=name)
        except AppException:
            session.rollback()
            raise

    logger.error("%s gave up after %s concurrent update conflicts", name, retries)
    raise UnavailableError("Too many concurrent updates, please retry", operation=name)
