"""Generic record store over one SQLAlchemy model.

Catalog, loan and account services never touch the session directly; they go
through an ``EntityStore`` per model. Mutations commit immediately unless
they run inside ``transaction()``, in which case the whole block commits or
rolls back as one unit. After a commit, subscribers of every model touched
by it receive the full current matching list.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar, Union

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.errors import ConflictError, not_found

logger = logging.getLogger(__name__)

T = TypeVar("T")

OrderBy = Union[str, Any, None]

_TX_DEPTH = "entity_store.tx_depth"
_TOUCHED = "entity_store.touched"


class Subscription:
    def __init__(self, model, callback: Callable[[List[Any]], None], criteria: Sequence[Any], equals: Dict[str, Any], order_by: OrderBy):
        self.model = model
        self.callback = callback
        self.criteria = tuple(criteria)
        self.equals = dict(equals)
        self.order_by = order_by


# Process-wide: subscribers see writes made through any session
_subscriptions: Dict[type, List[Subscription]] = {}
_subscriptions_lock = threading.Lock()


def _register(subscription: Subscription) -> Callable[[], None]:
    with _subscriptions_lock:
        _subscriptions.setdefault(subscription.model, []).append(subscription)

    def unsubscribe() -> None:
        with _subscriptions_lock:
            listeners = _subscriptions.get(subscription.model, [])
            if subscription in listeners:
                listeners.remove(subscription)

    return unsubscribe


def clear_subscriptions() -> None:
    with _subscriptions_lock:
        _subscriptions.clear()


@contextmanager
def _translate_errors(db: Session):
    try:
        yield
    except StaleDataError as exc:
        logger.warning(f"Concurrent modification detected: {exc}")
        raise ConflictError("The record was modified by another operation, please retry") from exc
    except IntegrityError as exc:
        logger.warning(f"Integrity error: {exc.orig}")
        raise ConflictError("The change conflicts with an existing record") from exc


def _notify(db: Session, models) -> None:
    for model in models:
        with _subscriptions_lock:
            listeners = list(_subscriptions.get(model, []))
        for subscription in listeners:
            try:
                records = EntityStore(db, model).query(
                    *subscription.criteria,
                    order_by=subscription.order_by,
                    **subscription.equals,
                )
                subscription.callback(records)
            except Exception as e:
                # A broken listener must not fail the write that triggered it
                logger.error(f"Error in {model.__name__} subscription: {e}", exc_info=True)


def in_transaction(db: Session) -> bool:
    return db.info.get(_TX_DEPTH, 0) > 0


def commit(db: Session) -> None:
    """Flush inside an open transaction block, otherwise commit and notify."""
    if db.info.get(_TX_DEPTH, 0):
        with _translate_errors(db):
            db.flush()
        return

    try:
        with _translate_errors(db):
            db.commit()
    except ConflictError:
        db.rollback()
        db.info.pop(_TOUCHED, None)
        raise

    touched = db.info.pop(_TOUCHED, set())
    if touched:
        _notify(db, touched)


@contextmanager
def transaction(db: Session):
    """Run a composite operation as a single commit (nesting joins the outer one)."""
    depth = db.info.get(_TX_DEPTH, 0)
    db.info[_TX_DEPTH] = depth + 1
    try:
        yield db
    except Exception:
        db.info[_TX_DEPTH] = depth
        if depth == 0:
            db.rollback()
            db.info.pop(_TOUCHED, None)
        raise
    db.info[_TX_DEPTH] = depth
    if depth == 0:
        commit(db)


class EntityStore(Generic[T]):
    """CRUD, filtered queries and change subscriptions for one model."""

    def __init__(self, db: Session, model):
        self.db = db
        self.model = model
        self._pk = inspect(model).primary_key[0]

    @property
    def kind(self) -> str:
        return self.model.__name__

    def _order(self, query, order_by: OrderBy):
        if order_by is None:
            return query.order_by(self._pk)
        if isinstance(order_by, str):
            descending = order_by.startswith("-")
            column = getattr(self.model, order_by.lstrip("-"))
            return query.order_by(column.desc() if descending else column.asc())
        return query.order_by(order_by)

    def get_all(self, order_by: OrderBy = None) -> List[T]:
        return self._order(self.db.query(self.model), order_by).all()

    def get_by_id(self, record_id) -> Optional[T]:
        if record_id is None:
            return None
        return self.db.get(self.model, record_id)

    def require(self, record_id) -> T:
        record = self.get_by_id(record_id)
        if record is None:
            raise not_found(self.kind, record_id)
        return record

    def query(self, *criteria, order_by: OrderBy = None, **equals) -> List[T]:
        query = self.db.query(self.model)
        if criteria:
            query = query.filter(*criteria)
        if equals:
            query = query.filter_by(**equals)
        return self._order(query, order_by).all()

    def first(self, *criteria, **equals) -> Optional[T]:
        query = self.db.query(self.model)
        if criteria:
            query = query.filter(*criteria)
        if equals:
            query = query.filter_by(**equals)
        return query.first()

    def count(self, *criteria, **equals) -> int:
        query = self.db.query(self.model)
        if criteria:
            query = query.filter(*criteria)
        if equals:
            query = query.filter_by(**equals)
        return query.count()

    def create(self, **fields) -> T:
        record = self.model(**fields)
        self.db.add(record)
        self._touch()
        commit(self.db)
        logger.debug(f"Created {self.kind} {inspect(record).identity}")
        return record

    def update(self, record_id, **fields) -> T:
        record = self.require(record_id)
        for name, value in fields.items():
            setattr(record, name, value)
        self._touch()
        commit(self.db)
        return record

    def delete(self, record_id) -> None:
        record = self.require(record_id)
        self.db.delete(record)
        self._touch()
        commit(self.db)
        logger.debug(f"Deleted {self.kind} {record_id}")

    def subscribe(self, callback: Callable[[List[T]], None], *criteria, order_by: OrderBy = None, **equals) -> Callable[[], None]:
        """Register ``callback``; it gets the full matching list after every change."""
        return _register(Subscription(self.model, callback, criteria, equals, order_by))

    def transaction(self):
        return transaction(self.db)

    def _touch(self) -> None:
        self.db.info.setdefault(_TOUCHED, set()).add(self.model)
