import logging
from datetime import date, datetime
from typing import List, Optional, Protocol, Tuple

from sqlalchemy import case, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.errors import DuplicateOrderNumber, OrderConflict
from models.order import Order
from models.order_sequence import OrderSequence
from services.order_number import day_prefix, parse_order_number

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class OrderRepository(Protocol):
    """Storage operations the order service depends on."""

    def find_by_id(self, order_id: str) -> Optional[Order]:
        ...

    def find_by_user_and_id(self, order_id: str, user_id: str) -> Optional[Order]:
        ...

    def count_by_date_range(self, start: datetime, end: datetime) -> int:
        ...

    def find_page(
        self, *, status: Optional[str] = None, user_id: Optional[str] = None, offset: int = 0, limit: int = 10
    ) -> Tuple[List[Order], int]:
        ...

    def next_daily_sequence(self, day: date) -> int:
        ...

    def max_daily_sequence(self, day: date) -> int:
        ...

    def advance_daily_sequence(self, day: date, value: int) -> None:
        ...

    def save(self, order: Order) -> Order:
        ...


def _is_order_number_violation(exc: IntegrityError) -> bool:
    return "order_number" in str(exc.orig)


class SqlAlchemyOrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, order_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id).one_or_none()

    def find_by_user_and_id(self, order_id: str, user_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).one_or_none()

    def count_by_date_range(self, start: datetime, end: datetime) -> int:
        return self.db.query(func.count(Order.id)).filter(
            Order.created_at >= start,
            Order.created_at <= end,
        ).scalar()

    def find_page(
        self, *, status: Optional[str] = None, user_id: Optional[str] = None, offset: int = 0, limit: int = 10
    ) -> Tuple[List[Order], int]:
        qs = self.db.query(Order)
        if status:
            qs = qs.filter(Order.status == status)
        if user_id:
            qs = qs.filter(Order.user_id == user_id)
        total = qs.count()
        orders = (
            qs.order_by(Order.created_at.desc(), Order.order_number.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return orders, total

    def next_daily_sequence(self, day: date) -> int:
        """Increment and return the day's counter inside the current transaction.

        The row stays locked until the order insert commits, so concurrent
        creators on the same day are serialized by the database.
        """
        insert = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert is None:
            return self._next_daily_sequence_locked(day)

        stmt = insert(OrderSequence).values(day=day, last_value=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[OrderSequence.day],
            set_={"last_value": OrderSequence.last_value + 1},
        )
        self.db.execute(stmt)
        return self.db.query(OrderSequence.last_value).filter(OrderSequence.day == day).scalar()

    def _next_daily_sequence_locked(self, day: date) -> int:
        row = self.db.query(OrderSequence).filter(OrderSequence.day == day).with_for_update().one_or_none()
        if row is None:
            row = OrderSequence(day=day, last_value=0)
            self.db.add(row)
        row.last_value += 1
        self.db.flush()
        return row.last_value

    def max_daily_sequence(self, day: date) -> int:
        """Highest sequence among the stored order numbers of the day, 0 if none."""
        latest = (
            self.db.query(Order.order_number)
            .filter(Order.order_number.startswith(day_prefix(day)))
            # Wider sequences sort first, then lexically within a width
            .order_by(func.length(Order.order_number).desc(), Order.order_number.desc())
            .first()
        )
        if latest is None:
            return 0
        return parse_order_number(latest[0])[1]

    def advance_daily_sequence(self, day: date, value: int) -> None:
        """Raise the day's counter to at least value and commit it on its own."""
        insert = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        try:
            if insert is None:
                row = self.db.query(OrderSequence).filter(OrderSequence.day == day).with_for_update().one_or_none()
                if row is None:
                    self.db.add(OrderSequence(day=day, last_value=value))
                else:
                    row.last_value = max(row.last_value, value)
            else:
                stmt = insert(OrderSequence).values(day=day, last_value=value)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[OrderSequence.day],
                    set_={
                        "last_value": case(
                            (OrderSequence.last_value < value, value),
                            else_=OrderSequence.last_value,
                        )
                    },
                )
                self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def save(self, order: Order) -> Order:
        order_id, order_number = order.id, order.order_number
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if _is_order_number_violation(exc):
                raise DuplicateOrderNumber(order_number) from exc
            raise
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning("Concurrent update detected for order %s", order_id)
            raise OrderConflict() from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order
