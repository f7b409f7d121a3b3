import logging
import math
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from core.config import settings
from core.errors import DuplicateOrderNumber, InvalidOrderId, InvalidPayload, OrderNotFound
from models.order import Order, new_order_id
from models.order_item import OrderItem
from repositories.orders import OrderRepository
from schemas.order import (
    CancelOrder,
    CreateOrder,
    GetAllOrders,
    GetOrder,
    GetUserOrders,
    UpdateOrderStatus,
)
from services.order_number import OrderNumberAllocator
from services.order_status import INITIAL_STATUS, OrderStatus, apply_status, ensure_cancellable, ensure_transition

logger = logging.getLogger(__name__)

ORDER_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")
CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: float | int | Decimal) -> Decimal:
    return _to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _check_order_id(order_id: str) -> None:
    if not isinstance(order_id, str) or not ORDER_ID_PATTERN.match(order_id):
        raise InvalidOrderId(order_id)


def check_pricing(data: CreateOrder) -> None:
    """Reject a creation payload whose amounts do not add up to the cent."""
    errors = []
    items_total = Decimal("0.00")
    for index, item in enumerate(data.items):
        expected = _money(_to_decimal(item.price) * item.quantity)
        if _money(item.subtotal) != expected:
            errors.append(f"items.{index}.subtotal must equal price x quantity ({expected})")
        items_total += _money(item.subtotal)

    if _money(data.subtotal) != items_total:
        errors.append(f"subtotal must equal the sum of item subtotals ({items_total})")

    expected_total = _money(data.subtotal) + _money(data.tax) + _money(data.shipping_cost)
    if _money(data.total) != expected_total:
        errors.append(f"total must equal subtotal + tax + shippingCost ({expected_total})")

    if errors:
        raise InvalidPayload(errors)


class OrderService:
    """Creates orders and drives them through their status workflow."""

    def __init__(
        self,
        repository: OrderRepository,
        allocator: OrderNumberAllocator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.allocator = allocator
        self.clock = clock

    def create_order(self, data: CreateOrder) -> Order:
        check_pricing(data)
        now = self.clock()

        order = Order(
            id=new_order_id(),
            user_id=data.user_id,
            items=[
                OrderItem(
                    position=position,
                    product_id=item.product_id,
                    name=item.name,
                    price=_money(item.price),
                    quantity=item.quantity,
                    subtotal=_money(item.subtotal),
                )
                for position, item in enumerate(data.items)
            ],
            subtotal=_money(data.subtotal),
            tax=_money(data.tax),
            shipping_cost=_money(data.shipping_cost),
            total=_money(data.total),
            shipping_address=data.shipping_address.model_dump(),
            status=INITIAL_STATUS.value,
            payment_id=data.payment_id,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )

        for _ in range(settings.ORDER_NUMBER_MAX_RETRIES):
            order.order_number = self.allocator.allocate(now)
            try:
                saved = self.repository.save(order)
            except DuplicateOrderNumber:
                logger.warning("Order number %s already taken, retrying", order.order_number)
                self.allocator.recover(now)
                continue
            logger.info("Created order %s for user %s", saved.order_number, saved.user_id)
            return saved

        raise DuplicateOrderNumber(order.order_number)

    def get_user_orders(self, query: GetUserOrders) -> dict:
        return self._paginate(
            status=query.status,
            user_id=query.user_id,
            page=query.page,
            limit=query.limit,
        )

    def get_order_by_id(self, query: GetOrder) -> Order:
        return self._get_owned_order(query.order_id, query.user_id)

    def cancel_order(self, data: CancelOrder) -> Order:
        order = self._get_owned_order(data.order_id, data.user_id)
        ensure_cancellable(order.status)

        apply_status(order, OrderStatus.CANCELLED, self.clock())
        order.cancellation_reason = data.reason
        saved = self.repository.save(order)
        logger.info("Order %s cancelled by user %s", saved.order_number, data.user_id)
        return saved

    def get_all_orders(self, query: GetAllOrders) -> dict:
        return self._paginate(
            status=query.status,
            user_id=query.user_id,
            page=query.page,
            limit=query.limit,
        )

    def update_order_status(self, data: UpdateOrderStatus) -> Order:
        _check_order_id(data.order_id)
        order = self.repository.find_by_id(data.order_id)
        if not order:
            raise OrderNotFound()

        previous = order.status
        ensure_transition(previous, data.status)

        apply_status(order, data.status, self.clock())
        if data.tracking_number:
            order.tracking_number = data.tracking_number
        if data.notes:
            order.notes = data.notes
        saved = self.repository.save(order)
        logger.info("Order %s moved from %s to %s", saved.order_number, previous, saved.status)
        return saved

    def _get_owned_order(self, order_id: str, user_id: str) -> Order:
        # Foreign and missing orders share one error so ownership is not leaked
        _check_order_id(order_id)
        order = self.repository.find_by_user_and_id(order_id, user_id)
        if not order:
            raise OrderNotFound()
        return order

    def _paginate(
        self,
        *,
        status: Optional[OrderStatus],
        user_id: Optional[str],
        page: int,
        limit: Optional[int],
    ) -> dict:
        limit = limit or settings.DEFAULT_PAGE_LIMIT
        orders, total = self.repository.find_page(
            status=status.value if status else None,
            user_id=user_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {
            "orders": orders,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }
