"""Command names of the order service wire contract and their handlers."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Sequence, Type

from pydantic import BaseModel

from core.errors import InvalidPayload, OrderServiceError, UnknownCommand
from schemas.order import (
    CancelOrder,
    CreateOrder,
    GetAllOrders,
    GetOrder,
    GetUserOrders,
    OrderOut,
    PaginatedOrdersOut,
    UpdateOrderStatus,
)
from services import validation
from services.orders import OrderService

logger = logging.getLogger(__name__)


class CommandName(str, Enum):
    CREATE_ORDER = "create-order"
    GET_USER_ORDERS = "get-user-orders"
    GET_ORDER = "get-order"
    CANCEL_ORDER = "cancel-order"
    GET_ALL_ORDERS = "get-all-orders"
    UPDATE_ORDER_STATUS = "update-order-status"


@dataclass(frozen=True)
class Command:
    rules: Sequence[validation.FieldRule]
    payload: Type[BaseModel]
    handler: Callable[[OrderService, Any], Any]
    result: Type[BaseModel]


COMMANDS: Dict[CommandName, Command] = {
    CommandName.CREATE_ORDER: Command(
        validation.CREATE_ORDER_RULES, CreateOrder, OrderService.create_order, OrderOut
    ),
    CommandName.GET_USER_ORDERS: Command(
        validation.GET_USER_ORDERS_RULES, GetUserOrders, OrderService.get_user_orders, PaginatedOrdersOut
    ),
    CommandName.GET_ORDER: Command(
        validation.GET_ORDER_RULES, GetOrder, OrderService.get_order_by_id, OrderOut
    ),
    CommandName.CANCEL_ORDER: Command(
        validation.CANCEL_ORDER_RULES, CancelOrder, OrderService.cancel_order, OrderOut
    ),
    CommandName.GET_ALL_ORDERS: Command(
        validation.GET_ALL_ORDERS_RULES, GetAllOrders, OrderService.get_all_orders, PaginatedOrdersOut
    ),
    CommandName.UPDATE_ORDER_STATUS: Command(
        validation.UPDATE_ORDER_STATUS_RULES, UpdateOrderStatus, OrderService.update_order_status, OrderOut
    ),
}


def resolve(cmd: str) -> Command:
    try:
        return COMMANDS[CommandName(cmd)]
    except ValueError:
        raise UnknownCommand(cmd) from None


def dispatch(service: OrderService, cmd: str, payload: Mapping[str, Any] | None) -> dict:
    """Validate payload, run the command and serialize the result for the wire."""
    started = time.perf_counter()
    logger.info("[Request] cmd=%s", cmd)
    logger.debug("[Request] cmd=%s data=%s", cmd, payload)
    try:
        command = resolve(cmd)
        payload = payload or {}
        checked = validation.validate(payload, command.rules)
        if not checked.ok:
            raise InvalidPayload(checked.errors)

        result = command.handler(service, command.payload.model_validate(payload))
        body = command.result.model_validate(result).model_dump(mode="json", by_alias=True, exclude_none=True)
    except OrderServiceError as exc:
        logger.warning(
            "[Error] cmd=%s - %.1fms status=%s message=%s",
            cmd, (time.perf_counter() - started) * 1000, exc.status_code, exc.message,
        )
        raise
    logger.info("[Response] cmd=%s - %.1fms", cmd, (time.perf_counter() - started) * 1000)
    return body
