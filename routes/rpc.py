from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.db import get_db
from repositories.orders import SqlAlchemyOrderRepository
from services.commands import dispatch
from services.order_number import OrderNumberAllocator, build_sequence
from services.orders import OrderService

router = APIRouter(tags=["orders"])


class MessagePattern(BaseModel):
    cmd: str


class RpcMessage(BaseModel):
    pattern: MessagePattern
    data: Dict[str, Any] = {}


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    repository = SqlAlchemyOrderRepository(db)
    return OrderService(repository, OrderNumberAllocator(build_sequence(repository)))


@router.post("/rpc")
def handle_message(message: RpcMessage, service: OrderService = Depends(get_order_service)):
    """Run one order command, e.g. {"pattern": {"cmd": "get-order"}, "data": {...}}."""
    return dispatch(service, message.pattern.cmd, message.data)
