from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from services.order_status import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        allow_inf_nan=False,
    )


class OrderItemIn(CamelModel):
    product_id: str
    name: str
    price: float
    quantity: int
    subtotal: float


class ShippingAddress(CamelModel):
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone_number: str


class CreateOrder(CamelModel):
    user_id: str
    items: List[OrderItemIn]
    subtotal: float
    tax: float
    shipping_cost: float
    total: float
    shipping_address: ShippingAddress
    payment_id: Optional[str] = None
    notes: Optional[str] = None


class GetUserOrders(CamelModel):
    user_id: str
    status: Optional[OrderStatus] = None
    page: int = 1
    limit: Optional[int] = None


class GetOrder(CamelModel):
    order_id: str
    user_id: str


class CancelOrder(CamelModel):
    order_id: str
    user_id: str
    reason: Optional[str] = None


class GetAllOrders(CamelModel):
    status: Optional[OrderStatus] = None
    user_id: Optional[str] = None
    page: int = 1
    limit: Optional[int] = None


class UpdateOrderStatus(CamelModel):
    order_id: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class OrderItemOut(CamelModel):
    product_id: str
    name: str
    price: float
    quantity: int
    subtotal: float


class OrderOut(CamelModel):
    id: str
    user_id: str
    order_number: str
    items: List[OrderItemOut]
    subtotal: float
    tax: float
    shipping_cost: float
    total: float
    shipping_address: ShippingAddress
    status: OrderStatus
    payment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaginatedOrdersOut(CamelModel):
    orders: List[OrderOut]
    total: int
    page: int
    limit: int
    total_pages: int
