from typing import Iterable


class OrderServiceError(Exception):
    """Base class for errors surfaced to command callers."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"statusCode": self.status_code, "message": self.message, "error": self.error}


class InvalidPayload(OrderServiceError):
    status_code = 400
    error = "Bad Request"

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid payload")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class InvalidOrderId(OrderServiceError):
    status_code = 400
    error = "Bad Request"

    def __init__(self, order_id: str | None = None):
        super().__init__("Invalid order ID")
        self.order_id = order_id


class OrderNotFound(OrderServiceError):
    status_code = 404
    error = "Not Found"

    def __init__(self):
        super().__init__("Order not found")


class InvalidStatusTransition(OrderServiceError):
    status_code = 400
    error = "Bad Request"

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition from {current} to {requested}")
        self.current = current
        self.requested = requested


class OrderNotCancellable(OrderServiceError):
    status_code = 400
    error = "Bad Request"

    def __init__(self, status: str):
        super().__init__(f"Cannot cancel order with status: {status}")
        self.status = status


class DuplicateOrderNumber(OrderServiceError):
    status_code = 409
    error = "Conflict"

    def __init__(self, order_number: str | None = None):
        super().__init__("Could not allocate a unique order number")
        self.order_number = order_number


class OrderConflict(OrderServiceError):
    status_code = 409
    error = "Conflict"

    def __init__(self):
        super().__init__("Order was modified concurrently")


class UnknownCommand(OrderServiceError):
    status_code = 404
    error = "Not Found"

    def __init__(self, cmd: str):
        super().__init__("There is no matching message handler defined in the remote service.")
        self.cmd = cmd
