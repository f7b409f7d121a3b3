# Import models so that SQLAlchemy metadata includes them on app startup
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .order_sequence import OrderSequence  # noqa: F401
