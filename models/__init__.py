# Import models so that SQLAlchemy metadata includes them on app startup
from .order import Order, OrderStatus, PaymentMethod  # noqa: F401
