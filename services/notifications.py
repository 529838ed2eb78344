import logging
from typing import Protocol

from core.exceptions import SideEffectError
from models.order import Order
from services import email as email_service
from services.providers import to_major_units

logger = logging.getLogger(__name__)

ORDER_CONFIRMATION_TEMPLATE = "emails/order_confirmation.txt"


class NotificationSender(Protocol):
    def send_order_confirmation(self, order: Order) -> None: ...


class EmailNotificationSender:
    """Emails the order confirmation to the billing address."""

    def send_order_confirmation(self, order: Order) -> None:
        to_email = order.customer_email
        if not to_email:
            raise SideEffectError(f"Order {order.id} has no billing email")

        billing = order.billing_info or {}
        context = {
            "display_name": billing.get("name") or "there",
            "order_number": order.order_number,
            "unique_code": order.unique_code,
            "items": order.items or [],
            "total": to_major_units(order.total),
            "currency": order.currency,
        }
        try:
            email_service.send_templated_email(
                to_email,
                f"Order Confirmation - {order.order_number}",
                ORDER_CONFIRMATION_TEMPLATE,
                context,
            )
        except Exception as e:
            raise SideEffectError(f"Confirmation email for order {order.id} failed: {e}") from e
        logger.info("Confirmation email dispatched for order %s", order.id)
