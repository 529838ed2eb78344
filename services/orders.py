import logging
from typing import List

from core.exceptions import OrderNotFoundError, ValidationError
from models.order import Order, OrderStatus, PaymentMethod
from schemas.order import OrderCreate
from services.codes import generate_order_number
from services.order_store import OrderStore
from services.providers import PaymentHandle, ProviderRegistry

logger = logging.getLogger(__name__)


def items_subtotal(items) -> int:
    return sum(item.price * item.quantity for item in items)


def create_order(store: OrderStore, data: OrderCreate) -> Order:
    """Persist a new pending order; nothing is written when validation fails."""
    if not data.user_id:
        raise ValidationError("Missing required order field: userId")
    if not data.items:
        raise ValidationError("Missing required order field: items")
    if not data.total or data.total <= 0:
        raise ValidationError("Missing required order field: total")
    if data.payment_method is None:
        raise ValidationError("Missing required order field: paymentMethod")

    # Tax and shipping are computed by the caller and can only add to the subtotal
    subtotal = items_subtotal(data.items)
    if data.total < subtotal:
        raise ValidationError(f"Order total {data.total} is below the item subtotal {subtotal}")

    return store.create(
        order_number=generate_order_number(),
        user_id=data.user_id,
        items=[item.model_dump(mode="json", exclude_none=True) for item in data.items],
        total=data.total,
        currency=data.currency.upper(),
        payment_method=data.payment_method.value,
        billing_info=data.billing_info.model_dump(mode="json", by_alias=True, exclude_none=True) if data.billing_info else None,
        shipping_info=data.shipping_info,
        status=OrderStatus.PENDING.value,
    )


def get_order(store: OrderStore, order_id: str) -> Order:
    order = store.get(order_id)
    if order is None:
        raise OrderNotFoundError("Order not found")
    return order


def list_orders_for_user(store: OrderStore, user_id: str) -> List[Order]:
    return store.list_by_user(user_id)


def start_payment(store: OrderStore, providers: ProviderRegistry, order_id: str) -> PaymentHandle:
    """
    Create the provider-side payment object for an order.

    The provider id is stored on the order before the handle is returned, so
    a webhook that beats the client redirect can already be correlated.
    """
    order = get_order(store, order_id)
    if order.status != OrderStatus.PENDING.value:
        raise ValidationError(f"Order is {order.status}; payment can only start for pending orders")
    if order.provider_object_id:
        raise ValidationError("Payment already started for this order")

    method = PaymentMethod(order.payment_method)
    provider = providers.for_method(method)
    handle = provider.create_payment(order)

    field = "stripe_payment_intent_id" if method is PaymentMethod.CARD else "crypto_invoice_id"
    if store.set_once(order.id, field, handle.external_id) is None:
        logger.warning("Order %s already correlated; discarding %s object %s", order.id, provider.name, handle.external_id)
        raise ValidationError("Payment already started for this order")

    logger.info("Order %s linked to %s object %s", order.id, provider.name, handle.external_id)
    return handle
