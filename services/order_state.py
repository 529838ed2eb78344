"""
Order payment state machine.

Webhook events for an order may arrive more than once, out of order, or
concurrently. Every transition is a conditional update against the status
that was just read, and the side effects of a confirmed payment (code,
notification, ledger registration) run only in the invocation that claims
the order's ``uniqueCode``. Whatever the delivery pattern, an order gets one
code and one confirmation email.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from core.exceptions import SideEffectError, UnresolvedOrderError
from models.order import Order, OrderStatus
from schemas.webhook import EventKind, PaymentEvent, Provider
from services.blockchain import BlockchainRegistrar
from services.codes import generate_unique_code
from services.notifications import NotificationSender
from services.order_store import OrderStore

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    WEBHOOK_STATUS_UPDATED = "webhook_status_updated"
    UNKNOWN_EVENT = "unknown_event"


@dataclass
class TransitionResult:
    outcome: Outcome
    order_id: Optional[str] = None
    status: Optional[str] = None
    unique_code: Optional[str] = None


# Status an event moves the order to, and the statuses it may move from.
# Paid is never left; a late success may still rescue a failed payment.
TRANSITIONS: Dict[EventKind, Tuple[OrderStatus, Tuple[OrderStatus, ...]]] = {
    EventKind.SUCCEEDED: (OrderStatus.PAID, (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED)),
    EventKind.FAILED: (OrderStatus.PAYMENT_FAILED, (OrderStatus.PENDING,)),
    EventKind.CANCELED: (OrderStatus.CANCELED, (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED)),
    EventKind.DELAYED: (OrderStatus.PENDING, (OrderStatus.PENDING,)),
    EventKind.PARTIALLY_PAID: (OrderStatus.PENDING, (OrderStatus.PENDING,)),
}

_CARD_WEBHOOK_STATUS = {
    EventKind.SUCCEEDED: "payment_confirmed",
    EventKind.FAILED: "payment_failed",
    EventKind.CANCELED: "payment_canceled",
}

_CRYPTO_WEBHOOK_STATUS = {
    EventKind.SUCCEEDED: "crypto_payment_confirmed",
    EventKind.FAILED: "crypto_payment_failed",
    EventKind.CANCELED: "crypto_payment_canceled",
    EventKind.DELAYED: "crypto_payment_delayed",
    EventKind.PARTIALLY_PAID: "crypto_payment_partial",
}


def webhook_status_for(event: PaymentEvent) -> str:
    table = _CRYPTO_WEBHOOK_STATUS if event.provider.is_crypto else _CARD_WEBHOOK_STATUS
    return table[event.kind]


CORRELATION_FIELDS = ("stripe_payment_intent_id", "crypto_invoice_id")

MAX_CAS_ATTEMPTS = 3


def correlation_field_for(provider: Provider) -> str:
    return "crypto_invoice_id" if provider.is_crypto else "stripe_payment_intent_id"


class OrderStateMachine:
    def __init__(
        self,
        store: OrderStore,
        notifier: NotificationSender,
        registrar: Optional[BlockchainRegistrar] = None,
        code_generator: Callable[[], str] = generate_unique_code,
    ):
        self.store = store
        self.notifier = notifier
        self.registrar = registrar
        self.code_generator = code_generator

    def apply(self, event: PaymentEvent) -> TransitionResult:
        """
        Apply one normalized payment event.

        Store failures while moving the order propagate so the provider
        redelivers. Unresolvable orders and failing side effects are logged
        and reported through the result only.
        """
        if event.kind is EventKind.UNKNOWN:
            logger.info("Ignoring unhandled %s event type %r", event.provider.value, event.raw_type)
            return TransitionResult(Outcome.UNKNOWN_EVENT, order_id=event.order_id)

        try:
            order = self._resolve(event)
        except UnresolvedOrderError as e:
            logger.warning("%s (provider=%s, type=%s)", e.message, event.provider.value, event.raw_type)
            return TransitionResult(Outcome.UNRESOLVED, order_id=event.order_id)

        if event.kind is EventKind.SUCCEEDED:
            return self._confirm(order, event)
        if event.kind in (EventKind.DELAYED, EventKind.PARTIALLY_PAID):
            return self._note_progress(order, event)
        return self._close(order, event)

    def _resolve(self, event: PaymentEvent) -> Order:
        if not event.order_id:
            raise UnresolvedOrderError("No order id in payment event metadata")
        order = self.store.get(event.order_id)
        if order is None:
            raise UnresolvedOrderError(f"Payment event references unknown order {event.order_id}")
        return order

    def _correlation_fields(self, order: Order, event: PaymentEvent) -> Dict[str, str]:
        field = correlation_field_for(event.provider)
        current = getattr(order, field)
        if not event.provider_object_id or current == event.provider_object_id:
            return {}
        if current:
            logger.warning(
                "Order %s already linked to %s %s; not overwriting with %s",
                order.id, field, current, event.provider_object_id,
            )
            return {}
        return {field: event.provider_object_id}

    def _transition(self, order: Order, event: PaymentEvent) -> Tuple[Optional[Order], Optional[Order]]:
        """
        Compare-and-set the event's target status.

        Returns ``(updated, current)``; ``updated`` is None when the order left
        the legal source statuses before the write could land.
        """
        target, sources = TRANSITIONS[event.kind]
        legal = [s.value for s in sources]
        current: Optional[Order] = order
        for _ in range(MAX_CAS_ATTEMPTS):
            fields = {"status": target.value, "webhook_status": webhook_status_for(event)}
            fields.update(self._correlation_fields(current, event))
            updated = self.store.update(
                current.id,
                fields,
                expected_status=legal,
                expected_version=current.version,
                require_empty=[name for name in fields if name in CORRELATION_FIELDS],
            )
            if updated is not None:
                return updated, updated
            current = self.store.get(current.id)
            if current is None or current.status not in legal:
                break
        return None, current

    def _confirm(self, order: Order, event: PaymentEvent) -> TransitionResult:
        target, sources = TRANSITIONS[EventKind.SUCCEEDED]

        if order.status != target.value:
            if order.status not in {s.value for s in sources}:
                logger.warning("Order %s is %s; ignoring payment confirmation", order.id, order.status)
                return TransitionResult(Outcome.IGNORED, order.id, order.status, order.unique_code)

            updated, current = self._transition(order, event)
            if updated is not None:
                order = updated
                logger.info("Order %s marked paid via %s", order.id, event.provider.value)
            elif current is not None and current.status == target.value:
                order = current
            else:
                logger.warning("Order %s changed concurrently; payment confirmation not applied", order.id)
                return TransitionResult(Outcome.IGNORED, order.id, current.status if current else None)

        if order.unique_code:
            logger.info("Duplicate payment confirmation for order %s ignored", order.id)
            return TransitionResult(Outcome.DUPLICATE, order.id, order.status, order.unique_code)

        claimed = self.store.set_once(order.id, "unique_code", self.code_generator())
        if claimed is None:
            current = self.store.get(order.id)
            logger.info("Unique code for order %s assigned by a concurrent delivery", order.id)
            return TransitionResult(Outcome.DUPLICATE, order.id, order.status, current.unique_code if current else None)

        order = claimed
        logger.info("Assigned unique code %s to order %s", order.unique_code, order.id)
        self._notify(order)
        order = self._register(order)
        return TransitionResult(Outcome.APPLIED, order.id, order.status, order.unique_code)

    def _close(self, order: Order, event: PaymentEvent) -> TransitionResult:
        target, sources = TRANSITIONS[event.kind]
        if order.status == target.value:
            return TransitionResult(Outcome.DUPLICATE, order.id, order.status, order.unique_code)
        if order.status not in {s.value for s in sources}:
            logger.warning(
                "Order %s is %s; ignoring %s event %r",
                order.id, order.status, event.provider.value, event.raw_type,
            )
            return TransitionResult(Outcome.IGNORED, order.id, order.status, order.unique_code)

        updated, current = self._transition(order, event)
        if updated is None:
            status = current.status if current else None
            outcome = Outcome.DUPLICATE if status == target.value else Outcome.IGNORED
            logger.warning("Order %s changed concurrently; %s not applied", order.id, event.kind.value)
            return TransitionResult(outcome, order.id, status)
        logger.info("Order %s moved to %s via %s", updated.id, updated.status, event.provider.value)
        return TransitionResult(Outcome.APPLIED, updated.id, updated.status, updated.unique_code)

    def _note_progress(self, order: Order, event: PaymentEvent) -> TransitionResult:
        if order.status != OrderStatus.PENDING.value:
            logger.info("Order %s is %s; ignoring %s notice", order.id, order.status, event.kind.value)
            return TransitionResult(Outcome.IGNORED, order.id, order.status, order.unique_code)

        updated, current = self._transition(order, event)
        if updated is None:
            logger.warning("Order %s changed concurrently; %s notice not recorded", order.id, event.kind.value)
            return TransitionResult(Outcome.IGNORED, order.id, current.status if current else None)
        logger.info("Order %s still pending: %s", updated.id, updated.webhook_status)
        return TransitionResult(Outcome.WEBHOOK_STATUS_UPDATED, updated.id, updated.status)

    def _notify(self, order: Order) -> None:
        try:
            self.notifier.send_order_confirmation(order)
        except SideEffectError as e:
            logger.error("Order %s confirmation not sent: %s", order.id, e.message)
        except Exception:
            logger.exception("Order %s confirmation not sent", order.id)

    def _register(self, order: Order) -> Order:
        if self.registrar is None:
            return order
        metadata = {
            "orderId": order.id,
            "userId": order.user_id,
            "total": order.total,
            "currency": order.currency,
        }
        try:
            result = self.registrar.register(order.unique_code, metadata)
        except SideEffectError as e:
            logger.error("Blockchain registration for order %s failed: %s", order.id, e.message)
            return order
        except Exception:
            logger.exception("Blockchain registration for order %s failed", order.id)
            return order

        if not result.success:
            logger.info("Blockchain registration skipped for order %s: %s", order.id, result.message)
            return order
        try:
            updated = self.store.update(order.id, {"blockchain_tx_id": result.transaction_id})
        except Exception:
            logger.exception("Could not record blockchain tx for order %s", order.id)
            return order
        return updated or order
