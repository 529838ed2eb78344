"""
Persistence for orders.

Every mutation goes through ``update``, which bumps ``version`` and
``updated_at`` and can be made conditional (compare-and-set) on the current
status, version, or on a column still being empty. A conditional update that
matches no row returns ``None`` so callers can tell that another invocation
got there first.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update as sa_update
from sqlalchemy.orm import Session

from models.order import Order, utcnow

logger = logging.getLogger(__name__)

# Provider ids and the redemption code are written once and never changed.
WRITE_ONCE_FIELDS = ("stripe_payment_intent_id", "crypto_invoice_id", "unique_code")


class OrderStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Order:
        now = utcnow()
        order = Order(created_at=now, updated_at=now, version=1, **fields)
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        logger.info("Created order %s (%s)", order.id, order.order_number)
        return order

    def get(self, order_id: str) -> Optional[Order]:
        if not order_id:
            return None
        return self.db.get(Order, order_id, populate_existing=True)

    def list_by_user(self, user_id: str) -> List[Order]:
        stmt = select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def update(
        self,
        order_id: str,
        fields: Dict[str, Any],
        *,
        expected_status: Optional[Iterable[str]] = None,
        expected_version: Optional[int] = None,
        require_empty: Iterable[str] = (),
    ) -> Optional[Order]:
        """
        Merge ``fields`` into the order and return the fresh row.

        Returns ``None`` when the order is missing or a condition did not hold.
        """
        for name in fields:
            if name in ("id", "created_at", "version", "updated_at"):
                raise ValueError(f"{name} is not updatable")

        conditions = [Order.id == order_id]
        if expected_status is not None:
            conditions.append(Order.status.in_(list(expected_status)))
        if expected_version is not None:
            conditions.append(Order.version == expected_version)
        for name in require_empty:
            conditions.append(getattr(Order, name).is_(None))

        values = {getattr(Order, name): value for name, value in fields.items()}
        values[Order.updated_at] = utcnow()
        values[Order.version] = Order.version + 1

        stmt = (
            sa_update(Order)
            .where(*conditions)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if result.rowcount == 0:
            logger.debug("Conditional update on order %s matched no row", order_id)
            return None
        return self.get(order_id)

    def set_once(self, order_id: str, field: str, value: Any) -> Optional[Order]:
        """Write a write-once field only while it is still empty."""
        if field not in WRITE_ONCE_FIELDS:
            raise ValueError(f"{field} is not a write-once field")
        return self.update(order_id, {field: value}, require_empty=(field,))
