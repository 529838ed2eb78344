import secrets
import string
import time
from datetime import datetime, timezone

from core.config import settings

_BASE36 = string.digits + string.ascii_uppercase


def generate_unique_code(prefix: str | None = None, now: datetime | None = None) -> str:
    """
    Build a redemption code ``<PREFIX>-<YYYYMMDD>-<8 hex>``.

    The date is the UTC generation date and the suffix is 4 bytes from the OS
    CSPRNG. There is no lookup against existing orders; the ``uniqueCode``
    column's unique constraint is what rejects a collision.
    """
    prefix = prefix or settings.UNIQUE_CODE_PREFIX
    now = now or datetime.now(timezone.utc)
    date_part = now.astimezone(timezone.utc).strftime("%Y%m%d")
    random_part = secrets.token_bytes(4).hex().upper()
    return f"{prefix}-{date_part}-{random_part}"


def generate_order_number(prefix: str | None = None) -> str:
    """Human-readable order number ``<PREFIX>-<epoch millis>-<6 base36 chars>``."""
    prefix = prefix or settings.ORDER_NUMBER_PREFIX
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}-{millis}-{suffix}"
