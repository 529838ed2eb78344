from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional


class PaymentStartResponse(BaseModel):
    success: bool = True
    order_id: str
    payment_method: str
    external_id: str
    checkout_url: Optional[str] = None
    expires_at: Optional[str] = None
    client_secret: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
