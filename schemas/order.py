from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from models.order import PaymentMethod


class OrderItemIn(BaseModel):
    sku: str
    title: Optional[str] = None
    price: int = Field(ge=0, description="Unit price in minor currency units")
    quantity: int = Field(ge=1)
    image: Optional[str] = None


class BillingInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class OrderCreate(BaseModel):
    user_id: Optional[str] = None
    items: List[OrderItemIn] = Field(default_factory=list)
    total: Optional[int] = Field(default=None, description="Order total in minor currency units")
    currency: str = "USD"
    payment_method: Optional[PaymentMethod] = None
    billing_info: Optional[BillingInfo] = None
    shipping_info: Optional[Dict[str, Any]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("currency")
    @classmethod
    def iso_currency(cls, value: str) -> str:
        if len(value) != 3 or not value.isalpha():
            raise ValueError("currency must be a 3-letter ISO code")
        return value.upper()


class OrderOut(BaseModel):
    order_id: str = Field(validation_alias=AliasChoices("id", "orderId", "order_id"), serialization_alias="orderId")
    order_number: str
    user_id: str
    items: List[Dict[str, Any]]
    total: int
    currency: str
    payment_method: str
    billing_info: Optional[Dict[str, Any]] = None
    shipping_info: Optional[Dict[str, Any]] = None
    status: str
    webhook_status: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    crypto_invoice_id: Optional[str] = None
    unique_code: Optional[str] = None
    blockchain_tx_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class OrderCreateResponse(BaseModel):
    success: bool = True
    order_id: str
    order_number: str
    order: OrderOut

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class OrderDetailResponse(BaseModel):
    success: bool = True
    order: OrderOut


class OrderListResponse(BaseModel):
    success: bool = True
    orders: List[OrderOut]
