from typing import List, Optional
from datetime import datetime

import bleach
from pydantic import BaseModel, Field, field_validator

from storefront.models.order import OrderStatus, PaymentMethod, PaymentStatus


class Address(BaseModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


class OrderItemCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    variant_id: Optional[int] = Field(default=None, gt=0)
    quantity: int = Field(..., ge=1)
    price: float = Field(..., gt=0)


class _OrderPricing(BaseModel):
    tax_amount: float = Field(default=0.0, ge=0)
    shipping_cost: float = Field(default=0.0, ge=0)
    discount_amount: float = Field(default=0.0, ge=0)


class CheckoutRequest(_OrderPricing):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: PaymentMethod
    coupon_code: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        sanitized = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
        if len(sanitized) > 500:
            raise ValueError("Notes too long (max 500 chars)")
        return sanitized


class OrderCreate(CheckoutRequest):
    # Empty lists are accepted here and rejected by OrderService
    items: List[OrderItemCreate]
    subtotal: float = Field(..., ge=0)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int]
    product_name: str
    quantity: int
    unit_price: float
    subtotal: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: int
    order_status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    subtotal: float
    tax_amount: float
    shipping_cost: float
    discount_amount: float
    total_amount: float
    currency: str
    shipping_address: dict
    billing_address: dict
    items: List[OrderItemResponse]
    tracking_number: Optional[str] = None
    shipped_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    is_delivered: bool
    paid_at: Optional[datetime] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
