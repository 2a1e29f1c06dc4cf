from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class CartItemCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    variant_id: Optional[int] = Field(default=None, gt=0)
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    # Upper bound is MAX_CART_ITEM_QUANTITY, enforced by CartService
    quantity: int = Field(..., ge=1)


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    variant_id: int
    quantity: int
    price: float
    subtotal: float

    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    id: int
    user_id: int
    items: List[CartItemResponse]
    item_count: int
    total_amount: float
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
