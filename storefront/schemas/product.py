from pydantic import BaseModel
from typing import List, Optional


class VariantResponse(BaseModel):
    id: int
    sku: str
    size: Optional[str] = None
    color: Optional[str] = None
    metal_type: Optional[str] = None
    price: float
    sale_price: Optional[float] = None
    stock_quantity: int
    is_active: bool

    class Config:
        from_attributes = True


class ProductRating(BaseModel):
    average: float
    count: int


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    base_price: float
    sale_price: Optional[float] = None
    is_active: bool
    rating: ProductRating
    variants: List[VariantResponse]
