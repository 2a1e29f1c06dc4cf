from typing import List, Optional

from pydantic import BaseModel, Field


class StockCheckItem(BaseModel):
    variant_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class StockCheckRequest(BaseModel):
    items: List[StockCheckItem]


class StockAvailability(BaseModel):
    variant_id: int
    available: bool
    current_stock: int
    requested_quantity: int
    message: str


class StockCheckResponse(BaseModel):
    available: bool
    items: List[StockAvailability]


class RestockRequest(BaseModel):
    # Validated by InventoryService so a non-positive quantity maps to ValidationError
    quantity: int


class StockAdjustRequest(BaseModel):
    delta: int
    reason: Optional[str] = Field(default="adjustment", max_length=50)


class VariantStockResponse(BaseModel):
    variant_id: int
    product_id: int
    sku: str
    stock_quantity: int

    class Config:
        from_attributes = True
