from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import require_admin
from storefront.core.config import settings
from storefront.core.exceptions import StorefrontError
from storefront.db.session import get_db
from storefront.models.product import ProductVariant
from storefront.models.user import User
from storefront.schemas.stock import (
    RestockRequest,
    StockAdjustRequest,
    StockCheckRequest,
    StockCheckResponse,
    VariantStockResponse,
)
from storefront.services.inventory_service import InventoryService
from storefront.utils.response import success

router = APIRouter()
logger = structlog.get_logger()


def _variant_stock(variant: ProductVariant) -> dict:
    return VariantStockResponse(
        variant_id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
        stock_quantity=variant.stock_quantity,
    ).model_dump()


def _committed_stock(db: Session, variant_id: int) -> dict:
    InventoryService.invalidate_products(db, [variant_id])
    variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    return _variant_stock(variant)


@router.post("/check", response_model=dict)
def check_stock(
    payload: StockCheckRequest,
    db: Session = Depends(get_db),
):
    """Check stock availability for variant quantities without deducting inventory."""
    requested_quantities: dict = {}
    for item in payload.items:
        requested_quantities[item.variant_id] = requested_quantities.get(item.variant_id, 0) + item.quantity

    items = [
        InventoryService.check_availability(db, variant_id, quantity)
        for variant_id, quantity in sorted(requested_quantities.items())
    ]
    response = StockCheckResponse(
        available=all(item.available for item in items),
        items=items,
    )
    return success(data=response.model_dump())


@router.post("/variants/{variant_id}/restock", response_model=dict)
def restock_variant(
    variant_id: int,
    payload: RestockRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Add stock to a variant (admin only)."""
    try:
        InventoryService.restock(db, variant_id, payload.quantity)
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    data = _committed_stock(db, variant_id)
    logger.info("variant_restocked", variant_id=variant_id, quantity=payload.quantity, admin_id=current_user.id)
    return success(data=data, message="Stock updated")


@router.post("/variants/{variant_id}/adjust", response_model=dict)
def adjust_variant_stock(
    variant_id: int,
    payload: StockAdjustRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Apply a signed stock correction (admin only). Never drives stock below zero."""
    try:
        InventoryService.apply_delta(db, variant_id, payload.delta)
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    data = _committed_stock(db, variant_id)
    logger.info(
        "variant_stock_adjusted",
        variant_id=variant_id,
        delta=payload.delta,
        reason=payload.reason,
        admin_id=current_user.id,
    )
    return success(data=data, message="Stock adjusted")


@router.get("/low", response_model=dict)
def low_stock(
    threshold: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Variants with 0 < stock <= threshold (admin only)."""
    limit = threshold or settings.LOW_STOCK_THRESHOLD
    variants = InventoryService.low_stock(db, limit)
    return success(
        data=[_variant_stock(v) for v in variants],
        message="Low stock variants retrieved",
        meta={"threshold": limit, "total": len(variants)},
    )


@router.get("/out-of-stock", response_model=dict)
def out_of_stock(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Variants with no stock left (admin only)."""
    variants = InventoryService.out_of_stock(db)
    return success(
        data=[_variant_stock(v) for v in variants],
        message="Out of stock variants retrieved",
        meta={"total": len(variants)},
    )
