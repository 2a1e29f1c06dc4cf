from typing import Dict, List

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from storefront.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from storefront.models.product import ProductVariant
from storefront.schemas.stock import StockAvailability
from storefront.services import cache_service

logger = structlog.get_logger()


class InventoryService:
    """
    Owns variant stock. Every write goes through ``apply_delta``, a single
    conditional UPDATE that re-checks the non-negative floor at write time, so
    availability reads elsewhere are advisory only.

    Methods flush but never commit; the caller owns the transaction and calls
    ``invalidate_products`` once it has committed.
    """

    @staticmethod
    def _current_stock(db: Session, variant_id: int):
        return db.execute(
            select(ProductVariant.stock_quantity).where(ProductVariant.id == variant_id)
        ).scalar_one_or_none()

    @staticmethod
    def check_availability(db: Session, variant_id: int, requested_qty: int) -> StockAvailability:
        current_stock = InventoryService._current_stock(db, variant_id)
        if current_stock is None:
            raise NotFoundError("Product variant")

        available = current_stock >= requested_qty
        logger.debug(
            "stock_availability_checked",
            variant_id=variant_id,
            requested_quantity=requested_qty,
            current_stock=current_stock,
            available=available,
        )
        return StockAvailability(
            variant_id=variant_id,
            available=available,
            current_stock=current_stock,
            requested_quantity=requested_qty,
            message="Sufficient stock available" if available else f"Only {current_stock} items available",
        )

    @staticmethod
    def apply_delta(db: Session, variant_id: int, delta: int) -> int:
        """Atomically add ``delta`` to the variant's stock and return the new level."""
        result = db.execute(
            update(ProductVariant.__table__)
            .where(
                ProductVariant.__table__.c.id == variant_id,
                ProductVariant.__table__.c.stock_quantity + delta >= 0,
            )
            .values(
                stock_quantity=ProductVariant.__table__.c.stock_quantity + delta,
                version_id=ProductVariant.__table__.c.version_id + 1,
            )
        )

        if result.rowcount == 0:
            current_stock = InventoryService._current_stock(db, variant_id)
            if current_stock is None:
                raise NotFoundError("Product variant")
            logger.warning(
                "stock_update_rejected",
                variant_id=variant_id,
                current_stock=current_stock,
                delta=delta,
            )
            raise InsufficientStock(current_stock, variant_id=variant_id)

        # Loaded instances must not keep serving the pre-update value
        instance = db.identity_map.get(identity_key(ProductVariant, variant_id))
        if instance is not None:
            db.expire(instance, ["stock_quantity", "version_id"])

        new_stock = InventoryService._current_stock(db, variant_id)
        logger.info("stock_adjusted", variant_id=variant_id, delta=delta, new_stock=new_stock)
        return new_stock

    @staticmethod
    def restock(db: Session, variant_id: int, quantity: int) -> int:
        if quantity <= 0:
            raise ValidationError(
                "Quantity must be greater than 0",
                errors=[{"field": "quantity", "message": "InvalidQuantity"}],
            )
        return InventoryService.apply_delta(db, variant_id, quantity)

    @staticmethod
    def reserve(db: Session, quantities: Dict[int, int]) -> Dict[int, int]:
        """Deduct several variants in ascending id order; any failure propagates."""
        new_levels = {}
        for variant_id in sorted(quantities):
            new_levels[variant_id] = InventoryService.apply_delta(db, variant_id, -quantities[variant_id])
        return new_levels

    @staticmethod
    def release(db: Session, quantities: Dict[int, int]) -> Dict[int, int]:
        new_levels = {}
        for variant_id in sorted(quantities):
            new_levels[variant_id] = InventoryService.apply_delta(db, variant_id, quantities[variant_id])
        return new_levels

    @staticmethod
    def product_ids_for(db: Session, variant_ids) -> List[int]:
        if not variant_ids:
            return []
        rows = db.execute(
            select(ProductVariant.product_id).where(ProductVariant.id.in_(list(variant_ids))).distinct()
        ).scalars()
        return sorted(rows)

    @staticmethod
    def invalidate_products(db: Session, variant_ids) -> None:
        """Post-commit: drop cached product reads for the touched variants."""
        product_ids = InventoryService.product_ids_for(db, variant_ids)
        cache_service.schedule_invalidation(*[cache_service.product_key(pid) for pid in product_ids])

    @staticmethod
    def low_stock(db: Session, threshold: int) -> List[ProductVariant]:
        return (
            db.query(ProductVariant)
            .filter(ProductVariant.stock_quantity <= threshold, ProductVariant.stock_quantity > 0)
            .order_by(ProductVariant.stock_quantity.asc(), ProductVariant.id.asc())
            .all()
        )

    @staticmethod
    def out_of_stock(db: Session) -> List[ProductVariant]:
        return (
            db.query(ProductVariant)
            .filter(ProductVariant.stock_quantity == 0)
            .order_by(ProductVariant.id.asc())
            .all()
        )
