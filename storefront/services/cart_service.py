from datetime import datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.core.config import settings
from storefront.core.exceptions import ConflictError, InsufficientStock, NotFoundError, ValidationError
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product, ProductVariant
from storefront.services.inventory_service import InventoryService

logger = structlog.get_logger()


def recompute_totals(cart: Cart) -> None:
    cart.item_count = sum(item.quantity for item in cart.items)
    cart.total_amount = round(sum(item.price * item.quantity for item in cart.items), 2)
    # Always dirty the row so the UPDATE carries the version check
    cart.updated_at = datetime.utcnow()


class CartService:
    """
    Owns a shopper's cart lines. Every mutation is one transaction: load the
    cart, validate against current stock, write, commit. The cart row is
    versioned, so a concurrent writer that committed first turns this commit
    into a ConflictError instead of a lost update.
    """

    @staticmethod
    def _load_cart(db: Session, user_id: int) -> Optional[Cart]:
        return db.query(Cart).filter(Cart.user_id == user_id).first()

    @staticmethod
    def _commit(db: Session, user_id: int) -> None:
        try:
            db.commit()
        except (StaleDataError, IntegrityError) as exc:
            db.rollback()
            logger.warning("cart_write_conflict", user_id=user_id, error=type(exc).__name__)
            raise ConflictError("Cart was modified concurrently, please retry") from exc

    @staticmethod
    def _resolve_line(db: Session, product_id: int, variant_id: Optional[int]) -> Tuple[Product, ProductVariant]:
        product = db.query(Product).filter(
            Product.id == product_id,
            Product.is_active == True
        ).first()
        if not product:
            raise NotFoundError("Product")

        if variant_id is None:
            variant = product.primary_variant
        else:
            variant = db.query(ProductVariant).filter(
                ProductVariant.id == variant_id,
                ProductVariant.product_id == product_id,
                ProductVariant.is_active == True
            ).first()

        if not variant:
            raise NotFoundError("Product variant")
        return product, variant

    @staticmethod
    def _check_bounds(quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if quantity > settings.MAX_CART_ITEM_QUANTITY:
            raise ValidationError(f"Quantity cannot exceed {settings.MAX_CART_ITEM_QUANTITY}")

    @staticmethod
    def _validate_quantity(db: Session, variant_id: int, quantity: int) -> None:
        CartService._check_bounds(quantity)

        availability = InventoryService.check_availability(db, variant_id, quantity)
        if not availability.available:
            raise InsufficientStock(availability.current_stock, variant_id=variant_id)

    @staticmethod
    def get_or_create_cart(db: Session, user_id: int) -> Cart:
        cart = CartService._load_cart(db, user_id)
        if cart:
            return cart

        cart = Cart(user_id=user_id, item_count=0, total_amount=0.0)
        db.add(cart)
        try:
            db.commit()
        except IntegrityError:
            # Another request created it first
            db.rollback()
            cart = CartService._load_cart(db, user_id)
            if not cart:
                raise
            return cart

        db.refresh(cart)
        logger.info("cart_created", user_id=user_id, cart_id=cart.id)
        return cart

    @staticmethod
    def add_item(
        db: Session,
        user_id: int,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
    ) -> Cart:
        CartService._check_bounds(quantity)
        product, variant = CartService._resolve_line(db, product_id, variant_id)
        cart = CartService.get_or_create_cart(db, user_id)

        existing_item = next(
            (
                item for item in cart.items
                if item.product_id == product.id and item.variant_id == variant.id
            ),
            None,
        )
        new_quantity = quantity + (existing_item.quantity if existing_item else 0)

        try:
            CartService._validate_quantity(db, variant.id, new_quantity)
        except InsufficientStock:
            logger.warning(
                "cart_add_rejected_insufficient_stock",
                user_id=user_id,
                variant_id=variant.id,
                requested_quantity=new_quantity,
            )
            raise

        if existing_item:
            existing_item.quantity = new_quantity
            existing_item.subtotal = round(existing_item.price * new_quantity, 2)
        else:
            price = variant.unit_price
            cart.items.append(
                CartItem(
                    product_id=product.id,
                    variant_id=variant.id,
                    quantity=quantity,
                    price=price,
                    subtotal=round(price * quantity, 2),
                )
            )

        recompute_totals(cart)
        CartService._commit(db, user_id)
        db.refresh(cart)

        logger.info(
            "cart_item_added",
            user_id=user_id,
            product_id=product.id,
            variant_id=variant.id,
            quantity=new_quantity,
            merged=existing_item is not None,
        )
        return cart

    @staticmethod
    def update_item(db: Session, user_id: int, item_id: int, quantity: int) -> Cart:
        cart = CartService._load_cart(db, user_id)
        if not cart:
            raise NotFoundError("Cart")

        item = next((line for line in cart.items if line.id == item_id), None)
        if not item:
            raise NotFoundError("Cart item")

        # Same checks as add_item, against the line's product/variant as they are now
        CartService._resolve_line(db, item.product_id, item.variant_id)
        CartService._validate_quantity(db, item.variant_id, quantity)

        item.quantity = quantity
        item.subtotal = round(item.price * quantity, 2)
        recompute_totals(cart)
        CartService._commit(db, user_id)
        db.refresh(cart)

        logger.info("cart_item_updated", user_id=user_id, item_id=item_id, quantity=quantity)
        return cart

    @staticmethod
    def remove_item(db: Session, user_id: int, item_id: int) -> Cart:
        cart = CartService._load_cart(db, user_id)
        if not cart:
            raise NotFoundError("Cart")

        item = next((line for line in cart.items if line.id == item_id), None)
        if not item:
            raise NotFoundError("Cart item")

        cart.items.remove(item)
        recompute_totals(cart)
        CartService._commit(db, user_id)
        db.refresh(cart)

        logger.info("cart_item_removed", user_id=user_id, item_id=item_id)
        return cart

    @staticmethod
    def clear(db: Session, user_id: int, commit: bool = True) -> Cart:
        cart = CartService._load_cart(db, user_id)
        if not cart:
            raise NotFoundError("Cart")

        cart.items.clear()
        recompute_totals(cart)
        if commit:
            CartService._commit(db, user_id)
            db.refresh(cart)
            logger.info("cart_cleared", user_id=user_id)
        return cart
