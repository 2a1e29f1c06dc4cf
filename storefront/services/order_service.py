import random
import string
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.core.config import settings
from storefront.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.models.cart import Cart
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User
from storefront.schemas.order import CheckoutRequest, OrderCreate, OrderResponse
from storefront.services import cache_service, notification_service
from storefront.services.cart_service import CartService
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import NotificationKind
from storefront.services.order_lifecycle import OrderLifecycle

logger = structlog.get_logger()

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(db: Session) -> str:
    """ORD-YYYYMMDD-XXXX, retried against existing numbers a bounded number of times."""
    for _ in range(settings.ORDER_NUMBER_MAX_ATTEMPTS):
        date_part = datetime.utcnow().strftime("%Y%m%d")
        random_part = "".join(random.choices(ORDER_NUMBER_ALPHABET, k=4))
        order_number = f"ORD-{date_part}-{random_part}"

        existing = db.query(Order.id).filter(Order.order_number == order_number).first()
        if not existing:
            return order_number

    logger.error("order_number_exhausted", attempts=settings.ORDER_NUMBER_MAX_ATTEMPTS)
    raise ConflictError("Failed to generate unique order number")


class OrderService:
    """
    Turns a list of priced lines (or the shopper's cart) into an order.

    Assembly, optional stock reservation and cart clearing share one
    transaction; the confirmation email and cache invalidation are handed
    off only after it commits.
    """

    @staticmethod
    def _resolve_products(db: Session, lines) -> Dict[int, Product]:
        products = {}
        for line in lines:
            if line.product_id not in products:
                product = db.query(Product).filter(Product.id == line.product_id).first()
                if not product:
                    raise NotFoundError("Product")
                products[line.product_id] = product

            if line.variant_id is not None:
                variant = db.query(ProductVariant.id).filter(
                    ProductVariant.id == line.variant_id,
                    ProductVariant.product_id == line.product_id
                ).first()
                if not variant:
                    raise NotFoundError("Product variant")
        return products

    @staticmethod
    def _assemble(
        db: Session,
        user_id: int,
        payload: CheckoutRequest,
        lines: Iterable,
        subtotal: float,
    ) -> Order:
        lines = list(lines)
        if not lines:
            raise ValidationError(
                "Order must contain at least one item",
                errors=[{"field": "items", "message": "EmptyOrder"}],
            )

        products = OrderService._resolve_products(db, lines)

        shipping_address = payload.shipping_address.model_dump()
        billing_address = (
            payload.billing_address.model_dump() if payload.billing_address else dict(shipping_address)
        )

        subtotal = round(subtotal, 2)
        total_amount = round(
            subtotal + payload.tax_amount + payload.shipping_cost - payload.discount_amount, 2
        )

        order = Order(
            order_number=generate_order_number(db),
            user_id=user_id,
            subtotal=subtotal,
            tax_amount=payload.tax_amount,
            shipping_cost=payload.shipping_cost,
            discount_amount=payload.discount_amount,
            total_amount=total_amount,
            currency=settings.DEFAULT_CURRENCY,
            coupon_code=payload.coupon_code,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=payload.payment_method,
            notes=payload.notes,
        )

        for line in lines:
            order.items.append(
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=products[line.product_id].name,
                    quantity=line.quantity,
                    unit_price=line.price,
                    subtotal=round(line.price * line.quantity, 2),
                )
            )

        OrderLifecycle.initialize(db, order)

        if settings.REVALIDATE_STOCK_AT_CHECKOUT:
            quantities: Dict[int, int] = {}
            for line in lines:
                if line.variant_id is not None:
                    quantities[line.variant_id] = quantities.get(line.variant_id, 0) + line.quantity
            if quantities:
                InventoryService.reserve(db, quantities)
                order.stock_deducted = True

        db.add(order)
        return order

    @staticmethod
    def _commit(db: Session, user_id: int) -> None:
        try:
            db.commit()
        except (IntegrityError, StaleDataError) as exc:
            db.rollback()
            logger.warning("order_commit_conflict", user_id=user_id, error=type(exc).__name__)
            raise ConflictError("Order could not be saved, please retry") from exc

    @staticmethod
    def _after_commit(db: Session, order: Order) -> None:
        variant_ids = {item.variant_id for item in order.items if item.variant_id is not None}
        if order.stock_deducted:
            InventoryService.invalidate_products(db, variant_ids)

        recipient = order.user.email if order.user else None
        notification_service.send(NotificationKind.ORDER_CONFIRMATION, recipient, order)

    @staticmethod
    def create_order(db: Session, user_id: int, payload: OrderCreate) -> Order:
        try:
            order = OrderService._assemble(db, user_id, payload, payload.items, payload.subtotal)
        except StorefrontError:
            db.rollback()
            raise

        OrderService._commit(db, user_id)
        db.refresh(order)

        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            item_count=len(order.items),
            total_amount=order.total_amount,
            stock_deducted=order.stock_deducted,
        )
        OrderService._after_commit(db, order)
        return order

    @staticmethod
    def checkout(db: Session, user_id: int, payload: CheckoutRequest) -> Order:
        """Create an order from the shopper's cart and empty the cart."""
        cart: Optional[Cart] = db.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart or not cart.items:
            raise ValidationError("Cart is empty")

        lines = list(cart.items)
        subtotal = round(sum(line.price * line.quantity for line in lines), 2)

        try:
            order = OrderService._assemble(db, user_id, payload, lines, subtotal)
            CartService.clear(db, user_id, commit=False)
        except StorefrontError:
            db.rollback()
            raise

        OrderService._commit(db, user_id)
        db.refresh(order)

        logger.info(
            "order_checked_out",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            item_count=len(order.items),
            total_amount=order.total_amount,
        )
        OrderService._after_commit(db, order)
        return order

    @staticmethod
    def get_order(db: Session, order_id: int, actor: User) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order")
        if order.user_id != actor.id and not actor.is_admin:
            raise ForbiddenError("Not authorized to view this order")
        return order

    @staticmethod
    def get_order_detail(db: Session, order_id: int, actor: User) -> dict:
        """Cached JSON view of an order; ownership is checked on hits too."""
        key = cache_service.order_key(order_id)
        data = cache_service.get_cached(key)
        if data is not None:
            if data.get("user_id") != actor.id and not actor.is_admin:
                raise ForbiddenError("Not authorized to view this order")
            return data

        order = OrderService.get_order(db, order_id, actor)
        data = OrderResponse.model_validate(order).model_dump(mode="json")
        cache_service.set_cached(key, data, settings.ORDER_CACHE_TTL)
        return data

    @staticmethod
    def list_orders(db: Session, actor: User) -> List[Order]:
        query = db.query(Order)
        if not actor.is_admin:
            query = query.filter(Order.user_id == actor.id)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()
