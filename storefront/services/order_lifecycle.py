"""Order status state machine.

Two independent status fields live on an order: ``order_status`` and
``payment_status``. Transitions are permissive by default (any status may
follow any other); ``STRICT_ORDER_TRANSITIONS`` switches on the
``ALLOWED_TRANSITIONS`` table. Side effects of entering a status live in
``TRANSITION_EFFECTS`` and only run when the status actually changes.
"""
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

import structlog
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import ConflictError, NotFoundError
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.order_status_history import OrderStatusHistory
from storefront.services import cache_service, notification_service
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import NotificationKind

logger = structlog.get_logger()

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED}
)

_SIDE_BRANCHES = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED} | _SIDE_BRANCHES),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING} | _SIDE_BRANCHES),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED} | _SIDE_BRANCHES),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED} | _SIDE_BRANCHES),
    **{terminal: frozenset() for terminal in TERMINAL_STATUSES},
}

ALLOWED_PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset(),
}


def _stamp_shipped(db: Session, order: Order, now: datetime) -> None:
    order.shipped_date = now


def _stamp_delivered(db: Session, order: Order, now: datetime) -> None:
    order.delivered_date = now
    order.is_delivered = True


def _release_reserved_stock(db: Session, order: Order, now: datetime) -> None:
    if not order.stock_deducted:
        return
    quantities: Dict[int, int] = {}
    for item in order.items:
        if item.variant_id is not None:
            quantities[item.variant_id] = quantities.get(item.variant_id, 0) + item.quantity
    InventoryService.release(db, quantities)
    order.stock_deducted = False


def _stamp_paid(db: Session, order: Order, now: datetime) -> None:
    order.paid_at = now


TRANSITION_EFFECTS: Dict[OrderStatus, List[Callable[[Session, Order, datetime], None]]] = {
    OrderStatus.SHIPPED: [_stamp_shipped],
    OrderStatus.DELIVERED: [_stamp_delivered],
    OrderStatus.CANCELLED: [_release_reserved_stock],
    OrderStatus.RETURNED: [_release_reserved_stock],
}

PAYMENT_TRANSITION_EFFECTS: Dict[PaymentStatus, List[Callable[[Session, Order, datetime], None]]] = {
    PaymentStatus.COMPLETED: [_stamp_paid],
}


def select_notification(prior: OrderStatus, new: OrderStatus) -> Optional[NotificationKind]:
    """Exactly one template per real change, none when the status is unchanged."""
    if prior != OrderStatus.SHIPPED and new == OrderStatus.SHIPPED:
        return NotificationKind.ORDER_SHIPPED
    if prior != OrderStatus.DELIVERED and new == OrderStatus.DELIVERED:
        return NotificationKind.ORDER_DELIVERED
    if prior != new:
        return NotificationKind.ORDER_STATUS_UPDATE
    return None


class OrderLifecycle:

    @staticmethod
    def _load(db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order")
        return order

    @staticmethod
    def initialize(db: Session, order: Order) -> None:
        """Put a freshly assembled order into its initial state (no commit)."""
        order.order_status = OrderStatus.PENDING
        order.payment_status = PaymentStatus.PENDING
        order.status_history.append(
            OrderStatusHistory(field="order_status", old_status=None, new_status=OrderStatus.PENDING.value)
        )

    @staticmethod
    def set_status(
        db: Session,
        order_id: int,
        new_status: OrderStatus,
        changed_by: Optional[int] = None,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        order = OrderLifecycle._load(db, order_id)
        prior = order.order_status

        if settings.STRICT_ORDER_TRANSITIONS and prior != new_status:
            if new_status not in ALLOWED_TRANSITIONS[prior]:
                raise ConflictError(f"Cannot move order from {prior.value} to {new_status.value}")

        if tracking_number:
            order.tracking_number = tracking_number

        touched_variants = {item.variant_id for item in order.items if item.variant_id is not None}
        released = False

        if prior != new_status:
            now = datetime.utcnow()
            order.order_status = new_status
            was_deducted = order.stock_deducted
            for effect in TRANSITION_EFFECTS.get(new_status, []):
                effect(db, order, now)
            released = was_deducted and not order.stock_deducted

            order.status_history.append(
                OrderStatusHistory(
                    field="order_status",
                    old_status=prior.value,
                    new_status=new_status.value,
                    changed_by=changed_by,
                    notes=notes,
                )
            )

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(order)

        logger.info(
            "order_status_changed" if prior != new_status else "order_status_unchanged",
            order_id=order.id,
            previous_status=prior.value,
            new_status=new_status.value,
            changed_by=changed_by,
        )

        # Post-commit side effects; neither can fail the status change
        cache_service.schedule_invalidation(cache_service.order_key(order.id))
        if released:
            InventoryService.invalidate_products(db, touched_variants)

        kind = select_notification(prior, new_status)
        if kind is not None:
            notification_service.send(kind, order.user.email if order.user else None, order)

        return order

    @staticmethod
    def set_payment_status(
        db: Session,
        order_id: int,
        new_status: PaymentStatus,
        changed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Order:
        order = OrderLifecycle._load(db, order_id)
        prior = order.payment_status

        if settings.STRICT_ORDER_TRANSITIONS and prior != new_status:
            if new_status not in ALLOWED_PAYMENT_TRANSITIONS[prior]:
                raise ConflictError(f"Cannot move payment from {prior.value} to {new_status.value}")

        if prior != new_status:
            now = datetime.utcnow()
            order.payment_status = new_status
            for effect in PAYMENT_TRANSITION_EFFECTS.get(new_status, []):
                effect(db, order, now)
            order.status_history.append(
                OrderStatusHistory(
                    field="payment_status",
                    old_status=prior.value,
                    new_status=new_status.value,
                    changed_by=changed_by,
                    notes=notes,
                )
            )

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(order)

        logger.info(
            "payment_status_changed",
            order_id=order.id,
            previous_status=prior.value,
            new_status=new_status.value,
        )
        cache_service.schedule_invalidation(cache_service.order_key(order.id))
        return order
