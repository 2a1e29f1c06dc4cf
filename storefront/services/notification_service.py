import enum
from typing import Optional

import structlog

from storefront.models.order import Order
from storefront.schemas.order import OrderResponse

logger = structlog.get_logger()


class NotificationKind(str, enum.Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_STATUS_UPDATE = "order_status_update"


def order_snapshot(order: Order) -> dict:
    """JSON-safe copy of the order, so the worker never reads the live row."""
    return OrderResponse.model_validate(order).model_dump(mode="json")


def send(kind: NotificationKind, recipient: Optional[str], order: Order) -> bool:
    """
    Queue an order notification for the email worker.

    Fire-and-forget: failures are logged and reported as ``False``, never
    raised, so the calling operation's result is unaffected.
    """
    if not recipient:
        logger.warning("notification_skipped_no_recipient", kind=kind.value, order_id=order.id)
        return False

    from storefront.tasks.email_tasks import send_order_notification

    try:
        snapshot = order_snapshot(order)
        result = send_order_notification.delay(kind.value, recipient, snapshot)
    except Exception as exc:
        logger.error(
            "notification_enqueue_failed",
            kind=kind.value,
            order_id=order.id,
            error=str(exc),
        )
        return False

    logger.info(
        "notification_enqueued",
        kind=kind.value,
        order_id=order.id,
        task_id=getattr(result, "id", None),
    )
    return True
