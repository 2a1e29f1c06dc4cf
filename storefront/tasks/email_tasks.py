from celery import Task
from celery.utils.log import get_task_logger

from storefront.core.celery_app import celery_app
from storefront.core.config import settings
from storefront.utils.email import build_email, send_email_smtp
from storefront.utils.email_templates import (
    order_confirmation_template,
    order_shipped_template,
    order_delivered_template,
    order_status_update_template,
)

logger = get_task_logger(__name__)


# -------------------------------
# Base Task (Retry-safe)
# -------------------------------
class EmailTask(Task):
    """
    Base email task with retries and backoff.
    Prevents email loss on temporary SMTP failures.
    """
    autoretry_for = (Exception,)
    dont_autoretry_for = (ValueError, KeyError)  # bad payloads never succeed
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True
    acks_late = True  # retry if worker crashes


# kind -> (subject prefix, template, sender setting)
NOTIFICATION_TEMPLATES = {
    "order_confirmation": ("Order Received", order_confirmation_template, "EMAILS_FROM_ORDERS"),
    "order_shipped": ("Order Shipped", order_shipped_template, "EMAILS_FROM_SHIPPING"),
    "order_delivered": ("Order Delivered", order_delivered_template, "EMAILS_FROM_SHIPPING"),
    "order_status_update": ("Order Update", order_status_update_template, "EMAILS_FROM_ORDERS"),
}


def render_notification(kind: str, recipient: str, order: dict):
    try:
        subject_prefix, template, sender_setting = NOTIFICATION_TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}")

    return build_email(
        to=recipient,
        subject=f"{subject_prefix} - {order['order_number']}",
        text=f"{subject_prefix}: order {order['order_number']} is {order['order_status']}.",
        html=template(order),
        from_email=getattr(settings, sender_setting) or None,
    )


@celery_app.task(base=EmailTask, bind=True)
def send_order_notification(self, kind: str, recipient: str, order: dict):
    """Render and send one order notification email."""
    msg = render_notification(kind, recipient, order)
    try:
        send_email_smtp(msg)
    except Exception as exc:
        logger.exception("order_notification_error kind=%s order=%s", kind, order.get("order_number"))
        raise self.retry(exc=exc)

    logger.info("order_notification_sent kind=%s order=%s", kind, order.get("order_number"))
