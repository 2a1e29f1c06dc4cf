import logging
from typing import Optional

import structlog
from storefront.core.config import settings

NOISY_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "kombu")


def configure_logging(level: Optional[int] = None) -> None:
    """Configure structlog on top of stdlib logging.

    Events from services are snake_case names with key/value context, e.g.
    ``logger.info("cart_item_added", user_id=1, variant_id=3, quantity=2)``.
    The correlation id bound by the HTTP middleware is merged into every event.
    """
    if level is None:
        level = logging.DEBUG if settings.DEBUG else logging.INFO

    renderer = structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
