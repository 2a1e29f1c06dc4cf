import logging
import time
import uuid
from datetime import datetime

import sentry_sdk
import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from storefront.api.v1 import cart, orders, products, reviews, stock
from storefront.core.celery_app import celery_app
from storefront.core.config import settings
from storefront.core.exceptions import InsufficientStock, StorefrontError
from storefront.core.logging_config import configure_logging
from storefront.db.session import engine

API_VERSION = "1.0.0"

# StorefrontError.kind -> HTTP status
ERROR_STATUS_CODES = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "insufficient_stock": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_409_CONFLICT,
}


def standardized_error_response(status_code: int, message: str, errors=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "success": False,
                "message": message,
                "data": None,
                "errors": errors or [],
                "timestamp": f"{datetime.utcnow().isoformat()}Z",
            }
        ),
    )


# --------------------------------------------------
# CONFIGURE LOGGING (FIRST)
# --------------------------------------------------
configure_logging()
logger = structlog.get_logger()

# --------------------------------------------------
# INITIALIZE SENTRY (ONLY IN PRODUCTION)
# --------------------------------------------------
if settings.ENVIRONMENT == "production" and settings.SENTRY_DSN:
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=0.1,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
            ],
        )
        logger.info("sentry_initialized")
    except Exception as exc:
        # The API still serves traffic without error reporting
        logging.warning("Failed to initialize Sentry: %s", exc)

# --------------------------------------------------
# CREATE FASTAPI APP
# --------------------------------------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=API_VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc"
)

# --------------------------------------------------
# CORS MIDDLEWARE
# --------------------------------------------------
cors_origins = list(settings.BACKEND_CORS_ORIGINS)
if settings.FRONTEND_URL and settings.FRONTEND_URL not in cors_origins:
    cors_origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Process-Time", "X-Correlation-ID"],
    max_age=3600,
)


# --------------------------------------------------
# SECURITY HEADERS MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    if settings.ENVIRONMENT == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# --------------------------------------------------
# REQUEST TIMING MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


# --------------------------------------------------
# REQUEST LOGGING MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )

    response = await call_next(request)

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )
    return response


# Registered last so it wraps the logging middleware and every line carries the id
@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())

    request.state.correlation_id = correlation_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()

    response.headers["X-Correlation-ID"] = correlation_id
    return response


# --------------------------------------------------
# INCLUDE ROUTERS
# --------------------------------------------------
app.include_router(cart.router, prefix=f"{settings.API_V1_STR}/cart", tags=["Cart"])
app.include_router(orders.router, prefix=f"{settings.API_V1_STR}/orders", tags=["Orders"])
app.include_router(products.router, prefix=f"{settings.API_V1_STR}/products", tags=["Products"])
app.include_router(reviews.router, prefix=f"{settings.API_V1_STR}/reviews", tags=["Reviews"])
app.include_router(stock.router, prefix=f"{settings.API_V1_STR}/stock", tags=["Stock"])


# --------------------------------------------------
# HEALTH CHECK ENDPOINTS
# --------------------------------------------------
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": API_VERSION
    }


@app.get("/health/database")
def database_health_check():
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
        return {"status": "healthy", "pool": engine.pool.__class__.__name__}
    except Exception as exc:
        return {
            "status": "unhealthy",
            "reason": f"Database connectivity check failed: {exc}",
        }


@app.get("/health/workers")
def worker_health_check():
    """Broker reachability and live Celery workers (notifications and cache invalidation)."""
    try:
        with celery_app.connection_or_acquire() as connection:
            connection.ensure_connection(max_retries=1)
    except Exception as exc:
        return {"status": "unhealthy", "reason": f"Broker connection failed: {exc}"}

    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        active_workers = inspector.ping() or {}
        if not active_workers:
            return {"status": "unhealthy", "reason": "No active Celery workers"}
        return {"status": "healthy", "workers": len(active_workers)}
    except Exception as exc:
        return {"status": "unhealthy", "reason": f"Celery worker check failed: {exc}"}


@app.get("/")
def root():
    return {
        "message": settings.PROJECT_NAME,
        "docs": f"{settings.API_V1_STR}/docs",
        "version": API_VERSION
    }


# --------------------------------------------------
# EXCEPTION HANDLERS
# --------------------------------------------------
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    errors = list(exc.errors)
    if isinstance(exc, InsufficientStock):
        errors.append({"variant_id": exc.variant_id, "available": exc.available})

    logger.info(
        "request_rejected",
        kind=exc.kind,
        status_code=status_code,
        path=request.url.path,
        detail=exc.message,
    )
    return standardized_error_response(
        status_code=status_code,
        message=exc.message,
        errors=errors,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail

    if isinstance(detail, str):
        message = detail
        errors = []
    elif isinstance(detail, list):
        message = "Request failed"
        errors = detail
    elif isinstance(detail, dict):
        message = detail.get("message", "Request failed")
        errors = detail.get("errors", [])
    else:
        message = "Request failed"
        errors = []

    response = standardized_error_response(
        status_code=exc.status_code,
        message=message,
        errors=errors,
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return standardized_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation failed",
        errors=[
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ],
    )


# --------------------------------------------------
# GLOBAL EXCEPTION HANDLER
# --------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", error_type=type(exc).__name__, detail=str(exc))

    if settings.DEBUG and settings.ENVIRONMENT != "production":
        return standardized_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message=f"Internal server error: {str(exc)}",
            errors=[{"type": type(exc).__name__}],
        )

    return standardized_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Internal server error",
    )
