from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_active_user, require_admin
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.order import (
    CheckoutRequest,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from storefront.services.order_lifecycle import OrderLifecycle
from storefront.services.order_service import OrderService
from storefront.utils.response import success

router = APIRouter()


def _order_data(order) -> dict:
    return OrderResponse.model_validate(order).model_dump()


@router.post(
    "/",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create order from explicit items",
    description="""
Creates an order from caller-supplied line items and amounts.

1. Rejects an empty item list
2. Verifies every product and variant exists
3. Reserves variant stock (when stock re-validation is enabled)
4. Persists the order as pending and queues the confirmation email
""",
    responses={
        201: {"description": "Order created successfully"},
        400: {"description": "Empty order or insufficient stock"},
        404: {"description": "Product or variant not found"},
        409: {"description": "Order number collision, retry"},
    },
)
def create_order(
    order_data: OrderCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    order = OrderService.create_order(db, current_user.id, order_data)
    return success(data=_order_data(order), message="Order created successfully")


@router.post("/checkout", response_model=dict, status_code=status.HTTP_201_CREATED)
def checkout(
    checkout_data: CheckoutRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Create an order from the cart and empty it"""
    order = OrderService.checkout(db, current_user.id, checkout_data)
    return success(data=_order_data(order), message="Order placed successfully")


@router.get("/", response_model=dict)
def list_orders(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Own orders, newest first; admins see every order"""
    orders = OrderService.list_orders(db, current_user)
    return success(data=[_order_data(order) for order in orders], message="Orders retrieved")


@router.get("/{order_id}", response_model=dict)
def get_order_detail(
    order_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    data = OrderService.get_order_detail(db, order_id, current_user)
    return success(data=data, message="Order detail retrieved")


@router.put("/{order_id}/status", response_model=dict)
def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update order status (admin only)."""
    order = OrderLifecycle.set_status(
        db,
        order_id,
        status_update.status,
        changed_by=current_user.id,
        tracking_number=status_update.tracking_number,
        notes=status_update.notes,
    )
    return success(data=_order_data(order), message="Order status updated")


@router.put("/{order_id}/payment-status", response_model=dict)
def update_payment_status(
    order_id: int,
    status_update: PaymentStatusUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update payment status (admin only)."""
    order = OrderLifecycle.set_payment_status(
        db,
        order_id,
        status_update.status,
        changed_by=current_user.id,
        notes=status_update.notes,
    )
    return success(data=_order_data(order), message="Payment status updated")
