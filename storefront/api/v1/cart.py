from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_active_user
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.cart import CartItemCreate, CartItemUpdate, CartResponse
from storefront.services.cart_service import CartService
from storefront.utils.response import success

router = APIRouter()


def _cart_data(cart) -> dict:
    return CartResponse.model_validate(cart).model_dump()


@router.get("/", response_model=dict)
def get_cart(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Get user's cart"""
    cart = CartService.get_or_create_cart(db, current_user.id)
    return success(data=_cart_data(cart), message="Cart retrieved")


@router.post("/items", response_model=dict, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    item: CartItemCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Add item to cart, merging with an existing line for the same variant"""
    cart = CartService.add_item(db, current_user.id, item.product_id, item.variant_id, item.quantity)
    return success(data=_cart_data(cart), message="Item added to cart")


@router.put("/items/{item_id}", response_model=dict)
def update_cart_item(
    item_id: int,
    item_update: CartItemUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Update cart item quantity"""
    cart = CartService.update_item(db, current_user.id, item_id, item_update.quantity)
    return success(data=_cart_data(cart), message="Cart updated")


@router.delete("/items/{item_id}", response_model=dict)
def remove_from_cart(
    item_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Remove item from cart"""
    cart = CartService.remove_item(db, current_user.id, item_id)
    return success(data=_cart_data(cart), message="Item removed from cart")


@router.delete("/", response_model=dict)
def clear_cart(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Clear entire cart"""
    cart = CartService.clear(db, current_user.id)
    return success(data=_cart_data(cart), message="Cart cleared")
