from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_active_user
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.review import ReviewCreate
from storefront.services.product_service import get_product_detail
from storefront.services.review_service import ReviewService
from storefront.utils.response import success

router = APIRouter()


@router.get("/{product_id}", response_model=dict)
def get_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Product detail with variant stock and rating. Public endpoint."""
    return success(data=get_product_detail(db, product_id), message="Product retrieved")


@router.get("/{product_id}/reviews", response_model=dict)
def get_product_reviews(
    product_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db)
):
    """Get paginated reviews for a product. Public endpoint."""
    result = ReviewService.get_reviews_for_product(db, product_id, page, per_page)
    return success(data=result.model_dump(), message="Reviews retrieved successfully")


@router.post("/{product_id}/reviews", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_review(
    product_id: int,
    review_data: ReviewCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Review a product; one review per user per product."""
    review = ReviewService.create_review(db, product_id, current_user.id, review_data)
    return success(data=review.model_dump(), message="Review created successfully")
