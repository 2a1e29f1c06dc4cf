from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_active_user
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.review import ReviewUpdate
from storefront.services.review_service import ReviewService
from storefront.utils.response import success

router = APIRouter()


@router.put("/{review_id}", response_model=dict)
def update_review(
    review_id: str,
    review_data: ReviewUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Update a review. Only owner or admin can update."""
    review = ReviewService.update_review(db, review_id, current_user, review_data)
    return success(data=review.model_dump(), message="Review updated successfully")


@router.delete("/{review_id}", response_model=dict)
def delete_review(
    review_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Delete a review. Only owner or admin can delete."""
    ReviewService.delete_review(db, review_id, current_user)
    return success(message="Review deleted successfully")
