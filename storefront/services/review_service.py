from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_

import structlog

from storefront.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.product import Product
from storefront.models.review import Review
from storefront.models.user import User
from storefront.schemas.review import ReviewCreate, ReviewUpdate, ReviewResponse, ReviewListResponse
from storefront.services import cache_service
from storefront.services.rating_service import RatingService

logger = structlog.get_logger()


def _to_response(review: Review) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        user_id=review.user_id,
        product_id=review.product_id,
        rating=review.rating,
        comment=review.comment,
        verified_purchase=review.verified_purchase,
        created_at=review.created_at,
        user_name=review.user.full_name if review.user else "Unknown"
    )


class ReviewService:

    @staticmethod
    def _check_verified_purchase(db: Session, user_id: int, product_id: int) -> bool:
        """True when the user has a delivered order containing the product."""
        return db.query(OrderItem.id).join(Order).filter(
            and_(
                Order.user_id == user_id,
                OrderItem.product_id == product_id,
                Order.order_status == OrderStatus.DELIVERED
            )
        ).first() is not None

    @staticmethod
    def _get_product(db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product")
        return product

    @staticmethod
    def _get_owned_review(db: Session, review_id: str, actor: User) -> Review:
        review = db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise NotFoundError("Review")
        if review.user_id != actor.id and not actor.is_admin:
            raise ForbiddenError("You can only modify your own reviews")
        return review

    @staticmethod
    def _commit(db: Session, product_id: int) -> None:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("You have already reviewed this product") from exc
        cache_service.schedule_invalidation(cache_service.product_key(product_id))

    @staticmethod
    def create_review(db: Session, product_id: int, user_id: int, review_data: ReviewCreate) -> ReviewResponse:
        """Create a review and refresh the product's rating in the same transaction."""
        ReviewService._get_product(db, product_id)

        existing = db.query(Review.id).filter(
            and_(Review.user_id == user_id, Review.product_id == product_id)
        ).first()
        if existing:
            raise ConflictError("You have already reviewed this product")

        review = Review(
            user_id=user_id,
            product_id=product_id,
            rating=review_data.rating,
            comment=review_data.comment,
            verified_purchase=ReviewService._check_verified_purchase(db, user_id, product_id)
        )
        db.add(review)
        try:
            db.flush()
        except IntegrityError as exc:
            # Lost the race against a concurrent review by the same user
            db.rollback()
            raise ConflictError("You have already reviewed this product") from exc

        RatingService.recalculate(db, product_id)
        ReviewService._commit(db, product_id)
        db.refresh(review)

        logger.info(
            "review_created",
            review_id=review.id,
            product_id=product_id,
            user_id=user_id,
            rating=review.rating,
            verified_purchase=review.verified_purchase,
        )
        return _to_response(review)

    @staticmethod
    def get_reviews_for_product(
        db: Session,
        product_id: int,
        page: int = 1,
        per_page: int = 10
    ) -> ReviewListResponse:
        """Get paginated reviews for a product."""
        product = ReviewService._get_product(db, product_id)
        offset = (page - 1) * per_page

        query = db.query(Review).filter(
            Review.product_id == product_id
        ).order_by(Review.created_at.desc(), Review.id)

        total = query.count()
        reviews = query.offset(offset).limit(per_page).all()

        return ReviewListResponse(
            reviews=[_to_response(r) for r in reviews],
            total=total,
            page=page,
            per_page=per_page,
            avg_rating=product.avg_rating,
            review_count=product.review_count
        )

    @staticmethod
    def update_review(db: Session, review_id: str, actor: User, review_data: ReviewUpdate) -> ReviewResponse:
        """Update a review. Only owner or admin can update."""
        review = ReviewService._get_owned_review(db, review_id, actor)

        if review_data.rating is not None:
            review.rating = review_data.rating
        if review_data.comment is not None:
            review.comment = review_data.comment

        RatingService.recalculate(db, review.product_id)
        ReviewService._commit(db, review.product_id)
        db.refresh(review)

        logger.info("review_updated", review_id=review.id, product_id=review.product_id, actor_id=actor.id)
        return _to_response(review)

    @staticmethod
    def delete_review(db: Session, review_id: str, actor: User) -> None:
        """Delete a review. Only owner or admin can delete."""
        review = ReviewService._get_owned_review(db, review_id, actor)

        product_id = review.product_id
        db.delete(review)
        RatingService.recalculate(db, product_id)
        ReviewService._commit(db, product_id)

        logger.info("review_deleted", review_id=review_id, product_id=product_id, actor_id=actor.id)
