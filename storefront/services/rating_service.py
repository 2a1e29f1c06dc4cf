from typing import Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.core.exceptions import NotFoundError
from storefront.models.product import Product
from storefront.models.review import Review

logger = structlog.get_logger()


class RatingService:

    @staticmethod
    def recalculate(db: Session, product_id: int) -> Tuple[float, int]:
        """
        Recompute ``avg_rating`` and ``review_count`` from the product's full
        review set and write both onto the product row.

        The product row is locked for the rest of the caller's transaction so
        two concurrent review writes cannot interleave their recomputations.
        Does not commit.
        """
        product = (
            db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .first()
        )
        if not product:
            raise NotFoundError("Product")

        db.flush()
        rating_sum, review_count = db.query(
            func.coalesce(func.sum(Review.rating), 0),
            func.count(Review.id),
        ).filter(Review.product_id == product_id).one()

        avg_rating = float(rating_sum) / review_count if review_count else 0.0

        product.avg_rating = avg_rating
        product.review_count = review_count

        logger.info(
            "product_rating_recalculated",
            product_id=product_id,
            avg_rating=avg_rating,
            review_count=review_count,
        )
        return avg_rating, review_count
