import structlog
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import NotFoundError
from storefront.models.product import Product
from storefront.schemas.product import ProductRating, ProductResponse, VariantResponse
from storefront.services import cache_service

logger = structlog.get_logger()


def serialize_product(product: Product) -> dict:
    return ProductResponse(
        id=product.id,
        name=product.name,
        slug=product.slug,
        description=product.description,
        base_price=product.base_price,
        sale_price=product.sale_price,
        is_active=product.is_active,
        rating=ProductRating(average=product.avg_rating, count=product.review_count),
        variants=[VariantResponse.model_validate(v) for v in product.variants if v.is_active],
    ).model_dump(mode="json")


def get_product_detail(db: Session, product_id: int) -> dict:
    """Product with live stock and rating, served from cache when warm."""
    key = cache_service.product_key(product_id)
    cached = cache_service.get_cached(key)
    if cached is not None:
        logger.debug("product_cache_hit", product_id=product_id)
        return cached

    product = db.query(Product).filter(
        Product.id == product_id,
        Product.is_active == True
    ).first()
    if not product:
        raise NotFoundError("Product")

    data = serialize_product(product)
    cache_service.set_cached(key, data, settings.PRODUCT_CACHE_TTL)
    return data
