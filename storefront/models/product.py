from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Text, Index, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from storefront.db.base_class import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False, index=True)
    slug = Column(String(250), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Pricing (display only; variants carry the purchasable price)
    base_price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Ratings (derived from reviews, written only by RatingService)
    avg_rating = Column(Float, default=0.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")

    @property
    def primary_variant(self):
        return next((v for v in self.variants if v.is_active), None)


class ProductVariant(Base):
    """Purchasable configuration (size / metal / color) with its own stock and price"""
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    sku = Column(String(100), unique=True, nullable=False, index=True)
    size = Column(String(20), nullable=True)  # ring size, chain length
    color = Column(String(50), nullable=True)
    metal_type = Column(String(50), nullable=True)  # Gold, Silver, Platinum

    # Mutated only through InventoryService.apply_delta
    stock_quantity = Column(Integer, default=0, nullable=False)
    price = Column(Float, nullable=False)
    sale_price = Column(Float, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Revision counter, bumped by every stock write
    version_id = Column(Integer, nullable=False, default=1)

    # Relationships
    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_variants_stock_non_negative"),
    )

    @property
    def unit_price(self) -> float:
        if self.sale_price:
            return self.sale_price
        return self.price


Index('idx_product_active', Product.is_active)
Index('idx_variant_stock', ProductVariant.stock_quantity)
