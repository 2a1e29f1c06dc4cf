from sqlalchemy import Column, Integer, ForeignKey, DateTime, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from storefront.db.base_class import Base


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)

    # Derived from items, recomputed by CartService on every mutation
    item_count = Column(Integer, default=0, nullable=False)
    total_amount = Column(Float, default=0.0, nullable=False)

    # Optimistic concurrency: every UPDATE is guarded by the revision read
    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="cart")
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)

    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float, nullable=False)  # Lock price when added
    subtotal = Column(Float, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_items_line"),
    )
