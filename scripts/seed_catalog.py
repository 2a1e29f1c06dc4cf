#!/usr/bin/env python3
"""Seed a development database with an admin, a shopper and a small jewellery catalog.

Flow:
1) Ensure admin and shopper users exist
2) Create each product with its variants (skipped when the slug already exists)
3) Print bearer tokens so the API can be exercised right away
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Dict, List

from sqlalchemy.orm import Session

import storefront.db.base  # noqa: F401
from storefront.core.security import create_access_token
from storefront.db.session import SessionLocal
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User, UserRole

CATALOG: List[Dict[str, Any]] = [
    {
        "name": "Classic Gold Band",
        "slug": "classic-gold-band",
        "base_price": 45000,
        "description": "Plain 22k gold band.",
        "variants": [
            {"sku": "CGB-22K-7", "size": "7", "metal_type": "Gold", "price": 45000, "stock": 12},
            {"sku": "CGB-22K-9", "size": "9", "metal_type": "Gold", "price": 47500, "stock": 4},
        ],
    },
    {
        "name": "Silver Link Chain",
        "slug": "silver-link-chain",
        "base_price": 6500,
        "description": "Sterling silver chain, 18 and 22 inch.",
        "variants": [
            {"sku": "SLC-18", "size": "18in", "metal_type": "Silver", "price": 6500, "stock": 30},
            {"sku": "SLC-22", "size": "22in", "metal_type": "Silver", "price": 7200, "sale_price": 6800, "stock": 0},
        ],
    },
    {
        "name": "Emerald Stud Earrings",
        "slug": "emerald-stud-earrings",
        "base_price": 28000,
        "description": "Pair of emerald studs set in white gold.",
        "variants": [
            {"sku": "ESE-WG", "color": "Green", "metal_type": "White Gold", "price": 28000, "stock": 6},
        ],
    },
]


def ensure_user(db: Session, email: str, full_name: str, role: UserRole) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(email=email, full_name=full_name, role=role, is_active=True)
    db.add(user)
    db.flush()
    return user


def seed_products(db: Session) -> List[Product]:
    created = []
    for item in CATALOG:
        if db.query(Product.id).filter(Product.slug == item["slug"]).first():
            continue

        product = Product(
            name=item["name"],
            slug=item["slug"],
            description=item["description"],
            base_price=item["base_price"],
            is_active=True,
        )
        for variant in item["variants"]:
            product.variants.append(
                ProductVariant(
                    sku=variant["sku"],
                    size=variant.get("size"),
                    color=variant.get("color"),
                    metal_type=variant.get("metal_type"),
                    price=variant["price"],
                    sale_price=variant.get("sale_price"),
                    stock_quantity=variant["stock"],
                    is_active=True,
                )
            )
        db.add(product)
        created.append(product)
    db.flush()
    return created


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the storefront database with demo data")
    parser.add_argument("--admin-email", default=os.getenv("STOREFRONT_ADMIN_EMAIL", "admin@storefront.local"))
    parser.add_argument("--shopper-email", default=os.getenv("STOREFRONT_SHOPPER_EMAIL", "shopper@storefront.local"))
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    db = SessionLocal()
    try:
        admin = ensure_user(db, args.admin_email, "Store Admin", UserRole.ADMIN)
        shopper = ensure_user(db, args.shopper_email, "Demo Shopper", UserRole.CUSTOMER)
        created = seed_products(db)
        db.commit()

        print("Created products:" if created else "Catalog already seeded.")
        for product in created:
            skus = ", ".join(f"{v.sku} (stock {v.stock_quantity})" for v in product.variants)
            print(f"- id={product.id}, slug={product.slug}: {skus}")

        print(f"Admin token:   {create_access_token(admin.id)}")
        print(f"Shopper token: {create_access_token(shopper.id)}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise SystemExit(1)
