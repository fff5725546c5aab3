"""Catalog maintenance: products, pricing tiers, stock, brands, categories."""

from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy import or_

from extensions import atomic, db
from errors import NotFound, PreconditionFailed, ValidationError
from models import (
    Brand,
    CartItem,
    Category,
    OrderItem,
    PricingTier,
    Product,
    QuotationItem,
)
from schemas import NamedInput, ProductInput
from services.audit import log_action
from services.pricing import validate_tiers

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug or "item"


def get_product(product_id: int, *, for_update: bool = False) -> Product:
    query = Product.query.filter_by(id=product_id)
    if for_update:
        query = query.with_for_update()
    product = query.first()
    if product is None:
        raise NotFound("Product", product_id)
    return product


def list_products(
    *,
    search: Optional[str] = None,
    brand_id: Optional[int] = None,
    category_id: Optional[int] = None,
    active_only: bool = True,
    featured_only: bool = False,
) -> list[Product]:
    query = Product.query
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if featured_only:
        query = query.filter(Product.is_featured.is_(True))
    if brand_id:
        query = query.filter(Product.brand_id == brand_id)
    if category_id:
        query = query.filter(Product.categories.any(Category.id == category_id))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return query.order_by(Product.name.asc()).all()


def list_low_stock(threshold: int) -> list[Product]:
    """Active products with stock at or below *threshold*, emptiest first."""
    return (
        Product.query.filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def _apply_tiers(product: Product, tiers) -> None:
    """Replace the product's tiers after validating the new set."""
    ordered = validate_tiers([t.as_dict() for t in tiers], product.base_price)
    product.pricing_tiers.clear()
    db.session.flush()
    for tier in ordered:
        product.pricing_tiers.append(
            PricingTier(
                min_quantity=tier["min_quantity"],
                max_quantity=tier["max_quantity"],
                price_per_unit=tier["price_per_unit"],
            )
        )


def _resolve_brand(brand_id: Optional[int]) -> Optional[int]:
    if brand_id is not None and db.session.get(Brand, brand_id) is None:
        raise NotFound("Brand", brand_id)
    return brand_id


def _resolve_categories(category_ids) -> list[Category]:
    categories = []
    for category_id in dict.fromkeys(category_ids):
        category = db.session.get(Category, category_id)
        if category is None:
            raise NotFound("Category", category_id)
        categories.append(category)
    return categories


def create_product(data: ProductInput) -> Product:
    if Product.query.filter_by(sku=data.sku).first() is not None:
        raise ValidationError("SKU already exists", {"sku": data.sku})
    with atomic():
        product = Product(
            sku=data.sku,
            name=data.name,
            description=data.description,
            base_price=data.base_price,
            stock=data.stock or 0,
            is_active=True if data.is_active is None else data.is_active,
            is_featured=bool(data.is_featured),
            brand_id=_resolve_brand(data.brand_id),
        )
        if data.category_ids:
            product.categories = _resolve_categories(data.category_ids)
        db.session.add(product)
        db.session.flush()
        if data.pricing_tiers:
            _apply_tiers(product, data.pricing_tiers)
        log_action("create", "product", product.id, f"sku={product.sku}")
    logger.info("Created product %s", product.sku)
    return product


def update_product(product_id: int, data: ProductInput) -> Product:
    """Update the fields present in *data*; tiers are replaced as a set."""
    with atomic():
        product = get_product(product_id, for_update=True)
        if data.sku is not None and data.sku != product.sku:
            if Product.query.filter_by(sku=data.sku).first() is not None:
                raise ValidationError("SKU already exists", {"sku": data.sku})
            product.sku = data.sku
        for attr in ("name", "description", "base_price", "stock", "is_active", "is_featured"):
            value = getattr(data, attr)
            if value is not None:
                setattr(product, attr, value)
        if data.brand_id is not None:
            product.brand_id = _resolve_brand(data.brand_id)
        if data.category_ids is not None:
            product.categories = _resolve_categories(data.category_ids)
        if data.pricing_tiers is not None:
            _apply_tiers(product, data.pricing_tiers)
        log_action("edit", "product", product.id, "updated")
    return product


def adjust_stock(product_id: int, delta: int, reason: Optional[str] = None) -> Product:
    """Add *delta* (may be negative) to stock.  Stock never drops below zero."""
    with atomic():
        product = get_product(product_id, for_update=True)
        new_stock = product.stock + delta
        if new_stock < 0:
            raise PreconditionFailed(
                "Insufficient stock",
                {"product_id": product.id, "stock": product.stock, "delta": delta},
            )
        product.stock = new_stock
        log_action("stock", "product", product.id, f"{delta:+d} ({reason or 'manual'})")
    logger.info("Stock of %s adjusted by %+d to %d", product.sku, delta, new_stock)
    return product


def delete_product(product_id: int) -> None:
    """Delete an unreferenced product; referenced ones must be deactivated."""
    with atomic():
        product = get_product(product_id, for_update=True)
        in_quotations = QuotationItem.query.filter_by(product_id=product.id).first()
        in_orders = OrderItem.query.filter_by(product_id=product.id).first()
        if in_quotations or in_orders:
            raise PreconditionFailed(
                "Product is used in quotations or orders; deactivate it instead",
                {"product_id": product.id},
            )
        CartItem.query.filter_by(product_id=product.id).delete(synchronize_session=False)
        log_action("delete", "product", product.id, f"deleted: {product.sku}")
        db.session.delete(product)


# ---------------------------------------------------------------------------
# Brands / categories
# ---------------------------------------------------------------------------

def _create_named(model, data: NamedInput):
    slug = slugify(data.slug or data.name)
    if model.query.filter_by(slug=slug).first() is not None:
        raise ValidationError(f"{model.__name__} slug already exists", {"slug": slug})
    with atomic():
        row = model(name=data.name, slug=slug)
        db.session.add(row)
    return row


def create_brand(data: NamedInput) -> Brand:
    return _create_named(Brand, data)


def create_category(data: NamedInput) -> Category:
    return _create_named(Category, data)


def list_brands() -> list[Brand]:
    return Brand.query.filter_by(is_active=True).order_by(Brand.name.asc()).all()


def list_categories() -> list[Category]:
    return Category.query.filter_by(is_active=True).order_by(Category.name.asc()).all()
