"""Storefront cart."""

from __future__ import annotations

import logging
from typing import Optional

from config_models import CommerceConfig
from extensions import atomic, db
from errors import NotFound, ValidationError
from models import CartItem, Product, Quotation
from services.pricing import compute_totals, quote_line
from services.quotation import build_quotation

logger = logging.getLogger(__name__)


def _active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise NotFound("Product", product_id)
    return product


def get_cart(customer_id: int, ppn_rate) -> dict:
    """Cart lines priced with the current tiers, plus PPN totals."""
    items = (
        CartItem.query.filter_by(customer_id=customer_id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )
    lines = []
    subtotal = 0
    for item in items:
        unit_price, line_total = quote_line(item.product, item.quantity)
        lines.append(
            {
                "item": item,
                "unit_price": unit_price,
                "total_price": line_total,
            }
        )
        subtotal += line_total
    subtotal, tax, total = compute_totals(subtotal, ppn_rate)
    return {"lines": lines, "subtotal": subtotal, "tax_amount": tax, "total_amount": total}


def add_item(customer_id: int, product_id: int, quantity: int) -> CartItem:
    """Add *quantity* of a product; an existing line is increased."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
    _active_product(product_id)
    with atomic():
        item = CartItem.query.filter_by(customer_id=customer_id, product_id=product_id).first()
        if item is None:
            item = CartItem(customer_id=customer_id, product_id=product_id, quantity=quantity)
            db.session.add(item)
        else:
            item.quantity += quantity
    return item


def _own_item(customer_id: int, item_id: int) -> CartItem:
    item = db.session.get(CartItem, item_id)
    if item is None or item.customer_id != customer_id:
        raise NotFound("CartItem", item_id)
    return item


def update_item(customer_id: int, item_id: int, quantity: int) -> CartItem:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
    with atomic():
        item = _own_item(customer_id, item_id)
        item.quantity = quantity
    return item


def remove_item(customer_id: int, item_id: int) -> None:
    with atomic():
        db.session.delete(_own_item(customer_id, item_id))


def _delete_cart_rows(customer_id: int) -> int:
    return CartItem.query.filter_by(customer_id=customer_id).delete(synchronize_session=False)


def clear_cart(customer_id: int) -> int:
    with atomic():
        removed = _delete_cart_rows(customer_id)
    return removed


def request_quotation(
    customer_id: int,
    config: CommerceConfig,
    *,
    items=None,
    shipping_address_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Quotation:
    """Turn explicit *items* or the whole cart into a DRAFT quotation.

    When the cart was used it is emptied in the same transaction that
    creates the quotation.
    """
    from_cart = not items
    if from_cart:
        items = [
            (item.product_id, item.quantity)
            for item in CartItem.query.filter_by(customer_id=customer_id).all()
        ]
        if not items:
            raise ValidationError("Cart is empty")
    with atomic():
        quotation = build_quotation(
            customer_id,
            items,
            config,
            shipping_address_id=shipping_address_id,
            notes=notes,
        )
        if from_cart:
            _delete_cart_rows(customer_id)
    logger.info("Customer %s requested quotation %s", customer_id, quotation.quotation_number)
    return quotation
