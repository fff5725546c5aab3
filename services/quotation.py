"""Quotation business logic: pricing, status changes and order conversion."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from extensions import atomic, db
from errors import (
    AlreadyConverted,
    NotFound,
    PreconditionFailed,
    ValidationError,
)
from models import (
    Address,
    Customer,
    Order,
    OrderItem,
    OrderStatusLog,
    Product,
    Quotation,
    QuotationItem,
    QuotationStatusLog,
)
from services.numbering import generate_number
from services.pricing import compute_totals, quote_line
from services.transitions import QUOTATION_POLICY, apply_quotation_transition
from utils import to_utc, utc_now

logger = logging.getLogger(__name__)


def get_quotation(quotation_id: int, *, for_update: bool = False) -> Quotation:
    query = Quotation.query.filter_by(id=quotation_id)
    if for_update:
        query = query.with_for_update()
    quotation = query.first()
    if quotation is None:
        raise NotFound("Quotation", quotation_id)
    return quotation


def price_items(items) -> tuple[list[QuotationItem], int]:
    """Build priced ``QuotationItem`` rows for ``(product_id, quantity)`` pairs.

    Returns the rows and their subtotal.
    """
    rows = []
    subtotal = 0
    for product_id, quantity in items:
        product = db.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise NotFound("Product", product_id)
        unit_price, line_total = quote_line(product, quantity)
        rows.append(
            QuotationItem(
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                total_price=line_total,
            )
        )
        subtotal += line_total
    return rows, subtotal


def build_quotation(
    customer_id: int,
    items,
    config,
    *,
    shipping_address_id: Optional[int] = None,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Quotation:
    """Add a priced DRAFT quotation to the current unit of work.

    Nothing is committed here; callers wrap this in ``atomic()`` together
    with whatever else must succeed or fail with it.
    """
    items = list(items)
    if not items:
        raise ValidationError("A quotation needs at least one item")

    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer", customer_id)
    if shipping_address_id is not None:
        address = db.session.get(Address, shipping_address_id)
        if address is None or address.customer_id != customer.id:
            raise ValidationError(
                "Shipping address not found or does not belong to customer",
                {"shipping_address_id": shipping_address_id},
            )

    rows, subtotal = price_items(items)
    subtotal, tax, total = compute_totals(subtotal, config.ppn_rate)
    quotation = Quotation(
        quotation_number=generate_number("quotation"),
        customer_id=customer.id,
        shipping_address_id=shipping_address_id,
        status="DRAFT",
        valid_until=utc_now() + datetime.timedelta(days=config.quotation_valid_days),
        notes=notes,
        subtotal=subtotal,
        tax_amount=tax,
        total_amount=total,
        items=rows,
    )
    db.session.add(quotation)
    db.session.flush()
    db.session.add(
        QuotationStatusLog(
            quotation_id=quotation.id,
            from_status=None,
            to_status="DRAFT",
            notes="Quotation requested",
            admin_user_id=actor_id,
            customer_id=None if actor_id else customer.id,
        )
    )
    return quotation


def create_quotation(
    customer_id: int,
    items,
    config,
    *,
    shipping_address_id: Optional[int] = None,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Quotation:
    """Create a DRAFT quotation priced with the current tiers.

    *items* is an iterable of ``(product_id, quantity)``.  *config* is the
    ``CommerceConfig`` supplying the PPN rate and validity period.
    """
    with atomic():
        quotation = build_quotation(
            customer_id,
            items,
            config,
            shipping_address_id=shipping_address_id,
            notes=notes,
            actor_id=actor_id,
        )
    logger.info(
        "Created quotation %s for customer %s (total=%s)",
        quotation.quotation_number, customer_id, quotation.total_amount,
    )
    return quotation


def update_quotation_status(
    quotation_id: int,
    target: str,
    actor_id: Optional[int],
    notes: Optional[str] = None,
) -> Quotation:
    """Apply an admin-driven status change."""
    if target == "CONVERTED":
        raise PreconditionFailed("Quotations become CONVERTED only through order conversion")
    with atomic():
        quotation = get_quotation(quotation_id, for_update=True)
        apply_quotation_transition(quotation, target, actor_id=actor_id, notes=notes)
    return quotation


def respond_to_quotation(
    quotation_id: int,
    customer_id: int,
    accept: bool,
    notes: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> Quotation:
    """Customer accepts or rejects a SENT quotation from the storefront."""
    now = now or utc_now()
    with atomic():
        quotation = get_quotation(quotation_id, for_update=True)
        if quotation.customer_id != customer_id:
            raise NotFound("Quotation", quotation_id)
        target = "ACCEPTED" if accept else "REJECTED"
        if accept and quotation.status == "SENT" and to_utc(quotation.valid_until) < to_utc(now):
            raise PreconditionFailed(
                "Quotation has expired", {"valid_until": quotation.valid_until.isoformat()}
            )
        apply_quotation_transition(quotation, target, notes=notes, customer_id=customer_id)
    return quotation


def convert_to_order(quotation_id: int, actor_id: int) -> Order:
    """Materialise an Order from an ACCEPTED quotation.

    The quotation row is locked for the duration; the order, its items, the
    status logs and the quotation update commit together or not at all.
    A quotation converts at most once.
    """
    with atomic():
        quotation = get_quotation(quotation_id, for_update=True)
        if quotation.converted_order_id is not None or quotation.status == "CONVERTED":
            raise AlreadyConverted(
                "Quotation has already been converted to an order",
                {"quotation_id": quotation.id, "order_id": quotation.converted_order_id},
            )
        QUOTATION_POLICY.check(quotation.status, "CONVERTED")

        order = Order(
            order_number=generate_number("order"),
            quotation_id=quotation.id,
            customer_id=quotation.customer_id,
            shipping_address_id=quotation.shipping_address_id,
            status="NEW",
            subtotal=quotation.subtotal,
            tax_amount=quotation.tax_amount,
            total_amount=quotation.total_amount,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in quotation.items
            ],
        )
        db.session.add(order)
        db.session.flush()
        db.session.add(
            OrderStatusLog(
                order_id=order.id,
                from_status=None,
                to_status="NEW",
                notes=f"Order created from quotation {quotation.quotation_number}",
                admin_user_id=actor_id,
            )
        )
        quotation.converted_order_id = order.id
        apply_quotation_transition(
            quotation,
            "CONVERTED",
            actor_id=actor_id,
            notes=f"Converted to order {order.order_number}",
        )
    logger.info("Converted quotation %s into order %s", quotation.id, order.order_number)
    return order


def mark_expired_quotations(now: Optional[datetime.datetime] = None) -> int:
    """Expire SENT quotations whose ``valid_until`` has passed.

    Returns the number of quotations expired.
    """
    now = now or utc_now()
    with atomic():
        stale = (
            Quotation.query.filter(
                Quotation.status == "SENT",
                Quotation.valid_until < to_utc(now),
            )
            .with_for_update()
            .all()
        )
        for quotation in stale:
            apply_quotation_transition(
                quotation, "EXPIRED", notes="Validity period ended"
            )
    if stale:
        logger.info("Expired %d quotation(s)", len(stale))
    return len(stale)
