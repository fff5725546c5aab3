"""Invoice business logic."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from extensions import atomic, db
from errors import (
    AlreadyInvoiced,
    AlreadyPaid,
    InvoiceCancelled,
    NotFound,
    PreconditionFailed,
    ValidationError,
)
from models import Invoice, InvoiceItem, VALID_PAYMENT_METHODS
from services.audit import log_action
from services.numbering import generate_number
from services.order import get_order
from services.transitions import apply_invoice_transition
from utils import utc_now

logger = logging.getLogger(__name__)


def get_invoice(invoice_id: int, *, for_update: bool = False) -> Invoice:
    query = Invoice.query.filter_by(id=invoice_id)
    if for_update:
        query = query.with_for_update()
    invoice = query.first()
    if invoice is None:
        raise NotFound("Invoice", invoice_id)
    return invoice


def generate_invoice(
    order_id: int,
    due_date: Optional[datetime.date] = None,
    *,
    today: Optional[datetime.date] = None,
    default_due_days: int = 30,
) -> Invoice:
    """Create the invoice for *order_id*.

    Totals and line items are snapshots of the order.  The number comes from
    the yearly ``invoice`` sequence (``INV-2026-000001``).  Raises
    ``AlreadyInvoiced`` when the order already has one.
    """
    today = today or utc_now().date()
    if due_date is None:
        due_date = today + datetime.timedelta(days=default_due_days)
    elif due_date < today:
        raise ValidationError(
            "Due date must not be in the past", {"due_date": due_date.isoformat()}
        )

    with atomic():
        order = get_order(order_id, for_update=True)
        if order.invoice is not None:
            raise AlreadyInvoiced(
                "Invoice already exists for this order",
                {"order_id": order.id, "invoice_id": order.invoice.id},
            )
        if order.status == "CANCELLED":
            raise PreconditionFailed("Cannot invoice a cancelled order", {"order_id": order.id})

        invoice = Invoice(
            invoice_number=generate_number("invoice"),
            order_id=order.id,
            customer_id=order.customer_id,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            total_amount=order.total_amount,
            status="PENDING",
            due_date=due_date,
            items=[
                InvoiceItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in order.items
            ],
        )
        db.session.add(invoice)
    logger.info("Generated invoice %s for order %s", invoice.invoice_number, order_id)
    return invoice


def mark_paid(
    invoice_id: int,
    payment_method: str,
    notes: Optional[str] = None,
    paid_at: Optional[datetime.datetime] = None,
) -> Invoice:
    """Record payment of a PENDING invoice."""
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            "Invalid payment method",
            {"payment_method": payment_method, "allowed": sorted(VALID_PAYMENT_METHODS)},
        )
    with atomic():
        invoice = get_invoice(invoice_id, for_update=True)
        if invoice.status == "PAID":
            raise AlreadyPaid("Invoice is already marked as paid", {"invoice_id": invoice.id})
        if invoice.status == "CANCELLED":
            raise InvoiceCancelled(
                "Cannot mark a cancelled invoice as paid", {"invoice_id": invoice.id}
            )
        invoice.paid_at = paid_at or utc_now()
        invoice.payment_method = payment_method
        invoice.payment_notes = notes or None
        apply_invoice_transition(invoice, "PAID")
    return invoice


def cancel_invoice(invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
    """Cancel a PENDING invoice; the audit row commits with the status change."""
    with atomic():
        invoice = get_invoice(invoice_id, for_update=True)
        apply_invoice_transition(invoice, "CANCELLED")
        log_action("cancel", "invoice", invoice.id, "invoice cancelled", actor_id=actor_id)
    logger.info("Invoice %s cancelled by %s", invoice.invoice_number, actor_id)
    return invoice
