"""PPN tax invoice (faktur pajak) issuance."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from extensions import atomic, db
from errors import AlreadyIssued, NotFound, PreconditionFailed
from models import TaxInvoice
from services.invoice import get_invoice
from services.numbering import generate_number
from services.pricing import compute_tax

logger = logging.getLogger(__name__)


def create_tax_invoice(
    invoice_id: int,
    ppn_rate,
    issuer_id: Optional[int] = None,
) -> TaxInvoice:
    """Issue the tax invoice for a PAID invoice of a B2B customer.

    The customer needs a registered company with an NPWP.  PPN is computed
    on the invoice subtotal, rounded half-up.
    """
    with atomic():
        invoice = get_invoice(invoice_id, for_update=True)
        if invoice.status != "PAID":
            raise PreconditionFailed(
                "Tax invoices can only be issued for paid invoices",
                {"invoice_id": invoice.id, "status": invoice.status},
            )
        if invoice.tax_invoice is not None:
            raise AlreadyIssued(
                "A tax invoice was already issued for this invoice",
                {"tax_invoice_id": invoice.tax_invoice.id},
            )
        customer = invoice.customer
        if customer is None:
            raise NotFound("Customer", invoice.customer_id)
        company = customer.company
        if customer.customer_type != "B2B" or company is None:
            raise PreconditionFailed(
                "Tax invoices are only issued to B2B customers with a registered company",
                {"customer_id": customer.id},
            )
        if not (company.npwp or "").strip():
            raise PreconditionFailed(
                "Company has no NPWP tax id registered", {"company_id": company.id}
            )

        ppn_amount = compute_tax(invoice.subtotal, ppn_rate)
        tax_invoice = TaxInvoice(
            tax_invoice_number=generate_number("tax_invoice"),
            invoice_id=invoice.id,
            customer_id=customer.id,
            company_id=company.id,
            ppn_rate=Decimal(str(ppn_rate)),
            ppn_amount=ppn_amount,
            total_with_ppn=invoice.subtotal + ppn_amount,
            issued_by_id=issuer_id,
        )
        db.session.add(tax_invoice)
        invoice.tax_invoice_requested = True
    logger.info(
        "Issued tax invoice %s for invoice %s",
        tax_invoice.tax_invoice_number, invoice.invoice_number,
    )
    return tax_invoice


def request_tax_invoice(invoice_id: int, customer_id: int):
    """Storefront flag asking the finance team to issue a tax invoice."""
    with atomic():
        invoice = get_invoice(invoice_id, for_update=True)
        if invoice.customer_id != customer_id:
            raise NotFound("Invoice", invoice_id)
        if invoice.customer.customer_type != "B2B":
            raise PreconditionFailed("Tax invoices are only available to B2B customers")
        if invoice.tax_invoice is not None:
            raise AlreadyIssued("A tax invoice was already issued for this invoice")
        invoice.tax_invoice_requested = True
    return invoice
