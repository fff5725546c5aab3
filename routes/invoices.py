"""Invoice management routes."""

import logging

from flask import Blueprint, current_app, request

from errors import ValidationError
from models import VALID_INVOICE_STATUSES, VALID_PAYMENT_METHODS, Invoice
from schemas import PaymentInput
from serializers import invoice_to_dict, tax_invoice_to_dict
from services.audit import log_action
from services.auth import get_current_user, role_required
from services.invoice import cancel_invoice, get_invoice, mark_paid
from services.tax_invoice import create_tax_invoice
from extensions import db
from utils import api_response, json_body, query_flag

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.route("", methods=["GET"])
@role_required("manage_invoices")
def list_invoices():
    query = Invoice.query
    status = request.args.get("status")
    if status:
        if status not in VALID_INVOICE_STATUSES:
            raise ValidationError("Invalid status filter", {"status": status})
        query = query.filter(Invoice.status == status)
    if query_flag("tax_invoice_requested"):
        query = query.filter(Invoice.tax_invoice_requested.is_(True))
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return api_response([invoice_to_dict(i) for i in invoices])


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@role_required("manage_invoices")
def detail(invoice_id: int):
    return api_response(invoice_to_dict(get_invoice(invoice_id), detailed=True))


@invoices_bp.route("/<int:invoice_id>/payment", methods=["POST"])
@role_required("manage_invoices")
def record_payment(invoice_id: int):
    data = PaymentInput.from_payload(json_body(), VALID_PAYMENT_METHODS)
    invoice = mark_paid(invoice_id, data.payment_method, data.notes)
    log_action("paid", "invoice", invoice.id, f"method={data.payment_method}")
    db.session.commit()
    return api_response(invoice_to_dict(invoice, detailed=True))


@invoices_bp.route("/<int:invoice_id>/cancel", methods=["POST"])
@role_required("manage_invoices")
def cancel(invoice_id: int):
    invoice = cancel_invoice(invoice_id, actor_id=get_current_user().id)
    return api_response(invoice_to_dict(invoice, detailed=True))


@invoices_bp.route("/<int:invoice_id>/tax-invoice", methods=["POST"])
@role_required("manage_invoices")
def issue_tax_invoice(invoice_id: int):
    tax_invoice = create_tax_invoice(
        invoice_id,
        current_app.config["COMMERCE_CONFIG"].ppn_rate,
        issuer_id=get_current_user().id,
    )
    return api_response(tax_invoice_to_dict(tax_invoice), 201)
