"""Storefront routes for logged-in customers."""

from flask import Blueprint, current_app

from errors import NotFound
from models import Invoice, Order, Quotation
from schemas import CartItemInput, QuantityInput, QuotationRequest, QuotationResponse
from serializers import (
    address_to_dict,
    cart_to_dict,
    invoice_to_dict,
    order_to_dict,
    quotation_to_dict,
)
from services import cart as cart_service
from services.auth import customer_required, get_current_customer
from services.customer import add_address
from services.quotation import respond_to_quotation
from services.tax_invoice import request_tax_invoice
from utils import api_response, json_body

store_bp = Blueprint("store", __name__, url_prefix="/api/store")


def _own(model, entity_id: int):
    """Load *model* by id, hiding rows that belong to another customer."""
    row = model.query.filter_by(id=entity_id, customer_id=get_current_customer().id).first()
    if row is None:
        raise NotFound(model.__name__, entity_id)
    return row


def _cart_response(status: int = 200):
    cart = cart_service.get_cart(
        get_current_customer().id, current_app.config["COMMERCE_CONFIG"].ppn_rate
    )
    return api_response(cart_to_dict(cart), status)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

@store_bp.route("/cart", methods=["GET"])
@customer_required
def view_cart():
    return _cart_response()


@store_bp.route("/cart/items", methods=["POST"])
@customer_required
def add_to_cart():
    data = CartItemInput.from_payload(json_body())
    cart_service.add_item(get_current_customer().id, data.product_id, data.quantity)
    return _cart_response(201)


@store_bp.route("/cart/items/<int:item_id>", methods=["PATCH"])
@customer_required
def update_cart_item(item_id: int):
    data = QuantityInput.from_payload(json_body())
    cart_service.update_item(get_current_customer().id, item_id, data.quantity)
    return _cart_response()


@store_bp.route("/cart/items/<int:item_id>", methods=["DELETE"])
@customer_required
def remove_cart_item(item_id: int):
    cart_service.remove_item(get_current_customer().id, item_id)
    return _cart_response()


@store_bp.route("/cart", methods=["DELETE"])
@customer_required
def clear_cart():
    cart_service.clear_cart(get_current_customer().id)
    return _cart_response()


# ---------------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------------

@store_bp.route("/quotations", methods=["POST"])
@customer_required
def request_quotation():
    data = QuotationRequest.from_payload(json_body())
    quotation = cart_service.request_quotation(
        get_current_customer().id,
        current_app.config["COMMERCE_CONFIG"],
        items=[(item.product_id, item.quantity) for item in data.items],
        shipping_address_id=data.shipping_address_id,
        notes=data.notes,
    )
    return api_response(quotation_to_dict(quotation, detailed=True), 201)


@store_bp.route("/quotations", methods=["GET"])
@customer_required
def my_quotations():
    rows = (
        Quotation.query.filter_by(customer_id=get_current_customer().id)
        .order_by(Quotation.created_at.desc(), Quotation.id.desc())
        .all()
    )
    return api_response([quotation_to_dict(q) for q in rows])


@store_bp.route("/quotations/<int:quotation_id>", methods=["GET"])
@customer_required
def my_quotation(quotation_id: int):
    return api_response(quotation_to_dict(_own(Quotation, quotation_id), detailed=True))


@store_bp.route("/quotations/<int:quotation_id>/respond", methods=["POST"])
@customer_required
def respond(quotation_id: int):
    data = QuotationResponse.from_payload(json_body())
    quotation = respond_to_quotation(
        quotation_id, get_current_customer().id, data.accept, data.notes
    )
    return api_response(quotation_to_dict(quotation, detailed=True))


# ---------------------------------------------------------------------------
# Orders / invoices
# ---------------------------------------------------------------------------

@store_bp.route("/orders", methods=["GET"])
@customer_required
def my_orders():
    rows = (
        Order.query.filter_by(customer_id=get_current_customer().id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return api_response([order_to_dict(o) for o in rows])


@store_bp.route("/orders/<int:order_id>", methods=["GET"])
@customer_required
def my_order(order_id: int):
    return api_response(order_to_dict(_own(Order, order_id), detailed=True))


@store_bp.route("/invoices", methods=["GET"])
@customer_required
def my_invoices():
    rows = (
        Invoice.query.filter_by(customer_id=get_current_customer().id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )
    return api_response([invoice_to_dict(i) for i in rows])


@store_bp.route("/invoices/<int:invoice_id>", methods=["GET"])
@customer_required
def my_invoice(invoice_id: int):
    return api_response(invoice_to_dict(_own(Invoice, invoice_id), detailed=True))


@store_bp.route("/invoices/<int:invoice_id>/tax-invoice-request", methods=["POST"])
@customer_required
def ask_for_tax_invoice(invoice_id: int):
    invoice = request_tax_invoice(invoice_id, get_current_customer().id)
    return api_response(invoice_to_dict(invoice))


@store_bp.route("/addresses", methods=["POST"])
@customer_required
def create_address():
    payload = json_body()
    address = add_address(
        get_current_customer().id,
        str(payload.get("address") or "").strip(),
        str(payload.get("city") or "").strip(),
        province=payload.get("province"),
        postal_code=payload.get("postal_code"),
        is_default=bool(payload.get("is_default")),
    )
    return api_response(address_to_dict(address), 201)
