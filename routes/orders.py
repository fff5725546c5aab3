"""Admin order routes: status changes, tracking and invoicing."""

import logging

from flask import Blueprint, current_app, request

from errors import CommerceError, ValidationError
from models import VALID_ORDER_STATUSES, Order
from schemas import InvoiceCreate, StatusChange, TrackingInput
from serializers import invoice_to_dict, order_to_dict
from services.auth import get_current_user, role_required
from services.communication import send_template_message
from services.invoice import generate_invoice
from services.order import add_tracking_number, get_order, update_order_status
from utils import api_response, business_today, json_body

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _notify_shipped(order: Order) -> None:
    """Tell the customer the order left the warehouse.

    The order change is already committed; a delivery problem is recorded
    as a FAILED communication and never reaches the caller.
    """
    wa_config = current_app.config["WHATSAPP_CONFIG"]
    if not wa_config.enabled:
        return
    try:
        send_template_message(
            order.customer_id,
            "order_shipped",
            [order.order_number, order.tracking_number or "-"],
            whatsapp_config=wa_config,
            email_config=current_app.config["EMAIL_CONFIG"],
            order_id=order.id,
            admin_user_id=get_current_user().id,
        )
    except CommerceError as e:
        logger.warning("Shipping notification for order %s not sent: %s", order.id, e.message)


@orders_bp.route("", methods=["GET"])
@role_required("manage_orders")
def list_orders():
    query = Order.query
    status = request.args.get("status")
    if status:
        if status not in VALID_ORDER_STATUSES:
            raise ValidationError("Invalid status filter", {"status": status})
        query = query.filter(Order.status == status)
    customer_id = request.args.get("customer_id", type=int)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return api_response([order_to_dict(o) for o in orders])


@orders_bp.route("/<int:order_id>", methods=["GET"])
@role_required("manage_orders")
def detail(order_id: int):
    return api_response(order_to_dict(get_order(order_id), detailed=True))


@orders_bp.route("/<int:order_id>/status", methods=["PATCH"])
@role_required("manage_orders")
def change_status(order_id: int):
    data = StatusChange.from_payload(json_body(), VALID_ORDER_STATUSES)
    order = update_order_status(
        order_id,
        data.status,
        get_current_user().id,
        data.notes,
        tracking_number=data.tracking_number,
    )
    if order.status == "SHIPPED":
        _notify_shipped(order)
    return api_response(order_to_dict(order, detailed=True))


@orders_bp.route("/<int:order_id>/tracking", methods=["POST"])
@role_required("manage_orders")
def tracking(order_id: int):
    data = TrackingInput.from_payload(json_body())
    previous = get_order(order_id).status
    order = add_tracking_number(order_id, data.tracking_number, get_current_user().id)
    if previous != "SHIPPED" and order.status == "SHIPPED":
        _notify_shipped(order)
    return api_response(order_to_dict(order, detailed=True))


@orders_bp.route("/<int:order_id>/invoice", methods=["POST"])
@role_required("manage_invoices")
def create_invoice(order_id: int):
    data = InvoiceCreate.from_payload(json_body())
    locale = current_app.config["LOCALE_CONFIG"]
    invoice = generate_invoice(
        order_id,
        data.due_date,
        today=business_today(locale.utc_offset_hours),
        default_due_days=current_app.config["COMMERCE_CONFIG"].invoice_due_days,
    )
    return api_response(invoice_to_dict(invoice, detailed=True), 201)
