"""Admin quotation routes."""

import logging

from flask import Blueprint, current_app, request

from errors import ValidationError
from models import VALID_QUOTATION_STATUSES, Quotation
from schemas import QuotationCreate, StatusChange
from serializers import order_to_dict, quotation_to_dict
from services.audit import log_action
from services.auth import get_current_user, role_required
from services.quotation import (
    convert_to_order,
    create_quotation,
    get_quotation,
    mark_expired_quotations,
    update_quotation_status,
)
from extensions import db
from utils import api_response, json_body

logger = logging.getLogger(__name__)

quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.route("", methods=["GET"])
@role_required("manage_quotations")
def list_quotations():
    query = Quotation.query
    status = request.args.get("status")
    if status:
        if status not in VALID_QUOTATION_STATUSES:
            raise ValidationError("Invalid status filter", {"status": status})
        query = query.filter(Quotation.status == status)
    customer_id = request.args.get("customer_id", type=int)
    if customer_id:
        query = query.filter(Quotation.customer_id == customer_id)
    quotations = query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all()
    return api_response([quotation_to_dict(q) for q in quotations])


@quotations_bp.route("", methods=["POST"])
@role_required("manage_quotations")
def create():
    data = QuotationCreate.from_payload(json_body())
    quotation = create_quotation(
        data.customer_id,
        [(item.product_id, item.quantity) for item in data.items],
        current_app.config["COMMERCE_CONFIG"],
        shipping_address_id=data.shipping_address_id,
        notes=data.notes,
        actor_id=get_current_user().id,
    )
    return api_response(quotation_to_dict(quotation, detailed=True), 201)


@quotations_bp.route("/<int:quotation_id>", methods=["GET"])
@role_required("manage_quotations")
def detail(quotation_id: int):
    return api_response(quotation_to_dict(get_quotation(quotation_id), detailed=True))


@quotations_bp.route("/<int:quotation_id>/status", methods=["PATCH"])
@role_required("manage_quotations")
def change_status(quotation_id: int):
    data = StatusChange.from_payload(json_body(), VALID_QUOTATION_STATUSES)
    quotation = update_quotation_status(
        quotation_id, data.status, get_current_user().id, data.notes
    )
    return api_response(quotation_to_dict(quotation, detailed=True))


@quotations_bp.route("/<int:quotation_id>/convert", methods=["POST"])
@role_required("manage_quotations")
def convert(quotation_id: int):
    order = convert_to_order(quotation_id, get_current_user().id)
    log_action("convert", "quotation", quotation_id, f"order={order.order_number}")
    db.session.commit()
    return api_response(order_to_dict(order, detailed=True), 201)


@quotations_bp.route("/expire", methods=["POST"])
@role_required("manage_quotations")
def expire():
    return api_response({"expired": mark_expired_quotations()})
