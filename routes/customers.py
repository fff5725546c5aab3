"""Admin customer routes: accounts, companies, communication history."""

from flask import Blueprint, current_app, request

from errors import ValidationError
from models import (
    VALID_COMMUNICATION_DIRECTIONS,
    VALID_COMMUNICATION_STATUSES,
    VALID_COMMUNICATION_TYPES,
)
from schemas import CommunicationCreate, TemplateMessage
from serializers import (
    address_to_dict,
    communication_to_dict,
    company_to_dict,
    customer_to_dict,
    follow_up_to_dict,
)
from services import customer as customer_service
from services.auth import get_current_user, role_required
from services.communication import (
    get_customer_history,
    log_communication,
    send_template_message,
)
from utils import api_response, json_body

customers_bp = Blueprint("customers", __name__, url_prefix="/api")


def _required(payload: dict, *names: str) -> None:
    missing = {
        n: "is required"
        for n in names
        if not isinstance(payload.get(n), str) or not payload[n].strip()
    }
    if missing:
        raise ValidationError("Invalid request body", {"fields": missing})


@customers_bp.route("/customers", methods=["GET"])
@role_required("manage_customers")
def list_customers():
    rows = customer_service.list_customers(request.args.get("q"))
    return api_response([customer_to_dict(c) for c in rows])


@customers_bp.route("/customers", methods=["POST"])
@role_required("manage_customers")
def create_customer():
    payload = json_body()
    _required(payload, "name", "email")
    customer = customer_service.register_customer(
        payload["name"].strip(),
        payload["email"],
        phone=payload.get("phone"),
        customer_type=payload.get("customer_type") or "B2C",
        company_name=payload.get("company_name"),
        npwp=payload.get("npwp"),
    )
    return api_response(customer_to_dict(customer, detailed=True), 201)


@customers_bp.route("/customers/<int:customer_id>", methods=["GET"])
@role_required("manage_customers")
def detail(customer_id: int):
    return api_response(customer_to_dict(customer_service.get_customer(customer_id), detailed=True))


@customers_bp.route("/customers/<int:customer_id>/company", methods=["PUT"])
@role_required("manage_customers")
def set_company(customer_id: int):
    payload = json_body()
    _required(payload, "name")
    company = customer_service.set_company(
        customer_id, payload["name"].strip(), payload.get("npwp"), payload.get("address")
    )
    return api_response(company_to_dict(company))


@customers_bp.route("/customers/<int:customer_id>/addresses", methods=["POST"])
@role_required("manage_customers")
def add_address(customer_id: int):
    payload = json_body()
    _required(payload, "address", "city")
    address = customer_service.add_address(
        customer_id,
        payload["address"].strip(),
        payload["city"].strip(),
        province=payload.get("province"),
        postal_code=payload.get("postal_code"),
        is_default=bool(payload.get("is_default")),
    )
    return api_response(address_to_dict(address), 201)


@customers_bp.route("/customers/<int:customer_id>/history", methods=["GET"])
@role_required("manage_customers")
def history(customer_id: int):
    data = get_customer_history(customer_id, limit=request.args.get("limit", 50, type=int))
    return api_response(
        {
            "customer": customer_to_dict(data["customer"], detailed=True),
            "communications": [communication_to_dict(c) for c in data["communications"]],
            "follow_ups": [follow_up_to_dict(f) for f in data["follow_ups"]],
            "next_follow_up": (
                follow_up_to_dict(data["next_follow_up"]) if data["next_follow_up"] else None
            ),
        }
    )


@customers_bp.route("/customers/<int:customer_id>/messages", methods=["POST"])
@role_required("manage_follow_ups")
def send_message(customer_id: int):
    """Send a templated WhatsApp/e-mail message; the outcome is always logged."""
    data = TemplateMessage.from_payload(json_body())
    entry = send_template_message(
        customer_id,
        data.template,
        data.parameters,
        channel=data.channel,
        whatsapp_config=current_app.config["WHATSAPP_CONFIG"],
        email_config=current_app.config["EMAIL_CONFIG"],
        quotation_id=data.quotation_id,
        order_id=data.order_id,
        admin_user_id=get_current_user().id,
    )
    return api_response(communication_to_dict(entry), 201)


@customers_bp.route("/communications", methods=["POST"])
@role_required("manage_customers")
def create_communication():
    data = CommunicationCreate.from_payload(
        json_body(),
        VALID_COMMUNICATION_TYPES,
        VALID_COMMUNICATION_DIRECTIONS,
        VALID_COMMUNICATION_STATUSES,
    )
    entry = log_communication(
        data.customer_id,
        data.communication_type,
        data.direction,
        data.content,
        status=data.status,
        quotation_id=data.quotation_id,
        order_id=data.order_id,
        admin_user_id=get_current_user().id,
    )
    return api_response(communication_to_dict(entry), 201)
