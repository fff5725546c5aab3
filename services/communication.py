"""Customer communication log and templated outreach."""

from __future__ import annotations

import logging
from typing import Optional

from config_models import EmailConfig, WhatsAppConfig
from extensions import atomic, db
from errors import NotFound, ValidationError
from models import (
    Communication,
    Customer,
    FollowUp,
    VALID_COMMUNICATION_DIRECTIONS,
    VALID_COMMUNICATION_STATUSES,
    VALID_COMMUNICATION_TYPES,
)
from services.notifications import (
    MESSAGE_TEMPLATES,
    NotificationError,
    normalize_phone,
    render_template,
    send_email,
    send_whatsapp_template,
)
from utils import utc_now

logger = logging.getLogger(__name__)

# WhatsApp delivery receipts -> communication status
_WHATSAPP_STATUS_MAP = {
    "sent": "SENT",
    "delivered": "DELIVERED",
    "read": "READ",
    "failed": "FAILED",
}


def log_communication(
    customer_id: int,
    communication_type: str,
    direction: str,
    content: str,
    *,
    status: str = "SENT",
    quotation_id: Optional[int] = None,
    order_id: Optional[int] = None,
    external_id: Optional[str] = None,
    admin_user_id: Optional[int] = None,
) -> Communication:
    """Append a communication record.

    Content is never edited later; only the delivery status follows receipts.
    """
    if communication_type not in VALID_COMMUNICATION_TYPES:
        raise ValidationError("Invalid communication type", {"type": communication_type})
    if direction not in VALID_COMMUNICATION_DIRECTIONS:
        raise ValidationError("Invalid direction", {"direction": direction})
    if status not in VALID_COMMUNICATION_STATUSES:
        raise ValidationError("Invalid communication status", {"status": status})
    if not (content or "").strip():
        raise ValidationError("Content is required")
    if db.session.get(Customer, customer_id) is None:
        raise NotFound("Customer", customer_id)

    with atomic():
        entry = Communication(
            customer_id=customer_id,
            quotation_id=quotation_id,
            order_id=order_id,
            communication_type=communication_type,
            direction=direction,
            content=content.strip(),
            status=status,
            external_id=external_id,
            admin_user_id=admin_user_id,
        )
        db.session.add(entry)
    return entry


def get_customer_history(customer_id: int, limit: int = 50) -> dict:
    """Communications and follow-ups of a customer, newest first.

    ``next_follow_up`` is the earliest PENDING follow-up scheduled from now on.
    """
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer", customer_id)

    communications = (
        Communication.query.filter_by(customer_id=customer_id)
        .order_by(Communication.created_at.desc(), Communication.id.desc())
        .limit(limit)
        .all()
    )
    follow_ups = (
        FollowUp.query.filter_by(customer_id=customer_id)
        .order_by(FollowUp.scheduled_at.desc())
        .limit(limit)
        .all()
    )
    next_follow_up = (
        FollowUp.query.filter(
            FollowUp.customer_id == customer_id,
            FollowUp.status == "PENDING",
            FollowUp.scheduled_at >= utc_now(),
        )
        .order_by(FollowUp.scheduled_at.asc())
        .first()
    )
    return {
        "customer": customer,
        "communications": communications,
        "follow_ups": follow_ups,
        "next_follow_up": next_follow_up,
    }


def send_template_message(
    customer_id: int,
    template_name: str,
    parameters: list[str],
    *,
    channel: str = "WHATSAPP",
    whatsapp_config: WhatsAppConfig,
    email_config: EmailConfig,
    quotation_id: Optional[int] = None,
    order_id: Optional[int] = None,
    admin_user_id: Optional[int] = None,
) -> Communication:
    """Send a templated message and record the outcome.

    Delivery failures do not propagate: the attempt is stored as a FAILED
    communication instead.  Unknown templates and wrong parameter counts
    are caller errors and raise ``ValidationError``.
    """
    if template_name not in MESSAGE_TEMPLATES:
        raise ValidationError(
            "Unknown message template",
            {"template": template_name, "allowed": sorted(MESSAGE_TEMPLATES)},
        )
    if channel not in ("WHATSAPP", "EMAIL"):
        raise ValidationError("Templated messages go out by WHATSAPP or EMAIL", {"channel": channel})
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer", customer_id)
    try:
        body = render_template(template_name, parameters)
    except ValueError as e:
        raise ValidationError(str(e))

    external_id = None
    status = "SENT"
    content = body
    try:
        if channel == "WHATSAPP":
            external_id = send_whatsapp_template(
                whatsapp_config, customer.phone or "", template_name, parameters
            ) or None
        else:
            send_email(
                email_config,
                MESSAGE_TEMPLATES[template_name]["subject"],
                customer.email,
                body,
            )
    except NotificationError as e:
        logger.warning(
            "%s message %s to customer %s failed: %s",
            channel, template_name, customer_id, e,
        )
        status = "FAILED"
        content = f"{body}\n\n[delivery failed: {e}]"

    return log_communication(
        customer_id,
        channel,
        "OUTBOUND",
        content,
        status=status,
        quotation_id=quotation_id,
        order_id=order_id,
        external_id=external_id,
        admin_user_id=admin_user_id,
    )


def _find_customer_by_phone(raw_phone: str) -> Optional[Customer]:
    normalized = normalize_phone(raw_phone)
    if normalized is None:
        return None
    # Rows saved before phone normalisation may still hold local formats.
    candidates = {normalized, f"+{normalized}", f"0{normalized[2:]}"}
    return Customer.query.filter(Customer.phone.in_(candidates)).first()


def _objects(items) -> list[dict]:
    """The dict members of a webhook list; anything else is skipped."""
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _message_text(message: dict) -> str:
    text = message.get("text")
    if isinstance(text, dict):
        text = text.get("body")
    if isinstance(text, str) and text.strip():
        return text
    return "Media message"


def handle_whatsapp_webhook(payload: dict) -> int:
    """Record inbound WhatsApp messages and delivery receipts.

    Messages from unknown numbers are ignored, as are malformed entries.
    Returns the number of inbound messages stored.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    stored = 0
    for entry in _objects(payload.get("entry")):
        for change in _objects(entry.get("changes")):
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            for message in _objects(value.get("messages")):
                customer = _find_customer_by_phone(str(message.get("from") or ""))
                if customer is None:
                    logger.info("Ignoring WhatsApp message from unknown number")
                    continue
                log_communication(
                    customer.id,
                    "WHATSAPP",
                    "INBOUND",
                    _message_text(message),
                    status="DELIVERED",
                    external_id=message.get("id"),
                )
                stored += 1
            for receipt in _objects(value.get("statuses")):
                new_status = _WHATSAPP_STATUS_MAP.get(receipt.get("status"))
                if new_status and receipt.get("id"):
                    with atomic():
                        Communication.query.filter_by(external_id=str(receipt["id"])).update(
                            {"status": new_status}, synchronize_session=False
                        )
    return stored
