"""Outbound message senders: WhatsApp Cloud API (HTTP) and e-mail (SMTP).

Senders know nothing about the database.  They raise ``NotificationError``
when delivery fails; ``services.communication`` decides what to record.
"""

from __future__ import annotations

import logging
import re
import smtplib
from email.message import EmailMessage
from socket import gaierror, timeout
from typing import Optional

import requests

from config_models import EmailConfig, WhatsAppConfig

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15

# Approved WhatsApp templates.  Bodies are kept here so the same text can be
# sent by e-mail and recorded in the communication log.
MESSAGE_TEMPLATES: dict[str, dict] = {
    "quotation_approved": {
        "subject": "Penawaran disetujui",
        "body": (
            "Halo {1}, penawaran Anda dengan nomor {2} telah disetujui. "
            "Total: {3}. Silakan konfirmasi untuk melanjutkan ke pesanan."
        ),
        "params": 3,
    },
    "quotation_follow_up": {
        "subject": "Penawaran sarung tangan Anda",
        "body": (
            "Halo {1}, kami ingin mengingatkan tentang penawaran sarung tangan "
            "Anda ({2}). Apakah Anda memerlukan informasi tambahan?"
        ),
        "params": 2,
    },
    "order_shipped": {
        "subject": "Pesanan dikirim",
        "body": (
            "Pesanan Anda {1} telah dikirim dengan nomor resi {2}. "
            "Terima kasih atas kepercayaan Anda!"
        ),
        "params": 2,
    },
    "payment_reminder": {
        "subject": "Pengingat pembayaran",
        "body": (
            "Halo {1}, invoice {2} dengan total {3} akan jatuh tempo pada {4}. "
            "Mohon segera lakukan pembayaran."
        ),
        "params": 4,
    },
}

_MOBILE_PREFIXES = (
    "811", "812", "813", "814", "815", "816", "817", "818", "819",
    "821", "822", "823", "831", "832", "833", "838",
    "852", "853", "855", "856", "857", "858",
    "877", "878",
    "881", "882", "883", "884", "885", "886", "887", "888",
    "895", "896", "897", "898", "899",
)


class NotificationError(Exception):
    """Exception raised when a message could not be delivered."""

    pass


def normalize_phone(phone: str) -> Optional[str]:
    """Return an Indonesian mobile number as ``62xxxxxxxxx`` or ``None``.

    Accepts ``08…``, ``62…`` and ``+62…`` with spaces, dashes or brackets.
    """
    cleaned = re.sub(r"[\s\-()]", "", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("0"):
        cleaned = "62" + cleaned[1:]
    if not cleaned.startswith("62") or not cleaned.isdigit():
        return None
    national = cleaned[2:]
    if not (9 <= len(national) <= 12) or not national.startswith(_MOBILE_PREFIXES):
        return None
    return cleaned


def render_template(template_name: str, parameters: list[str]) -> str:
    """Render a template body with positional parameters."""
    template = MESSAGE_TEMPLATES.get(template_name)
    if template is None:
        raise KeyError(template_name)
    if len(parameters) != template["params"]:
        raise ValueError(
            f"Template {template_name} takes {template['params']} parameter(s), "
            f"got {len(parameters)}"
        )
    body = template["body"]
    for index, value in enumerate(parameters, start=1):
        body = body.replace("{%d}" % index, str(value))
    return body


def send_whatsapp_template(
    config: WhatsAppConfig,
    phone: str,
    template_name: str,
    parameters: list[str],
) -> str:
    """Send an approved template through the WhatsApp Cloud API.

    Returns the provider message id.

    Raises:
        NotificationError: If the number is invalid, the channel is
            disabled or the API call fails.
    """
    if not config.enabled:
        raise NotificationError("WhatsApp channel is disabled")
    recipient = normalize_phone(phone)
    if recipient is None:
        raise NotificationError(f"Invalid Indonesian phone number: {phone}")

    payload = {
        "messaging_product": "whatsapp",
        "to": recipient,
        "type": "template",
        "template": {
            "name": template_name,
            "language": {"code": config.language_code},
        },
    }
    if parameters:
        payload["template"]["components"] = [
            {
                "type": "body",
                "parameters": [{"type": "text", "text": str(p)} for p in parameters],
            }
        ]

    url = f"{config.api_url.rstrip('/')}/{config.phone_number_id}/messages"
    try:
        logger.info("Sending WhatsApp template %s to %s", template_name, recipient)
        resp = requests.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {config.access_token}"},
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        logger.error("WhatsApp API request failed: %s", e)
        raise NotificationError(f"WhatsApp API request failed: {e}")
    except ValueError as e:
        logger.error("WhatsApp API returned invalid JSON: %s", e)
        raise NotificationError("WhatsApp API returned an invalid response")

    messages = data.get("messages") or []
    message_id = messages[0].get("id", "") if messages else ""
    logger.info("WhatsApp message accepted (id=%s)", message_id)
    return message_id


def send_email(
    config: EmailConfig,
    subject: str,
    recipient: str,
    body: str,
    cc: str = "",
) -> bool:
    """Send a plain-text e-mail.

    Returns:
        True if email was sent successfully.

    Raises:
        NotificationError: If email sending fails.
    """
    if not config.enabled:
        raise NotificationError("E-mail channel is disabled")
    if not recipient:
        raise NotificationError("Customer has no e-mail address")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = config.sender
    message["To"] = recipient
    cc = cc or config.operator_cc
    if cc:
        message["Cc"] = cc
    message.set_content(body)

    try:
        logger.info(f"Sending email to {recipient} with subject: {subject}")
        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=30) as server:
            server.starttls()
            if config.smtp_user:
                server.login(config.smtp_user, config.smtp_password)
            server.send_message(message)
        logger.info(f"Email sent successfully to {recipient}")
        return True

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed: {e}")
        raise NotificationError(f"Email authentication failed: {e}")

    except smtplib.SMTPRecipientsRefused as e:
        logger.error(f"Recipients refused: {e}")
        raise NotificationError(f"Email recipients refused: {e}")

    except smtplib.SMTPException as e:
        logger.error(f"SMTP error: {e}")
        raise NotificationError(f"Failed to send email: {e}")

    except (gaierror, timeout) as e:
        logger.error(f"Network error while sending email: {e}")
        raise NotificationError(f"Network error: could not connect to mail server: {e}")

    except OSError as e:
        logger.error(f"OS error while sending email: {e}")
        raise NotificationError(f"Failed to send email: {e}")
