"""Inbound provider webhooks."""

import hmac
import logging

from flask import Blueprint, current_app, request

from errors import Forbidden
from extensions import csrf
from services.communication import handle_whatsapp_webhook
from utils import api_response, json_body

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")
csrf.exempt(webhooks_bp)


@webhooks_bp.route("/whatsapp", methods=["GET"])
def whatsapp_verify():
    """Subscription handshake: echo ``hub.challenge`` when the token matches."""
    config = current_app.config["WHATSAPP_CONFIG"]
    mode = request.args.get("hub.mode", "")
    token = request.args.get("hub.verify_token", "")
    challenge = request.args.get("hub.challenge", "")
    if (
        mode == "subscribe"
        and config.verify_token
        and hmac.compare_digest(token, config.verify_token)
    ):
        return challenge, 200, {"Content-Type": "text/plain"}
    logger.warning("WhatsApp webhook verification failed")
    raise Forbidden("Webhook verification failed")


@webhooks_bp.route("/whatsapp", methods=["POST"])
def whatsapp_event():
    stored = handle_whatsapp_webhook(json_body())
    return api_response({"stored": stored})
