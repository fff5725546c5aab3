"""Order status and shipment tracking."""

from __future__ import annotations

import logging
from typing import Optional

from extensions import atomic
from errors import NotFound, PreconditionFailed, ValidationError
from models import Order
from services.transitions import ORDER_POLICY, apply_order_transition

logger = logging.getLogger(__name__)


def get_order(order_id: int, *, for_update: bool = False) -> Order:
    query = Order.query.filter_by(id=order_id)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if order is None:
        raise NotFound("Order", order_id)
    return order


def update_order_status(
    order_id: int,
    target: str,
    actor_id: int,
    notes: Optional[str] = None,
    tracking_number: Optional[str] = None,
) -> Order:
    """Apply a validated status change and log it in one transaction.

    A *tracking_number* supplied with the request is stored before the
    SHIPPED guard is evaluated.
    """
    with atomic():
        order = get_order(order_id, for_update=True)
        if tracking_number is not None and tracking_number.strip():
            order.tracking_number = tracking_number.strip()
        apply_order_transition(order, target, actor_id, notes)
    return order


def add_tracking_number(order_id: int, tracking_number: str, actor_id: int) -> Order:
    """Record a tracking number; a PROCESSING order is shipped with it."""
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValidationError("Valid tracking number is required")
    with atomic():
        order = get_order(order_id, for_update=True)
        if ORDER_POLICY.is_terminal(order.status):
            raise PreconditionFailed(
                f"Cannot change tracking number of a {order.status} order",
                {"order_id": order.id},
            )
        order.tracking_number = tracking_number
        if order.status == "PROCESSING":
            apply_order_transition(
                order,
                "SHIPPED",
                actor_id,
                f"Tracking number added: {tracking_number}",
            )
        else:
            logger.info("Order %s tracking number set to %s", order.id, tracking_number)
    return order
