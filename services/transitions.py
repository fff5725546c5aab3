"""Status transition policies for orders, invoices and quotations.

Each entity kind has a static table of allowed next states.  The
``apply_*`` helpers mutate the entity, add the matching status-log row and
leave committing to the caller so the change and its log land in the same
transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

from extensions import db
from errors import InvalidTransition, PreconditionFailed
from models import OrderStatusLog, QuotationStatusLog
from utils import utc_now

logger = logging.getLogger(__name__)


class StatusPolicy:
    """Finite allowed-transition table for one entity kind."""

    def __init__(self, entity: str, transitions: dict[str, frozenset]):
        self.entity = entity
        self.transitions = transitions

    @property
    def statuses(self) -> set[str]:
        return set(self.transitions)

    def allowed(self, current: str) -> frozenset:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed(current)

    def is_terminal(self, status: str) -> bool:
        return not self.allowed(status)

    def check(self, current: str, target: str) -> None:
        if not self.can_transition(current, target):
            raise InvalidTransition(self.entity, current, target)


ORDER_POLICY = StatusPolicy(
    "order",
    {
        "NEW": frozenset({"PROCESSING", "CANCELLED"}),
        "PROCESSING": frozenset({"SHIPPED", "CANCELLED"}),
        "SHIPPED": frozenset({"DELIVERED"}),
        "DELIVERED": frozenset(),
        "CANCELLED": frozenset(),
    },
)

INVOICE_POLICY = StatusPolicy(
    "invoice",
    {
        "PENDING": frozenset({"PAID", "CANCELLED"}),
        "PAID": frozenset(),
        "CANCELLED": frozenset(),
    },
)

QUOTATION_POLICY = StatusPolicy(
    "quotation",
    {
        "DRAFT": frozenset({"SENT", "REJECTED"}),
        "SENT": frozenset({"ACCEPTED", "REJECTED", "EXPIRED"}),
        "ACCEPTED": frozenset({"CONVERTED"}),
        "REJECTED": frozenset(),
        "EXPIRED": frozenset(),
        "CONVERTED": frozenset(),
    },
)


def apply_order_transition(
    order,
    target: str,
    actor_id: Optional[int],
    notes: Optional[str] = None,
):
    """Move *order* to *target* and append an ``OrderStatusLog`` row.

    SHIPPED needs a non-empty tracking number; SHIPPED and DELIVERED stamp
    ``shipped_at`` / ``delivered_at``.
    """
    current = order.status
    ORDER_POLICY.check(current, target)
    if target == "SHIPPED" and not (order.tracking_number or "").strip():
        raise PreconditionFailed(
            "A tracking number is required before an order can be shipped",
            {"order_id": order.id},
        )

    now = utc_now()
    order.status = target
    if target == "SHIPPED":
        order.shipped_at = now
    elif target == "DELIVERED":
        order.delivered_at = now

    db.session.add(
        OrderStatusLog(
            order_id=order.id,
            from_status=current,
            to_status=target,
            notes=notes,
            admin_user_id=actor_id,
            created_at=now,
        )
    )
    logger.info("Order %s: %s -> %s (actor=%s)", order.id, current, target, actor_id)
    return order


def apply_invoice_transition(invoice, target: str):
    """Move *invoice* to *target*; PAID stamps ``paid_at`` when unset."""
    INVOICE_POLICY.check(invoice.status, target)
    previous = invoice.status
    invoice.status = target
    if target == "PAID" and invoice.paid_at is None:
        invoice.paid_at = utc_now()
    logger.info("Invoice %s: %s -> %s", invoice.id, previous, target)
    return invoice


def apply_quotation_transition(
    quotation,
    target: str,
    actor_id: Optional[int] = None,
    notes: Optional[str] = None,
    customer_id: Optional[int] = None,
):
    """Move *quotation* to *target* and append a ``QuotationStatusLog`` row.

    *customer_id* identifies the actor when the customer responds from the
    storefront.
    """
    current = quotation.status
    QUOTATION_POLICY.check(current, target)
    quotation.status = target
    db.session.add(
        QuotationStatusLog(
            quotation_id=quotation.id,
            from_status=current,
            to_status=target,
            notes=notes,
            admin_user_id=actor_id,
            customer_id=customer_id,
        )
    )
    logger.info("Quotation %s: %s -> %s", quotation.id, current, target)
    return quotation
