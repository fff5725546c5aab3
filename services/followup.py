"""Follow-up scheduling.

Due work is computed when it is read: ``list_today`` and ``list_overdue``
compare ``scheduled_at`` with the clock at call time, there is no timer.
"""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from extensions import atomic, db
from errors import AlreadyResolved, NotFound, ValidationError
from models import Customer, FollowUp, Order, Quotation, VALID_FOLLOW_UP_TYPES
from utils import business_day_bounds, to_utc, utc_now

logger = logging.getLogger(__name__)


def schedule(
    customer_id: int,
    follow_up_type: str,
    scheduled_at: datetime.datetime,
    owner_id: int,
    *,
    quotation_id: Optional[int] = None,
    order_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> FollowUp:
    """Create a PENDING follow-up.  Repeated calls create repeated rows."""
    if follow_up_type not in VALID_FOLLOW_UP_TYPES:
        raise ValidationError(
            "Invalid follow-up type",
            {"type": follow_up_type, "allowed": sorted(VALID_FOLLOW_UP_TYPES)},
        )
    if db.session.get(Customer, customer_id) is None:
        raise NotFound("Customer", customer_id)
    if quotation_id is not None and db.session.get(Quotation, quotation_id) is None:
        raise NotFound("Quotation", quotation_id)
    if order_id is not None and db.session.get(Order, order_id) is None:
        raise NotFound("Order", order_id)

    with atomic():
        follow_up = FollowUp(
            customer_id=customer_id,
            quotation_id=quotation_id,
            order_id=order_id,
            follow_up_type=follow_up_type,
            scheduled_at=to_utc(scheduled_at),
            status="PENDING",
            notes=notes,
            admin_user_id=owner_id,
        )
        db.session.add(follow_up)
    logger.info("Scheduled %s follow-up for customer %s", follow_up_type, customer_id)
    return follow_up


def _pending(owner_id: Optional[int]):
    query = FollowUp.query.filter(FollowUp.status == "PENDING")
    if owner_id is not None:
        query = query.filter(FollowUp.admin_user_id == owner_id)
    return query


def list_today(
    owner_id: Optional[int] = None,
    *,
    utc_offset_hours: int = 7,
    now: Optional[datetime.datetime] = None,
) -> list[FollowUp]:
    """PENDING follow-ups scheduled within the current business day."""
    start, end = business_day_bounds(now or utc_now(), utc_offset_hours)
    return (
        _pending(owner_id)
        .filter(FollowUp.scheduled_at >= start, FollowUp.scheduled_at < end)
        .order_by(FollowUp.scheduled_at.asc())
        .all()
    )


def list_overdue(
    owner_id: Optional[int] = None,
    *,
    now: Optional[datetime.datetime] = None,
) -> list[FollowUp]:
    """PENDING follow-ups scheduled strictly before *now*."""
    return (
        _pending(owner_id)
        .filter(FollowUp.scheduled_at < to_utc(now or utc_now()))
        .order_by(FollowUp.scheduled_at.asc())
        .all()
    )


def _get_pending(follow_up_id: int) -> FollowUp:
    follow_up = FollowUp.query.filter_by(id=follow_up_id).with_for_update().first()
    if follow_up is None:
        raise NotFound("FollowUp", follow_up_id)
    if follow_up.status != "PENDING":
        raise AlreadyResolved(
            f"Follow-up is already {follow_up.status}",
            {"follow_up_id": follow_up.id, "status": follow_up.status},
        )
    return follow_up


def complete(follow_up_id: int, notes: Optional[str] = None, actor_id: Optional[int] = None) -> FollowUp:
    with atomic():
        follow_up = _get_pending(follow_up_id)
        follow_up.status = "COMPLETED"
        follow_up.completed_at = utc_now()
        if notes:
            follow_up.notes = notes
    logger.info("Follow-up %s completed by %s", follow_up_id, actor_id)
    return follow_up


def cancel(follow_up_id: int, notes: Optional[str] = None) -> FollowUp:
    with atomic():
        follow_up = _get_pending(follow_up_id)
        follow_up.status = "CANCELLED"
        if notes:
            follow_up.notes = notes
    logger.info("Follow-up %s cancelled", follow_up_id)
    return follow_up
