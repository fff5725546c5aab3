"""Read-only sales, payment and outreach reports.

Every report is computed from the stored rows when it is requested.  Money
stays in integer minor units; rates are percentages rounded to one decimal.
Date filters are calendar days in the business timezone.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from datetime import timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func

from extensions import db
from errors import ValidationError
from models import (
    Category,
    Communication,
    Customer,
    FollowUp,
    Invoice,
    Order,
    OrderItem,
    Product,
    Quotation,
    VALID_COMMUNICATION_DIRECTIONS,
    VALID_COMMUNICATION_STATUSES,
    VALID_COMMUNICATION_TYPES,
    VALID_INVOICE_STATUSES,
)
from services import followup
from utils import business_day_bounds, business_today, isoformat, to_utc, utc_now

logger = logging.getLogger(__name__)

ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
PAYMENT_REPORT_STATUSES = VALID_INVOICE_STATUSES | {"OVERDUE"}


def _percent(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part * 100 / whole, 1)


def _average(total: int, count: int) -> int:
    if not count:
        return 0
    return int((Decimal(total) / count).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def day_range(
    date_from: Optional[datetime.date],
    date_to: Optional[datetime.date],
    utc_offset_hours: int,
) -> tuple[Optional[datetime.datetime], Optional[datetime.datetime]]:
    """UTC ``[start, end)`` covering whole business days; either side may be open."""
    tz = timezone(datetime.timedelta(hours=utc_offset_hours))
    start = end = None
    if date_from is not None:
        start = datetime.datetime.combine(
            date_from, datetime.time(), tzinfo=tz
        ).astimezone(timezone.utc)
    if date_to is not None:
        end = datetime.datetime.combine(
            date_to + datetime.timedelta(days=1), datetime.time(), tzinfo=tz
        ).astimezone(timezone.utc)
    if start is not None and end is not None and start >= end:
        raise ValidationError(
            "date_from must not be after date_to",
            {"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )
    return start, end


def _within(query, column, start, end):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query


def _local_month(value: datetime.datetime, utc_offset_hours: int) -> str:
    tz = timezone(datetime.timedelta(hours=utc_offset_hours))
    return to_utc(value).astimezone(tz).strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Sales and payments
# ---------------------------------------------------------------------------

def sales_report(
    date_from: Optional[datetime.date] = None,
    date_to: Optional[datetime.date] = None,
    *,
    customer: Optional[str] = None,
    category_id: Optional[int] = None,
    utc_offset_hours: int = 7,
) -> dict:
    """Orders in the period with totals.  Cancelled orders are not sales.

    *customer* matches part of the customer name; *category_id* keeps
    orders with at least one product in that category.
    """
    start, end = day_range(date_from, date_to, utc_offset_hours)
    query = _within(Order.query.filter(Order.status != "CANCELLED"), Order.created_at, start, end)
    if customer and customer.strip():
        query = query.join(Order.customer).filter(Customer.name.ilike(f"%{customer.strip()}%"))
    if category_id is not None:
        query = query.filter(
            Order.items.any(OrderItem.product.has(Product.categories.any(Category.id == category_id)))
        )
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    total_sales = sum(order.total_amount for order in orders)
    rows = []
    for order in orders:
        company = order.customer.company
        rows.append(
            {
                "id": order.id,
                "order_number": order.order_number,
                "customer_name": order.customer.name,
                "customer_type": order.customer.customer_type,
                "company_name": company.name if company else None,
                "status": order.status,
                "subtotal": order.subtotal,
                "tax_amount": order.tax_amount,
                "total_amount": order.total_amount,
                "created_at": isoformat(order.created_at),
                "items": [
                    {
                        "product_id": item.product_id,
                        "sku": item.product.sku,
                        "product_name": item.product.name,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                        "total_price": item.total_price,
                    }
                    for item in order.items
                ],
            }
        )
    return {
        "summary": {
            "total_sales": total_sales,
            "total_orders": len(orders),
            "average_order_value": _average(total_sales, len(orders)),
        },
        "orders": rows,
    }


def payment_report(
    date_from: Optional[datetime.date] = None,
    date_to: Optional[datetime.date] = None,
    *,
    customer: Optional[str] = None,
    status: Optional[str] = None,
    utc_offset_hours: int = 7,
    now: Optional[datetime.datetime] = None,
) -> dict:
    """Invoices issued in the period with paid, pending and overdue totals.

    A PENDING invoice past its due date is reported as OVERDUE; ``status``
    filters on that reported value.
    """
    if status is not None and status not in PAYMENT_REPORT_STATUSES:
        raise ValidationError(
            "Invalid status filter",
            {"status": status, "allowed": sorted(PAYMENT_REPORT_STATUSES)},
        )
    start, end = day_range(date_from, date_to, utc_offset_hours)
    query = _within(Invoice.query, Invoice.created_at, start, end)
    if customer and customer.strip():
        query = query.join(Invoice.customer).filter(Customer.name.ilike(f"%{customer.strip()}%"))
    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    today = business_today(utc_offset_hours, now)
    totals = {"total_invoiced": 0, "total_paid": 0, "total_pending": 0, "total_overdue": 0}
    overdue_count = 0
    rows = []
    for invoice in invoices:
        reported = invoice.status
        days_past_due = None
        if invoice.status == "PENDING" and invoice.due_date < today:
            reported = "OVERDUE"
            days_past_due = (today - invoice.due_date).days
        if status is not None and reported != status:
            continue

        if invoice.status != "CANCELLED":
            totals["total_invoiced"] += invoice.total_amount
        if invoice.status == "PAID":
            totals["total_paid"] += invoice.total_amount
        elif invoice.status == "PENDING":
            totals["total_pending"] += invoice.total_amount
        if reported == "OVERDUE":
            totals["total_overdue"] += invoice.total_amount
            overdue_count += 1

        company = invoice.customer.company
        rows.append(
            {
                "id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "order_number": invoice.order.order_number,
                "customer_name": invoice.customer.name,
                "customer_type": invoice.customer.customer_type,
                "company_name": company.name if company else None,
                "total_amount": invoice.total_amount,
                "status": reported,
                "due_date": isoformat(invoice.due_date),
                "paid_at": isoformat(invoice.paid_at),
                "payment_method": invoice.payment_method,
                "created_at": isoformat(invoice.created_at),
                "days_past_due": days_past_due,
            }
        )
    summary = dict(totals, overdue_count=overdue_count, invoice_count=len(rows))
    return {"summary": summary, "invoices": rows}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def analytics_range(
    period: str = "30d",
    date_from: Optional[datetime.date] = None,
    date_to: Optional[datetime.date] = None,
    *,
    utc_offset_hours: int = 7,
    now: Optional[datetime.datetime] = None,
) -> tuple[datetime.datetime, datetime.datetime]:
    """Resolve ``7d|30d|90d|1y`` (ending now) or ``custom`` (both dates required)."""
    if period == "custom":
        if date_from is None or date_to is None:
            raise ValidationError("A custom period needs date_from and date_to")
        return day_range(date_from, date_to, utc_offset_hours)
    if period not in ANALYTICS_PERIODS:
        raise ValidationError(
            "Invalid period",
            {"period": period, "allowed": sorted(ANALYTICS_PERIODS) + ["custom"]},
        )
    end = to_utc(now or utc_now())
    return end - datetime.timedelta(days=ANALYTICS_PERIODS[period]), end


def analytics(
    period: str = "30d",
    date_from: Optional[datetime.date] = None,
    date_to: Optional[datetime.date] = None,
    *,
    limit: int = 5,
    utc_offset_hours: int = 7,
    now: Optional[datetime.datetime] = None,
) -> dict:
    """Revenue, quotation conversion, customer and product performance."""
    start, end = analytics_range(
        period, date_from, date_to, utc_offset_hours=utc_offset_hours, now=now
    )
    orders = (
        _within(Order.query.filter(Order.status != "CANCELLED"), Order.created_at, start, end)
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
    quotations = _within(Quotation.query, Quotation.created_at, start, end).all()
    new_customers = _within(Customer.query, Customer.created_at, start, end).count()
    collected = (
        _within(
            db.session.query(func.coalesce(func.sum(Invoice.total_amount), 0)).filter(
                Invoice.status == "PAID"
            ),
            Invoice.paid_at,
            start,
            end,
        ).scalar()
    )

    logger.debug("Analytics %s: %d orders, %d quotations", period, len(orders), len(quotations))
    total_revenue = sum(order.total_amount for order in orders)
    converted = sum(1 for q in quotations if q.status == "CONVERTED")

    monthly = defaultdict(lambda: {"revenue": 0, "orders": 0})
    by_customer = {}
    by_product = {}
    segments = {
        kind: {"customers": set(), "orders": 0, "revenue": 0} for kind in ("B2B", "B2C")
    }
    for order in orders:
        bucket = monthly[_local_month(order.created_at, utc_offset_hours)]
        bucket["revenue"] += order.total_amount
        bucket["orders"] += 1

        customer = order.customer
        stats = by_customer.setdefault(
            customer.id,
            {
                "customer_id": customer.id,
                "name": customer.name,
                "customer_type": customer.customer_type,
                "orders": 0,
                "revenue": 0,
            },
        )
        stats["orders"] += 1
        stats["revenue"] += order.total_amount

        segment = segments.setdefault(
            customer.customer_type, {"customers": set(), "orders": 0, "revenue": 0}
        )
        segment["customers"].add(customer.id)
        segment["orders"] += 1
        segment["revenue"] += order.total_amount

        for item in order.items:
            product = by_product.setdefault(
                item.product_id,
                {
                    "product_id": item.product_id,
                    "sku": item.product.sku,
                    "name": item.product.name,
                    "quantity": 0,
                    "revenue": 0,
                    "orders": 0,
                },
            )
            product["quantity"] += item.quantity
            product["revenue"] += item.total_price
            product["orders"] += 1

    ordering_customers = len(by_customer)
    repeat_customers = sum(1 for stats in by_customer.values() if stats["orders"] > 1)
    for stats in by_customer.values():
        stats["average_order_value"] = _average(stats["revenue"], stats["orders"])

    def top(rows):
        return sorted(rows, key=lambda r: (-r["revenue"], r["name"]))[:limit]

    return {
        "period": {"start": isoformat(start), "end": isoformat(end)},
        "overview": {
            "total_revenue": total_revenue,
            "total_orders": len(orders),
            "average_order_value": _average(total_revenue, len(orders)),
            "collected_payments": collected,
            "new_customers": new_customers,
        },
        "conversion": {
            "total_quotations": len(quotations),
            "converted_quotations": converted,
            "conversion_rate": _percent(converted, len(quotations)),
        },
        "customers": {
            "ordering_customers": ordering_customers,
            "repeat_customers": repeat_customers,
            "repeat_rate": _percent(repeat_customers, ordering_customers),
            "segmentation": {
                kind: {
                    "customers": len(seg["customers"]),
                    "orders": seg["orders"],
                    "revenue": seg["revenue"],
                    "average_order_value": _average(seg["revenue"], seg["orders"]),
                }
                for kind, seg in sorted(segments.items())
            },
            "top": top(by_customer.values()),
        },
        "products": {"top": top(by_product.values())},
        "monthly_revenue": [
            {"month": month, **values} for month, values in sorted(monthly.items())
        ],
    }


# ---------------------------------------------------------------------------
# Communications and follow-ups
# ---------------------------------------------------------------------------

def _grouped_counts(column, filters, vocabulary) -> dict[str, int]:
    counts = {key: 0 for key in sorted(vocabulary)}
    rows = (
        db.session.query(column, func.count(Communication.id))
        .filter(*filters)
        .group_by(column)
        .all()
    )
    for key, count in rows:
        counts[key] = count
    return counts


def communication_metrics(
    date_from: Optional[datetime.date] = None,
    date_to: Optional[datetime.date] = None,
    *,
    admin_user_id: Optional[int] = None,
    utc_offset_hours: int = 7,
) -> dict:
    """Message counts and delivery rates, plus follow-up effectiveness.

    With *admin_user_id* only that admin's messages and follow-ups count.
    Delivery and failure rates are over outbound messages.
    """
    start, end = day_range(date_from, date_to, utc_offset_hours)
    filters = []
    if start is not None:
        filters.append(Communication.created_at >= start)
    if end is not None:
        filters.append(Communication.created_at < end)
    if admin_user_id is not None:
        filters.append(Communication.admin_user_id == admin_user_id)

    by_type = _grouped_counts(Communication.communication_type, filters, VALID_COMMUNICATION_TYPES)
    by_direction = _grouped_counts(Communication.direction, filters, VALID_COMMUNICATION_DIRECTIONS)
    outbound_status = _grouped_counts(
        Communication.status,
        filters + [Communication.direction == "OUTBOUND"],
        VALID_COMMUNICATION_STATUSES,
    )
    outbound = by_direction["OUTBOUND"]
    delivered = outbound_status["DELIVERED"] + outbound_status["READ"]

    follow_ups = _within(FollowUp.query, FollowUp.created_at, start, end)
    if admin_user_id is not None:
        follow_ups = follow_ups.filter(FollowUp.admin_user_id == admin_user_id)
    follow_ups = follow_ups.all()
    completed = sum(1 for f in follow_ups if f.status == "COMPLETED")
    won = sum(
        1
        for f in follow_ups
        if f.quotation is not None and f.quotation.status in ("ACCEPTED", "CONVERTED")
    )

    return {
        "total_communications": sum(by_type.values()),
        "by_type": by_type,
        "by_direction": by_direction,
        "outbound_by_status": outbound_status,
        "delivery_rate": _percent(delivered, outbound),
        "read_rate": _percent(outbound_status["READ"], outbound),
        "failure_rate": _percent(outbound_status["FAILED"], outbound),
        "follow_up_effectiveness": {
            "total_follow_ups": len(follow_ups),
            "completed_follow_ups": completed,
            "completion_rate": _percent(completed, len(follow_ups)),
            "quotations_won": won,
            "conversion_rate": _percent(won, len(follow_ups)),
        },
    }


def follow_up_metrics(
    owner_id: Optional[int] = None,
    *,
    utc_offset_hours: int = 7,
    now: Optional[datetime.datetime] = None,
) -> dict:
    """Workload counts for the follow-up panel, measured at *now*."""
    now = to_utc(now or utc_now())
    day_start, day_end = business_day_bounds(now, utc_offset_hours)

    base = FollowUp.query
    if owner_id is not None:
        base = base.filter(FollowUp.admin_user_id == owner_id)
    pending = base.filter(FollowUp.status == "PENDING")
    completed = base.filter(FollowUp.status == "COMPLETED").count()
    cancelled = base.filter(FollowUp.status == "CANCELLED").count()
    pending_count = pending.count()

    return {
        "pending": pending_count,
        "due_today": len(followup.list_today(owner_id, utc_offset_hours=utc_offset_hours, now=now)),
        "overdue": len(followup.list_overdue(owner_id, now=now)),
        "upcoming_week": pending.filter(
            FollowUp.scheduled_at >= day_end,
            FollowUp.scheduled_at < day_end + datetime.timedelta(days=7),
        ).count(),
        "completed": completed,
        "completed_today": base.filter(
            FollowUp.status == "COMPLETED",
            FollowUp.completed_at >= day_start,
            FollowUp.completed_at < day_end,
        ).count(),
        "cancelled": cancelled,
        "completion_rate": _percent(completed, pending_count + completed + cancelled),
    }
