"""Model -> JSON-ready dict conversion.

Money is emitted as integer minor units; timestamps as ISO-8601 UTC.
"""

from __future__ import annotations

from utils import isoformat


def admin_user_to_dict(user) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
    }


def company_to_dict(company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "npwp": company.npwp,
        "address": company.address,
    }


def address_to_dict(address) -> dict:
    return {
        "id": address.id,
        "address": address.address,
        "city": address.city,
        "province": address.province,
        "postal_code": address.postal_code,
        "is_default": address.is_default,
    }


def customer_to_dict(customer, detailed: bool = False) -> dict:
    data = {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "customer_type": customer.customer_type,
        "is_active": customer.is_active,
    }
    if detailed:
        data["company"] = company_to_dict(customer.company) if customer.company else None
        data["addresses"] = [address_to_dict(a) for a in customer.addresses]
    return data


def named_to_dict(row) -> dict:
    """Brand or category."""
    return {"id": row.id, "name": row.name, "slug": row.slug}


def tier_to_dict(tier) -> dict:
    return {
        "id": tier.id,
        "min_quantity": tier.min_quantity,
        "max_quantity": tier.max_quantity,
        "price_per_unit": tier.price_per_unit,
    }


def product_to_dict(product) -> dict:
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "description": product.description,
        "base_price": product.base_price,
        "stock": product.stock,
        "is_active": product.is_active,
        "is_featured": product.is_featured,
        "brand": named_to_dict(product.brand) if product.brand else None,
        "categories": [named_to_dict(c) for c in product.categories],
        "pricing_tiers": [tier_to_dict(t) for t in product.pricing_tiers if t.is_active],
    }


def _line_to_dict(item) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product.name if item.product else None,
        "sku": item.product.sku if item.product else None,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
        "total_price": item.total_price,
    }


def _status_log_to_dict(log) -> dict:
    return {
        "from_status": log.from_status,
        "to_status": log.to_status,
        "notes": log.notes,
        "admin_user_id": log.admin_user_id,
        "created_at": isoformat(log.created_at),
    }


def cart_to_dict(cart: dict) -> dict:
    return {
        "items": [
            {
                "id": line["item"].id,
                "product": product_to_dict(line["item"].product),
                "quantity": line["item"].quantity,
                "unit_price": line["unit_price"],
                "total_price": line["total_price"],
            }
            for line in cart["lines"]
        ],
        "subtotal": cart["subtotal"],
        "tax_amount": cart["tax_amount"],
        "total_amount": cart["total_amount"],
    }


def quotation_to_dict(quotation, detailed: bool = False) -> dict:
    data = {
        "id": quotation.id,
        "quotation_number": quotation.quotation_number,
        "customer_id": quotation.customer_id,
        "customer_name": quotation.customer.name if quotation.customer else None,
        "status": quotation.status,
        "valid_until": isoformat(quotation.valid_until),
        "subtotal": quotation.subtotal,
        "tax_amount": quotation.tax_amount,
        "total_amount": quotation.total_amount,
        "converted_order_id": quotation.converted_order_id,
        "created_at": isoformat(quotation.created_at),
    }
    if detailed:
        data["notes"] = quotation.notes
        data["shipping_address"] = (
            address_to_dict(quotation.shipping_address) if quotation.shipping_address else None
        )
        data["items"] = [_line_to_dict(i) for i in quotation.items]
        data["status_history"] = [_status_log_to_dict(log) for log in quotation.status_logs]
    return data


def order_to_dict(order, detailed: bool = False) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "quotation_id": order.quotation_id,
        "customer_id": order.customer_id,
        "customer_name": order.customer.name if order.customer else None,
        "status": order.status,
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "total_amount": order.total_amount,
        "tracking_number": order.tracking_number,
        "shipped_at": isoformat(order.shipped_at),
        "delivered_at": isoformat(order.delivered_at),
        "invoice_id": order.invoice.id if order.invoice else None,
        "created_at": isoformat(order.created_at),
    }
    if detailed:
        data["shipping_address"] = (
            address_to_dict(order.shipping_address) if order.shipping_address else None
        )
        data["items"] = [_line_to_dict(i) for i in order.items]
        data["status_history"] = [_status_log_to_dict(log) for log in order.status_logs]
    return data


def tax_invoice_to_dict(tax_invoice) -> dict:
    return {
        "id": tax_invoice.id,
        "tax_invoice_number": tax_invoice.tax_invoice_number,
        "invoice_id": tax_invoice.invoice_id,
        "company": company_to_dict(tax_invoice.company) if tax_invoice.company else None,
        "ppn_rate": str(tax_invoice.ppn_rate),
        "ppn_amount": tax_invoice.ppn_amount,
        "total_with_ppn": tax_invoice.total_with_ppn,
        "issued_at": isoformat(tax_invoice.issued_at),
        "issued_by_id": tax_invoice.issued_by_id,
    }


def invoice_to_dict(invoice, detailed: bool = False) -> dict:
    data = {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "order_id": invoice.order_id,
        "customer_id": invoice.customer_id,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount,
        "total_amount": invoice.total_amount,
        "status": invoice.status,
        "due_date": isoformat(invoice.due_date),
        "paid_at": isoformat(invoice.paid_at),
        "payment_method": invoice.payment_method,
        "tax_invoice_requested": bool(invoice.tax_invoice_requested),
        "created_at": isoformat(invoice.created_at),
    }
    if detailed:
        data["payment_notes"] = invoice.payment_notes
        data["items"] = [_line_to_dict(i) for i in invoice.items]
        data["tax_invoice"] = (
            tax_invoice_to_dict(invoice.tax_invoice) if invoice.tax_invoice else None
        )
    return data


def follow_up_to_dict(follow_up) -> dict:
    return {
        "id": follow_up.id,
        "customer_id": follow_up.customer_id,
        "customer_name": follow_up.customer.name if follow_up.customer else None,
        "quotation_id": follow_up.quotation_id,
        "order_id": follow_up.order_id,
        "type": follow_up.follow_up_type,
        "scheduled_at": isoformat(follow_up.scheduled_at),
        "status": follow_up.status,
        "notes": follow_up.notes,
        "completed_at": isoformat(follow_up.completed_at),
        "admin_user_id": follow_up.admin_user_id,
    }


def communication_to_dict(entry) -> dict:
    return {
        "id": entry.id,
        "customer_id": entry.customer_id,
        "quotation_id": entry.quotation_id,
        "order_id": entry.order_id,
        "type": entry.communication_type,
        "direction": entry.direction,
        "content": entry.content,
        "status": entry.status,
        "external_id": entry.external_id,
        "admin_user_id": entry.admin_user_id,
        "created_at": isoformat(entry.created_at),
    }
