"""Typed request bodies.

Each struct is built with ``from_payload(dict)``, which checks every field it
reads and raises ``ValidationError`` listing the offending fields.  Routes
never probe ``request.json`` directly.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from errors import ValidationError
from utils import parse_date, parse_datetime


class _Reader:
    """Collects field errors while reading a JSON object."""

    def __init__(self, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        self.payload = payload
        self.errors: dict[str, str] = {}

    def _missing(self, name: str, required: bool):
        if required:
            self.errors[name] = "is required"
        return None

    def string(self, name: str, *, required: bool = False, max_length: int = 0) -> Optional[str]:
        value = self.payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return self._missing(name, required)
        if not isinstance(value, str):
            self.errors[name] = "must be a string"
            return None
        value = value.strip()
        if max_length and len(value) > max_length:
            self.errors[name] = f"must be at most {max_length} characters"
        return value

    def integer(
        self, name: str, *, required: bool = False, minimum: Optional[int] = None
    ) -> Optional[int]:
        value = self.payload.get(name)
        if value is None:
            return self._missing(name, required)
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            self.errors[name] = "must be an integer"
            return None
        if minimum is not None and value < minimum:
            self.errors[name] = f"must be at least {minimum}"
        return value

    def boolean(self, name: str, *, required: bool = False, default: Optional[bool] = None):
        value = self.payload.get(name)
        if value is None:
            if required:
                self.errors[name] = "is required"
            return default
        if not isinstance(value, bool):
            self.errors[name] = "must be true or false"
            return default
        return value

    def choice(self, name: str, allowed, *, required: bool = False) -> Optional[str]:
        value = self.string(name, required=required)
        if value is not None and value not in allowed:
            self.errors[name] = f"must be one of {', '.join(sorted(allowed))}"
        return value

    def date(self, name: str, *, required: bool = False) -> Optional[datetime.date]:
        raw = self.payload.get(name)
        if raw in (None, ""):
            return self._missing(name, required)
        value = parse_date(raw) if isinstance(raw, str) else None
        if value is None:
            self.errors[name] = "must be a date (YYYY-MM-DD)"
        return value

    def timestamp(self, name: str, *, required: bool = False) -> Optional[datetime.datetime]:
        raw = self.payload.get(name)
        if raw in (None, ""):
            return self._missing(name, required)
        value = parse_datetime(raw) if isinstance(raw, str) else None
        if value is None:
            self.errors[name] = "must be an ISO-8601 timestamp"
        return value

    def objects(self, name: str, *, required: bool = False) -> list[dict]:
        value = self.payload.get(name)
        if value is None:
            self._missing(name, required)
            return []
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            self.errors[name] = "must be a list of objects"
            return []
        return value

    def nested(self, prefix: str, reader: "_Reader") -> None:
        for key, message in reader.errors.items():
            self.errors[f"{prefix}.{key}"] = message

    def done(self) -> None:
        if self.errors:
            raise ValidationError("Invalid request body", {"fields": self.errors})


# ---------------------------------------------------------------------------
# Quotations / orders / invoices
# ---------------------------------------------------------------------------

@dataclass
class LineItemInput:
    product_id: int
    quantity: int

    @classmethod
    def read(cls, reader: _Reader) -> "LineItemInput":
        return cls(
            product_id=reader.integer("product_id", required=True, minimum=1),
            quantity=reader.integer("quantity", required=True, minimum=1),
        )


def _line_items(reader: _Reader, name: str = "items") -> list[LineItemInput]:
    items = []
    for index, raw in enumerate(reader.objects(name, required=True)):
        sub = _Reader(raw)
        items.append(LineItemInput.read(sub))
        reader.nested(f"{name}[{index}]", sub)
    if name not in reader.errors and not items:
        reader.errors[name] = "must contain at least one item"
    return items


@dataclass
class QuotationCreate:
    customer_id: int
    items: list[LineItemInput]
    shipping_address_id: Optional[int] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "QuotationCreate":
        r = _Reader(payload)
        obj = cls(
            customer_id=r.integer("customer_id", required=True, minimum=1),
            items=_line_items(r),
            shipping_address_id=r.integer("shipping_address_id", minimum=1),
            notes=r.string("notes", max_length=2000),
        )
        r.done()
        return obj


@dataclass
class QuotationRequest:
    """Storefront quotation request; items default to the cart."""

    items: list[LineItemInput] = field(default_factory=list)
    shipping_address_id: Optional[int] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "QuotationRequest":
        r = _Reader(payload)
        items = _line_items(r) if r.payload.get("items") is not None else []
        obj = cls(
            items=items,
            shipping_address_id=r.integer("shipping_address_id", minimum=1),
            notes=r.string("notes", max_length=2000),
        )
        r.done()
        return obj


@dataclass
class StatusChange:
    status: str
    notes: Optional[str] = None
    tracking_number: Optional[str] = None

    @classmethod
    def from_payload(cls, payload, allowed) -> "StatusChange":
        r = _Reader(payload)
        obj = cls(
            status=r.choice("status", allowed, required=True),
            notes=r.string("notes", max_length=2000),
            tracking_number=r.string("tracking_number", max_length=80),
        )
        r.done()
        return obj


@dataclass
class QuotationResponse:
    accept: bool
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "QuotationResponse":
        r = _Reader(payload)
        obj = cls(accept=r.boolean("accept", required=True), notes=r.string("notes"))
        r.done()
        return obj


@dataclass
class TrackingInput:
    tracking_number: str

    @classmethod
    def from_payload(cls, payload) -> "TrackingInput":
        r = _Reader(payload)
        obj = cls(tracking_number=r.string("tracking_number", required=True, max_length=80))
        r.done()
        return obj


@dataclass
class InvoiceCreate:
    due_date: Optional[datetime.date] = None

    @classmethod
    def from_payload(cls, payload) -> "InvoiceCreate":
        r = _Reader(payload)
        obj = cls(due_date=r.date("due_date"))
        r.done()
        return obj


@dataclass
class PaymentInput:
    payment_method: str
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload, allowed) -> "PaymentInput":
        r = _Reader(payload)
        obj = cls(
            payment_method=r.choice("payment_method", allowed, required=True),
            notes=r.string("notes", max_length=2000),
        )
        r.done()
        return obj


# ---------------------------------------------------------------------------
# Follow-ups / communications
# ---------------------------------------------------------------------------

@dataclass
class FollowUpCreate:
    customer_id: int
    follow_up_type: str
    scheduled_at: datetime.datetime
    quotation_id: Optional[int] = None
    order_id: Optional[int] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload, allowed) -> "FollowUpCreate":
        r = _Reader(payload)
        obj = cls(
            customer_id=r.integer("customer_id", required=True, minimum=1),
            follow_up_type=r.choice("type", allowed, required=True),
            scheduled_at=r.timestamp("scheduled_at", required=True),
            quotation_id=r.integer("quotation_id", minimum=1),
            order_id=r.integer("order_id", minimum=1),
            notes=r.string("notes", max_length=2000),
        )
        r.done()
        return obj


@dataclass
class NotesInput:
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "NotesInput":
        r = _Reader(payload or {})
        obj = cls(notes=r.string("notes", max_length=2000))
        r.done()
        return obj


@dataclass
class CommunicationCreate:
    customer_id: int
    communication_type: str
    direction: str
    content: str
    status: str = "SENT"
    quotation_id: Optional[int] = None
    order_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload, types, directions, statuses) -> "CommunicationCreate":
        r = _Reader(payload)
        obj = cls(
            customer_id=r.integer("customer_id", required=True, minimum=1),
            communication_type=r.choice("type", types, required=True),
            direction=r.choice("direction", directions, required=True),
            content=r.string("content", required=True),
            status=r.choice("status", statuses) or "SENT",
            quotation_id=r.integer("quotation_id", minimum=1),
            order_id=r.integer("order_id", minimum=1),
        )
        r.done()
        return obj


@dataclass
class TemplateMessage:
    template: str
    parameters: list[str]
    channel: str = "WHATSAPP"
    quotation_id: Optional[int] = None
    order_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload) -> "TemplateMessage":
        r = _Reader(payload)
        template = r.string("template", required=True)
        raw_params = payload.get("parameters") or []
        if not isinstance(raw_params, list) or not all(
            isinstance(p, (str, int)) and not isinstance(p, bool) for p in raw_params
        ):
            r.errors["parameters"] = "must be a list of strings"
            raw_params = []
        obj = cls(
            template=template,
            parameters=[str(p) for p in raw_params],
            channel=r.choice("channel", {"WHATSAPP", "EMAIL"}) or "WHATSAPP",
            quotation_id=r.integer("quotation_id", minimum=1),
            order_id=r.integer("order_id", minimum=1),
        )
        r.done()
        return obj


# ---------------------------------------------------------------------------
# Catalog / cart
# ---------------------------------------------------------------------------

@dataclass
class TierInput:
    min_quantity: int
    price_per_unit: int
    max_quantity: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "price_per_unit": self.price_per_unit,
        }


def _tiers(reader: _Reader) -> Optional[list[TierInput]]:
    if reader.payload.get("pricing_tiers") is None:
        return None
    tiers = []
    for index, raw in enumerate(reader.objects("pricing_tiers")):
        sub = _Reader(raw)
        tiers.append(
            TierInput(
                min_quantity=sub.integer("min_quantity", required=True, minimum=1),
                max_quantity=sub.integer("max_quantity", minimum=1),
                price_per_unit=sub.integer("price_per_unit", required=True, minimum=0),
            )
        )
        reader.nested(f"pricing_tiers[{index}]", sub)
    return tiers


@dataclass
class ProductInput:
    """Product create/update body.  ``None`` fields are left unchanged on update."""

    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[int] = None
    stock: Optional[int] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    brand_id: Optional[int] = None
    category_ids: Optional[list[int]] = None
    pricing_tiers: Optional[list[TierInput]] = None

    @classmethod
    def from_payload(cls, payload, *, partial: bool = False) -> "ProductInput":
        r = _Reader(payload)
        required = not partial
        category_ids = payload.get("category_ids")
        if category_ids is not None and (
            not isinstance(category_ids, list)
            or not all(isinstance(c, int) and not isinstance(c, bool) for c in category_ids)
        ):
            r.errors["category_ids"] = "must be a list of integers"
            category_ids = None
        obj = cls(
            sku=r.string("sku", required=required, max_length=60),
            name=r.string("name", required=required, max_length=160),
            description=r.string("description"),
            base_price=r.integer("base_price", required=required, minimum=0),
            stock=r.integer("stock", minimum=0),
            is_active=r.boolean("is_active"),
            is_featured=r.boolean("is_featured"),
            brand_id=r.integer("brand_id", minimum=1),
            category_ids=category_ids,
            pricing_tiers=_tiers(r),
        )
        r.done()
        return obj


@dataclass
class StockAdjustment:
    delta: int
    reason: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "StockAdjustment":
        r = _Reader(payload)
        obj = cls(delta=r.integer("delta", required=True), reason=r.string("reason"))
        if obj.delta == 0:
            r.errors["delta"] = "must not be zero"
        r.done()
        return obj


@dataclass
class NamedInput:
    """Brand or category body."""

    name: str
    slug: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "NamedInput":
        r = _Reader(payload)
        obj = cls(
            name=r.string("name", required=True, max_length=120),
            slug=r.string("slug", max_length=120),
        )
        r.done()
        return obj


@dataclass
class CartItemInput:
    product_id: int
    quantity: int

    @classmethod
    def from_payload(cls, payload) -> "CartItemInput":
        r = _Reader(payload)
        item = LineItemInput.read(r)
        r.done()
        return cls(product_id=item.product_id, quantity=item.quantity)


@dataclass
class QuantityInput:
    quantity: int

    @classmethod
    def from_payload(cls, payload) -> "QuantityInput":
        r = _Reader(payload)
        obj = cls(quantity=r.integer("quantity", required=True, minimum=1))
        r.done()
        return obj


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

@dataclass
class LoginInput:
    identifier: str
    password: str

    @classmethod
    def from_payload(cls, payload, identifier_field: str = "username") -> "LoginInput":
        r = _Reader(payload)
        obj = cls(
            identifier=r.string(identifier_field, required=True),
            password=r.string("password", required=True),
        )
        r.done()
        return obj
