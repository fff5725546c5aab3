"""SQLAlchemy models, status vocabularies and role-permission mapping."""

from __future__ import annotations

from sqlalchemy.orm import validates

from extensions import db
from services.notifications import normalize_phone
from utils import utc_now

# ---------------------------------------------------------------------------
# Role / Permission mapping
# ---------------------------------------------------------------------------

ROLE_PERMISSIONS: dict[str, set[str]] = {
    "admin": {"manage_all"},
    "sales": {
        "manage_catalog",
        "manage_quotations",
        "manage_customers",
        "manage_follow_ups",
        "view_reports",
    },
    "warehouse": {"manage_orders", "manage_catalog"},
    "finance": {"manage_invoices", "manage_orders", "view_reports"},
}

VALID_ROLES = list(ROLE_PERMISSIONS.keys())

# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------

CUSTOMER_TYPES = {"B2C", "B2B"}

VALID_QUOTATION_STATUSES = {"DRAFT", "SENT", "ACCEPTED", "REJECTED", "EXPIRED", "CONVERTED"}
VALID_ORDER_STATUSES = {"NEW", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"}
VALID_INVOICE_STATUSES = {"PENDING", "PAID", "CANCELLED"}
VALID_PAYMENT_METHODS = {"bank_transfer", "cash", "check", "other"}

VALID_FOLLOW_UP_TYPES = {"QUOTATION_FOLLOW_UP", "ORDER_FOLLOW_UP", "PAYMENT_REMINDER", "GENERAL"}
VALID_FOLLOW_UP_STATUSES = {"PENDING", "COMPLETED", "CANCELLED"}

VALID_COMMUNICATION_TYPES = {"WHATSAPP", "EMAIL", "PHONE", "SMS"}
VALID_COMMUNICATION_DIRECTIONS = {"INBOUND", "OUTBOUND"}
VALID_COMMUNICATION_STATUSES = {"SENT", "DELIVERED", "READ", "FAILED"}


# ---------------------------------------------------------------------------
# Admin users
# ---------------------------------------------------------------------------

class AdminUser(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120))
    email = db.Column(db.String(120))
    role = db.Column(db.String(30), nullable=False, default="sales")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(40), index=True)
    customer_type = db.Column(db.String(10), nullable=False, default="B2C")
    password_hash = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    company = db.relationship(
        "Company", backref="customer", uselist=False, cascade="all, delete-orphan"
    )
    addresses = db.relationship("Address", backref="customer", cascade="all, delete-orphan")

    @validates("phone")
    def _normalise_phone(self, key, value):
        # Mobile numbers are stored as 62xxxxxxxxx so webhook senders match.
        if not value:
            return None
        return normalize_phone(value) or value.strip()


class Company(db.Model):
    """Registered business of a B2B customer; ``npwp`` is the Indonesian tax id."""
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customer.id"), unique=True, nullable=False
    )
    name = db.Column(db.String(160), nullable=False)
    npwp = db.Column(db.String(30))
    address = db.Column(db.String(255))


class Address(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    province = db.Column(db.String(120))
    postal_code = db.Column(db.String(10))
    is_default = db.Column(db.Boolean, default=False)


# ---------------------------------------------------------------------------
# Product catalog
# ---------------------------------------------------------------------------

product_categories = db.Table(
    "product_category",
    db.Column("product_id", db.Integer, db.ForeignKey("product.id"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("category.id"), primary_key=True),
)


class Brand(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)


class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)


class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(60), unique=True, nullable=False)
    name = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text)
    base_price = db.Column(db.BigInteger, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True)
    is_featured = db.Column(db.Boolean, default=False)
    brand_id = db.Column(db.Integer, db.ForeignKey("brand.id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    brand = db.relationship("Brand", backref="products")
    categories = db.relationship("Category", secondary=product_categories, backref="products")
    pricing_tiers = db.relationship(
        "PricingTier",
        backref="product",
        cascade="all, delete-orphan",
        order_by="PricingTier.min_quantity",
    )

    __table_args__ = (
        db.CheckConstraint("base_price >= 0", name="ck_product_base_price"),
        db.CheckConstraint("stock >= 0", name="ck_product_stock"),
    )


class PricingTier(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    min_quantity = db.Column(db.Integer, nullable=False)
    max_quantity = db.Column(db.Integer)
    price_per_unit = db.Column(db.BigInteger, nullable=False)
    is_active = db.Column(db.Boolean, default=True)


class CartItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=utc_now)

    product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_cart_item_product"),
    )


# ---------------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------------

class Quotation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(30), unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("address.id"))
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    valid_until = db.Column(db.DateTime, nullable=False)
    notes = db.Column(db.Text)
    subtotal = db.Column(db.BigInteger, nullable=False, default=0)
    tax_amount = db.Column(db.BigInteger, nullable=False, default=0)
    total_amount = db.Column(db.BigInteger, nullable=False, default=0)
    converted_order_id = db.Column(
        db.Integer,
        db.ForeignKey("order.id", use_alter=True, name="fk_quotation_converted_order"),
        unique=True,
    )
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    customer = db.relationship("Customer")
    shipping_address = db.relationship("Address")
    converted_order = db.relationship("Order", foreign_keys=[converted_order_id], post_update=True)
    items = db.relationship("QuotationItem", backref="quotation", cascade="all, delete-orphan")
    status_logs = db.relationship(
        "QuotationStatusLog",
        backref="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationStatusLog.id",
    )

    __table_args__ = (
        db.Index("ix_quotation_status", "status"),
        db.Index("ix_quotation_customer_id", "customer_id"),
    )


class QuotationItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotation.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    total_price = db.Column(db.BigInteger, nullable=False)

    product = db.relationship("Product")


class QuotationStatusLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotation.id"), nullable=False)
    from_status = db.Column(db.String(20))
    to_status = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text)
    admin_user_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"))
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    admin_user = db.relationship("AdminUser")


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(30), unique=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotation.id"))
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("address.id"))
    status = db.Column(db.String(20), nullable=False, default="NEW")
    subtotal = db.Column(db.BigInteger, nullable=False, default=0)
    tax_amount = db.Column(db.BigInteger, nullable=False, default=0)
    total_amount = db.Column(db.BigInteger, nullable=False, default=0)
    tracking_number = db.Column(db.String(80))
    shipped_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    customer = db.relationship("Customer")
    quotation = db.relationship("Quotation", foreign_keys=[quotation_id])
    shipping_address = db.relationship("Address")
    items = db.relationship("OrderItem", backref="order", cascade="all, delete-orphan")
    status_logs = db.relationship(
        "OrderStatusLog",
        backref="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusLog.id",
    )
    invoice = db.relationship("Invoice", back_populates="order", uselist=False)

    __table_args__ = (
        db.Index("ix_order_status", "status"),
        db.Index("ix_order_customer_id", "customer_id"),
    )


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    total_price = db.Column(db.BigInteger, nullable=False)

    product = db.relationship("Product")


class OrderStatusLog(db.Model):
    """Append-only audit trail of order status changes."""
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False)
    from_status = db.Column(db.String(20))
    to_status = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text)
    admin_user_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    admin_user = db.relationship("AdminUser")


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class Invoice(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(30), unique=True, nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    subtotal = db.Column(db.BigInteger, nullable=False, default=0)
    tax_amount = db.Column(db.BigInteger, nullable=False, default=0)
    total_amount = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    due_date = db.Column(db.Date, nullable=False)
    paid_at = db.Column(db.DateTime)
    payment_method = db.Column(db.String(30))
    payment_notes = db.Column(db.Text)
    tax_invoice_requested = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    order = db.relationship("Order", back_populates="invoice")
    customer = db.relationship("Customer")
    items = db.relationship("InvoiceItem", backref="invoice", cascade="all, delete-orphan")
    tax_invoice = db.relationship("TaxInvoice", back_populates="invoice", uselist=False)

    __table_args__ = (
        db.Index("ix_invoice_status", "status"),
        db.Index("ix_invoice_customer_id", "customer_id"),
    )


class InvoiceItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    total_price = db.Column(db.BigInteger, nullable=False)

    product = db.relationship("Product")


class TaxInvoice(db.Model):
    """PPN tax invoice (faktur pajak) issued for a paid B2B invoice."""
    id = db.Column(db.Integer, primary_key=True)
    tax_invoice_number = db.Column(db.String(30), unique=True, nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id"), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    company_id = db.Column(db.Integer, db.ForeignKey("company.id"), nullable=False)
    ppn_rate = db.Column(db.Numeric(5, 4, asdecimal=True), nullable=False)
    ppn_amount = db.Column(db.BigInteger, nullable=False)
    total_with_ppn = db.Column(db.BigInteger, nullable=False)
    issued_at = db.Column(db.DateTime, default=utc_now)
    issued_by_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"))

    invoice = db.relationship("Invoice", back_populates="tax_invoice")
    customer = db.relationship("Customer")
    company = db.relationship("Company")
    issued_by = db.relationship("AdminUser")


# ---------------------------------------------------------------------------
# Customer outreach
# ---------------------------------------------------------------------------

class FollowUp(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotation.id"))
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"))
    follow_up_type = db.Column(db.String(30), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    notes = db.Column(db.Text)
    completed_at = db.Column(db.DateTime)
    admin_user_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    customer = db.relationship("Customer")
    quotation = db.relationship("Quotation")
    order = db.relationship("Order")
    admin_user = db.relationship("AdminUser")

    __table_args__ = (
        db.Index("ix_follow_up_status_scheduled", "status", "scheduled_at"),
    )


class Communication(db.Model):
    """Append-only log of inbound and outbound customer messages."""
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotation.id"))
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"))
    communication_type = db.Column(db.String(20), nullable=False)
    direction = db.Column(db.String(10), nullable=False)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="SENT")
    external_id = db.Column(db.String(120))
    admin_user_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    customer = db.relationship("Customer")

    __table_args__ = (
        db.Index("ix_communication_customer_id", "customer_id"),
    )


# ---------------------------------------------------------------------------
# Numbering & audit
# ---------------------------------------------------------------------------

class NumberSequence(db.Model):
    """Sequence counters per entity type and scope (e.g. year or year-month)."""
    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(40), nullable=False)
    scope_key = db.Column(db.String(40), default="")
    last_value = db.Column(db.Integer, default=0)

    __table_args__ = (
        db.UniqueConstraint("entity_type", "scope_key", name="uq_number_sequence"),
    )


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    admin_user_id = db.Column(db.Integer, db.ForeignKey("admin_user.id"))
    action = db.Column(db.String(80), nullable=False)
    entity_type = db.Column(db.String(80), nullable=False)
    entity_id = db.Column(db.Integer)
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    admin_user = db.relationship("AdminUser")

    __table_args__ = (
        db.Index("ix_audit_log_created_at", "created_at"),
        db.Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
