"""Customer accounts, addresses and B2B company details."""

from __future__ import annotations

import logging
import re
from typing import Optional

from werkzeug.security import generate_password_hash

from extensions import atomic, db
from errors import NotFound, ValidationError
from models import CUSTOMER_TYPES, Address, Company, Customer
from services.notifications import normalize_phone

logger = logging.getLogger(__name__)

# 15 digits, usually written 01.234.567.8-901.000; 16-digit NIK-style ids are accepted too
_NPWP_DIGITS = (15, 16)


def normalize_npwp(raw: str) -> str:
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) not in _NPWP_DIGITS:
        raise ValidationError("NPWP must have 15 or 16 digits", {"npwp": raw})
    return digits


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer", customer_id)
    return customer


def register_customer(
    name: str,
    email: str,
    password: Optional[str] = None,
    *,
    phone: Optional[str] = None,
    customer_type: str = "B2C",
    company_name: Optional[str] = None,
    npwp: Optional[str] = None,
) -> Customer:
    """Create a customer; B2B customers may register their company at once."""
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Valid e-mail is required", {"email": email})
    if customer_type not in CUSTOMER_TYPES:
        raise ValidationError("Invalid customer type", {"customer_type": customer_type})
    if Customer.query.filter_by(email=email).first() is not None:
        raise ValidationError("E-mail is already registered", {"email": email})

    with atomic():
        customer = Customer(
            name=name,
            email=email,
            phone=phone,
            customer_type=customer_type,
            password_hash=generate_password_hash(password) if password else None,
        )
        db.session.add(customer)
        if customer_type == "B2B" and company_name:
            customer.company = Company(
                name=company_name,
                npwp=normalize_npwp(npwp) if npwp else None,
            )
    logger.info("Registered %s customer %s", customer_type, customer.id)
    return customer


def set_company(
    customer_id: int, name: str, npwp: Optional[str] = None, address: Optional[str] = None
) -> Company:
    """Create or update the company of a B2B customer."""
    with atomic():
        customer = get_customer(customer_id)
        if customer.customer_type != "B2B":
            raise ValidationError("Only B2B customers have a company")
        company = customer.company or Company(customer_id=customer.id)
        company.name = name
        company.npwp = normalize_npwp(npwp) if npwp else None
        company.address = address
        db.session.add(company)
    return company


def add_address(
    customer_id: int,
    address: str,
    city: str,
    *,
    province: Optional[str] = None,
    postal_code: Optional[str] = None,
    is_default: bool = False,
) -> Address:
    if not (address or "").strip() or not (city or "").strip():
        raise ValidationError("Address and city are required")
    with atomic():
        customer = get_customer(customer_id)
        if is_default or not customer.addresses:
            for existing in customer.addresses:
                existing.is_default = False
            is_default = True
        row = Address(
            customer_id=customer.id,
            address=address,
            city=city,
            province=province,
            postal_code=postal_code,
            is_default=is_default,
        )
        db.session.add(row)
    return row


def list_customers(search: Optional[str] = None) -> list[Customer]:
    query = Customer.query
    if search:
        term = search.strip()
        pattern = f"%{term}%"
        phone_pattern = f"%{normalize_phone(term) or term}%"
        query = query.filter(
            Customer.name.ilike(pattern)
            | Customer.email.ilike(pattern)
            | Customer.phone.ilike(phone_pattern)
        )
    return query.order_by(Customer.name.asc()).all()
