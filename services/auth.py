"""Authentication and authorization services.

Admin users and storefront customers log in through separate endpoints and
are kept under separate session keys.  The decorators raise typed errors;
the JSON error handler turns them into 401/403 responses.
"""

from __future__ import annotations

import logging
import secrets
from functools import wraps
from typing import Optional

from flask import g, session
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from errors import Forbidden, Unauthorized, ValidationError
from models import ROLE_PERMISSIONS, VALID_ROLES, AdminUser, Customer

logger = logging.getLogger(__name__)

ADMIN_SESSION_KEY = "admin_user_id"
CUSTOMER_SESSION_KEY = "customer_id"


def load_session_actors() -> None:
    """Populate ``g.current_user`` / ``g.current_customer`` from the session."""
    g.current_user = None
    g.current_customer = None
    user_id = session.get(ADMIN_SESSION_KEY)
    if user_id:
        user = db.session.get(AdminUser, user_id)
        if user and user.is_active:
            g.current_user = user
        else:
            session.pop(ADMIN_SESSION_KEY, None)
    customer_id = session.get(CUSTOMER_SESSION_KEY)
    if customer_id:
        customer = db.session.get(Customer, customer_id)
        if customer and customer.is_active:
            g.current_customer = customer
        else:
            session.pop(CUSTOMER_SESSION_KEY, None)


def get_current_user() -> Optional[AdminUser]:
    """Return the currently logged-in admin user from ``flask.g``."""
    return getattr(g, "current_user", None)


def get_current_customer() -> Optional[Customer]:
    return getattr(g, "current_customer", None)


def has_permission(user: AdminUser, permission: str) -> bool:
    permissions = ROLE_PERMISSIONS.get(user.role, set())
    return permission in permissions or "manage_all" in permissions


def login_required(f):
    """Decorator that rejects requests without an admin session."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not get_current_user():
            raise Unauthorized("Authentication required")
        return f(*args, **kwargs)

    return decorated


def role_required(permission: str):
    """Decorator that checks the admin user has *permission* (or ``manage_all``)."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = get_current_user()
            if not user:
                raise Unauthorized("Authentication required")
            if not has_permission(user, permission):
                raise Forbidden(
                    "You do not have permission for this action",
                    {"permission": permission},
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def customer_required(f):
    """Decorator for storefront endpoints that need a logged-in customer."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not get_current_customer():
            raise Unauthorized("Customer login required")
        return f(*args, **kwargs)

    return decorated


def authenticate_admin(username: str, password: str) -> AdminUser:
    user = AdminUser.query.filter_by(username=username).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.warning("Failed admin login for %r", username)
        raise Unauthorized("Invalid username or password")
    session.clear()
    session[ADMIN_SESSION_KEY] = user.id
    g.current_user = user
    logger.info("Admin user %s logged in", user.username)
    return user


def authenticate_customer(email: str, password: str) -> Customer:
    customer = Customer.query.filter_by(email=email.lower()).first()
    if (
        not customer
        or not customer.is_active
        or not customer.password_hash
        or not check_password_hash(customer.password_hash, password)
    ):
        logger.warning("Failed customer login for %r", email)
        raise Unauthorized("Invalid e-mail or password")
    session.pop(CUSTOMER_SESSION_KEY, None)
    session[CUSTOMER_SESSION_KEY] = customer.id
    g.current_customer = customer
    return customer


def create_admin_user(username: str, password: str, role: str = "admin", **fields) -> AdminUser:
    if role not in VALID_ROLES:
        raise ValidationError("Invalid role", {"role": role, "allowed": VALID_ROLES})
    if AdminUser.query.filter_by(username=username).first():
        raise ValidationError("Username already exists", {"username": username})
    user = AdminUser(
        username=username,
        password_hash=generate_password_hash(password),
        role=role,
        **fields,
    )
    db.session.add(user)
    db.session.commit()
    return user


def ensure_admin_user():
    """Create a default admin user if the admin table is empty."""
    if AdminUser.query.count() == 0:
        password = secrets.token_urlsafe(12)
        create_admin_user("admin", password, "admin", name="Administrator")
        # Print to stdout only; credentials never go to persistent log files
        print(
            f"Created default admin user. Initial password: {password} "
            "(change immediately after first login)"
        )
