"""Authentication routes for admin users and storefront customers."""

from flask import Blueprint, session
from flask_wtf.csrf import generate_csrf

from extensions import db, limiter
from schemas import LoginInput
from serializers import admin_user_to_dict, customer_to_dict
from services.audit import log_action
from services.auth import (
    ADMIN_SESSION_KEY,
    CUSTOMER_SESSION_KEY,
    authenticate_admin,
    authenticate_customer,
    customer_required,
    get_current_customer,
    get_current_user,
    login_required,
)
from services.customer import register_customer
from errors import ValidationError
from utils import api_response, json_body

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return api_response({"csrf_token": generate_csrf()})


@auth_bp.route("/admin/login", methods=["POST"])
@limiter.limit("5 per minute")
def admin_login():
    data = LoginInput.from_payload(json_body(), "username")
    user = authenticate_admin(data.identifier, data.password)
    session.permanent = True
    log_action("login", "admin_user", user.id, "user logged in")
    db.session.commit()
    return api_response(admin_user_to_dict(user))


@auth_bp.route("/admin/logout", methods=["POST"])
@login_required
def admin_logout():
    user = get_current_user()
    log_action("logout", "admin_user", user.id, "user logged out")
    db.session.commit()
    session.pop(ADMIN_SESSION_KEY, None)
    return api_response({"logged_out": True})


@auth_bp.route("/admin/me", methods=["GET"])
@login_required
def admin_me():
    return api_response(admin_user_to_dict(get_current_user()))


@auth_bp.route("/customer/register", methods=["POST"])
@limiter.limit("5 per minute")
def customer_register():
    payload = json_body()
    data = LoginInput.from_payload(payload, "email")
    if len(data.password) < 8:
        raise ValidationError("Password must have at least 8 characters")
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required", {"fields": {"name": "is required"}})
    customer = register_customer(
        name,
        data.identifier,
        data.password,
        phone=payload.get("phone"),
        customer_type=payload.get("customer_type") or "B2C",
        company_name=payload.get("company_name"),
        npwp=payload.get("npwp"),
    )
    session[CUSTOMER_SESSION_KEY] = customer.id
    return api_response(customer_to_dict(customer, detailed=True), 201)


@auth_bp.route("/customer/login", methods=["POST"])
@limiter.limit("5 per minute")
def customer_login():
    data = LoginInput.from_payload(json_body(), "email")
    customer = authenticate_customer(data.identifier, data.password)
    return api_response(customer_to_dict(customer, detailed=True))


@auth_bp.route("/customer/logout", methods=["POST"])
@customer_required
def customer_logout():
    session.pop(CUSTOMER_SESSION_KEY, None)
    return api_response({"logged_out": True})


@auth_bp.route("/customer/me", methods=["GET"])
@customer_required
def customer_me():
    return api_response(customer_to_dict(get_current_customer(), detailed=True))
