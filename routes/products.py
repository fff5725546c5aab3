"""Catalog routes: products, pricing tiers, stock, brands and categories."""

from flask import Blueprint, current_app, request

from errors import NotFound, ValidationError
from schemas import NamedInput, ProductInput, StockAdjustment
from serializers import named_to_dict, product_to_dict
from services import catalog
from services.auth import get_current_user, role_required
from services.pricing import compute_totals, quote_line
from utils import api_response, json_body, query_flag

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.route("/products", methods=["GET"])
def list_products():
    include_inactive = query_flag("include_inactive") and get_current_user() is not None
    products = catalog.list_products(
        search=request.args.get("q"),
        brand_id=request.args.get("brand_id", type=int),
        category_id=request.args.get("category_id", type=int),
        active_only=not include_inactive,
        featured_only=query_flag("featured"),
    )
    return api_response([product_to_dict(p) for p in products])


@products_bp.route("/products/low-stock", methods=["GET"])
@role_required("manage_catalog")
def low_stock():
    default = current_app.config["COMMERCE_CONFIG"].low_stock_threshold
    threshold = request.args.get("threshold", default=default, type=int)
    return api_response([product_to_dict(p) for p in catalog.list_low_stock(threshold)])


@products_bp.route("/products/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    product = catalog.get_product(product_id)
    if not product.is_active and get_current_user() is None:
        raise NotFound("Product", product_id)
    return api_response(product_to_dict(product))


@products_bp.route("/products/<int:product_id>/price", methods=["GET"])
def price_quote(product_id: int):
    """Unit price, line total and PPN for ``?quantity=N``."""
    product = catalog.get_product(product_id)
    if not product.is_active:
        raise NotFound("Product", product_id)
    quantity = request.args.get("quantity", type=int)
    if quantity is None:
        raise ValidationError("quantity query parameter is required")
    unit_price, line_total = quote_line(product, quantity)
    subtotal, tax, total = compute_totals(line_total, current_app.config["COMMERCE_CONFIG"].ppn_rate)
    return api_response(
        {
            "product_id": product.id,
            "quantity": quantity,
            "unit_price": unit_price,
            "subtotal": subtotal,
            "tax_amount": tax,
            "total_amount": total,
        }
    )


@products_bp.route("/products", methods=["POST"])
@role_required("manage_catalog")
def create_product():
    product = catalog.create_product(ProductInput.from_payload(json_body()))
    return api_response(product_to_dict(product), 201)


@products_bp.route("/products/<int:product_id>", methods=["PATCH"])
@role_required("manage_catalog")
def update_product(product_id: int):
    data = ProductInput.from_payload(json_body(), partial=True)
    return api_response(product_to_dict(catalog.update_product(product_id, data)))


@products_bp.route("/products/<int:product_id>", methods=["DELETE"])
@role_required("manage_catalog")
def delete_product(product_id: int):
    catalog.delete_product(product_id)
    return api_response({"deleted": product_id})


@products_bp.route("/products/<int:product_id>/stock", methods=["POST"])
@role_required("manage_catalog")
def adjust_stock(product_id: int):
    data = StockAdjustment.from_payload(json_body())
    product = catalog.adjust_stock(product_id, data.delta, data.reason)
    return api_response(product_to_dict(product))


@products_bp.route("/brands", methods=["GET"])
def list_brands():
    return api_response([named_to_dict(b) for b in catalog.list_brands()])


@products_bp.route("/brands", methods=["POST"])
@role_required("manage_catalog")
def create_brand():
    brand = catalog.create_brand(NamedInput.from_payload(json_body()))
    return api_response(named_to_dict(brand), 201)


@products_bp.route("/categories", methods=["GET"])
def list_categories():
    return api_response([named_to_dict(c) for c in catalog.list_categories()])


@products_bp.route("/categories", methods=["POST"])
@role_required("manage_catalog")
def create_category():
    category = catalog.create_category(NamedInput.from_payload(json_body()))
    return api_response(named_to_dict(category), 201)
