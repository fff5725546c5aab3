"""Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database.
"""

import os

import pytest

os.environ["DATABASE_URI"] = "sqlite://"  # In-memory database for tests
os.environ["APP_SECRET_KEY"] = "test-secret-key"

from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import (
    Address,
    AdminUser,
    Brand,
    Category,
    Company,
    Customer,
    PricingTier,
    Product,
)

TEST_PASSWORD = "testpassword"
CUSTOMER_PASSWORD = "customer-pass-1"


@pytest.fixture
def app():
    """Create application for testing."""
    application = create_app(
        {
            "TESTING": True,
            "WTF_CSRF_ENABLED": False,
            "RATELIMIT_ENABLED": False,
            "SESSION_COOKIE_SECURE": False,
        }
    )
    with application.app_context():
        admin = AdminUser.query.filter_by(username="admin").first()
        if admin:
            admin.password_hash = generate_password_hash(TEST_PASSWORD)
            db.session.commit()
    yield application


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def logged_in_client(client, app):
    """Create test client with logged-in admin session."""
    with app.app_context():
        user = AdminUser.query.filter_by(username="admin").first()
        with client.session_transaction() as sess:
            sess["admin_user_id"] = user.id
    return client


@pytest.fixture
def customer_client(app, sample_data):
    """Separate test client logged in as the B2B customer."""
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["customer_id"] = sample_data["customer_id"]
    return client


@pytest.fixture
def commerce_config(app):
    return app.config["COMMERCE_CONFIG"]


@pytest.fixture
def locale_config(app):
    return app.config["LOCALE_CONFIG"]


@pytest.fixture
def sample_data(app):
    """Create sample data for tests. Returns dict of IDs to avoid detached instance errors."""
    with app.app_context():
        admin = AdminUser.query.filter_by(username="admin").first()
        sales = AdminUser(
            username="sales1",
            password_hash=generate_password_hash(TEST_PASSWORD),
            name="Sales One",
            role="sales",
        )
        warehouse = AdminUser(
            username="gudang",
            password_hash=generate_password_hash(TEST_PASSWORD),
            name="Warehouse",
            role="warehouse",
        )
        db.session.add_all([sales, warehouse])

        customer = Customer(
            name="PT Sarung Tangan Jaya",
            email="buyer@stjaya.co.id",
            phone="081234567890",
            customer_type="B2B",
            password_hash=generate_password_hash(CUSTOMER_PASSWORD),
        )
        customer.company = Company(
            name="PT Sarung Tangan Jaya",
            npwp="012345678901000",
            address="Jl. Industri 5, Bekasi",
        )
        db.session.add(customer)

        retail = Customer(
            name="Budi Santoso",
            email="budi@example.com",
            phone="+62 857-1111-2222",
            customer_type="B2C",
            password_hash=generate_password_hash(CUSTOMER_PASSWORD),
        )
        db.session.add(retail)
        db.session.flush()

        address = Address(
            customer_id=customer.id,
            address="Jl. Industri 5",
            city="Bekasi",
            province="Jawa Barat",
            postal_code="17530",
            is_default=True,
        )
        db.session.add(address)

        brand = Brand(name="SafeGrip", slug="safegrip")
        category = Category(name="Nitrile", slug="nitrile")
        db.session.add_all([brand, category])
        db.session.flush()

        product = Product(
            sku="NIT-100",
            name="Nitrile Glove Box",
            base_price=10000,
            stock=500,
            brand_id=brand.id,
            is_featured=True,
        )
        product.categories = [category]
        product.pricing_tiers = [
            PricingTier(min_quantity=10, max_quantity=49, price_per_unit=9500),
            PricingTier(min_quantity=50, max_quantity=99, price_per_unit=9000),
            PricingTier(min_quantity=100, max_quantity=None, price_per_unit=8500),
        ]
        other = Product(sku="LTX-200", name="Latex Glove Pair", base_price=5000, stock=5)
        db.session.add_all([product, other])
        db.session.commit()

        return {
            "admin_id": admin.id,
            "sales_id": sales.id,
            "warehouse_id": warehouse.id,
            "customer_id": customer.id,
            "company_id": customer.company.id,
            "retail_id": retail.id,
            "address_id": address.id,
            "brand_id": brand.id,
            "category_id": category.id,
            "product_id": product.id,
            "other_product_id": other.id,
        }
