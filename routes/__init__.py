"""Blueprint registration."""

from routes.auth import auth_bp
from routes.customers import customers_bp
from routes.follow_ups import follow_ups_bp
from routes.invoices import invoices_bp
from routes.orders import orders_bp
from routes.products import products_bp
from routes.quotations import quotations_bp
from routes.reports import reports_bp
from routes.store import store_bp
from routes.webhooks import webhooks_bp

ALL_BLUEPRINTS = [
    auth_bp,
    products_bp,
    customers_bp,
    quotations_bp,
    orders_bp,
    invoices_bp,
    follow_ups_bp,
    reports_bp,
    store_bp,
    webhooks_bp,
]


def register_blueprints(app):
    """Register all application blueprints on *app*."""
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)
