# storefront/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _allowed_origin(app: Flask, origin: str | None) -> str | None:
    configured = (app.config.get("CORS_ALLOWED_ORIGINS") or "").strip()
    if configured == "*":
        return "*"
    allowed = {o.strip() for o in configured.split(",") if o.strip()}
    if origin and origin in allowed:
        return origin
    return None


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.products_admin import products_admin_bp
    from .routes.margin_rules import margin_rules_bp
    from .routes.inventory import inventory_bp
    from .routes.customers import customers_bp
    from .routes.checkout import checkout_bp
    from .routes.orders import orders_bp
    from .routes.cart import cart_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(products_admin_bp)
    app.register_blueprint(margin_rules_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cart_bp)

    @app.after_request
    def add_cors_headers(response):
        allowed = _allowed_origin(app, request.headers.get("Origin"))
        if allowed:
            response.headers["Access-Control-Allow-Origin"] = allowed
            if allowed != "*":
                response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
