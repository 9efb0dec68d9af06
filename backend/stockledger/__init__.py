# backend/stockledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.offers import offers_bp
    from .routes.cart import cart_bp
    from .routes.payfast import payfast_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(offers_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(payfast_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    # Expired checkout contexts are swept in the background outside of tests
    if not app.config.get("TESTING"):
        from .services.payment_context_service import start_context_sweeper
        start_context_sweeper(app)

    return app
