# backend/bizledger/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(config_object=None) -> Flask:
    """
    Application factory.

    config_object: optional config class or mapping applied over Config
    (tests pass a dict with their database URI and flags).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(config_object, dict):
        app.config.update(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)

    configure_logging(app.config["LOG_LEVEL"], app.config["LOG_FORMAT"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Identity and sync collaborators; tests replace these entries
    from .decorators import SESSION_PROVIDER_KEY, SYNC_BRIDGE_KEY
    from .services.identity_service import header_session_provider
    from .services.sync_service import SyncBridge

    app.extensions.setdefault(SESSION_PROVIDER_KEY, header_session_provider)
    app.extensions.setdefault(SYNC_BRIDGE_KEY, SyncBridge.from_config(app.config))

    # Register blueprints
    from .routes.system import system_bp
    from .routes.accounting import accounting_bp
    from .routes.invoices import invoices_bp
    from .routes.expenses import expenses_bp
    from .routes.customers import customers_bp
    from .routes.reports import reports_bp
    from .routes.sync import sync_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(accounting_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(sync_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Tenant-Id, X-User-Email, X-Demo-Mode"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
