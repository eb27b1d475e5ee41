# backend/cannaorders/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    """
    Application factory.

    `config_object` defaults to Config (environment driven); tests pass a
    subclass pointing at an in-memory database.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported before create_all / autogenerate
    from . import models  # noqa: F401

    # Compliance records go to the local table unless a deployment swaps the sink
    from .services.compliance_service import DatabaseComplianceSink
    app.extensions.setdefault("compliance_sink", DatabaseComplianceSink())

    from .routes.system import system_bp
    from .routes.cart import cart_bp
    from .routes.orders import orders_bp
    from .routes.inventory import inventory_bp
    from .routes.compliance import compliance_bp

    for blueprint in (system_bp, cart_bp, orders_bp, inventory_bp, compliance_bp):
        app.register_blueprint(blueprint)

    allowed_origins = frozenset(app.config.get("CORS_ALLOWED_ORIGINS") or ())

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-Tenant-Id, X-User-Id, X-User-Role"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        return response

    from .cli import register_commands
    register_commands(app)

    app.logger.debug("cannaorders app created (db=%s)", app.config.get("SQLALCHEMY_DATABASE_URI"))
    return app
