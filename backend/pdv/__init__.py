# backend/pdv/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate
from .validation import PdvError


ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "state": 409,
    "storage": 503,
}


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        # Must land before db.init_app reads SQLALCHEMY_DATABASE_URI
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.dashboard import dashboard_bp
    from .routes.inventory import inventory_bp
    from .routes.cash_sessions import cash_sessions_bp
    from .routes.sales import sales_bp
    from .routes.credit import credit_bp
    from .routes.audit import audit_bp
    from .routes.catalog import catalog_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(cash_sessions_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(credit_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(catalog_bp)

    @app.errorhandler(PdvError)
    def handle_pdv_error(error: PdvError):
        status = ERROR_STATUS.get(error.kind, 400)
        if status >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, error.message)
        return jsonify({"error": error.to_dict()}), status

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed = app.config.get("CORS_ORIGINS", ())
        if origin and origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Idempotency-Key"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
