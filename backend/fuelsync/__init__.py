# backend/fuelsync/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stations import stations_bp
    from .routes.nozzles import nozzles_bp
    from .routes.prices import prices_bp
    from .routes.sales import sales_bp
    from .routes.creditors import creditors_bp
    from .routes.reconciliations import reconciliations_bp
    from .routes.shifts import shifts_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stations_bp)
    app.register_blueprint(nozzles_bp)
    app.register_blueprint(prices_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(creditors_bp)
    app.register_blueprint(reconciliations_bp)
    app.register_blueprint(shifts_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-User-Id, X-User-Role, X-Tenant-Schema"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
