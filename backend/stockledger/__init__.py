# backend/stockledger/__init__.py

from flask import Flask, request

from .config import Config
from .extensions import db, broadcaster


def create_app(overrides: dict | None = None) -> Flask:
    """
    Build the application and its shared resources.

    The connection pool and the broadcaster thread live as long as the app;
    release them with shutdown_app().
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    broadcaster.init_app(app)

    # Import models so create_all sees every table
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.settings import settings_bp
    from .routes.backup import backup_bp
    from .routes.products import products_bp
    from .routes.events import events_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(backup_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(events_bp)

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
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def shutdown_app(app: Flask) -> None:
    """Drain queued events, then close every pooled connection."""
    broadcaster.stop(drain=True)
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
