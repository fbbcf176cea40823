# backend/packloop/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic (and the view DDL hooks) see the full metadata
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.reference import reference_bp
    from .routes.instances import instances_bp
    from .routes.deposits import deposits_bp
    from .routes.loans import loans_bp
    from .routes.quality import quality_bp
    from .routes.telemetry import telemetry_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(reference_bp)
    app.register_blueprint(instances_bp)
    app.register_blueprint(deposits_bp)
    app.register_blueprint(loans_bp)
    app.register_blueprint(quality_bp)
    app.register_blueprint(telemetry_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
