# backend/purchasing/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One read cache per process, shared by every request thread
    from .services.request_coalescer import RequestCoalescer
    app.extensions["purchase_cache"] = RequestCoalescer(
        ttl_seconds=app.config["PURCHASE_CACHE_TTL_SECONDS"],
        serve_stale_on_error=app.config["PURCHASE_CACHE_SERVE_STALE"],
        max_stale_entries=app.config["PURCHASE_CACHE_MAX_STALE_ENTRIES"],
        logger=app.logger,
    )

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
