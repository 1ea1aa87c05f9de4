import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect


from .config_db import load_env_once, resolve_database_uri, resolve_log_level, resolve_secret_key

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def create_app(test_config=None):
    app = Flask(__name__)

    # Load .env dan resolve DSN/SECRET
    load_env_once()
    app.config["SQLALCHEMY_DATABASE_URI"] = resolve_database_uri()
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SECRET_KEY"] = resolve_secret_key()
    app.config["WTF_CSRF_TIME_LIMIT"] = None
    app.config["LOG_LEVEL"] = resolve_log_level()
    # Callable(dict) -> str; dipasang oleh deployment yang punya akses model AI
    app.config["STOCK_INSIGHTS_GENERATOR"] = None
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    from waveapp import inventory_service
    from waveapp.inventory_context import InventoryContext
    from waveapp.receipt_settings import ReceiptSettingsContext

    app.extensions["inventory"] = InventoryContext(inventory_service)
    app.extensions["receipt_settings"] = ReceiptSettingsContext(inventory_service)

    from waveapp.routes import bp
    from waveapp.cli import register_commands

    app.register_blueprint(bp)
    register_commands(app)

    @app.shell_context_processor
    def _ctx():
        from waveapp import models

        ctx = {"db": db, "inventory": app.extensions["inventory"]}
        for name in dir(models):
            if not name.startswith("_"):
                ctx[name] = getattr(models, name)
        return ctx

    return app
