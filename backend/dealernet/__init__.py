# backend/dealernet/__init__.py
import logging
from dataclasses import dataclass

from flask import Flask, current_app

from .config import Config
from .extensions import db, mail, migrate


@dataclass
class CoreServices:
    """Composition root: one instance per app, bound to the scoped db.session."""
    resolver: object
    reconciliation: object
    governance: object
    notifier: object


def build_services(app: Flask, notifier=None) -> CoreServices:
    from .services.governance_service import GovernanceEngine
    from .services.notification_service import build_notifier
    from .services.principal_service import PrincipalResolver
    from .services.reconciliation_service import ReconciliationEngine

    notifier = notifier or build_notifier(app.config)
    return CoreServices(
        resolver=PrincipalResolver(db.session),
        reconciliation=ReconciliationEngine(db.session),
        governance=GovernanceEngine(db.session, notifier, logger=logging.getLogger("dealernet.governance")),
        notifier=notifier,
    )


def get_services() -> CoreServices:
    return current_app.extensions["dealernet"]


def create_app(config_object=Config, notifier=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    logging.getLogger("dealernet").setLevel(app.config.get("LOG_LEVEL", "INFO"))
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions["dealernet"] = build_services(app, notifier=notifier)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.payments import payments_bp
    from .routes.user_management import user_management_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(user_management_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
