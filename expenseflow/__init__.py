"""Application factory and extension initialization for ExpenseFlow."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import Flask
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

# Global extension instances -------------------------------------------------

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()


def create_app(config_name: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Flask application factory."""
    load_dotenv()

    from expenseflow.config import config_by_name

    app = Flask(__name__, instance_relative_config=True)

    config_name = config_name or os.getenv("FLASK_CONFIG", "development")
    config_class = config_by_name.get(config_name.lower())
    if config_class is None:
        raise ValueError(f"Unknown Flask configuration '{config_name}'")

    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)
    if not app.config.get("SECRET_KEY"):
        raise RuntimeError("SECRET_KEY must be set")

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("expenseflow").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Ensure instance folder exists for SQLite DBs
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    # One lock registry per process so concurrent requests on an expense serialize.
    from expenseflow.workflow.ledger import RecordLocks

    app.extensions["expense_locks"] = RecordLocks()

    # Register blueprints
    from expenseflow.auth import auth_bp
    from expenseflow.admin import admin_bp
    from expenseflow.employee import employee_bp
    from expenseflow.manager import manager_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(employee_bp)
    app.register_blueprint(manager_bp)

    from expenseflow.utils.helpers import register_error_handlers

    register_error_handlers(app)

    from expenseflow.cli import register_commands

    register_commands(app)

    # Import all models to ensure they are registered with SQLAlchemy
    from expenseflow.models import (  # noqa: F401
        ApprovalHistoryEntry,
        ApprovalRule,
        AuditLog,
        Company,
        Expense,
        User,
    )

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[User]:
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from expenseflow.utils.helpers import json_response

        return json_response({"error": "Authentication required."}, status=401)

    @app.shell_context_processor
    def shell_context():
        return {"db": db, "User": User, "Expense": Expense, "ApprovalRule": ApprovalRule}

    return app
