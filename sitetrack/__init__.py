"""
sitetrack/__init__.py

Flask application factory for SiteTrack, a construction site management API.

Requirements:
- Clear architecture, stable imports, server-side security.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- The API is never trusted to a UI; every route enforces its own permissions.
- Every error leaves as JSON: {"ok": false, "error": <code>, "message": ...}.
"""

from __future__ import annotations

import click
from flask import Flask, jsonify
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from .errors import DomainError
from .extensions import csrf, db, login_manager, migrate
from .logger import get_logger, setup_logging
from .models import User

logger = get_logger(__name__)


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    setup_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
        if user is not None and not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"ok": False, "error": "unauthorized", "message": "Login required."}), 401

    _register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.attendance import attendance_bp
    from .blueprints.auth import auth_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.payroll import payroll_bp
    from .blueprints.projects import projects_bp
    from .blueprints.tasks import tasks_bp
    from .blueprints.transactions import transactions_bp
    from .blueprints.users import users_bp
    from .blueprints.workers import workers_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(workers_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(payroll_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(dashboard_bp)

    _register_cli(app)

    @app.route("/")
    def index():
        """Service banner: name, currency and the logged-in user (if any)."""
        return jsonify(
            {
                "ok": True,
                "app": app.config.get("APP_NAME"),
                "currency": app.config.get("CURRENCY_SYMBOL"),
                "user": current_user.to_dict() if current_user.is_authenticated else None,
            }
        )

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(err: DomainError):
        db.session.rollback()
        logger.info("%s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err: HTTPException):
        code = (err.name or "error").lower().replace(" ", "_")
        return jsonify({"ok": False, "error": code, "message": err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        db.session.rollback()
        logger.exception("Unhandled error: %s", err)
        return jsonify({"ok": False, "error": "internal_error", "message": "An unexpected error occurred."}), 500


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development; use `flask db upgrade` with migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("create-admin")
    @click.option("--email", prompt=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--name", default="Administrator", show_default=True)
    def create_admin_command(email, password, name):
        """Create (or reset) an admin user."""
        from .seed import create_admin

        user = create_admin(email, password, name)
        click.echo(f"Admin {user.email} ready.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo users, a project, workers and transactions."""
        from .seed import seed_demo_data

        created = seed_demo_data()
        click.echo("Demo data seeded: " + ", ".join(f"{k}={v}" for k, v in created.items()))

    @app.cli.command("reconcile-budgets")
    @click.option("--fix", is_flag=True, help="Overwrite stored totals with the computed ones.")
    def reconcile_budgets_command(fix):
        """Compare project running totals with their transactions."""
        from .ledger import reconcile_project
        from .models import Project

        drifted = 0
        for project in Project.query.order_by(Project.id.asc()).all():
            report = reconcile_project(project, fix=fix)
            if report["in_sync"]:
                continue
            drifted += 1
            click.echo(
                f"[{project.id}] {project.name}: "
                f"utilised {report['utilised_budget']['stored']} vs {report['utilised_budget']['computed']}, "
                f"received {report['received_amount']['stored']} vs {report['received_amount']['computed']}"
                + (" (fixed)" if report["fixed"] else "")
            )

        if fix:
            db.session.commit()
        click.echo(f"{drifted} project(s) out of sync.")
