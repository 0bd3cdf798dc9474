import os
import logging
from datetime import datetime, timedelta, timezone

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from placify.config import config_by_name
from placify.errors import ModerationError
from placify.extensions import db, migrate, login_manager, csrf, limiter, init_services


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from placify import models  # noqa: F401

    # --- Moderation services + event bus ---
    init_services(app)

    # --- Register blueprints ---
    from placify.blueprints.auth import auth_bp
    from placify.blueprints.admin import admin_bp
    from placify.blueprints.submissions import submissions_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(submissions_bp)

    # JSON APIs authenticated by session cookie (SameSite=Lax) or public
    csrf.exempt(auth_bp)
    csrf.exempt(admin_bp)
    csrf.exempt(submissions_bp)

    @app.route("/health")
    def health():
        bus = app.extensions["placify"].event_bus
        return jsonify(ok=True, event_bus=bus.running)

    # --- Error handlers ---
    @app.errorhandler(ModerationError)
    def moderation_error(e):
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def http_error(e):
        error = (e.name or "error").lower().replace(" ", "_")
        return jsonify(ok=False, error=error, message=e.description), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, error="internal_error", message="Unexpected error."), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@placify.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--name", default="Admin", help="Display name")
    def seed_admin(email, password, name):
        """Create (or promote) an admin account.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from placify.models.user import User

        email = email.lower().strip()
        existing = User.query.filter_by(email=email).first()
        if existing:
            if existing.is_admin:
                click.echo(f"Admin user already exists: {email}")
                return
            existing.is_admin = True
            db.session.commit()
            click.echo(f"Promoted existing user to admin: {email}")
            return

        db.session.add(User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=name,
            is_admin=True,
        ))
        db.session.commit()
        click.echo(f"Created admin user: {email}")

    @app.cli.command("purge-audit")
    @click.option("--days", default=None, type=int,
                  help="Retention in days (default: AUDIT_RETENTION_DAYS)")
    def purge_audit(days):
        """Delete audit entries older than the retention period.

        Designed to run daily from cron:
            flask purge-audit
            flask purge-audit --days 30
        """
        if days is None:
            days = app.config["AUDIT_RETENTION_DAYS"]
        audit = app.extensions["placify"].audit
        try:
            deleted = audit.purge_older_than(timedelta(days=days))
        except ModerationError as e:
            raise click.ClickException(e.message) from e
        click.echo(f"Deleted {deleted} audit entries older than {days} days.")

    @app.cli.command("audit-report")
    @click.option("--days", default=30, type=int, help="Report window in days")
    @click.option("--actor", "actor_id", default=None, help="Limit to one admin id")
    def audit_report(days, actor_id):
        """Print an activity summary for the last N days."""
        end = datetime.now(timezone.utc)
        report = app.extensions["placify"].audit.generate_report(
            start=end - timedelta(days=days), end=end, actor_id=actor_id
        )
        summary = report["summary"]

        click.echo("=" * 60)
        click.echo(f"Audit report: last {days} days")
        click.echo("=" * 60)
        click.echo(f"  Total actions:  {summary['total_actions']}")
        click.echo(f"  Failed actions: {summary['failed_actions']}")
        click.echo(f"  Actor:          {summary['actor_id']}")
        click.echo("")
        for action, count in report["action_breakdown"].items():
            click.echo(f"  {action:<32} {count}")
        click.echo("=" * 60)
