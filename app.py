import json
import logging

import click
from flask import Flask, g, request
from flask_migrate import Migrate

from config import Config
from models import db
from routes import audit_bp, auth_bp, health_bp, security_bp
from security.csrf import require_csrf
from utils.auth_context import load_current_user

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/health",
}


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    _configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(security_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


#-------------------------
from models.login_attempt import LoginAttempt
from models.user import User
from security.password import hash_password
from security.risk import load_recent_history, score_attempt
from security.login_attempts import current_policy, normalize_email


def register_cli(app):
    @app.cli.command("create-admin")
    @click.argument("email")
    @click.password_option()
    @click.option("--name", default=None, help="Full name for the admin account.")
    def create_admin(email, password, name):
        """Create an active admin account (bootstrap)."""
        email = normalize_email(email)
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"{email} already exists")

        db.session.add(User(
            email=email,
            password_hash=hash_password(password),
            full_name=name,
            account_type="admin",
            status="active",
        ))
        db.session.commit()
        click.echo(f"{email} created as admin")

    @app.cli.command("score-attempt")
    @click.argument("attempt_id", type=int)
    def score_attempt_cmd(attempt_id):
        """Re-score a stored attempt against current history (read-only)."""
        attempt = db.session.get(LoginAttempt, attempt_id)
        if attempt is None:
            raise click.ClickException(f"Login attempt {attempt_id} not found")

        policy = current_policy()
        assessment = score_attempt(attempt, load_recent_history(attempt, policy), policy)
        click.echo(json.dumps({
            "attempt_id": attempt.id,
            "stored_risk_score": attempt.risk_score,
            **assessment.to_dict(),
        }, indent=2))

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
