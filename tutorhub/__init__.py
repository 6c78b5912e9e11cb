import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from tutorhub.config import config_by_name
from tutorhub.errors import TutorHubError
from tutorhub.extensions import db, migrate, login_manager, csrf, limiter

logger = logging.getLogger(__name__)


def create_app(config_name=None, test_config=None):
    """Application factory.

    test_config: optional mapping applied over the selected config class.
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    if test_config:
        app.config.update(test_config)

    # --- Validate required env vars (skip in testing, fatal in production) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            if config_name == "production":
                raise
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them (and the change_log DDL) ---
    with app.app_context():
        from tutorhub import models  # noqa: F401

    # --- Session access middleware ---
    from tutorhub.middleware.session_access import init_session_access_middleware
    init_session_access_middleware(app)

    # --- Register blueprints ---
    from tutorhub.blueprints.auth import auth_bp
    from tutorhub.blueprints.profile import profile_bp
    from tutorhub.blueprints.tutors import tutors_bp
    from tutorhub.blueprints.sessions import sessions_bp
    from tutorhub.blueprints.chat import chat_bp
    from tutorhub.blueprints.payments import payments_bp
    from tutorhub.blueprints.checkout import checkout_bp
    from tutorhub.blueprints.admin import admin_bp
    from tutorhub.blueprints.dashboard import dashboard_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(tutors_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(dashboard_bp)

    # Payment function is called cross-origin with JSON bodies
    csrf.exempt(checkout_bp)

    @app.route("/health")
    def health():
        return jsonify({"ok": True})

    # --- Local file serving (dev only) ---
    if app.debug:
        @app.route("/uploads/<path:filepath>")
        def serve_upload(filepath):
            """Serve uploaded files from instance/uploads in dev mode."""
            from flask import send_from_directory
            upload_dir = os.path.join(app.instance_path, "uploads")
            return send_from_directory(upload_dir, filepath)

    # --- Error handlers ---
    @app.errorhandler(TutorHubError)
    def handle_domain_error(e):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e}")
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--password", default="demo12345", help="Password for all demo users")
    def seed_demo(password):
        """Create admin, approved tutor, learner, subject and one session.

        Usage:
            flask seed-demo
            flask seed-demo --password s3cret
        """
        from datetime import datetime, timedelta, timezone

        from tutorhub.models.user import User
        from tutorhub.models.subject import Subject, TutorSubject
        from tutorhub.models.tutor import Tutor
        from tutorhub.models.session import TutoringSession

        def get_or_create_user(email, first_name, last_name, role):
            user = User.query.filter_by(email=email).first()
            if user:
                click.echo(f"User already exists: {email}")
            else:
                user = User(
                    email=email,
                    password_hash=generate_password_hash(password),
                    first_name=first_name,
                    last_name=last_name,
                )
                db.session.add(user)
                click.echo(f"Created user: {email}")
            user.grant_role(role)
            db.session.flush()
            return user

        admin = get_or_create_user("admin@tutorhub.local", "Ada", "Admin", "admin")
        tutor_user = get_or_create_user("tutor@tutorhub.local", "Theo", "Tutor", "tutor")
        learner = get_or_create_user("learner@tutorhub.local", "Lena", "Learner", "learner")

        subject = Subject.query.filter_by(name="Algebra").first()
        if subject is None:
            subject = Subject(name="Algebra", category="Mathematics")
            db.session.add(subject)
            db.session.flush()

        tutor = Tutor.query.filter_by(user_id=tutor_user.id).first()
        if tutor is None:
            tutor = Tutor(
                user_id=tutor_user.id,
                status="approved",
                hourly_rate=45,
                education="MSc Mathematics",
                experience_years=5,
                languages=["English"],
                approved_at=datetime.now(timezone.utc),
                approved_by=admin.id,
            )
            tutor.subjects = [TutorSubject(subject_id=subject.id, proficiency_level="expert")]
            db.session.add(tutor)

        start = datetime.now(timezone.utc) + timedelta(days=1)
        session = TutoringSession(
            tutor_id=tutor_user.id,
            learner_id=learner.id,
            subject_id=subject.id,
            title="Algebra basics",
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=1),
            status="scheduled",
        )
        db.session.add(session)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Demo data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Admin:    {admin.email} / {password}")
        click.echo(f"  Tutor:    {tutor_user.email} / {password}")
        click.echo(f"  Learner:  {learner.email} / {password}")
        click.echo(f"  Session:  {session.title} (id: {session.id})")
        click.echo("=" * 60)

    @app.cli.command("pending-payments")
    @click.option("--older-than", default=60, show_default=True,
                  help="Only list payments pending for more than this many minutes.")
    def pending_payments(older_than):
        """List stale pending payments for manual follow-up.

        Read-only. Nothing is re-queried at PayPal and no row is changed.

        Usage:
            flask pending-payments
            flask pending-payments --older-than 1440
        """
        from tutorhub.services.checkout_service import list_stale_pending

        stale = list_stale_pending(older_than)
        if not stale:
            click.echo(f"No payments pending for more than {older_than} minutes.")
            return

        click.echo(f"{len(stale)} payment(s) pending for more than {older_than} minutes:")
        for p in stale:
            created = p.created_at.isoformat() if p.created_at else "?"
            click.echo(
                f"  {p.id}  order={p.paypal_order_id}  session={p.session_id}  "
                f"{p.amount} {p.currency}  created={created}"
            )
