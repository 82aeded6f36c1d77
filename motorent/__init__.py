from __future__ import annotations

import click
from flask import Flask, jsonify

from motorent.core.auth import auth_bp
from motorent.core.config import Config
from motorent.core.errors import DomainError
from motorent.core.extensions import db, login_manager, migrate
from motorent.core.log import configure_logging
from motorent.core.models import User, seed_demo_data
from motorent.events import events_bp
from motorent.events.bus import EventBus, RetentionPolicy, event_bus
from motorent.events.handlers import register_default_handlers
from motorent.fleet import fleet_bp
from motorent.reconciliation import reconciliation_bp
from motorent.workshop import workshop_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    bus = EventBus()
    register_default_handlers(bus)
    bus.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(fleet_bp)
    app.register_blueprint(workshop_bp)
    app.register_blueprint(reconciliation_bp)
    app.register_blueprint(events_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def domain_error(error: DomainError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(401)
    def unauthorized(_error):
        return jsonify({"error": "Autenticacion requerida"}), 401

    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"error": "Permiso denegado"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Recurso no encontrado"}), 404


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users, fleet and bank statement lines."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("events-cleanup")
    @click.option("--days", type=int, default=None, help="Retention in days (defaults to EVENT_RETENTION_DAYS).")
    def events_cleanup(days: int | None) -> None:
        """Delete business events older than the retention window."""
        try:
            policy = RetentionPolicy(days if days is not None else app.config["EVENT_RETENTION_DAYS"])
        except DomainError as exc:
            raise click.BadParameter(exc.message, param_hint="--days") from exc
        deleted = event_bus().cleanup(policy)
        click.echo(f"Deleted {deleted} events older than {policy.days} days.")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
