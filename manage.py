"""Management script for the database and billing maintenance tasks"""

from datetime import timedelta

import click
from dotenv import load_dotenv
from flask.cli import FlaskGroup

load_dotenv()

from marketingpro import create_app
from marketingpro.billing.checkout_sessions import CheckoutSessionTracker
from marketingpro.billing.idempotency import IdempotencyGuard
from marketingpro.extensions import db
from marketingpro.utils.dates import utcnow

app = create_app()
cli = FlaskGroup(create_app=lambda: app)


@cli.command("init-db")
def init_db():
    """Initialize the database"""
    with app.app_context():
        db.create_all()
        click.echo("Database initialized successfully.")


@cli.command("drop-db")
@click.confirmation_option(prompt="Are you sure you want to drop all tables?")
def drop_db():
    """Drop all database tables"""
    with app.app_context():
        db.drop_all()
        click.echo("Database dropped successfully.")


@cli.command("expire-checkout-sessions")
def expire_checkout_sessions():
    """Run the checkout session expiry sweep once"""
    with app.app_context():
        count = CheckoutSessionTracker.expire_stale(utcnow())
        click.echo(f"Expired {count} checkout session(s).")


@cli.command("purge-processed-events")
@click.option("--days", type=int, default=None, help="Retention in days (defaults to PROCESSED_EVENT_RETENTION_DAYS).")
def purge_processed_events(days):
    """Delete processed-event ledger rows past the retention window"""
    with app.app_context():
        retention = days if days is not None else app.config["PROCESSED_EVENT_RETENTION_DAYS"]
        deleted = IdempotencyGuard.purge_older_than(utcnow() - timedelta(days=retention))
        click.echo(f"Purged {deleted} processed event(s) older than {retention} days.")


if __name__ == "__main__":
    cli()
