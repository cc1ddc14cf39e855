# Overview: Flask CLI command groups for bootstrap and sale auditing.

# backend/coop_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` once migrations are in play).
# - python -m flask system seed
#   Idempotent demo data: one cashier, a few products and members.
#
# Sales:
# - python -m flask sales audit-totals
#   Re-derive each transaction total from its items; exits 1 on any mismatch.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Product, Member
from .services.transaction_store import TransactionStore


DEMO_OPERATORS = [
    ("Cashier", "cashier@coop.local"),
]

DEMO_PRODUCTS = [
    # sku, name, price_cents, base_price_cents, stock
    ("RICE-25", "Rice 25kg", 135000, 120000, 40),
    ("SUGAR-1", "Sugar 1kg", 8500, 7200, 60),
    ("OIL-1L", "Cooking Oil 1L", 9800, 8600, 25),
    ("SOAP-BAR", "Laundry Soap Bar", 2500, 1900, 8),
]

DEMO_MEMBERS = [
    # name, email, credit_limit_cents
    ("Maria Santos", "maria@coop.local", 500000),
    ("Jose Reyes", "jose@coop.local", 200000),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Load demo operators, products and members.

    Safe to run repeatedly: existing rows (matched by email or SKU) are skipped.
    """
    click.echo("START Seeding demo data...")

    for name, email in DEMO_OPERATORS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  Operator '{email}' already exists, skipping...")
            continue
        db.session.add(User(name=name, email=email))
        click.echo(f"PASS Created operator: {email}")

    for sku, name, price, base, stock in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        db.session.add(Product(
            sku=sku,
            name=name,
            price_cents=price,
            base_price_cents=base,
            stock_quantity=stock,
        ))
        click.echo(f"PASS Created product: {sku} ({stock} in stock)")

    for name, email, limit in DEMO_MEMBERS:
        if db.session.query(Member).filter_by(email=email).first():
            click.echo(f"WARN  Member '{email}' already exists, skipping...")
            continue
        db.session.add(Member(name=name, email=email, credit_limit_cents=limit))
        click.echo(f"PASS Created member: {email}")

    db.session.commit()
    click.echo("DONE Seed complete")


@click.group('sales')
def sales_group():
    """Sale inspection commands."""


@sales_group.command('audit-totals')
@with_appcontext
def audit_totals():
    """Check every committed transaction total against its items."""
    mismatches = TransactionStore(db.session).find_total_mismatches()
    if not mismatches:
        click.echo("PASS All transaction totals match their items")
        return

    for row in mismatches:
        click.echo(
            f"FAIL {row['reference']}: recorded {row['recorded_total_cents']} "
            f"expected {row['expected_total_cents']} ({row['item_count']} items)"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sales_group)
