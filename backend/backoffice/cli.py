# Overview: Flask CLI command groups for bootstrap, catalog seeding, and ticket pool repair.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables and make sure one Active ticket exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --id P-001 --name "Coffee 1kg" --price 12.50 --cost 7.10 --stock 40 --category Groceries
#   Create a product (and its category, if new).
# - python -m flask catalog list
#   List products with stock, price and cost.
#
# Tickets:
# - python -m flask tickets ensure-active
#   Open an empty Active ticket if none exist.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Product
from .services.ticket_service import ensure_active_ticket
from .validation import ValidationError, parse_money


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables that do not exist yet. Safe to run repeatedly."""
    db.create_all()
    click.echo("PASS Tables created")

    ticket = ensure_active_ticket()
    if ticket:
        click.echo(f"PASS Opened ticket: {ticket.name} (ID: {ticket.id})")
    else:
        click.echo("PASS Ticket pool already has at least one ticket")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the inventory ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to open a ticket.")


@click.group('catalog')
def catalog_group():
    """Product catalog seeding and inspection."""


def _money(ctx, param, value):
    try:
        return parse_money(value, param.name)
    except ValidationError as e:
        raise click.BadParameter(str(e))


@catalog_group.command('add-product')
@click.option('--id', 'product_id', required=True, help='Product id')
@click.option('--name', required=True, help='Display name')
@click.option('--price', required=True, callback=_money, help='Sale price')
@click.option('--cost', required=True, callback=_money, help='Cost price')
@click.option('--stock', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--category', 'category_name', default=None, help='Category name (created if missing)')
@with_appcontext
def add_product(product_id, name, price, cost, stock, category_name):
    """Create a product."""
    if db.session.get(Product, product_id):
        raise click.ClickException(f"Product {product_id} already exists")

    category = None
    if category_name:
        category = db.session.query(Category).filter_by(name=category_name).first()
        if not category:
            category = Category(name=category_name)
            db.session.add(category)
            db.session.flush()
            click.echo(f"PASS Created category: {category.name} (ID: {category.id})")

    product = Product(
        id=product_id,
        name=name,
        price=price,
        cost=cost,
        stock=stock,
        category_id=category.id if category else None,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock {product.stock})")


@catalog_group.command('list')
@with_appcontext
def list_products():
    """List all products."""
    products = db.session.query(Product).order_by(Product.id).all()
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"\n{'ID':<16} {'Name':<30} {'Stock':>6} {'Price':>12} {'Cost':>12} Category")
    click.echo("-" * 90)
    for p in products:
        category = p.category.name if p.category else "-"
        click.echo(f"{p.id:<16} {p.name[:30]:<30} {p.stock:>6} {p.price:>12} {p.cost:>12} {category}")
    click.echo(f"\nTotal: {len(products)} products")


@click.group('tickets')
def tickets_group():
    """Sales ticket pool maintenance."""


@tickets_group.command('ensure-active')
@with_appcontext
def ensure_active():
    """Open an empty Active ticket if the pool is empty."""
    ticket = ensure_active_ticket()
    if ticket:
        click.echo(f"PASS Opened ticket: {ticket.name} (ID: {ticket.id})")
    else:
        click.echo("PASS Ticket pool already has at least one ticket")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(tickets_group)
