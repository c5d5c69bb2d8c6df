# Overview: Flask CLI command groups for bootstrap, seeding, and maintenance.

# storefront/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv and install the package (pip install -e .).
# - Set FLASK_APP to "storefront:create_app" (PowerShell: $env:FLASK_APP="storefront:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalogue:
# - python -m flask catalog seed
#   Insert the sample golf categories and products (skips rows that already exist).
#
# Customers:
# - python -m flask customers recalculate [--customer-id 12]
#   Recompute lifetime aggregates (total spent, order count, ...) from orders.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Product
from .services import customer_service
from .services.catalog_service import product_slug


SEED_CATEGORIES = [
    ("Grips", "grips", "Premium golf grips for enhanced control and comfort"),
    ("Bags", "bags", "Professional golf bags for every playing style"),
    ("Clubs", "clubs", "High-performance golf clubs engineered for excellence"),
    ("Balls", "balls", "Tour-quality golf balls for optimal performance"),
]

# (sku, name, category, base cost, stock, description)
SEED_PRODUCTS = [
    ("GRP-CORD", "Cord Grip", "Grips", "16.99", 50, "Premium cord grip designed for optimal control and feel in all weather conditions."),
    ("GRP-CORD-PRO", "Cord Grip Pro", "Grips", "18.99", 40, "Enhanced version of our classic cord grip with reinforced durability."),
    ("GRP-PERF", "Performance Grip", "Grips", "16.99", 60, "High-performance grip engineered for consistency and control."),
    ("GRP-VELVET", "Velvet Grip", "Grips", "14.99", 45, "Soft velvet finish provides exceptional comfort and a smooth feel."),
    ("GRP-ALLWX", "All-Weather Grip", "Grips", "17.99", 35, "Designed to perform in any conditions, rain or shine."),
    ("GRP-TOUR-VELVET", "Tour Velvet", "Grips", "19.99", 30, "Tour-proven velvet grip trusted by professionals worldwide."),
    ("BAG-TOUR", "Tour Bag", "Bags", "199.99", 15, "Professional-grade tour bag with spacious 14-way top divider."),
    ("BAG-STAND", "Stand Bag", "Bags", "149.99", 20, "Lightweight stand bag perfect for walking the course."),
    ("BAG-CART", "Cart Bag", "Bags", "179.99", 18, "Designed specifically for cart use with a stable base."),
    ("BAG-CARRY", "Carry Bag", "Bags", "129.99", 25, "Ultra-lightweight carry bag for minimalist golfers."),
    ("BAG-TRAVEL", "Travel Cover", "Bags", "89.99", 12, "Protective travel cover with padded construction."),
    ("BAG-STAFF", "Staff Bag", "Bags", "249.99", 10, "Premium staff bag designed for ultimate organization and style."),
    ("CLB-DRIVER", "Driver", "Clubs", "299.99", 20, "High-performance driver engineered for maximum distance."),
    ("CLB-IRONS", "Iron Set", "Clubs", "599.99", 15, "Precision-forged iron set (5-PW) offering exceptional feel."),
    ("CLB-FWOOD", "Fairway Wood", "Clubs", "249.99", 18, "Versatile fairway wood designed for easy launch from any lie."),
    ("CLB-HYBRID", "Hybrid", "Clubs", "179.99", 22, "Easy-to-hit hybrid that bridges the gap between fairway woods and long irons."),
    ("CLB-PUTTER", "Putter", "Clubs", "149.99", 25, "Tour-inspired blade putter with precision milled face."),
    ("CLB-WEDGES", "Wedge Set", "Clubs", "279.99", 16, "Complete wedge set (52, 56, 60 degrees) designed for maximum spin."),
    ("BAL-PROV1", "Pro V1", "Balls", "44.99", 100, "Tour-level performance ball designed for complete players."),
    ("BAL-DIST", "Distance Balls", "Balls", "34.99", 150, "High-energy core construction delivers maximum distance."),
    ("BAL-TOURSOFT", "Tour Soft", "Balls", "39.99", 120, "Premium soft-feel ball that combines distance with control."),
    ("BAL-CONTROL", "Control Elite", "Balls", "42.99", 80, "Designed for players who prioritize spin and control."),
    ("BAL-RANGE", "Super Range", "Balls", "29.99", 200, "Value-oriented ball perfect for practice and casual rounds."),
    ("BAL-PREMIUM", "Premium Tour", "Balls", "49.99", 75, "Ultimate performance ball used by tour professionals worldwide."),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """
    Drop and recreate all tables.

    DEV/TEST only: deletes all data.
    """
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('catalog')
def catalog_group():
    """Catalogue data commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert sample categories and products (existing slugs/SKUs are left alone)."""
    created_categories = 0
    for order, (name, slug, description) in enumerate(SEED_CATEGORIES):
        if db.session.query(Category).filter_by(slug=slug).first() is None:
            db.session.add(Category(name=name, slug=slug, description=description, display_order=order))
            created_categories += 1
    db.session.flush()

    categories = {c.name: c.id for c in db.session.query(Category).all()}

    created_products = 0
    for index, (sku, name, category, price, stock, description) in enumerate(SEED_PRODUCTS, start=1):
        if db.session.query(Product).filter_by(sku=sku).first() is not None:
            continue
        db.session.add(Product(
            sku=sku,
            name=name,
            slug=product_slug(name, sku),
            description=description,
            price=price,
            category_id=categories.get(category),
            image_url=f"/products/{index}.png",
            stock_quantity=stock,
            is_active=True,
        ))
        created_products += 1

    db.session.commit()
    click.echo(f"PASS Seed complete: {created_categories} categories, {created_products} products added")


@click.group('customers')
def customers_group():
    """Customer maintenance commands."""


@customers_group.command('recalculate')
@click.option('--customer-id', type=int, default=None, help='Only recalculate this customer')
@with_appcontext
def recalculate_customers(customer_id):
    """Recompute lifetime aggregates from orders."""
    if customer_id is not None:
        customer = customer_service.recalculate_customer_stats(customer_id)
        click.echo(
            f"PASS Customer {customer.id}: {customer.order_count} orders, total {customer.total_spent}"
        )
        return

    count = customer_service.recalculate_all_customers()
    click.echo(f"PASS Recalculated {count} customers")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(customers_group)
