# Overview: Flask CLI command groups for bootstrap, stocking and ledger audits.

# backend/branchstock/cli.py
# Commands Legend (run from the backend directory, FLASK_APP=branchstock):
#
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask branches create --name "Jakarta Central" --code JKT
# - flask branches list [--all]
# - flask products create --sku TS-001 --name "T-Shirt" --price-cents 150000
# - flask stock init-product 12 --quantity 20 [--min-stock 5]
#   Create the product's stock row in every active branch.
# - flask stock low [--branch-id 1]
# - flask stock verify [--branch-id 1] [--no-chain]
#   Replay movements and report rows that disagree with stored quantity.

import click
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .services import catalog_service, stock_ledger


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete.")


@click.group('branches')
def branches_group():
    """Branch registration."""


@branches_group.command('create')
@click.option('--name', required=True)
@click.option('--code', required=True, help='Short code used in document numbers')
@click.option('--address', default=None)
@click.option('--phone', default=None)
@with_appcontext
def create_branch(name, code, address, phone):
    try:
        branch = catalog_service.create_branch(name=name, code=code, address=address, phone=phone)
    except InventoryError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created branch {branch.code} (id={branch.id})")


@branches_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive branches')
@with_appcontext
def list_branches(include_inactive):
    branches = catalog_service.list_branches(include_inactive=include_inactive)
    if not branches:
        click.echo("No branches found.")
        return
    for branch in branches:
        status = "active" if branch.is_active else "inactive"
        click.echo(f"{branch.id:>4}  {branch.code:<8} {branch.name} ({status})")


@click.group('products')
def products_group():
    """Catalog product registration."""


@products_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, default=0)
@with_appcontext
def create_product(sku, name, price_cents):
    try:
        product = catalog_service.create_product(sku=sku, name=name, price_cents=price_cents)
    except InventoryError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created product {product.sku} (id={product.id})")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and bootstrap."""


@stock_group.command('init-product')
@click.argument('product_id', type=int)
@click.option('--quantity', type=int, default=0, help='Initial quantity per branch')
@click.option('--min-stock', type=int, default=None)
@click.option('--actor-id', type=int, default=None)
@with_appcontext
def init_product(product_id, quantity, min_stock, actor_id):
    try:
        rows = stock_ledger.initialize_product_stock(
            product_id,
            initial_quantity=quantity,
            min_stock=min_stock,
            actor_id=actor_id,
        )
    except InventoryError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Initialized stock in {len(rows)} branch(es)")


@stock_group.command('low')
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def low(branch_id):
    rows = stock_ledger.low_stock(branch_id)
    if not rows:
        click.echo("No low stock.")
        return
    for row in rows:
        click.echo(
            f"branch={row.branch_id} product={row.product_id} "
            f"quantity={row.quantity} min_stock={row.min_stock}"
        )


@stock_group.command('verify')
@click.option('--branch-id', type=int, default=None)
@click.option('--product-id', type=int, default=None)
@click.option('--chain/--no-chain', default=None,
              help='Check snapshot chains (default follows SALE_CANCELLATION_MODE)')
@with_appcontext
def verify(branch_id, product_id, chain):
    issues = stock_ledger.verify_ledger(
        branch_id=branch_id,
        product_id=product_id,
        check_chain=chain,
    )
    if not issues:
        click.echo("PASS Ledger consistent.")
        return
    for issue in issues:
        click.echo(f"FAIL {issue}")
    raise click.ClickException(f"{len(issues)} ledger issue(s) found")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
