#!/usr/bin/env python3
"""
Stock Fulfillment CLI entry point.

Usage examples:
  python main.py check                                   # Verify setup (database, inventory)
  python main.py import-orders                           # Load data/orders.csv + data/order_items.csv
  python main.py list purchase --view overdue            # Open POs past their expected arrival
  python main.py list sales --search acme --page 1
  python main.py show PO-2024-001

  python main.py receive PO-2024-001 40                  # Record 40 units received
  python main.py stock-out SO-1001 -i TOY-1=5 -i TOY-2=0 # Approve quantities per product
  python main.py cancel SO-1001
  python main.py add-items SO-1001 -i TOY-3=2@9.95
  python main.py remove-item SO-1001 17

  python main.py serve --port 8000                       # Run the dashboard API
"""
import json
import logging
import sys
from pathlib import Path

import click

from config import Config
from fulfillment.errors import FulfillmentError
from fulfillment.loader import OrderLoader
from fulfillment.query import state_from_params
from fulfillment.service import FulfillmentService
from fulfillment.status import policy_for
from models.order import Order
from models.request import NewLineItem


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _service(ctx: click.Context) -> FulfillmentService:
    if "service" not in ctx.obj:
        ctx.obj["service"] = FulfillmentService(Config())
    return ctx.obj["service"]


def _find_order(service: FulfillmentService, ident: str) -> Order:
    """Accept either the numeric order id or the order reference."""
    order = service.db.get_order_by_reference(ident)
    if order is None and ident.isdigit():
        order = service.db.get_order(int(ident))
    if order is None:
        click.echo(f"✗ Order not found: {ident}", err=True)
        sys.exit(1)
    return order


def _fail(exc: FulfillmentError) -> None:
    click.echo(f"✗ [{exc.kind}] {exc.message}", err=True)
    sys.exit(1)


def _parse_item(value: str) -> tuple[str, int, float]:
    """PRODUCT=QTY or PRODUCT=QTY@PRICE"""
    try:
        product_id, rest = value.split("=", 1)
        qty, _, price = rest.partition("@")
        return product_id.strip(), int(qty), float(price) if price else 0.0
    except ValueError:
        raise click.BadParameter(f"expected PRODUCT=QTY[@PRICE], got {value!r}")


def _echo_order(order: Order) -> None:
    policy = policy_for(order.kind)
    label = "Purchase order" if order.kind == "purchase" else "Sales order"
    click.echo()
    click.echo(f"  {label}: {order.reference}  (id={order.id}, v{order.version})")
    click.echo(f"  Status:       {order.status}{'  [finalized]' if policy.is_terminal(order.status) else ''}")
    click.echo(f"  {'Supplier' if order.kind == 'purchase' else 'Customer'}:     {order.counterparty or '(none)'}")
    click.echo(f"  Due:          {order.due_date or '(none)'}")
    click.echo(f"  Actual date:  {order.actual_date or '(none)'}")
    click.echo()
    click.echo(f"  {'Item':>6}  {'Product':<16} {'Ordered':>8} {'Fulfilled':>10} {'Remaining':>10}")
    for item in order.line_items:
        click.echo(
            f"  {item.id:>6}  {item.product_id:<16} {item.ordered_quantity:>8} "
            f"{item.fulfilled_quantity:>10} {item.remaining_quantity:>10}"
        )
    click.echo()


def _echo_outcome(service: FulfillmentService, outcome) -> None:
    arrow = f"{outcome.previous_status} → {outcome.status}"
    click.echo(f"✓ {outcome.operation} committed for {outcome.reference}: {arrow}")
    for adj in outcome.adjustments:
        click.echo(f"    inventory {adj.direction:<8} {adj.product_id:<16} {adj.quantity_delta:>6}")
    _echo_order(service.get_order(outcome.order_id))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Stock Fulfillment: receive and ship partially fulfilled orders, or cancel them."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify that the database and inventory collaborator are ready."""
    status = _service(ctx).check_setup()

    click.echo("\n=== Fulfillment Setup Check ===\n")
    db = status["database"]
    click.echo(f"  Database:      {'✓' if db['exists'] else '✗'}  {db['path']}")

    inv = status["inventory"]
    if inv["ok"]:
        detail = inv.get("url") or f"{inv.get('products', 0)} product(s) stocked"
        click.echo(f"  Inventory:     ✓  {inv['mode']} ({detail})")
    else:
        click.echo(f"  Inventory:     ✗  {inv['mode']} ({inv.get('error')})")
        click.echo("  → Set INVENTORY_WEBHOOK_URL or use INVENTORY_MODE=local")

    click.echo()
    for kind in ("purchase", "sales"):
        s = status[f"{kind}_orders"]
        flag = "overdue" if kind == "purchase" else "urgent"
        click.echo(f"  {kind.title()} orders:  {s['total']} total, {s['open']} open, {s[flag]} {flag}")
    click.echo()


# --------------------------------------------------------------------
# import-orders command
# --------------------------------------------------------------------

@cli.command("import-orders")
@click.option("--orders", default=None, type=click.Path(), help="Path to orders CSV")
@click.option("--items", default=None, type=click.Path(), help="Path to order items CSV")
@click.option("--inventory", default=None, type=click.Path(), help="Path to inventory CSV")
@click.pass_context
def import_orders(ctx: click.Context, orders: str | None, items: str | None, inventory: str | None) -> None:
    """Import orders (and starting stock levels) from CSV files."""
    service = _service(ctx)
    config = service.config
    loader = OrderLoader(
        Path(orders) if orders else config.orders_csv,
        Path(items) if items else config.order_items_csv,
        Path(inventory) if inventory else config.inventory_csv,
    )
    result = loader.import_into(service.db)

    click.echo(f"\nImported {result['inserted']} order(s); {result['skipped']} already present.")
    if result["rejected"]:
        click.echo(f"⚠  {len(result['rejected'])} rejected: {', '.join(result['rejected'])}")
    click.echo(f"Stock rows loaded: {result['inventory_rows']}")


# --------------------------------------------------------------------
# list / show commands
# --------------------------------------------------------------------

@cli.command("list")
@click.argument("kind", type=click.Choice(["purchase", "sales"]))
@click.option("--search", "-s", default=None, help="Search reference, party, product, or user")
@click.option("--status", default=None, help="Filter by status")
@click.option("--category", default=None, help="Filter by product category")
@click.option("--view", type=click.Choice(["all", "overdue", "urgent"]), default=None)
@click.option("--page", "-p", default=0, type=int, help="Zero-based page number")
@click.option("--size", default=None, type=int, help="Page size (default: PAGE_SIZE)")
@click.option("--json", "as_json", is_flag=True, help="Print the raw page as JSON")
@click.pass_context
def list_orders(
    ctx: click.Context,
    kind: str,
    search: str | None,
    status: str | None,
    category: str | None,
    view: str | None,
    page: int,
    size: int | None,
    as_json: bool,
) -> None:
    """List open purchase or sales orders."""
    service = _service(ctx)
    try:
        state = state_from_params(text=search, status=status, category=category, view=view, page=page)
        result = service.list_orders(kind, state, size=size)
    except ValueError as e:
        raise click.BadParameter(str(e))

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    click.echo(f"\n  Page {result.page + 1} of {max(result.total_pages, 1)}  ({result.total_elements} order(s))\n")
    for order in result.content:
        ordered = sum(i.ordered_quantity for i in order.line_items)
        fulfilled = sum(i.fulfilled_quantity for i in order.line_items)
        click.echo(
            f"  {order.id:>5}  {order.reference:<16} {order.status:<22} "
            f"{fulfilled:>5}/{ordered:<5} due {order.due_date or '-'}"
        )
    click.echo()


@cli.command()
@click.argument("order")
@click.option("--audit", is_flag=True, help="Also print the audit trail")
@click.pass_context
def show(ctx: click.Context, order: str, audit: bool) -> None:
    """Show one order (by id or reference) with remaining quantities."""
    service = _service(ctx)
    found = _find_order(service, order)
    _echo_order(found)
    if audit:
        for entry in service.get_audit_log(found.id):
            click.echo(f"  {entry['timestamp']}  {entry['action']:<12} {entry['actor']}")
        click.echo()


# --------------------------------------------------------------------
# fulfillment commands
# --------------------------------------------------------------------

@cli.command()
@click.argument("order")
@click.argument("quantity", type=int)
@click.option("--date", "actual_date", default=None, help="Actual arrival date (YYYY-MM-DD)")
@click.option("--by", "requested_by", default=None, help="User recorded on the order")
@click.pass_context
def receive(ctx: click.Context, order: str, quantity: int, actual_date: str | None, requested_by: str | None) -> None:
    """Record QUANTITY units received against a purchase order."""
    service = _service(ctx)
    found = _find_order(service, order)
    try:
        outcome = service.receive(found.id, quantity, actual_date=actual_date, requested_by=requested_by)
    except FulfillmentError as e:
        _fail(e)
    _echo_outcome(service, outcome)


@cli.command("stock-out")
@click.argument("order")
@click.option("--item", "-i", "items", multiple=True, required=True, help="PRODUCT=QTY (repeatable)")
@click.option("--date", "delivery_date", default=None, help="Delivery date (YYYY-MM-DD)")
@click.option("--by", "requested_by", default=None, help="User recorded on the order")
@click.pass_context
def stock_out(
    ctx: click.Context,
    order: str,
    items: tuple[str, ...],
    delivery_date: str | None,
    requested_by: str | None,
) -> None:
    """Approve quantities per product on a sales order."""
    service = _service(ctx)
    found = _find_order(service, order)
    quantities = {}
    for value in items:
        product_id, qty, _ = _parse_item(value)
        quantities[product_id] = qty
    try:
        outcome = service.stock_out(found.id, quantities, delivery_date=delivery_date, requested_by=requested_by)
    except FulfillmentError as e:
        _fail(e)
    _echo_outcome(service, outcome)


@cli.command()
@click.argument("order")
@click.option("--by", "requested_by", default=None, help="User recorded on the order")
@click.pass_context
def cancel(ctx: click.Context, order: str, requested_by: str | None) -> None:
    """Cancel an order and release its unfulfilled remainder."""
    service = _service(ctx)
    found = _find_order(service, order)
    try:
        outcome = service.cancel(found.id, requested_by=requested_by)
    except FulfillmentError as e:
        _fail(e)
    _echo_outcome(service, outcome)


@cli.command("add-items")
@click.argument("order")
@click.option("--item", "-i", "items", multiple=True, required=True, help="PRODUCT=QTY[@PRICE] (repeatable)")
@click.option("--by", "requested_by", default=None, help="User recorded on the order")
@click.pass_context
def add_items(ctx: click.Context, order: str, items: tuple[str, ...], requested_by: str | None) -> None:
    """Add products to an open sales order."""
    service = _service(ctx)
    found = _find_order(service, order)
    new_items = []
    for value in items:
        product_id, qty, price = _parse_item(value)
        new_items.append(NewLineItem(product_id=product_id, quantity=qty, unit_price=price))
    try:
        outcome = service.add_items(found.id, new_items, requested_by=requested_by)
    except FulfillmentError as e:
        _fail(e)
    _echo_outcome(service, outcome)


@cli.command("remove-item")
@click.argument("order")
@click.argument("item_id", type=int)
@click.option("--by", "requested_by", default=None, help="User recorded on the order")
@click.pass_context
def remove_item(ctx: click.Context, order: str, item_id: int, requested_by: str | None) -> None:
    """Remove an item with nothing fulfilled from a sales order."""
    service = _service(ctx)
    found = _find_order(service, order)
    try:
        outcome = service.remove_item(found.id, item_id, requested_by=requested_by)
    except FulfillmentError as e:
        _fail(e)
    _echo_outcome(service, outcome)


# --------------------------------------------------------------------
# serve command
# --------------------------------------------------------------------

@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the dashboard API with uvicorn."""
    import uvicorn

    click.echo(f"\n  Dashboard API on http://{host}:{port}/api/health\n  Press Ctrl-C to stop.\n")
    uvicorn.run("dashboard.app:app", host=host, port=port, log_level="debug" if ctx.obj["verbose"] else "info")


if __name__ == "__main__":
    cli()
