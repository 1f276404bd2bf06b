"""
CSV import of orders and stock levels.

Loads from three CSV files:
  - orders.csv       (order headers)
  - order_items.csv  (line items, linked by reference)
  - inventory.csv    (optional starting stock levels)

Orders that already exist in the database (same reference) are skipped, so
re-running an import is safe.  Rows that would break an order invariant
(a purchase order with other than one item, fulfilled above ordered, or a
status that does not match the item quantities) are rejected with a warning.
"""
import csv
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from models.order import LineItem, Order
from .database import Database
from .status import expected_status, policy_for

logger = logging.getLogger(__name__)


class OrderLoader:
    """
    CSV formats:
      orders.csv:
        reference, kind, status, counterparty, order_date, due_date, notes

      order_items.csv:
        reference, product_id, product_name, category, quantity,
        fulfilled_quantity, unit_price

      inventory.csv:
        product_id, current_stock, reserved_stock, incoming_stock
    """

    def __init__(
        self,
        orders_csv: str | Path,
        items_csv: str | Path,
        inventory_csv: Optional[str | Path] = None,
    ):
        self.orders_csv = Path(orders_csv)
        self.items_csv = Path(items_csv)
        self.inventory_csv = Path(inventory_csv) if inventory_csv else None
        self.rejected: list[str] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_orders(self) -> list[Order]:
        if not self.orders_csv.exists():
            logger.warning("Orders CSV not found: %s", self.orders_csv)
            return []

        headers: dict[str, dict] = {}
        with open(self.orders_csv, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                ref = (row.get("reference") or "").strip()
                if not ref:
                    continue
                headers[ref.upper()] = row

        items: dict[str, list[dict]] = {key: [] for key in headers}
        if self.items_csv.exists():
            with open(self.items_csv, newline="", encoding="utf-8") as f:
                for row in csv.DictReader(f):
                    key = (row.get("reference") or "").strip().upper()
                    if key not in items:
                        logger.warning("Order item references unknown order: %s", key)
                        continue
                    items[key].append(row)
        else:
            logger.info("No order items CSV found at %s", self.items_csv)

        orders = []
        for key, row in headers.items():
            order = self._build(row, items[key])
            if order is not None:
                orders.append(order)

        logger.info("Loaded %d order(s), rejected %d", len(orders), len(self.rejected))
        return orders

    def _build(self, row: dict, item_rows: list[dict]) -> Optional[Order]:
        ref = row["reference"].strip()
        try:
            kind = (row.get("kind") or "").strip().lower()
            policy = policy_for(kind)
            order = Order(
                kind=kind,
                reference=ref,
                status=policy.validate(row.get("status") or ""),
                counterparty=_text(row.get("counterparty")),
                order_date=_text(row.get("order_date")),
                due_date=_text(row.get("due_date")),
                notes=_text(row.get("notes")),
                line_items=[
                    LineItem(
                        product_id=r["product_id"].strip(),
                        product_name=_text(r.get("product_name")),
                        category=(_text(r.get("category")) or "").upper() or None,
                        ordered_quantity=int(r["quantity"]),
                        fulfilled_quantity=int(r.get("fulfilled_quantity") or 0),
                        unit_price=float(r.get("unit_price") or 0),
                    )
                    for r in item_rows
                ],
            )
        except (KeyError, ValueError, ValidationError) as e:
            return self._reject(ref, f"invalid row: {e}")

        if not order.line_items:
            return self._reject(ref, "order has no items")
        if kind == "purchase" and len(order.line_items) != 1:
            return self._reject(ref, "purchase order must have exactly one item")
        if any(i.fulfilled_quantity > i.ordered_quantity for i in order.line_items):
            return self._reject(ref, "fulfilled quantity exceeds ordered quantity")
        if len({i.product_id for i in order.line_items}) != len(order.line_items):
            return self._reject(ref, "duplicate product in order")
        if order.status != expected_status(order):
            return self._reject(
                ref, f"status {order.status} does not match item quantities "
                     f"(expected {expected_status(order)})",
            )
        return order

    def _reject(self, reference: str, reason: str) -> None:
        logger.warning("Skipping order %s: %s", reference, reason)
        self.rejected.append(reference)
        return None

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_into(self, db: Database) -> dict:
        """Insert new orders and stock levels.  Returns counts for reporting."""
        inserted = skipped = 0
        for order in self.load_orders():
            if db.get_order_by_reference(order.reference) is not None:
                skipped += 1
                continue
            try:
                db.insert_order(order)
                inserted += 1
            except sqlite3.IntegrityError as e:
                logger.warning("Order %s not inserted: %s", order.reference, e)
                self.rejected.append(order.reference)

        stock_rows = 0
        if self.inventory_csv and self.inventory_csv.exists():
            with open(self.inventory_csv, newline="", encoding="utf-8") as f:
                for row in csv.DictReader(f):
                    try:
                        db.upsert_inventory(
                            row["product_id"].strip(),
                            current_stock=int(row.get("current_stock") or 0),
                            reserved_stock=int(row.get("reserved_stock") or 0),
                            incoming_stock=int(row.get("incoming_stock") or 0),
                        )
                        stock_rows += 1
                    except (KeyError, ValueError) as e:
                        logger.warning("Skipping inventory row %s: %s", row, e)

        logger.info(
            "Import complete: %d inserted, %d already present, %d rejected, %d stock row(s)",
            inserted, skipped, len(self.rejected), stock_rows,
        )
        return {
            "inserted": inserted,
            "skipped": skipped,
            "rejected": list(self.rejected),
            "inventory_rows": stock_rows,
        }


def _text(value) -> Optional[str]:
    return (value or "").strip() or None
