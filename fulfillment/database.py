"""
SQLite persistence layer for purchase orders, sales orders and inventory.

A single database file (output/fulfillment.db) holds:

  - orders        one row per purchase or sales order, with a `version`
                  column used as the optimistic-concurrency token
  - line_items    the items each order exclusively owns; CHECK constraints
                  keep 0 <= fulfilled_quantity <= ordered_quantity at rest
  - inventory     current / reserved / incoming stock per product, adjusted
                  by the local inventory collaborator
  - audit_log     append-only record of every fulfillment operation

Writes to an order go through save_order(), which only succeeds when the
stored version still matches the version the caller read.  A mismatch raises
StaleOrderError and leaves the database untouched.  transaction() hands out
one connection so an order write and its stock adjustments commit together.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from models.order import LineItem, Order
from models.query import ListRequest, Page
from .status import policy_for

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    kind          TEXT    NOT NULL CHECK (kind IN ('purchase', 'sales')),
    reference     TEXT    NOT NULL UNIQUE,   -- PO number / sales order reference
    status        TEXT    NOT NULL,
    counterparty  TEXT,                      -- supplier or customer name
    order_date    TEXT,
    due_date      TEXT,                      -- expected arrival / estimated delivery
    actual_date   TEXT,                      -- actual arrival / delivery
    notes         TEXT,
    updated_by    TEXT,
    version       INTEGER NOT NULL DEFAULT 0,
    updated_at    TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_kind_status ON orders (kind, status);
CREATE INDEX IF NOT EXISTS idx_orders_due_date    ON orders (due_date);

CREATE TABLE IF NOT EXISTS line_items (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id           INTEGER NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
    product_id         TEXT    NOT NULL,
    product_name       TEXT,
    category           TEXT,
    ordered_quantity   INTEGER NOT NULL CHECK (ordered_quantity > 0),
    fulfilled_quantity INTEGER NOT NULL DEFAULT 0
                       CHECK (fulfilled_quantity >= 0 AND fulfilled_quantity <= ordered_quantity),
    unit_price         REAL    NOT NULL DEFAULT 0,
    UNIQUE (order_id, product_id)
);

CREATE INDEX IF NOT EXISTS idx_line_items_order ON line_items (order_id);

CREATE TABLE IF NOT EXISTS inventory (
    product_id     TEXT    PRIMARY KEY,
    current_stock  INTEGER NOT NULL DEFAULT 0,
    reserved_stock INTEGER NOT NULL DEFAULT 0,   -- promised to open sales orders
    incoming_stock INTEGER NOT NULL DEFAULT 0,   -- expected from open purchase orders
    updated_at     TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id    INTEGER NOT NULL,
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- imported | receive | stock_out | cancel |
                                    -- add_items | remove_item | rolled_back | rejected
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_order     ON audit_log (order_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp DESC);
"""

_SEARCH_COLUMNS = (
    "o.reference", "o.counterparty", "o.updated_by", "li.product_id", "li.product_name",
)


class StaleOrderError(Exception):
    """The order changed in the store after the caller read it."""

    def __init__(self, order_id: int, expected_version: int) -> None:
        super().__init__(f"Order {order_id} is no longer at version {expected_version}")
        self.order_id = order_id
        self.expected_version = expected_version


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(text: str) -> str:
    """Make % and _ in user search text match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    """Thin wrapper around an SQLite database file for order and stock state."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _conn_or(self, conn: Optional[sqlite3.Connection]):
        """Use the caller's open transaction when given one, else a fresh connection."""
        if conn is not None:
            yield conn
        else:
            with self._conn() as own:
                yield own

    def transaction(self):
        """
        One SQLite transaction spanning several writes.  Pass the yielded
        connection as conn= to save_order / adjust_stock / upsert_inventory;
        everything commits together or not at all.
        """
        return self._conn()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Order writes
    # ------------------------------------------------------------------

    def insert_order(self, order: Order) -> int:
        """
        Store a new order and its line items.  Returns the assigned order id.
        Raises sqlite3.IntegrityError if the reference already exists.
        """
        policy_for(order.kind).validate(order.status)
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO orders (
                    kind, reference, status, counterparty,
                    order_date, due_date, actual_date, notes, updated_by,
                    version, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    order.kind, order.reference, order.status, order.counterparty,
                    order.order_date, order.due_date, order.actual_date,
                    order.notes, order.updated_by, _now(),
                ),
            )
            order_id = cur.lastrowid
            for item in order.line_items:
                self._insert_item(conn, order_id, item)

        logger.info("DB inserted %s order %s (id=%d)", order.kind, order.reference, order_id)
        self.log_audit(order_id, "imported", detail={"status": order.status})
        return order_id

    def save_order(
        self,
        order: Order,
        expected_version: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Write *order* (header and items) if the stored version still equals
        *expected_version*.  Items without an id are inserted; stored items
        missing from *order* are deleted.  Returns the new version.
        """
        with self._conn_or(conn) as conn:
            conn.execute(
                """
                UPDATE orders SET
                    status      = ?,
                    actual_date = ?,
                    notes       = ?,
                    updated_by  = ?,
                    version     = version + 1,
                    updated_at  = ?
                WHERE id = ? AND version = ?
                """,
                (
                    order.status, order.actual_date, order.notes, order.updated_by,
                    _now(), order.id, expected_version,
                ),
            )
            if conn.execute("SELECT changes()").fetchone()[0] == 0:
                raise StaleOrderError(order.id, expected_version)

            stored_ids = {
                r["id"] for r in conn.execute(
                    "SELECT id FROM line_items WHERE order_id = ?", (order.id,)
                )
            }
            keep_ids = {i.id for i in order.line_items if i.id is not None}

            for gone in stored_ids - keep_ids:
                conn.execute("DELETE FROM line_items WHERE id = ?", (gone,))

            for item in order.line_items:
                if item.id is not None and item.id in stored_ids:
                    conn.execute(
                        """
                        UPDATE line_items SET
                            fulfilled_quantity = ?,
                            product_name       = ?,
                            category           = ?
                        WHERE id = ? AND order_id = ?
                        """,
                        (item.fulfilled_quantity, item.product_name, item.category,
                         item.id, order.id),
                    )
                else:
                    self._insert_item(conn, order.id, item)

            new_version = expected_version + 1

        logger.debug("DB saved order %s at version %d", order.reference, new_version)
        return new_version

    @staticmethod
    def _insert_item(conn: sqlite3.Connection, order_id: int, item: LineItem) -> None:
        conn.execute(
            """
            INSERT INTO line_items (
                id, order_id, product_id, product_name, category,
                ordered_quantity, fulfilled_quantity, unit_price
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id, order_id, item.product_id, item.product_name, item.category,
                item.ordered_quantity, item.fulfilled_quantity, item.unit_price,
            ),
        )

    # ------------------------------------------------------------------
    # Order reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Optional[Order]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
            if row is None:
                return None
            return self._to_order(conn, row)

    def get_order_by_reference(self, reference: str) -> Optional[Order]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM orders WHERE reference = ? COLLATE NOCASE", (reference.strip(),)
            ).fetchone()
            if row is None:
                return None
            return self._to_order(conn, row)

    @staticmethod
    def _to_order(conn: sqlite3.Connection, row: sqlite3.Row) -> Order:
        items = conn.execute(
            "SELECT * FROM line_items WHERE order_id = ? ORDER BY id", (row["id"],)
        ).fetchall()
        return Order(
            id=row["id"],
            kind=row["kind"],
            reference=row["reference"],
            status=row["status"],
            counterparty=row["counterparty"],
            order_date=row["order_date"],
            due_date=row["due_date"],
            actual_date=row["actual_date"],
            notes=row["notes"],
            updated_by=row["updated_by"],
            version=row["version"],
            line_items=[
                LineItem(
                    id=i["id"],
                    product_id=i["product_id"],
                    product_name=i["product_name"],
                    category=i["category"],
                    ordered_quantity=i["ordered_quantity"],
                    fulfilled_quantity=i["fulfilled_quantity"],
                    unit_price=i["unit_price"],
                )
                for i in items
            ],
        )

    def list_orders(
        self,
        kind: str,
        request: ListRequest,
        size: int = 10,
        today: Optional[date] = None,
        urgent_days: int = 2,
    ) -> Page:
        """
        Execute one resolved list request over the open orders of *kind*.

        Modes:
            search   case-insensitive substring over reference, counterparty,
                     updated_by, product id and product name
            filter   status (must be an open status) or item category
            overdue  due_date < today
            urgent   due_date <= today + urgent_days
            all      every open order
        """
        policy = policy_for(kind)
        today = today or date.today()
        open_statuses = sorted(policy.open_statuses)

        clauses = ["o.kind = ?", f"o.status IN ({', '.join('?' * len(open_statuses))})"]
        params: list = [kind, *open_statuses]

        if request.mode == "search" and request.text:
            like = f"%{_escape_like(request.text.strip())}%"
            clauses.append(
                "(" + " OR ".join(f"{col} LIKE ? ESCAPE '\\'" for col in _SEARCH_COLUMNS) + ")"
            )
            params.extend([like] * len(_SEARCH_COLUMNS))
        elif request.mode == "filter":
            if request.filter_type == "status":
                clauses.append("o.status = ?")
                params.append(policy.validate(request.filter_value))
            elif request.filter_type == "category":
                clauses.append("UPPER(li.category) = ?")
                params.append((request.filter_value or "").strip().upper())
        elif request.mode == "overdue":
            clauses.append("o.due_date IS NOT NULL AND o.due_date < ?")
            params.append(today.isoformat())
        elif request.mode == "urgent":
            clauses.append("o.due_date IS NOT NULL AND o.due_date <= ?")
            params.append((today + timedelta(days=urgent_days)).isoformat())

        where = " AND ".join(clauses)
        page = request.page or 0

        with self._conn() as conn:
            total = conn.execute(
                f"""
                SELECT COUNT(DISTINCT o.id)
                FROM orders o LEFT JOIN line_items li ON li.order_id = o.id
                WHERE {where}
                """,
                params,
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT DISTINCT o.*
                FROM orders o LEFT JOIN line_items li ON li.order_id = o.id
                WHERE {where}
                ORDER BY o.due_date IS NULL, o.due_date ASC, o.id ASC
                LIMIT ? OFFSET ?
                """,
                [*params, size, page * size],
            ).fetchall()
            content = [self._to_order(conn, r) for r in rows]

        return Page(
            content=content,
            page=page,
            size=size,
            total_elements=total,
            total_pages=(total + size - 1) // size if size else 0,
        )

    def get_summary(self, kind: str, today: Optional[date] = None, urgent_days: int = 2) -> dict:
        """Counts per status plus overdue / urgent counts among open orders."""
        policy = policy_for(kind)
        today = today or date.today()
        open_statuses = sorted(policy.open_statuses)
        marks = ", ".join("?" * len(open_statuses))

        with self._conn() as conn:
            by_status = {
                r["status"]: r["n"]
                for r in conn.execute(
                    "SELECT status, COUNT(*) AS n FROM orders WHERE kind = ? GROUP BY status",
                    (kind,),
                )
            }
            overdue = conn.execute(
                f"""SELECT COUNT(*) FROM orders
                    WHERE kind = ? AND status IN ({marks})
                      AND due_date IS NOT NULL AND due_date < ?""",
                (kind, *open_statuses, today.isoformat()),
            ).fetchone()[0]
            urgent = conn.execute(
                f"""SELECT COUNT(*) FROM orders
                    WHERE kind = ? AND status IN ({marks})
                      AND due_date IS NOT NULL AND due_date <= ?""",
                (kind, *open_statuses, (today + timedelta(days=urgent_days)).isoformat()),
            ).fetchone()[0]

        return {
            "kind": kind,
            "total": sum(by_status.values()),
            "open": sum(n for s, n in by_status.items() if s in policy.open_statuses),
            "by_status": by_status,
            "overdue": overdue,
            "urgent": urgent,
        }

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def upsert_inventory(
        self,
        product_id: str,
        current_stock: int,
        reserved_stock: int = 0,
        incoming_stock: int = 0,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        with self._conn_or(conn) as conn:
            conn.execute(
                """
                INSERT INTO inventory (product_id, current_stock, reserved_stock, incoming_stock, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(product_id) DO UPDATE SET
                    current_stock  = excluded.current_stock,
                    reserved_stock = excluded.reserved_stock,
                    incoming_stock = excluded.incoming_stock,
                    updated_at     = excluded.updated_at
                """,
                (product_id, current_stock, reserved_stock, incoming_stock, _now()),
            )

    def get_inventory(
        self, product_id: str, conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[dict]:
        with self._conn_or(conn) as conn:
            row = conn.execute(
                "SELECT * FROM inventory WHERE product_id = ?", (product_id,)
            ).fetchone()
        return dict(row) if row else None

    def list_inventory(self) -> list[dict]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM inventory ORDER BY product_id").fetchall()
        return [dict(r) for r in rows]

    def adjust_stock(
        self,
        product_id: str,
        current_delta: int = 0,
        reserved_delta: int = 0,
        incoming_delta: int = 0,
        min_available: Optional[int] = None,
        min_current: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """
        Apply signed deltas to one inventory row in a single statement.

        reserved and incoming never go below zero.  When min_available or
        min_current is given the row is only touched if it satisfies it.
        Returns False when no row was changed (missing product or guard failed).
        """
        with self._conn_or(conn) as conn:
            conn.execute(
                """
                UPDATE inventory SET
                    current_stock  = current_stock + :current,
                    reserved_stock = MAX(0, reserved_stock + :reserved),
                    incoming_stock = MAX(0, incoming_stock + :incoming),
                    updated_at     = :now
                WHERE product_id = :product_id
                  AND (:min_available IS NULL OR current_stock - reserved_stock >= :min_available)
                  AND (:min_current   IS NULL OR current_stock >= :min_current)
                """,
                {
                    "current": current_delta,
                    "reserved": reserved_delta,
                    "incoming": incoming_delta,
                    "now": _now(),
                    "product_id": product_id,
                    "min_available": min_available,
                    "min_current": min_current,
                },
            )
            return conn.execute("SELECT changes()").fetchone()[0] > 0

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def log_audit(
        self,
        order_id: int,
        action: str,
        actor: str = "system",
        detail: Optional[dict] = None,
    ) -> None:
        """Append one entry to the audit log."""
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO audit_log (order_id, timestamp, action, actor, detail)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    order_id,
                    _now(),
                    action,
                    actor,
                    json.dumps(detail) if detail is not None else None,
                ),
            )

    def get_audit_log(self, order_id: int) -> list[dict]:
        """Return all audit entries for one order, oldest first."""
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, timestamp, action, actor, detail
                   FROM audit_log WHERE order_id = ?
                   ORDER BY timestamp ASC, id ASC""",
                (order_id,),
            ).fetchall()
        return [dict(r) for r in rows]
