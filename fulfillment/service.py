"""
Fulfillment service: the orchestrator around the pure engine.

Every mutating call runs the same cycle while holding the order's lock:

  1. read the order (and its version) from SQLite
  2. let the engine validate and plan the change
  3. in one SQLite transaction:
       save the planned order with UPDATE ... WHERE version = ?
         stale version -> roll back, go back to 1 (up to max_conflict_retries)
       hand the plan's adjustments to the inventory collaborator
         failure -> roll back, raise CollaboratorFailure
  4. append an audit entry and return a FulfillmentOutcome

The order write is only committed once inventory has accepted the batch,
so a failed operation never leaves a quantity half applied.  Retries always
re-read and re-validate; a delta is never replayed against state it was not
validated for.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Callable, Optional

from config import Config
from models.order import Order
from models.query import ListQueryState, ListRequest, Page
from models.request import FulfillmentLine, FulfillmentRequest, NewLineItem
from models.result import FulfillmentOutcome, FulfillmentPlan
from .database import Database, StaleOrderError
from .engine import FulfillmentEngine
from .errors import (
    CollaboratorFailure,
    ConcurrencyConflict,
    FulfillmentError,
    OrderNotFound,
    UnknownLineItem,
)
from .inventory import InventoryCollaborator, InventoryError, build_inventory
from .query import resolve

logger = logging.getLogger(__name__)

_KIND_LABEL = {"purchase": "Purchase order", "sales": "Sales order"}


class FulfillmentService:

    def __init__(
        self,
        config: Optional[Config] = None,
        db: Optional[Database] = None,
        inventory: Optional[InventoryCollaborator] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.config = config or Config()
        self.config.ensure_output_dir()
        self.db = db or Database(self.config.db_path)
        self.inventory = inventory or build_inventory(self.config, self.db)
        self._today = today or date.today
        self.engine = FulfillmentEngine(today=self._today)

        self._locks: dict[int, list] = {}          # order id -> [lock, holders + waiters]
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def today(self) -> date:
        return self._today()

    def get_order(self, order_id: int, kind: Optional[str] = None) -> Order:
        order = self.db.get_order(order_id)
        if order is None or (kind and order.kind != kind):
            label = _KIND_LABEL.get(kind, "Order")
            raise OrderNotFound(f"{label} not found with id: {order_id}")
        return order

    def list_orders(
        self,
        kind: str,
        query: ListQueryState | ListRequest | None = None,
        size: Optional[int] = None,
    ) -> Page:
        if query is None:
            query = ListQueryState()
        request = resolve(query) if isinstance(query, ListQueryState) else query
        return self.db.list_orders(
            kind,
            request,
            size=size or self.config.page_size,
            today=self._today(),
            urgent_days=self.config.urgent_days,
        )

    def get_summary(self, kind: str) -> dict:
        return self.db.get_summary(kind, today=self._today(), urgent_days=self.config.urgent_days)

    def get_audit_log(self, order_id: int) -> list[dict]:
        self.get_order(order_id)
        return self.db.get_audit_log(order_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def fulfill(self, order_id: int, request: FulfillmentRequest) -> FulfillmentOutcome:
        """Apply a request addressed by line item id (either order kind)."""
        return self._run(
            order_id, None, request.requested_by,
            lambda order: self.engine.apply_fulfillment(order, request),
        )

    def receive(
        self,
        order_id: int,
        quantity: int,
        actual_date: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> FulfillmentOutcome:
        """Record *quantity* more units received against a purchase order."""

        def plan(order: Order) -> FulfillmentPlan:
            self.engine.ensure_open(order)
            if not order.line_items:
                raise UnknownLineItem(f"Purchase order {order.reference} has no items")
            request = FulfillmentRequest(
                lines=[FulfillmentLine(line_item_id=order.line_items[0].id, delta=quantity)],
                actual_date=actual_date,
                requested_by=requested_by,
            )
            return self.engine.apply_fulfillment(order, request)

        return self._run(order_id, "purchase", requested_by, plan)

    def stock_out(
        self,
        order_id: int,
        item_quantities: dict[str, int],
        delivery_date: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> FulfillmentOutcome:
        """Approve quantities per product id on a sales order."""

        def plan(order: Order) -> FulfillmentPlan:
            # Order state is checked before products are resolved to line items.
            self.engine.ensure_open(order)
            lines = []
            for product_id, qty in item_quantities.items():
                item = order.find_item_by_product(product_id)
                if item is None:
                    raise UnknownLineItem(
                        f"Product {product_id} not found in order {order.reference}",
                        product_id=product_id,
                    )
                lines.append(FulfillmentLine(line_item_id=item.id, delta=qty))
            request = FulfillmentRequest(
                lines=lines, actual_date=delivery_date, requested_by=requested_by,
            )
            return self.engine.apply_fulfillment(order, request)

        return self._run(order_id, "sales", requested_by, plan)

    def cancel(
        self,
        order_id: int,
        kind: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> FulfillmentOutcome:
        return self._run(
            order_id, kind, requested_by,
            lambda order: self.engine.cancel_order(order, requested_by),
        )

    def add_items(
        self,
        order_id: int,
        items: list[NewLineItem],
        requested_by: Optional[str] = None,
    ) -> FulfillmentOutcome:
        return self._run(
            order_id, "sales", requested_by,
            lambda order: self.engine.add_line_items(order, items, requested_by),
        )

    def remove_item(
        self,
        order_id: int,
        line_item_id: int,
        requested_by: Optional[str] = None,
    ) -> FulfillmentOutcome:
        return self._run(
            order_id, "sales", requested_by,
            lambda order: self.engine.remove_line_item(order, line_item_id, requested_by),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _order_lock(self, order_id: int):
        """Hold the order's lock; the entry is dropped once nobody waits on it."""
        with self._locks_guard:
            entry = self._locks.setdefault(order_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[order_id]

    def _run(
        self,
        order_id: int,
        kind: Optional[str],
        actor: Optional[str],
        plan_fn: Callable[[Order], FulfillmentPlan],
    ) -> FulfillmentOutcome:
        actor = actor or "system"
        with self._order_lock(order_id):
            attempts = 0
            while True:
                attempts += 1
                order = self.get_order(order_id, kind)

                try:
                    plan = plan_fn(order)
                except FulfillmentError as e:
                    self.db.log_audit(order_id, "rejected", actor,
                                      detail={"kind": e.kind, "message": e.message})
                    raise

                try:
                    with self.db.transaction() as conn:
                        new_version = self.db.save_order(plan.order, order.version, conn=conn)
                        self.inventory.apply(plan.adjustments, conn=conn)
                except StaleOrderError:
                    if attempts > self.config.max_conflict_retries:
                        logger.error(
                            "Order %s: version conflict persisted after %d attempt(s)",
                            order.reference, attempts,
                        )
                        raise ConcurrencyConflict(
                            f"Order {order.reference} was modified concurrently; please retry"
                        ) from None
                    logger.warning(
                        "Order %s changed since read (v%d); re-reading (attempt %d)",
                        order.reference, order.version, attempts,
                    )
                    continue
                except InventoryError as e:
                    logger.warning(
                        "Order %s: inventory update failed, %s rolled back: %s",
                        order.reference, plan.operation, e,
                    )
                    self.db.log_audit(order_id, "rolled_back", actor,
                                      detail={"operation": plan.operation, "error": str(e)})
                    raise CollaboratorFailure(
                        f"Inventory update failed for {order.reference}: {e}"
                    ) from e

                self.db.log_audit(order_id, plan.operation, actor, detail={
                    "previous_status": plan.previous_status,
                    "status": plan.order.status,
                    "adjustments": [a.model_dump() for a in plan.adjustments],
                })
                logger.info(
                    "%s %s: %s committed (v%d, status=%s)",
                    order.kind, order.reference, plan.operation, new_version, plan.order.status,
                )
                return FulfillmentOutcome(
                    order_id=order_id,
                    reference=order.reference,
                    operation=plan.operation,
                    status=plan.order.status,
                    previous_status=plan.previous_status,
                    version=new_version,
                    adjustments=plan.adjustments,
                    attempts=attempts,
                )

    def check_setup(self) -> dict:
        """Verify that the database and inventory collaborator are usable."""
        status = {
            "database": {
                "path": str(self.config.db_path),
                "exists": self.config.db_path.exists(),
            },
            "inventory": {"mode": self.inventory.name, "ok": True},
        }
        if self.inventory.name == "webhook":
            url = self.config.inventory_webhook_url
            status["inventory"]["url"] = url
            if not url:
                status["inventory"].update(ok=False, error="INVENTORY_WEBHOOK_URL not configured")
        else:
            status["inventory"]["products"] = len(self.db.list_inventory())
        for kind in ("purchase", "sales"):
            status[f"{kind}_orders"] = self.get_summary(kind)
        return status
