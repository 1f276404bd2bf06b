"""
Inventory collaborators: apply the adjustment instructions produced by the
fulfillment engine.

Two implementations, selected by INVENTORY_MODE:

  local    LocalInventory adjusts the `inventory` table in the same SQLite
           transaction that writes the order, so the order change and the
           stock change commit together.  If any instruction fails the
           whole transaction rolls back.
  webhook  WebhookInventory renders a Jinja2 template for the whole batch
           and sends it to INVENTORY_WEBHOOK_URL while the order write is
           still uncommitted.  Any non-2xx response or transport error
           raises InventoryError and the order write is rolled back.

Local semantics (n = quantity_delta):

  sales     consume   current -= n, reserved -= n   (needs current >= n)
            release   reserved -= n                 (floored at 0)
            reserve   reserved += n                 (needs available >= n)
  purchase  consume   current += n, incoming -= n   (incoming floored at 0)
            release   incoming -= n                 (floored at 0)
"""
import json
import logging
import os
import sqlite3
import urllib.error
import urllib.request
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from jinja2 import FileSystemLoader, TemplateNotFound, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

from models.request import AdjustmentInstruction
from .database import Database

logger = logging.getLogger(__name__)

_DEFAULT_TEMPLATE = """{
  "batchId": {{ batch_id | tojson }},
  "sentAt": {{ sent_at | tojson }},
  "reference": {{ reference | tojson }},
  "orderKind": {{ order_kind | tojson }},
  "adjustments": [
    {%- for a in adjustments %}
    {
      "productId": {{ a.product_id | tojson }},
      "quantityDelta": {{ a.quantity_delta }},
      "direction": {{ a.direction | tojson }}
    }{{ "," if not loop.last }}
    {%- endfor %}
  ]
}
"""


class InventoryError(Exception):
    """An inventory batch could not be applied; nothing from it remains applied."""


class InventoryCollaborator:
    """
    Base class; subclasses apply a whole batch or raise InventoryError.

    *conn* is the open SQLite transaction holding the order write.  The
    service commits that transaction only after apply() returns.
    """

    name = "base"

    def apply(
        self,
        adjustments: list[AdjustmentInstruction],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        raise NotImplementedError


class LocalInventory(InventoryCollaborator):

    name = "local"

    def __init__(self, db: Database) -> None:
        self.db = db

    def apply(
        self,
        adjustments: list[AdjustmentInstruction],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        if conn is None:
            with self.db.transaction() as own:
                self._apply_batch(adjustments, own)
        else:
            self._apply_batch(adjustments, conn)

    def _apply_batch(self, adjustments: list[AdjustmentInstruction], conn: sqlite3.Connection) -> None:
        # Raising inside the caller's transaction rolls back every row touched so far.
        for instruction in adjustments:
            self._apply_one(instruction, conn)
        if adjustments:
            logger.info(
                "Inventory: applied %d adjustment(s) for %s",
                len(adjustments), adjustments[0].reference,
            )

    def _apply_one(self, ins: AdjustmentInstruction, conn: sqlite3.Connection) -> None:
        n = ins.quantity_delta
        key = (ins.order_kind, ins.direction)
        db = self.db

        if key == ("purchase", "consume") and db.get_inventory(ins.product_id, conn=conn) is None:
            # First receipt of a product nobody stocked yet.
            db.upsert_inventory(ins.product_id, current_stock=0, conn=conn)

        if key == ("sales", "consume"):
            ok = db.adjust_stock(ins.product_id, current_delta=-n, reserved_delta=-n,
                                 min_current=n, conn=conn)
        elif key == ("sales", "release"):
            ok = db.adjust_stock(ins.product_id, reserved_delta=-n, conn=conn)
        elif key == ("sales", "reserve"):
            ok = db.adjust_stock(ins.product_id, reserved_delta=n, min_available=n, conn=conn)
        elif key == ("purchase", "consume"):
            ok = db.adjust_stock(ins.product_id, current_delta=n, incoming_delta=-n, conn=conn)
        elif key == ("purchase", "release"):
            ok = db.adjust_stock(ins.product_id, incoming_delta=-n, conn=conn)
        else:
            raise InventoryError(f"Unsupported adjustment {ins.direction!r} for {ins.order_kind} order")

        if not ok:
            row = db.get_inventory(ins.product_id, conn=conn)
            if row is None:
                raise InventoryError(f"Product not found in inventory: {ins.product_id}")
            raise InventoryError(
                f"Insufficient stock for {ins.product_id}: "
                f"current={row['current_stock']} reserved={row['reserved_stock']}, "
                f"requested {n} ({ins.direction})"
            )


class WebhookInventory(InventoryCollaborator):
    """
    Sends each batch of adjustments as one templated JSON payload.

    The template is looked up in CONFIG_DIR; when it does not exist a built-in
    JSON template is used.
    """

    name = "webhook"

    def __init__(self, config: Any) -> None:
        self.config = config
        self.config_dir = Path(os.getenv("CONFIG_DIR", str(Path(__file__).parent.parent / "config")))
        self.jinja_env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.config_dir)),
            autoescape=select_autoescape(["json", "xml"]),
            keep_trailing_newline=True,
        )

    def render_payload(self, adjustments: list[AdjustmentInstruction]) -> str:
        template_name = self.config.inventory_webhook_template
        try:
            template = self.jinja_env.get_template(template_name)
        except TemplateNotFound:
            logger.debug("Inventory template %s not found, using built-in", template_name)
            template = self.jinja_env.from_string(_DEFAULT_TEMPLATE)

        first = adjustments[0]
        return template.render(
            batch_id=uuid.uuid4().hex,
            sent_at=datetime.now(timezone.utc).isoformat(),
            reference=first.reference,
            order_kind=first.order_kind,
            adjustments=[a.model_dump() for a in adjustments],
        )

    def apply(
        self,
        adjustments: list[AdjustmentInstruction],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        if not adjustments:
            return
        url = self.config.inventory_webhook_url
        if not url:
            raise InventoryError("INVENTORY_WEBHOOK_URL not configured")

        payload = self.render_payload(adjustments).encode("utf-8")
        req = urllib.request.Request(url, data=payload, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("User-Agent", "Stock-Fulfillment-Inventory/1.0")

        if self.config.inventory_webhook_headers_json:
            try:
                for k, v in json.loads(self.config.inventory_webhook_headers_json).items():
                    req.add_header(k, str(v))
            except (ValueError, AttributeError) as e:
                logger.warning("Failed to parse INVENTORY_WEBHOOK_HEADERS: %s", e)

        reference = adjustments[0].reference
        try:
            with urllib.request.urlopen(req, timeout=self.config.inventory_webhook_timeout) as response:
                status_code = response.getcode()
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
            logger.error("Inventory webhook failed for %s: HTTP %d - %s", reference, e.code, body[:200])
            raise InventoryError(f"Inventory webhook returned HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            logger.error("Inventory webhook error for %s: %s", reference, e)
            raise InventoryError(f"Inventory webhook unreachable: {e}") from e

        if not 200 <= status_code < 300:
            raise InventoryError(f"Inventory webhook returned HTTP {status_code}")
        logger.info("Inventory webhook sent for %s: HTTP %d (%d adjustment(s))",
                    reference, status_code, len(adjustments))


def build_inventory(config: Any, db: Database) -> InventoryCollaborator:
    """Return the collaborator selected by config.inventory_mode."""
    mode = (config.inventory_mode or "local").lower()
    if mode == "local":
        return LocalInventory(db)
    if mode == "webhook":
        return WebhookInventory(config)
    raise ValueError(f"Unknown INVENTORY_MODE {config.inventory_mode!r}. Must be 'local' or 'webhook'")
