"""
Stock Fulfillment Dashboard: FastAPI backend.

Exposes the incoming-stock (purchase order) and outgoing-stock (sales order)
screens over JSON.  All order and stock state lives in a single SQLite
database (output/fulfillment.db); every mutation goes through
FulfillmentService so it is validated, version-checked and audited.

Endpoints
---------
  GET    /api/health                              → liveness probe
  GET    /api/purchase-orders                     → open POs (?text= ?status= ?category= ?view=overdue ?page= ?size=)
  GET    /api/purchase-orders/summary             → counts by status, overdue count
  GET    /api/purchase-orders/{id}                → one PO incl. remaining quantity
  PUT    /api/purchase-orders/{id}/receive        → record received stock
  PUT    /api/purchase-orders/{id}/cancel         → cancel, release incoming remainder
  GET    /api/sales-orders                        → open SOs (?text= ?status= ?category= ?view=urgent ?page= ?size=)
  GET    /api/sales-orders/summary                → counts by status, urgent count
  GET    /api/sales-orders/{id}                   → one SO incl. remaining per item
  PUT    /api/sales-orders/{id}/stock-out         → approve quantities per product
  PATCH  /api/sales-orders/{id}/items             → add items
  DELETE /api/sales-orders/{id}/items/{itemId}    → remove an untouched item
  PUT    /api/sales-orders/{id}/cancel            → cancel, release reservations
  GET    /api/orders/{id}/audit                   → audit trail of one order

Refused operations answer with {kind, message, lineItemId, productId, maxAllowed}.
"""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from config import Config
from fulfillment.errors import FulfillmentError
from fulfillment.query import state_from_params
from fulfillment.service import FulfillmentService
from models.request import NewLineItem
from .models import AddItems, CancelOrder, ReceiveStock, StockOut
from .services.views import issue_view, order_view, outcome_view, page_view

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "order_not_found":      404,
    "unknown_line_item":    404,
    "concurrency_conflict": 409,
    "collaborator_failure": 502,
}

_VIEWS = {"purchase": ("all", "overdue"), "sales": ("all", "urgent")}

# ---------------------------------------------------------------------------
# Service (lazy: opened on first request so importing the app has no side
# effects; tests replace it with set_service())
# ---------------------------------------------------------------------------
_service: Optional[FulfillmentService] = None


def get_service() -> FulfillmentService:
    global _service
    if _service is None:
        _service = FulfillmentService(Config())
    return _service


def set_service(service: Optional[FulfillmentService]) -> None:
    global _service
    _service = service


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="Stock Fulfillment Dashboard", docs_url=None, redoc_url=None)


@app.exception_handler(FulfillmentError)
def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    status_code = _STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=issue_view(exc.issue))


def _list(kind: str, text, status, category, view, page, size) -> dict:
    if view and view not in _VIEWS[kind]:
        raise HTTPException(400, f"view must be one of: {', '.join(_VIEWS[kind])}")
    svc = get_service()
    try:
        state = state_from_params(text=text, status=status, category=category, view=view, page=page)
        result = svc.list_orders(kind, state, size=size)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_view(result, svc.today(), svc.config.urgent_days)


def _detail(order_id: int, kind: str) -> dict:
    svc = get_service()
    return order_view(svc.get_order(order_id, kind), svc.today(), svc.config.urgent_days)


def _outcome(outcome) -> dict:
    svc = get_service()
    order = svc.get_order(outcome.order_id)
    return outcome_view(outcome, order, svc.today(), svc.config.urgent_days)


# ── Routes ───────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    svc = get_service()
    return {
        "status": "ok",
        "db_path":        str(svc.config.db_path),
        "db_exists":      svc.config.db_path.exists(),
        "inventory_mode": svc.inventory.name,
    }


# ── Purchase orders (incoming stock) ─────────────────────────────────────────

@app.get("/api/purchase-orders")
def list_purchase_orders(
    text: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    view: Optional[str] = Query(default=None),
    page: int = Query(default=0, ge=0),
    size: Optional[int] = Query(default=None, ge=1, le=200),
):
    return _list("purchase", text, status, category, view, page, size)


@app.get("/api/purchase-orders/summary")
def purchase_order_summary():
    return get_service().get_summary("purchase")


@app.get("/api/purchase-orders/{order_id}")
def get_purchase_order(order_id: int):
    return _detail(order_id, "purchase")


@app.put("/api/purchase-orders/{order_id}/receive")
def receive_purchase_order(order_id: int, body: ReceiveStock):
    outcome = get_service().receive(
        order_id,
        body.receivedQuantity,
        actual_date=body.actualArrivalDate,
        requested_by=body.updatedBy,
    )
    return _outcome(outcome)


@app.put("/api/purchase-orders/{order_id}/cancel")
def cancel_purchase_order(order_id: int, body: Optional[CancelOrder] = None):
    outcome = get_service().cancel(
        order_id, kind="purchase", requested_by=body.updatedBy if body else None,
    )
    return _outcome(outcome)


# ── Sales orders (outgoing stock) ────────────────────────────────────────────

@app.get("/api/sales-orders")
def list_sales_orders(
    text: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    view: Optional[str] = Query(default=None),
    page: int = Query(default=0, ge=0),
    size: Optional[int] = Query(default=None, ge=1, le=200),
):
    return _list("sales", text, status, category, view, page, size)


@app.get("/api/sales-orders/summary")
def sales_order_summary():
    return get_service().get_summary("sales")


@app.get("/api/sales-orders/{order_id}")
def get_sales_order(order_id: int):
    return _detail(order_id, "sales")


@app.put("/api/sales-orders/{order_id}/stock-out")
def stock_out_sales_order(order_id: int, body: StockOut):
    outcome = get_service().stock_out(
        order_id,
        body.itemQuantities,
        delivery_date=body.deliveryDate,
        requested_by=body.updatedBy,
    )
    return _outcome(outcome)


@app.patch("/api/sales-orders/{order_id}/items")
def add_sales_order_items(order_id: int, body: AddItems):
    items = [
        NewLineItem(
            product_id=i.productId,
            quantity=i.quantity,
            unit_price=i.unitPrice,
            product_name=i.productName,
            category=i.category,
        )
        for i in body.orderItems
    ]
    outcome = get_service().add_items(order_id, items, requested_by=body.updatedBy)
    return _outcome(outcome)


@app.delete("/api/sales-orders/{order_id}/items/{item_id}")
def remove_sales_order_item(order_id: int, item_id: int, updatedBy: Optional[str] = Query(default=None)):
    outcome = get_service().remove_item(order_id, item_id, requested_by=updatedBy)
    return _outcome(outcome)


@app.put("/api/sales-orders/{order_id}/cancel")
def cancel_sales_order(order_id: int, body: Optional[CancelOrder] = None):
    outcome = get_service().cancel(
        order_id, kind="sales", requested_by=body.updatedBy if body else None,
    )
    return _outcome(outcome)


# ── Audit ────────────────────────────────────────────────────────────────────

@app.get("/api/orders/{order_id}/audit")
def get_order_audit(order_id: int):
    return get_service().get_audit_log(order_id)
