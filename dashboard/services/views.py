"""
Response shaping for the dashboard API.

Orders are stored with kind-neutral field names (reference, counterparty,
due_date, fulfilled_quantity ...).  The views below rename them to the
vocabulary of each screen, e.g. a purchase order shows `poNumber`,
`receivedQuantity` and `expectedArrivalDate`, while a sales order shows
`orderReference`, `approvedQuantity` and `estimatedDeliveryDate`.
Remaining quantities are included so a client never has to compute them.
"""
from datetime import date
from typing import Optional

from fulfillment.query import is_overdue, is_urgent
from fulfillment.status import policy_for
from models.order import Order, PurchaseOrderStatus, SalesOrderStatus
from models.query import Page
from models.result import FulfillmentOutcome, Issue


def _status_description(order: Order) -> Optional[str]:
    enum = PurchaseOrderStatus if order.kind == "purchase" else SalesOrderStatus
    try:
        return enum(order.status).description
    except ValueError:
        return None


def purchase_order_view(order: Order, today: date) -> dict:
    """One PO carries exactly one item; its quantities are lifted onto the order."""
    item = order.line_items[0] if order.line_items else None
    ordered = item.ordered_quantity if item else 0
    received = item.fulfilled_quantity if item else 0
    return {
        "id": order.id,
        "poNumber": order.reference,
        "status": order.status,
        "statusDescription": _status_description(order),
        "supplierName": order.counterparty,
        "productId": item.product_id if item else None,
        "productName": item.product_name if item else None,
        "category": item.category if item else None,
        "lineItemId": item.id if item else None,
        "orderedQuantity": ordered,
        "receivedQuantity": received,
        "remainingQuantity": max(0, ordered - received),
        "unitPrice": item.unit_price if item else None,
        "orderDate": order.order_date,
        "expectedArrivalDate": order.due_date,
        "actualArrivalDate": order.actual_date,
        "notes": order.notes,
        "updatedBy": order.updated_by,
        "version": order.version,
        "finalized": policy_for(order.kind).is_terminal(order.status),
        "overdue": policy_for(order.kind).is_open(order.status) and is_overdue(order.due_date, today),
    }


def sales_order_view(order: Order, today: date, urgent_days: int = 2) -> dict:
    policy = policy_for(order.kind)
    items = [
        {
            "id": i.id,
            "productId": i.product_id,
            "productName": i.product_name,
            "category": i.category,
            "quantity": i.ordered_quantity,
            "approvedQuantity": i.fulfilled_quantity,
            "remainingQuantity": i.remaining_quantity,
            "orderPrice": i.unit_price,
        }
        for i in order.line_items
    ]
    return {
        "id": order.id,
        "orderReference": order.reference,
        "status": order.status,
        "statusDescription": _status_description(order),
        "customerName": order.counterparty,
        "orderDate": order.order_date,
        "estimatedDeliveryDate": order.due_date,
        "deliveryDate": order.actual_date,
        "notes": order.notes,
        "updatedBy": order.updated_by,
        "version": order.version,
        "items": items,
        "totalAmount": round(sum(i.ordered_quantity * i.unit_price for i in order.line_items), 2),
        "finalized": policy.is_terminal(order.status),
        "urgent": policy.is_open(order.status) and is_urgent(order.due_date, today, urgent_days),
    }


def order_view(order: Order, today: date, urgent_days: int = 2) -> dict:
    if order.kind == "purchase":
        return purchase_order_view(order, today)
    return sales_order_view(order, today, urgent_days)


def page_view(page: Page, today: date, urgent_days: int = 2) -> dict:
    return {
        "content": [order_view(o, today, urgent_days) for o in page.content],
        "page": page.page,
        "size": page.size,
        "totalElements": page.total_elements,
        "totalPages": page.total_pages,
    }


def outcome_view(outcome: FulfillmentOutcome, order: Order, today: date, urgent_days: int = 2) -> dict:
    return {
        "operation": outcome.operation,
        "previousStatus": outcome.previous_status,
        "attempts": outcome.attempts,
        "adjustments": [
            {
                "productId": a.product_id,
                "quantityDelta": a.quantity_delta,
                "direction": a.direction,
            }
            for a in outcome.adjustments
        ],
        "order": order_view(order, today, urgent_days),
    }


def issue_view(issue: Issue) -> dict:
    return {
        "kind": issue.kind,
        "message": issue.message,
        "lineItemId": issue.line_item_id,
        "productId": issue.product_id,
        "maxAllowed": issue.max_allowed,
    }
