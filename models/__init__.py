from .order import Order, LineItem, OrderKind, PurchaseOrderStatus, SalesOrderStatus
from .request import FulfillmentRequest, FulfillmentLine, NewLineItem, AdjustmentInstruction
from .result import Issue, FulfillmentPlan, FulfillmentOutcome
from .query import ActiveFilter, ListQueryState, ListRequest, Page

__all__ = [
    "Order", "LineItem", "OrderKind", "PurchaseOrderStatus", "SalesOrderStatus",
    "FulfillmentRequest", "FulfillmentLine", "NewLineItem", "AdjustmentInstruction",
    "Issue", "FulfillmentPlan", "FulfillmentOutcome",
    "ActiveFilter", "ListQueryState", "ListRequest", "Page",
]
