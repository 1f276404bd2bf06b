from enum import Enum
from typing import Optional, List, Literal

from pydantic import BaseModel, Field


OrderKind = Literal["purchase", "sales"]


class PurchaseOrderStatus(str, Enum):
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    DELIVERY_IN_PROCESS = "DELIVERY_IN_PROCESS"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def description(self) -> str:
        return _PO_DESCRIPTIONS[self]


class SalesOrderStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_APPROVED = "PARTIALLY_APPROVED"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    APPROVED = "APPROVED"
    DELIVERY_IN_PROCESS = "DELIVERY_IN_PROCESS"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def description(self) -> str:
        return _SO_DESCRIPTIONS[self]


_PO_DESCRIPTIONS = {
    PurchaseOrderStatus.AWAITING_APPROVAL:   "Awaiting supplier confirmation",
    PurchaseOrderStatus.DELIVERY_IN_PROCESS: "Order placed, awaiting arrival",
    PurchaseOrderStatus.PARTIALLY_RECEIVED:  "Some items received, more are expected",
    PurchaseOrderStatus.RECEIVED:            "All ordered items have been received",
    PurchaseOrderStatus.CANCELLED:           "Order was cancelled before full receipt",
    PurchaseOrderStatus.FAILED:              "Delivery failed or was rejected",
}

_SO_DESCRIPTIONS = {
    SalesOrderStatus.PENDING:             "Order created, awaiting confirmation",
    SalesOrderStatus.PARTIALLY_APPROVED:  "Order partially confirmed",
    SalesOrderStatus.PARTIALLY_DELIVERED: "Order partially shipped",
    SalesOrderStatus.APPROVED:            "Order confirmed, ready for delivery",
    SalesOrderStatus.DELIVERY_IN_PROCESS: "Order is being delivered",
    SalesOrderStatus.DELIVERED:           "Order is delivered to customer",
    SalesOrderStatus.CANCELLED:           "Order is cancelled",
    SalesOrderStatus.COMPLETED:           "Order is completed",
}


class LineItem(BaseModel):
    """One product-and-quantity entry owned by an Order."""
    id: Optional[int] = None                # Assigned by the store on insert
    product_id: str
    product_name: Optional[str] = None
    category: Optional[str] = None          # e.g. "EDUCATION", "DOLLS"
    ordered_quantity: int = Field(gt=0)
    fulfilled_quantity: int = Field(default=0, ge=0)
    unit_price: float = 0.0

    @property
    def remaining_quantity(self) -> int:
        """Display mirror only; authorisation goes through the engine."""
        return max(0, self.ordered_quantity - self.fulfilled_quantity)


class Order(BaseModel):
    """
    A purchase or sales order as last read from the order store.

    `reference` is the human-readable PO number / sales order reference.
    `status` holds the raw enum value; use fulfillment.status to interpret it.
    Dates are ISO 8601 strings (YYYY-MM-DD).
    """
    id: Optional[int] = None
    kind: OrderKind
    reference: str
    status: str
    counterparty: Optional[str] = None      # Supplier (purchase) or customer (sales)
    order_date: Optional[str] = None
    due_date: Optional[str] = None          # Expected arrival / estimated delivery
    actual_date: Optional[str] = None       # Actual arrival / delivery date
    notes: Optional[str] = None
    updated_by: Optional[str] = None
    version: int = 0                        # Optimistic-concurrency token
    line_items: List[LineItem] = Field(default_factory=list)

    def find_item(self, line_item_id: int) -> Optional[LineItem]:
        for item in self.line_items:
            if item.id == line_item_id:
                return item
        return None

    def find_item_by_product(self, product_id: str) -> Optional[LineItem]:
        for item in self.line_items:
            if item.product_id == product_id:
                return item
        return None
