from typing import Any, Optional, List, Literal

from pydantic import BaseModel, Field

from .order import OrderKind


AdjustmentDirection = Literal["consume", "release", "reserve"]


class FulfillmentLine(BaseModel):
    """One (line item, quantity delta) pair of a fulfillment request."""
    line_item_id: int
    # Not coerced: pydantic would turn True or 2.0 into an int.  The validator
    # rejects anything but a real int with a typed invalid_delta.
    delta: Any


class FulfillmentRequest(BaseModel):
    """Receive-stock (purchase) or stock-out (sales) request against one order."""
    lines: List[FulfillmentLine] = Field(default_factory=list)
    actual_date: Optional[str] = None       # YYYY-MM-DD; arrival or ship date
    requested_by: Optional[str] = None


class NewLineItem(BaseModel):
    """An item appended to a sales order by the add-items operation."""
    product_id: str
    quantity: Any                           # whole number > 0, checked by the validator
    unit_price: float = 0.0
    product_name: Optional[str] = None
    category: Optional[str] = None


class AdjustmentInstruction(BaseModel):
    """
    Inventory instruction emitted by the engine for the inventory
    collaborator to apply.  The engine never adjusts stock itself.
    """
    product_id: str
    quantity_delta: int
    direction: AdjustmentDirection
    order_kind: OrderKind
    reference: str                          # Order reference, for stock movement logs
