from typing import Optional, List, Literal

from pydantic import BaseModel, Field

from .order import Order
from .request import AdjustmentInstruction


IssueKind = Literal[
    # Lookup
    "order_not_found",
    "unknown_line_item",
    # State
    "order_terminal",
    "item_not_removable",
    "unsupported_operation",
    # Request content
    "invalid_delta",
    "over_fulfillment",
    "duplicate_product",
    "invalid_date",
    # Runtime
    "concurrency_conflict",
    "collaborator_failure",
]


class Issue(BaseModel):
    """A single reason a fulfillment operation was refused."""
    kind: IssueKind
    message: str                            # Human-readable explanation
    line_item_id: Optional[int] = None      # Offending item, where one applies
    product_id: Optional[str] = None
    max_allowed: Optional[int] = None       # Remaining quantity for over_fulfillment


class FulfillmentPlan(BaseModel):
    """
    The engine's answer to a valid operation: the updated copy of the order
    plus the inventory instructions that must be confirmed before the
    operation counts as successful.
    """
    operation: str                          # receive | stock_out | cancel | add_items | remove_item
    previous_status: str
    order: Order
    adjustments: List[AdjustmentInstruction] = Field(default_factory=list)

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.order.status


class FulfillmentOutcome(BaseModel):
    """What the service reports to its caller after a committed operation."""
    order_id: int
    reference: str
    operation: str
    status: str
    previous_status: str
    version: int
    adjustments: List[AdjustmentInstruction] = Field(default_factory=list)
    attempts: int = 1                       # >1 when a version conflict forced a re-read
