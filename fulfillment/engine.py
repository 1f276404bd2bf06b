"""
Fulfillment reconciliation engine.

The one place where fulfilled quantities change and order statuses are
derived.  Every operation is pure: it takes the order as last read from the
store, validates the request, and returns a FulfillmentPlan holding an
updated deep copy of the order plus the inventory instructions the caller
must get confirmed.  The input order is never touched, so a refused request
leaves it exactly as it was.

Operations
----------
  apply_fulfillment(order, request)   receive stock (purchase) / stock-out (sales)
  cancel_order(order)                 abandon the unfulfilled remainder
  add_line_items(order, items)        append products to a sales order
  remove_line_item(order, item_id)    drop an untouched sales order item
"""
import logging
from datetime import date
from typing import Callable, Optional

from models.order import LineItem, Order
from models.request import AdjustmentInstruction, FulfillmentRequest, NewLineItem
from models.result import FulfillmentPlan
from .errors import FulfillmentError
from .status import derive_status, policy_for, remaining_quantity
from .validator import FulfillmentValidator

logger = logging.getLogger(__name__)


class FulfillmentEngine:

    def __init__(
        self,
        validator: Optional[FulfillmentValidator] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._today = today or date.today
        self.validator = validator or FulfillmentValidator(today=self._today)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply_fulfillment(self, order: Order, request: FulfillmentRequest) -> FulfillmentPlan:
        """
        Add each request delta to its line item's fulfilled quantity.

        Raises a FulfillmentError subclass (OrderTerminal, UnknownLineItem,
        InvalidDelta, OverFulfillment, InvalidDate) before anything changes.
        """
        _raise_if(self.validator.validate_fulfillment(order, request))

        policy = policy_for(order.kind)
        updated = order.model_copy(deep=True)
        adjustments: list[AdjustmentInstruction] = []

        for line in request.lines:
            if line.delta == 0:
                continue
            item = updated.find_item(line.line_item_id)
            item.fulfilled_quantity += line.delta
            adjustments.append(_instruction(updated, item, line.delta, "consume"))

        updated.status = derive_status(updated.line_items, order.status, policy)
        if request.actual_date:
            updated.actual_date = request.actual_date
        elif updated.actual_date is None:
            updated.actual_date = self._today().isoformat()
        if request.requested_by:
            updated.updated_by = request.requested_by

        logger.info(
            "%s %s: %d line(s) fulfilled, status %s -> %s",
            order.kind, order.reference, len(adjustments), order.status, updated.status,
        )
        return FulfillmentPlan(
            operation="receive" if order.kind == "purchase" else "stock_out",
            previous_status=order.status,
            order=updated,
            adjustments=adjustments,
        )

    def ensure_open(self, order: Order) -> None:
        """Raise OrderTerminal if the order no longer accepts changes."""
        _raise_if(self.validator.validate_open(order))

    def cancel_order(self, order: Order, requested_by: Optional[str] = None) -> FulfillmentPlan:
        """
        Move the order to CANCELLED and release every unfulfilled remainder.

        Already-fulfilled quantity stays where it is.
        """
        _raise_if(self.validator.validate_cancel(order))

        policy = policy_for(order.kind)
        updated = order.model_copy(deep=True)
        updated.status = policy.cancelled
        if requested_by:
            updated.updated_by = requested_by

        adjustments = [
            _instruction(updated, item, remaining_quantity(item), "release")
            for item in updated.line_items
            if remaining_quantity(item) > 0
        ]

        logger.info(
            "%s %s cancelled; releasing %d unit(s) across %d item(s)",
            order.kind, order.reference,
            sum(a.quantity_delta for a in adjustments), len(adjustments),
        )
        return FulfillmentPlan(
            operation="cancel",
            previous_status=order.status,
            order=updated,
            adjustments=adjustments,
        )

    def add_line_items(
        self,
        order: Order,
        items: list[NewLineItem],
        requested_by: Optional[str] = None,
    ) -> FulfillmentPlan:
        """Append new items (sales orders only) and reserve their stock."""
        _raise_if(self.validator.validate_add_items(order, items))

        policy = policy_for(order.kind)
        updated = order.model_copy(deep=True)
        adjustments: list[AdjustmentInstruction] = []

        for new in items:
            item = LineItem(
                product_id=new.product_id,
                product_name=new.product_name,
                category=new.category,
                ordered_quantity=new.quantity,
                unit_price=new.unit_price,
            )
            updated.line_items.append(item)
            adjustments.append(_instruction(updated, item, new.quantity, "reserve"))

        updated.status = derive_status(updated.line_items, order.status, policy)
        if requested_by:
            updated.updated_by = requested_by

        logger.info("sales %s: added %d item(s)", order.reference, len(items))
        return FulfillmentPlan(
            operation="add_items",
            previous_status=order.status,
            order=updated,
            adjustments=adjustments,
        )

    def remove_line_item(
        self,
        order: Order,
        line_item_id: int,
        requested_by: Optional[str] = None,
    ) -> FulfillmentPlan:
        """Remove an item with nothing fulfilled yet and release its reservation."""
        _raise_if(self.validator.validate_remove_item(order, line_item_id))

        policy = policy_for(order.kind)
        updated = order.model_copy(deep=True)
        item = updated.find_item(line_item_id)
        updated.line_items = [i for i in updated.line_items if i.id != line_item_id]
        updated.status = derive_status(updated.line_items, order.status, policy)
        if requested_by:
            updated.updated_by = requested_by

        logger.info(
            "sales %s: removed item %s (%s)", order.reference, line_item_id, item.product_id,
        )
        return FulfillmentPlan(
            operation="remove_item",
            previous_status=order.status,
            order=updated,
            adjustments=[_instruction(updated, item, item.ordered_quantity, "release")],
        )


def _instruction(order: Order, item: LineItem, quantity: int, direction: str) -> AdjustmentInstruction:
    return AdjustmentInstruction(
        product_id=item.product_id,
        quantity_delta=quantity,
        direction=direction,
        order_kind=order.kind,
        reference=order.reference,
    )


def _raise_if(issue) -> None:
    if issue is not None:
        raise FulfillmentError.from_issue(issue)
