"""
Fulfillment request validation.

Checks run in a fixed order and stop at the first failure, so the caller
always gets exactly one Issue describing the earliest problem:

  Receive / stock-out:
    1. order is not terminal
    2. every line_item_id belongs to the order
    3. every delta is a non-negative integer, no line repeated
    4. no delta exceeds the item's remaining quantity
    5. at least one delta is positive
    6. actual date (if given) is a valid date, not in the future

  Cancel:       order is not terminal
  Add items:    sales order, open, items non-empty, whole positive quantities,
                no duplicate products
  Remove item:  sales order, open, item belongs, nothing fulfilled, not the last item

Nothing here mutates the order.
"""
import logging
from datetime import date
from typing import Any, Callable, Iterable, Optional

from models.order import Order
from models.request import FulfillmentRequest, NewLineItem
from models.result import Issue
from .status import StatusPolicy, policy_for, remaining_quantity

logger = logging.getLogger(__name__)


class FulfillmentValidator:
    """
    Usage:
        validator = FulfillmentValidator()
        issue = validator.validate_fulfillment(order, request)
        if issue: ...
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def validate_fulfillment(self, order: Order, request: FulfillmentRequest) -> Optional[Issue]:
        policy = policy_for(order.kind)
        checks = (
            lambda: self._check_not_terminal(order, policy),
            lambda: self._check_items_belong(order, (l.line_item_id for l in request.lines)),
            lambda: self._check_deltas(request),
            lambda: self._check_remaining(order, request),
            lambda: self._check_any_positive(request),
            lambda: self._check_actual_date(request.actual_date),
        )
        return _first_issue(checks)

    def validate_open(self, order: Order) -> Optional[Issue]:
        return self._check_not_terminal(order, policy_for(order.kind))

    def validate_cancel(self, order: Order) -> Optional[Issue]:
        return self.validate_open(order)

    def validate_add_items(self, order: Order, items: list[NewLineItem]) -> Optional[Issue]:
        policy = policy_for(order.kind)
        checks = (
            lambda: self._check_sales_only(order, "add items to"),
            lambda: self._check_not_terminal(order, policy),
            lambda: self._check_new_items(order, items),
        )
        return _first_issue(checks)

    def validate_remove_item(self, order: Order, line_item_id: int) -> Optional[Issue]:
        policy = policy_for(order.kind)
        checks = (
            lambda: self._check_sales_only(order, "remove items from"),
            lambda: self._check_not_terminal(order, policy),
            lambda: self._check_items_belong(order, [line_item_id]),
            lambda: self._check_removable(order, line_item_id),
        )
        return _first_issue(checks)

    # ------------------------------------------------------------------
    # Order-level checks
    # ------------------------------------------------------------------

    def _check_not_terminal(self, order: Order, policy: StatusPolicy) -> Optional[Issue]:
        if policy.is_terminal(order.status):
            return Issue(
                kind="order_terminal",
                message=f"Order {order.reference} is finalized with status {order.status}",
            )
        return None

    def _check_sales_only(self, order: Order, action: str) -> Optional[Issue]:
        if order.kind != "sales":
            # Purchase orders carry exactly one item for their whole life.
            return Issue(
                kind="unsupported_operation",
                message=f"Cannot {action} purchase order {order.reference}",
            )
        return None

    # ------------------------------------------------------------------
    # Line-level checks
    # ------------------------------------------------------------------

    def _check_items_belong(self, order: Order, line_item_ids: Iterable[int]) -> Optional[Issue]:
        for line_item_id in line_item_ids:
            if order.find_item(line_item_id) is None:
                return Issue(
                    kind="unknown_line_item",
                    message=f"Item {line_item_id} not found in order {order.reference}",
                    line_item_id=line_item_id,
                )
        return None

    def _check_deltas(self, request: FulfillmentRequest) -> Optional[Issue]:
        if not request.lines:
            return Issue(kind="invalid_delta", message="Request contains no items")
        seen: set[int] = set()
        for line in request.lines:
            if not _is_whole_number(line.delta):
                return Issue(
                    kind="invalid_delta",
                    message=f"Quantity for item {line.line_item_id} must be a whole number",
                    line_item_id=line.line_item_id,
                )
            if line.delta < 0:
                return Issue(
                    kind="invalid_delta",
                    message=f"Quantity for item {line.line_item_id} cannot be negative",
                    line_item_id=line.line_item_id,
                )
            if line.line_item_id in seen:
                return Issue(
                    kind="invalid_delta",
                    message=f"Item {line.line_item_id} appears more than once in the request",
                    line_item_id=line.line_item_id,
                )
            seen.add(line.line_item_id)
        return None

    def _check_remaining(self, order: Order, request: FulfillmentRequest) -> Optional[Issue]:
        for line in request.lines:
            item = order.find_item(line.line_item_id)
            remaining = remaining_quantity(item)
            if line.delta > remaining:
                return Issue(
                    kind="over_fulfillment",
                    message=f"Cannot exceed remaining quantity ({remaining}) for {item.product_id}",
                    line_item_id=item.id,
                    product_id=item.product_id,
                    max_allowed=remaining,
                )
        return None

    def _check_any_positive(self, request: FulfillmentRequest) -> Optional[Issue]:
        if not any(line.delta > 0 for line in request.lines):
            return Issue(
                kind="invalid_delta",
                message="At least one item must have quantity greater than 0",
            )
        return None

    def _check_actual_date(self, actual_date: Optional[str]) -> Optional[Issue]:
        if not actual_date:
            return None
        try:
            parsed = date.fromisoformat(actual_date)
        except ValueError:
            return Issue(kind="invalid_date", message=f"Invalid date: {actual_date!r}")
        if parsed > self._today():
            return Issue(kind="invalid_date", message="Actual date cannot be in the future")
        return None

    def _check_new_items(self, order: Order, items: list[NewLineItem]) -> Optional[Issue]:
        if not items:
            return Issue(kind="invalid_delta", message="Order items cannot be empty")
        seen: set[str] = set()
        for item in items:
            if item.product_id in seen or order.find_item_by_product(item.product_id):
                return Issue(
                    kind="duplicate_product",
                    message=f"Duplicate product found in order: {item.product_id}",
                    product_id=item.product_id,
                )
            seen.add(item.product_id)
            if not _is_whole_number(item.quantity) or item.quantity <= 0:
                return Issue(
                    kind="invalid_delta",
                    message="Quantity must be a whole number greater than zero",
                    product_id=item.product_id,
                )
        return None

    def _check_removable(self, order: Order, line_item_id: int) -> Optional[Issue]:
        item = order.find_item(line_item_id)
        if item.fulfilled_quantity > 0:
            return Issue(
                kind="item_not_removable",
                message=f"Item {line_item_id} already has {item.fulfilled_quantity} fulfilled and cannot be removed",
                line_item_id=line_item_id,
                product_id=item.product_id,
            )
        if len(order.line_items) == 1:
            return Issue(
                kind="item_not_removable",
                message="Cannot remove the only item of an order; cancel the order instead",
                line_item_id=line_item_id,
                product_id=item.product_id,
            )
        return None


def _is_whole_number(value: Any) -> bool:
    # bool is a subclass of int; True must not count as a quantity of 1.
    return isinstance(value, int) and not isinstance(value, bool)


def _first_issue(checks) -> Optional[Issue]:
    for check in checks:
        issue = check()
        if issue is not None:
            logger.debug("Validation failed: %s: %s", issue.kind, issue.message)
            return issue
    return None
