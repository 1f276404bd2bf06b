"""
Typed failures raised by the fulfillment engine and service.

Every error carries an Issue (models.result) so callers can render a
precise message, e.g. "Cannot exceed remaining quantity (60)", without
parsing strings.  The `kind` class attribute is stable and is what the
REST layer and CLI switch on.
"""
from typing import Optional

from models.result import Issue


class FulfillmentError(Exception):
    """Base class; raise one of the subclasses below."""

    kind = "fulfillment_error"

    def __init__(
        self,
        message: str,
        line_item_id: Optional[int] = None,
        product_id: Optional[str] = None,
        max_allowed: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.issue = Issue(
            kind=self.kind,
            message=message,
            line_item_id=line_item_id,
            product_id=product_id,
            max_allowed=max_allowed,
        )

    @classmethod
    def from_issue(cls, issue: Issue) -> "FulfillmentError":
        """Build the error subclass matching issue.kind."""
        err_cls = _BY_KIND[issue.kind]
        return err_cls(
            issue.message,
            line_item_id=issue.line_item_id,
            product_id=issue.product_id,
            max_allowed=issue.max_allowed,
        )

    @property
    def message(self) -> str:
        return self.issue.message


class OrderNotFound(FulfillmentError):
    kind = "order_not_found"


class OrderTerminal(FulfillmentError):
    kind = "order_terminal"


class UnknownLineItem(FulfillmentError):
    kind = "unknown_line_item"


class InvalidDelta(FulfillmentError):
    kind = "invalid_delta"


class OverFulfillment(FulfillmentError):
    kind = "over_fulfillment"


class DuplicateProduct(FulfillmentError):
    kind = "duplicate_product"


class ItemNotRemovable(FulfillmentError):
    kind = "item_not_removable"


class UnsupportedOperation(FulfillmentError):
    kind = "unsupported_operation"


class InvalidDate(FulfillmentError):
    kind = "invalid_date"


class ConcurrencyConflict(FulfillmentError):
    kind = "concurrency_conflict"


class CollaboratorFailure(FulfillmentError):
    kind = "collaborator_failure"


_BY_KIND = {
    cls.kind: cls
    for cls in (
        OrderNotFound, OrderTerminal, UnknownLineItem, InvalidDelta,
        OverFulfillment, DuplicateProduct, ItemNotRemovable, UnsupportedOperation, InvalidDate,
        ConcurrencyConflict, CollaboratorFailure,
    )
}
