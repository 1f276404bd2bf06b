"""
Status policies for the two order instantiations, and the pure status
derivation shared by both.

Purchase orders:
  open      AWAITING_APPROVAL, DELIVERY_IN_PROCESS, PARTIALLY_RECEIVED
  partial   PARTIALLY_RECEIVED
  complete  RECEIVED
  terminal  RECEIVED, CANCELLED, FAILED

Sales orders:
  open      PENDING, PARTIALLY_APPROVED, PARTIALLY_DELIVERED
  partial   PARTIALLY_APPROVED
  complete  COMPLETED
  terminal  APPROVED, DELIVERY_IN_PROCESS, DELIVERED, COMPLETED, CANCELLED

FAILED (purchase) and the post-approval sales states are set by other
systems; the engine never produces them but treats them as terminal.
"""
from dataclasses import dataclass
from typing import Iterable

from models.order import LineItem, Order, PurchaseOrderStatus, SalesOrderStatus


@dataclass(frozen=True)
class StatusPolicy:
    kind: str
    statuses: frozenset
    open_statuses: frozenset
    terminal_statuses: frozenset
    initial: str
    partial: str
    complete: str
    cancelled: str

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_statuses

    def is_open(self, status: str) -> bool:
        return status in self.open_statuses

    def validate(self, status: str) -> str:
        """Return *status* upper-cased, or raise ValueError if unknown."""
        value = (status or "").strip().upper()
        if value not in self.statuses:
            raise ValueError(
                f"Invalid {self.kind} order status {status!r}. "
                f"Must be one of {sorted(self.statuses)}"
            )
        return value


PURCHASE_POLICY = StatusPolicy(
    kind="purchase",
    statuses=frozenset(s.value for s in PurchaseOrderStatus),
    open_statuses=frozenset({
        PurchaseOrderStatus.AWAITING_APPROVAL.value,
        PurchaseOrderStatus.DELIVERY_IN_PROCESS.value,
        PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
    }),
    terminal_statuses=frozenset({
        PurchaseOrderStatus.RECEIVED.value,
        PurchaseOrderStatus.CANCELLED.value,
        PurchaseOrderStatus.FAILED.value,
    }),
    initial=PurchaseOrderStatus.AWAITING_APPROVAL.value,
    partial=PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
    complete=PurchaseOrderStatus.RECEIVED.value,
    cancelled=PurchaseOrderStatus.CANCELLED.value,
)

SALES_POLICY = StatusPolicy(
    kind="sales",
    statuses=frozenset(s.value for s in SalesOrderStatus),
    open_statuses=frozenset({
        SalesOrderStatus.PENDING.value,
        SalesOrderStatus.PARTIALLY_APPROVED.value,
        SalesOrderStatus.PARTIALLY_DELIVERED.value,
    }),
    terminal_statuses=frozenset({
        SalesOrderStatus.APPROVED.value,
        SalesOrderStatus.DELIVERY_IN_PROCESS.value,
        SalesOrderStatus.DELIVERED.value,
        SalesOrderStatus.COMPLETED.value,
        SalesOrderStatus.CANCELLED.value,
    }),
    initial=SalesOrderStatus.PENDING.value,
    partial=SalesOrderStatus.PARTIALLY_APPROVED.value,
    complete=SalesOrderStatus.COMPLETED.value,
    cancelled=SalesOrderStatus.CANCELLED.value,
)

_POLICIES = {"purchase": PURCHASE_POLICY, "sales": SALES_POLICY}


def policy_for(kind: str) -> StatusPolicy:
    try:
        return _POLICIES[kind]
    except KeyError:
        raise ValueError(f"Unknown order kind {kind!r}") from None


def remaining_quantity(item: LineItem) -> int:
    """ordered - fulfilled, clamped at zero."""
    return max(0, item.ordered_quantity - item.fulfilled_quantity)


def derive_status(items: Iterable[LineItem], current: str, policy: StatusPolicy) -> str:
    """
    Status as a pure function of the line items.

    All items complete -> policy.complete; any progress -> policy.partial;
    otherwise the current (pre-update) status is kept.
    """
    items = list(items)
    if items and all(i.fulfilled_quantity == i.ordered_quantity for i in items):
        return policy.complete
    if any(i.fulfilled_quantity > 0 for i in items):
        return policy.partial
    return current


def expected_status(order: Order) -> str:
    """
    The status an order must carry given its items.

    Cancelled orders and states set by other systems are taken as stored.
    A partial or complete claim with no progress behind it maps back to the
    policy's initial status.
    """
    policy = policy_for(order.kind)
    status = order.status
    if status != policy.complete and not policy.is_open(status):
        return status
    items = order.line_items
    if items and all(i.fulfilled_quantity == i.ordered_quantity for i in items):
        return policy.complete
    if any(i.fulfilled_quantity > 0 for i in items):
        return policy.partial
    if status in (policy.partial, policy.complete):
        return policy.initial
    return status
