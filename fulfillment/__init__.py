from .engine import FulfillmentEngine
from .errors import (
    CollaboratorFailure,
    ConcurrencyConflict,
    DuplicateProduct,
    FulfillmentError,
    InvalidDate,
    InvalidDelta,
    ItemNotRemovable,
    OrderNotFound,
    OrderTerminal,
    OverFulfillment,
    UnknownLineItem,
    UnsupportedOperation,
)
from .status import PURCHASE_POLICY, SALES_POLICY, StatusPolicy, derive_status, policy_for
from .validator import FulfillmentValidator

__all__ = [
    "FulfillmentEngine", "FulfillmentValidator", "StatusPolicy",
    "PURCHASE_POLICY", "SALES_POLICY", "derive_status", "policy_for",
    "FulfillmentError", "OrderNotFound", "OrderTerminal", "UnknownLineItem",
    "InvalidDelta", "OverFulfillment", "DuplicateProduct", "ItemNotRemovable",
    "UnsupportedOperation", "InvalidDate", "ConcurrencyConflict", "CollaboratorFailure",
]
