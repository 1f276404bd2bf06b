"""
Dashboard business logic services.
"""
from .views import (
    order_view,
    page_view,
    outcome_view,
    issue_view,
    purchase_order_view,
    sales_order_view,
)

__all__ = [
    "order_view",
    "page_view",
    "outcome_view",
    "issue_view",
    "purchase_order_view",
    "sales_order_view",
]
