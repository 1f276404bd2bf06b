"""
Unit tests for fulfillment request validation.
"""
from datetime import date
from typing import get_args

import pytest
from pydantic import ValidationError

from conftest import FIXED_TODAY, make_purchase_order, make_sales_order
from fulfillment.errors import FulfillmentError
from fulfillment.validator import FulfillmentValidator
from models.request import FulfillmentLine, FulfillmentRequest, NewLineItem
from models.result import Issue, IssueKind


@pytest.mark.unit
class TestFulfillmentValidator:
    """Tests for FulfillmentValidator class."""

    @pytest.fixture
    def validator(self):
        """Provide a validator with a fixed clock."""
        return FulfillmentValidator(today=lambda: FIXED_TODAY)

    def test_valid_request_has_no_issue(self, validator, purchase_order):
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=10, delta=40)])
        assert validator.validate_fulfillment(purchase_order, request) is None

    def test_terminal_check_runs_before_item_check(self, validator):
        order = make_purchase_order(status="CANCELLED")
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=99, delta=1)])
        issue = validator.validate_fulfillment(order, request)
        assert issue.kind == "order_terminal"

    def test_item_check_runs_before_delta_check(self, validator, purchase_order):
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=99, delta=-1)])
        assert validator.validate_fulfillment(purchase_order, request).kind == "unknown_line_item"

    def test_negative_delta_runs_before_remaining_check(self, validator, sales_order):
        request = FulfillmentRequest(lines=[
            FulfillmentLine(line_item_id=21, delta=50),
            FulfillmentLine(line_item_id=22, delta=-1),
        ])
        assert validator.validate_fulfillment(sales_order, request).kind == "invalid_delta"

    @pytest.mark.parametrize("delta", [True, False, 2.5, 2.0, "3", None])
    def test_non_integer_delta(self, validator, purchase_order, delta):
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=10, delta=delta)])
        assert request.lines[0].delta is delta
        issue = validator.validate_fulfillment(purchase_order, request)
        assert issue.kind == "invalid_delta"
        assert "whole number" in issue.message

    def test_boolean_delta_from_dict_is_not_coerced(self, validator, sales_order):
        request = FulfillmentRequest.model_validate(
            {"lines": [{"line_item_id": 21, "delta": True}]}
        )
        assert validator.validate_fulfillment(sales_order, request).kind == "invalid_delta"

    def test_empty_request(self, validator, purchase_order):
        issue = validator.validate_fulfillment(purchase_order, FulfillmentRequest())
        assert issue.kind == "invalid_delta"

    def test_over_fulfillment_carries_max(self, validator):
        order = make_purchase_order(received=90, status="PARTIALLY_RECEIVED")
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=10, delta=11)])
        issue = validator.validate_fulfillment(order, request)
        assert issue.kind == "over_fulfillment"
        assert issue.max_allowed == 10
        assert issue.product_id == "TOY-100"

    def test_exact_remaining_is_allowed(self, validator):
        order = make_purchase_order(received=90, status="PARTIALLY_RECEIVED")
        request = FulfillmentRequest(lines=[FulfillmentLine(line_item_id=10, delta=10)])
        assert validator.validate_fulfillment(order, request) is None

    @pytest.mark.parametrize("actual_date,ok", [
        ("2024-06-15", True),
        ("2024-06-01", True),
        ("2024-06-16", False),
        ("15/06/2024", False),
    ])
    def test_actual_date(self, validator, purchase_order, actual_date, ok):
        request = FulfillmentRequest(
            lines=[FulfillmentLine(line_item_id=10, delta=1)], actual_date=actual_date,
        )
        issue = validator.validate_fulfillment(purchase_order, request)
        if ok:
            assert issue is None
        else:
            assert issue.kind == "invalid_date"

    def test_default_clock_is_today(self, purchase_order):
        validator = FulfillmentValidator()
        request = FulfillmentRequest(
            lines=[FulfillmentLine(line_item_id=10, delta=1)],
            actual_date=date.today().isoformat(),
        )
        assert validator.validate_fulfillment(purchase_order, request) is None

    def test_cancel_open_order(self, validator, sales_order):
        assert validator.validate_cancel(sales_order) is None

    def test_cancel_completed_order(self, validator):
        order = make_sales_order(approved=(5, 3), status="COMPLETED")
        assert validator.validate_cancel(order).kind == "order_terminal"

    def test_remove_item_from_purchase_order(self, validator, purchase_order):
        issue = validator.validate_remove_item(purchase_order, 10)
        assert issue.kind == "unsupported_operation"

    def test_add_items_with_boolean_quantity(self, validator, sales_order):
        items = [NewLineItem(product_id="TOY-9", quantity=True)]
        assert validator.validate_add_items(sales_order, items).kind == "invalid_delta"

    def test_add_items_empty(self, validator, sales_order):
        assert validator.validate_add_items(sales_order, []).kind == "invalid_delta"


@pytest.mark.unit
class TestIssue:
    """Issue kinds are a closed set."""

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            Issue(kind="not_a_kind", message="x")

    def test_every_kind_maps_to_an_error(self):
        for kind in get_args(IssueKind):
            error = FulfillmentError.from_issue(Issue(kind=kind, message="x"))
            assert error.kind == kind
