"""
Integration tests for database operations.
"""
import json
import sqlite3
from datetime import date

import pytest

from conftest import make_purchase_order, make_sales_order
from fulfillment.database import StaleOrderError
from models.order import LineItem
from models.query import ListRequest

TODAY = date(2024, 6, 15)


@pytest.mark.integration
class TestDatabase:
    """Integration tests for Database class."""

    def test_insert_and_get_order(self, test_db):
        order_id = test_db.insert_order(make_sales_order(order_id=None, with_ids=False))

        order = test_db.get_order(order_id)
        assert order is not None
        assert order.kind == "sales"
        assert order.reference == "SO-1001"
        assert order.version == 0
        assert [i.product_id for i in order.line_items] == ["TOY-1", "TOY-2"]
        assert all(i.id is not None for i in order.line_items)

        audit = test_db.get_audit_log(order_id)
        assert [e["action"] for e in audit] == ["imported"]
        assert json.loads(audit[0]["detail"]) == {"status": "PENDING"}

    def test_get_by_reference_is_case_insensitive(self, test_db, stored_purchase_order):
        assert test_db.get_order_by_reference("po-2024-001").id == stored_purchase_order.id
        assert test_db.get_order_by_reference("PO-404") is None

    def test_duplicate_reference_rejected(self, test_db, stored_purchase_order):
        with pytest.raises(sqlite3.IntegrityError):
            test_db.insert_order(make_purchase_order(order_id=None, item_id=None))

    def test_insert_rejects_unknown_status(self, test_db):
        with pytest.raises(ValueError):
            test_db.insert_order(make_purchase_order(status="PENDING", order_id=None, item_id=None))

    def test_save_order_bumps_version(self, test_db, stored_purchase_order):
        order = stored_purchase_order.model_copy(deep=True)
        order.line_items[0].fulfilled_quantity = 40
        order.status = "PARTIALLY_RECEIVED"

        assert test_db.save_order(order, expected_version=0) == 1

        stored = test_db.get_order(order.id)
        assert stored.version == 1
        assert stored.status == "PARTIALLY_RECEIVED"
        assert stored.line_items[0].fulfilled_quantity == 40

    def test_stale_version_changes_nothing(self, test_db, stored_purchase_order):
        order = stored_purchase_order.model_copy(deep=True)
        order.status = "PARTIALLY_RECEIVED"
        order.line_items[0].fulfilled_quantity = 10
        test_db.save_order(order, expected_version=0)

        order.line_items[0].fulfilled_quantity = 99
        with pytest.raises(StaleOrderError):
            test_db.save_order(order, expected_version=0)

        stored = test_db.get_order(order.id)
        assert stored.version == 1
        assert stored.line_items[0].fulfilled_quantity == 10

    def test_fulfilled_above_ordered_is_refused_at_rest(self, test_db, stored_purchase_order):
        order = stored_purchase_order.model_copy(deep=True)
        order.line_items[0].fulfilled_quantity = 101
        with pytest.raises(sqlite3.IntegrityError):
            test_db.save_order(order, expected_version=0)
        assert test_db.get_order(order.id).version == 0

    def test_save_order_syncs_items(self, test_db, stored_sales_order):
        order = stored_sales_order.model_copy(deep=True)
        removed = order.line_items.pop(1)
        order.line_items.append(LineItem(product_id="TOY-3", ordered_quantity=2))
        test_db.save_order(order, expected_version=0)

        stored = test_db.get_order(order.id)
        assert [i.product_id for i in stored.line_items] == ["TOY-1", "TOY-3"]

        # Restoring the original record brings the removed row back with its id.
        test_db.save_order(stored_sales_order, expected_version=1)
        restored = test_db.get_order(order.id)
        assert [i.product_id for i in restored.line_items] == ["TOY-1", "TOY-2"]
        assert restored.find_item(removed.id) is not None

    def test_transaction_rolls_back_order_and_stock_together(self, test_db, stored_sales_order):
        order = stored_sales_order.model_copy(deep=True)
        order.line_items[0].fulfilled_quantity = 5
        order.status = "PARTIALLY_APPROVED"

        with pytest.raises(RuntimeError):
            with test_db.transaction() as conn:
                test_db.save_order(order, expected_version=0, conn=conn)
                test_db.adjust_stock("TOY-1", current_delta=-5, reserved_delta=-5, conn=conn)
                raise RuntimeError("collaborator refused")

        stored = test_db.get_order(stored_sales_order.id)
        assert stored.version == 0
        assert stored.line_items[0].fulfilled_quantity == 0
        assert test_db.get_inventory("TOY-1")["current_stock"] == 20


@pytest.mark.integration
class TestListOrders:

    @pytest.fixture
    def purchase_orders(self, test_db):
        rows = [
            ("PO-A", "DELIVERY_IN_PROCESS", 0, "2024-06-10", "Acme Toys Ltd"),
            ("PO-B", "AWAITING_APPROVAL", 0, "2024-06-20", "Globex"),
            ("PO-C", "PARTIALLY_RECEIVED", 30, "2024-06-14", "Globex"),
            ("PO-D", "RECEIVED", 100, "2024-06-01", "Acme Toys Ltd"),
            ("PO-E", "DELIVERY_IN_PROCESS", 0, None, "Initech"),
        ]
        for ref, status, received, due, supplier in rows:
            order = make_purchase_order(
                reference=ref, status=status, received=received, due_date=due,
                order_id=None, item_id=None,
            )
            order.counterparty = supplier
            test_db.insert_order(order)

    def test_all_lists_open_orders_only(self, test_db, purchase_orders):
        page = test_db.list_orders("purchase", ListRequest(mode="all"), today=TODAY)
        assert [o.reference for o in page.content] == ["PO-A", "PO-C", "PO-B", "PO-E"]
        assert page.total_elements == 4
        assert page.total_pages == 1

    def test_search_is_case_insensitive(self, test_db, purchase_orders):
        page = test_db.list_orders("purchase", ListRequest(mode="search", text="globex"), today=TODAY)
        assert {o.reference for o in page.content} == {"PO-B", "PO-C"}

    def test_search_matches_product_name(self, test_db, purchase_orders):
        page = test_db.list_orders("purchase", ListRequest(mode="search", text="train"), today=TODAY)
        assert page.total_elements == 4

    @pytest.mark.parametrize("text", ["%", "PO_A", "Acme%Ltd"])
    def test_search_wildcards_match_literally(self, test_db, purchase_orders, text):
        page = test_db.list_orders("purchase", ListRequest(mode="search", text=text), today=TODAY)
        assert page.total_elements == 0

    def test_filter_by_status(self, test_db, purchase_orders):
        request = ListRequest(mode="filter", filter_type="status", filter_value="partially_received")
        page = test_db.list_orders("purchase", request, today=TODAY)
        assert [o.reference for o in page.content] == ["PO-C"]

    def test_filter_by_unknown_status(self, test_db, purchase_orders):
        request = ListRequest(mode="filter", filter_type="status", filter_value="SHIPPED")
        with pytest.raises(ValueError):
            test_db.list_orders("purchase", request, today=TODAY)

    def test_filter_by_category(self, test_db, purchase_orders, stored_sales_order):
        request = ListRequest(mode="filter", filter_type="category", filter_value="dolls")
        page = test_db.list_orders("sales", request, today=TODAY)
        assert [o.reference for o in page.content] == ["SO-1001"]
        assert test_db.list_orders("purchase", request, today=TODAY).total_elements == 0

    def test_overdue(self, test_db, purchase_orders):
        page = test_db.list_orders("purchase", ListRequest(mode="overdue"), today=TODAY)
        assert [o.reference for o in page.content] == ["PO-A", "PO-C"]

    def test_urgent(self, test_db, stored_sales_order):
        page = test_db.list_orders("sales", ListRequest(mode="urgent"), today=TODAY, urgent_days=2)
        assert [o.reference for o in page.content] == ["SO-1001"]
        page = test_db.list_orders("sales", ListRequest(mode="urgent"), today=date(2024, 6, 10), urgent_days=2)
        assert page.total_elements == 0

    def test_pagination(self, test_db, purchase_orders):
        first = test_db.list_orders("purchase", ListRequest(mode="all"), size=3, today=TODAY)
        second = test_db.list_orders("purchase", ListRequest(mode="all", page=1), size=3, today=TODAY)
        assert first.total_pages == 2
        assert len(first.content) == 3
        assert [o.reference for o in second.content] == ["PO-E"]
        assert second.page == 1

    def test_summary(self, test_db, purchase_orders):
        summary = test_db.get_summary("purchase", today=TODAY)
        assert summary["total"] == 5
        assert summary["open"] == 4
        assert summary["by_status"]["RECEIVED"] == 1
        assert summary["overdue"] == 2


@pytest.mark.integration
class TestInventoryTable:

    def test_adjust_stock_with_guards(self, test_db):
        test_db.upsert_inventory("TOY-1", current_stock=10, reserved_stock=6)

        assert test_db.adjust_stock("TOY-1", reserved_delta=5, min_available=5) is False
        assert test_db.adjust_stock("TOY-1", reserved_delta=4, min_available=4) is True
        assert test_db.get_inventory("TOY-1")["reserved_stock"] == 10

        assert test_db.adjust_stock("TOY-1", current_delta=-11, min_current=11) is False
        assert test_db.adjust_stock("TOY-1", current_delta=-3, reserved_delta=-3, min_current=3) is True
        row = test_db.get_inventory("TOY-1")
        assert (row["current_stock"], row["reserved_stock"]) == (7, 7)

    def test_reserved_and_incoming_floor_at_zero(self, test_db):
        test_db.upsert_inventory("TOY-1", current_stock=1, reserved_stock=2, incoming_stock=3)
        test_db.adjust_stock("TOY-1", reserved_delta=-10, incoming_delta=-10)
        row = test_db.get_inventory("TOY-1")
        assert (row["reserved_stock"], row["incoming_stock"]) == (0, 0)

    def test_missing_product(self, test_db):
        assert test_db.adjust_stock("NOPE", current_delta=1) is False
        assert test_db.get_inventory("NOPE") is None
