"""
Integration tests for CSV order import.
"""
import pytest

from fulfillment.loader import OrderLoader


@pytest.mark.integration
class TestOrderLoader:

    @pytest.fixture
    def loader(self, sample_orders_csv, sample_order_items_csv, sample_inventory_csv):
        return OrderLoader(sample_orders_csv, sample_order_items_csv, sample_inventory_csv)

    def test_load_orders(self, loader):
        orders = {o.reference: o for o in loader.load_orders()}

        assert set(orders) == {"PO-2024-010", "PO-2024-011", "SO-2001", "SO-2002"}
        assert orders["PO-2024-011"].line_items[0].fulfilled_quantity == 20
        assert orders["PO-2024-011"].notes == "Second batch"
        assert orders["SO-2001"].line_items[1].category == "DOLLS"
        assert orders["PO-2024-010"].notes is None

    def test_inconsistent_status_is_rejected(self, loader):
        loader.load_orders()
        assert loader.rejected == ["PO-2024-012"]

    def test_purchase_order_with_two_items_is_rejected(self, temp_dir):
        (temp_dir / "o.csv").write_text(
            "reference,kind,status,counterparty,order_date,due_date,notes\n"
            "PO-X,purchase,AWAITING_APPROVAL,Acme,2024-06-01,2024-06-10,\n"
        )
        (temp_dir / "i.csv").write_text(
            "reference,product_id,product_name,category,quantity,fulfilled_quantity,unit_price\n"
            "PO-X,A,,,1,0,1\n"
            "PO-X,B,,,1,0,1\n"
        )
        loader = OrderLoader(temp_dir / "o.csv", temp_dir / "i.csv")
        assert loader.load_orders() == []
        assert loader.rejected == ["PO-X"]

    def test_import_is_idempotent(self, loader, test_db):
        first = loader.import_into(test_db)
        assert first["inserted"] == 4
        assert first["inventory_rows"] == 2
        assert test_db.get_inventory("TOY-200")["incoming_stock"] == 30

        again = OrderLoader(loader.orders_csv, loader.items_csv).import_into(test_db)
        assert again["inserted"] == 0
        assert again["skipped"] == 4

    def test_missing_files(self, temp_dir):
        loader = OrderLoader(temp_dir / "nope.csv", temp_dir / "nope_items.csv")
        assert loader.load_orders() == []
