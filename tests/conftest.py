"""
Pytest configuration and shared fixtures for the stock fulfillment test suite.
"""
import os
import shutil
import tempfile
from datetime import date
from pathlib import Path
from typing import Generator

import pytest

from models.order import LineItem, Order

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

# Every test sees the same "today" so overdue / urgent / future-date checks
# do not depend on when the suite runs.
FIXED_TODAY = date(2024, 6, 15)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="fulfillment_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def today() -> date:
    return FIXED_TODAY


@pytest.fixture
def test_config(temp_dir: Path) -> "Config":
    """Provide a test configuration with isolated directories."""
    from config import Config

    config = Config()
    # Override paths to use temp directory
    config.output_dir = temp_dir / "output"
    config.output_dir.mkdir(parents=True, exist_ok=True)
    config.db_path = temp_dir / "output" / "fulfillment.db"
    config.orders_csv = temp_dir / "data" / "orders.csv"
    config.order_items_csv = temp_dir / "data" / "order_items.csv"
    config.inventory_csv = temp_dir / "data" / "inventory.csv"
    config.orders_csv.parent.mkdir(parents=True, exist_ok=True)

    config.inventory_mode = "local"
    config.page_size = 10
    config.urgent_days = 2
    config.max_conflict_retries = 2
    return config


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from fulfillment.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def service(test_config, test_db, today) -> "FulfillmentService":
    """FulfillmentService on the test database with local inventory and a fixed clock."""
    from fulfillment.service import FulfillmentService
    return FulfillmentService(test_config, db=test_db, today=lambda: today)


# ---------------------------------------------------------------------------
# In-memory orders (unit tests)
# ---------------------------------------------------------------------------

def make_purchase_order(
    ordered: int = 100,
    received: int = 0,
    status: str = "DELIVERY_IN_PROCESS",
    reference: str = "PO-2024-001",
    due_date: str = "2024-06-20",
    order_id: int | None = 1,
    item_id: int | None = 10,
) -> Order:
    return Order(
        id=order_id,
        kind="purchase",
        reference=reference,
        status=status,
        counterparty="Acme Toys Ltd",
        order_date="2024-06-01",
        due_date=due_date,
        version=0,
        line_items=[
            LineItem(
                id=item_id,
                product_id="TOY-100",
                product_name="Wooden Train Set",
                category="EDUCATION",
                ordered_quantity=ordered,
                fulfilled_quantity=received,
                unit_price=12.5,
            )
        ],
    )


def make_sales_order(
    quantities: tuple[int, ...] = (5, 3),
    approved: tuple[int, ...] | None = None,
    status: str = "PENDING",
    reference: str = "SO-1001",
    due_date: str = "2024-06-16",
    order_id: int | None = 2,
    with_ids: bool = True,
) -> Order:
    approved = approved or tuple(0 for _ in quantities)
    return Order(
        id=order_id,
        kind="sales",
        reference=reference,
        status=status,
        counterparty="Little Explorers",
        order_date="2024-06-10",
        due_date=due_date,
        version=0,
        line_items=[
            LineItem(
                id=(21 + n) if with_ids else None,
                product_id=f"TOY-{n + 1}",
                product_name=f"Toy {n + 1}",
                category="DOLLS" if n % 2 else "EDUCATION",
                ordered_quantity=qty,
                fulfilled_quantity=done,
                unit_price=9.95,
            )
            for n, (qty, done) in enumerate(zip(quantities, approved))
        ],
    )


@pytest.fixture
def purchase_order() -> Order:
    """PO for 100 units, nothing received yet."""
    return make_purchase_order()


@pytest.fixture
def sales_order() -> Order:
    """SO with two items: TOY-1 x5 (id 21) and TOY-2 x3 (id 22)."""
    return make_sales_order()


# ---------------------------------------------------------------------------
# Stored orders (integration / API tests)
# ---------------------------------------------------------------------------

@pytest.fixture
def stored_purchase_order(test_db) -> Order:
    """PO-2024-001 for 100 x TOY-100 in the database, with 100 units incoming."""
    order_id = test_db.insert_order(make_purchase_order(order_id=None, item_id=None))
    test_db.upsert_inventory("TOY-100", current_stock=5, incoming_stock=100)
    return test_db.get_order(order_id)


@pytest.fixture
def stored_sales_order(test_db) -> Order:
    """SO-1001 (TOY-1 x5, TOY-2 x3) in the database, its quantities reserved."""
    order_id = test_db.insert_order(make_sales_order(order_id=None, with_ids=False))
    test_db.upsert_inventory("TOY-1", current_stock=20, reserved_stock=5)
    test_db.upsert_inventory("TOY-2", current_stock=10, reserved_stock=3)
    test_db.upsert_inventory("TOY-3", current_stock=4)
    return test_db.get_order(order_id)


@pytest.fixture
def sample_orders_csv(temp_dir: Path) -> Path:
    csv_path = temp_dir / "orders.csv"
    csv_path.write_text(
        "reference,kind,status,counterparty,order_date,due_date,notes\n"
        "PO-2024-010,purchase,DELIVERY_IN_PROCESS,Acme Toys Ltd,2024-06-01,2024-06-10,\n"
        "PO-2024-011,purchase,PARTIALLY_RECEIVED,Acme Toys Ltd,2024-06-02,2024-06-30,Second batch\n"
        "SO-2001,sales,PENDING,Little Explorers,2024-06-10,2024-06-16,\n"
        "SO-2002,sales,PENDING,Bright Minds,2024-06-11,2024-06-25,\n"
        "PO-2024-012,purchase,RECEIVED,Acme Toys Ltd,2024-06-03,2024-06-12,Bad status\n"
    )
    return csv_path


@pytest.fixture
def sample_order_items_csv(temp_dir: Path) -> Path:
    csv_path = temp_dir / "order_items.csv"
    csv_path.write_text(
        "reference,product_id,product_name,category,quantity,fulfilled_quantity,unit_price\n"
        "PO-2024-010,TOY-100,Wooden Train Set,education,100,0,12.50\n"
        "PO-2024-011,TOY-200,Rag Doll,dolls,50,20,7.00\n"
        "SO-2001,TOY-100,Wooden Train Set,education,5,0,19.95\n"
        "SO-2001,TOY-200,Rag Doll,dolls,3,0,11.00\n"
        "SO-2002,TOY-200,Rag Doll,dolls,2,0,11.00\n"
        "PO-2024-012,TOY-300,Kite,outdoor,10,4,3.00\n"
    )
    return csv_path


@pytest.fixture
def sample_inventory_csv(temp_dir: Path) -> Path:
    csv_path = temp_dir / "inventory.csv"
    csv_path.write_text(
        "product_id,current_stock,reserved_stock,incoming_stock\n"
        "TOY-100,30,5,100\n"
        "TOY-200,12,5,30\n"
    )
    return csv_path


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "slow: Slow tests")
