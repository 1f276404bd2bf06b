"""
Central configuration for the stock fulfillment service.

All paths, limits, and inventory settings are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. Environment variables
  2. config/fulfillment_settings.json  (admin-editable, persisted)
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_ORDERS_CSV      = PROJECT_ROOT / "data" / "orders.csv"
DEFAULT_ORDER_ITEMS_CSV = PROJECT_ROOT / "data" / "order_items.csv"
DEFAULT_INVENTORY_CSV   = PROJECT_ROOT / "data" / "inventory.csv"
DEFAULT_OUTPUT_DIR      = PROJECT_ROOT / "output"
DEFAULT_DB_PATH         = DEFAULT_OUTPUT_DIR / "fulfillment.db"

# Settings whose environment variable is not simply the upper-cased key
_ENV_NAMES = {"inventory_webhook_headers_json": "INVENTORY_WEBHOOK_HEADERS"}


@dataclass
class Config:
    # --- Data source paths (import-orders) ---
    orders_csv:      Path = field(default_factory=lambda: DEFAULT_ORDERS_CSV)
    order_items_csv: Path = field(default_factory=lambda: DEFAULT_ORDER_ITEMS_CSV)
    inventory_csv:   Path = field(default_factory=lambda: DEFAULT_INVENTORY_CSV)

    # --- Output settings ---
    output_dir: Path = field(default_factory=lambda: DEFAULT_OUTPUT_DIR)
    db_path:    Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )

    # --- Listing ---
    page_size: int = field(
        default_factory=lambda: int(os.getenv("PAGE_SIZE", "10"))
    )
    urgent_days: int = field(
        default_factory=lambda: int(os.getenv("URGENT_DAYS", "2"))
    )
    # A sales order is "urgent" when its estimated delivery is at most this
    # many days away.  Purchase orders are "overdue" once the expected
    # arrival date has passed.

    # --- Concurrency ---
    max_conflict_retries: int = field(
        default_factory=lambda: int(os.getenv("MAX_CONFLICT_RETRIES", "3"))
    )

    # --- Inventory collaborator ---
    inventory_mode: str = field(
        default_factory=lambda: os.getenv("INVENTORY_MODE", "local")
    )
    # local   → adjust the inventory table in the same SQLite database
    # webhook → POST each adjustment batch to INVENTORY_WEBHOOK_URL
    inventory_webhook_url: Optional[str] = field(
        default_factory=lambda: os.getenv("INVENTORY_WEBHOOK_URL")
    )
    inventory_webhook_headers_json: Optional[str] = field(
        default_factory=lambda: os.getenv("INVENTORY_WEBHOOK_HEADERS")
    )
    inventory_webhook_template: str = field(
        default_factory=lambda: os.getenv(
            "INVENTORY_WEBHOOK_TEMPLATE", "inventory_webhook_template.json.j2"
        )
    )
    inventory_webhook_timeout: int = field(
        default_factory=lambda: int(os.getenv("INVENTORY_WEBHOOK_TIMEOUT", "30"))
    )

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from fulfillment_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "fulfillment_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "page_size":                      int,
            "urgent_days":                    int,
            "max_conflict_retries":           int,
            "inventory_mode":                 str,
            "inventory_webhook_url":          str,
            "inventory_webhook_headers_json": str,
            "inventory_webhook_template":     str,
            "inventory_webhook_timeout":      int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                # Environment variables win over the settings file.
                env_name = _ENV_NAMES.get(key, key.upper())
                if key in _type_map and hasattr(self, key) and env_name not in os.environ:
                    setattr(self, key, _type_map[key](val))
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Failed to load fulfillment_settings.json: %s", exc)

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
