"""Stock fulfillment dashboard (FastAPI)."""
