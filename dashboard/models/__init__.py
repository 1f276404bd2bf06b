"""
Pydantic models for dashboard API requests.

Field names follow the JSON the screens send (camelCase).
"""
from pydantic import BaseModel, Field
from typing import Any, Optional


class ReceiveStock(BaseModel):
    receivedQuantity: Any                     # whole number, checked by the service
    actualArrivalDate: Optional[str] = None   # YYYY-MM-DD, defaults to today
    updatedBy: Optional[str] = None


class StockOut(BaseModel):
    itemQuantities: dict[str, Any]            # { productId: whole quantity to approve }
    deliveryDate: Optional[str] = None
    updatedBy: Optional[str] = None


class OrderItemCreate(BaseModel):
    productId: str
    quantity: Any
    unitPrice: float = 0.0
    productName: Optional[str] = None
    category: Optional[str] = None


class AddItems(BaseModel):
    orderItems: list[OrderItemCreate] = Field(default_factory=list)
    updatedBy: Optional[str] = None


class CancelOrder(BaseModel):
    updatedBy: Optional[str] = None
