"""Pydantic schemas for the session shopping cart."""

from datetime import datetime

from grocery_agent.schemas.common import BaseSchema


class CartItem(BaseSchema):
    """A single line in a cart."""

    product_id: str
    name: str
    brand: str = "Generic"
    price: float
    quantity: int = 1
    added_at: datetime


class CartSummary(BaseSchema):
    """Totals across all cart lines."""

    total_items: int = 0
    total_price: float = 0.0


class Cart(BaseSchema):
    """Cart contents for one session."""

    items: list[CartItem] = []
    summary: CartSummary = CartSummary()
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CartOperationResult(BaseSchema):
    """Outcome of a single add/remove cart operation."""

    success: bool
    message: str | None = None
    error: str | None = None
    item: CartItem | None = None
