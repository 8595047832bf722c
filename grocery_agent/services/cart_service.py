"""Cart operations used by the cart tools."""

import logging
import math
from typing import Any

from grocery_agent.schemas.cart import Cart, CartOperationResult
from grocery_agent.services.cart_repository import CartRepository

logger = logging.getLogger(__name__)


def whole_quantity(value: float | None) -> int:
    """Units to add. Fractions round up; a missing or zero quantity means 1."""
    if not value:
        return 1
    return math.ceil(value)


class CartService:
    """Business logic over the session cart store."""

    def __init__(self, repository: CartRepository) -> None:
        self.repository = repository

    async def add_items_to_cart(
        self,
        session_id: str,
        product_ids: list[str],
        quantities: list[float] | None = None,
    ) -> dict[str, Any]:
        """Add several products, skipping any that fail validation.

        Missing quantities default to 1 and fractional ones round up. The
        operation only fails as a whole when no item could be added.
        """
        quantities = quantities or []
        added_items = []
        failed: list[dict[str, str]] = []

        for i, product_id in enumerate(product_ids):
            quantity = whole_quantity(quantities[i] if i < len(quantities) else None)
            result = await self.repository.add_to_cart(session_id, product_id, quantity)
            if result.success and result.item:
                added_items.append(result.item.model_dump(mode="json"))
            else:
                logger.info("Skipping cart item %s: %s", product_id, result.error)
                failed.append({"product_id": product_id, "error": result.error or "unknown"})

        if not added_items:
            return {
                "success": False,
                "error": "Could not add any items to cart. Please check product IDs.",
                "failed_items": failed,
            }

        cart = await self.repository.get_cart(session_id)
        return {
            "success": True,
            "added_items": added_items,
            "total_added": len(added_items),
            "failed_items": failed,
            "cart_summary": cart.summary.model_dump(mode="json"),
            "message": f"Successfully added {len(added_items)} item(s) to your cart!",
        }

    async def get_cart(self, session_id: str) -> Cart:
        return await self.repository.get_cart(session_id)

    async def remove_item_from_cart(self, session_id: str, product_id: str) -> CartOperationResult:
        return await self.repository.remove_from_cart(session_id, product_id)

    async def clear_cart(self, session_id: str) -> int:
        return await self.repository.clear_cart(session_id)
