"""Redis-backed session cart storage."""

import json
import logging
from datetime import UTC, datetime

import redis.asyncio as aioredis

from grocery_agent.schemas.cart import Cart, CartItem, CartOperationResult, CartSummary
from grocery_agent.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)


def _cart_key(session_id: str) -> str:
    return f"users:{session_id}:cart"


class CartRepository:
    """Stores one cart document per session with a rolling expiry."""

    def __init__(
        self,
        redis: aioredis.Redis,
        products: ProductRepository,
        ttl_seconds: int = 24 * 60 * 60,
    ) -> None:
        self.redis = redis
        self.products = products
        self.ttl_seconds = ttl_seconds

    async def _load(self, session_id: str) -> Cart:
        raw = await self.redis.get(_cart_key(session_id))
        if not raw:
            return Cart()
        return Cart.model_validate(json.loads(raw))

    async def _store(self, session_id: str, cart: Cart) -> None:
        now = datetime.now(UTC)
        cart.created_at = cart.created_at or now
        cart.updated_at = now
        cart.summary = _summarize(cart.items)
        await self.redis.set(
            _cart_key(session_id), cart.model_dump_json(), ex=self.ttl_seconds
        )

    async def add_to_cart(
        self, session_id: str, product_id: str, quantity: int = 1
    ) -> CartOperationResult:
        """Add a product, incrementing the quantity if it is already in the cart."""
        if quantity < 1:
            return CartOperationResult(success=False, error=f"Invalid quantity {quantity}")

        product = await self.products.get_product_by_id(product_id)
        if not product:
            return CartOperationResult(success=False, error=f"Product {product_id} not found")

        cart = await self._load(session_id)
        existing = next((i for i in cart.items if i.product_id == product_id), None)
        if existing:
            existing.quantity += quantity
            item = existing
        else:
            item = CartItem(
                product_id=product.id,
                name=product.name,
                brand=product.brand,
                price=product.sale_price,
                quantity=quantity,
                added_at=datetime.now(UTC),
            )
            cart.items.append(item)

        await self._store(session_id, cart)
        return CartOperationResult(success=True, message=f"{product.name} added to cart", item=item)

    async def get_cart(self, session_id: str) -> Cart:
        return await self._load(session_id)

    async def remove_from_cart(self, session_id: str, product_id: str) -> CartOperationResult:
        cart = await self._load(session_id)
        if not cart.items:
            return CartOperationResult(success=False, error="Cart is empty or does not exist")

        removed = next((i for i in cart.items if i.product_id == product_id), None)
        if not removed:
            return CartOperationResult(success=False, error="Product not found in cart")

        cart.items = [i for i in cart.items if i.product_id != product_id]
        await self._store(session_id, cart)
        return CartOperationResult(
            success=True, message=f"{removed.name} removed from cart", item=removed
        )

    async def clear_cart(self, session_id: str) -> int:
        """Empty the cart and return how many lines were removed."""
        cart = await self._load(session_id)
        count = len(cart.items)
        if count == 0:
            return 0
        cart.items = []
        await self._store(session_id, cart)
        return count


def _summarize(items: list[CartItem]) -> CartSummary:
    return CartSummary(
        total_items=sum(i.quantity for i in items),
        total_price=round(sum(i.price * i.quantity for i in items), 2),
    )
