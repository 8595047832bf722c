"""Redis-backed product catalog with vector and keyword search."""

import json
import logging
import re
from dataclasses import dataclass

import redis.asyncio as aioredis

from grocery_agent.schemas.product import CatalogProduct
from grocery_agent.services.vector_index import RedisVectorIndex

logger = logging.getLogger(__name__)

PRODUCT_KEY_PREFIX = "products:"
PRODUCT_INDEX_KEY = "products:index"
PRODUCT_VECTOR_PREFIX = "products:vec:"
PRODUCT_VECTOR_INDEX = "idx:products"

_TOKEN_RE = re.compile(r"[a-z0-9]+")


@dataclass
class ScoredProduct:
    """A product retrieved from vector search."""

    product: CatalogProduct
    similarity: float


def _product_key(product_id: str) -> str:
    return f"{PRODUCT_KEY_PREFIX}{product_id}"


class ProductRepository:
    """Catalog store.

    Products are JSON documents keyed by id plus an id index set. Embeddings
    live in the ``idx:products`` vector index, which answers similarity
    queries inside Redis.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        vector_index: RedisVectorIndex | None = None,
    ) -> None:
        self.redis = redis
        self.vector_index = vector_index or RedisVectorIndex(
            redis, PRODUCT_VECTOR_INDEX, PRODUCT_VECTOR_PREFIX
        )

    async def ensure_index(self) -> None:
        await self.vector_index.ensure_index()

    async def save_product(self, product: CatalogProduct) -> None:
        data = product.model_dump(mode="json")
        await self.redis.set(_product_key(product.id), json.dumps(data))
        await self.redis.sadd(PRODUCT_INDEX_KEY, product.id)
        if product.embedding:
            await self.vector_index.add(product.id, product.embedding)

    async def get_product_by_id(self, product_id: str) -> CatalogProduct | None:
        raw = await self.redis.get(_product_key(product_id))
        if not raw:
            return None
        return CatalogProduct.model_validate(json.loads(raw))

    async def get_products_by_ids(self, product_ids: list[str]) -> list[CatalogProduct]:
        """Fetch several products in one round trip; unknown ids are skipped."""
        if not product_ids:
            return []
        raws = await self.redis.mget([_product_key(pid) for pid in product_ids])
        products = []
        for pid, raw in zip(product_ids, raws, strict=True):
            if raw:
                products.append(CatalogProduct.model_validate(json.loads(raw)))
            else:
                logger.warning("Product not found: %s", pid)
        return products

    async def _all_products(self) -> list[CatalogProduct]:
        ids = sorted(await self.redis.smembers(PRODUCT_INDEX_KEY))
        return await self.get_products_by_ids(ids)

    async def vector_search(
        self,
        vector: list[float],
        top_k: int = 10,
        min_similarity: float = 0.5,
    ) -> list[ScoredProduct]:
        """KNN query against the catalog vector index.

        Similarity is ``1 - cosine distance``; products below ``min_similarity``
        are dropped. Only the returned hits are loaded from the catalog.
        """
        hits = await self.vector_index.knn(vector, top_k, min_similarity=min_similarity)
        if not hits:
            return []

        products = {p.id: p for p in await self.get_products_by_ids([h.doc_id for h in hits])}
        return [
            ScoredProduct(product=products[hit.doc_id], similarity=hit.similarity)
            for hit in hits
            if hit.doc_id in products
        ]

    async def keyword_search(
        self,
        query: str | None = None,
        category: str | None = None,
        max_price: float | None = None,
        min_rating: float | None = None,
        limit: int = 20,
    ) -> list[CatalogProduct]:
        """Token match over name and description, filtered, best rated first."""
        terms = set(_TOKEN_RE.findall(query.lower())) if query else set()

        matches = []
        for product in await self._all_products():
            if category and (product.category or "").lower() != category.lower():
                continue
            if max_price is not None and product.sale_price > max_price:
                continue
            if min_rating is not None and product.rating < min_rating:
                continue
            if terms:
                haystack = f"{product.name} {product.description or ''}".lower()
                if not terms & set(_TOKEN_RE.findall(haystack)):
                    continue
            matches.append(product)

        matches.sort(key=lambda p: p.rating, reverse=True)
        return matches[:limit]
