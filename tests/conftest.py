"""Pytest configuration and fixtures for the grocery agent test suite.

Provides:
- Fake Redis (fakeredis) shared by every Redis-backed store
- In-process stand-ins for the RediSearch vector indexes
- A deterministic bag-of-words embedding service
- A seeded product catalog
- Scripted chat model mocks for the agent and helper model calls
"""

import json
import math
import re
import struct
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from langchain_core.messages import AIMessage

from grocery_agent.schemas.product import CatalogProduct
from grocery_agent.services.cart_repository import CartRepository
from grocery_agent.services.cart_service import CartService
from grocery_agent.services.chat_repository import ChatRepository
from grocery_agent.services.ingredient_matcher import IngredientMatcher
from grocery_agent.services.product_repository import ProductRepository
from grocery_agent.services.recipe_service import RecipeService
from grocery_agent.services.search_service import ProductSearchService
from grocery_agent.services.semantic_cache import RedisSemanticCacheStore, SemanticCacheGateway
from grocery_agent.services.tools.grocery_tools import create_grocery_tools
from grocery_agent.services.tools.registry import ToolRegistry
from grocery_agent.services.vector_index import (
    DOC_ID_FIELD,
    VECTOR_FIELD,
    RedisVectorIndex,
    VectorHit,
)

EMBEDDING_SIZE = 1024
_TOKEN_RE = re.compile(r"[a-z0-9]+")
_VOCABULARY: dict[str, int] = {}


def fake_embed(text: str) -> list[float]:
    """Bag-of-words count vector with one dimension per distinct token.

    Texts with the same tokens get cosine similarity 1.0; disjoint texts get 0.0.
    """
    vector = [0.0] * EMBEDDING_SIZE
    for token in _TOKEN_RE.findall(text.lower()):
        index = _VOCABULARY.setdefault(token, len(_VOCABULARY) % EMBEDDING_SIZE)
        vector[index] += 1.0
    return vector


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def fake_redis(
    redis_server: fakeredis.FakeServer,
) -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    """Provide an empty fakeredis instance per test."""
    redis = fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)
    await redis.flushall()
    yield redis
    await redis.aclose()


@pytest_asyncio.fixture
async def raw_redis(
    redis_server: fakeredis.FakeServer,
) -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    """Bytes client on the same server, for reading vector fields back."""
    redis = fakeredis.aioredis.FakeRedis(server=redis_server)
    yield redis
    await redis.aclose()


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return 0.0
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b, strict=True)) / norm


class InProcessVectorIndex(RedisVectorIndex):
    """RedisVectorIndex with the FT.SEARCH side answered in process.

    fakeredis has no search module. Documents are still written and removed
    by the real ``add``/``remove``; queries read the hashes back and rank them.
    """

    def __init__(
        self,
        raw_redis: fakeredis.aioredis.FakeRedis,
        redis: fakeredis.aioredis.FakeRedis,
        name: str,
        prefix: str,
        tag_fields: tuple[str, ...] = (),
    ) -> None:
        super().__init__(redis, name, prefix, dimensions=EMBEDDING_SIZE, tag_fields=tag_fields)
        self.raw_redis = raw_redis

    async def ensure_index(self) -> None:
        self._ready = True

    async def _documents(self, tags: dict[str, str] | None) -> AsyncIterator[dict[bytes, bytes]]:
        async for key in self.raw_redis.scan_iter(match=f"{self.prefix}*"):
            fields = await self.raw_redis.hgetall(key)
            if all(fields.get(k.encode()) == v.encode() for k, v in (tags or {}).items()):
                yield fields

    async def knn(
        self,
        vector: Sequence[float],
        k: int,
        tags: dict[str, str] | None = None,
        min_similarity: float = 0.0,
    ) -> list[VectorHit]:
        hits = []
        async for fields in self._documents(tags):
            blob = fields[VECTOR_FIELD.encode()]
            similarity = _cosine(vector, struct.unpack(f"{len(blob) // 4}f", blob))
            if similarity >= min_similarity:
                hits.append(VectorHit(fields[DOC_ID_FIELD.encode()].decode(), similarity))
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:k]

    async def find(self, tags: dict[str, str]) -> list[str]:
        return [fields[DOC_ID_FIELD.encode()].decode() async for fields in self._documents(tags)]


@pytest.fixture
def product_index(
    raw_redis: fakeredis.aioredis.FakeRedis,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> InProcessVectorIndex:
    return InProcessVectorIndex(raw_redis, fake_redis, "idx:products", "products:vec:")


@pytest.fixture
def cache_index(
    raw_redis: fakeredis.aioredis.FakeRedis,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> InProcessVectorIndex:
    return InProcessVectorIndex(
        raw_redis, fake_redis, "idx:semcache", "semcache:vec:", tag_fields=("session_id",)
    )


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_service() -> MagicMock:
    """Embedding service returning deterministic token-hash vectors."""
    service = MagicMock()
    service.generate_embedding = AsyncMock(side_effect=fake_embed)
    service.generate_embeddings_batch = AsyncMock(
        side_effect=lambda texts: [fake_embed(t) for t in texts]
    )
    return service


# ---------------------------------------------------------------------------
# Catalog, cart, chat, and cache stores
# ---------------------------------------------------------------------------


@pytest.fixture
def product_factory(product_repository: ProductRepository) -> Callable[..., Any]:
    """Factory for catalog products. ``keywords`` seeds the stored embedding."""

    async def _create(
        product_id: str,
        name: str,
        keywords: str | None = None,
        **kwargs: Any,
    ) -> CatalogProduct:
        product = CatalogProduct(
            id=product_id,
            name=name,
            embedding=fake_embed(keywords or name),
            **kwargs,
        )
        await product_repository.save_product(product)
        return product

    return _create


@pytest_asyncio.fixture
async def catalog(product_factory: Callable[..., Any]) -> list[CatalogProduct]:
    """A small grocery catalog."""
    return [
        await product_factory(
            "101", "Fresh Chicken Breast", keywords="chicken", brand="FarmFresh",
            category="meat", sale_price=250.0, market_price=280.0, rating=4.5,
            description="Boneless chicken breast",
        ),
        await product_factory(
            "102", "Roma Tomatoes", keywords="tomatoes", brand="GreenLeaf",
            category="vegetables", sale_price=40.0, market_price=45.0, rating=4.2,
            description="Ripe red tomatoes",
        ),
        await product_factory(
            "103", "Fresh Cream", keywords="cream", brand="Amul",
            category="dairy", sale_price=65.0, market_price=70.0, rating=4.7,
            description="Cooking cream 200ml",
        ),
        await product_factory(
            "104", "Basmati Rice", keywords="basmati rice", brand="IndiaGate",
            category="grains", sale_price=180.0, market_price=200.0, rating=4.8,
            description="Aged long grain rice",
        ),
        await product_factory(
            "105", "Brown Rice", keywords="brown rice", brand="Organic Tattva",
            category="grains", sale_price=150.0, market_price=160.0, rating=4.1,
            description="Whole grain rice",
        ),
        await product_factory(
            "42", "Salted Butter", keywords="butter", brand="Amul",
            category="dairy", sale_price=56.0, market_price=58.0, rating=4.9,
            description="Table butter 100g",
        ),
    ]


@pytest.fixture
def product_repository(
    fake_redis: fakeredis.aioredis.FakeRedis, product_index: InProcessVectorIndex
) -> ProductRepository:
    return ProductRepository(fake_redis, vector_index=product_index)


@pytest.fixture
def search_service(
    product_repository: ProductRepository,
    mock_embedding_service: MagicMock,
) -> ProductSearchService:
    return ProductSearchService(product_repository, mock_embedding_service)


@pytest.fixture
def cart_service(
    fake_redis: fakeredis.aioredis.FakeRedis,
    product_repository: ProductRepository,
) -> CartService:
    return CartService(CartRepository(fake_redis, product_repository))


@pytest.fixture
def chat_repository(fake_redis: fakeredis.aioredis.FakeRedis) -> ChatRepository:
    return ChatRepository(fake_redis)


@pytest.fixture
def cache_store(
    fake_redis: fakeredis.aioredis.FakeRedis,
    mock_embedding_service: MagicMock,
    cache_index: InProcessVectorIndex,
) -> RedisSemanticCacheStore:
    return RedisSemanticCacheStore(
        fake_redis, mock_embedding_service, similarity_threshold=0.9, vector_index=cache_index
    )


@pytest.fixture
def cache_gateway(cache_store: RedisSemanticCacheStore) -> SemanticCacheGateway:
    return SemanticCacheGateway(cache_store)


# ---------------------------------------------------------------------------
# Chat model mocking
# ---------------------------------------------------------------------------


def tool_call_message(*calls: tuple[str, dict[str, Any]]) -> AIMessage:
    """An assistant turn requesting the given (name, args) tool calls."""
    return AIMessage(
        content="",
        tool_calls=[
            {"name": name, "args": args, "id": f"call_{i}"} for i, (name, args) in enumerate(calls)
        ],
    )


@pytest.fixture
def scripted_llm() -> Callable[..., MagicMock]:
    """Build a chat model mock that replays the given responses in order.

    bind_tools returns the same mock, like the real model's bound runnable.
    """

    def _build(*responses: AIMessage | Exception) -> MagicMock:
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=list(responses))
        llm.bind_tools = MagicMock(return_value=llm)
        return llm

    return _build


@pytest.fixture
def echo_llm() -> MagicMock:
    """Helper model that answers every call with fixed text."""
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="Knead the dough for ten minutes."))
    return llm


BUTTER_CHICKEN_EXTRACTION = {
    "recipe": "butter chicken",
    "ingredients": [
        {"name": "chicken", "quantity": "500g", "essential": True},
        {"name": "butter", "quantity": "2 tbsp", "essential": True},
        {"name": "saffron", "essential": True},
        {"name": "salt", "quantity": "to taste", "essential": False},
    ],
}


@pytest.fixture
def recipe_llm() -> MagicMock:
    """Extraction model answering with the butter chicken ingredient list."""
    llm = MagicMock()
    llm.ainvoke = AsyncMock(
        return_value=AIMessage(content=f"```json\n{json.dumps(BUTTER_CHICKEN_EXTRACTION)}\n```")
    )
    return llm


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@pytest.fixture
def grocery_registry(
    search_service: ProductSearchService,
    cart_service: CartService,
    recipe_llm: MagicMock,
    echo_llm: MagicMock,
) -> ToolRegistry:
    """Registry over the real tools, backed by fakeredis and mocked helper models."""
    tools = create_grocery_tools(
        search_service,
        cart_service,
        RecipeService(recipe_llm),
        IngredientMatcher(search_service, similarity_floor=0.6),
        echo_llm,
    )
    return ToolRegistry.from_tools(tools)
