"""Semantic response cache: Redis-backed store and the fail-open gateway in front of it.

Entries are keyed by a hash of the normalized prompt and its attributes, so
an exact repeat is a single GET. Semantic matches are a KNN query against
the cache vector index, prefiltered by the attribute scope.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import redis.asyncio as aioredis

from grocery_agent.core.exceptions import CacheStoreError
from grocery_agent.services.embedding_service import EmbeddingService
from grocery_agent.services.vector_index import RedisVectorIndex

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "semcache"
SESSION_ATTRIBUTE = "session_id"
CACHE_VECTOR_INDEX = "idx:semcache"


class SearchStrategy(StrEnum):
    EXACT = "exact"
    SEMANTIC = "semantic"


@dataclass
class CachedResponse:
    """A cache hit."""

    prompt: str
    response: str
    similarity: float
    strategy: SearchStrategy


class SemanticCacheStore(Protocol):
    """Contract of the shared cache store the gateway talks to."""

    async def search(
        self,
        prompt: str,
        strategies: list[SearchStrategy],
        attributes: dict[str, str] | None = None,
    ) -> CachedResponse | None: ...

    async def set(
        self,
        prompt: str,
        response: str,
        ttl_millis: int,
        attributes: dict[str, str] | None = None,
    ) -> None: ...

    async def delete_by_attributes(self, attributes: dict[str, str]) -> int: ...


def normalize_prompt(prompt: str) -> str:
    """Lowercase and collapse whitespace so trivial variations share an exact key."""
    return " ".join(prompt.lower().split())


def _entry_id(prompt: str, attributes: dict[str, str] | None) -> str:
    payload = json.dumps(
        {"prompt": normalize_prompt(prompt), "attributes": attributes or {}},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()[:32]


class RedisSemanticCacheStore:
    """SemanticCacheStore on plain Redis keys plus a RediSearch vector index.

    An entry is a JSON string under ``semcache:entry:{id}`` and a vector hash
    under ``semcache:vec:{id}``; both carry the entry TTL, so nothing outlives
    it. Attributes are indexed as tag fields and prefilter semantic lookups.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        embedding_service: EmbeddingService,
        similarity_threshold: float = 0.9,
        vector_index: RedisVectorIndex | None = None,
    ) -> None:
        self.redis = redis
        self.embedding_service = embedding_service
        self.similarity_threshold = similarity_threshold
        self.vector_index = vector_index or RedisVectorIndex(
            redis,
            CACHE_VECTOR_INDEX,
            f"{CACHE_KEY_PREFIX}:vec:",
            tag_fields=(SESSION_ATTRIBUTE,),
        )

    @staticmethod
    def _entry_key(entry_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}:entry:{entry_id}"

    async def search(
        self,
        prompt: str,
        strategies: list[SearchStrategy],
        attributes: dict[str, str] | None = None,
    ) -> CachedResponse | None:
        """Try each strategy in order and return the first hit."""
        try:
            for strategy in strategies:
                if strategy is SearchStrategy.EXACT:
                    hit = await self._exact(prompt, attributes)
                else:
                    hit = await self._semantic(prompt, attributes)
                if hit:
                    return hit
        except aioredis.RedisError as e:
            raise CacheStoreError(f"Cache search failed: {e}") from e
        return None

    async def _exact(
        self, prompt: str, attributes: dict[str, str] | None
    ) -> CachedResponse | None:
        raw = await self.redis.get(self._entry_key(_entry_id(prompt, attributes)))
        if not raw:
            return None
        entry = json.loads(raw)
        return CachedResponse(
            prompt=entry["prompt"],
            response=entry["response"],
            similarity=1.0,
            strategy=SearchStrategy.EXACT,
        )

    async def _semantic(
        self, prompt: str, attributes: dict[str, str] | None
    ) -> CachedResponse | None:
        vector = await self.embedding_service.generate_embedding(normalize_prompt(prompt))
        hits = await self.vector_index.knn(
            vector, 1, tags=attributes, min_similarity=self.similarity_threshold
        )
        for hit in hits:
            raw = await self.redis.get(self._entry_key(hit.doc_id))
            if not raw:
                # Entry expired between the index read and the GET
                continue
            entry = json.loads(raw)
            return CachedResponse(
                prompt=entry["prompt"],
                response=entry["response"],
                similarity=hit.similarity,
                strategy=SearchStrategy.SEMANTIC,
            )
        return None

    async def set(
        self,
        prompt: str,
        response: str,
        ttl_millis: int,
        attributes: dict[str, str] | None = None,
    ) -> None:
        entry_id = _entry_id(prompt, attributes)
        try:
            vector = await self.embedding_service.generate_embedding(normalize_prompt(prompt))
            entry = {
                "prompt": prompt,
                "response": response,
                "attributes": attributes or {},
            }
            await self.redis.set(self._entry_key(entry_id), json.dumps(entry), px=ttl_millis)
            await self.vector_index.add(entry_id, vector, tags=attributes, ttl_millis=ttl_millis)
        except aioredis.RedisError as e:
            raise CacheStoreError(f"Cache write failed: {e}") from e

    async def delete_by_attributes(self, attributes: dict[str, str]) -> int:
        try:
            entry_ids = await self.vector_index.find(attributes)
            if not entry_ids:
                return 0
            deleted = await self.redis.delete(*[self._entry_key(eid) for eid in entry_ids])
            await self.vector_index.remove(*entry_ids)
        except aioredis.RedisError as e:
            raise CacheStoreError(f"Cache delete failed: {e}") from e
        return deleted


class SemanticCacheGateway:
    """Front door to the shared cache. Never lets a store failure reach the caller."""

    def __init__(self, store: SemanticCacheStore) -> None:
        self.store = store

    @staticmethod
    def _attributes(session_attr: str | None) -> dict[str, str] | None:
        return {SESSION_ATTRIBUTE: session_attr} if session_attr else None

    async def lookup(self, query: str, session_attr: str | None = None) -> CachedResponse | None:
        """Exact match first, then semantic; store errors count as a miss."""
        if not query.strip():
            return None
        try:
            return await self.store.search(
                query,
                [SearchStrategy.EXACT, SearchStrategy.SEMANTIC],
                attributes=self._attributes(session_attr),
            )
        except Exception:
            logger.warning("Semantic cache lookup failed, treating as miss", exc_info=True)
            return None

    async def write(
        self,
        query: str,
        response: str,
        ttl_millis: int,
        session_attr: str | None = None,
    ) -> bool:
        """Store a response; returns False when the TTL is zero or the store failed."""
        if ttl_millis <= 0:
            return False
        try:
            await self.store.set(
                query, response, ttl_millis, attributes=self._attributes(session_attr)
            )
        except Exception:
            logger.exception("Semantic cache write failed")
            return False
        return True

    async def invalidate(self, session_attr: str) -> int:
        """Remove every entry scoped to ``session_attr``."""
        try:
            return await self.store.delete_by_attributes({SESSION_ATTRIBUTE: session_attr})
        except Exception:
            logger.exception("Semantic cache invalidation failed for %s", session_attr)
            return 0
