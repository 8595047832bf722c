"""RediSearch vector index over Redis hashes.

Each document is a hash ``{prefix}{doc_id}`` holding the id, optional tag
fields and the FLOAT32 embedding. Similarity search runs in Redis as an HNSW
KNN query; a hash that expires drops out of the index with it.
"""

import logging
import re
import struct
from collections.abc import Sequence
from dataclasses import dataclass

import redis.asyncio as aioredis
from redis.commands.search.field import TagField, VectorField
from redis.commands.search.index_definition import IndexDefinition, IndexType
from redis.commands.search.query import Query
from redis.exceptions import ResponseError

from grocery_agent.services.embedding_service import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)

DOC_ID_FIELD = "doc_id"
VECTOR_FIELD = "embedding"
DISTANCE_FIELD = "vector_distance"

# Page size when listing every document matching a tag filter
_SCAN_PAGE_SIZE = 500

_TAG_SPECIAL_RE = re.compile(r"([^A-Za-z0-9_])")


@dataclass
class VectorHit:
    """A document returned by a KNN query. ``similarity`` is ``1 - cosine distance``."""

    doc_id: str
    similarity: float


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    return struct.pack(f"{len(vector)}f", *vector)


def escape_tag(value: str) -> str:
    return _TAG_SPECIAL_RE.sub(r"\\\1", value)


def tag_filter(tags: dict[str, str] | None) -> str:
    """Build a RediSearch prefilter such as ``@session_id:{s1}``; ``*`` matches all."""
    if not tags:
        return "*"
    return " ".join(f"@{name}:{{{escape_tag(value)}}}" for name, value in sorted(tags.items()))


class RedisVectorIndex:
    """HNSW cosine index on the hashes under ``prefix``."""

    def __init__(
        self,
        redis: aioredis.Redis,
        name: str,
        prefix: str,
        dimensions: int = EMBEDDING_DIMENSIONS,
        tag_fields: tuple[str, ...] = (),
    ) -> None:
        self.redis = redis
        self.name = name
        self.prefix = prefix
        self.dimensions = dimensions
        self.tag_fields = tag_fields
        self._ready = False

    def key(self, doc_id: str) -> str:
        return f"{self.prefix}{doc_id}"

    async def ensure_index(self) -> None:
        """Create the index on first use. Existing hashes are indexed by the initial scan."""
        if self._ready:
            return
        search = self.redis.ft(self.name)
        try:
            await search.info()
        except ResponseError:
            fields = [
                TagField(DOC_ID_FIELD),
                *(TagField(name) for name in self.tag_fields),
                VectorField(
                    VECTOR_FIELD,
                    "HNSW",
                    {
                        "TYPE": "FLOAT32",
                        "DIM": self.dimensions,
                        "DISTANCE_METRIC": "COSINE",
                    },
                ),
            ]
            definition = IndexDefinition(prefix=[self.prefix], index_type=IndexType.HASH)
            try:
                await search.create_index(fields, definition=definition)
                logger.info("Created vector index %s on %s*", self.name, self.prefix)
            except ResponseError as e:
                # Another worker created it first
                if "already exists" not in str(e).lower():
                    raise
        self._ready = True

    async def add(
        self,
        doc_id: str,
        vector: Sequence[float],
        tags: dict[str, str] | None = None,
        ttl_millis: int | None = None,
    ) -> None:
        """Write (or replace) a document; with ``ttl_millis`` it expires like any key."""
        key = self.key(doc_id)
        mapping: dict[str, str | bytes] = {
            DOC_ID_FIELD: doc_id,
            VECTOR_FIELD: vector_to_bytes(vector),
            **(tags or {}),
        }
        await self.redis.hset(key, mapping=mapping)
        if ttl_millis:
            await self.redis.pexpire(key, ttl_millis)

    async def remove(self, *doc_ids: str) -> int:
        if not doc_ids:
            return 0
        return await self.redis.delete(*[self.key(doc_id) for doc_id in doc_ids])

    async def knn(
        self,
        vector: Sequence[float],
        k: int,
        tags: dict[str, str] | None = None,
        min_similarity: float = 0.0,
    ) -> list[VectorHit]:
        """Top ``k`` documents nearest to ``vector``, best first.

        ``tags`` restricts the candidates before the KNN step; hits below
        ``min_similarity`` are dropped.
        """
        await self.ensure_index()
        prefilter = tag_filter(tags)
        if prefilter != "*":
            prefilter = f"({prefilter})"
        query = (
            Query(f"{prefilter}=>[KNN {k} @{VECTOR_FIELD} $vec AS {DISTANCE_FIELD}]")
            .sort_by(DISTANCE_FIELD)
            .return_fields(DOC_ID_FIELD, DISTANCE_FIELD)
            .paging(0, k)
            .dialect(2)
        )
        result = await self.redis.ft(self.name).search(
            query, query_params={"vec": vector_to_bytes(vector)}
        )

        hits = []
        for doc in result.docs:
            similarity = 1.0 - float(getattr(doc, DISTANCE_FIELD))
            if similarity >= min_similarity:
                hits.append(VectorHit(doc_id=getattr(doc, DOC_ID_FIELD), similarity=similarity))
        return hits

    async def find(self, tags: dict[str, str]) -> list[str]:
        """Ids of every document carrying ``tags``."""
        await self.ensure_index()
        search = self.redis.ft(self.name)
        doc_ids: list[str] = []
        offset = 0
        while True:
            query = Query(tag_filter(tags)).no_content().paging(offset, _SCAN_PAGE_SIZE).dialect(2)
            result = await search.search(query)
            doc_ids.extend(doc.id.removeprefix(self.prefix) for doc in result.docs)
            offset += _SCAN_PAGE_SIZE
            if len(result.docs) < _SCAN_PAGE_SIZE or offset >= result.total:
                return doc_ids
