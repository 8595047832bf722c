"""Product search combining vector similarity with a keyword fallback."""

import logging

from grocery_agent.schemas.product import (
    CatalogProduct,
    ProductSearchResponse,
    ProductSearchResult,
)
from grocery_agent.services.embedding_service import EmbeddingService
from grocery_agent.services.product_repository import ProductRepository, ScoredProduct

logger = logging.getLogger(__name__)

# Semantic results below this count are topped up from keyword search
KEYWORD_FALLBACK_FLOOR = 3
SEARCH_MIN_SIMILARITY = 0.5
DESCRIPTION_PREVIEW_CHARS = 100


class ProductSearchService:
    """Catalog search used by the product and recipe tools."""

    def __init__(self, repository: ProductRepository, embedding_service: EmbeddingService) -> None:
        self.repository = repository
        self.embedding_service = embedding_service

    async def semantic_search(
        self,
        query: str,
        limit: int = 8,
        threshold: float = 0.6,
    ) -> list[ScoredProduct]:
        """Embed ``query`` and return up to ``limit`` products above ``threshold``."""
        vector = await self.embedding_service.generate_embedding(query)
        return await self.repository.vector_search(vector, top_k=limit, min_similarity=threshold)

    async def search_products(
        self,
        query: str,
        category: str | None = None,
        max_price: float | None = None,
        min_rating: float | None = None,
        limit: int = 8,
        use_semantic_search: bool = True,
    ) -> ProductSearchResponse:
        """Search the catalog with optional filters.

        Semantic search runs first when enabled. If it yields fewer than
        KEYWORD_FALLBACK_FLOOR products, keyword matches are appended (skipping
        ids already present) until ``limit`` is reached.

        Returns:
            ProductSearchResponse with structured products and the search type used
        """
        found: list[tuple[CatalogProduct, float | None]] = []
        search_type = "keyword"

        if use_semantic_search:
            search_type = "semantic"
            # Over-fetch so post-filtering still has enough candidates
            scored = await self.semantic_search(
                query, limit=limit * 2, threshold=SEARCH_MIN_SIMILARITY
            )
            for s in scored:
                if _passes_filters(s.product, category, max_price, min_rating):
                    found.append((s.product, s.similarity))
            found = found[:limit]

        if len(found) < KEYWORD_FALLBACK_FLOOR:
            keyword_products = await self.repository.keyword_search(
                query=query,
                category=category,
                max_price=max_price,
                min_rating=min_rating,
                limit=limit,
            )
            seen = {p.id for p, _ in found}
            added = 0
            for product in keyword_products:
                if len(found) >= limit:
                    break
                if product.id in seen:
                    continue
                found.append((product, None))
                seen.add(product.id)
                added += 1
            if use_semantic_search and added:
                logger.info("Semantic search for %r topped up with %d keyword matches", query, added)
                search_type = "hybrid"

        products = [_structure_product(p, score) for p, score in found]
        return ProductSearchResponse(
            products=products,
            total_found=len(products),
            total_cost=round(sum(p.sale_price for p in products), 2),
            search_type=search_type,
        )


def _passes_filters(
    product: CatalogProduct,
    category: str | None,
    max_price: float | None,
    min_rating: float | None,
) -> bool:
    if category and (product.category or "").lower() != category.lower():
        return False
    if max_price is not None and product.sale_price > max_price:
        return False
    return min_rating is None or product.rating >= min_rating


def _structure_product(product: CatalogProduct, score: float | None) -> ProductSearchResult:
    return ProductSearchResult(
        id=product.id,
        name=product.name,
        brand=product.brand or "Generic",
        category=product.category,
        sale_price=product.sale_price,
        market_price=product.market_price,
        discount=product.discount,
        rating=product.rating,
        description=(product.description or "")[:DESCRIPTION_PREVIEW_CHARS],
        semantic_score=round(score, 4) if score is not None else None,
        is_on_sale=product.is_on_sale,
        product_url=f"/product/{product.id}",
    )
