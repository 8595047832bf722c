"""Catalog import: CSV rows to CatalogProduct documents with embeddings."""

import csv
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from grocery_agent.schemas.product import CatalogProduct
from grocery_agent.services.embedding_service import EmbeddingService
from grocery_agent.services.product_repository import PRODUCT_KEY_PREFIX, ProductRepository

logger = logging.getLogger(__name__)

# Non-grocery departments in the source data
EXCLUDED_CATEGORIES = frozenset({"Beauty & Hygiene", "Cleaning & Household", "Baby Care"})
MAX_DESCRIPTION_CHARS = 200


@dataclass
class LoadSummary:
    products_loaded: int = 0
    failed_batches: int = 0
    categories: set[str] = field(default_factory=set)
    brands: set[str] = field(default_factory=set)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def product_from_row(row: dict[str, str], fallback_id: str) -> CatalogProduct | None:
    """Build a product from one CSV row; None for rows to skip."""
    name = (row.get("product") or "").strip()
    category = (row.get("category") or "").strip()
    if not name or category in EXCLUDED_CATEGORIES:
        return None

    sale_price = _to_float(row.get("sale_price"))
    market_price = _to_float(row.get("market_price"))
    discount = (
        round((market_price - sale_price) / market_price * 100)
        if market_price and sale_price
        else 0
    )
    return CatalogProduct(
        id=(row.get("index") or "").strip() or fallback_id,
        name=name,
        brand=(row.get("brand") or "").strip() or "Generic",
        category=category or "Uncategorized",
        description=(row.get("description") or "").strip()[:MAX_DESCRIPTION_CHARS],
        sale_price=sale_price,
        market_price=market_price,
        discount=discount,
        rating=_to_float(row.get("rating")),
        is_on_sale=bool(sale_price and market_price > sale_price),
    )


def read_products_csv(path: Path, max_products: int = 2000) -> list[CatalogProduct]:
    """Parse up to ``max_products`` grocery products from a CSV export."""
    products: list[CatalogProduct] = []
    with path.open(encoding="utf-8", newline="") as f:
        for i, row in enumerate(csv.DictReader(f)):
            product = product_from_row(row, fallback_id=str(i + 1))
            if product:
                products.append(product)
            if len(products) >= max_products:
                break
    logger.info("Parsed %d products from %s", len(products), path)
    return products


def embedding_text(product: CatalogProduct) -> str:
    text = f"{product.name} {product.brand} {product.category or ''} {product.description or ''}"
    return re.sub(r"\s+", " ", text).strip()


async def clear_catalog(repository: ProductRepository) -> int:
    keys = [key async for key in repository.redis.scan_iter(match=f"{PRODUCT_KEY_PREFIX}*")]
    if not keys:
        return 0
    return await repository.redis.delete(*keys)


async def load_catalog(
    repository: ProductRepository,
    embedding_service: EmbeddingService,
    products: list[CatalogProduct],
    batch_size: int = 50,
) -> LoadSummary:
    """Embed and store products in batches.

    A batch whose embedding or write fails is logged and skipped; later
    batches still load.
    """
    summary = LoadSummary()
    total_batches = (len(products) + batch_size - 1) // batch_size

    for start in range(0, len(products), batch_size):
        batch = products[start : start + batch_size]
        batch_number = start // batch_size + 1
        try:
            vectors = await embedding_service.generate_embeddings_batch(
                [embedding_text(p) for p in batch]
            )
            for product, vector in zip(batch, vectors, strict=True):
                product.embedding = vector
                await repository.save_product(product)
        except Exception:
            logger.exception("Catalog batch %d/%d failed", batch_number, total_batches)
            summary.failed_batches += 1
            continue

        summary.products_loaded += len(batch)
        summary.categories.update(p.category for p in batch if p.category)
        summary.brands.update(p.brand for p in batch)
        logger.info(
            "Catalog batch %d/%d stored (%d products so far)",
            batch_number,
            total_batches,
            summary.products_loaded,
        )

    return summary
