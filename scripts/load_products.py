"""Load a grocery product CSV into the Redis catalog with embeddings.

Expects the columns: index, product, category, brand, sale_price,
market_price, rating, description.

Usage:
    python -m scripts.load_products products.csv --batch-size 100 --max-products 2000
    python -m scripts.load_products products.csv --drop   # clear existing products first
"""

import argparse
import asyncio
import logging
from pathlib import Path

import redis.asyncio as aioredis

from grocery_agent.core.config import settings
from grocery_agent.core.logging_config import setup_logging
from grocery_agent.services.catalog_loader import clear_catalog, load_catalog, read_products_csv
from grocery_agent.services.embedding_service import get_embedding_service
from grocery_agent.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--batch-size", type=int, default=100)
    parser.add_argument("--max-products", type=int, default=2000)
    parser.add_argument("--drop", action="store_true", help="delete existing products first")
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    setup_logging(debug=settings.debug)

    redis = aioredis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        repository = ProductRepository(redis)
        if args.drop:
            removed = await clear_catalog(repository)
            logger.info("Removed %d existing catalog keys", removed)
        await repository.ensure_index()

        products = read_products_csv(args.csv_path, args.max_products)
        summary = await load_catalog(
            repository, get_embedding_service(), products, batch_size=args.batch_size
        )
    finally:
        await redis.aclose()

    print("=" * 60)
    print(f"  Products loaded:  {summary.products_loaded}")
    print(f"  Categories:       {len(summary.categories)}")
    print(f"  Brands:           {len(summary.brands)}")
    print(f"  Failed batches:   {summary.failed_batches}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
