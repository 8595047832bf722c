"""Concurrent ingredient-to-product matching for the recipe tool."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from grocery_agent.schemas.product import ProductRef
from grocery_agent.schemas.recipe import IngredientMatch
from grocery_agent.services.search_service import ProductSearchService

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_FLOOR = 0.6


@dataclass
class LookupOutcome:
    """Result of one ingredient lookup: a product, nothing, or an error."""

    ingredient: str
    product: ProductRef | None = None
    error: Exception | None = None


class IngredientMatcher:
    """Maps ingredient names to their single best product above a similarity floor."""

    def __init__(
        self,
        search_service: ProductSearchService,
        similarity_floor: float = DEFAULT_SIMILARITY_FLOOR,
    ) -> None:
        self.search_service = search_service
        self.similarity_floor = similarity_floor

    async def _lookup(self, name: str) -> LookupOutcome:
        try:
            results = await self.search_service.semantic_search(
                name, limit=1, threshold=self.similarity_floor
            )
        except Exception as e:
            logger.warning("Ingredient lookup failed for %r: %s", name, e)
            return LookupOutcome(ingredient=name, error=e)

        if not results:
            logger.info("No product cleared the floor for %r", name)
            return LookupOutcome(ingredient=name)
        return LookupOutcome(ingredient=name, product=ProductRef.from_catalog(results[0].product))

    async def match_ingredients(self, names: Sequence[str]) -> list[IngredientMatch]:
        """Look up every ingredient concurrently.

        The output has one entry per input name, in input order. A failed or
        empty lookup yields ``suggested_product=None`` rather than dropping
        the ingredient.
        """
        if not names:
            return []

        logger.info("Matching %d ingredients in parallel", len(names))
        outcomes = await asyncio.gather(*(self._lookup(name) for name in names))

        failures = sum(1 for o in outcomes if o.error is not None)
        if failures:
            logger.warning("%d of %d ingredient lookups failed", failures, len(names))

        return [
            IngredientMatch(ingredient=o.ingredient, suggested_product=o.product)
            for o in outcomes
        ]
