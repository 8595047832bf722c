"""Cache time-to-live decisions by content class.

A TTL of 0 means the response must not be cached.
"""

import logging
from collections.abc import Iterable

from grocery_agent.services.tools.registry import ToolName

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000

NO_CACHE_TTL = 0
RECIPE_TTL = 24 * HOUR_MS
KNOWLEDGE_TTL = 12 * HOUR_MS
PRODUCT_SEARCH_TTL = 2 * HOUR_MS
DEFAULT_TTL = 6 * HOUR_MS

PERSONAL_TOOLS = frozenset({ToolName.ADD_TO_CART, ToolName.VIEW_CART, ToolName.CLEAR_CART})
RECIPE_TOOLS = frozenset({ToolName.FAST_RECIPE_INGREDIENTS})
KNOWLEDGE_TOOLS = frozenset({ToolName.DIRECT_ANSWER})
SEARCH_TOOLS = frozenset({ToolName.SEARCH_PRODUCTS})

# Evaluated in order, first match wins
_TOOL_TIERS: list[tuple[str, frozenset[ToolName], int]] = [
    ("personal", PERSONAL_TOOLS, NO_CACHE_TTL),
    ("recipe", RECIPE_TOOLS, RECIPE_TTL),
    ("knowledge", KNOWLEDGE_TOOLS, KNOWLEDGE_TTL),
    ("product_search", SEARCH_TOOLS, PRODUCT_SEARCH_TTL),
]

CART_KEYWORDS = ("cart", "basket", "checkout", "add to", "remove from")
RECIPE_KEYWORDS = ("recipe", "ingredient", "how to make", "how do i make", "cook")
PRICE_KEYWORDS = ("price", "cost", "cheap", "expensive", "under ", "deal", "discount")


def decide_ttl(tools_used: Iterable[str]) -> int:
    """Map the tools a turn used to a cache TTL in milliseconds."""
    used = set(tools_used)
    for tier, tools, ttl in _TOOL_TIERS:
        matched = used & {t.value for t in tools}
        if matched:
            logger.info("TTL tier %s from tools %s: %dms", tier, sorted(matched), ttl)
            return ttl

    logger.info("Default TTL for tools %s", sorted(used))
    return DEFAULT_TTL


def classify_query_ttl(query: str) -> int:
    """Keyword heuristic for paths without tool tracking.

    Plain substring checks; it will misclassify some queries (e.g. "cook"
    in "cookies"). Cart wording always wins so personal state is never cached.
    """
    text = query.lower()
    if any(k in text for k in CART_KEYWORDS):
        return NO_CACHE_TTL
    if any(k in text for k in RECIPE_KEYWORDS):
        return RECIPE_TTL
    if any(k in text for k in PRICE_KEYWORDS):
        return PRODUCT_SEARCH_TTL
    return DEFAULT_TTL
