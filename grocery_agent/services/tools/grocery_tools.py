"""LangChain @tool definitions for recipe, product, cart, and knowledge operations.

Tools are created once per service via create_grocery_tools(); each tool
closes over the services it needs. Cart tools take the session id as an
injected argument, hidden from the model and filled in by ToolRegistry.dispatch.
"""

import json
import logging
from typing import Annotated

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import BaseTool, InjectedToolArg, tool
from pydantic import BaseModel, Field

from grocery_agent.services.cart_service import CartService
from grocery_agent.services.graph.prompts import DIRECT_ANSWER_PROMPT
from grocery_agent.services.ingredient_matcher import IngredientMatcher
from grocery_agent.services.recipe_service import RecipeService
from grocery_agent.services.search_service import ProductSearchService

logger = logging.getLogger(__name__)

DEFAULT_QUANTITY = "as needed"

# --- Input schemas ---


class FastRecipeIngredientsInput(BaseModel):
    """Input for recipe ingredient lookup."""

    recipe: str = Field(description="The recipe or dish name (e.g., 'butter chicken')")


class SearchProductsInput(BaseModel):
    """Input for product search."""

    query: str = Field(description="Product search query (e.g., 'basmati rice')")
    category: str | None = Field(None, description="Product category filter")
    max_price: float | None = Field(None, description="Maximum price filter")
    min_rating: float | None = Field(None, description="Minimum rating filter (0-5)")
    limit: int = Field(8, description="Maximum number of results", ge=1, le=20)
    use_semantic_search: bool = Field(True, description="Use AI-powered semantic search")


class AddToCartInput(BaseModel):
    """Input for adding products to the cart."""

    session_id: Annotated[str, InjectedToolArg] = Field(description="User session ID")
    product_ids: list[str] = Field(description="Product IDs to add", min_length=1)
    quantities: list[float] = Field(
        default_factory=list,
        description=(
            "Quantity for each product, in the same order (default: 1 each). "
            "Fractions are rounded up to whole units."
        ),
    )


class SessionCartInput(BaseModel):
    """Input for cart operations that only need the session."""

    session_id: Annotated[str, InjectedToolArg] = Field(description="User session ID")


class DirectAnswerInput(BaseModel):
    """Input for general cooking knowledge questions."""

    question: str = Field(description="The cooking, food, or grocery question to answer")


def create_grocery_tools(
    search_service: ProductSearchService,
    cart_service: CartService,
    recipe_service: RecipeService,
    ingredient_matcher: IngredientMatcher,
    knowledge_llm: BaseChatModel,
) -> list[BaseTool]:
    """Create LangChain tools for the shopping agent.

    Returns list of @tool-decorated functions for bind_tools().
    """

    @tool(args_schema=FastRecipeIngredientsInput)
    async def fast_recipe_ingredients(recipe: str) -> str:
        """Get the essential ingredients for a recipe with ONE suggested product each.
        Use first for any 'ingredients for X' or 'what do I need to make X' question."""
        logger.info("Fast recipe ingredients for %r", recipe)
        try:
            parsed = await recipe_service.extract_ingredients(recipe)
            essential = recipe_service.essential_ingredients(parsed)
            matches = await ingredient_matcher.match_ingredients([i.name for i in essential])
        except Exception:
            logger.exception("Recipe ingredient lookup failed for %r", recipe)
            return json.dumps(
                {
                    "type": "recipe_ingredients",
                    "success": False,
                    "error": f"Sorry, I had trouble getting ingredients for {recipe!r}. "
                    "Please try rephrasing.",
                }
            )

        for match, ingredient in zip(matches, essential, strict=True):
            match.quantity = ingredient.quantity or DEFAULT_QUANTITY

        return json.dumps(
            {
                "type": "recipe_ingredients",
                "success": True,
                "recipe": parsed.recipe or recipe,
                "total_ingredients": len(essential),
                "ingredient_products": [m.model_dump(mode="json") for m in matches],
                "message": "Here are the essential ingredients with quick product suggestions!",
            }
        )

    @tool(args_schema=SearchProductsInput)
    async def search_products(
        query: str,
        category: str | None = None,
        max_price: float | None = None,
        min_rating: float | None = None,
        limit: int = 8,
        use_semantic_search: bool = True,
    ) -> str:
        """Search the product catalog. Use when the customer wants specific products
        or more options and brands for an ingredient."""
        logger.info("Searching products: %r (category=%s)", query, category)
        try:
            result = await search_service.search_products(
                query=query,
                category=category,
                max_price=max_price,
                min_rating=min_rating,
                limit=limit,
                use_semantic_search=use_semantic_search,
            )
            if result.total_found == 0 and category:
                logger.info("No results in category %r, retrying without it", category)
                result = await search_service.search_products(
                    query=query,
                    max_price=max_price,
                    min_rating=min_rating,
                    limit=limit,
                    use_semantic_search=use_semantic_search,
                )
        except Exception:
            logger.exception("Product search failed for %r", query)
            return json.dumps(
                {
                    "type": "product_search",
                    "success": False,
                    "error": f"Sorry, I had trouble searching for {query!r}. Please try again.",
                    "query": query,
                    "products": [],
                }
            )

        if result.total_found == 0:
            return json.dumps(
                {
                    "type": "product_search",
                    "success": False,
                    "message": f"No products found for {query!r}. Try different keywords.",
                    "query": query,
                    "products": [],
                }
            )

        return json.dumps(
            {"type": "product_search", "success": True, "query": query}
            | result.model_dump(mode="json")
        )

    @tool(args_schema=AddToCartInput)
    async def add_to_cart(
        session_id: str,
        product_ids: list[str],
        quantities: list[float] | None = None,
    ) -> str:
        """Add products to the customer's shopping cart by product ID."""
        logger.info("Adding to cart: %s", ", ".join(product_ids))
        try:
            result = await cart_service.add_items_to_cart(session_id, product_ids, quantities)
        except Exception:
            logger.exception("Add to cart failed")
            result = {"success": False, "error": "Failed to add items to cart. Please try again."}
        return json.dumps({"type": "cart_operation", "operation": "add"} | result)

    @tool(args_schema=SessionCartInput)
    async def view_cart(session_id: str) -> str:
        """View the current contents of the customer's shopping cart."""
        try:
            cart = await cart_service.get_cart(session_id)
        except Exception:
            logger.exception("View cart failed")
            return json.dumps(
                {
                    "type": "cart_operation",
                    "operation": "view",
                    "success": False,
                    "error": "Failed to get cart contents",
                }
            )

        return json.dumps(
            {
                "type": "cart_operation",
                "operation": "view",
                "success": True,
                "items": [i.model_dump(mode="json") for i in cart.items],
                "summary": cart.summary.model_dump(mode="json"),
                "message": (
                    f"You have {cart.summary.total_items} item(s) in your cart"
                    if cart.items
                    else "Your cart is empty"
                ),
            }
        )

    @tool(args_schema=SessionCartInput)
    async def clear_cart(session_id: str) -> str:
        """Remove all items from the customer's shopping cart."""
        try:
            cleared = await cart_service.clear_cart(session_id)
        except Exception:
            logger.exception("Clear cart failed")
            return json.dumps(
                {
                    "type": "cart_operation",
                    "operation": "clear",
                    "success": False,
                    "error": "Failed to clear cart",
                }
            )

        return json.dumps(
            {
                "type": "cart_operation",
                "operation": "clear",
                "success": True,
                "items_cleared": cleared,
                "message": (
                    f"Cart cleared! {cleared} items removed." if cleared else "Cart is already empty"
                ),
            }
        )

    @tool(args_schema=DirectAnswerInput)
    async def direct_answer(question: str) -> str:
        """Answer general cooking, food storage, and nutrition questions from knowledge.
        Not for recipe ingredient lists."""
        try:
            response = await knowledge_llm.ainvoke(
                [SystemMessage(content=DIRECT_ANSWER_PROMPT), HumanMessage(content=question)]
            )
        except Exception:
            logger.exception("Direct answer failed for %r", question)
            return json.dumps(
                {
                    "type": "direct_answer",
                    "success": False,
                    "error": "Sorry, I had trouble answering that. Please try rephrasing.",
                    "question": question,
                }
            )

        content = response.content if isinstance(response.content, str) else ""
        return json.dumps(
            {"type": "direct_answer", "success": True, "content": content, "question": question}
        )

    return [
        fast_recipe_ingredients,
        search_products,
        add_to_cart,
        view_cart,
        clear_cart,
        direct_answer,
    ]
