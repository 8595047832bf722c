"""Recipe ingredient extraction via the chat model."""

import json
import logging
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from grocery_agent.core.exceptions import RecipeExtractionError
from grocery_agent.schemas.recipe import ExtractedIngredient, RecipeIngredients
from grocery_agent.services.graph.prompts import INGREDIENT_EXTRACTION_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_MAX_ESSENTIAL = 6


def _strip_code_fences(content: str) -> str:
    # Models sometimes wrap JSON in ```json ... ```
    content = re.sub(r"^```(?:json)?\s*\n?", "", content.strip())
    return re.sub(r"\n?```\s*$", "", content.strip())


class RecipeService:
    """Asks the model for a recipe's essential ingredients."""

    def __init__(self, llm: BaseChatModel, max_essential: int = DEFAULT_MAX_ESSENTIAL) -> None:
        self.llm = llm
        self.max_essential = max_essential

    async def extract_ingredients(self, recipe: str) -> RecipeIngredients:
        """Return the parsed ingredient list.

        Raises:
            RecipeExtractionError: the response was not valid JSON or listed no ingredients
        """
        system = INGREDIENT_EXTRACTION_PROMPT.format(max_essential=self.max_essential)
        response = await self.llm.ainvoke(
            [SystemMessage(content=system), HumanMessage(content=f"Ingredients for {recipe}")]
        )
        content = response.content if isinstance(response.content, str) else ""

        try:
            parsed = RecipeIngredients.model_validate(json.loads(_strip_code_fences(content)))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to parse ingredient extraction response: %r", content)
            raise RecipeExtractionError(f"Could not parse ingredients for {recipe!r}") from e

        if not parsed.ingredients:
            raise RecipeExtractionError(f"No ingredients returned for {recipe!r}")
        return parsed

    def essential_ingredients(self, parsed: RecipeIngredients) -> list[ExtractedIngredient]:
        """Essential ingredients, capped at ``max_essential``.

        Falls back to the full list when the model marked nothing essential.
        """
        essential = [i for i in parsed.ingredients if i.essential] or parsed.ingredients
        return essential[: self.max_essential]
