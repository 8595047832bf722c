"""Pydantic schemas for recipe ingredient extraction and matching."""

from pydantic import Field

from grocery_agent.schemas.common import BaseSchema
from grocery_agent.schemas.product import ProductRef


class ExtractedIngredient(BaseSchema):
    """An ingredient as returned by the extraction model."""

    name: str
    quantity: str | None = None
    essential: bool = True


class RecipeIngredients(BaseSchema):
    """Parsed ingredient list for a recipe."""

    recipe: str
    ingredients: list[ExtractedIngredient] = Field(default_factory=list)


class IngredientMatch(BaseSchema):
    """One ingredient and its best catalog match, if any cleared the floor."""

    ingredient: str
    quantity: str | None = None
    suggested_product: ProductRef | None = None
