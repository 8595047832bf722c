"""Pydantic schemas for tool payloads, carts, and workflow I/O."""

from grocery_agent.schemas.cart import Cart, CartItem, CartOperationResult, CartSummary
from grocery_agent.schemas.chat import (
    ChatMessage,
    ExecutionSummary,
    WorkflowRequest,
    WorkflowResponse,
)
from grocery_agent.schemas.common import BaseSchema
from grocery_agent.schemas.product import (
    CatalogProduct,
    ProductRef,
    ProductSearchResponse,
    ProductSearchResult,
)
from grocery_agent.schemas.recipe import ExtractedIngredient, IngredientMatch, RecipeIngredients

__all__ = [
    "BaseSchema",
    "Cart",
    "CartItem",
    "CartOperationResult",
    "CartSummary",
    "CatalogProduct",
    "ChatMessage",
    "ExecutionSummary",
    "ExtractedIngredient",
    "IngredientMatch",
    "ProductRef",
    "ProductSearchResponse",
    "ProductSearchResult",
    "RecipeIngredients",
    "WorkflowRequest",
    "WorkflowResponse",
]
