"""Domain exceptions raised by services and absorbed by the workflow."""


class GroceryAgentError(RuntimeError):
    """Base class for all grocery agent errors."""


class RecipeExtractionError(GroceryAgentError):
    """The model did not return a usable ingredient list for a recipe."""


class SanitizationError(GroceryAgentError):
    """Personal data could not be removed from a text before caching."""


class CacheStoreError(GroceryAgentError):
    """The semantic cache store is unreachable or returned garbage."""
