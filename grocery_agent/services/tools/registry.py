"""Closed registry of the tools the shopping agent may call.

Every tool is keyed by a ToolName member. Dispatch by a name outside the
enum, or by a member with no bound tool, yields an ``error`` tool result
instead of raising, so the model can see the mistake and recover.
"""

import json
import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from langchain_core.tools import BaseTool

logger = logging.getLogger(__name__)


class ToolName(StrEnum):
    FAST_RECIPE_INGREDIENTS = "fast_recipe_ingredients"
    SEARCH_PRODUCTS = "search_products"
    ADD_TO_CART = "add_to_cart"
    VIEW_CART = "view_cart"
    CLEAR_CART = "clear_cart"
    DIRECT_ANSWER = "direct_answer"


# Tools whose arguments get the request's session id injected at dispatch
SESSION_SCOPED_TOOLS = frozenset({ToolName.ADD_TO_CART, ToolName.VIEW_CART, ToolName.CLEAR_CART})


def error_result(message: str, tool: str | None = None) -> str:
    """JSON payload for a tool call that could not be executed."""
    payload: dict[str, Any] = {"type": "error", "success": False, "error": message}
    if tool:
        payload["tool"] = tool
    return json.dumps(payload)


class ToolRegistry:
    """Maps ToolName members to LangChain tools and dispatches calls to them."""

    def __init__(self, tools: Mapping[ToolName, BaseTool]) -> None:
        for name, bound in tools.items():
            if bound.name != name.value:
                raise ValueError(f"Tool {bound.name!r} registered under {name.value!r}")
        self._tools = dict(tools)

    @classmethod
    def from_tools(cls, tools: list[BaseTool]) -> "ToolRegistry":
        """Build a registry from tools named after ToolName members.

        Raises:
            ValueError: a tool's name is not a ToolName member
        """
        mapping = {}
        for bound in tools:
            try:
                mapping[ToolName(bound.name)] = bound
            except ValueError as e:
                raise ValueError(f"Unregistered tool name: {bound.name!r}") from e
        return cls(mapping)

    @property
    def tools(self) -> list[BaseTool]:
        """Bound tools in ToolName declaration order, for ``bind_tools``."""
        return [self._tools[name] for name in ToolName if name in self._tools]

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.tools]

    async def dispatch(self, name: str, args: dict[str, Any], session_id: str) -> str:
        """Run one tool call and return its JSON result.

        Unknown names and tool-internal exceptions both become ``error``
        results; nothing raised by a tool escapes this method.
        """
        try:
            tool_name = ToolName(name)
        except ValueError:
            logger.warning("Model requested unknown tool %r", name)
            return error_result("Unknown tool requested", tool=name)

        bound = self._tools.get(tool_name)
        if bound is None:
            logger.warning("Tool %s is not available in this registry", name)
            return error_result("Tool not available", tool=name)

        call_args = dict(args)
        if tool_name in SESSION_SCOPED_TOOLS:
            call_args["session_id"] = session_id

        try:
            result = await bound.ainvoke(call_args)
        except Exception as e:
            logger.exception("Tool execution error: %s", name)
            return error_result(f"Tool failed: {e}", tool=name)

        return result if isinstance(result, str) else json.dumps(result)
