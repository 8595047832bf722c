"""LangGraph shopping workflow state definition."""

from typing import Annotated, Literal

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from grocery_agent.schemas.product import ProductRef


class ShoppingAgentState(TypedDict, total=False):
    """State that flows through the shopping workflow for one request.

    Attributes:
        messages: Chat history plus the new user turn (add_messages reducer)
        session_id: Opaque session id; scopes carts and cache entries
        cache_status: "hit" when answered from the semantic cache
        result: Final reply content
        tools_used: Tool names in the order the agent called them
        found_products: Products surfaced by search and recipe tools
        loop_outcome: How the reasoning loop ended (terminal, bound_exceeded, error)
        cache_ttl: TTL chosen for the reply in milliseconds (0 = not cacheable)
        cache_written: Whether the reply was written to the cache
    """

    messages: Annotated[list[BaseMessage], add_messages]
    session_id: str
    cache_status: Literal["hit", "miss", "unset"]
    result: str
    tools_used: list[str]
    found_products: list[ProductRef]
    loop_outcome: str
    cache_ttl: int
    cache_written: bool
