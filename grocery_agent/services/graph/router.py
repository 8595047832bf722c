"""LangGraph conditional routing logic."""

from grocery_agent.services.graph.state import ShoppingAgentState


def route_after_cache_check(state: ShoppingAgentState) -> str:
    """Send cache hits straight to the end; everything else to the agent.

    Returns:
        "hit" or "miss", mapped to graph nodes by the workflow.
    """
    return "hit" if state.get("cache_status") == "hit" else "miss"
