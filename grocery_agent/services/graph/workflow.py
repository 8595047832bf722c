"""LangGraph workflow definition for the shopping agent."""

import logging
from typing import Any

from langgraph.graph import END, StateGraph

from grocery_agent.services.compliance_service import DataComplianceSanitizer
from grocery_agent.services.graph.nodes import (
    SanitizerFailurePolicy,
    TtlStrategy,
    personal_shopper_agent,
    process_work_output_with_caching,
    query_cache_check,
)
from grocery_agent.services.graph.router import route_after_cache_check
from grocery_agent.services.graph.state import ShoppingAgentState
from grocery_agent.services.graph.tool_loop import DEFAULT_MAX_ITERATIONS
from grocery_agent.services.semantic_cache import SemanticCacheGateway
from grocery_agent.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def create_shopping_graph(
    llm: Any,
    registry: ToolRegistry,
    cache: SemanticCacheGateway,
    sanitizer: DataComplianceSanitizer,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    failure_policy: SanitizerFailurePolicy = "skip_cache",
    scope_by_session: bool = True,
    currency_symbol: str = "₹",
    ttl_strategy: TtlStrategy = "tools",
) -> Any:
    """Build and compile the cache-gated shopping workflow.

    query_cache_check → (hit) END
                      → (miss) personal_shopper_agent → process_work_output_with_caching → END

    Returns:
        Compiled LangGraph workflow
    """

    async def _cache_check(state: ShoppingAgentState) -> dict[str, Any]:
        return await query_cache_check(state, cache=cache, scope_by_session=scope_by_session)

    async def _agent(state: ShoppingAgentState) -> dict[str, Any]:
        return await personal_shopper_agent(
            state,
            llm=llm,
            registry=registry,
            max_iterations=max_iterations,
            currency_symbol=currency_symbol,
        )

    async def _cache_write(state: ShoppingAgentState) -> dict[str, Any]:
        return await process_work_output_with_caching(
            state,
            cache=cache,
            sanitizer=sanitizer,
            failure_policy=failure_policy,
            scope_by_session=scope_by_session,
            ttl_strategy=ttl_strategy,
        )

    graph = StateGraph(ShoppingAgentState)

    graph.add_node("query_cache_check", _cache_check)
    graph.add_node("personal_shopper_agent", _agent)
    graph.add_node("process_work_output_with_caching", _cache_write)

    graph.set_entry_point("query_cache_check")

    graph.add_conditional_edges(
        "query_cache_check",
        route_after_cache_check,
        {
            "hit": END,
            "miss": "personal_shopper_agent",
        },
    )
    graph.add_edge("personal_shopper_agent", "process_work_output_with_caching")
    graph.add_edge("process_work_output_with_caching", END)

    return graph.compile()
