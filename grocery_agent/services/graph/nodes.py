"""LangGraph node functions for the shopping workflow."""

import logging
from typing import Any, Literal

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from grocery_agent.core.exceptions import SanitizationError
from grocery_agent.services.compliance_service import DataComplianceSanitizer
from grocery_agent.services.graph.prompts import SHOPPER_SYSTEM_PROMPT
from grocery_agent.services.graph.state import ShoppingAgentState
from grocery_agent.services.graph.tool_loop import LoopOutcome, run_tool_loop
from grocery_agent.services.semantic_cache import SemanticCacheGateway
from grocery_agent.services.tools.registry import ToolRegistry
from grocery_agent.services.ttl_policy import NO_CACHE_TTL, classify_query_ttl, decide_ttl

logger = logging.getLogger(__name__)

SanitizerFailurePolicy = Literal["skip_cache", "cache_unsanitized"]
TtlStrategy = Literal["tools", "query"]


def _get_last_human_message(state: ShoppingAgentState) -> str:
    """Extract the last human message from state."""
    for msg in reversed(state.get("messages", [])):
        if isinstance(msg, HumanMessage):
            return msg.content if isinstance(msg.content, str) else ""
    return ""


def _cache_scope(state: ShoppingAgentState, scope_by_session: bool) -> str | None:
    return (state.get("session_id") or None) if scope_by_session else None


async def query_cache_check(
    state: ShoppingAgentState,
    cache: SemanticCacheGateway,
    scope_by_session: bool = True,
) -> dict[str, Any]:
    """Answer from the semantic cache when a matching entry exists."""
    query = _get_last_human_message(state)
    logger.info("Checking semantic cache for %r", query[:50])

    cached = await cache.lookup(query, _cache_scope(state, scope_by_session))
    if cached:
        logger.info("Semantic cache hit (%s, similarity=%.3f)", cached.strategy, cached.similarity)
        return {
            "cache_status": "hit",
            "result": cached.response,
            "messages": [AIMessage(content=cached.response)],
            "tools_used": [],
        }

    logger.info("Semantic cache miss, proceeding to agent")
    return {"cache_status": "miss"}


async def personal_shopper_agent(
    state: ShoppingAgentState,
    llm: Any,
    registry: ToolRegistry,
    max_iterations: int,
    currency_symbol: str = "₹",
) -> dict[str, Any]:
    """Run the tool-calling agent over the conversation."""
    system = SHOPPER_SYSTEM_PROMPT.format(currency=currency_symbol)
    messages: list[Any] = [SystemMessage(content=system)] + list(state.get("messages", []))

    result = await run_tool_loop(
        llm,
        messages,
        registry,
        session_id=state.get("session_id", ""),
        max_iterations=max_iterations,
    )
    logger.info(
        "Shopping agent finished: outcome=%s, tools=%s, iterations=%d",
        result.outcome,
        result.tools_used,
        result.iterations,
    )

    return {
        "result": result.content,
        "messages": [AIMessage(content=result.content)],
        "tools_used": result.tools_used,
        "found_products": result.found_products,
        "loop_outcome": result.outcome.value,
    }


async def process_work_output_with_caching(
    state: ShoppingAgentState,
    cache: SemanticCacheGateway,
    sanitizer: DataComplianceSanitizer,
    failure_policy: SanitizerFailurePolicy = "skip_cache",
    scope_by_session: bool = True,
    ttl_strategy: TtlStrategy = "tools",
) -> dict[str, Any]:
    """Sanitize and cache the reply when its content class allows it.

    ``ttl_strategy="query"`` classifies the user query by keywords instead of
    the tools the turn used, for models that run without tool tracking.
    """
    reply = state.get("result")
    if not reply:
        return {"cache_written": False}

    if state.get("loop_outcome") != LoopOutcome.TERMINAL:
        logger.info("Not caching fallback reply (outcome=%s)", state.get("loop_outcome"))
        return {"cache_ttl": NO_CACHE_TTL, "cache_written": False}

    query = _get_last_human_message(state)
    if ttl_strategy == "query":
        ttl = classify_query_ttl(query)
    else:
        ttl = decide_ttl(state.get("tools_used") or [])
    if ttl == NO_CACHE_TTL:
        logger.info("Skipping cache for personal/dynamic operations")
        return {"cache_ttl": ttl, "cache_written": False}

    try:
        cache_query, cache_reply = await sanitizer.sanitize_pair(query, reply)
    except SanitizationError:
        if failure_policy != "cache_unsanitized":
            logger.warning("Sanitization failed, skipping cache write", exc_info=True)
            return {"cache_ttl": ttl, "cache_written": False}
        logger.warning(
            "Sanitization failed, caching unsanitized text (privacy risk)", exc_info=True
        )
        cache_query, cache_reply = query, reply

    written = await cache.write(
        cache_query, cache_reply, ttl, _cache_scope(state, scope_by_session)
    )
    if written:
        logger.info("Cached reply with TTL %dms (%dh)", ttl, round(ttl / 3_600_000))
    return {"cache_ttl": ttl, "cache_written": written}
