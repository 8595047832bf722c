"""Bounded agentic tool loop.

The model is invoked repeatedly; each batch of tool calls it emits is run in
order through the ToolRegistry and fed back as tool messages, until it answers
without calling a tool or the iteration bound is reached.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

from grocery_agent.schemas.product import ProductRef
from grocery_agent.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 6

ERROR_FALLBACK_MESSAGE = (
    "I apologize, but I'm having trouble with your grocery request right now. "
    "Please try asking about recipe ingredients, searching for products, or managing your cart!"
)
BOUND_EXCEEDED_MESSAGE = (
    "I wasn't able to finish that request in a reasonable number of steps. "
    "Could you try asking in a simpler way, for example one recipe or one product at a time?"
)


class LoopOutcome(StrEnum):
    TERMINAL = "terminal"
    BOUND_EXCEEDED = "bound_exceeded"
    ERROR = "error"


@dataclass
class ToolLoopResult:
    """Result from the agentic tool loop."""

    content: str
    outcome: LoopOutcome = LoopOutcome.TERMINAL
    tools_used: list[str] = field(default_factory=list)
    found_products: list[ProductRef] = field(default_factory=list)
    iterations: int = 0


def _fold_found_products(result: ToolLoopResult, tool_output: str) -> None:
    """Collect products from product_search and recipe_ingredients results."""
    try:
        parsed: Any = json.loads(tool_output)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Tool result is not JSON; no structured data extracted")
        return
    if not isinstance(parsed, dict):
        return

    refs: list[ProductRef] = []
    if parsed.get("type") == "product_search":
        for p in parsed.get("products") or []:
            refs.append(
                ProductRef(
                    id=p["id"],
                    name=p["name"],
                    brand=p.get("brand") or "Generic",
                    price=p.get("sale_price", 0.0),
                    category=p.get("category"),
                    rating=p.get("rating"),
                )
            )
    elif parsed.get("type") == "recipe_ingredients":
        for item in parsed.get("ingredient_products") or []:
            if item.get("suggested_product"):
                refs.append(ProductRef.model_validate(item["suggested_product"]))

    seen = {p.id for p in result.found_products}
    for ref in refs:
        if ref.id not in seen:
            result.found_products.append(ref)
            seen.add(ref.id)


async def run_tool_loop(
    llm: Any,
    messages: list[BaseMessage],
    registry: ToolRegistry,
    session_id: str,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> ToolLoopResult:
    """Run the agentic tool loop with full tracking.

    ``messages`` is the working transcript and is extended in place with the
    model's tool-call turns and the tool results.

    Returns:
        ToolLoopResult. A model failure yields the error fallback with
        ``tools_used == ["error"]``; running out of iterations yields the
        bound-exceeded fallback with the tools used so far.
    """
    result = ToolLoopResult(content="")
    logger.info("Tool loop started: tools=%s, max_iterations=%d", registry.names, max_iterations)

    try:
        bound_llm = llm.bind_tools(registry.tools)

        for i in range(max_iterations):
            result.iterations = i + 1
            response: AIMessage = await bound_llm.ainvoke(messages)

            if not response.tool_calls:
                logger.info("Tool loop iteration %d: no tool calls, returning text response", i)
                result.content = response.content if isinstance(response.content, str) else ""
                result.outcome = LoopOutcome.TERMINAL
                return result

            logger.info(
                "Tool loop iteration %d: tool calls=%s",
                i,
                [tc["name"] for tc in response.tool_calls],
            )
            messages.append(response)

            # Sequential on purpose: a later call may read cart state an earlier one changed
            for tc in response.tool_calls:
                result.tools_used.append(tc["name"])
                tool_output = await registry.dispatch(tc["name"], tc.get("args") or {}, session_id)
                _fold_found_products(result, tool_output)
                messages.append(ToolMessage(content=tool_output, tool_call_id=tc.get("id") or ""))
    except Exception:
        logger.exception("Shopping agent loop failed")
        return ToolLoopResult(
            content=ERROR_FALLBACK_MESSAGE,
            outcome=LoopOutcome.ERROR,
            tools_used=["error"],
            iterations=result.iterations,
        )

    logger.warning("Tool loop hit the %d iteration bound", max_iterations)
    result.content = BOUND_EXCEEDED_MESSAGE
    result.outcome = LoopOutcome.BOUND_EXCEEDED
    return result
