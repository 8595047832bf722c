"""Tests for the LangGraph shopping workflow: routing, caching, and sanitization."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
from conftest import tool_call_message
from langchain_core.messages import AIMessage, HumanMessage

from grocery_agent.core.exceptions import SanitizationError
from grocery_agent.schemas.product import CatalogProduct
from grocery_agent.services.compliance_service import DataComplianceSanitizer
from grocery_agent.services.graph.nodes import process_work_output_with_caching
from grocery_agent.services.graph.router import route_after_cache_check
from grocery_agent.services.graph.workflow import create_shopping_graph
from grocery_agent.services.semantic_cache import SemanticCacheGateway
from grocery_agent.services.tools.registry import ToolRegistry
from grocery_agent.services.ttl_policy import RECIPE_TTL


def _initial_state(message: str, session_id: str = "s1") -> dict[str, Any]:
    return {
        "messages": [HumanMessage(content=message)],
        "session_id": session_id,
        "cache_status": "unset",
        "tools_used": [],
        "found_products": [],
    }


async def _cache_entries(redis: fakeredis.aioredis.FakeRedis) -> list[dict[str, Any]]:
    keys = await redis.keys("semcache:entry:*")
    return [json.loads(await redis.get(key)) for key in keys]


class TestRouteAfterCacheCheck:
    """Tests for the route_after_cache_check conditional edge."""

    def test_hit(self) -> None:
        assert route_after_cache_check({"cache_status": "hit"}) == "hit"

    def test_miss(self) -> None:
        assert route_after_cache_check({"cache_status": "miss"}) == "miss"

    def test_unset_is_miss(self) -> None:
        assert route_after_cache_check({"cache_status": "unset"}) == "miss"
        assert route_after_cache_check({}) == "miss"


class TestShoppingGraph:
    """End-to-end runs of the compiled workflow with a scripted model."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_agent(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
    ) -> None:
        await cache_gateway.write("best rice for biryani", "Basmati rice.", 60_000, "s1")
        llm = scripted_llm()
        graph = create_shopping_graph(
            llm=llm,
            registry=grocery_registry,
            cache=cache_gateway,
            sanitizer=DataComplianceSanitizer(),
        )

        state = await graph.ainvoke(_initial_state("Best rice for biryani"))

        assert state["cache_status"] == "hit"
        assert state["result"] == "Basmati rice."
        assert state["tools_used"] == []
        assert isinstance(state["messages"][-1], AIMessage)
        llm.ainvoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_is_scoped_by_session(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
    ) -> None:
        await cache_gateway.write("best rice for biryani", "Basmati rice.", 60_000, "s1")
        llm = scripted_llm(AIMessage(content="Try basmati."))
        graph = create_shopping_graph(
            llm=llm,
            registry=grocery_registry,
            cache=cache_gateway,
            sanitizer=DataComplianceSanitizer(),
        )

        state = await graph.ainvoke(_initial_state("best rice for biryani", session_id="s2"))

        assert state["cache_status"] == "miss"
        assert state["result"] == "Try basmati."

    @pytest.mark.asyncio
    async def test_butter_chicken_cached_for_a_day_without_personal_data(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
        catalog: list[CatalogProduct],
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        llm = scripted_llm(
            tool_call_message(("fast_recipe_ingredients", {"recipe": "butter chicken"})),
            AIMessage(
                content="For butter chicken you need **Fresh Chicken Breast** by FarmFresh - "
                "₹250.0 (ID: 101) and **Salted Butter** by Amul - ₹56.0 (ID: 42)."
            ),
        )
        graph = create_shopping_graph(
            llm=llm,
            registry=grocery_registry,
            cache=cache_gateway,
            sanitizer=DataComplianceSanitizer(),
        )

        state = await graph.ainvoke(
            _initial_state("Hi, my name is John Smith. What are the ingredients for butter chicken?")
        )

        assert state["cache_status"] == "miss"
        assert state["tools_used"] == ["fast_recipe_ingredients"]
        assert {p.id for p in state["found_products"]} == {"101", "42"}
        assert state["cache_ttl"] == RECIPE_TTL
        assert state["cache_written"] is True

        entries = await _cache_entries(fake_redis)
        assert len(entries) == 1
        assert entries[0]["prompt"] == "What are the ingredients for butter chicken?"
        assert "John" not in entries[0]["prompt"]
        assert entries[0]["attributes"] == {"session_id": "s1"}

        keys = await fake_redis.keys("semcache:entry:*")
        assert 0 < await fake_redis.pttl(keys[0]) <= RECIPE_TTL

    @pytest.mark.asyncio
    async def test_cart_turn_is_not_cached(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
        catalog: list[CatalogProduct],
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        llm = scripted_llm(
            tool_call_message(("add_to_cart", {"product_ids": ["42"]})),
            AIMessage(content="Added Salted Butter to your cart."),
        )
        sanitizer = MagicMock()
        sanitizer.sanitize_pair = AsyncMock()
        graph = create_shopping_graph(
            llm=llm, registry=grocery_registry, cache=cache_gateway, sanitizer=sanitizer
        )

        state = await graph.ainvoke(_initial_state("Add butter to my cart"))

        assert state["result"] == "Added Salted Butter to your cart."
        assert state["cache_ttl"] == 0
        assert state["cache_written"] is False
        assert await fake_redis.keys("semcache:*") == []
        sanitizer.sanitize_pair.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bound_exceeded_reply_is_not_cached(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
        catalog: list[CatalogProduct],
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        llm = scripted_llm(
            *[tool_call_message(("search_products", {"query": "rice"})) for _ in range(2)]
        )
        graph = create_shopping_graph(
            llm=llm,
            registry=grocery_registry,
            cache=cache_gateway,
            sanitizer=DataComplianceSanitizer(),
            max_iterations=2,
        )

        state = await graph.ainvoke(_initial_state("rice?"))

        assert state["loop_outcome"] == "bound_exceeded"
        assert state["cache_written"] is False
        assert await fake_redis.keys("semcache:entry:*") == []

    @pytest.mark.asyncio
    async def test_model_error_reply_is_not_cached(
        self,
        scripted_llm: Callable[..., MagicMock],
        grocery_registry: ToolRegistry,
        cache_gateway: SemanticCacheGateway,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        graph = create_shopping_graph(
            llm=scripted_llm(RuntimeError("upstream 500")),
            registry=grocery_registry,
            cache=cache_gateway,
            sanitizer=DataComplianceSanitizer(),
        )

        state = await graph.ainvoke(_initial_state("what's good today?"))

        assert state["tools_used"] == ["error"]
        assert state["cache_written"] is False
        assert await fake_redis.keys("semcache:entry:*") == []


class TestProcessWorkOutputWithCaching:
    """Tests for the sanitize-and-cache node."""

    @staticmethod
    def _state(tools_used: list[str]) -> dict[str, Any]:
        return {
            "messages": [HumanMessage(content="My email is a@b.com, how do I store eggs?")],
            "session_id": "s1",
            "result": "Refrigerate them in the carton.",
            "tools_used": tools_used,
            "loop_outcome": "terminal",
        }

    @pytest.mark.asyncio
    async def test_sanitizer_failure_skips_write_by_default(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock(return_value=True)
        sanitizer = MagicMock()
        sanitizer.sanitize_pair = AsyncMock(side_effect=SanitizationError("model down"))

        update = await process_work_output_with_caching(
            self._state(["direct_answer"]), cache, sanitizer
        )

        assert update["cache_written"] is False
        cache.write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sanitizer_failure_can_cache_raw_text(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock(return_value=True)
        sanitizer = MagicMock()
        sanitizer.sanitize_pair = AsyncMock(side_effect=SanitizationError("model down"))

        update = await process_work_output_with_caching(
            self._state(["direct_answer"]), cache, sanitizer, failure_policy="cache_unsanitized"
        )

        assert update["cache_written"] is True
        cache.write.assert_awaited_once_with(
            "My email is a@b.com, how do I store eggs?",
            "Refrigerate them in the carton.",
            43_200_000,
            "s1",
        )

    @pytest.mark.asyncio
    async def test_writes_sanitized_pair_unscoped(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock(return_value=True)

        update = await process_work_output_with_caching(
            self._state([]), cache, DataComplianceSanitizer(), scope_by_session=False
        )

        assert update["cache_ttl"] == 21_600_000
        cache.write.assert_awaited_once_with(
            "How do I store eggs?", "Refrigerate them in the carton.", 21_600_000, None
        )

    @pytest.mark.asyncio
    async def test_no_result_is_not_written(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock()

        update = await process_work_output_with_caching(
            {"messages": [], "session_id": "s1"}, cache, DataComplianceSanitizer()
        )

        assert update == {"cache_written": False}
        cache.write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_strategy_classifies_by_keywords(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock(return_value=True)
        state = {
            **self._state([]),
            "messages": [HumanMessage(content="What is the recipe for butter chicken?")],
        }

        update = await process_work_output_with_caching(
            state, cache, DataComplianceSanitizer(), ttl_strategy="query"
        )

        assert update["cache_ttl"] == RECIPE_TTL
        assert cache.write.await_args.args[2] == RECIPE_TTL

    @pytest.mark.asyncio
    async def test_query_strategy_never_caches_cart_wording(self) -> None:
        cache = MagicMock()
        cache.write = AsyncMock()
        state = {
            **self._state(["direct_answer"]),
            "messages": [HumanMessage(content="Put two butters in my basket")],
        }

        update = await process_work_output_with_caching(
            state, cache, DataComplianceSanitizer(), ttl_strategy="query"
        )

        assert update == {"cache_ttl": 0, "cache_written": False}
        cache.write.assert_not_awaited()
