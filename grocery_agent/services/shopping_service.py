"""Shopping service orchestrating the cache-gated LangGraph agent."""

import logging
from typing import Any

import redis.asyncio as aioredis
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from grocery_agent.core.config import Settings, settings
from grocery_agent.core.logging_config import session_id_var
from grocery_agent.schemas.chat import (
    ChatMessage,
    ExecutionSummary,
    WorkflowRequest,
    WorkflowResponse,
)
from grocery_agent.services.cart_repository import CartRepository
from grocery_agent.services.cart_service import CartService
from grocery_agent.services.chat_repository import ChatRepository
from grocery_agent.services.compliance_service import DataComplianceSanitizer
from grocery_agent.services.embedding_service import EmbeddingService, get_embedding_service
from grocery_agent.services.graph.tool_loop import ERROR_FALLBACK_MESSAGE
from grocery_agent.services.graph.workflow import create_shopping_graph
from grocery_agent.services.ingredient_matcher import IngredientMatcher
from grocery_agent.services.llm import get_chat_model
from grocery_agent.services.product_repository import ProductRepository
from grocery_agent.services.recipe_service import RecipeService
from grocery_agent.services.search_service import ProductSearchService
from grocery_agent.services.semantic_cache import RedisSemanticCacheStore, SemanticCacheGateway
from grocery_agent.services.tools.grocery_tools import create_grocery_tools
from grocery_agent.services.tools.registry import ToolRegistry
from grocery_agent.services.vector_index import RedisVectorIndex

logger = logging.getLogger(__name__)

MAX_CONVERSATION_HISTORY = 20  # Last N messages to include


class ShoppingAgentService:
    """Entry point for one shopping conversation turn.

    Collaborators are injected; use create_shopping_service() to wire the
    Redis-backed defaults.
    """

    def __init__(
        self,
        graph: Any,
        chat_repository: ChatRepository,
        cache: SemanticCacheGateway,
    ) -> None:
        self.graph = graph
        self.chat_repository = chat_repository
        self.cache = cache

    async def process_message(self, request: WorkflowRequest) -> WorkflowResponse:
        """Process a chat message and generate a response.

        This is the main entry point. It:
        1. Loads the chat history
        2. Runs the workflow (cache check → agent → sanitize and cache)
        3. Persists the user and assistant turns, whatever the outcome
        4. Returns the reply and whether it came from the cache

        Never raises for a well-formed request; failures yield the fallback reply.
        """
        token = session_id_var.set(request.session_id)
        try:
            try:
                response = await self._run_workflow(request)
            except Exception:
                logger.exception("Shopping workflow failed for chat %s", request.chat_id)
                response = WorkflowResponse(content=ERROR_FALLBACK_MESSAGE, is_cached_response=False)

            await self._persist_turn(request, response.content)
            return response
        finally:
            session_id_var.reset(token)

    async def _run_workflow(self, request: WorkflowRequest) -> WorkflowResponse:
        history = await self.chat_repository.get_chat_history(
            request.session_id, request.chat_id, limit=MAX_CONVERSATION_HISTORY
        )

        messages: list[BaseMessage] = []
        for msg in history:
            if msg.role == "user":
                messages.append(HumanMessage(content=msg.content))
            else:
                messages.append(AIMessage(content=msg.content))
        messages.append(HumanMessage(content=request.message))

        initial_state = {
            "messages": messages,
            "session_id": request.session_id,
            "cache_status": "unset",
            "tools_used": [],
            "found_products": [],
        }

        final_state = await self.graph.ainvoke(initial_state)
        summary = summarize_execution(final_state)
        logger.info(
            "Shopping workflow summary: cache=%s tools=%s products=%d",
            summary.cache_status,
            " -> ".join(summary.tools_used) or "none",
            summary.products_found,
        )

        return WorkflowResponse(
            content=final_state.get("result") or ERROR_FALLBACK_MESSAGE,
            is_cached_response=final_state.get("cache_status") == "hit",
        )

    async def _persist_turn(self, request: WorkflowRequest, reply: str) -> None:
        try:
            await self.chat_repository.save_chat_message(
                request.session_id, request.chat_id, ChatMessage(role="user", content=request.message)
            )
            await self.chat_repository.save_chat_message(
                request.session_id, request.chat_id, ChatMessage(role="assistant", content=reply)
            )
        except Exception:
            logger.exception("Failed to persist chat turn for chat %s", request.chat_id)

    async def end_session(self, session_id: str) -> int:
        """Delete a session's chats and its cache entries.

        Returns:
            Number of cache entries removed
        """
        chats = await self.chat_repository.delete_chats(session_id)
        removed = await self.cache.invalidate(session_id)
        logger.info("Ended session %s: %d chats, %d cache entries removed", session_id, chats, removed)
        return removed


def summarize_execution(final_state: dict[str, Any]) -> ExecutionSummary:
    """Build the per-run summary from the final workflow state."""
    return ExecutionSummary(
        session_id=final_state.get("session_id", ""),
        cache_status=final_state.get("cache_status") or "miss",
        tools_used=list(final_state.get("tools_used") or []),
        products_found=len(final_state.get("found_products") or []),
    )


def create_shopping_service(
    redis_client: aioredis.Redis,
    config: Settings | None = None,
    chat_model: Any = None,
    embedding_service: EmbeddingService | None = None,
    product_index: RedisVectorIndex | None = None,
    cache_index: RedisVectorIndex | None = None,
) -> ShoppingAgentService:
    """Wire the Redis-backed stores, tools, and graph into a ShoppingAgentService.

    The vector indexes default to RediSearch indexes on ``redis_client``.
    """
    config = config or settings
    embeddings = embedding_service or get_embedding_service()
    llm = chat_model or get_chat_model()

    products = ProductRepository(redis_client, vector_index=product_index)
    search_service = ProductSearchService(products, embeddings)
    cart_service = CartService(CartRepository(redis_client, products, config.cart_ttl_seconds))
    recipe_service = RecipeService(
        chat_model or get_chat_model(max_tokens=500),
        max_essential=config.max_essential_ingredients,
    )
    matcher = IngredientMatcher(search_service, config.ingredient_similarity_threshold)
    knowledge_llm = chat_model or get_chat_model(temperature=0.2)

    registry = ToolRegistry.from_tools(
        create_grocery_tools(search_service, cart_service, recipe_service, matcher, knowledge_llm)
    )
    cache = SemanticCacheGateway(
        RedisSemanticCacheStore(
            redis_client,
            embeddings,
            config.cache_similarity_threshold,
            vector_index=cache_index,
        )
    )
    sanitizer = DataComplianceSanitizer(
        (chat_model or get_chat_model(temperature=0.0)) if config.sanitizer_use_llm else None
    )

    graph = create_shopping_graph(
        llm=llm,
        registry=registry,
        cache=cache,
        sanitizer=sanitizer,
        max_iterations=config.max_tool_iterations,
        failure_policy=config.sanitizer_failure_policy,
        scope_by_session=config.cache_scope_by_session,
        currency_symbol=config.currency_symbol,
        ttl_strategy=config.cache_ttl_strategy,
    )
    return ShoppingAgentService(
        graph=graph,
        chat_repository=ChatRepository(redis_client, config.cart_ttl_seconds),
        cache=cache,
    )
