"""Redis-backed chat history storage."""

import logging

import redis.asyncio as aioredis

from grocery_agent.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)


def _chat_key(session_id: str, chat_id: str) -> str:
    return f"users:{session_id}:chat:{chat_id}"


class ChatRepository:
    """Append-only per-chat message lists, grouped under the session prefix."""

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int = 24 * 60 * 60) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def get_chat_history(
        self, session_id: str, chat_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        """Return messages in chronological order, optionally only the last ``limit``."""
        start = -limit if limit else 0
        raws = await self.redis.lrange(_chat_key(session_id, chat_id), start, -1)
        return [ChatMessage.model_validate_json(raw) for raw in raws]

    async def save_chat_message(self, session_id: str, chat_id: str, message: ChatMessage) -> None:
        key = _chat_key(session_id, chat_id)
        await self.redis.rpush(key, message.model_dump_json())
        await self.redis.expire(key, self.ttl_seconds)

    async def delete_chats(self, session_id: str) -> int:
        """Delete every chat for a session; returns the number of chats removed."""
        keys = [key async for key in self.redis.scan_iter(match=f"users:{session_id}:chat:*")]
        if not keys:
            return 0
        return await self.redis.delete(*keys)
