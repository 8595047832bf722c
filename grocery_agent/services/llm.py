"""Chat model construction shared by the agent, tools, and sanitizer."""

from langchain_openai import ChatOpenAI

from grocery_agent.core.config import settings

AGENT_TEMPERATURE = 0.1
MAX_RESPONSE_TOKENS = 1200


def get_chat_model(
    temperature: float = AGENT_TEMPERATURE,
    max_tokens: int | None = MAX_RESPONSE_TOKENS,
    model: str | None = None,
) -> ChatOpenAI:
    """Create a ChatOpenAI instance with the configured per-call timeout."""
    return ChatOpenAI(
        model=model or settings.chat_model,
        api_key=settings.openai_api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=settings.llm_timeout_seconds,
    )
