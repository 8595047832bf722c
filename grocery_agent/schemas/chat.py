"""Pydantic schemas for the shopping workflow surface."""

from typing import Literal

from pydantic import Field

from grocery_agent.schemas.common import BaseSchema

# === History ===


class ChatMessage(BaseSchema):
    """A persisted chat turn."""

    role: Literal["user", "assistant"]
    content: str


# === Workflow ===


class WorkflowRequest(BaseSchema):
    """Input to one run of the shopping workflow."""

    session_id: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4000)


class WorkflowResponse(BaseSchema):
    """Output of one run of the shopping workflow."""

    content: str
    is_cached_response: bool = False


class ExecutionSummary(BaseSchema):
    """Per-run summary logged after the workflow completes."""

    session_id: str
    cache_status: str
    tools_used: list[str]
    products_found: int = 0
