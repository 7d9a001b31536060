"""
Pydantic models for the bridge HTTP API.

Field names are snake_case in Python and camelCase on the wire; requests
accept either form.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(ApiModel):
    """A single message in a conversation."""
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(ApiModel):
    """Request body for POST /chat."""
    provider: Optional[str] = None  # None -> configured default provider
    model: Optional[str] = None     # None -> the provider's default model
    messages: list[Message] = []
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    json_mode: bool = False


class UsageInfo(ApiModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatResponse(ApiModel):
    """Response body for POST /chat."""
    provider: str
    model: str
    content: str
    usage: Optional[UsageInfo] = None
    data: Optional[Any] = None
    latency_ms: Optional[int] = None


class ErrorResponse(ApiModel):
    """Body for every 4xx/5xx returned by the bridge."""
    error: str
    provider: Optional[str] = None
    upstream_status: Optional[int] = None
    upstream_body: Optional[str] = None


class DetectResponse(ApiModel):
    """Response body for GET /llm/detect."""
    provider: Optional[str] = None
    model: Optional[str] = None
    available: dict[str, list[str]] = {}
    message: str
