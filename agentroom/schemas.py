"""Pydantic schemas for agents, meeting rooms and the chat-completion API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_MAX_CHAIN_LENGTH = 5
DEFAULT_CHECK_IN_TOKEN_LIMIT = 512


def now_iso() -> str:
    """Current local time as an ISO-8601 string."""
    return datetime.now().isoformat()


class StoredModel(BaseModel):
    """Base for records persisted as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


# --- Agents and profiles ---


class ModelParams(StoredModel):
    """Sampling parameters sent with every completion request."""

    ctx_size: int = Field(default=4096, ge=1)
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    top_n: int = Field(default=40, ge=0)


class Agent(StoredModel):
    """A named model + prompt configuration."""

    name: str = Field(..., pattern=r"^[A-Za-z0-9_.-]+$")
    model: str
    system_prompt: str = ""
    model_params: ModelParams = Field(default_factory=ModelParams)
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)

    @property
    def role_summary(self) -> str:
        """First line of the system prompt, used when listing participants."""
        first_line = self.system_prompt.split("\n")[0]
        return first_line[:200] + ("..." if len(self.system_prompt) > 200 else "")


class Profile(StoredModel):
    """User profile whose attributes are shared with every agent."""

    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


class Config(StoredModel):
    """Contents of config.json."""

    current_profile: str = "default"
    endpoint: str = "http://localhost:12434"
    request_timeout: float = Field(default=300.0, gt=0)


# --- Meeting rooms ---


class MeetingMessage(StoredModel):
    """One turn in a room's shared log."""

    role: Literal["user", "assistant"]
    content: str
    agent_name: str | None = None
    target_agent: str | None = None
    chain_depth: int = Field(default=0, ge=0)
    timestamp: str = Field(default_factory=now_iso)


class BufferedResponse(StoredModel):
    """A reply that was generated but not shown yet (a raised hand)."""

    agent_name: str
    content: str
    timestamp: str = Field(default_factory=now_iso)


class ResponseStats(StoredModel):
    """Token usage reported for the last streamed reply."""

    agent_name: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    context_window_size: int = 0


class MeetingMetadata(StoredModel):
    """Denormalized summary fields, recomputed on every mutation."""

    active_agents: list[str] = Field(default_factory=list)
    total_messages: int = 0
    last_response_stats: ResponseStats | None = None


class MeetingSession(StoredModel):
    """Durable state of one meeting room."""

    id: str
    room_name: str
    agent_names: list[str] = Field(default_factory=list)
    profile_name: str = "default"
    shared_messages: list[MeetingMessage] = Field(default_factory=list)
    buffered_responses: list[BufferedResponse] = Field(default_factory=list)
    max_chain_length: int = Field(default=DEFAULT_MAX_CHAIN_LENGTH, ge=0)
    check_in_token_limit: int = Field(default=DEFAULT_CHECK_IN_TOKEN_LIMIT, ge=0)
    metadata: MeetingMetadata = Field(default_factory=MeetingMetadata)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


class ChatSession(StoredModel):
    """Single-agent conversation."""

    id: str
    agent_name: str
    messages: list[MeetingMessage] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


class TargetedMessage(BaseModel):
    """Resolved addressing intent of one inbound message. Not persisted."""

    content: str
    targeted_agents: list[str] = Field(default_factory=list)
    is_direct_target: bool = False


# --- Chat-completion API ---


class ChatMessage(BaseModel):
    """A message in the upstream chat-completion request."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request body for the chat-completions endpoint."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stream: bool = False


class CompletionMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class CompletionDelta(BaseModel):
    role: str | None = None
    content: str | None = None


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage | None = None
    delta: CompletionDelta | None = None
    finish_reason: str | None = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Non-streaming response. Unknown upstream fields are ignored."""

    id: str | None = None
    model: str | None = None
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None


class CompletionChunk(BaseModel):
    """One server-sent event of a streamed completion."""

    id: str | None = None
    model: str | None = None
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None
    timings: dict[str, float] | None = None
