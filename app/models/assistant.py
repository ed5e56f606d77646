from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from app.models.memory import ConversationMemory


class AssistantBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Tool calls, previews and execution results
# =============================================================================

class ToolCall(AssistantBase):
    """One function call emitted by the LLM layer.

    ``arguments`` arrives as a JSON string from the provider, or as an
    already-decoded object when the call is submitted directly.
    """

    name: str
    arguments: Union[str, Dict[str, Any]] = Field(default_factory=dict)


class PreviewField(AssistantBase):
    name: str
    value: Any = None
    display_value: str = Field(alias="displayValue")


class ToolPreview(AssistantBase):
    tool_name: str = Field(alias="toolName")
    action: str
    description: str
    fields: List[PreviewField] = Field(default_factory=list)
    cascade_effects: List[str] = Field(default_factory=list, alias="cascadeEffects")
    warnings: List[str] = Field(default_factory=list)
    requires_confirmation: bool = Field(default=True, alias="requiresConfirmation")


class CascadeResult(AssistantBase):
    action: str
    entity_type: Optional[str] = Field(default=None, alias="entityType")
    entity_id: Optional[str] = Field(default=None, alias="entityId")


class ToolExecutionResult(AssistantBase):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: bool = True
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    data: Any = None
    message: str = ""
    cascade_results: List[CascadeResult] = Field(default_factory=list, alias="cascadeResults")


class PendingCall(AssistantBase):
    id: str
    tool_name: str = Field(alias="toolName")
    args: Dict[str, Any] = Field(default_factory=dict)
    preview: ToolPreview
    user_id: str = Field(alias="userId")
    company_id: str = Field(alias="companyId")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    created_at: datetime = Field(alias="createdAt")
    expires_at: datetime = Field(alias="expiresAt")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now


# =============================================================================
# API requests / responses
# =============================================================================

class ChatMessage(AssistantBase):
    role: Literal["user", "assistant", "system", "tool"]
    content: str
    name: Optional[str] = None


class ChatRequest(AssistantBase):
    messages: List[ChatMessage]
    client_id: Optional[str] = Field(default=None, alias="clientId")
    pathname: Optional[str] = None


class ToolCallRequest(AssistantBase):
    tool_call: ToolCall = Field(alias="toolCall")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    pathname: Optional[str] = None


class ConfirmRequest(AssistantBase):
    pending_call_id: str = Field(alias="pendingCallId")
    tool_name: str = Field(alias="toolName")
    client_id: Optional[str] = Field(default=None, alias="clientId")


class CancelRequest(AssistantBase):
    pending_call_id: str = Field(alias="pendingCallId")


class DisambiguationOption(AssistantBase):
    id: str
    display_name: str = Field(alias="displayName")
    score: float


class CommandResponse(AssistantBase):
    """The single response shape of every assistant turn.

    ``type`` is one of ``response``, ``confirmation_required`` or ``error``;
    the remaining fields are populated according to it.
    """

    type: Literal["response", "confirmation_required", "error"]
    content: str
    pending_call_id: Optional[str] = Field(default=None, alias="pendingCallId")
    preview: Optional[ToolPreview] = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    data: Any = None
    cascade_results: Optional[List[CascadeResult]] = Field(default=None, alias="cascadeResults")
    options: Optional[List[DisambiguationOption]] = None


class CancelResponse(AssistantBase):
    success: bool = True
    message: str = "Action cancelled"


class RecentEntityResponse(AssistantBase):
    type: str
    id: str
    name: str
    last_mentioned: datetime = Field(alias="lastMentioned")


class MemoryResponse(AssistantBase):
    last_topics: List[str] = Field(default_factory=list, alias="lastTopics")
    recent_entities: List[RecentEntityResponse] = Field(default_factory=list, alias="recentEntities")
    pending_follow_ups: List[str] = Field(default_factory=list, alias="pendingFollowUps")
    session_started: datetime = Field(alias="sessionStarted")
    message_count: int = Field(default=0, alias="messageCount")

    @classmethod
    def from_memory(cls, memory: ConversationMemory) -> "MemoryResponse":
        return cls(
            last_topics=list(memory.last_topics),
            recent_entities=[
                RecentEntityResponse(type=item.type, id=item.id, name=item.name, last_mentioned=item.last_mentioned)
                for item in memory.recent_entities
            ],
            pending_follow_ups=list(memory.pending_follow_ups),
            session_started=memory.session_started,
            message_count=memory.message_count,
        )
