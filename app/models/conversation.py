from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from app.models.assistant import AssistantBase

MessageRole = Literal["user", "assistant", "system", "tool"]
MessageStatus = Literal["pending", "streaming", "success", "error"]


class Conversation(AssistantBase):
    """A persisted assistant chat session, owned by one user inside one company."""

    id: str
    user_id: str = Field(alias="userId")
    company_id: str = Field(alias="companyId")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    title: Optional[str] = None
    summary: Optional[str] = None
    message_count: int = Field(default=0, alias="messageCount")
    last_message_at: Optional[datetime] = Field(default=None, alias="lastMessageAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class ConversationMessage(AssistantBase):
    id: str
    conversation_id: str = Field(alias="conversationId")
    role: MessageRole
    content: str
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    tool_args: Optional[Dict[str, Any]] = Field(default=None, alias="toolArgs")
    tool_result: Optional[Dict[str, Any]] = Field(default=None, alias="toolResult")
    status: MessageStatus = "success"
    created_at: datetime = Field(alias="createdAt")


class CreateConversationRequest(AssistantBase):
    client_id: Optional[str] = Field(default=None, alias="clientId")
    title: Optional[str] = Field(default=None, max_length=200)


class ResumeConversationRequest(AssistantBase):
    """Resume ``conversationId``, or the caller's latest session for the client
    updated within ``withinHours``, or start a new one."""

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    within_hours: int = Field(default=24, ge=1, le=168, alias="withinHours")


class UpdateConversationRequest(AssistantBase):
    title: Optional[str] = Field(default=None, max_length=200)
    summary: Optional[str] = None


class SaveMessageRequest(AssistantBase):
    role: MessageRole
    content: str
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    tool_args: Optional[Dict[str, Any]] = Field(default=None, alias="toolArgs")
    tool_result: Optional[Dict[str, Any]] = Field(default=None, alias="toolResult")
    status: MessageStatus = "success"


class ConversationList(AssistantBase):
    conversations: List[Conversation] = Field(default_factory=list)
    total: int = 0


class ConversationDetail(AssistantBase):
    conversation: Conversation
    messages: List[ConversationMessage] = Field(default_factory=list)
    is_new: bool = Field(default=False, alias="isNew")
