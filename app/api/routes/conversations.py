import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.middleware.caller_context import CallerContext, get_caller_context
from app.models.conversation import (
    Conversation,
    ConversationDetail,
    ConversationList,
    ConversationMessage,
    CreateConversationRequest,
    ResumeConversationRequest,
    SaveMessageRequest,
    UpdateConversationRequest,
)
from app.services.conversation_store import ConversationStore, generate_conversation_title, get_conversation_store
from app.services.entity_repository import EntityRepository, get_entity_repository
from app.services.memory_cache import ConversationMemoryService, get_memory_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant/conversations", tags=["conversations"])


async def _check_client(repository: EntityRepository, caller: CallerContext, client_id: Optional[str]) -> None:
    if client_id and not await repository.client_belongs_to_company(client_id, caller.company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client not found or access denied")


async def _owned_conversation(store: ConversationStore, caller: CallerContext, conversation_id: str) -> Conversation:
    conversation = await store.get(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if conversation.user_id != caller.user_id:
        logger.warning("Conversation access denied id=%s user=%s", conversation_id, caller.user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this conversation")
    return conversation


async def _start_conversation(
    store: ConversationStore,
    memory: ConversationMemoryService,
    caller: CallerContext,
    client_id: Optional[str],
    title: Optional[str] = None,
) -> Conversation:
    conversation = await store.create(caller.user_id, caller.company_id, client_id, title)
    # a new conversation starts from an empty memory for its session
    memory.clear(caller.user_id, client_id)
    logger.info("Conversation created id=%s user=%s client=%s", conversation.id, caller.user_id, client_id)
    return conversation


@router.get("", response_model=ConversationList, response_model_by_alias=True)
async def list_conversations(
    client_id: Optional[str] = Query(None, alias="clientId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationList:
    conversations, total = await store.list(
        caller.user_id, caller.company_id, client_id=client_id, limit=limit, offset=offset
    )
    return ConversationList(conversations=conversations, total=total)


@router.post("", response_model=Conversation, response_model_by_alias=True, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest,
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
    repository: EntityRepository = Depends(get_entity_repository),
    memory: ConversationMemoryService = Depends(get_memory_service),
) -> Conversation:
    await _check_client(repository, caller, request.client_id)
    return await _start_conversation(store, memory, caller, request.client_id, request.title)


@router.post("/resume", response_model=ConversationDetail, response_model_by_alias=True)
async def resume_conversation(
    request: ResumeConversationRequest,
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
    repository: EntityRepository = Depends(get_entity_repository),
    memory: ConversationMemoryService = Depends(get_memory_service),
) -> ConversationDetail:
    if request.conversation_id:
        conversation = await _owned_conversation(store, caller, request.conversation_id)
        return ConversationDetail(conversation=conversation, messages=await store.load_history(conversation.id))

    await _check_client(repository, caller, request.client_id)
    recent = await store.get_recent(
        caller.user_id, caller.company_id, request.client_id, timedelta(hours=request.within_hours)
    )
    if recent is not None:
        return ConversationDetail(conversation=recent, messages=await store.load_history(recent.id))

    conversation = await _start_conversation(store, memory, caller, request.client_id)
    return ConversationDetail(conversation=conversation, is_new=True)


@router.get("/{conversation_id}", response_model=ConversationDetail, response_model_by_alias=True)
async def get_conversation(
    conversation_id: str,
    message_limit: int = Query(50, ge=1, le=100, alias="messageLimit"),
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationDetail:
    conversation = await _owned_conversation(store, caller, conversation_id)
    messages = await store.load_history(conversation_id, limit=message_limit)
    return ConversationDetail(conversation=conversation, messages=messages)


@router.patch("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_conversation(
    conversation_id: str,
    request: UpdateConversationRequest,
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> None:
    await _owned_conversation(store, caller, conversation_id)
    await store.update(conversation_id, title=request.title, summary=request.summary)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> None:
    await _owned_conversation(store, caller, conversation_id)
    await store.delete(conversation_id)
    logger.info("Conversation deleted id=%s user=%s", conversation_id, caller.user_id)


@router.post(
    "/{conversation_id}/messages",
    response_model=ConversationMessage,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def save_message(
    conversation_id: str,
    request: SaveMessageRequest,
    caller: CallerContext = Depends(get_caller_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationMessage:
    conversation = await _owned_conversation(store, caller, conversation_id)
    message = await store.save_message(
        conversation_id,
        request.role,
        request.content,
        tool_name=request.tool_name,
        tool_args=request.tool_args,
        tool_result=request.tool_result,
        status=request.status,
    )
    if request.role == "user" and conversation.message_count == 0 and not conversation.title:
        await store.update(conversation_id, title=generate_conversation_title(request.content))
    return message
