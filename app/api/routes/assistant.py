from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.errors import AccessDeniedError
from app.middleware.caller_context import CallerContext, get_caller_context
from app.models.assistant import (
    CancelRequest,
    CancelResponse,
    ChatRequest,
    CommandResponse,
    ConfirmRequest,
    MemoryResponse,
    ToolCallRequest,
)
from app.services.command_orchestrator import CommandOrchestrator, get_command_orchestrator
from app.services.llm_tool_caller import ToolCallingLLM, get_tool_caller
from app.services.memory_cache import ConversationMemoryService, get_memory_service

router = APIRouter(prefix="/assistant", tags=["assistant"])


@router.post("/chat", response_model=CommandResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def chat(
    request: ChatRequest,
    caller: CallerContext = Depends(get_caller_context),
    orchestrator: CommandOrchestrator = Depends(get_command_orchestrator),
    llm: ToolCallingLLM = Depends(get_tool_caller),
) -> CommandResponse:
    if not request.messages:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="messages must not be empty")
    return await orchestrator.chat(caller, request, llm)


@router.post("/tool-call", response_model=CommandResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def tool_call(
    request: ToolCallRequest,
    caller: CallerContext = Depends(get_caller_context),
    orchestrator: CommandOrchestrator = Depends(get_command_orchestrator),
) -> CommandResponse:
    return await orchestrator.handle_tool_call(
        caller,
        request.tool_call,
        client_id=request.client_id,
        pathname=request.pathname,
    )


@router.post("/confirm", response_model=CommandResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def confirm(
    request: ConfirmRequest,
    caller: CallerContext = Depends(get_caller_context),
    orchestrator: CommandOrchestrator = Depends(get_command_orchestrator),
) -> CommandResponse:
    return await orchestrator.confirm(caller, request)


@router.post("/cancel", response_model=CancelResponse, response_model_by_alias=True)
async def cancel(
    request: CancelRequest,
    caller: CallerContext = Depends(get_caller_context),
    orchestrator: CommandOrchestrator = Depends(get_command_orchestrator),
) -> CancelResponse:
    try:
        return await orchestrator.cancel(caller, request.pending_call_id)
    except AccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc


@router.get("/memory", response_model=MemoryResponse, response_model_by_alias=True)
def read_memory(
    client_id: Optional[str] = Query(None, alias="clientId"),
    caller: CallerContext = Depends(get_caller_context),
    memory: ConversationMemoryService = Depends(get_memory_service),
) -> MemoryResponse:
    return MemoryResponse.from_memory(memory.get_memory(caller.user_id, client_id))


@router.delete("/memory", status_code=status.HTTP_204_NO_CONTENT)
def clear_memory(
    client_id: Optional[str] = Query(None, alias="clientId"),
    caller: CallerContext = Depends(get_caller_context),
    memory: ConversationMemoryService = Depends(get_memory_service),
) -> None:
    memory.clear(caller.user_id, client_id)
