"""Turn handling for the command assistant.

A turn yields exactly one :class:`CommandResponse`:

* query tools run immediately and answer with ``type="response"``;
* mutation tools are previewed, parked as a :class:`PendingCall` for five
  minutes and answered with ``type="confirmation_required"``;
* a confirmed pending call is consumed once, executed once and always
  removed, whether execution succeeds or not;
* anything that goes wrong is answered with ``type="error"``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import uuid4

from fastapi import Depends

from app.core.config import get_settings
from app.core.errors import AccessDeniedError, CommandError, ExecutionFailure, NotFoundError, ToolValidationError
from app.middleware.caller_context import CallerContext
from app.models.assistant import (
    CancelResponse,
    ChatRequest,
    CommandResponse,
    ConfirmRequest,
    DisambiguationOption,
    PendingCall,
    ToolCall,
    ToolExecutionResult,
)
from app.models.memory import RecentEntity
from app.prompts.assistant_prompts import build_system_prompt
from app.services.duplicate_detector import DuplicateDetector, get_duplicate_detector
from app.services.entity_repository import EntityRepository, get_entity_repository
from app.services.entity_resolver import EntityResolver, get_entity_resolver
from app.services.llm_tool_caller import LLMUnavailableError, ToolCallingLLM
from app.services.memory_cache import ConversationMemoryService, get_memory_service
from app.services.pending_calls import PendingCallStore, get_pending_call_store
from app.services.tool_executor import BusinessExecutor, BusinessExecutorError, get_business_executor
from app.services.tool_preview import ToolPreviewBuilder
from app.services.tool_registry import is_query_tool
from app.services.tool_schemas import accepts_client_id, build_llm_tools, validate_tool_arguments

logger = logging.getLogger(__name__)

PENDING_CALL_TTL = timedelta(minutes=5)

CLIENT_PATH_RE = re.compile(r"/dashboard/clients/([0-9a-f-]{36})", re.IGNORECASE)

# name argument, id argument, entity type; clients first so the others get a scope
REFERENCE_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ("clientName", "clientId", "client"),
    ("guestName", "guestId", "guest"),
    ("vendorName", "vendorId", "vendor"),
    ("eventName", "eventId", "event"),
)

# substring of the tool name, entity type, field holding the display name
_RESULT_ENTITY_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ("guest", "guest", "name"),
    ("event", "event", "title"),
    ("vendor", "vendor", "name"),
    ("budget", "budget", "category"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_client_id_from_path(pathname: Optional[str]) -> Optional[str]:
    """``/en/dashboard/clients/<uuid>/guests`` -> ``<uuid>``."""
    if not pathname:
        return None
    match = CLIENT_PATH_RE.search(pathname)
    return match.group(1) if match else None


def extract_entity_from_result(tool_name: str, result: ToolExecutionResult) -> Optional[RecentEntity]:
    data = result.data
    if not isinstance(data, dict):
        return None
    for marker, entity_type, name_field in _RESULT_ENTITY_FIELDS:
        if marker in tool_name:
            if data.get("id") and data.get(name_field):
                return RecentEntity(type=entity_type, id=str(data["id"]), name=str(data[name_field]))
            return None
    return None


def topic_for(tool_name: str) -> str:
    return tool_name.replace("_", " ")


def error_response(exc: CommandError) -> CommandResponse:
    return CommandResponse(
        type="error",
        content=exc.message,
        error=str(exc.details.get("error") or exc.message),
        error_code=exc.code,
    )


class CommandOrchestrator:
    def __init__(
        self,
        *,
        repository: EntityRepository,
        resolver: EntityResolver,
        preview_builder: ToolPreviewBuilder,
        pending_calls: PendingCallStore,
        executor: BusinessExecutor,
        memory: ConversationMemoryService,
        pending_ttl: timedelta = PENDING_CALL_TTL,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.preview_builder = preview_builder
        self.pending_calls = pending_calls
        self.executor = executor
        self.memory = memory
        self.pending_ttl = pending_ttl
        self._clock = clock
        self._new_id = id_factory

    # =========================================================================
    # Turns
    # =========================================================================

    async def chat(self, caller: CallerContext, request: ChatRequest, llm: ToolCallingLLM) -> CommandResponse:
        try:
            scoped = await self._scope(caller, request.client_id, request.pathname)
        except CommandError as exc:
            return error_response(exc)

        user_message = next((m.content for m in reversed(request.messages) if m.role == "user"), "")
        memory = self.memory.get_memory(caller.user_id, scoped.client_id)
        pronoun = self.memory.resolve_pronouns(user_message, memory)
        if pronoun:
            logger.info("Pronoun resolved to %s:%s", pronoun.entity_type, pronoun.entity_id)

        system_prompt = build_system_prompt(client_id=scoped.client_id, memory=memory, pronoun=pronoun)
        try:
            turn = await llm.complete(system_prompt, request.messages, build_llm_tools())
        except LLMUnavailableError:
            logger.exception("LLM unavailable for user=%s", caller.user_id)
            return CommandResponse(
                type="error",
                content="The assistant is temporarily unavailable. Please try again in a moment.",
                error="llm_unavailable",
                error_code="llm_unavailable",
            )

        if turn.tool_call is None:
            return CommandResponse(type="response", content=turn.content or "I understood your request.")

        return await self._dispatch(scoped, turn.tool_call, assistant_text=turn.content)

    async def handle_tool_call(
        self,
        caller: CallerContext,
        tool_call: ToolCall,
        *,
        client_id: Optional[str] = None,
        pathname: Optional[str] = None,
    ) -> CommandResponse:
        try:
            scoped = await self._scope(caller, client_id, pathname)
        except CommandError as exc:
            return error_response(exc)
        return await self._dispatch(scoped, tool_call)

    async def confirm(self, caller: CallerContext, request: ConfirmRequest) -> CommandResponse:
        try:
            if request.client_id:
                await self._check_client_access(caller, request.client_id)

            pending = await self.pending_calls.get(request.pending_call_id)
            if pending is None:
                raise NotFoundError("Pending tool call not found or expired. Please try your request again.")
            if pending.company_id != caller.company_id or pending.user_id != caller.user_id:
                logger.warning("Pending call ownership mismatch id=%s user=%s", pending.id, caller.user_id)
                raise AccessDeniedError("This confirmation belongs to another session")
            if pending.tool_name != request.tool_name:
                raise ToolValidationError("Tool call mismatch")

            pending = await self.pending_calls.take(request.pending_call_id)
            if pending is None:
                # consumed by a concurrent confirm/cancel
                raise NotFoundError("Pending tool call not found or expired. Please try your request again.")

            try:
                if pending.is_expired(self._clock()):
                    logger.info("Pending call expired id=%s tool=%s", pending.id, pending.tool_name)
                    raise NotFoundError("This confirmation has expired. Please try your request again.")
                logger.info("Pending call confirmed id=%s tool=%s", pending.id, pending.tool_name)
                result = await self._execute(pending.tool_name, pending.args, caller.with_client(pending.client_id))
            finally:
                await self.pending_calls.delete(pending.id)
        except CommandError as exc:
            return error_response(exc)

        self.memory.update(
            caller.user_id,
            request.client_id or pending.client_id,
            topic=topic_for(pending.tool_name),
            entity=extract_entity_from_result(pending.tool_name, result),
            clear_follow_ups=True,
        )

        message = result.message or f"{topic_for(pending.tool_name).capitalize()} completed."
        if result.cascade_results:
            message += "\n\nAdditionally:\n" + "\n".join(f"- {item.action}" for item in result.cascade_results)

        return CommandResponse(
            type="response",
            content=message,
            data=result.data,
            cascade_results=result.cascade_results,
        )

    async def cancel(self, caller: CallerContext, pending_call_id: str) -> CancelResponse:
        pending = await self.pending_calls.get(pending_call_id)
        if pending is not None and pending.company_id != caller.company_id:
            raise AccessDeniedError("This confirmation belongs to another session")
        removed = await self.pending_calls.delete(pending_call_id)
        if removed:
            logger.info("Pending call cancelled id=%s", pending_call_id)
        return CancelResponse()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _scope(self, caller: CallerContext, client_id: Optional[str], pathname: Optional[str]) -> CallerContext:
        client_id = client_id or extract_client_id_from_path(pathname)
        if client_id:
            await self._check_client_access(caller, client_id)
        return caller.with_client(client_id)

    async def _check_client_access(self, caller: CallerContext, client_id: str) -> None:
        if not await self.repository.client_belongs_to_company(client_id, caller.company_id):
            logger.warning("Client access denied client=%s company=%s", client_id, caller.company_id)
            raise AccessDeniedError("Client not found or access denied")

    async def _dispatch(
        self,
        caller: CallerContext,
        tool_call: ToolCall,
        *,
        assistant_text: Optional[str] = None,
    ) -> CommandResponse:
        tool_name = tool_call.name
        try:
            args = validate_tool_arguments(tool_name, tool_call.arguments)

            if caller.client_id and not args.get("clientId") and accepts_client_id(tool_name):
                args["clientId"] = caller.client_id
            elif args.get("clientId") and args["clientId"] != caller.client_id:
                await self._check_client_access(caller, args["clientId"])

            disambiguation = await self._resolve_references(caller, args)
            if disambiguation is not None:
                return disambiguation

            scoped = caller.with_client(args.get("clientId") or caller.client_id)
            if is_query_tool(tool_name):
                logger.info("Tool classified tool=%s type=query", tool_name)
                return await self._run_query(scoped, tool_name, args)
            logger.info("Tool classified tool=%s type=mutation", tool_name)
            return await self._prepare_mutation(scoped, tool_name, args, assistant_text)
        except CommandError as exc:
            return error_response(exc)

    async def _resolve_references(self, caller: CallerContext, args: Dict[str, Any]) -> Optional[CommandResponse]:
        for name_field, id_field, entity_type in REFERENCE_FIELDS:
            query = args.get(name_field)
            if not query or args.get(id_field):
                continue
            result = await self.resolver.resolve(
                entity_type,
                str(query),
                company_id=caller.company_id,
                client_id=args.get("clientId") or caller.client_id,
            )
            if not result.is_ambiguous and result.entity is not None:
                args[id_field] = result.entity.id
                continue
            if result.options:
                lines = [result.message or "Please select one:"]
                lines.extend(f"{idx}. {option.display_name}" for idx, option in enumerate(result.options, start=1))
                return CommandResponse(
                    type="response",
                    content="\n".join(lines),
                    options=[
                        DisambiguationOption(id=option.id, display_name=option.display_name, score=option.score)
                        for option in result.options
                    ],
                )
            raise NotFoundError(result.message or f"No {entity_type} found matching \"{query}\"")
        return None

    async def _execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolExecutionResult:
        try:
            return await self.executor.execute(tool_name, args, caller)
        except CommandError:
            raise
        except BusinessExecutorError as exc:
            logger.exception("Tool execution failed tool=%s status=%s", tool_name, exc.status_code)
            raise ExecutionFailure(f"Failed to execute {tool_name}: {exc.message}", details={"error": exc.message}) from exc
        except Exception as exc:
            logger.exception("Tool execution failed tool=%s", tool_name)
            raise ExecutionFailure(f"Failed to execute {tool_name}: {exc}", details={"error": str(exc)}) from exc

    async def _run_query(self, caller: CallerContext, tool_name: str, args: Dict[str, Any]) -> CommandResponse:
        result = await self._execute(tool_name, args, caller)
        self.memory.update(caller.user_id, caller.client_id, topic=topic_for(tool_name))
        return CommandResponse(
            type="response",
            content=result.message or f"{topic_for(tool_name).capitalize()} completed.",
            data=result.data,
        )

    async def _prepare_mutation(
        self,
        caller: CallerContext,
        tool_name: str,
        args: Dict[str, Any],
        assistant_text: Optional[str],
    ) -> CommandResponse:
        executor_preview = None
        try:
            executor_preview = await self.executor.preview(tool_name, args, caller)
        except BusinessExecutorError as exc:
            logger.warning("Executor preview unavailable tool=%s status=%s, using built-in preview", tool_name, exc.status_code)
        except Exception:
            logger.exception("Executor preview failed tool=%s, using built-in preview", tool_name)

        preview = await self.preview_builder.build(tool_name, args, caller, executor_preview)

        now = self._clock()
        pending = PendingCall(
            id=self._new_id(),
            tool_name=tool_name,
            args=args,
            preview=preview,
            user_id=caller.user_id,
            company_id=caller.company_id,
            client_id=caller.client_id,
            created_at=now,
            expires_at=now + self.pending_ttl,
        )
        await self.pending_calls.set(pending)
        logger.info("Pending call created id=%s tool=%s expires_at=%s", pending.id, tool_name, pending.expires_at.isoformat())

        return CommandResponse(
            type="confirmation_required",
            content=assistant_text or f"I'll {preview.description[:1].lower()}{preview.description[1:]}. Please confirm.",
            pending_call_id=pending.id,
            preview=preview,
        )


async def get_command_orchestrator(
    repository: EntityRepository = Depends(get_entity_repository),
    pending_calls: PendingCallStore = Depends(get_pending_call_store),
    executor: BusinessExecutor = Depends(get_business_executor),
    memory: ConversationMemoryService = Depends(get_memory_service),
    resolver: EntityResolver = Depends(get_entity_resolver),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
) -> CommandOrchestrator:
    settings = get_settings()
    return CommandOrchestrator(
        repository=repository,
        resolver=resolver,
        preview_builder=ToolPreviewBuilder(detector),
        pending_calls=pending_calls,
        executor=executor,
        memory=memory,
        pending_ttl=timedelta(seconds=settings.pending_call_ttl_seconds),
    )
