from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.middleware.caller_context import CallerContext
from app.models.assistant import ToolCall, ToolExecutionResult
from app.services.command_orchestrator import CommandOrchestrator
from app.services.conversation_store import InMemoryConversationStore, get_conversation_store
from app.services.duplicate_detector import DuplicateDetector
from app.services.entity_repository import InMemoryEntityRepository, get_entity_repository
from app.services.entity_resolver import EntityResolver
from app.services.llm_tool_caller import LLMTurn, get_tool_caller
from app.services.memory_cache import BoundedMemoryCache, ConversationMemoryService, get_memory_service
from app.services.pending_calls import InMemoryPendingCallStore, get_pending_call_store
from app.services.tool_executor import get_business_executor
from app.services.tool_preview import ToolPreviewBuilder

USER_ID = "user-1"
COMPANY_ID = "company-1"
OTHER_COMPANY_ID = "company-2"
CLIENT_ID = "3f1c6a9e-2b7d-4c1a-9e8f-0a1b2c3d4e5f"
OTHER_CLIENT_ID = "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"
GUEST_JOHN_ID = "11111111-1111-4111-8111-111111111111"
GUEST_PRIYA_ID = "22222222-2222-4222-8222-222222222222"
VENDOR_ID = "33333333-3333-4333-8333-333333333333"
EVENT_ID = "44444444-4444-4444-8444-444444444444"

CALLER_HEADERS = {"X-User-ID": USER_ID, "X-Company-ID": COMPANY_ID}


# Configure anyio to use only asyncio backend
@pytest.fixture
def anyio_backend():
    return "asyncio"


class StubExecutor:
    """Records every call and answers like the business API would."""

    def __init__(self) -> None:
        self.executed: List[Dict[str, Any]] = []
        self.previewed: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.preview_payload: Optional[Dict[str, Any]] = None

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolExecutionResult:
        self.executed.append({"tool": tool_name, "args": dict(args), "client_id": caller.client_id})
        if self.fail_with is not None:
            raise self.fail_with
        if tool_name == "add_guest":
            full_name = " ".join(part for part in (args.get("firstName"), args.get("lastName")) if part)
            return ToolExecutionResult(
                tool_name=tool_name,
                data={"id": "55555555-5555-4555-8555-555555555555", "name": full_name},
                message=f"Added {full_name} to the guest list.",
                cascade_results=[{"action": "Created hotel booking", "entityType": "hotel", "entityId": "h-1"}]
                if args.get("needsHotel")
                else [],
            )
        if tool_name == "get_guest_stats":
            return ToolExecutionResult(
                tool_name=tool_name,
                data={"confirmed": 42, "pending": 10, "declined": 3},
                message="42 guests have confirmed.",
            )
        return ToolExecutionResult(tool_name=tool_name, data={"ok": True}, message=f"{tool_name} done.")

    async def preview(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> Optional[Dict[str, Any]]:
        self.previewed.append(tool_name)
        return self.preview_payload


class StubLLM:
    def __init__(self) -> None:
        self.next_turn = LLMTurn(content="Hello! How can I help with the wedding?", tool_call=None, model="stub")
        self.system_prompts: List[str] = []
        self.tool_counts: List[int] = []

    def reply_with_tool(self, name: str, arguments: Dict[str, Any], content: Optional[str] = None) -> None:
        self.next_turn = LLMTurn(content=content, tool_call=ToolCall(name=name, arguments=arguments), model="stub")

    async def complete(self, system_prompt, messages, tools) -> LLMTurn:
        self.system_prompts.append(system_prompt)
        self.tool_counts.append(len(tools))
        return self.next_turn


@pytest.fixture()
def repository() -> InMemoryEntityRepository:
    repo = InMemoryEntityRepository()
    repo.add(
        "client",
        {
            "id": CLIENT_ID,
            "company_id": COMPANY_ID,
            "partner1_first_name": "Aisha",
            "partner1_last_name": "Khan",
            "partner2_first_name": "Rohan",
            "partner2_last_name": "Mehta",
            "wedding_name": "Aisha & Rohan",
        },
    )
    repo.add(
        "client",
        {
            "id": OTHER_CLIENT_ID,
            "company_id": OTHER_COMPANY_ID,
            "partner1_first_name": "Emma",
            "partner1_last_name": "Stone",
            "partner2_first_name": "Liam",
        },
    )
    repo.add(
        "guest",
        {
            "id": GUEST_JOHN_ID,
            "client_id": CLIENT_ID,
            "first_name": "John",
            "last_name": "Smith",
            "email": "john.smith@example.com",
            "phone": "+1 (555) 123-4567",
            "group_name": "College Friends",
        },
    )
    repo.add(
        "guest",
        {
            "id": GUEST_PRIYA_ID,
            "client_id": CLIENT_ID,
            "first_name": "Priya",
            "last_name": "Sharma",
            "email": "priya@example.com",
        },
    )
    repo.add(
        "vendor",
        {"id": VENDOR_ID, "company_id": COMPANY_ID, "name": "Bloom Florals", "category": "florals"},
    )
    repo.add(
        "event",
        {"id": EVENT_ID, "client_id": CLIENT_ID, "title": "Sangeet Night", "event_type": "Sangeet"},
    )
    return repo


@pytest.fixture()
def pending_store() -> InMemoryPendingCallStore:
    return InMemoryPendingCallStore()


@pytest.fixture()
def conversation_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture()
def memory_service() -> ConversationMemoryService:
    return ConversationMemoryService(BoundedMemoryCache(capacity=50, ttl_seconds=3600))


@pytest.fixture()
def executor() -> StubExecutor:
    return StubExecutor()


@pytest.fixture()
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture()
def caller() -> CallerContext:
    return CallerContext(user_id=USER_ID, company_id=COMPANY_ID)


@pytest.fixture()
def orchestrator(repository, pending_store, executor, memory_service) -> CommandOrchestrator:
    return CommandOrchestrator(
        repository=repository,
        resolver=EntityResolver(repository),
        preview_builder=ToolPreviewBuilder(DuplicateDetector(repository)),
        pending_calls=pending_store,
        executor=executor,
        memory=memory_service,
    )


@pytest.fixture(autouse=True)
def override_assistant_dependencies(repository, pending_store, executor, memory_service, llm, conversation_store):
    app.dependency_overrides[get_entity_repository] = lambda: repository
    app.dependency_overrides[get_pending_call_store] = lambda: pending_store
    app.dependency_overrides[get_business_executor] = lambda: executor
    app.dependency_overrides[get_memory_service] = lambda: memory_service
    app.dependency_overrides[get_tool_caller] = lambda: llm
    app.dependency_overrides[get_conversation_store] = lambda: conversation_store
    yield
    for dependency in (
        get_entity_repository,
        get_pending_call_store,
        get_business_executor,
        get_memory_service,
        get_tool_caller,
        get_conversation_store,
    ):
        app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def test_client() -> TestClient:
    with TestClient(app) as client:
        yield client
