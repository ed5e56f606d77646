import json

import httpx
import pytest

from app.middleware.caller_context import CallerContext
from app.services.tool_executor import BusinessExecutorError, HttpBusinessExecutor

pytestmark = pytest.mark.anyio

CALLER = CallerContext(user_id="user-1", company_id="company-1", client_id="client-1")


def _executor(handler) -> HttpBusinessExecutor:
    return HttpBusinessExecutor("https://planner.example.com/api/", transport=httpx.MockTransport(handler))


async def test_execute_posts_args_with_caller_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["company"] = request.headers["X-Company-ID"]
        seen["client"] = request.headers["X-Client-ID"]
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {"id": "g-1", "name": "Jane Doe"},
                "message": "Added Jane Doe",
                "cascadeResults": [{"action": "Created hotel booking", "entityType": "hotel"}],
            },
        )

    result = await _executor(handler).execute("add_guest", {"firstName": "Jane"}, CALLER)

    assert seen["url"] == "https://planner.example.com/api/tools/add_guest/execute"
    assert seen["body"] == {"args": {"firstName": "Jane"}, "clientId": "client-1"}
    assert seen["company"] == "company-1"
    assert seen["client"] == "client-1"
    assert result.tool_name == "add_guest"
    assert result.cascade_results[0].action == "Created hotel booking"


async def test_execute_raises_on_http_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "Guest already exists"})

    with pytest.raises(BusinessExecutorError) as excinfo:
        await _executor(handler).execute("add_guest", {"firstName": "Jane"}, CALLER)

    assert excinfo.value.status_code == 409
    assert excinfo.value.message == "Guest already exists"


async def test_execute_raises_when_backend_reports_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "Event is locked"})

    with pytest.raises(BusinessExecutorError) as excinfo:
        await _executor(handler).execute("update_event", {}, CALLER)

    assert excinfo.value.message == "Event is locked"


async def test_unreachable_backend_is_a_bad_gateway():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BusinessExecutorError) as excinfo:
        await _executor(handler).execute("get_guest_stats", {}, CALLER)

    assert excinfo.value.status_code == 502


async def test_preview_missing_endpoint_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "not found"})

    assert await _executor(handler).preview("add_guest", {}, CALLER) is None


async def test_preview_returns_backend_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tools/add_vendor/preview"
        return httpx.Response(200, json={"description": "Add florist", "warnings": []})

    assert await _executor(handler).preview("add_vendor", {}, CALLER) == {"description": "Add florist", "warnings": []}
