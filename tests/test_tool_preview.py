from datetime import date

import pytest

from app.core.errors import ToolValidationError
from app.middleware.caller_context import CallerContext
from app.services.duplicate_detector import DuplicateDetector
from app.services.entity_repository import InMemoryEntityRepository
from app.services.tool_preview import ToolPreviewBuilder, describe_action, format_field_value

pytestmark = pytest.mark.anyio

CALLER = CallerContext(user_id="user-1", company_id="company-1", client_id="client-1")


@pytest.fixture()
def builder():
    repo = InMemoryEntityRepository()
    repo.add(
        "guest",
        {"id": "g-1", "client_id": "client-1", "first_name": "John", "last_name": "Smith", "group_name": "Family"},
    )
    repo.add("vendor", {"id": "v-1", "company_id": "company-1", "name": "Bloom Florals", "category": "florals"})
    return ToolPreviewBuilder(DuplicateDetector(repo), today=lambda: date(2026, 6, 10))


def test_format_field_value():
    assert format_field_value("notes", None) == "Not set"
    assert format_field_value("plusOne", True) == "Yes"
    assert format_field_value("needsHotel", False) == "No"
    assert format_field_value("budget", 5000) == "$5,000"
    assert format_field_value("estimatedCost", 1234.5) == "$1,234.50"
    assert format_field_value("guestCount", 150) == "150"
    assert format_field_value("guestIds", ["a", "b"]) == "a, b"
    assert format_field_value("updates", {"rsvpStatus": "confirmed"}) == '{"rsvpStatus": "confirmed"}'


def test_describe_action():
    assert describe_action("add_guest", {"firstName": "Jane", "lastName": "Doe"}) == "Add guest Jane Doe to wedding"
    assert describe_action("create_client", {"partner1FirstName": "Aisha", "partner2FirstName": "Rohan"}) == (
        "Create new wedding for Aisha & Rohan"
    )
    assert describe_action("shift_timeline", {"shiftMinutes": -30}) == "Shift timeline 30 minutes earlier"
    assert describe_action("update_pipeline", {}) == "Execute update_pipeline"


async def test_build_add_guest_preview(builder):
    preview = await builder.build(
        "add_guest",
        {"firstName": "Jane", "lastName": "Doe", "needsHotel": True, "clientId": "client-1"},
        CALLER,
    )

    assert preview.action == "Create/Update"
    assert preview.requires_confirmation is True
    assert preview.description == "Add guest Jane Doe to wedding"
    assert {field.name: field.display_value for field in preview.fields}["needsHotel"] == "Yes"
    assert "Auto-creates hotel booking if needsHotel=true" in preview.cascade_effects
    assert preview.warnings == []


async def test_past_date_warning(builder):
    preview = await builder.build(
        "create_event",
        {"title": "Haldi", "eventType": "Haldi", "eventDate": "2026-06-01", "clientId": "client-1"},
        CALLER,
    )

    assert preview.warnings == ["The specified date is in the past"]


async def test_declined_rsvp_warning(builder):
    preview = await builder.build("update_guest_rsvp", {"guestId": "g-1", "rsvpStatus": "declined"}, CALLER)

    assert preview.warnings == ["Declining this guest will affect guest counts and seating arrangements"]


async def test_guest_duplicate_warning(builder):
    preview = await builder.build("add_guest", {"firstName": "Jon", "lastName": "Smith", "clientId": "client-1"}, CALLER)

    assert preview.warnings == [
        'Potential duplicate detected: Similar to "John Smith" (90% name match, Group: Family). Is this the same person?',
        "  • John Smith (90% name match, Group: Family)",
    ]


async def test_vendor_duplicate_warning(builder):
    preview = await builder.build("add_vendor", {"name": "Bloom Florals", "category": "florals"}, CALLER)

    assert preview.warnings[0].startswith("Potential duplicate vendor:")
    assert preview.warnings[1] == "  • Bloom Florals (florals) (Exact name match)"


async def test_executor_preview_overrides_description_and_adds_warnings(builder):
    preview = await builder.build(
        "update_budget_item",
        {"item": "Flowers", "actualCost": 2500},
        CALLER,
        executor_preview={"description": "Update Flowers to $2,500", "warnings": ["Over category budget"]},
    )

    assert preview.description == "Update Flowers to $2,500"
    assert preview.warnings == ["Over category budget"]


async def test_unknown_tool_cannot_be_previewed(builder):
    with pytest.raises(ToolValidationError):
        await builder.build("drop_tables", {}, CALLER)


class UnreachableRepository(InMemoryEntityRepository):
    async def list(self, entity_type, scope_id):
        raise ConnectionError("database unavailable")


async def test_duplicate_check_failure_does_not_block_preview():
    builder = ToolPreviewBuilder(DuplicateDetector(UnreachableRepository()), today=lambda: date(2026, 6, 10))

    guest = await builder.build("add_guest", {"firstName": "Jon", "lastName": "Smith", "clientId": "client-1"}, CALLER)
    vendor = await builder.build("add_vendor", {"name": "Bloom Florals", "category": "florals"}, CALLER)

    assert guest.description == "Add guest Jon Smith to wedding"
    assert guest.warnings == []
    assert vendor.warnings == []
