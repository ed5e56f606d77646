"""Argument models for every tool the LLM may call.

Arguments arrive as an untyped JSON object. They are validated against the
model registered for the tool name before anything else runs; natural
language dates and times are normalised on the way in ("next saturday" ->
``2026-06-13``, "3pm" -> ``15:00``). Validated arguments are dumped back with
their camelCase keys, which is what the executor and the preview expect.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from app.core.errors import ToolValidationError
from app.services.date_parser import parse_natural_date, parse_time
from app.services.tool_registry import TOOL_METADATA

logger = logging.getLogger(__name__)

_UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


def _normalize_date(value: Any) -> Any:
    parsed = parse_natural_date(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValueError(f"could not understand date {value!r}")
    return parsed


def _normalize_time(value: Any) -> Any:
    if isinstance(value, str) and _ISO_DATETIME_RE.match(value.strip()):
        return value.strip()
    parsed = parse_time(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValueError(f"could not understand time {value!r}")
    return parsed


Uuid = Annotated[str, Field(pattern=_UUID_PATTERN)]
Email = Annotated[str, Field(pattern=_EMAIL_PATTERN, max_length=254)]
NaturalDate = Annotated[str, BeforeValidator(_normalize_date)]
NaturalTime = Annotated[str, BeforeValidator(_normalize_time)]

RsvpStatus = Literal["pending", "confirmed", "declined", "maybe"]
MealPreference = Literal["standard", "vegetarian", "vegan", "gluten_free", "kosher", "halal", "other"]
VendorCategory = Literal[
    "venue",
    "catering",
    "photography",
    "videography",
    "florals",
    "music",
    "dj",
    "decor",
    "bakery",
    "transportation",
    "beauty",
    "officiant",
    "rentals",
    "stationery",
    "planner",
    "entertainment",
    "other",
]
EventType = Literal[
    "Wedding",
    "Mehendi",
    "Sangeet",
    "Haldi",
    "Reception",
    "Rehearsal Dinner",
    "Engagement",
    "Bachelor Party",
    "Bridal Shower",
    "Other",
]
TimelinePhase = Literal["preparation", "ceremony", "reception", "post_event"]


class ToolArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# =============================================================================
# Clients
# =============================================================================

class CreateClientArgs(ToolArgs):
    partner1_first_name: str = Field(min_length=1, max_length=100, description="First name of partner 1")
    partner1_last_name: Optional[str] = Field(default=None, max_length=100)
    partner1_email: Email
    partner1_phone: Optional[str] = Field(default=None, max_length=20)
    partner2_first_name: Optional[str] = Field(default=None, max_length=100)
    partner2_last_name: Optional[str] = Field(default=None, max_length=100)
    partner2_email: Optional[Email] = None
    wedding_date: Optional[NaturalDate] = Field(default=None, description="Wedding date (YYYY-MM-DD or natural language)")
    venue: Optional[str] = Field(default=None, max_length=200)
    budget: Optional[float] = Field(default=None, gt=0)
    guest_count: Optional[int] = Field(default=None, gt=0, le=10000)
    wedding_type: Optional[str] = None


class UpdateClientArgs(ToolArgs):
    client_id: Optional[Uuid] = None
    client_name: Optional[str] = Field(default=None, description="Couple name for fuzzy matching")
    partner1_first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    partner1_last_name: Optional[str] = Field(default=None, max_length=100)
    partner1_email: Optional[Email] = None
    partner2_first_name: Optional[str] = Field(default=None, max_length=100)
    partner2_last_name: Optional[str] = Field(default=None, max_length=100)
    wedding_date: Optional[NaturalDate] = None
    venue: Optional[str] = Field(default=None, max_length=200)
    budget: Optional[float] = Field(default=None, gt=0)
    guest_count: Optional[int] = Field(default=None, gt=0, le=10000)
    status: Optional[Literal["draft", "planning", "confirmed", "in_progress", "completed"]] = None


class ClientScopedArgs(ToolArgs):
    client_id: Optional[Uuid] = Field(default=None, description="Client UUID. Uses current context if not provided")


class GetClientSummaryArgs(ClientScopedArgs):
    client_name: Optional[str] = Field(default=None, description="Couple name for fuzzy matching")


class GetWeddingSummaryArgs(ClientScopedArgs):
    include_action_items: bool = True


class GetRecommendationsArgs(ClientScopedArgs):
    categories: Optional[List[Literal["payments", "rsvp", "seating", "timeline", "vendors", "all"]]] = None


# =============================================================================
# Guests
# =============================================================================

class AddGuestArgs(ClientScopedArgs):
    first_name: str = Field(min_length=1, max_length=100, description="Guest first name")
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[Email] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    rsvp_status: RsvpStatus = "pending"
    meal_preference: Optional[MealPreference] = None
    dietary_restrictions: Optional[str] = Field(default=None, max_length=500)
    group_name: Optional[str] = Field(default=None, max_length=100)
    plus_one: bool = False
    table_number: Optional[int] = Field(default=None, gt=0)
    needs_hotel: bool = False
    needs_transport: bool = False
    side: Optional[Literal["partner1", "partner2", "mutual"]] = None
    event_id: Optional[Uuid] = None


class UpdateGuestRsvpArgs(ClientScopedArgs):
    guest_id: Optional[Uuid] = None
    guest_name: Optional[str] = Field(default=None, description="Guest name for fuzzy matching if guestId not provided")
    rsvp_status: RsvpStatus


class GetGuestStatsArgs(ClientScopedArgs):
    event_id: Optional[Uuid] = None


class GuestBulkChanges(ToolArgs):
    rsvp_status: Optional[RsvpStatus] = None
    table_number: Optional[int] = Field(default=None, gt=0)
    needs_hotel: Optional[bool] = None
    needs_transport: Optional[bool] = None


class BulkUpdateGuestsArgs(ClientScopedArgs):
    guest_ids: Optional[List[Uuid]] = None
    group_name: Optional[str] = None
    updates: GuestBulkChanges


class CheckInGuestArgs(ClientScopedArgs):
    guest_id: Optional[Uuid] = None
    guest_name: Optional[str] = None
    guest_number: Optional[int] = Field(default=None, gt=0)
    event_id: Optional[Uuid] = None


class AssignTransportArgs(ClientScopedArgs):
    vehicle_info: str = Field(min_length=1, max_length=200)
    vehicle_type: Optional[Literal["sedan", "suv", "bus", "van", "tempo", "shuttle", "other"]] = None
    hotel_name: Optional[str] = None
    group_name: Optional[str] = None
    event_id: Optional[Uuid] = None
    event_name: Optional[str] = None
    guest_ids: Optional[List[Uuid]] = None
    pickup_date: Optional[NaturalDate] = None
    pickup_time: Optional[NaturalTime] = None
    pickup_from: Optional[str] = None
    drop_to: Optional[str] = None
    driver_phone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


# =============================================================================
# Events and timeline
# =============================================================================

class CreateEventArgs(ClientScopedArgs):
    title: str = Field(min_length=1, max_length=200)
    event_type: EventType
    event_date: NaturalDate = Field(description="Event date (YYYY-MM-DD or natural language)")
    start_time: Optional[NaturalTime] = None
    end_time: Optional[NaturalTime] = None
    venue_name: Optional[str] = Field(default=None, max_length=200)
    venue_address: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=2000)
    guest_count: Optional[int] = Field(default=None, gt=0)
    dress_code: Optional[str] = Field(default=None, max_length=200)


class UpdateEventArgs(ClientScopedArgs):
    event_id: Optional[Uuid] = None
    event_name: Optional[str] = Field(default=None, description="Event title for fuzzy matching")
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    event_date: Optional[NaturalDate] = None
    start_time: Optional[NaturalTime] = None
    end_time: Optional[NaturalTime] = None
    venue_name: Optional[str] = Field(default=None, max_length=200)
    venue_address: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[Literal["planned", "confirmed", "in_progress", "completed", "cancelled"]] = None


class AddTimelineItemArgs(ClientScopedArgs):
    event_id: Optional[Uuid] = None
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    start_time: NaturalTime = Field(description="Start time (HH:MM, 3pm, or full datetime)")
    end_time: Optional[NaturalTime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    location: Optional[str] = Field(default=None, max_length=200)
    vendor_id: Optional[Uuid] = None
    assignee: Optional[str] = Field(default=None, max_length=100)
    phase: Optional[TimelinePhase] = None


class ShiftTimelineArgs(ClientScopedArgs):
    event_id: Optional[Uuid] = None
    shift_minutes: int = Field(description="Minutes to shift (positive = later, negative = earlier)")
    start_from_item_id: Optional[Uuid] = None
    affected_phase: Optional[TimelinePhase] = None


# =============================================================================
# Vendors, hotels, budget
# =============================================================================

class AddVendorArgs(ClientScopedArgs):
    name: str = Field(min_length=1, max_length=200)
    category: VendorCategory
    contact_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[Email] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    website: Optional[str] = None
    estimated_cost: Optional[float] = Field(default=None, gt=0)
    deposit_amount: Optional[float] = Field(default=None, gt=0)
    service_date: Optional[NaturalDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    event_id: Optional[Uuid] = None


class UpdateVendorArgs(ClientScopedArgs):
    vendor_id: Optional[Uuid] = None
    vendor_name: Optional[str] = Field(default=None, description="Vendor name for fuzzy matching")
    contact_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[Email] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    estimated_cost: Optional[float] = Field(default=None, gt=0)
    deposit_amount: Optional[float] = Field(default=None, gt=0)
    payment_status: Optional[Literal["pending", "deposit_paid", "partial", "paid", "refunded"]] = None
    approval_status: Optional[Literal["pending", "approved", "rejected"]] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class AddHotelBookingArgs(ClientScopedArgs):
    guest_id: Optional[Uuid] = None
    guest_name: Optional[str] = None
    hotel_name: str = Field(min_length=1, max_length=200)
    room_type: Optional[str] = Field(default=None, max_length=100)
    check_in_date: NaturalDate = Field(description="Check-in date")
    check_out_date: NaturalDate = Field(description="Check-out date")
    confirmation_number: Optional[str] = Field(default=None, max_length=50)
    room_rate: Optional[float] = Field(default=None, gt=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class SyncHotelGuestsArgs(ClientScopedArgs):
    hotel_name: Optional[str] = None


class GetBudgetOverviewArgs(ClientScopedArgs):
    category: Optional[str] = None


class UpdateBudgetItemArgs(ClientScopedArgs):
    budget_item_id: Optional[Uuid] = None
    category: Optional[str] = None
    item: Optional[str] = None
    estimated_cost: Optional[float] = Field(default=None, gt=0)
    actual_cost: Optional[float] = Field(default=None, gt=0)
    paid_amount: Optional[float] = Field(default=None, gt=0)
    payment_status: Optional[Literal["pending", "deposit_paid", "partial", "paid"]] = None
    notes: Optional[str] = Field(default=None, max_length=500)


# =============================================================================
# Search and communication
# =============================================================================

class SearchEntitiesArgs(ClientScopedArgs):
    query: str = Field(min_length=1, max_length=200)
    entity_types: Optional[List[Literal["client", "guest", "event", "vendor", "hotel", "budget", "timeline"]]] = None
    limit: int = Field(default=10, gt=0, le=50)


class SendCommunicationArgs(ClientScopedArgs):
    communication_type: Literal[
        "rsvp_reminder", "wedding_reminder", "vendor_reminder", "questionnaire_reminder", "custom"
    ]
    recipient_type: Optional[
        Literal[
            "all_guests",
            "pending_rsvp",
            "confirmed_guests",
            "specific_guest",
            "client",
            "all_vendors",
            "vendor_category",
            "specific_vendor",
        ]
    ] = None
    guest_id: Optional[Uuid] = None
    guest_name: Optional[str] = None
    vendor_id: Optional[Uuid] = None
    vendor_name: Optional[str] = None
    vendor_category: Optional[VendorCategory] = None
    subject: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = Field(default=None, max_length=2000)
    language: Literal["en", "es", "hi", "fr", "de", "pt", "zh"] = "en"


TOOL_ARGUMENT_MODELS: Dict[str, Type[ToolArgs]] = {
    "create_client": CreateClientArgs,
    "update_client": UpdateClientArgs,
    "get_client_summary": GetClientSummaryArgs,
    "get_wedding_summary": GetWeddingSummaryArgs,
    "get_recommendations": GetRecommendationsArgs,
    "add_guest": AddGuestArgs,
    "update_guest_rsvp": UpdateGuestRsvpArgs,
    "get_guest_stats": GetGuestStatsArgs,
    "bulk_update_guests": BulkUpdateGuestsArgs,
    "check_in_guest": CheckInGuestArgs,
    "assign_transport": AssignTransportArgs,
    "create_event": CreateEventArgs,
    "update_event": UpdateEventArgs,
    "add_timeline_item": AddTimelineItemArgs,
    "shift_timeline": ShiftTimelineArgs,
    "add_vendor": AddVendorArgs,
    "update_vendor": UpdateVendorArgs,
    "add_hotel_booking": AddHotelBookingArgs,
    "sync_hotel_guests": SyncHotelGuestsArgs,
    "get_budget_overview": GetBudgetOverviewArgs,
    "update_budget_item": UpdateBudgetItemArgs,
    "search_entities": SearchEntitiesArgs,
    "send_communication": SendCommunicationArgs,
}


def _decode_arguments(tool_name: str, raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ToolValidationError(f"Arguments for {tool_name} are not valid JSON") from exc
    if not isinstance(decoded, dict):
        raise ToolValidationError(f"Arguments for {tool_name} must be a JSON object")
    return decoded


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def validate_tool_arguments(tool_name: str, raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Validate raw LLM arguments for ``tool_name`` and return normalised camelCase args.

    Raises :class:`ToolValidationError` for unknown tools, undecodable JSON or
    arguments that fail the tool's model.
    """
    if tool_name not in TOOL_METADATA:
        raise ToolValidationError(f"Unknown tool: {tool_name}")

    arguments = _decode_arguments(tool_name, raw)
    model = TOOL_ARGUMENT_MODELS.get(tool_name)
    if model is None:
        return dict(arguments)

    try:
        validated = model.model_validate(arguments)
    except ValidationError as exc:
        detail = _format_errors(exc)
        logger.info("Tool arguments rejected tool=%s errors=%s", tool_name, detail)
        raise ToolValidationError(
            f"Invalid arguments for {tool_name}: {detail}",
            details={"fields": [".".join(str(item) for item in error.get("loc", ())) for error in exc.errors()]},
        ) from exc
    return validated.model_dump(by_alias=True, exclude_none=True)


def tool_parameters_schema(tool_name: str) -> Dict[str, Any]:
    model = TOOL_ARGUMENT_MODELS.get(tool_name)
    if model is None:
        return {"type": "object", "properties": {}, "additionalProperties": True}
    return model.model_json_schema(by_alias=True)


def build_llm_tools() -> List[Dict[str, Any]]:
    """OpenAI function-calling definitions for every catalogued tool."""
    return [
        {
            "type": "function",
            "function": {
                "name": metadata.name,
                "description": metadata.description,
                "parameters": tool_parameters_schema(metadata.name),
            },
        }
        for metadata in TOOL_METADATA.values()
    ]


def accepts_client_id(tool_name: str) -> bool:
    """Whether an implicit client id from the request context may be filled in."""
    model = TOOL_ARGUMENT_MODELS.get(tool_name)
    return model is None or "client_id" in model.model_fields
