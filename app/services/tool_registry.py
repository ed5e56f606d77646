"""Static tool catalogue: category, query/mutation routing and cascade effects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

ToolType = Literal["query", "mutation"]


@dataclass(frozen=True)
class ToolMetadata:
    name: str
    category: str
    type: ToolType
    description: str
    cascade_effects: Tuple[str, ...] = field(default_factory=tuple)


def _tool(
    name: str,
    category: str,
    tool_type: ToolType,
    description: str,
    *cascade_effects: str,
) -> Tuple[str, ToolMetadata]:
    return name, ToolMetadata(name, category, tool_type, description, tuple(cascade_effects))


TOOL_METADATA: Dict[str, ToolMetadata] = dict(
    [
        # clients
        _tool(
            "create_client",
            "client",
            "mutation",
            "Create a new wedding client",
            "Auto-creates main wedding event if wedding_date provided",
            "Auto-generates budget categories based on wedding type",
            "Creates default timeline template",
        ),
        _tool(
            "update_client",
            "client",
            "mutation",
            "Update an existing client",
            "Syncs wedding details to main event (date, venue, guest count)",
        ),
        _tool("get_client_summary", "client", "query", "Get client overview with all statistics"),
        _tool("get_wedding_summary", "client", "query", "Get comprehensive wedding summary report with all stats"),
        _tool("get_recommendations", "client", "query", "Get proactive recommendations and alerts"),
        # guests
        _tool(
            "add_guest",
            "guest",
            "mutation",
            "Add a new guest to a wedding",
            "Auto-creates hotel booking if needsHotel=true",
            "Auto-creates transport record if needsTransport=true",
        ),
        _tool(
            "update_guest_rsvp",
            "guest",
            "mutation",
            "Update guest RSVP status",
            "Updates guest count aggregations",
            "May affect meal counts and seating",
        ),
        _tool("get_guest_stats", "guest", "query", "Get guest statistics (confirmed, pending, declined, dietary)"),
        _tool(
            "bulk_update_guests",
            "guest",
            "mutation",
            "Update multiple guests at once",
            "May create multiple hotel/transport records",
            "Updates aggregations for all affected guests",
        ),
        _tool("check_in_guest", "guest", "mutation", "Fast check-in for day-of event management"),
        _tool(
            "assign_transport",
            "guest",
            "mutation",
            "Assign transport to guests filtered by hotel, group, or event",
            "Creates guest transport records",
            "Updates transport needs flags",
        ),
        _tool(
            "assign_guests_to_events",
            "guest",
            "mutation",
            "Assign guests to multiple events",
            "Updates attending events for each guest",
            "May affect event guest counts",
        ),
        _tool(
            "update_table_dietary",
            "guest",
            "mutation",
            "Update dietary preferences for all guests at a table",
            "Updates meal preference for all guests at the table",
        ),
        # events and timeline
        _tool(
            "create_event",
            "event",
            "mutation",
            "Create a new event (ceremony, reception, etc.)",
            "Auto-generates timeline items based on event type",
        ),
        _tool(
            "update_event",
            "event",
            "mutation",
            "Update an existing event",
            "May shift timeline items if date changes",
        ),
        _tool("add_timeline_item", "timeline", "mutation", "Add an item to the wedding timeline"),
        _tool(
            "shift_timeline",
            "timeline",
            "mutation",
            "Shift all timeline items by a duration",
            "Updates start/end times for all affected items",
            "May affect vendor schedules",
        ),
        # vendors
        _tool(
            "add_vendor",
            "vendor",
            "mutation",
            "Add a new vendor",
            "Auto-creates budget item for vendor",
            "Auto-creates timeline entry if service date provided",
        ),
        _tool(
            "update_vendor",
            "vendor",
            "mutation",
            "Update vendor details or payment status",
            "Updates linked budget item amounts",
        ),
        # hotels
        _tool(
            "add_hotel_booking",
            "hotel",
            "mutation",
            "Add a hotel booking for a guest",
            "Links to guest record",
            "Updates accommodation count",
        ),
        _tool("sync_hotel_guests", "hotel", "query", "Get hotel accommodation summary by hotel"),
        # budget
        _tool("get_budget_overview", "budget", "query", "Get budget overview with totals and breakdown"),
        _tool("update_budget_item", "budget", "mutation", "Update a budget item"),
        _tool("budget_currency_convert", "budget", "query", "Convert budget amounts between currencies"),
        # search and reporting
        _tool("search_entities", "search", "query", "Search across all entity types"),
        _tool("query_data", "search", "query", "Query with aggregations (count, sum, avg, list) and filters"),
        _tool("query_cross_client_events", "search", "query", "Query events across all clients for a date range"),
        _tool("query_analytics", "analytics", "query", "Query business analytics (revenue, conversions, etc.)"),
        _tool("export_data", "exports", "query", "Export data to Excel or PDF format"),
        _tool("get_weather", "weather", "query", "Get weather forecast for wedding date and location"),
        # communication and business operations
        _tool(
            "send_communication",
            "communication",
            "mutation",
            "Send email communications to guests, clients, or vendors",
            "Logs email in communication history",
            "May update RSVP reminder status for guests",
        ),
        _tool(
            "update_pipeline",
            "pipeline",
            "mutation",
            "Update a pipeline lead stage or status",
            "Creates activity log for stage change",
            "May trigger follow-up reminders",
        ),
        _tool(
            "add_gift",
            "gifts",
            "mutation",
            "Record a gift received from a guest",
            "Links gift to guest record",
            "Updates gift statistics",
        ),
        _tool(
            "create_invoice",
            "invoices",
            "mutation",
            "Create an invoice for a client payment",
            "Creates invoice record",
            "May trigger payment reminder workflow",
        ),
    ]
)


def get_tool_metadata(tool_name: str) -> Optional[ToolMetadata]:
    return TOOL_METADATA.get(tool_name)


def is_query_tool(tool_name: str) -> bool:
    metadata = TOOL_METADATA.get(tool_name)
    return metadata is not None and metadata.type == "query"


def is_mutation_tool(tool_name: str) -> bool:
    metadata = TOOL_METADATA.get(tool_name)
    return metadata is not None and metadata.type == "mutation"


def get_cascade_effects(tool_name: str) -> List[str]:
    metadata = TOOL_METADATA.get(tool_name)
    return list(metadata.cascade_effects) if metadata else []


def tools_by_category() -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for metadata in TOOL_METADATA.values():
        grouped.setdefault(metadata.category, []).append(metadata.name)
    return grouped
