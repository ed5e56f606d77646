"""Side-effect free previews for mutation tools."""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from app.core.errors import ToolValidationError
from app.middleware.caller_context import CallerContext
from app.models.assistant import PreviewField, ToolPreview
from app.models.entity import DuplicateCheckResult
from app.services.duplicate_detector import DuplicateDetector
from app.services.tool_registry import get_cascade_effects, get_tool_metadata

logger = logging.getLogger(__name__)

MONEY_HINTS = ("budget", "cost", "amount")
MAX_DUPLICATE_BULLETS = 3


def format_field_value(name: str, value: Any) -> str:
    if value is None:
        return "Not set"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float)):
        if any(hint in name.lower() for hint in MONEY_HINTS):
            if isinstance(value, float) and not value.is_integer():
                return f"${value:,.2f}"
            return f"${int(value):,}"
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def describe_action(tool_name: str, args: Mapping[str, Any]) -> str:
    if tool_name == "create_client":
        partner2 = f" & {args['partner2FirstName']}" if args.get("partner2FirstName") else ""
        return f"Create new wedding for {args.get('partner1FirstName')}{partner2}"
    if tool_name == "update_client":
        return f"Update client {args.get('clientName') or args.get('clientId')}"
    if tool_name == "add_guest":
        last_name = f" {args['lastName']}" if args.get("lastName") else ""
        return f"Add guest {args.get('firstName')}{last_name} to wedding"
    if tool_name == "update_guest_rsvp":
        return f"Update RSVP status to {args.get('rsvpStatus')} for {args.get('guestName') or args.get('guestId')}"
    if tool_name == "create_event":
        return f"Create {args.get('eventType')} event: {args.get('title')} on {args.get('eventDate')}"
    if tool_name == "add_vendor":
        return f"Add {args.get('category')} vendor: {args.get('name')}"
    if tool_name == "add_timeline_item":
        return f"Add timeline item: {args.get('title')} at {args.get('startTime')}"
    if tool_name == "shift_timeline":
        minutes = int(args.get("shiftMinutes") or 0)
        direction = "later" if minutes > 0 else "earlier"
        return f"Shift timeline {abs(minutes)} minutes {direction}"
    if tool_name == "add_hotel_booking":
        return f"Add hotel booking at {args.get('hotelName')} for {args.get('guestName') or args.get('guestId')}"
    if tool_name == "update_budget_item":
        return f"Update budget item: {args.get('item') or args.get('category') or args.get('budgetItemId')}"
    return f"Execute {tool_name}"


def _duplicate_warnings(result: DuplicateCheckResult) -> List[str]:
    if not result.has_potential_duplicates:
        return []
    warnings = [result.message]
    for candidate in result.candidates[:MAX_DUPLICATE_BULLETS]:
        warnings.append(f"  • {candidate.display_name} ({candidate.details})")
    return warnings


class ToolPreviewBuilder:
    def __init__(self, duplicate_detector: DuplicateDetector, *, today: Callable[[], date] = date.today) -> None:
        self.duplicate_detector = duplicate_detector
        self._today = today

    async def build(
        self,
        tool_name: str,
        args: Dict[str, Any],
        caller: CallerContext,
        executor_preview: Optional[Mapping[str, Any]] = None,
    ) -> ToolPreview:
        metadata = get_tool_metadata(tool_name)
        if metadata is None:
            raise ToolValidationError(f"Unknown tool: {tool_name}")

        fields = [
            PreviewField(name=name, value=value, display_value=format_field_value(name, value))
            for name, value in args.items()
            if value is not None
        ]

        description = describe_action(tool_name, args)
        if executor_preview and executor_preview.get("description"):
            description = str(executor_preview["description"])

        warnings = await self.warnings(tool_name, args, caller)
        if executor_preview:
            warnings.extend(str(item) for item in executor_preview.get("warnings") or [])

        return ToolPreview(
            tool_name=tool_name,
            action="Create/Update" if metadata.type == "mutation" else "Query",
            description=description,
            fields=fields,
            cascade_effects=get_cascade_effects(tool_name),
            warnings=warnings,
            requires_confirmation=metadata.type == "mutation",
        )

    async def warnings(self, tool_name: str, args: Mapping[str, Any], caller: CallerContext) -> List[str]:
        warnings: List[str] = []

        date_value = args.get("weddingDate") or args.get("eventDate")
        if isinstance(date_value, str):
            try:
                if date.fromisoformat(date_value[:10]) < self._today():
                    warnings.append("The specified date is in the past")
            except ValueError:
                logger.debug("Skipping past-date check for %r", date_value)

        if tool_name == "update_guest_rsvp" and args.get("rsvpStatus") == "declined":
            warnings.append("Declining this guest will affect guest counts and seating arrangements")

        warnings.extend(await self._duplicate_warnings_for(tool_name, args, caller))
        return warnings

    async def _duplicate_warnings_for(self, tool_name: str, args: Mapping[str, Any], caller: CallerContext) -> List[str]:
        try:
            if tool_name == "add_guest" and args.get("firstName") and args.get("clientId"):
                result = await self.duplicate_detector.check_guest_duplicates(
                    args["firstName"],
                    args.get("lastName"),
                    args.get("email"),
                    args.get("phone"),
                    args["clientId"],
                )
            elif tool_name == "add_vendor" and args.get("name") and caller.company_id:
                result = await self.duplicate_detector.check_vendor_duplicates(
                    args["name"],
                    args.get("email"),
                    args.get("phone"),
                    caller.company_id,
                )
            else:
                return []
        except Exception:
            # duplicate checks are advisory and never block a proposal
            logger.warning("Duplicate check failed tool=%s, continuing without it", tool_name, exc_info=True)
            return []
        return _duplicate_warnings(result)
