"""System prompt assembly for the command assistant."""

from __future__ import annotations

from datetime import date
from typing import Optional

from app.models.memory import ConversationMemory, PronounResolution
from app.prompts.loader import PromptSpec, load_prompt
from app.services.memory_cache import ConversationMemoryService
from app.services.tool_registry import tools_by_category

SYSTEM_PROMPT_ID = "command_assistant"


def get_system_prompt_spec() -> PromptSpec:
    return load_prompt(SYSTEM_PROMPT_ID)


def build_system_prompt(
    *,
    client_id: Optional[str] = None,
    memory: Optional[ConversationMemory] = None,
    pronoun: Optional[PronounResolution] = None,
    today: Optional[date] = None,
) -> str:
    memory_lines = ConversationMemoryService.format_for_prompt(memory) if memory else []
    return get_system_prompt_spec().render(
        {
            "tool_categories": tools_by_category(),
            "today": (today or date.today()).isoformat(),
            "client_id": client_id,
            "memory_lines": memory_lines,
            "pronoun": pronoun,
        }
    )
