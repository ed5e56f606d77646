"""
Prompt Registry Loader

Loads and renders versioned prompt templates from YAML files under
``registry/``. Templates are Jinja2.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateSyntaxError

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "registry"

_ENV = Environment(loader=BaseLoader(), trim_blocks=True, lstrip_blocks=True, undefined=StrictUndefined)


@dataclass
class PromptSpec:
    """Loaded prompt definition with metadata and template."""

    id: str
    version: str
    description: str
    system_prompt: str
    model_defaults: Dict[str, Any] = field(default_factory=dict)

    def render(self, context: Dict[str, Any]) -> str:
        """Render the system prompt with ``context``."""
        try:
            return _ENV.from_string(self.system_prompt).render(**context).strip()
        except TemplateSyntaxError as e:
            logger.error("Template syntax error in %s: %s", self.id, e)
            raise ValueError(f"Failed to render prompt template {self.id}: {e}") from e

    @property
    def temperature(self) -> float:
        return self.model_defaults.get("temperature", 0.7)

    @property
    def max_tokens(self) -> int:
        return self.model_defaults.get("max_tokens", 1024)


@lru_cache(maxsize=50)
def load_prompt(prompt_id: str) -> PromptSpec:
    """
    Load prompt template by ID from registry.

    Raises:
        FileNotFoundError: If prompt file doesn't exist
        ValueError: If prompt file is malformed
    """
    prompt_path = PROMPTS_DIR / f"{prompt_id}.yaml"

    if not prompt_path.exists():
        raise FileNotFoundError(f"Prompt not found: {prompt_id} at {prompt_path}")

    try:
        with open(prompt_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse prompt YAML: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Prompt file is not a mapping: {prompt_id}")
    for field_name in ("id", "system_prompt"):
        if field_name not in data:
            raise ValueError(f"Prompt missing required field: {field_name}")

    return PromptSpec(
        id=data["id"],
        version=str(data.get("version", "1.0.0")),
        description=data.get("description", ""),
        system_prompt=data["system_prompt"],
        model_defaults=data.get("model_defaults", {}),
    )


def list_prompts() -> List[str]:
    if not PROMPTS_DIR.exists():
        return []
    return sorted(p.stem for p in PROMPTS_DIR.glob("*.yaml"))


def clear_prompt_cache() -> None:
    """Clear the prompt cache. Useful for testing or hot-reloading."""
    load_prompt.cache_clear()
