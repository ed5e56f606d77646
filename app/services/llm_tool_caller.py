from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol

from fastapi import HTTPException, status
from openai import AsyncOpenAI

from app.core.config import get_settings
from app.models.assistant import ChatMessage, ToolCall

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMTurn:
    """What the model produced for one turn: plain text, or a single tool call."""

    content: Optional[str]
    tool_call: Optional[ToolCall]
    model: str
    used_fallback: bool = False


class LLMUnavailableError(RuntimeError):
    pass


class ToolCallingLLM(Protocol):
    async def complete(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
    ) -> LLMTurn:
        ...


class OpenAIToolCaller:
    def __init__(
        self,
        *,
        api_key: Optional[str],
        primary_model: str,
        fallback_model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    @property
    def route(self) -> List[str]:
        models = [self.primary_model]
        if self.fallback_model and self.fallback_model != self.primary_model:
            models.append(self.fallback_model)
        return models

    async def complete(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
    ) -> LLMTurn:
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend(
            {"role": message.role, "content": message.content}
            for message in messages
            if message.role in ("user", "assistant")
        )

        last_err: Optional[Exception] = None
        for idx, model in enumerate(self.route):
            t0 = time.perf_counter()
            try:
                response = await self._get_client().chat.completions.create(
                    model=model,
                    messages=payload,
                    tools=tools,
                    tool_choice="auto",
                    parallel_tool_calls=False,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except Exception as exc:
                logger.warning("LLM call failed model=%s error=%s", model, exc)
                last_err = exc
                continue

            message = response.choices[0].message
            tool_call = None
            if message.tool_calls:
                first = message.tool_calls[0]
                tool_call = ToolCall(name=first.function.name, arguments=first.function.arguments or "{}")

            logger.info(
                "LLM done model=%s tool=%s ms=%s fallback=%s",
                model,
                tool_call.name if tool_call else None,
                int((time.perf_counter() - t0) * 1000),
                idx > 0,
            )
            return LLMTurn(content=message.content, tool_call=tool_call, model=model, used_fallback=idx > 0)

        raise LLMUnavailableError(f"All LLM models failed: {last_err}") from last_err


@lru_cache
def get_tool_caller() -> ToolCallingLLM:
    settings = get_settings()
    if not settings.openai_api_key:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="OPENAI_API_KEY is not configured")
    return OpenAIToolCaller(
        api_key=settings.openai_api_key,
        primary_model=settings.llm_primary_model,
        fallback_model=settings.llm_fallback_model,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )
