"""Error taxonomy for command handling.

Every subclass carries a stable ``code`` and a message that is safe to show to
the user. The orchestrator turns these into ``{"type": "error"}`` responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CommandError(Exception):
    code = "command_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ToolValidationError(CommandError):
    """Tool name unknown or arguments malformed."""

    code = "validation_error"


class AccessDeniedError(CommandError):
    code = "access_denied"


class NotFoundError(CommandError):
    code = "not_found"


class ExecutionFailure(CommandError):
    code = "execution_failed"
