"""Exception hierarchy shared across the engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from helpdesk_ai.playbooks.models import PlaybookValidationResult


class HelpdeskError(Exception):
    """Base class for engine errors."""


class ConfigurationError(HelpdeskError, ValueError):
    """Raised when a component is configured with inconsistent values."""


class InvalidTurnError(HelpdeskError, ValueError):
    """Raised when a conversational turn is missing required fields."""


class DimensionMismatchError(HelpdeskError, ValueError):
    """Raised when two vectors of different lengths are compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class PlaybookValidationError(HelpdeskError, ValueError):
    """Raised when a playbook definition fails load-time validation."""

    def __init__(self, result: "PlaybookValidationResult", playbook_id: str | None = None) -> None:
        messages = ", ".join(issue.message for issue in result.errors)
        prefix = f"Invalid playbook {playbook_id!r}" if playbook_id else "Invalid playbook"
        super().__init__(f"{prefix}: {messages}")
        self.result = result
        self.playbook_id = playbook_id


class PlaybookStateError(HelpdeskError):
    """Raised when a step is executed on a finished playbook execution."""


class UpstreamError(HelpdeskError):
    """Raised when an LLM or embedding provider call fails."""


class NotConnectedError(HelpdeskError, RuntimeError):
    """Raised when a provider client is used before `connect()`."""
