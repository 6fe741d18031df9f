"""Playbook definitions and per-case execution state.

Definitions are pydantic models so JSON authored in camelCase (``nextOnSuccess``)
or snake_case loads the same way. They are frozen once built; the engine treats
a loaded playbook as read-only content. Structural rules that need the whole
step graph (unique ids, resolvable references) are checked by
``helpdesk_ai.playbooks.engine.validate_playbook`` rather than by field
validators, so that every problem is reported at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

StepOutcome = Literal["success", "failure"]
ExecutionOutcome = Literal["in_progress", "resolved", "escalated"]

DEFAULT_MAX_ATTEMPTS = 3


class _PlaybookModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class PlaybookStep(_PlaybookModel):
    id: str = ""
    title: str = ""
    instruction: str = ""
    expected_outcome: str | None = None
    failure_hint: str | None = None
    next_on_success: str | None = None
    next_on_failure: str | None = None
    escalate_on_failure: bool | None = None
    requires_confirmation: bool = False
    max_attempts: int | None = Field(default=None, ge=1)
    timeout_seconds: int | None = Field(default=None, ge=1, alias="timeout")

    @property
    def attempt_limit(self) -> int:
        return self.max_attempts or DEFAULT_MAX_ATTEMPTS


class PlaybookTrigger(_PlaybookModel):
    keywords: list[str] | None = None
    categories: list[str] | None = None
    products: list[str] | None = None
    severity: list[Literal["low", "medium", "high", "critical"]] | None = None


class PlaybookMetadata(_PlaybookModel):
    id: str = ""
    name: str = ""
    description: str = ""
    version: str | None = None
    product: str = ""
    category: str = ""
    language: str = "en"
    author: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)


class EscalationCondition(_PlaybookModel):
    reason: str
    message: str


class PlaybookEscalation(_PlaybookModel):
    default_message: str = ""
    conditions: list[EscalationCondition] = Field(default_factory=list)


class Playbook(_PlaybookModel):
    metadata: PlaybookMetadata | None = None
    triggers: PlaybookTrigger = Field(default_factory=PlaybookTrigger)
    steps: list[PlaybookStep] = Field(default_factory=list)
    escalation: PlaybookEscalation | None = None
    variables: dict[str, str] = Field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.metadata.id if self.metadata else ""

    @property
    def name(self) -> str:
        return self.metadata.name if self.metadata else ""

    def step(self, step_id: str) -> PlaybookStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass(slots=True)
class ValidationIssue:
    path: str
    message: str
    severity: Literal["error", "warning"] = "error"


@dataclass(slots=True)
class PlaybookValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PlaybookExecutionState:
    """Mutable progress of one case through one playbook.

    Owned by the case's turn loop; the engine mutates it in place and never
    keeps a reference across calls.
    """

    playbook_id: str
    current_step_id: str
    step_attempts: dict[str, int] = field(default_factory=dict)
    completed_steps: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    outcome: ExecutionOutcome = "in_progress"
    started_at: datetime = field(default_factory=_utcnow)
    last_updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class PlaybookExecutionResult:
    success: bool
    step_id: str
    step_title: str
    outcome: StepOutcome
    message: str
    should_escalate: bool
    next_step_id: str | None = None
    escalation_reason: str | None = None
