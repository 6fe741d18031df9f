"""Playbook validation and the per-case step state machine."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from helpdesk_ai.errors import PlaybookStateError, PlaybookValidationError
from helpdesk_ai.playbooks.models import (
    Playbook,
    PlaybookExecutionResult,
    PlaybookExecutionState,
    PlaybookStep,
    PlaybookValidationResult,
    StepOutcome,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")
_DEFAULT_ESCALATION_MESSAGE = "This issue requires human assistance."


def load_playbook(data: dict[str, Any] | Playbook) -> Playbook:
    """Parse and validate a playbook definition.

    Raises:
        PlaybookValidationError: when the payload is malformed or fails the
            structural checks in `validate_playbook`. Warnings never raise.
    """

    if isinstance(data, Playbook):
        playbook = data
    else:
        try:
            playbook = Playbook.model_validate(data)
        except ValidationError as exc:
            result = PlaybookValidationResult(
                errors=[
                    ValidationIssue(
                        path=".".join(str(part) for part in error["loc"]),
                        message=error["msg"],
                    )
                    for error in exc.errors()
                ]
            )
            raise PlaybookValidationError(result) from exc

    result = validate_playbook(playbook)
    if not result.valid:
        raise PlaybookValidationError(result, playbook_id=playbook.id or None)
    for warning in result.warnings:
        logger.warning(
            "Playbook %s: %s (%s)", playbook.id, warning.message, warning.path
        )
    return playbook


def validate_playbook(playbook: Playbook) -> PlaybookValidationResult:
    result = PlaybookValidationResult()
    errors = result.errors
    warnings = result.warnings

    if playbook.metadata is None:
        errors.append(ValidationIssue("metadata", "Metadata is required"))
    else:
        if not playbook.metadata.id.strip():
            errors.append(ValidationIssue("metadata.id", "Playbook ID is required"))
        if not playbook.metadata.name.strip():
            errors.append(ValidationIssue("metadata.name", "Playbook name is required"))
        if not playbook.metadata.version:
            warnings.append(
                ValidationIssue("metadata.version", "Version is recommended", "warning")
            )

    if not playbook.steps:
        errors.append(ValidationIssue("steps", "At least one step is required"))
    else:
        step_ids: set[str] = set()
        referenced: list[tuple[str, str]] = []
        for index, step in enumerate(playbook.steps):
            path = f"steps[{index}]"
            if not step.id:
                errors.append(ValidationIssue(f"{path}.id", "Step ID is required"))
            elif step.id in step_ids:
                errors.append(
                    ValidationIssue(f"{path}.id", f"Duplicate step ID: {step.id}")
                )
            else:
                step_ids.add(step.id)

            if not step.title.strip():
                errors.append(ValidationIssue(f"{path}.title", "Step title is required"))
            if not step.instruction.strip():
                errors.append(
                    ValidationIssue(f"{path}.instruction", "Step instruction is required")
                )

            if step.next_on_success:
                referenced.append((f"{path}.nextOnSuccess", step.next_on_success))
            if step.next_on_failure:
                referenced.append((f"{path}.nextOnFailure", step.next_on_failure))

        for path, ref_id in referenced:
            if ref_id not in step_ids:
                errors.append(
                    ValidationIssue(path, f"Referenced step ID does not exist: {ref_id}")
                )

    if playbook.escalation is None:
        warnings.append(
            ValidationIssue("escalation", "Escalation config is recommended", "warning")
        )
    elif not playbook.escalation.default_message:
        warnings.append(
            ValidationIssue(
                "escalation.defaultMessage",
                "Default escalation message is recommended",
                "warning",
            )
        )

    return result


def create_execution_state(playbook: Playbook) -> PlaybookExecutionState:
    """Start a case on the playbook's first declared step."""

    return PlaybookExecutionState(
        playbook_id=playbook.id,
        current_step_id=playbook.steps[0].id if playbook.steps else "",
        variables=dict(playbook.variables),
    )


def current_step(
    playbook: Playbook, state: PlaybookExecutionState
) -> PlaybookStep | None:
    return playbook.step(state.current_step_id)


def execute_step(
    playbook: Playbook,
    state: PlaybookExecutionState,
    outcome: StepOutcome,
) -> PlaybookExecutionResult:
    """Apply one step outcome to `state` and report the transition.

    Transition rules:
    - unknown current step: fail closed and escalate;
    - failure past the step's attempt limit: record the step as failed and
      escalate unless the step opts out with ``escalateOnFailure: false``;
    - success: record completion, then advance to ``nextOnSuccess`` or finish
      the playbook as resolved;
    - failure with attempts left: branch to ``nextOnFailure`` or retry the
      same step.
    """

    if is_playbook_complete(state):
        raise PlaybookStateError(
            f"Playbook {state.playbook_id} already finished with outcome {state.outcome}"
        )

    now = datetime.now(timezone.utc)
    step = current_step(playbook, state)
    if step is None:
        state.outcome = "escalated"
        state.last_updated_at = now
        logger.warning(
            "Playbook %s has no step %r; escalating",
            playbook.id,
            state.current_step_id,
        )
        return PlaybookExecutionResult(
            success=False,
            step_id=state.current_step_id,
            step_title="Unknown",
            outcome="failure",
            message="Step not found",
            should_escalate=True,
            escalation_reason="Playbook step not found",
        )

    attempts = state.step_attempts.get(step.id, 0) + 1
    state.step_attempts[step.id] = attempts
    state.last_updated_at = now

    if outcome == "failure" and attempts > step.attempt_limit:
        if step.id not in state.failed_steps:
            state.failed_steps.append(step.id)
        should_escalate = True if step.escalate_on_failure is None else step.escalate_on_failure
        if should_escalate:
            state.outcome = "escalated"
        return PlaybookExecutionResult(
            success=False,
            step_id=step.id,
            step_title=step.title,
            outcome="failure",
            message=(
                f"Step failed after {attempts} attempts: "
                f"{step.failure_hint or 'Unable to complete step'}"
            ),
            should_escalate=should_escalate,
            escalation_reason=f"Max attempts exceeded for step: {step.title}",
        )

    if outcome == "success":
        state.completed_steps.append(step.id)
        if step.next_on_success:
            state.current_step_id = step.next_on_success
        else:
            state.outcome = "resolved"
        return PlaybookExecutionResult(
            success=True,
            step_id=step.id,
            step_title=step.title,
            outcome="success",
            message=step.expected_outcome or "Step completed successfully",
            next_step_id=step.next_on_success,
            should_escalate=False,
        )

    if step.next_on_failure:
        state.current_step_id = step.next_on_failure
    return PlaybookExecutionResult(
        success=False,
        step_id=step.id,
        step_title=step.title,
        outcome="failure",
        message=step.failure_hint or "Step did not complete as expected",
        next_step_id=step.next_on_failure,
        should_escalate=False,
    )


def is_playbook_complete(state: PlaybookExecutionState) -> bool:
    return state.outcome in ("resolved", "escalated")


def playbook_progress(playbook: Playbook, state: PlaybookExecutionState) -> int:
    """Percentage of declared steps completed, rounded to an integer."""

    if not playbook.steps:
        return 0
    return round(len(set(state.completed_steps)) / len(playbook.steps) * 100)


def format_instruction(instruction: str, variables: dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as written."""

    def _replace(match: re.Match[str]) -> str:
        return variables.get(match.group(1), match.group(0))

    return _VARIABLE_PATTERN.sub(_replace, instruction)


def escalation_message(playbook: Playbook, reason: str | None = None) -> str:
    if playbook.escalation is None:
        return _DEFAULT_ESCALATION_MESSAGE
    if reason:
        for condition in playbook.escalation.conditions:
            if condition.reason.lower() == reason.lower():
                return condition.message
    return playbook.escalation.default_message or _DEFAULT_ESCALATION_MESSAGE
