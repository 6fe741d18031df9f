"""Typed tool sets offered to the tier-1 and tier-2 agents."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from helpdesk_ai.agent.registry import ToolRegistry, ToolSpec


class _ToolInput(BaseModel):
    # Models emit camelCase argument names as often as snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class LookupDocumentation(_ToolInput):
    query: str = Field(min_length=1, description="The search query for documentation")


class DetailedLookupDocumentation(LookupDocumentation):
    depth: Literal["basic", "detailed", "expert"] = Field(
        default="basic", description="Level of detail needed"
    )


class ExecutePlaybookStep(_ToolInput):
    step_id: str = Field(min_length=1, description="The ID of the step to execute")
    outcome: Literal["success", "failure"] = Field(description="The outcome of the step")
    notes: str | None = Field(default=None, description="Optional notes about the step execution")


class EscalateToL2(_ToolInput):
    reason: str = Field(min_length=1, description="Reason for escalation")
    summary: str = Field(default="", description="Summary of what has been tried")


class EscalateToHuman(_ToolInput):
    reason: str = Field(min_length=1, description="Reason for human escalation")
    urgency: Literal["low", "medium", "high", "critical"] = Field(
        default="medium", description="Urgency level"
    )
    summary: str | None = Field(default=None, description="Summary of troubleshooting attempted")
    recommended_action: str | None = Field(
        default=None, description="Suggested next steps for the human agent"
    )


class MarkResolved(_ToolInput):
    resolution: str = Field(min_length=1, description="How the issue was resolved")
    root_cause: str | None = Field(default=None, description="The root cause of the issue")
    prevention_tips: str | None = Field(
        default=None, description="Tips to prevent the issue in the future"
    )


class AnalyzeError(_ToolInput):
    error_text: str = Field(min_length=1, description="The error message or log content")
    context: str | None = Field(
        default=None, description="Additional context about when the error occurred"
    )


class SuggestDiagnosticSteps(_ToolInput):
    issue: str = Field(min_length=1, description="Description of the issue to diagnose")
    complexity: Literal["simple", "moderate", "complex"] = Field(
        default="moderate", description="Complexity level of diagnostics"
    )


class InitiateVisionscreen(_ToolInput):
    reason: str = Field(min_length=1, description="Why visual assistance is needed")
    focus_area: str | None = Field(
        default=None, description="What the customer should show on their screen"
    )
    mode: Literal["screen_share", "camera", "both"] = Field(
        default="screen_share", description="What the customer shares"
    )


def build_tier1_tools() -> ToolRegistry:
    """Tools for guided, playbook-driven first-line support."""

    return ToolRegistry(
        [
            ToolSpec(
                name="lookup_documentation",
                description="Search the knowledge base for relevant documentation",
                args_schema=LookupDocumentation,
                tags=["retrieval"],
            ),
            ToolSpec(
                name="execute_playbook_step",
                description="Execute the current step in the support playbook",
                args_schema=ExecutePlaybookStep,
                tags=["playbook"],
            ),
            ToolSpec(
                name="escalate_to_l2",
                description="Escalate the case to L2 support for advanced troubleshooting",
                args_schema=EscalateToL2,
                tags=["escalation"],
            ),
            ToolSpec(
                name="escalate_to_human",
                description="Escalate the case to a human support agent",
                args_schema=EscalateToHuman,
                tags=["escalation"],
            ),
            ToolSpec(
                name="mark_resolved",
                description="Mark the case as resolved",
                args_schema=MarkResolved,
                tags=["resolution"],
            ),
        ]
    )


def build_tier2_tools() -> ToolRegistry:
    """Tools for advanced diagnostics after a tier-1 handoff."""

    return ToolRegistry(
        [
            ToolSpec(
                name="lookup_documentation",
                description="Search the knowledge base for detailed technical documentation",
                args_schema=DetailedLookupDocumentation,
                tags=["retrieval"],
            ),
            ToolSpec(
                name="analyze_error",
                description="Analyze error messages or logs provided by the customer",
                args_schema=AnalyzeError,
                tags=["diagnostics"],
            ),
            ToolSpec(
                name="suggest_diagnostic_steps",
                description="Generate a list of diagnostic steps for the customer to follow",
                args_schema=SuggestDiagnosticSteps,
                tags=["diagnostics"],
            ),
            ToolSpec(
                name="initiate_visionscreen",
                description="Start a VisionScreen session for visual troubleshooting",
                args_schema=InitiateVisionscreen,
                tags=["visual"],
            ),
            ToolSpec(
                name="escalate_to_human",
                description="Escalate to human support specialist for complex issues",
                args_schema=EscalateToHuman,
                tags=["escalation"],
            ),
            ToolSpec(
                name="mark_resolved",
                description="Mark the case as resolved with detailed resolution notes",
                args_schema=MarkResolved,
                tags=["resolution"],
            ),
        ]
    )
