"""Case digest handed from tier 1 to tier 2."""

from __future__ import annotations

from typing import Any

from helpdesk_ai.types import CaseHistory, TimelineEvent

_PREVIEW_CHARS = 200


def generate_l2_escalation_summary(timeline: list[TimelineEvent], case: dict[str, Any]) -> str:
    """Markdown summary of what tier 1 did on a case.

    `case` supplies ``product``, ``category`` and ``severity``; missing values
    are shown as defaults.
    """

    l1_responses = [event for event in timeline if event.type == "ai_response" and event.level == "L1"]
    steps = [event for event in timeline if event.type == "step_attempted"]

    lines = [
        "## Case Summary for L2 Review",
        "",
        f"**Product**: {case.get('product') or 'Unknown'}",
        f"**Category**: {case.get('category') or 'General'}",
        f"**Severity**: {case.get('severity') or 'medium'}",
        "",
    ]

    if steps:
        lines.append("### Steps Attempted by L1")
        for number, event in enumerate(steps, start=1):
            outcome = event.metadata.get("outcome", "unknown")
            lines.append(f"{number}. {event.content} ({outcome})")
        lines.append("")

    if l1_responses:
        last = l1_responses[-1].content
        preview = last if len(last) <= _PREVIEW_CHARS else last[:_PREVIEW_CHARS] + "..."
        lines.append("### L1 Interaction Summary")
        lines.append(f"- Total L1 responses: {len(l1_responses)}")
        lines.append(f'- Last L1 response: "{preview}"')

    return "\n".join(lines).rstrip() + "\n"


def build_case_history(timeline: list[TimelineEvent], case: dict[str, Any]) -> CaseHistory:
    """Derive the tier-2 view of a case from its timeline."""

    attempted: list[str] = []
    failed: list[str] = []
    for event in timeline:
        if event.type != "step_attempted":
            continue
        attempted.append(event.content)
        if event.metadata.get("outcome") == "failure":
            failed.append(event.content)

    l1_responses = [event for event in timeline if event.type == "ai_response" and event.level == "L1"]
    return CaseHistory(
        timeline=list(timeline),
        l1_summary=generate_l2_escalation_summary(timeline, case),
        steps_attempted=attempted,
        failed_steps=failed,
        last_l1_response=l1_responses[-1].content if l1_responses else None,
    )
