"""Support desk: routes customer turns to the right tier and records the outcome."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from helpdesk_ai.agent.prompts import generate_escalation_message, generate_greeting
from helpdesk_ai.agent.summary import build_case_history, generate_l2_escalation_summary
from helpdesk_ai.agent.tier1 import Tier1Agent
from helpdesk_ai.agent.tier2 import Tier2Agent
from helpdesk_ai.collaborators import (
    Case,
    CaseStore,
    Notification,
    NotificationSink,
    VisualSession,
    VisualSessionService,
    can_transition_status,
    notify_best_effort,
)
from helpdesk_ai.errors import InvalidTurnError
from helpdesk_ai.guardrails.redaction import redact_secrets
from helpdesk_ai.types import (
    AgentContext,
    AgentResponse,
    ChatMessage,
    EscalationLevel,
    Severity,
    TimelineEvent,
)

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I'm sorry, something went wrong on our side. I've passed your case to a human "
    "support specialist who will follow up with you shortly."
)

# Status path walked to reach each escalation level; every hop must be legal.
_ESCALATION_PATHS: dict[str, tuple[str, ...]] = {
    "L2": ("escalated_L2",),
    "L3": ("escalated_L2", "escalated_human"),
}
_STATUS_LEVELS = {"escalated_L2": "L2", "escalated_human": "L3"}


class TurnRequest(BaseModel):
    """One inbound customer message, or the opening of a new case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tenant_id: str = ""
    case_id: str = ""
    product: str = ""
    message: str = ""
    category: str = "general"
    language: str = "en"
    severity: Severity = "medium"
    customer_name: str | None = None
    is_new_case: bool = False


@dataclass(slots=True)
class TurnResult:
    case_id: str
    level: str
    status: str
    message: str
    response: AgentResponse | None = None
    visual_session: VisualSession | None = None


class SupportDesk:
    """Owns the case lifecycle around the stateless tier agents.

    Tier 1 answers cases at ``L1``, tier 2 answers cases at ``L2``, and cases
    at ``L3`` belong to the human queue. Any unexpected agent failure still
    leaves the customer with an answer and the case with a human owner.
    """

    def __init__(
        self,
        *,
        tier1: Tier1Agent,
        tier2: Tier2Agent,
        cases: CaseStore,
        visual_sessions: VisualSessionService | None = None,
        notifiers: Sequence[NotificationSink] = (),
    ) -> None:
        self.tier1 = tier1
        self.tier2 = tier2
        self.cases = cases
        self.visual_sessions = visual_sessions
        self.notifiers = list(notifiers)

    def handle_turn(self, request: TurnRequest) -> TurnResult:
        missing = [
            name
            for name in ("tenant_id", "case_id", "product")
            if not getattr(request, name).strip()
        ]
        if missing:
            raise InvalidTurnError(f"Missing required fields: {', '.join(missing)}")
        if not request.is_new_case and not request.message.strip():
            raise InvalidTurnError("message is required for existing cases")

        case = self.cases.get_case(request.tenant_id, request.case_id)
        if case is None:
            case = self.cases.create_case(
                Case(
                    id=request.case_id,
                    tenant_id=request.tenant_id,
                    product=request.product,
                    category=request.category,
                    severity=request.severity,
                    language=request.language,
                    customer_name=request.customer_name,
                )
            )
            logger.info("Opened case", extra={"case_id": case.id, "tenant_id": case.tenant_id})

        if request.is_new_case:
            greeting = generate_greeting(case.language, case.customer_name)
            case.conversation.append(ChatMessage(role="assistant", content=greeting))
            self.cases.update_case(case)
            return self._result(case, greeting)

        safe_message = redact_secrets(request.message).text
        if case.level == "L3":
            case.conversation.append(ChatMessage(role="user", content=safe_message))
            self.cases.update_case(case)
            return self._result(case, generate_escalation_message("L3", case.language))

        context = self._context(case)
        agent = self.tier1 if case.level == "L1" else self.tier2
        try:
            response = agent.respond(context, request.message)
        except Exception:
            logger.exception(
                "Agent turn failed; handing the case to the human queue",
                extra={"case_id": case.id, "support_level": case.level},
            )
            return self._fallback(case, safe_message)

        case.conversation.append(ChatMessage(role="user", content=safe_message))
        case.conversation.append(ChatMessage(role="assistant", content=response.message))
        self._record(
            case,
            "ai_response",
            response.message,
            {
                "model": response.metadata.model,
                "tokens_used": response.metadata.tokens_used,
                "action": response.action.type if response.action else None,
            },
        )
        self._apply_playbook(case, response)

        visual_session = None
        if response.action is not None and response.action.type == "mark_resolved":
            self._resolve(case, str(response.action.params.get("resolution", "")))
        elif response.should_escalate:
            target: EscalationLevel = response.escalation_level or ("L2" if case.level == "L1" else "L3")
            self._escalate(case, target, response.escalation_reason or "Escalation requested")
        if response.suggest_visual_session:
            visual_session = self._start_visual_session(case, response)

        self.cases.update_case(case)
        return self._result(case, response.message, response=response, visual_session=visual_session)

    def _context(self, case: Case) -> AgentContext:
        context = AgentContext(
            tenant_id=case.tenant_id,
            case_id=case.id,
            product=case.product,
            category=case.category,
            language=case.language,
            severity=case.severity,
            customer_name=case.customer_name,
            conversation_history=list(case.conversation),
            playbook_state=case.playbook_state,
            failed_attempts=case.failed_attempts,
            visual_session_active=case.visual_session_active,
        )
        if case.level == "L2":
            timeline = self.cases.list_timeline(case.tenant_id, case.id)
            context.case_history = build_case_history(timeline, case.summary_fields())
        return context

    def _apply_playbook(self, case: Case, response: AgentResponse) -> None:
        if response.playbook_state is not None:
            case.playbook_state = response.playbook_state
        result = response.playbook_result
        if result is None:
            return
        self._record(
            case,
            "step_attempted",
            result.step_title,
            {"step_id": result.step_id, "outcome": result.outcome},
        )
        if not result.success:
            case.failed_attempts += 1

    def _escalate(self, case: Case, target: EscalationLevel, reason: str) -> None:
        from_level = case.level
        for status in _ESCALATION_PATHS[target]:
            if case.status == status:
                continue
            if not can_transition_status(case.status, status):
                logger.warning(
                    "Skipping illegal status transition %s -> %s",
                    case.status,
                    status,
                    extra={"case_id": case.id},
                )
                break
            case.status = status
            case.level = _STATUS_LEVELS[status]

        if case.level == from_level:
            return
        if case.level == "L2":
            timeline = self.cases.list_timeline(case.tenant_id, case.id)
            case.summary = generate_l2_escalation_summary(timeline, case.summary_fields())
        self._record(
            case,
            "escalation",
            f"Case escalated to {case.level}: {reason}",
            {"from_level": from_level, "to_level": case.level, "reason": reason},
            created_by="system",
        )
        notify_best_effort(
            self.notifiers,
            Notification(
                kind="escalation",
                tenant_id=case.tenant_id,
                case_id=case.id,
                level=case.level,
                message=f"Case {case.id} escalated to {case.level}: {reason}",
            ),
        )

    def _resolve(self, case: Case, resolution: str) -> None:
        if not can_transition_status(case.status, "resolved"):
            logger.warning(
                "Skipping illegal status transition %s -> resolved",
                case.status,
                extra={"case_id": case.id},
            )
            return
        case.status = "resolved"
        self._record(case, "resolved", resolution or "Case resolved", {}, created_by="system")
        notify_best_effort(
            self.notifiers,
            Notification(
                kind="resolved",
                tenant_id=case.tenant_id,
                case_id=case.id,
                level=case.level,
                message=f"Case {case.id} resolved",
            ),
        )

    def _start_visual_session(self, case: Case, response: AgentResponse) -> VisualSession | None:
        if self.visual_sessions is None:
            logger.info("Visual session requested but no service is configured")
            return None
        params = response.action.params if response.action else {}
        try:
            session = self.visual_sessions.create_session(
                case.tenant_id,
                case.id,
                mode=params.get("mode", "screen_share"),
                focus_area=params.get("focus_area"),
                reason=params.get("reason"),
            )
        except Exception:
            logger.warning(
                "Visual session could not be started",
                extra={"case_id": case.id},
                exc_info=True,
            )
            return None
        case.visual_session_active = True
        self._record(
            case,
            "visionscreen_started",
            session.reason or "Visual session started",
            {"session_id": session.id, "mode": session.mode},
        )
        notify_best_effort(
            self.notifiers,
            Notification(
                kind="visual_session",
                tenant_id=case.tenant_id,
                case_id=case.id,
                level=case.level,
                message=f"Join the visual session: {session.join_url}",
                metadata={"session_id": session.id},
            ),
        )
        return session

    def _fallback(self, case: Case, safe_message: str) -> TurnResult:
        case.conversation.append(ChatMessage(role="user", content=safe_message))
        case.conversation.append(ChatMessage(role="assistant", content=FALLBACK_MESSAGE))
        self._escalate(case, "L3", "Automated support failed")
        self.cases.update_case(case)
        return self._result(case, FALLBACK_MESSAGE)

    def _record(
        self,
        case: Case,
        event_type: str,
        content: str,
        metadata: dict,
        *,
        created_by: str = "ai",
    ) -> None:
        self.cases.add_timeline_event(
            case.tenant_id,
            TimelineEvent(
                case_id=case.id,
                type=event_type,
                level=case.level,
                content=content,
                metadata=metadata,
                created_by=created_by,
            ),
        )

    def _result(
        self,
        case: Case,
        message: str,
        *,
        response: AgentResponse | None = None,
        visual_session: VisualSession | None = None,
    ) -> TurnResult:
        return TurnResult(
            case_id=case.id,
            level=case.level,
            status=case.status,
            message=message,
            response=response,
            visual_session=visual_session,
        )
