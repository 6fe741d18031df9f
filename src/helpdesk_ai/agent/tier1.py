"""Tier-1 agent: playbook-guided first-line support."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from helpdesk_ai.agent.base import SupportAgent, TurnPlan
from helpdesk_ai.agent.llm import ChatModel
from helpdesk_ai.agent.prompts import build_tier1_prompt
from helpdesk_ai.agent.tools import (
    EscalateToHuman,
    EscalateToL2,
    ExecutePlaybookStep,
    LookupDocumentation,
    build_tier1_tools,
)
from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import AgentConfig, GuardrailConfig
from helpdesk_ai.errors import PlaybookStateError
from helpdesk_ai.obs.tracing import TraceStore
from helpdesk_ai.playbooks.engine import (
    create_execution_state,
    current_step,
    escalation_message,
    execute_step,
    format_instruction,
    is_playbook_complete,
)
from helpdesk_ai.playbooks.registry import PlaybookRegistry
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.types import AgentContext, AgentResponse, PlaybookStepInfo

logger = logging.getLogger(__name__)

_MIN_KEYWORD_LENGTH = 4


class Tier1Agent(SupportAgent):
    """First-line agent constrained by the case's playbook when one applies.

    A playbook is taken from the caller's execution state when present;
    otherwise one is selected from the registry and a fresh state is returned
    in the response for the caller to keep.
    """

    tier = "L1"

    def __init__(
        self,
        *,
        chat_model: ChatModel,
        retriever: Retriever,
        playbooks: PlaybookRegistry,
        config: AgentConfig | None = None,
        guardrails: GuardrailConfig | None = None,
        limiter: TenantLimiter | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        super().__init__(
            chat_model=chat_model,
            retriever=retriever,
            tools=build_tier1_tools(),
            config=config or AgentConfig.tier1(),
            guardrails=guardrails,
            limiter=limiter,
            trace_store=trace_store,
        )
        self.playbooks = playbooks

    def _prepare(self, context: AgentContext, plan: TurnPlan) -> None:
        state = context.playbook_state
        try:
            if state is not None:
                playbook = self.playbooks.get(state.playbook_id)
                if playbook is None:
                    logger.warning(
                        "Case references unknown playbook %s", state.playbook_id,
                        extra={"case_id": context.case_id},
                    )
            else:
                keywords = [word for word in plan.message.split() if len(word) >= _MIN_KEYWORD_LENGTH]
                playbook = self.playbooks.select(
                    product=context.product, category=context.category, keywords=keywords
                )
                if playbook is not None:
                    state = create_execution_state(playbook)
        except Exception:
            logger.warning(
                "Playbook lookup failed; continuing without a playbook",
                extra={"case_id": context.case_id},
                exc_info=True,
            )
            return

        if playbook is None or state is None:
            return
        plan.playbook = playbook
        plan.playbook_state = state
        if not is_playbook_complete(state):
            plan.step = current_step(playbook, state)

    def _system_prompt(self, context: AgentContext, plan: TurnPlan) -> str:
        return build_tier1_prompt(
            context,
            plan.rag_context,
            playbook_name=plan.playbook.name if plan.playbook else None,
            step=plan.step,
            variables=plan.playbook_state.variables if plan.playbook_state else None,
        )

    def _annotate(self, context: AgentContext, plan: TurnPlan, response: AgentResponse) -> None:
        if plan.playbook_state is not None:
            response.playbook_state = plan.playbook_state
        if plan.step is not None and plan.playbook_state is not None:
            response.playbook_step = PlaybookStepInfo(
                id=plan.step.id,
                title=plan.step.title,
                instruction=format_instruction(plan.step.instruction, plan.playbook_state.variables),
            )

    def _apply_tool(
        self, call: BaseModel, context: AgentContext, plan: TurnPlan, response: AgentResponse
    ) -> None:
        if isinstance(call, EscalateToL2):
            response.should_escalate = True
            response.escalation_level = "L2"
            response.escalation_reason = call.reason
        elif isinstance(call, EscalateToHuman):
            response.should_escalate = True
            response.escalation_level = "L3"
            response.escalation_reason = call.reason
        elif isinstance(call, ExecutePlaybookStep):
            self._execute_playbook_step(call, context, plan, response)
        elif isinstance(call, LookupDocumentation):
            self._add_followup_sources(context, call.query, response)

    def _execute_playbook_step(
        self,
        call: ExecutePlaybookStep,
        context: AgentContext,
        plan: TurnPlan,
        response: AgentResponse,
    ) -> None:
        playbook, state = plan.playbook, plan.playbook_state
        if playbook is None or state is None:
            logger.warning(
                "Model reported a playbook step but no playbook is active",
                extra={"case_id": context.case_id},
            )
            return
        if call.step_id != state.current_step_id:
            logger.info(
                "Model reported step %s; applying outcome to current step %s",
                call.step_id,
                state.current_step_id,
                extra={"case_id": context.case_id},
            )
        try:
            result = execute_step(playbook, state, call.outcome)
        except PlaybookStateError:
            logger.warning(
                "Ignoring step outcome for finished playbook %s", playbook.id,
                extra={"case_id": context.case_id},
            )
            return

        response.playbook_result = result
        response.playbook_state = state
        if is_playbook_complete(state):
            response.playbook_step = None
        else:
            step = current_step(playbook, state)
            if step is not None:
                response.playbook_step = PlaybookStepInfo(
                    id=step.id,
                    title=step.title,
                    instruction=format_instruction(step.instruction, state.variables),
                )

        if result.should_escalate:
            response.should_escalate = True
            response.escalation_level = "L2"
            response.escalation_reason = result.escalation_reason
            handoff = escalation_message(playbook, result.escalation_reason)
            response.message = f"{response.message}\n\n{handoff}".strip()
