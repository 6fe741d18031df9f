"""Tier-2 agent: deeper diagnostics after a tier-1 handoff."""

from __future__ import annotations

from pydantic import BaseModel

from helpdesk_ai.agent.base import SupportAgent, TurnPlan
from helpdesk_ai.agent.diagnostics import generate_diagnostic_steps
from helpdesk_ai.agent.llm import ChatModel
from helpdesk_ai.agent.prompts import build_tier2_prompt
from helpdesk_ai.agent.tools import (
    AnalyzeError,
    DetailedLookupDocumentation,
    EscalateToHuman,
    InitiateVisionscreen,
    SuggestDiagnosticSteps,
    build_tier2_tools,
)
from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import AgentConfig, GuardrailConfig
from helpdesk_ai.obs.tracing import TraceStore
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.types import AgentContext, AgentResponse

_DEPTH_MULTIPLIER = {"basic": 1, "detailed": 2, "expert": 3}


class Tier2Agent(SupportAgent):
    """Advanced agent that sees everything tier 1 already tried.

    Non-critical triggers are not re-raised here: they are what brought the
    case to tier 2. Only critical triggers or an explicit tool call hand the
    case to a human.
    """

    tier = "L2"
    escalate_on_triggers = False

    def __init__(
        self,
        *,
        chat_model: ChatModel,
        retriever: Retriever,
        config: AgentConfig | None = None,
        guardrails: GuardrailConfig | None = None,
        limiter: TenantLimiter | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        super().__init__(
            chat_model=chat_model,
            retriever=retriever,
            tools=build_tier2_tools(),
            config=config or AgentConfig.tier2(),
            guardrails=guardrails,
            limiter=limiter,
            trace_store=trace_store,
        )

    def _system_prompt(self, context: AgentContext, plan: TurnPlan) -> str:
        return build_tier2_prompt(context, plan.rag_context)

    def _apply_tool(
        self, call: BaseModel, context: AgentContext, plan: TurnPlan, response: AgentResponse
    ) -> None:
        if isinstance(call, EscalateToHuman):
            response.should_escalate = True
            response.escalation_level = "L3"
            response.escalation_reason = call.reason
        elif isinstance(call, InitiateVisionscreen):
            response.suggest_visual_session = True
        elif isinstance(call, SuggestDiagnosticSteps):
            response.diagnostic_steps = generate_diagnostic_steps(call.issue)
        elif isinstance(call, AnalyzeError):
            self._add_followup_sources(context, call.error_text, response)
        elif isinstance(call, DetailedLookupDocumentation):
            top_k = self.config.rag_top_k * _DEPTH_MULTIPLIER[call.depth]
            self._add_followup_sources(context, call.query, response, top_k=top_k)
