"""Turn skeleton shared by both agent tiers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass
from typing import ClassVar

from langchain_core.messages import BaseMessage
from pydantic import BaseModel

from helpdesk_ai.agent.llm import ChatCompletion, ChatModel
from helpdesk_ai.agent.prompts import (
    CRITICAL_HANDOFF_MESSAGES,
    build_turn_messages,
    generate_escalation_message,
)
from helpdesk_ai.agent.registry import ToolRegistry
from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import AgentConfig, GuardrailConfig
from helpdesk_ai.errors import UpstreamError
from helpdesk_ai.guardrails.escalation import (
    EscalationCheck,
    check_escalation_triggers,
    detect_human_request,
)
from helpdesk_ai.guardrails.redaction import redact_secrets
from helpdesk_ai.guardrails.validation import validate_ai_response
from helpdesk_ai.obs.tracing import Timer, TraceStore
from helpdesk_ai.playbooks.models import Playbook, PlaybookExecutionState, PlaybookStep
from helpdesk_ai.retrieval.context import assemble_context
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.types import (
    AgentAction,
    AgentContext,
    AgentResponse,
    AgentSource,
    ResponseMetadata,
    RetrievalResult,
    SupportLevel,
)

logger = logging.getLogger(__name__)

_HANDOFF_MODEL = "none"


@dataclass(slots=True)
class TurnPlan:
    """Per-turn material gathered before the model call."""

    message: str
    rag_context: str = ""
    playbook: Playbook | None = None
    playbook_state: PlaybookExecutionState | None = None
    step: PlaybookStep | None = None


class SupportAgent(ABC):
    """One conversational turn: guard, retrieve, prompt, complete, interpret.

    Agents hold no per-case state; everything a turn needs arrives in the
    `AgentContext`, and anything that must survive the turn is returned in the
    `AgentResponse`.
    """

    tier: ClassVar[SupportLevel]
    # Whether non-critical trigger hits mark the reply for escalation.
    escalate_on_triggers: ClassVar[bool] = True

    def __init__(
        self,
        *,
        chat_model: ChatModel,
        retriever: Retriever,
        tools: ToolRegistry,
        config: AgentConfig,
        guardrails: GuardrailConfig | None = None,
        limiter: TenantLimiter | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.chat_model = chat_model
        self.retriever = retriever
        self.tools = tools
        self.config = config
        self.guardrails = guardrails or GuardrailConfig()
        self.limiter = limiter
        self.trace_store = trace_store
        self._langchain_tools = tools.as_langchain_tools()

    def respond(self, context: AgentContext, message: str) -> AgentResponse:
        with Timer() as timer:
            response = self._run_turn(context, message)
            response.metadata.processing_time_ms = timer.lap_ms()

        if self.trace_store is not None:
            self.trace_store.record(
                tenant_id=context.tenant_id,
                case_id=context.case_id,
                tier=self.tier,
                model=response.metadata.model,
                action=response.action.type if response.action else None,
                escalation_level=response.escalation_level,
                tokens_used=response.metadata.tokens_used,
                rag_chunks_used=response.metadata.rag_chunks_used,
                latency_ms=response.metadata.processing_time_ms,
            )
        return response

    def _run_turn(self, context: AgentContext, message: str) -> AgentResponse:
        safe_message = redact_secrets(message).text
        check = check_escalation_triggers(
            safe_message,
            failed_attempts=context.failed_attempts,
            severity=context.severity,
            customer_requested=detect_human_request(safe_message),
            config=self.guardrails,
        )
        if check.should_escalate and check.severity == "critical":
            return self._critical_handoff(context, check)

        chunks = self._retrieve(context, safe_message)
        plan = TurnPlan(
            message=safe_message,
            rag_context=assemble_context(chunks, self.config.rag_context_tokens),
        )
        self._prepare(context, plan)

        messages = build_turn_messages(
            self._system_prompt(context, plan), context.conversation_history, safe_message
        )
        completion = self._complete(context, messages)

        response = AgentResponse(
            message=completion.content,
            metadata=ResponseMetadata(
                model=completion.model,
                tokens_used=completion.total_tokens,
                rag_chunks_used=len(chunks),
            ),
        )
        sources = self._sources(chunks)
        if sources:
            response.sources = sources
        if self.escalate_on_triggers and check.should_escalate:
            response.should_escalate = True
            response.escalation_reason = "; ".join(check.reasons)
        self._annotate(context, plan, response)

        if completion.tool_call is not None:
            call = self.tools.parse(completion.tool_call)
            if call is not None:
                response.action = AgentAction(
                    type=completion.tool_call.name,
                    params=call.model_dump(exclude_none=True),
                )
                self._apply_tool(call, context, plan, response)

        if not response.message.strip() and response.escalation_level is not None:
            response.message = generate_escalation_message(response.escalation_level, context.language)

        validation = validate_ai_response(response.message, self.guardrails)
        response.message = validation.sanitized_response
        return response

    def _critical_handoff(self, context: AgentContext, check: EscalationCheck) -> AgentResponse:
        logger.info(
            "Critical escalation trigger; handing off to a human",
            extra={"case_id": context.case_id, "tier": self.tier},
        )
        return AgentResponse(
            message=CRITICAL_HANDOFF_MESSAGES[self.tier],
            metadata=ResponseMetadata(model=_HANDOFF_MODEL),
            should_escalate=True,
            escalation_level="L3",
            escalation_reason="; ".join(check.reasons),
        )

    def _retrieve(
        self, context: AgentContext, query: str, *, top_k: int | None = None
    ) -> list[RetrievalResult]:
        try:
            return self.retriever.retrieve(
                context.tenant_id,
                query,
                top_k=top_k or self.config.rag_top_k,
                product=context.product,
            )
        except Exception:
            logger.warning(
                "Retrieval failed; continuing without documentation",
                extra={"case_id": context.case_id},
                exc_info=True,
            )
            return []

    def _sources(self, chunks: list[RetrievalResult]) -> list[AgentSource]:
        limit = self.config.source_preview_chars
        return [
            AgentSource(
                doc_id=chunk.metadata.doc_id,
                content=chunk.content[:limit] + "...",
                score=chunk.score,
            )
            for chunk in chunks
        ]

    def _add_followup_sources(
        self, context: AgentContext, query: str, response: AgentResponse, *, top_k: int | None = None
    ) -> None:
        chunks = self._retrieve(context, query, top_k=top_k)
        if not chunks:
            return
        existing = response.sources or []
        seen = {(source.doc_id, source.content) for source in existing}
        for source in self._sources(chunks):
            if (source.doc_id, source.content) not in seen:
                existing.append(source)
                seen.add((source.doc_id, source.content))
        response.sources = existing
        response.metadata.rag_chunks_used += len(chunks)

    def _complete(self, context: AgentContext, messages: list[BaseMessage]) -> ChatCompletion:
        slot = self.limiter.slot(context.tenant_id) if self.limiter else nullcontext()
        try:
            with slot:
                return self.chat_model.complete(
                    messages,
                    self._langchain_tools,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_output_tokens,
                )
        except UpstreamError:
            raise
        except Exception as exc:
            logger.error(
                "Chat completion failed",
                extra={"case_id": context.case_id, "tier": self.tier},
            )
            raise UpstreamError(f"Chat completion failed: {exc}") from exc

    def _prepare(self, context: AgentContext, plan: TurnPlan) -> None:
        """Hook for tier-specific lookups before the prompt is built."""

    def _annotate(self, context: AgentContext, plan: TurnPlan, response: AgentResponse) -> None:
        """Hook for tier-specific fields set on every non-handoff reply."""

    @abstractmethod
    def _system_prompt(self, context: AgentContext, plan: TurnPlan) -> str:
        ...

    @abstractmethod
    def _apply_tool(
        self, call: BaseModel, context: AgentContext, plan: TurnPlan, response: AgentResponse
    ) -> None:
        ...
