from typing import Any

import pytest

from helpdesk_ai.agent.fallback import FALLBACK_MODEL, DeterministicChatModel
from helpdesk_ai.agent.prompts import CRITICAL_HANDOFF_MESSAGES, generate_escalation_message
from helpdesk_ai.agent.tier1 import Tier1Agent
from helpdesk_ai.agent.tier2 import Tier2Agent
from helpdesk_ai.errors import UpstreamError
from helpdesk_ai.ingest.pipeline import IngestPipeline
from helpdesk_ai.obs.tracing import TraceStore
from helpdesk_ai.playbooks.registry import PlaybookRegistry
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.types import AgentContext, CaseHistory, ChatMessage

from helpers import FailingChatModel, ScriptedChatModel, reply

SPAM_DOC = "Password reset email never arrived: check the spam folder and wait ten minutes."


class CountingRetriever(Retriever):
    def __init__(self, inner: Retriever) -> None:
        super().__init__(inner.index, inner.embeddings, inner.config)
        self.calls: list[dict[str, Any]] = []

    def retrieve(self, tenant_id: str, query: str, **kwargs: Any):
        self.calls.append({"query": query, **kwargs})
        return super().retrieve(tenant_id, query, **kwargs)


class BrokenRetriever(Retriever):
    def retrieve(self, tenant_id: str, query: str, **kwargs: Any):
        raise ConnectionError("vector index unreachable")


def _context(**overrides: Any) -> AgentContext:
    values: dict[str, Any] = {
        "tenant_id": "tenant-a",
        "case_id": "case-1",
        "product": "AI Factory",
        "category": "account",
    }
    values.update(overrides)
    return AgentContext(**values)


def _tier1(model, retriever: Retriever, playbooks: PlaybookRegistry | None = None, **kwargs: Any) -> Tier1Agent:
    return Tier1Agent(
        chat_model=model,
        retriever=retriever,
        playbooks=playbooks or PlaybookRegistry(),
        **kwargs,
    )


def _tier2(model, retriever: Retriever, **kwargs: Any) -> Tier2Agent:
    return Tier2Agent(chat_model=model, retriever=retriever, **kwargs)


def test_tier1_answers_directly_when_no_playbook_matches(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("Let's check your spam folder first."))
    traces = TraceStore()
    agent = _tier1(model, retriever, trace_store=traces)

    response = agent.respond(_context(), "I can't log in, password reset email never arrived")

    assert response.should_escalate is False
    assert response.escalation_level is None
    assert response.message == "Let's check your spam folder first."
    assert response.metadata.model == "scripted"
    assert response.metadata.tokens_used == 42
    assert response.playbook_state is None
    assert len(model.calls) == 1
    assert model.calls[0]["tools"] == [
        "lookup_documentation",
        "execute_playbook_step",
        "escalate_to_l2",
        "escalate_to_human",
        "mark_resolved",
    ]
    assert model.calls[0]["temperature"] == 0.7
    assert traces.list_recent()[0].tier == "L1"


def test_tier1_grounds_the_prompt_in_retrieved_documentation(
    pipeline: IngestPipeline, retriever: Retriever
) -> None:
    pipeline.ingest_text("tenant-a", "kb-1", SPAM_DOC, doc_id="password-faq", product="AI Factory")
    pipeline.ingest_text("tenant-a", "kb-1", SPAM_DOC, doc_id="other-product", product="Router")
    model = ScriptedChatModel(reply("Check the spam folder."))

    response = _tier1(model, retriever).respond(_context(), "password reset email never arrived")

    assert "## Relevant Documentation" in model.system_prompt
    assert "check the spam folder" in model.system_prompt
    assert response.metadata.rag_chunks_used == 1
    assert response.sources is not None
    assert response.sources[0].doc_id == "password-faq"
    assert response.sources[0].content == SPAM_DOC + "..."


def test_tier1_hands_critical_messages_to_a_human_without_model_or_retrieval(
    retriever: Retriever,
) -> None:
    model = ScriptedChatModel()
    counting = CountingRetriever(retriever)

    response = _tier1(model, counting).respond(_context(), "I'm going to sue you")

    assert response.should_escalate is True
    assert response.escalation_level == "L3"
    assert response.escalation_reason == "Keyword detected: sue"
    assert response.message == CRITICAL_HANDOFF_MESSAGES["L1"]
    assert response.metadata.tokens_used == 0
    assert model.calls == []
    assert counting.calls == []


def test_tier1_flags_non_critical_triggers_but_still_answers(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("I can help with the refund question."))

    response = _tier1(model, retriever).respond(_context(), "I was overcharged and want a refund")

    assert response.should_escalate is True
    assert response.escalation_level is None
    assert "Keyword detected: refund" in response.escalation_reason
    assert "Keyword detected: overcharged" in response.escalation_reason
    assert len(model.calls) == 1


def test_tier1_playbook_step_escalates_after_max_attempts(
    retriever: Retriever, playbook_data: dict[str, Any]
) -> None:
    playbooks = PlaybookRegistry()
    playbooks.load_all([playbook_data])
    model = ScriptedChatModel(
        *[
            reply("Sorry that didn't work.", "execute_playbook_step", stepId="power-cycle", outcome="failure")
            for _ in range(3)
        ]
    )
    agent = _tier1(model, retriever, playbooks)
    context = _context(product="router", category="connectivity")

    first = agent.respond(context, "My wifi keeps dropping")
    assert first.playbook_state is not None
    assert first.playbook_step is not None and first.playbook_step.id == "power-cycle"
    assert "Unplug the router for 30 seconds" in model.system_prompt
    assert "## Current Playbook: WiFi reset" in model.system_prompt

    state = first.playbook_state
    second = agent.respond(_context(product="router", category="connectivity", playbook_state=state), "Still no luck")
    assert second.should_escalate is False

    third = agent.respond(
        _context(product="router", category="connectivity", playbook_state=second.playbook_state),
        "Still no luck",
    )

    assert third.should_escalate is True
    assert third.escalation_level == "L2"
    assert "power-cycle" in third.playbook_state.failed_steps
    assert third.playbook_state.outcome == "escalated"
    assert third.playbook_result is not None and third.playbook_result.should_escalate
    assert third.playbook_step is None
    assert third.message.endswith("The router did not recover; a specialist will take over.")
    assert third.action is not None and third.action.type == "execute_playbook_step"
    assert third.action.params == {"step_id": "power-cycle", "outcome": "failure"}


def test_tier1_playbook_success_moves_to_next_step(
    retriever: Retriever, playbook_data: dict[str, Any]
) -> None:
    playbooks = PlaybookRegistry()
    playbooks.load_all([playbook_data])
    model = ScriptedChatModel(
        reply("Great, the lights are back.", "execute_playbook_step", step_id="power-cycle", outcome="success")
    )

    response = _tier1(model, retriever, playbooks).respond(
        _context(product="router", category="connectivity"), "My wifi router restarted fine"
    )

    assert response.playbook_result is not None and response.playbook_result.success
    assert response.playbook_step is not None and response.playbook_step.id == "check-lights"
    assert response.playbook_state.completed_steps == ["power-cycle"]


def test_tier1_escalate_tool_without_text_uses_localized_message(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("", "escalate_to_l2", reason="Beyond L1 scope"))

    response = _tier1(model, retriever).respond(_context(language="fr"), "Mon application plante")

    assert response.escalation_level == "L2"
    assert response.escalation_reason == "Beyond L1 scope"
    assert response.message == generate_escalation_message("L2", "fr")


def test_tier1_ignores_unknown_tools_and_invalid_arguments(retriever: Retriever) -> None:
    model = ScriptedChatModel(
        reply("Done.", "delete_data", target="everything"),
        reply("Done.", "escalate_to_human", urgency="whenever"),
    )
    agent = _tier1(model, retriever)

    for _ in range(2):
        response = agent.respond(_context(), "Please help with my dashboard")
        assert response.action is None
        assert response.should_escalate is False


def test_tier1_redacts_secrets_both_ways(retriever: Retriever) -> None:
    key = "sk-" + "Z9y8X7w6" * 5
    model = ScriptedChatModel(reply(f"Your key {key} looks valid."))

    response = _tier1(model, retriever).respond(_context(), f"My key {key} is rejected")

    sent = str(model.calls[0]["messages"][-1].content)
    assert key not in sent
    assert "[REDACTED OpenAI API Key]" in sent
    assert key not in response.message


def test_tier1_passes_conversation_history(retriever: Retriever) -> None:
    model = ScriptedChatModel()
    history = [
        ChatMessage(role="user", content="Hi, my dashboard is blank"),
        ChatMessage(role="assistant", content="Which browser are you using?"),
    ]

    _tier1(model, retriever).respond(_context(conversation_history=history), "Firefox")

    messages = model.calls[0]["messages"]
    assert [message.type for message in messages] == ["system", "human", "ai", "human"]
    assert messages[-1].content == "Firefox"


def test_model_failure_surfaces_as_upstream_error(retriever: Retriever) -> None:
    with pytest.raises(UpstreamError):
        _tier1(FailingChatModel(), retriever).respond(_context(), "My dashboard is blank")


def test_retrieval_failure_degrades_to_no_documentation(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("Let's look at this together."))
    broken = BrokenRetriever(retriever.index, retriever.embeddings, retriever.config)

    response = _tier1(model, broken).respond(_context(), "My dashboard is blank")

    assert response.message == "Let's look at this together."
    assert response.metadata.rag_chunks_used == 0
    assert "## Relevant Documentation" not in model.system_prompt


def test_tier2_prompt_includes_tier1_history(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("Let's dig into the logs."))
    history = CaseHistory(
        steps_attempted=["restart app", "clear cache"],
        failed_steps=["clear cache"],
        l1_summary="## Case Summary for L2 Review\n\n**Product**: AI Factory",
        last_l1_response="Please clear your cache.",
    )

    response = _tier2(model, retriever).respond(
        _context(case_history=history, visual_session_active=True), "The app still crashes"
    )

    prompt = model.system_prompt
    assert "## Previous Troubleshooting (L1)" in prompt
    assert "1. restart app" in prompt
    assert "2. clear cache" in prompt
    assert "- clear cache" in prompt
    assert "## Last L1 Response\nPlease clear your cache." in prompt
    assert "VisionScreen: ACTIVE" in prompt
    assert model.calls[0]["temperature"] == 0.5
    assert response.should_escalate is False


def test_tier2_does_not_reescalate_non_critical_triggers(retriever: Retriever) -> None:
    model = ScriptedChatModel(reply("Let me check the billing logs."))

    response = _tier2(model, retriever).respond(_context(), "I still want a refund")

    assert response.should_escalate is False
    assert len(model.calls) == 1


def test_tier2_critical_trigger_goes_straight_to_human(retriever: Retriever) -> None:
    model = ScriptedChatModel()

    response = _tier2(model, retriever).respond(_context(), "We had a security breach")

    assert response.escalation_level == "L3"
    assert response.message == CRITICAL_HANDOFF_MESSAGES["L2"]
    assert model.calls == []


def test_tier2_tools_shape_the_response(retriever: Retriever) -> None:
    model = ScriptedChatModel(
        reply("Try these steps.", "suggest_diagnostic_steps", issue="network connection drops"),
        reply("Can you share your screen?", "initiate_visionscreen", reason="See the error dialog"),
        reply("A specialist will help.", "escalate_to_human", reason="Needs a server fix", urgency="high"),
    )
    agent = _tier2(model, retriever)

    diagnostics = agent.respond(_context(), "The connection keeps dropping")
    assert diagnostics.diagnostic_steps is not None
    assert diagnostics.diagnostic_steps[0].step == "Check Network Status"

    visual = agent.respond(_context(), "I see a popup I can't describe")
    assert visual.suggest_visual_session is True
    assert visual.action.params["mode"] == "screen_share"

    handoff = agent.respond(_context(), "Nothing works")
    assert handoff.should_escalate is True
    assert handoff.escalation_level == "L3"
    assert handoff.escalation_reason == "Needs a server fix"


def test_tier2_lookup_depth_scales_retrieval(retriever: Retriever) -> None:
    counting = CountingRetriever(retriever)
    model = ScriptedChatModel(reply("Looking deeper.", "lookup_documentation", query="sso config", depth="expert"))

    _tier2(model, counting).respond(_context(), "SSO login loops")

    assert [call["top_k"] for call in counting.calls] == [8, 24]
    assert counting.calls[1]["query"] == "sso config"


def test_deterministic_model_follows_the_playbook_step(
    retriever: Retriever, playbook_data: dict[str, Any]
) -> None:
    playbooks = PlaybookRegistry()
    playbooks.load_all([playbook_data])
    agent = _tier1(DeterministicChatModel(), retriever, playbooks)

    response = agent.respond(_context(product="router", category="connectivity"), "My wifi is down")

    assert response.metadata.model == FALLBACK_MODEL
    assert response.message == (
        "Let's try this next step: Unplug the router for 30 seconds, then plug it back in."
    )
    assert response.action is None


def test_deterministic_model_quotes_documentation(
    pipeline: IngestPipeline, retriever: Retriever
) -> None:
    pipeline.ingest_text("tenant-a", "kb-1", SPAM_DOC, doc_id="password-faq", product="AI Factory")
    agent = _tier1(DeterministicChatModel(), retriever)

    answered = agent.respond(_context(), "password reset email never arrived")
    unanswered = agent.respond(_context(product="Other"), "password reset email never arrived")

    assert answered.message == f"Here is what our documentation says about this:\n1. {SPAM_DOC}"
    assert unanswered.message.startswith("I couldn't find documentation for this issue yet.")
