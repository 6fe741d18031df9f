from typing import Any

import pytest

from helpdesk_ai.agent.prompts import CRITICAL_HANDOFF_MESSAGES, generate_escalation_message, generate_greeting
from helpdesk_ai.agent.tier1 import Tier1Agent
from helpdesk_ai.agent.tier2 import Tier2Agent
from helpdesk_ai.collaborators import (
    InMemoryCaseStore,
    InMemoryNotificationSink,
    InMemoryVisualSessionService,
)
from helpdesk_ai.errors import InvalidTurnError
from helpdesk_ai.playbooks.registry import PlaybookRegistry
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.service import FALLBACK_MESSAGE, SupportDesk, TurnRequest

from helpers import FailingChatModel, ScriptedChatModel, reply


class Desk:
    def __init__(self, retriever: Retriever, tier1_model, tier2_model=None, playbooks=None) -> None:
        self.tier1_model = tier1_model
        self.tier2_model = tier2_model or ScriptedChatModel()
        self.cases = InMemoryCaseStore()
        self.notifications = InMemoryNotificationSink()
        self.sessions = InMemoryVisualSessionService("https://support.test/vs")
        self.desk = SupportDesk(
            tier1=Tier1Agent(
                chat_model=tier1_model, retriever=retriever, playbooks=playbooks or PlaybookRegistry()
            ),
            tier2=Tier2Agent(chat_model=self.tier2_model, retriever=retriever),
            cases=self.cases,
            visual_sessions=self.sessions,
            notifiers=[self.notifications],
        )

    def turn(self, message: str = "", **overrides: Any):
        values: dict[str, Any] = {
            "tenant_id": "tenant-a",
            "case_id": "case-1",
            "product": "router",
            "category": "connectivity",
            "message": message,
        }
        values.update(overrides)
        return self.desk.handle_turn(TurnRequest(**values))

    @property
    def case(self):
        return self.cases.get_case("tenant-a", "case-1")

    def timeline_types(self) -> list[str]:
        return [event.type for event in self.cases.list_timeline("tenant-a", "case-1")]


def test_new_case_is_greeted(retriever: Retriever) -> None:
    desk = Desk(retriever, ScriptedChatModel())

    result = desk.turn(is_new_case=True, customer_name="Ada", language="de")

    assert result.message == generate_greeting("de", "Ada")
    assert result.level == "L1"
    assert result.status == "open"
    assert desk.case.conversation[-1].content == result.message
    assert desk.tier1_model.calls == []


def test_turn_requests_are_validated(retriever: Retriever) -> None:
    desk = Desk(retriever, ScriptedChatModel())

    with pytest.raises(InvalidTurnError):
        desk.turn("hello", tenant_id="")
    with pytest.raises(InvalidTurnError):
        desk.turn("   ")

    request = TurnRequest.model_validate(
        {"tenantId": "t", "caseId": "c", "product": "p", "message": "m", "isNewCase": False}
    )
    assert request.case_id == "c"


def test_l1_escalation_hands_case_and_summary_to_l2(retriever: Retriever) -> None:
    tier1 = ScriptedChatModel(
        reply("Please restart the router."),
        reply("Let me get more help.", "escalate_to_l2", reason="Needs deeper diagnostics"),
    )
    tier2 = ScriptedChatModel(reply("I'll look at the firmware logs."))
    desk = Desk(retriever, tier1, tier2)

    desk.turn("My router drops the connection")
    escalated = desk.turn("Restarting did not help")

    assert escalated.level == "L2"
    assert escalated.status == "escalated_L2"
    assert desk.case.summary.startswith("## Case Summary for L2 Review")
    assert "- Total L1 responses: 2" in desk.case.summary
    assert desk.timeline_types() == ["ai_response", "ai_response", "escalation"]
    assert [notification.kind for notification in desk.notifications.sent] == ["escalation"]

    followup = desk.turn("Any update?")

    assert followup.message == "I'll look at the firmware logs."
    assert len(tier1.calls) == 2
    assert "## Last L1 Response\nLet me get more help." in tier2.system_prompt
    assert "## L1 Summary" in tier2.system_prompt


def test_critical_message_reaches_the_human_queue(retriever: Retriever) -> None:
    desk = Desk(retriever, ScriptedChatModel())

    result = desk.turn("This is a security incident, our data was exposed")

    assert result.message == CRITICAL_HANDOFF_MESSAGES["L1"]
    assert result.level == "L3"
    assert result.status == "escalated_human"
    assert desk.timeline_types()[-1] == "escalation"

    waiting = desk.turn("Hello? Anyone there?")

    assert waiting.message == generate_escalation_message("L3", "en")
    assert desk.tier1_model.calls == []
    assert desk.tier2_model.calls == []


def test_non_critical_trigger_moves_case_to_l2(retriever: Retriever) -> None:
    desk = Desk(retriever, ScriptedChatModel(reply("I understand your frustration.")))

    result = desk.turn("I was overcharged and I want a refund")

    assert result.level == "L2"
    escalation = desk.cases.list_timeline("tenant-a", "case-1")[-1]
    assert escalation.metadata["to_level"] == "L2"
    assert "Keyword detected: refund" in escalation.metadata["reason"]


def test_failed_playbook_steps_are_recorded_and_escalate(
    retriever: Retriever, playbook_data: dict[str, Any]
) -> None:
    playbooks = PlaybookRegistry()
    playbooks.load_all([playbook_data])
    tier1 = ScriptedChatModel(
        *[
            reply("Let's try once more.", "execute_playbook_step", step_id="power-cycle", outcome="failure")
            for _ in range(3)
        ]
    )
    tier2 = ScriptedChatModel()
    desk = Desk(retriever, tier1, tier2, playbooks)

    desk.turn("My wifi keeps dropping")
    desk.turn("Still dropping")
    assert desk.case.failed_attempts == 2
    assert desk.case.level == "L1"

    escalated = desk.turn("Still dropping")

    assert escalated.level == "L2"
    assert desk.case.playbook_state.failed_steps == ["power-cycle"]
    assert desk.timeline_types().count("step_attempted") == 3

    desk.turn("What now?")
    assert "1. Power cycle the router" in tier2.system_prompt
    assert "3. Power cycle the router" in tier2.system_prompt


def test_mark_resolved_closes_the_case(retriever: Retriever) -> None:
    desk = Desk(retriever, ScriptedChatModel(reply("Glad it works!", "mark_resolved", resolution="Router rebooted")))

    result = desk.turn("It works again after the reboot")

    assert result.status == "resolved"
    assert desk.timeline_types() == ["ai_response", "resolved"]
    assert desk.notifications.sent[-1].kind == "resolved"


def test_agent_failure_falls_back_to_a_human(retriever: Retriever) -> None:
    desk = Desk(retriever, FailingChatModel())

    result = desk.turn("My router is blinking red")

    assert result.message == FALLBACK_MESSAGE
    assert result.level == "L3"
    assert result.status == "escalated_human"
    assert desk.case.conversation[-1].content == FALLBACK_MESSAGE


def test_tier2_visual_session_is_started(retriever: Retriever) -> None:
    tier1 = ScriptedChatModel(reply("Escalating.", "escalate_to_l2", reason="Complex"))
    tier2 = ScriptedChatModel(
        reply("Please share your screen.", "initiate_visionscreen", reason="Inspect settings", focus_area="Router UI")
    )
    desk = Desk(retriever, tier1, tier2)
    desk.turn("My router settings are confusing")

    result = desk.turn("Which setting should I change?")

    assert result.visual_session is not None
    assert result.visual_session.focus_area == "Router UI"
    assert result.visual_session.join_url.startswith("https://support.test/vs/")
    assert desk.case.visual_session_active is True
    assert desk.timeline_types()[-1] == "visionscreen_started"
    assert desk.notifications.sent[-1].kind == "visual_session"
    assert desk.sessions.get_by_token(result.visual_session.token).status == "pending"


class UnavailableVisualSessions(InMemoryVisualSessionService):
    def create_session(self, *args: Any, **kwargs: Any):
        raise ConnectionError("session service down")


def test_visual_session_failure_keeps_the_reply(retriever: Retriever) -> None:
    tier1 = ScriptedChatModel(reply("Escalating.", "escalate_to_l2", reason="Complex"))
    tier2 = ScriptedChatModel(
        reply("Please share your screen.", "initiate_visionscreen", reason="Inspect settings")
    )
    desk = Desk(retriever, tier1, tier2)
    desk.desk.visual_sessions = UnavailableVisualSessions("https://support.test/vs")
    desk.turn("My router settings are confusing")

    result = desk.turn("Which setting should I change?")

    assert result.message == "Please share your screen."
    assert result.visual_session is None
    assert desk.case.visual_session_active is False
    assert "visionscreen_started" not in desk.timeline_types()
