from datetime import datetime, timedelta, timezone

import pytest

from helpdesk_ai.collaborators import (
    Case,
    InMemoryCaseStore,
    InMemoryNotificationSink,
    InMemoryVisualSessionService,
    Notification,
    can_transition_status,
    notify_best_effort,
)
from helpdesk_ai.types import TimelineEvent


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class BrokenSink:
    def send(self, notification: Notification) -> None:
        raise ConnectionError("smtp down")


def test_status_transitions() -> None:
    assert can_transition_status("open", "escalated_L2")
    assert can_transition_status("escalated_L2", "escalated_human")
    assert not can_transition_status("open", "escalated_human")
    assert not can_transition_status("resolved", "open")
    assert not can_transition_status("unknown", "open")


def test_case_store_is_tenant_scoped() -> None:
    store = InMemoryCaseStore()
    case = store.create_case(Case(id="case-1", tenant_id="tenant-a", product="router"))

    assert store.get_case("tenant-a", "case-1") is case
    assert store.get_case("tenant-b", "case-1") is None
    with pytest.raises(ValueError):
        store.create_case(Case(id="case-1", tenant_id="tenant-a", product="router"))
    with pytest.raises(KeyError):
        store.update_case(Case(id="case-2", tenant_id="tenant-a", product="router"))


def test_timeline_is_append_only_and_ordered() -> None:
    store = InMemoryCaseStore()
    store.create_case(Case(id="case-1", tenant_id="tenant-a", product="router"))

    for content in ("first", "second"):
        store.add_timeline_event(
            "tenant-a", TimelineEvent(case_id="case-1", type="ai_response", level="L1", content=content)
        )

    events = store.list_timeline("tenant-a", "case-1")
    assert [event.content for event in events] == ["first", "second"]
    assert all(event.created_at is not None for event in events)
    assert store.list_timeline("tenant-b", "case-1") == []


def test_visual_session_lifecycle() -> None:
    clock = Clock()
    service = InMemoryVisualSessionService("https://support.test/vs/", clock=clock)

    session = service.create_session("tenant-a", "case-1", mode="camera", reason="Show the cabling")

    assert session.status == "pending"
    assert session.join_url == f"https://support.test/vs/{session.token}"
    assert len(session.token) >= 43
    assert session.expires_at - session.created_at == timedelta(minutes=15)

    started = service.start(session.token)
    assert started is not None and started.status == "active"
    assert service.start(session.token) is None

    ended = service.end(session.token)
    assert ended is not None and ended.status == "ended"
    assert service.end(session.token) is None
    assert service.get_by_token("unknown") is None


def test_unused_visual_session_expires() -> None:
    clock = Clock()
    service = InMemoryVisualSessionService("https://support.test/vs", clock=clock)
    session = service.create_session("tenant-a", "case-1")

    clock.now += timedelta(minutes=16)

    assert service.get_by_token(session.token).status == "expired"
    assert service.start(session.token) is None


def test_notification_failures_are_isolated() -> None:
    memory = InMemoryNotificationSink()
    notification = Notification(
        kind="escalation", tenant_id="tenant-a", case_id="case-1", level="L2", message="escalated"
    )

    delivered = notify_best_effort([BrokenSink(), memory], notification)

    assert delivered == 1
    assert memory.sent == [notification]
