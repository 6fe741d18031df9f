"""Case storage, visual sessions and notification sinks used by the desk."""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Literal, Mapping, Protocol

from helpdesk_ai.playbooks.models import PlaybookExecutionState
from helpdesk_ai.types import ChatMessage, Severity, SupportLevel, TimelineEvent

logger = logging.getLogger(__name__)

CaseStatus = Literal["open", "pending", "escalated_L2", "escalated_human", "resolved"]

STATUS_TRANSITIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "open": frozenset({"pending", "resolved", "escalated_L2"}),
        "pending": frozenset({"open", "resolved", "escalated_L2"}),
        "escalated_L2": frozenset({"pending", "resolved", "escalated_human"}),
        "escalated_human": frozenset({"resolved"}),
        "resolved": frozenset(),
    }
)


def can_transition_status(current: str, target: str) -> bool:
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Case:
    """A support case as the desk sees it; the store owns persistence."""

    id: str
    tenant_id: str
    product: str
    category: str = "general"
    severity: Severity = "medium"
    language: str = "en"
    status: CaseStatus = "open"
    level: SupportLevel = "L1"
    customer_name: str | None = None
    failed_attempts: int = 0
    playbook_state: PlaybookExecutionState | None = None
    conversation: list[ChatMessage] = field(default_factory=list)
    visual_session_active: bool = False
    summary: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def summary_fields(self) -> dict[str, Any]:
        return {"product": self.product, "category": self.category, "severity": self.severity}


class CaseStore(Protocol):
    def get_case(self, tenant_id: str, case_id: str) -> Case | None:
        """Return the case or None when the tenant has no such case."""

    def create_case(self, case: Case) -> Case:
        """Persist a new case."""

    def update_case(self, case: Case) -> None:
        """Persist changes to an existing case."""

    def add_timeline_event(self, tenant_id: str, event: TimelineEvent) -> TimelineEvent:
        """Append an event to the case's timeline."""

    def list_timeline(self, tenant_id: str, case_id: str) -> list[TimelineEvent]:
        """Return the case's events, oldest first."""


class InMemoryCaseStore:
    """Thread-safe case store for tests and local runs."""

    def __init__(self) -> None:
        self._cases: dict[tuple[str, str], Case] = {}
        self._timelines: dict[tuple[str, str], list[TimelineEvent]] = {}
        self._lock = threading.Lock()

    def get_case(self, tenant_id: str, case_id: str) -> Case | None:
        with self._lock:
            return self._cases.get((tenant_id, case_id))

    def create_case(self, case: Case) -> Case:
        key = (case.tenant_id, case.id)
        with self._lock:
            if key in self._cases:
                raise ValueError(f"Case already exists: {case.id}")
            self._cases[key] = case
            self._timelines[key] = []
        return case

    def update_case(self, case: Case) -> None:
        key = (case.tenant_id, case.id)
        with self._lock:
            if key not in self._cases:
                raise KeyError(f"Unknown case: {case.id}")
            case.updated_at = _utcnow()
            self._cases[key] = case

    def add_timeline_event(self, tenant_id: str, event: TimelineEvent) -> TimelineEvent:
        if event.created_at is None:
            event.created_at = _utcnow()
        with self._lock:
            self._timelines.setdefault((tenant_id, event.case_id), []).append(event)
        return event

    def list_timeline(self, tenant_id: str, case_id: str) -> list[TimelineEvent]:
        with self._lock:
            return list(self._timelines.get((tenant_id, case_id), []))


SessionStatus = Literal["pending", "active", "ended", "expired"]
SessionMode = Literal["screen_share", "camera", "both"]

SESSION_TTL = timedelta(minutes=15)


def generate_session_token() -> str:
    """32 random bytes, URL-safe base64 encoded."""

    return secrets.token_urlsafe(32)


@dataclass(slots=True)
class VisualSession:
    id: str
    token: str
    tenant_id: str
    case_id: str
    mode: SessionMode
    join_url: str
    created_at: datetime
    expires_at: datetime
    status: SessionStatus = "pending"
    focus_area: str | None = None
    reason: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


class VisualSessionService(Protocol):
    def create_session(
        self,
        tenant_id: str,
        case_id: str,
        *,
        mode: SessionMode = "screen_share",
        focus_area: str | None = None,
        reason: str | None = None,
    ) -> VisualSession:
        """Open a pending session the customer can join through `join_url`."""


class InMemoryVisualSessionService:
    """Session lifecycle ``pending -> active -> ended``; unused sessions expire.

    Expiry is evaluated lazily whenever a session is looked up.
    """

    def __init__(
        self,
        base_url: str,
        *,
        ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, VisualSession] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        tenant_id: str,
        case_id: str,
        *,
        mode: SessionMode = "screen_share",
        focus_area: str | None = None,
        reason: str | None = None,
    ) -> VisualSession:
        now = self._clock()
        token = generate_session_token()
        session = VisualSession(
            id=str(uuid.uuid4()),
            token=token,
            tenant_id=tenant_id,
            case_id=case_id,
            mode=mode,
            join_url=f"{self.base_url}/{token}",
            created_at=now,
            expires_at=now + self.ttl,
            focus_area=focus_area,
            reason=reason,
        )
        with self._lock:
            self._sessions[token] = session
        logger.info("Visual session created", extra={"case_id": case_id, "session_id": session.id})
        return replace(session)

    def get_by_token(self, token: str) -> VisualSession | None:
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            self._expire_if_due(session)
            return replace(session)

    def start(self, token: str) -> VisualSession | None:
        """Mark a pending session active; None when it is unknown, expired or already used."""

        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            self._expire_if_due(session)
            if session.status != "pending":
                return None
            session.status = "active"
            session.started_at = self._clock()
            return replace(session)

    def end(self, token: str) -> VisualSession | None:
        with self._lock:
            session = self._sessions.get(token)
            if session is None or session.status not in ("pending", "active"):
                return None
            session.status = "ended"
            session.ended_at = self._clock()
            return replace(session)

    def _expire_if_due(self, session: VisualSession) -> None:
        if session.status == "pending" and self._clock() >= session.expires_at:
            session.status = "expired"


@dataclass(slots=True)
class Notification:
    kind: Literal["escalation", "resolved", "visual_session"]
    tenant_id: str
    case_id: str
    level: SupportLevel
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None:
        """Deliver one notification; may raise on delivery failure."""


class InMemoryNotificationSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class LoggingNotificationSink:
    def send(self, notification: Notification) -> None:
        logger.info(
            "Notification: %s",
            notification.message,
            extra={
                "kind": notification.kind,
                "case_id": notification.case_id,
                "support_level": notification.level,
            },
        )


def notify_best_effort(sinks: Iterable[NotificationSink], notification: Notification) -> int:
    """Send to every sink; failures are logged, never raised. Returns deliveries."""

    delivered = 0
    for sink in sinks:
        try:
            sink.send(notification)
        except Exception:
            logger.warning(
                "Notification delivery failed",
                extra={"sink": type(sink).__name__, "case_id": notification.case_id},
                exc_info=True,
            )
            continue
        delivered += 1
    return delivered
