"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from helpdesk_ai.playbooks.models import PlaybookExecutionResult, PlaybookExecutionState

Severity = Literal["low", "medium", "high", "critical"]
EscalationLevel = Literal["L2", "L3"]
SupportLevel = Literal["L1", "L2", "L3"]
Role = Literal["user", "assistant", "system"]


@dataclass(slots=True)
class ParsedDocument:
    """A parsed source document before chunking."""

    doc_id: str
    text: str
    metadata: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded slice of one document; ordered within that document."""

    content: str
    index: int
    start_char: int
    end_char: int
    token_estimate: int


@dataclass(slots=True)
class EmbeddingResult:
    """An embedding paired with its input text and original input position."""

    text: str
    embedding: list[float]
    index: int


@dataclass(slots=True)
class VectorMetadata:
    tenant_id: str
    kb_id: str
    doc_id: str
    product: str
    chunk_index: int
    content: str
    language: str = "en"

    def as_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "kb_id": self.kb_id,
            "doc_id": self.doc_id,
            "product": self.product,
            "chunk_index": self.chunk_index,
            "content": self.content,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VectorMetadata":
        return cls(
            tenant_id=str(data.get("tenant_id", "")),
            kb_id=str(data.get("kb_id", "")),
            doc_id=str(data.get("doc_id", "")),
            product=str(data.get("product", "")),
            chunk_index=int(data.get("chunk_index", 0) or 0),
            content=str(data.get("content", "")),
            language=str(data.get("language") or "en"),
        )


@dataclass(slots=True)
class VectorRecord:
    """A persisted vector; owned by a knowledge base inside one tenant namespace."""

    id: str
    values: list[float]
    metadata: VectorMetadata


@dataclass(slots=True)
class VectorMatch:
    """A scored match returned by a vector index query."""

    id: str
    score: float
    metadata: VectorMetadata | None = None


@dataclass(slots=True)
class RetrievalResult:
    content: str
    score: float
    metadata: VectorMetadata


@dataclass(frozen=True, slots=True)
class SourceCitation:
    kb_id: str
    doc_id: str
    product: str


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(slots=True)
class TimelineEvent:
    """One entry of a case's append-only timeline."""

    case_id: str
    type: str
    level: SupportLevel
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_by: str = "ai"
    created_at: datetime | None = None


@dataclass(slots=True)
class CaseHistory:
    """What tier 1 already tried, handed to tier 2."""

    timeline: list[TimelineEvent] = field(default_factory=list)
    l1_summary: str | None = None
    steps_attempted: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    last_l1_response: str | None = None


@dataclass(slots=True)
class AgentContext:
    """Everything one turn needs; rebuilt and passed in by the caller each turn."""

    tenant_id: str
    case_id: str
    product: str
    category: str = "general"
    language: str = "en"
    severity: Severity = "medium"
    customer_name: str | None = None
    conversation_history: list[ChatMessage] = field(default_factory=list)
    playbook_state: PlaybookExecutionState | None = None
    failed_attempts: int = 0
    case_history: CaseHistory = field(default_factory=CaseHistory)
    visual_session_active: bool = False


@dataclass(slots=True)
class AgentAction:
    type: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentSource:
    doc_id: str
    content: str
    score: float


@dataclass(slots=True)
class PlaybookStepInfo:
    id: str
    title: str
    instruction: str


@dataclass(slots=True)
class DiagnosticStep:
    step: str
    instruction: str
    expected_outcome: str


@dataclass(slots=True)
class ResponseMetadata:
    model: str
    tokens_used: int = 0
    rag_chunks_used: int = 0
    processing_time_ms: float = 0.0


@dataclass(slots=True)
class AgentResponse:
    """The single output contract of both agent tiers."""

    message: str
    metadata: ResponseMetadata
    should_escalate: bool = False
    escalation_level: EscalationLevel | None = None
    escalation_reason: str | None = None
    action: AgentAction | None = None
    sources: list[AgentSource] | None = None
    playbook_step: PlaybookStepInfo | None = None
    playbook_result: PlaybookExecutionResult | None = None
    suggest_visual_session: bool = False
    diagnostic_steps: list[DiagnosticStep] | None = None
    playbook_state: PlaybookExecutionState | None = None
