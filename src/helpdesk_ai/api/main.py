"""FastAPI entrypoint for ingest, retrieval, agent turns and observability.

Run with ``uvicorn helpdesk_ai.api.main:create_app --factory``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from helpdesk_ai.agent.base import SupportAgent
from helpdesk_ai.agent.fallback import DeterministicChatModel
from helpdesk_ai.agent.llm import ChatModel, LangChainChatModel
from helpdesk_ai.agent.prompts import generate_greeting
from helpdesk_ai.agent.tier1 import Tier1Agent
from helpdesk_ai.agent.tier2 import Tier2Agent
from helpdesk_ai.collaborators import (
    InMemoryCaseStore,
    InMemoryVisualSessionService,
    LoggingNotificationSink,
)
from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import ChunkingConfig, RetrievalConfig, Settings, get_settings
from helpdesk_ai.errors import InvalidTurnError, PlaybookValidationError, UpstreamError
from helpdesk_ai.ingest.chunker import TextChunker
from helpdesk_ai.ingest.embedder import EmbeddingService, HashingEmbedder, OpenAIEmbedder
from helpdesk_ai.ingest.parser import ParserRegistry
from helpdesk_ai.ingest.pipeline import IngestPipeline
from helpdesk_ai.obs.logging import configure_logging
from helpdesk_ai.obs.tracing import TraceStore
from helpdesk_ai.playbooks.models import PlaybookExecutionState
from helpdesk_ai.playbooks.registry import PlaybookRegistry
from helpdesk_ai.retrieval.context import assemble_context, assemble_context_with_sources
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.retrieval.vector_store import InMemoryVectorIndex, PineconeVectorIndex, VectorIndex
from helpdesk_ai.service import SupportDesk, TurnRequest
from helpdesk_ai.types import AgentContext, CaseHistory, ChatMessage, Severity

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Components:
    """Everything the HTTP layer talks to, wired once per app."""

    desk: SupportDesk
    pipeline: IngestPipeline
    retriever: Retriever
    playbooks: PlaybookRegistry
    trace_store: TraceStore
    llm_configured: bool = False
    playbook_dir: str | None = None


def build_components(settings: Settings | None = None) -> Components:
    """Wire production components from settings, falling back to offline parts.

    Without ``OPENAI_API_KEY`` the deterministic chat model and the hashing
    embedder are used; without ``PINECONE_API_KEY`` the in-memory index is.
    """

    settings = settings or get_settings()
    limiter = TenantLimiter()
    trace_store = TraceStore()

    chat_model: ChatModel
    if settings.OPENAI_API_KEY:
        chat_model = LangChainChatModel(model=settings.OPENAI_MODEL, api_key=settings.OPENAI_API_KEY).connect()
        embedder = OpenAIEmbedder(settings.embedding_config(), api_key=settings.OPENAI_API_KEY).connect()
        embeddings = EmbeddingService(embedder, settings.embedding_config(), limiter=limiter)
        retrieval_config = RetrievalConfig()
    else:
        chat_model = DeterministicChatModel()
        embeddings = EmbeddingService(HashingEmbedder(), limiter=limiter)
        # Bag-of-words similarity runs far below neural embedding scores.
        retrieval_config = RetrievalConfig(min_score=0.2, relevance_probe_min_score=0.3)

    index: VectorIndex
    if settings.PINECONE_API_KEY:
        index = PineconeVectorIndex(
            api_key=settings.PINECONE_API_KEY, index_name=settings.PINECONE_INDEX
        ).connect()
    else:
        index = InMemoryVectorIndex()

    playbooks = PlaybookRegistry()
    if settings.PLAYBOOK_DIR:
        playbooks.load_directory(settings.PLAYBOOK_DIR)

    retriever = Retriever(index, embeddings, retrieval_config)
    pipeline = IngestPipeline(ParserRegistry(), TextChunker(ChunkingConfig()), embeddings, index)
    desk = SupportDesk(
        tier1=Tier1Agent(
            chat_model=chat_model,
            retriever=retriever,
            playbooks=playbooks,
            limiter=limiter,
            trace_store=trace_store,
        ),
        tier2=Tier2Agent(
            chat_model=chat_model,
            retriever=retriever,
            limiter=limiter,
            trace_store=trace_store,
        ),
        cases=InMemoryCaseStore(),
        visual_sessions=InMemoryVisualSessionService(settings.VISUAL_SESSION_BASE_URL),
        notifiers=[LoggingNotificationSink()],
    )
    return Components(
        desk=desk,
        pipeline=pipeline,
        retriever=retriever,
        playbooks=playbooks,
        trace_store=trace_store,
        llm_configured=bool(settings.OPENAI_API_KEY),
        playbook_dir=settings.PLAYBOOK_DIR,
    )


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestRequest(_ApiModel):
    tenant_id: str = Field(min_length=1)
    kb_id: str = Field(min_length=1)
    doc_id: str = Field(min_length=1)
    product: str = Field(min_length=1)
    content: str
    format: str = "text"
    language: str = "en"
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrieveRequest(_ApiModel):
    tenant_id: str = Field(min_length=1)
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=50)
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)
    product: str | None = None
    kb_id: str | None = None
    language: str | None = None
    max_tokens: int = Field(default=2000, ge=1)
    with_sources: bool = False


class AgentTurnRequest(_ApiModel):
    """Stateless agent call: the caller supplies the whole case context."""

    tenant_id: str = ""
    case_id: str = ""
    product: str = ""
    message: str = ""
    category: str = "general"
    language: str = "en"
    severity: Severity = "medium"
    customer_name: str | None = None
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    playbook_state: PlaybookExecutionState | None = None
    failed_attempts: int = Field(default=0, ge=0)
    is_new_case: bool = False
    case_history: CaseHistory | None = None
    visual_session_active: bool = False

    def to_context(self) -> AgentContext:
        return AgentContext(
            tenant_id=self.tenant_id,
            case_id=self.case_id,
            product=self.product,
            category=self.category or "general",
            language=self.language,
            severity=self.severity,
            customer_name=self.customer_name,
            conversation_history=list(self.conversation_history),
            playbook_state=self.playbook_state,
            failed_attempts=self.failed_attempts,
            case_history=self.case_history or CaseHistory(),
            visual_session_active=self.visual_session_active,
        )


class ReloadRequest(_ApiModel):
    playbooks: list[dict[str, Any]] | None = None


def create_app(components: Components | None = None) -> FastAPI:
    if components is None:
        settings = get_settings()
        configure_logging(settings.LOG_LEVEL)
        components = build_components(settings)
    c = components

    app = FastAPI(title="Helpdesk AI", version="0.1.0")

    def _agent_turn(agent: SupportAgent, request: AgentTurnRequest) -> dict[str, Any]:
        missing = [
            name for name in ("tenant_id", "case_id", "product") if not getattr(request, name).strip()
        ]
        if missing:
            raise HTTPException(
                status_code=400, detail=f"Missing required fields: {', '.join(missing)}"
            )
        if request.is_new_case:
            return {
                "message": generate_greeting(request.language, request.customer_name),
                "should_escalate": False,
                "metadata": {
                    "model": "greeting",
                    "tokens_used": 0,
                    "rag_chunks_used": 0,
                    "processing_time_ms": 0.0,
                },
            }
        if not request.message.strip():
            raise HTTPException(status_code=400, detail="Message is required for non-new cases")
        try:
            response = agent.respond(request.to_context(), request.message)
        except UpstreamError as exc:
            logger.error("Agent turn failed", extra={"case_id": request.case_id})
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return asdict(response)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": c.llm_configured,
            "chat_mode": "langchain" if c.llm_configured else "deterministic",
            "playbooks": len(c.playbooks),
            "trace_count": len(c.trace_store.list_recent(limit=1000)),
        }

    @app.post("/ingest")
    def ingest(request: IngestRequest) -> dict[str, Any]:
        try:
            result = c.pipeline.ingest_text(
                request.tenant_id,
                request.kb_id,
                request.content,
                doc_id=request.doc_id,
                product=request.product,
                format=request.format,
                language=request.language,
                metadata=request.metadata,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except UpstreamError as exc:
            logger.error("Ingest failed", extra={"kb_id": request.kb_id, "doc_id": request.doc_id})
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return asdict(result)

    @app.delete("/knowledge-bases/{kb_id}")
    def delete_knowledge_base(kb_id: str, tenant_id: str = Query(min_length=1)) -> dict[str, Any]:
        c.pipeline.delete_knowledge_base(tenant_id, kb_id)
        return {"deleted": True, "kb_id": kb_id}

    @app.delete("/knowledge-bases/{kb_id}/documents/{doc_id}")
    def delete_document(
        kb_id: str, doc_id: str, tenant_id: str = Query(min_length=1)
    ) -> dict[str, Any]:
        c.pipeline.delete_document(tenant_id, kb_id, doc_id)
        return {"deleted": True, "kb_id": kb_id, "doc_id": doc_id}

    @app.post("/retrieve")
    def retrieve(request: RetrieveRequest) -> dict[str, Any]:
        try:
            results = c.retriever.retrieve(
                request.tenant_id,
                request.query,
                top_k=request.top_k,
                min_score=request.min_score,
                product=request.product,
                kb_id=request.kb_id,
                language=request.language,
            )
        except UpstreamError as exc:
            logger.error("Retrieval failed", extra={"tenant_id": request.tenant_id})
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        payload: dict[str, Any] = {
            "items": [
                {
                    "content": result.content,
                    "score": result.score,
                    "metadata": result.metadata.as_dict(),
                }
                for result in results
            ]
        }
        if request.with_sources:
            cited = assemble_context_with_sources(results, request.max_tokens)
            payload["context"] = cited.context
            payload["sources"] = [asdict(source) for source in cited.sources]
        else:
            payload["context"] = assemble_context(results, request.max_tokens)
        return payload

    @app.post("/ai/l1")
    def tier1_turn(request: AgentTurnRequest) -> dict[str, Any]:
        return _agent_turn(c.desk.tier1, request)

    @app.post("/ai/l2")
    def tier2_turn(request: AgentTurnRequest) -> dict[str, Any]:
        return _agent_turn(c.desk.tier2, request)

    @app.post("/turns")
    def turn(request: TurnRequest) -> dict[str, Any]:
        try:
            result = c.desk.handle_turn(request)
        except InvalidTurnError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return asdict(result)

    @app.post("/playbooks/reload")
    def reload_playbooks(request: ReloadRequest | None = None) -> dict[str, Any]:
        try:
            if request is not None and request.playbooks is not None:
                count = c.playbooks.reload(request.playbooks)
            else:
                if not c.playbook_dir:
                    raise HTTPException(status_code=400, detail="PLAYBOOK_DIR is not configured")
                count = c.playbooks.load_directory(c.playbook_dir)
        except PlaybookValidationError as exc:
            raise HTTPException(
                status_code=400,
                detail={
                    "message": str(exc),
                    "errors": [asdict(issue) for issue in exc.result.errors],
                },
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"loaded": count}

    @app.get("/playbooks")
    def list_playbooks() -> dict[str, Any]:
        return {
            "items": [
                {
                    "id": playbook.id,
                    "name": playbook.name,
                    "product": playbook.metadata.product if playbook.metadata else None,
                    "category": playbook.metadata.category if playbook.metadata else None,
                    "steps": len(playbook.steps),
                }
                for playbook in sorted(c.playbooks.all(), key=lambda item: item.id)
            ]
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in c.trace_store.list_recent(limit=limit)]}

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return c.trace_store.summary()

    return app
