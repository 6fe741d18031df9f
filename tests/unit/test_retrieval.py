import pytest

from helpdesk_ai.config import RetrievalConfig
from helpdesk_ai.errors import NotConnectedError
from helpdesk_ai.ingest.embedder import EmbeddingService, HashingEmbedder
from helpdesk_ai.retrieval.context import (
    CHUNK_DELIMITER,
    assemble_context,
    assemble_context_with_sources,
)
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.retrieval.vector_store import InMemoryVectorIndex, PineconeVectorIndex
from helpdesk_ai.obs.tracing import estimate_tokens
from helpdesk_ai.types import RetrievalResult, VectorMetadata, VectorRecord


def _metadata(doc_id: str, content: str, *, kb_id: str = "kb-1", product: str = "router") -> VectorMetadata:
    return VectorMetadata(
        tenant_id="tenant-a",
        kb_id=kb_id,
        doc_id=doc_id,
        product=product,
        chunk_index=0,
        content=content,
    )


def _result(doc_id: str, content: str, score: float, *, kb_id: str = "kb-1") -> RetrievalResult:
    return RetrievalResult(content=content, score=score, metadata=_metadata(doc_id, content, kb_id=kb_id))


def _indexed_retriever(texts: dict[str, tuple[str, str]], config: RetrievalConfig | None = None) -> Retriever:
    embeddings = EmbeddingService(HashingEmbedder())
    index = InMemoryVectorIndex()
    index.upsert(
        "tenant-a",
        [
            VectorRecord(
                id=f"kb-1:{doc_id}:0",
                values=embeddings.embed(content),
                metadata=_metadata(doc_id, content, product=product),
            )
            for doc_id, (content, product) in texts.items()
        ],
    )
    return Retriever(index, embeddings, config or RetrievalConfig(min_score=0.0))


def test_namespaces_isolate_tenants() -> None:
    index = InMemoryVectorIndex()
    record = VectorRecord(id="kb-1:doc:0", values=[1.0, 0.0], metadata=_metadata("doc", "text"))
    index.upsert("tenant-a", [record])

    assert index.query("tenant-b", [1.0, 0.0], top_k=5) == []
    assert [match.id for match in index.query("tenant-a", [1.0, 0.0], top_k=5)] == ["kb-1:doc:0"]

    index.delete_namespace("tenant-a")
    assert index.count("tenant-a") == 0


def test_delete_by_filter_requires_a_filter() -> None:
    index = InMemoryVectorIndex()
    index.upsert(
        "tenant-a",
        [
            VectorRecord(id="kb-1:a:0", values=[1.0], metadata=_metadata("a", "x")),
            VectorRecord(id="kb-2:b:0", values=[1.0], metadata=_metadata("b", "y", kb_id="kb-2")),
        ],
    )

    with pytest.raises(ValueError):
        index.delete_by_filter("tenant-a", {})
    index.delete_by_filter("tenant-a", {"kb_id": "kb-1"})

    assert [match.id for match in index.query("tenant-a", [1.0], top_k=5)] == ["kb-2:b:0"]


def test_pinecone_index_requires_connect() -> None:
    index = PineconeVectorIndex(api_key=None, index_name="kb")

    with pytest.raises(NotConnectedError):
        index.query("tenant-a", [1.0], top_k=1)
    with pytest.raises(NotConnectedError):
        index.connect()


def test_retriever_ranks_filters_and_cuts_by_score() -> None:
    retriever = _indexed_retriever(
        {
            "wifi": ("reset the wifi router password", "router"),
            "vpn": ("install the vpn client on windows", "vpn"),
            "printer": ("printer paper jam in tray two", "router"),
        }
    )

    results = retriever.retrieve("tenant-a", "reset the wifi router password", top_k=3)
    assert results[0].metadata.doc_id == "wifi"
    assert results[0].score == pytest.approx(1.0)
    assert all(left.score >= right.score for left, right in zip(results, results[1:]))

    filtered = retriever.retrieve("tenant-a", "install the vpn client", product="router")
    assert {result.metadata.doc_id for result in filtered} <= {"wifi", "printer"}

    strict = retriever.retrieve("tenant-a", "reset the wifi router password", min_score=0.99)
    assert [result.metadata.doc_id for result in strict] == ["wifi"]

    assert retriever.retrieve("tenant-a", "   ") == []
    assert retriever.retrieve("tenant-b", "reset the wifi router password") == []


def test_relevance_probe_uses_strict_threshold() -> None:
    retriever = _indexed_retriever(
        {"wifi": ("reset the wifi router password", "router")},
        RetrievalConfig(min_score=0.0, relevance_probe_min_score=0.9),
    )

    assert retriever.has_relevant_content("tenant-a", "reset the wifi router password")
    assert not retriever.has_relevant_content("tenant-a", "billing invoice refund")


def test_context_is_score_ordered_and_within_budget() -> None:
    chunks = [
        _result("low", "low relevance text", 0.2),
        _result("high", "high relevance text", 0.9),
    ]

    context = assemble_context(chunks, max_tokens=100)

    assert context == f"high relevance text{CHUNK_DELIMITER}low relevance text"
    assert assemble_context([], 100) == ""
    assert assemble_context(chunks, 0) == ""


def test_context_truncates_overflowing_chunk_only_when_prefix_is_long() -> None:
    first = _result("a", "a" * 200, 0.9)
    long_tail = _result("b", "b" * 1000, 0.8)

    context = assemble_context([first, long_tail], max_tokens=100)

    assert context.startswith("a" * 200)
    assert context.endswith("...")
    assert estimate_tokens(context) <= 100

    short_room = assemble_context([_result("a", "a" * 360, 0.9), long_tail], max_tokens=100)
    assert short_room == "a" * 360


def test_context_with_sources_numbers_documents_once() -> None:
    chunks = [
        _result("doc-1", "first chunk", 0.9),
        _result("doc-2", "second chunk", 0.8),
        _result("doc-1", "third chunk", 0.7),
    ]

    cited = assemble_context_with_sources(chunks, max_tokens=500)

    assert cited.context == (
        "[Source 1]\nfirst chunk\n[Source 2]\nsecond chunk\n[Source 1]\nthird chunk"
    )
    assert [source.doc_id for source in cited.sources] == ["doc-1", "doc-2"]
