"""Tenant-scoped top-K retrieval over the vector index."""

from __future__ import annotations

import logging
from typing import Any

from helpdesk_ai.config import RetrievalConfig
from helpdesk_ai.ingest.embedder import EmbeddingService
from helpdesk_ai.retrieval.vector_store import VectorIndex
from helpdesk_ai.types import RetrievalResult, VectorMetadata

logger = logging.getLogger(__name__)


class Retriever:
    """Embeds a query and fetches the best chunks from the tenant's namespace.

    The index is expected to return matches roughly best-first, but results are
    still cut at `min_score` and re-sorted here; callers rely on both.
    """

    def __init__(
        self,
        index: VectorIndex,
        embeddings: EmbeddingService,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.index = index
        self.embeddings = embeddings
        self.config = config or RetrievalConfig()

    def retrieve(
        self,
        tenant_id: str,
        query: str,
        *,
        top_k: int | None = None,
        min_score: float | None = None,
        product: str | None = None,
        kb_id: str | None = None,
        language: str | None = None,
    ) -> list[RetrievalResult]:
        if not query.strip():
            return []

        final_k = top_k or self.config.top_k
        threshold = self.config.min_score if min_score is None else min_score
        metadata_filter: dict[str, Any] = {}
        if product:
            metadata_filter["product"] = product
        if kb_id:
            metadata_filter["kb_id"] = kb_id
        if language:
            metadata_filter["language"] = language

        query_vector = self.embeddings.embed(query, tenant_id=tenant_id)
        matches = self.index.query(
            tenant_id,
            query_vector,
            top_k=final_k,
            filter=metadata_filter or None,
            include_metadata=True,
        )

        results: list[RetrievalResult] = []
        for match in matches:
            score = max(0.0, min(1.0, match.score))
            if score < threshold:
                continue
            metadata = match.metadata or VectorMetadata(
                tenant_id=tenant_id, kb_id="", doc_id="", product="", chunk_index=0, content=""
            )
            results.append(RetrievalResult(content=metadata.content, score=score, metadata=metadata))

        results.sort(key=lambda result: result.score, reverse=True)
        logger.debug(
            "Retrieved %d of %d matches above %.2f",
            len(results),
            len(matches),
            threshold,
            extra={"tenant_id": tenant_id},
        )
        return results

    def has_relevant_content(
        self,
        tenant_id: str,
        query: str,
        *,
        product: str | None = None,
        kb_id: str | None = None,
        language: str | None = None,
    ) -> bool:
        """Cheap probe: is there at least one strongly matching chunk?"""

        results = self.retrieve(
            tenant_id,
            query,
            top_k=1,
            min_score=self.config.relevance_probe_min_score,
            product=product,
            kb_id=kb_id,
            language=language,
        )
        return bool(results)
