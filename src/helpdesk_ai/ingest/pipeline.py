"""End-to-end ingest pipeline: parse -> chunk -> embed -> upsert."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from helpdesk_ai.ingest.chunker import TextChunker
from helpdesk_ai.ingest.embedder import EmbeddingService, ProgressCallback
from helpdesk_ai.ingest.parser import ParserRegistry
from helpdesk_ai.retrieval.vector_store import VectorIndex
from helpdesk_ai.types import ParsedDocument, VectorMetadata, VectorRecord

logger = logging.getLogger(__name__)


def vector_id(kb_id: str, doc_id: str, chunk_index: int) -> str:
    return f"{kb_id}:{doc_id}:{chunk_index}"


@dataclass(slots=True)
class IngestResult:
    kb_id: str
    doc_id: str
    chunk_count: int
    vector_ids: list[str] = field(default_factory=list)


class IngestPipeline:
    """Coordinates parser/chunker/embedder/vector index stages.

    Documents are stored in the tenant's namespace. Re-ingesting a document
    replaces all of its previous vectors, including chunks that no longer
    exist in the new version.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        chunker: TextChunker,
        embeddings: EmbeddingService,
        index: VectorIndex,
    ) -> None:
        self._parser_registry = parser_registry
        self._chunker = chunker
        self._embeddings = embeddings
        self._index = index

    def ingest_document(
        self,
        tenant_id: str,
        kb_id: str,
        document: ParsedDocument,
        *,
        product: str,
        language: str = "en",
        on_progress: ProgressCallback | None = None,
    ) -> IngestResult:
        chunks = self._chunker.chunk(document.text)
        previous = {"kb_id": kb_id, "doc_id": document.doc_id}
        if not chunks:
            self._index.delete_by_filter(tenant_id, previous)
            logger.warning("Document %s produced no chunks", document.doc_id, extra={"kb_id": kb_id})
            return IngestResult(kb_id=kb_id, doc_id=document.doc_id, chunk_count=0)

        for chunk in chunks:
            if not self._embeddings.is_within_context_limit(chunk.content):
                logger.warning(
                    "Chunk %d of %s exceeds the embedding input limit",
                    chunk.index,
                    document.doc_id,
                    extra={"kb_id": kb_id},
                )

        embedded = self._embeddings.embed_batch(
            [chunk.content for chunk in chunks], on_progress, tenant_id=tenant_id
        )
        records = [
            VectorRecord(
                id=vector_id(kb_id, document.doc_id, chunk.index),
                values=result.embedding,
                metadata=VectorMetadata(
                    tenant_id=tenant_id,
                    kb_id=kb_id,
                    doc_id=document.doc_id,
                    product=product,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    language=language,
                ),
            )
            for chunk, result in zip(chunks, embedded, strict=True)
        ]
        # Old vectors stay in place until the replacement is fully embedded.
        self._index.delete_by_filter(tenant_id, previous)
        self._index.upsert(tenant_id, records)
        logger.info(
            "Ingested %s into %s",
            document.doc_id,
            kb_id,
            extra={"tenant_id": tenant_id, "chunks": len(records)},
        )
        return IngestResult(
            kb_id=kb_id,
            doc_id=document.doc_id,
            chunk_count=len(records),
            vector_ids=[record.id for record in records],
        )

    def ingest_text(
        self,
        tenant_id: str,
        kb_id: str,
        content: str,
        *,
        doc_id: str,
        product: str,
        format: str = "text",
        language: str = "en",
        metadata: dict[str, Any] | None = None,
    ) -> IngestResult:
        parser = self._parser_registry.for_format(format)
        document = parser.parse_text(content, doc_id=doc_id, metadata=metadata)
        return self.ingest_document(tenant_id, kb_id, document, product=product, language=language)

    def ingest_path(
        self,
        tenant_id: str,
        kb_id: str,
        path: str | Path,
        *,
        product: str,
        doc_id: str | None = None,
        language: str = "en",
    ) -> IngestResult:
        document = self._parser_registry.parse_path(path, doc_id=doc_id)
        return self.ingest_document(tenant_id, kb_id, document, product=product, language=language)

    def delete_document(self, tenant_id: str, kb_id: str, doc_id: str) -> None:
        self._index.delete_by_filter(tenant_id, {"kb_id": kb_id, "doc_id": doc_id})
        logger.info("Deleted document %s from %s", doc_id, kb_id, extra={"tenant_id": tenant_id})

    def delete_knowledge_base(self, tenant_id: str, kb_id: str) -> None:
        self._index.delete_by_filter(tenant_id, {"kb_id": kb_id})
        logger.info("Deleted knowledge base %s", kb_id, extra={"tenant_id": tenant_id})
