from __future__ import annotations

import copy
from typing import Any

import pytest

from helpdesk_ai.config import ChunkingConfig, RetrievalConfig
from helpdesk_ai.ingest.chunker import TextChunker
from helpdesk_ai.ingest.embedder import EmbeddingService, HashingEmbedder
from helpdesk_ai.ingest.parser import ParserRegistry
from helpdesk_ai.ingest.pipeline import IngestPipeline
from helpdesk_ai.retrieval.retriever import Retriever
from helpdesk_ai.retrieval.vector_store import InMemoryVectorIndex

from helpers import WIFI_PLAYBOOK


@pytest.fixture
def playbook_data() -> dict[str, Any]:
    return copy.deepcopy(WIFI_PLAYBOOK)


@pytest.fixture
def embeddings() -> EmbeddingService:
    return EmbeddingService(HashingEmbedder())


@pytest.fixture
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def pipeline(embeddings: EmbeddingService, index: InMemoryVectorIndex) -> IngestPipeline:
    config = ChunkingConfig(max_tokens=60, min_tokens=5, overlap_tokens=10)
    return IngestPipeline(ParserRegistry(), TextChunker(config), embeddings, index)


@pytest.fixture
def retriever(embeddings: EmbeddingService, index: InMemoryVectorIndex) -> Retriever:
    # Bag-of-words vectors score far below neural embeddings.
    return Retriever(index, embeddings, RetrievalConfig(min_score=0.2))
