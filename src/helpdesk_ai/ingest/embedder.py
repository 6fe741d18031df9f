"""Embedding providers, batched embedding and cosine similarity."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import nullcontext
from hashlib import blake2b
from math import sqrt

from langchain_openai import OpenAIEmbeddings

from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import EmbeddingConfig
from helpdesk_ai.errors import DimensionMismatchError, NotConnectedError, UpstreamError
from helpdesk_ai.obs.tracing import estimate_tokens
from helpdesk_ai.types import EmbeddingResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class Embedder(ABC):
    """Embedding provider interface used by ingest and retrieval components."""

    dimension: int

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts in one provider call."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedding without external model calls.

    Used for local runs and tests. Identical texts always map to identical unit
    vectors, and texts sharing words score higher under cosine similarity.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.strip(".,;:!?\"'()").encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbedder(Embedder):
    """OpenAI embeddings through langchain-openai.

    The client is built by `connect()`, not on first use, so a missing key or
    bad configuration surfaces at startup.
    """

    def __init__(self, config: EmbeddingConfig | None = None, *, api_key: str | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self.dimension = self.config.dimensions
        self._api_key = api_key
        self._client: OpenAIEmbeddings | None = None

    def connect(self) -> "OpenAIEmbedder":
        if not self._api_key:
            raise NotConnectedError("OPENAI_API_KEY is not configured")
        self._client = OpenAIEmbeddings(
            model=self.config.model,
            dimensions=self.config.dimensions,
            api_key=self._api_key,
            chunk_size=self.config.batch_size,
        )
        return self

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        client = self._require_client()
        try:
            return client.embed_documents(texts)
        except Exception as exc:
            raise UpstreamError(f"Embedding request failed: {exc}") from exc

    def embed_query(self, text: str) -> list[float]:
        client = self._require_client()
        try:
            return client.embed_query(text)
        except Exception as exc:
            raise UpstreamError(f"Embedding request failed: {exc}") from exc

    def _require_client(self) -> OpenAIEmbeddings:
        if self._client is None:
            raise NotConnectedError("OpenAIEmbedder.connect() has not been called")
        return self._client


class EmbeddingService:
    """Single and bulk embedding with provider-limit batching.

    Bulk calls are split into batches of at most `batch_size` texts (the
    provider accepts 100 per call) with `batch_delay_seconds` between batches.
    A failing batch aborts the whole call; nothing partial is returned.
    """

    def __init__(
        self,
        embedder: Embedder,
        config: EmbeddingConfig | None = None,
        *,
        limiter: TenantLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.embedder = embedder
        self.config = config or EmbeddingConfig()
        self._limiter = limiter
        self._sleep = sleep

    @property
    def dimension(self) -> int:
        return self.embedder.dimension

    def embed(self, text: str, *, tenant_id: str | None = None) -> list[float]:
        with self._slot(tenant_id):
            vector = self.embedder.embed_query(text)
        self._check_dimension(vector, 0)
        return vector

    def embed_batch(
        self,
        texts: list[str],
        on_progress: ProgressCallback | None = None,
        *,
        tenant_id: str | None = None,
    ) -> list[EmbeddingResult]:
        """Embed `texts` and return one result per input, in input order."""

        results: list[EmbeddingResult] = []
        total = len(texts)
        batch_size = self.config.batch_size

        for start in range(0, total, batch_size):
            batch = texts[start : start + batch_size]
            try:
                with self._slot(tenant_id):
                    vectors = self.embedder.embed_documents(batch)
            except Exception:
                logger.error(
                    "Embedding batch failed",
                    extra={"batch_start": start, "batch_size": len(batch)},
                )
                raise
            if len(vectors) != len(batch):
                raise UpstreamError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts"
                )

            for offset, (text, vector) in enumerate(zip(batch, vectors, strict=True)):
                self._check_dimension(vector, start + offset)
                results.append(EmbeddingResult(text=text, embedding=vector, index=start + offset))

            completed = min(start + batch_size, total)
            if on_progress is not None:
                on_progress(completed, total)
            if completed < total and self.config.batch_delay_seconds > 0:
                self._sleep(self.config.batch_delay_seconds)

        logger.info("Generated %d embeddings", len(results), extra={"count": len(results)})
        results.sort(key=lambda result: result.index)
        return results

    def is_within_context_limit(self, text: str) -> bool:
        return is_within_context_limit(text, self.config.max_input_tokens)

    def _check_dimension(self, vector: list[float], index: int) -> None:
        if len(vector) != self.embedder.dimension:
            raise UpstreamError(
                f"Embedding dimension mismatch for text {index}: "
                f"expected {self.embedder.dimension}, got {len(vector)}"
            )

    def _slot(self, tenant_id: str | None):
        if self._limiter is None or tenant_id is None:
            return nullcontext()
        return self._limiter.slot(tenant_id)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine of the angle between `a` and `b`; 0.0 when either is a zero vector."""

    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


def estimate_embedding_tokens(text: str) -> int:
    return estimate_tokens(text)


def is_within_context_limit(text: str, max_tokens: int = 8191) -> bool:
    return estimate_embedding_tokens(text) <= max_tokens
