"""Tenant-namespaced vector index interface and concrete adapters."""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

from helpdesk_ai.errors import NotConnectedError
from helpdesk_ai.ingest.embedder import cosine_similarity
from helpdesk_ai.types import VectorMatch, VectorMetadata, VectorRecord

logger = logging.getLogger(__name__)


class VectorIndex(Protocol):
    """Minimal vector index contract.

    Every call is scoped to a namespace (one per tenant); nothing stored in
    one namespace is visible from another. Filters are equality matches on
    metadata fields.
    """

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        """Insert or replace records by id."""

    def query(
        self,
        namespace: str,
        vector: list[float],
        *,
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_metadata: bool = True,
    ) -> list[VectorMatch]:
        """Return up to `top_k` matches, best first."""

    def delete_by_filter(self, namespace: str, filter: dict[str, Any]) -> None:
        """Delete every record whose metadata matches `filter`."""

    def delete_namespace(self, namespace: str) -> None:
        """Delete everything stored for one tenant."""


class InMemoryVectorIndex:
    """Deterministic exact-search index used for tests and local runs."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, VectorRecord]] = {}
        self._lock = threading.Lock()

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        with self._lock:
            store = self._namespaces.setdefault(namespace, {})
            for record in records:
                store[record.id] = record

    def query(
        self,
        namespace: str,
        vector: list[float],
        *,
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_metadata: bool = True,
    ) -> list[VectorMatch]:
        with self._lock:
            candidates = [
                record
                for record in self._namespaces.get(namespace, {}).values()
                if _metadata_match(record.metadata.as_dict(), filter)
            ]
        ranked = sorted(
            (
                VectorMatch(
                    id=record.id,
                    score=cosine_similarity(vector, record.values),
                    metadata=record.metadata if include_metadata else None,
                )
                for record in candidates
            ),
            key=lambda match: match.score,
            reverse=True,
        )
        return ranked[:top_k]

    def delete_by_filter(self, namespace: str, filter: dict[str, Any]) -> None:
        if not filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        with self._lock:
            store = self._namespaces.get(namespace, {})
            doomed = [
                record_id
                for record_id, record in store.items()
                if _metadata_match(record.metadata.as_dict(), filter)
            ]
            for record_id in doomed:
                del store[record_id]

    def delete_namespace(self, namespace: str) -> None:
        with self._lock:
            self._namespaces.pop(namespace, None)

    def count(self, namespace: str) -> int:
        with self._lock:
            return len(self._namespaces.get(namespace, {}))


class PineconeVectorIndex:
    """Pinecone adapter with the same contract as `InMemoryVectorIndex`.

    Requires the ``pinecone`` extra. `connect()` opens the index handle
    explicitly; calls made before it raise `NotConnectedError`.
    """

    def __init__(self, *, api_key: str | None, index_name: str, batch_size: int = 100) -> None:
        self._api_key = api_key
        self._index_name = index_name
        self._batch_size = batch_size
        self._index: Any | None = None

    def connect(self) -> "PineconeVectorIndex":
        if not self._api_key:
            raise NotConnectedError("PINECONE_API_KEY is not configured")
        try:
            from pinecone import Pinecone
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Pinecone support is not installed. Install helpdesk-ai[pinecone]."
            ) from exc
        self._index = Pinecone(api_key=self._api_key).Index(self._index_name)
        logger.info("Connected to Pinecone index %s", self._index_name)
        return self

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        index = self._require_index()
        for start in range(0, len(records), self._batch_size):
            batch = records[start : start + self._batch_size]
            index.upsert(
                vectors=[
                    {"id": record.id, "values": record.values, "metadata": record.metadata.as_dict()}
                    for record in batch
                ],
                namespace=namespace,
            )

    def query(
        self,
        namespace: str,
        vector: list[float],
        *,
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_metadata: bool = True,
    ) -> list[VectorMatch]:
        response = self._require_index().query(
            vector=vector,
            top_k=top_k,
            filter=_pinecone_filter(filter),
            include_metadata=include_metadata,
            namespace=namespace,
        )
        matches: list[VectorMatch] = []
        for match in getattr(response, "matches", None) or []:
            metadata = getattr(match, "metadata", None)
            matches.append(
                VectorMatch(
                    id=str(match.id),
                    score=float(match.score or 0.0),
                    metadata=VectorMetadata.from_dict(metadata) if metadata else None,
                )
            )
        return matches

    def delete_by_filter(self, namespace: str, filter: dict[str, Any]) -> None:
        if not filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        self._require_index().delete(filter=_pinecone_filter(filter), namespace=namespace)

    def delete_namespace(self, namespace: str) -> None:
        self._require_index().delete(delete_all=True, namespace=namespace)

    def _require_index(self) -> Any:
        if self._index is None:
            raise NotConnectedError("PineconeVectorIndex.connect() has not been called")
        return self._index


def _pinecone_filter(filter: dict[str, Any] | None) -> dict[str, Any] | None:
    if not filter:
        return None
    return {key: {"$eq": value} for key, value in filter.items()}


def _metadata_match(
    metadata: dict[str, Any], metadata_filter: dict[str, Any] | None
) -> bool:
    if not metadata_filter:
        return True
    for key, value in metadata_filter.items():
        if metadata.get(key) != value:
            return False
    return True
