"""Turn tracing, token estimates and cost accounting."""

from __future__ import annotations

import math
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

CHARS_PER_TOKEN = 4


@dataclass(slots=True)
class TurnTrace:
    trace_id: str
    timestamp_utc: str
    tenant_id: str
    case_id: str
    tier: str
    model: str
    action: str | None
    escalation_level: str | None
    tokens_used: int
    rag_chunks_used: int
    estimated_cost_usd: float
    latency_ms: float


@dataclass(slots=True)
class CostModel:
    """Simple blended token pricing model (USD per 1K tokens)."""

    per_1k_tokens: float = 0.01

    def estimate_cost(self, tokens: int) -> float:
        return (tokens / 1000.0) * self.per_1k_tokens


class TraceStore:
    """Bounded in-memory trace storage for API-level observability."""

    def __init__(self, *, cost_model: CostModel | None = None, capacity: int = 1000) -> None:
        self._records: deque[TurnTrace] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._cost_model = cost_model or CostModel()

    def record(
        self,
        *,
        tenant_id: str,
        case_id: str,
        tier: str,
        model: str,
        action: str | None,
        escalation_level: str | None,
        tokens_used: int,
        rag_chunks_used: int,
        latency_ms: float,
    ) -> TurnTrace:
        trace = TurnTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            tenant_id=tenant_id,
            case_id=case_id,
            tier=tier,
            model=model,
            action=action,
            escalation_level=escalation_level,
            tokens_used=tokens_used,
            rag_chunks_used=rag_chunks_used,
            estimated_cost_usd=self._cost_model.estimate_cost(tokens_used),
            latency_ms=latency_ms,
        )
        with self._lock:
            self._records.append(trace)
        return trace

    def list_recent(self, limit: int = 20) -> list[TurnTrace]:
        with self._lock:
            records = list(self._records)
        return records[-limit:] if limit > 0 else []

    def summary(self) -> dict[str, float | int]:
        """Aggregate core metrics for dashboard display."""
        with self._lock:
            records = list(self._records)
        total = len(records)
        if total == 0:
            return {
                "total_turns": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "escalation_rate": 0.0,
                "total_tokens": 0,
                "total_estimated_cost_usd": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        escalated = sum(1 for record in records if record.escalation_level)
        return {
            "total_turns": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "escalation_rate": escalated / total,
            "total_tokens": sum(record.tokens_used for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Simple context timer used by the agents."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

    def lap_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)
