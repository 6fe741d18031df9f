import logging
import threading

from helpdesk_ai.agent.diagnostics import generate_diagnostic_steps
from helpdesk_ai.concurrency import TenantLimiter
from helpdesk_ai.config import ConcurrencyConfig
from helpdesk_ai.obs.logging import StructuredFormatter
from helpdesk_ai.obs.tracing import CostModel, TraceStore, estimate_tokens


def _record(store: TraceStore, latency_ms: float, escalation_level: str | None = None) -> None:
    store.record(
        tenant_id="tenant-a",
        case_id="case-1",
        tier="L1",
        model="scripted",
        action=None,
        escalation_level=escalation_level,
        tokens_used=500,
        rag_chunks_used=2,
        latency_ms=latency_ms,
    )


def test_trace_summary_aggregates_turns() -> None:
    store = TraceStore(cost_model=CostModel(per_1k_tokens=0.02))
    assert store.summary()["total_turns"] == 0

    _record(store, 10.0)
    _record(store, 30.0, escalation_level="L2")

    summary = store.summary()
    assert summary["total_turns"] == 2
    assert summary["avg_latency_ms"] == 20.0
    assert summary["escalation_rate"] == 0.5
    assert summary["total_tokens"] == 1000
    assert summary["total_estimated_cost_usd"] == 0.02
    assert [trace.latency_ms for trace in store.list_recent(limit=1)] == [30.0]


def test_trace_store_is_bounded() -> None:
    store = TraceStore(capacity=3)
    for latency in range(5):
        _record(store, float(latency))

    assert [trace.latency_ms for trace in store.list_recent()] == [2.0, 3.0, 4.0]


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_structured_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord("helpdesk_ai.test", logging.INFO, __file__, 1, "Opened %s", ("case",), None)
    record.case_id = "case-1"

    line = StructuredFormatter().format(record)

    assert "level=INFO" in line
    assert "message=Opened case" in line
    assert "case_id=case-1" in line


def test_limiter_bounds_concurrency_per_tenant() -> None:
    limiter = TenantLimiter(ConcurrencyConfig(max_concurrent_per_tenant=1))
    entered = threading.Event()
    release = threading.Event()
    second_entered = threading.Event()

    def hold() -> None:
        with limiter.slot("tenant-a"):
            entered.set()
            release.wait(timeout=5)

    def contend() -> None:
        with limiter.slot("tenant-a"):
            second_entered.set()

    holder = threading.Thread(target=hold)
    holder.start()
    assert entered.wait(timeout=5)
    contender = threading.Thread(target=contend)
    contender.start()

    with limiter.slot("tenant-b"):
        pass
    assert not second_entered.wait(timeout=0.1)

    release.set()
    holder.join(timeout=5)
    contender.join(timeout=5)
    assert second_entered.is_set()


def test_diagnostic_plan_families() -> None:
    assert generate_diagnostic_steps("Network connection drops")[0].step == "Check Network Status"
    assert generate_diagnostic_steps("App crash on launch")[0].step == "Capture Error Details"
    assert generate_diagnostic_steps("Very slow dashboard")[0].step == "Check System Resources"
    assert generate_diagnostic_steps("Something odd")[0].step == "Document Current State"
    assert len(generate_diagnostic_steps("anything")) == 3
