"""Per-tenant bounds on concurrent upstream calls."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from helpdesk_ai.config import ConcurrencyConfig


class TenantLimiter:
    """Caps in-flight embedding/LLM calls per tenant.

    Each tenant gets its own bounded semaphore, created on first use. Calls for
    different tenants never wait on each other.
    """

    def __init__(self, config: ConcurrencyConfig | None = None) -> None:
        self.config = config or ConcurrencyConfig()
        self._semaphores: dict[str, threading.BoundedSemaphore] = {}
        self._lock = threading.Lock()

    def _semaphore(self, tenant_id: str) -> threading.BoundedSemaphore:
        with self._lock:
            semaphore = self._semaphores.get(tenant_id)
            if semaphore is None:
                semaphore = threading.BoundedSemaphore(self.config.max_concurrent_per_tenant)
                self._semaphores[tenant_id] = semaphore
            return semaphore

    @contextmanager
    def slot(self, tenant_id: str) -> Iterator[None]:
        semaphore = self._semaphore(tenant_id)
        with semaphore:
            yield
