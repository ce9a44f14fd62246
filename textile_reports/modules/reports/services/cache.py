"""
Report cache for the report engine.

Entries are keyed by (tenant, kind, normalized window, normalized options,
tenant data version) and expire after a TTL. Concurrent identical requests
share one in-flight computation. Writes to any source table bump the
tenant's data version, which makes every cached report for the tenant
unreachable.
"""

import itertools
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional, Tuple
from uuid import UUID

from sqlalchemy import event

from textile_reports.core.config import settings
from textile_reports.modules.company.models import Company
from textile_reports.modules.invoices.models import Invoice, InvoiceLineItem
from textile_reports.modules.ledger.models import LedgerEntry
from textile_reports.modules.machines.models import Machine, MachineLog
from textile_reports.modules.products.models import Product, StockMovement
from textile_reports.modules.reports.exceptions import ReportCancelled
from textile_reports.modules.reports.schemas import ReportResult

logger = logging.getLogger(__name__)

TRACKED_MODELS = (
    LedgerEntry,
    StockMovement,
    MachineLog,
    Invoice,
    InvoiceLineItem,
    Product,
    Machine,
)

PENDING_TENANTS_KEY = "report_cache_pending_tenants"

# Poll interval while a coalesced request waits on another computation
WAIT_POLL_SECONDS = 0.05


@dataclass
class _Entry:
    result: ReportResult
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    invalidations: int = 0


class ReportCache:
    """Thread-safe TTL cache with in-flight request coalescing"""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.REPORT_CACHE_TTL_SECONDS
        self.max_entries = max_entries if max_entries is not None else settings.REPORT_CACHE_MAX_ENTRIES
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[tuple, _Entry]" = OrderedDict()
        self._inflight: Dict[tuple, Future] = {}
        self._versions: Dict[UUID, int] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def data_version(self, tenant_id: UUID) -> int:
        with self._lock:
            return self._versions.get(tenant_id, 0)

    def get_or_compute(
        self,
        tenant_id: UUID,
        base_key: Tuple[Hashable, ...],
        compute: Callable[[int], ReportResult],
        refresh: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReportResult:
        """
        Return a cached report or compute it.

        ``compute`` receives the tenant data version the computation runs
        under. Its result is stored only if that version is still current
        when it finishes. Failures are propagated and never stored.
        """
        while True:
            with self._lock:
                version = self._versions.get(tenant_id, 0)
                key = (tenant_id,) + tuple(base_key) + (version,)
                now = self._clock()

                pending = None
                if not refresh:
                    entry = self._entries.get(key)
                    if entry is not None:
                        if entry.expires_at > now:
                            self.stats.hits += 1
                            logger.debug(f"Report cache hit for {key}")
                            return entry.result.model_copy(update={"cached": True}, deep=True)
                        del self._entries[key]

                    pending = self._inflight.get(key)
                    if pending is not None:
                        self.stats.coalesced += 1
                        logger.debug(f"Coalescing onto in-flight report computation {key}")

                if pending is None:
                    self.stats.misses += 1
                    future: Future = Future()
                    leader = key not in self._inflight
                    if leader:
                        self._inflight[key] = future

            if pending is not None:
                try:
                    result = self._wait(pending, cancel_event)
                except ReportCancelled:
                    if cancel_event is not None and cancel_event.is_set():
                        raise
                    # The computation we joined was cancelled by its own caller
                    continue
                return result.model_copy(update={"cached": True}, deep=True)

            return self._compute(tenant_id, key, version, future, leader, compute)

    def _compute(self, tenant_id, key, version, future, leader, compute) -> ReportResult:
        try:
            result = compute(version)
        except BaseException as e:
            with self._lock:
                if leader and self._inflight.get(key) is future:
                    del self._inflight[key]
            future.set_exception(e)
            raise

        with self._lock:
            if self._versions.get(tenant_id, 0) == version:
                self._entries[key] = _Entry(result=result, expires_at=self._clock() + self.ttl_seconds)
                self._entries.move_to_end(key)
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug(f"Report cache evicted {evicted}")
            else:
                logger.debug(f"Discarding report computed under stale data version {version} for tenant {tenant_id}")
            if leader and self._inflight.get(key) is future:
                del self._inflight[key]
        future.set_result(result)
        return result

    def _wait(self, future: Future, cancel_event: Optional[threading.Event]) -> ReportResult:
        if cancel_event is None:
            return future.result()
        while True:
            if cancel_event.is_set():
                raise ReportCancelled("Report request cancelled while waiting for an identical request")
            try:
                return future.result(timeout=WAIT_POLL_SECONDS)
            except FutureTimeoutError:
                continue

    def invalidate_tenant(self, tenant_id: UUID) -> Tuple[int, int]:
        """
        Evict every entry for a tenant and bump its data version.

        Returns (evicted entry count, new data version).
        """
        with self._lock:
            version = self._versions.get(tenant_id, 0) + 1
            self._versions[tenant_id] = version
            stale = [key for key in self._entries if key[0] == tenant_id]
            for key in stale:
                del self._entries[key]
            self.stats.invalidations += 1
        logger.debug(f"Invalidated {len(stale)} cached report(s) for tenant {tenant_id}, data version {version}")
        return len(stale), version


def _tenant_of(obj) -> Optional[UUID]:
    if isinstance(obj, Company):
        return obj.id
    if isinstance(obj, TRACKED_MODELS):
        return obj.tenant_id
    return None


def register_cache_invalidation(cache: ReportCache, target) -> Callable[[], None]:
    """
    Invalidate cached reports after a committed write to a source table.

    ``target`` is a Session class or sessionmaker. Tenants touched by each
    flush are collected on the session and invalidated once the transaction
    commits; a rollback discards them. Returns a function that removes the
    listeners.
    """

    def collect_tenants(session, flush_context):
        pending = session.info.setdefault(PENDING_TENANTS_KEY, set())
        for obj in itertools.chain(session.new, session.dirty, session.deleted):
            tenant_id = _tenant_of(obj)
            if tenant_id is not None:
                pending.add(tenant_id)

    def invalidate_committed(session):
        for tenant_id in session.info.pop(PENDING_TENANTS_KEY, set()):
            cache.invalidate_tenant(tenant_id)

    def discard_pending(session):
        session.info.pop(PENDING_TENANTS_KEY, None)

    listeners = (
        ("after_flush", collect_tenants),
        ("after_commit", invalidate_committed),
        ("after_rollback", discard_pending),
    )
    for name, fn in listeners:
        event.listen(target, name, fn)

    def remove():
        for name, fn in listeners:
            if event.contains(target, name, fn):
                event.remove(target, name, fn)

    return remove
