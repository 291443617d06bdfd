"""
SyncOrchestrator: drives one fetch → diff → apply → record run end-to-end.

Flow for run_sync(tenant, entity_type):
  1. Resolve the target (UnknownTargetError if tenant or entity is unknown)
  2. Claim the (tenant, entity_type) run slot; a busy slot fails fast
  3. Fetch the remote snapshot through the RemoteSource
  4. Load the local snapshot and reconcile
  5. Apply the diff to the LocalStore
  6. Build the SyncRunResult and append it to the AuditLog
  7. Release the slot

Steps 3–5 never raise past this class: failures become a result with
success=False. Blocking store and audit calls run in the default thread
pool executor so unrelated pairs keep running.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set, Tuple

from erpsync.errors import (
    AdapterFetchError,
    AlreadyRunningError,
    StoreApplyError,
    UnknownTargetError,
)
from erpsync.models.records import EntityType
from erpsync.models.sync import SyncRunResult
from erpsync.models.tenant import Tenant
from erpsync.sync.audit import AuditLog
from erpsync.sync.diff import reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunDue:
    """Message sent by a scheduler timer when a pair is due for a run."""

    tenant_id: int
    entity_type: EntityType


def _coerce_entity_type(entity_type) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise UnknownTargetError(f"Unknown entity type: {entity_type!r}") from None


class SyncOrchestrator:
    """Runs syncs and enforces at most one in-flight run per (tenant, entity type)."""

    def __init__(self, source, store, audit: AuditLog, sync_all_concurrency: int = 4):
        """
        Args:
            source: RemoteSource implementation (ErpRemoteSource or a fake).
            store: LocalStore.
            audit: AuditLog that receives every completed run.
            sync_all_concurrency: Max simultaneous runs inside run_sync_all.
        """
        self.source = source
        self.store = store
        self.audit = audit
        self.sync_all_concurrency = max(1, sync_all_concurrency)
        self._in_flight: Set[Tuple[int, EntityType]] = set()

    async def _run(self, fn, *args):
        """Run a blocking store/audit call in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    def is_running(self, tenant_id: int, entity_type: EntityType) -> bool:
        return (tenant_id, EntityType(entity_type)) in self._in_flight

    async def resolve_target(self, tenant_id: int, entity_type) -> Tuple[Tenant, EntityType]:
        """
        Raises:
            UnknownTargetError: unknown entity type, or tenant missing/inactive.
        """
        entity_type = _coerce_entity_type(entity_type)
        tenant = await self._run(self.store.get_tenant, tenant_id)
        if tenant is None or not tenant.active:
            raise UnknownTargetError(f"Unknown or inactive tenant: {tenant_id}")
        return tenant, entity_type

    async def run_sync(
        self, tenant_id: int, entity_type, trigger: str = "manual"
    ) -> SyncRunResult:
        """
        Synchronize one (tenant, entity type) pair.

        Returns:
            The SyncRunResult, also appended to the audit log. A run rejected
            because another is in flight returns a failed result with
            error_kind "AlreadyRunningError" and is not logged. A database
            error while looking up the tenant returns a StoreApplyError result.

        Raises:
            UnknownTargetError: the only error that escapes.
        """
        entity_type = _coerce_entity_type(entity_type)
        started_at = datetime.utcnow()
        t0 = time.monotonic()
        try:
            tenant, entity_type = await self.resolve_target(tenant_id, entity_type)
        except StoreApplyError as exc:
            logger.error("Tenant lookup failed for %s %s: %s", tenant_id, entity_type.value, exc)
            result = self._failed(
                Tenant(id=tenant_id, name=""), entity_type, trigger, started_at, t0, exc
            )
            await self._run(self.audit.append, result)
            return result

        key = (tenant.id, entity_type)

        if key in self._in_flight:
            err = AlreadyRunningError(
                f"A {entity_type.value} sync for tenant {tenant.id} is already running"
            )
            logger.info("%s", err)
            return self._failed(tenant, entity_type, trigger, started_at, t0, err)

        # No await between the membership check and the add
        self._in_flight.add(key)
        try:
            result = await self._execute(tenant, entity_type, trigger, started_at)
            await self._run(self.audit.append, result)
            return result
        finally:
            self._in_flight.discard(key)

    async def run_sync_all(self, entity_type, trigger: str = "manual") -> List[SyncRunResult]:
        """Run every active tenant independently; results in tenant-id order."""
        entity_type = _coerce_entity_type(entity_type)
        try:
            tenants = await self._run(self.store.list_active_tenants)
        except StoreApplyError as exc:
            logger.error(
                "Sync-all %s aborted, tenant directory unavailable: %s", entity_type.value, exc
            )
            return []
        semaphore = asyncio.Semaphore(self.sync_all_concurrency)

        async def _one(tenant: Tenant) -> SyncRunResult:
            async with semaphore:
                try:
                    return await self.run_sync(tenant.id, entity_type, trigger=trigger)
                except UnknownTargetError as exc:
                    # Deactivated between listing and running
                    return self._failed(
                        tenant, entity_type, trigger, datetime.utcnow(), time.monotonic(), exc
                    )

        results = await asyncio.gather(*(_one(t) for t in tenants))
        failures = sum(1 for r in results if not r.success)
        logger.info(
            "Sync-all %s finished: %d tenants, %d failed",
            entity_type.value,
            len(results),
            failures,
        )
        return list(results)

    async def dispatch(self, event: RunDue) -> Optional[SyncRunResult]:
        """Entry point for scheduler timers. Never raises."""
        try:
            return await self.run_sync(event.tenant_id, event.entity_type, trigger="scheduled")
        except UnknownTargetError as exc:
            logger.warning("Scheduled run skipped: %s", exc)
            return None

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _execute(
        self, tenant: Tenant, entity_type: EntityType, trigger: str, started_at: datetime
    ) -> SyncRunResult:
        t0 = time.monotonic()
        total_remote = 0
        try:
            remote = await self.source.fetch(tenant.id, entity_type)
            total_remote = len(remote)
            local = await self._run(self.store.load_snapshot, tenant.id, entity_type)
            diff = reconcile(remote, local)

            if diff.is_empty:
                logger.info(
                    "Tenant %s %s already in sync (%d records)",
                    tenant.id,
                    entity_type.value,
                    total_remote,
                )
                return self._finished(tenant, entity_type, trigger, started_at, t0, total_remote)

            outcome = await self._run(
                self.store.apply_batch,
                tenant.id,
                entity_type,
                diff.inserts,
                diff.updates,
                diff.soft_deletes,
                datetime.utcnow(),
            )
            if not outcome.ok:
                raise outcome.to_error()

        except (AdapterFetchError, StoreApplyError) as exc:
            logger.error("Sync failed for tenant %s %s: %s", tenant.id, entity_type.value, exc)
            return self._failed(
                tenant, entity_type, trigger, started_at, t0, exc, total_remote=total_remote
            )
        except Exception as exc:
            logger.exception("Unexpected error syncing tenant %s %s", tenant.id, entity_type.value)
            return self._failed(
                tenant, entity_type, trigger, started_at, t0, exc, total_remote=total_remote
            )

        logger.info(
            "Synced tenant %s %s: %d remote, %d inserted, %d updated, %d soft-deleted",
            tenant.id,
            entity_type.value,
            total_remote,
            outcome.inserted,
            outcome.updated,
            outcome.soft_deleted,
        )
        return self._finished(
            tenant,
            entity_type,
            trigger,
            started_at,
            t0,
            total_remote,
            inserted=outcome.inserted,
            updated=outcome.updated,
            soft_deleted=outcome.soft_deleted,
        )

    def _finished(
        self,
        tenant: Tenant,
        entity_type: EntityType,
        trigger: str,
        started_at: datetime,
        t0: float,
        total_remote: int,
        *,
        inserted: int = 0,
        updated: int = 0,
        soft_deleted: int = 0,
    ) -> SyncRunResult:
        return SyncRunResult(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            entity_type=entity_type,
            trigger=trigger,
            success=True,
            total_remote=total_remote,
            inserted=inserted,
            updated=updated,
            soft_deleted=soft_deleted,
            started_at=started_at,
            finished_at=datetime.utcnow(),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    def _failed(
        self,
        tenant: Tenant,
        entity_type: EntityType,
        trigger: str,
        started_at: datetime,
        t0: float,
        exc: Exception,
        *,
        total_remote: int = 0,
    ) -> SyncRunResult:
        return SyncRunResult(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            entity_type=entity_type,
            trigger=trigger,
            success=False,
            total_remote=total_remote,
            inserted=getattr(exc, "inserted", 0),
            updated=getattr(exc, "updated", 0),
            soft_deleted=getattr(exc, "soft_deleted", 0),
            started_at=started_at,
            finished_at=datetime.utcnow(),
            duration_ms=int((time.monotonic() - t0) * 1000),
            error_kind=type(exc).__name__,
            error_message=str(exc) or type(exc).__name__,
        )
