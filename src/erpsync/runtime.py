"""Wires the store, ERP source, audit log, orchestrator and scheduler together."""
from dataclasses import dataclass
from typing import Optional

from erpsync.config import Settings, get_settings
from erpsync.erp.client import ErpClient
from erpsync.erp.source import ErpRemoteSource
from erpsync.scheduler.jobs import AutoSyncScheduler
from erpsync.store.local_store import LocalStore
from erpsync.sync.audit import AuditLog
from erpsync.sync.orchestrator import SyncOrchestrator


@dataclass
class SyncRuntime:
    store: LocalStore
    audit: AuditLog
    orchestrator: SyncOrchestrator
    scheduler: AutoSyncScheduler
    erp_client: Optional[ErpClient] = None

    async def aclose(self) -> None:
        """Cancel timers and close the ERP connection pool."""
        self.scheduler.shutdown()
        if self.erp_client is not None:
            await self.erp_client.aclose()


def build_runtime(
    engine,
    source=None,
    settings: Optional[Settings] = None,
) -> SyncRuntime:
    """
    Build a SyncRuntime on top of an engine.

    Args:
        engine: SQLAlchemy engine with tables created.
        source: RemoteSource to use. Defaults to the ERP gateway from settings.
        settings: Defaults to get_settings().
    """
    settings = settings or get_settings()
    erp_client = None
    if source is None:
        erp_client = ErpClient(
            settings.erp_base_url,
            token=settings.erp_token,
            timeout=settings.erp_timeout_seconds,
        )
        source = ErpRemoteSource(erp_client, page_size=settings.erp_page_size)

    store = LocalStore(engine, batch_size=settings.store_batch_size)
    audit = AuditLog(engine)
    orchestrator = SyncOrchestrator(
        source, store, audit, sync_all_concurrency=settings.sync_all_concurrency
    )
    return SyncRuntime(
        store=store,
        audit=audit,
        orchestrator=orchestrator,
        scheduler=AutoSyncScheduler(orchestrator),
        erp_client=erp_client,
    )
