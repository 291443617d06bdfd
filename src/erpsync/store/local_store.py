"""
LocalStore: persisted mirror of ERP records plus the tenant directory.

All methods are blocking (SQLAlchemy sessions). The orchestrator calls them
through the event loop's thread pool so one tenant's writes never stall
another tenant's run or the scheduler.

apply_batch applies inserts, then updates, then soft-deletes in chunks of
`batch_size`, committing each chunk. A failing chunk is rolled back on its
own; earlier chunks stay applied and the outcome reports how far it got.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erpsync.errors import StoreApplyError
from erpsync.models.records import EntityType, LocalRecord, RemoteRecord, dump_payload
from erpsync.models.sync import StoreStats
from erpsync.models.tenant import Tenant

logger = logging.getLogger(__name__)

INSERT, UPDATE, SOFT_DELETE = "insert", "update", "soft_delete"


@dataclass
class BatchOutcome:
    """Counts actually written by apply_batch, plus the error that stopped it."""

    inserted: int = 0
    updated: int = 0
    soft_deleted: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_error(self) -> StoreApplyError:
        return StoreApplyError(
            self.error or "",
            inserted=self.inserted,
            updated=self.updated,
            soft_deleted=self.soft_deleted,
        )


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class LocalStore:
    """Reads and writes LocalRecord rows; reads Tenant rows."""

    def __init__(self, engine, batch_size: int = 200):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            batch_size: Records committed per chunk in apply_batch.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.engine = engine
        self.batch_size = batch_size

    # ─── Tenant directory ─────────────────────────────────────────────────────

    def get_tenant(self, tenant_id: int) -> Optional[Tenant]:
        try:
            with Session(self.engine) as s:
                return s.get(Tenant, tenant_id)
        except SQLAlchemyError as exc:
            raise StoreApplyError(f"Failed to load tenant {tenant_id}: {exc}") from exc

    def list_active_tenants(self) -> List[Tenant]:
        try:
            with Session(self.engine) as s:
                return list(
                    s.exec(select(Tenant).where(Tenant.active == True).order_by(Tenant.id))  # noqa: E712
                )
        except SQLAlchemyError as exc:
            raise StoreApplyError(f"Failed to list active tenants: {exc}") from exc

    # ─── Snapshots ────────────────────────────────────────────────────────────

    def load_snapshot(self, tenant_id: int, entity_type: EntityType) -> List[LocalRecord]:
        """Return every local row for the pair, active or not."""
        try:
            with Session(self.engine) as s:
                return list(
                    s.exec(
                        select(LocalRecord)
                        .where(LocalRecord.tenant_id == tenant_id)
                        .where(LocalRecord.entity_type == entity_type.value)
                        .order_by(LocalRecord.external_id)
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreApplyError(f"Failed to load local snapshot: {exc}") from exc

    def apply_batch(
        self,
        tenant_id: int,
        entity_type: EntityType,
        inserts: Sequence[RemoteRecord],
        updates: Sequence[RemoteRecord],
        soft_deletes: Sequence[LocalRecord],
        synced_at: Optional[datetime] = None,
    ) -> BatchOutcome:
        """
        Write a reconciliation diff. Every touched row gets `last_synced_at`.

        Returns:
            BatchOutcome. `ok` is False when a chunk failed; the counts then
            cover only the chunks committed before it.
        """
        synced_at = synced_at or datetime.utcnow()
        operations: List[Tuple[str, object]] = (
            [(INSERT, r) for r in inserts]
            + [(UPDATE, r) for r in updates]
            + [(SOFT_DELETE, r) for r in soft_deletes]
        )
        outcome = BatchOutcome()

        for chunk in _chunks(operations, self.batch_size):
            try:
                counts = self._apply_chunk(tenant_id, entity_type, chunk, synced_at)
            except SQLAlchemyError as exc:
                outcome.error = f"Local store write failed: {exc}"
                logger.warning(
                    "Partial apply for tenant %s %s: %d inserted, %d updated, "
                    "%d soft-deleted before failure",
                    tenant_id,
                    entity_type.value,
                    outcome.inserted,
                    outcome.updated,
                    outcome.soft_deleted,
                )
                return outcome
            outcome.inserted += counts[INSERT]
            outcome.updated += counts[UPDATE]
            outcome.soft_deleted += counts[SOFT_DELETE]

        return outcome

    def _apply_chunk(
        self,
        tenant_id: int,
        entity_type: EntityType,
        chunk: Sequence[Tuple[str, object]],
        synced_at: datetime,
    ) -> Dict[str, int]:
        counts = {INSERT: 0, UPDATE: 0, SOFT_DELETE: 0}
        update_ids = [item.external_id for op, item in chunk if op == UPDATE]

        with Session(self.engine) as s:
            existing: Dict[str, LocalRecord] = {}
            if update_ids:
                existing = {
                    row.external_id: row
                    for row in s.exec(
                        select(LocalRecord)
                        .where(LocalRecord.tenant_id == tenant_id)
                        .where(LocalRecord.entity_type == entity_type.value)
                        .where(LocalRecord.external_id.in_(update_ids))
                    )
                }

            for op, item in chunk:
                if op == INSERT:
                    s.add(
                        LocalRecord(
                            tenant_id=tenant_id,
                            entity_type=entity_type.value,
                            external_id=item.external_id,
                            payload_json=dump_payload(item.payload),
                            active=True,
                            created_at=synced_at,
                            last_synced_at=synced_at,
                        )
                    )
                elif op == UPDATE:
                    row = existing.get(item.external_id)
                    if row is None:
                        # Vanished since the snapshot was taken; recreate it
                        row = LocalRecord(
                            tenant_id=tenant_id,
                            entity_type=entity_type.value,
                            external_id=item.external_id,
                            created_at=synced_at,
                        )
                    row.payload_json = dump_payload(item.payload)
                    row.active = True
                    row.last_synced_at = synced_at
                    s.add(row)
                else:
                    row = s.get(LocalRecord, item.id)
                    if row is None:
                        continue
                    row.active = False
                    row.last_synced_at = synced_at
                    s.add(row)
                counts[op] += 1

            # An uncommitted chunk is rolled back when the session closes
            s.commit()
        return counts

    # ─── Statistics ───────────────────────────────────────────────────────────

    def snapshot_stats(
        self, entity_type: EntityType, tenant_id: Optional[int] = None
    ) -> List[StoreStats]:
        """Per-tenant record counts and last sync time for one entity type."""
        query = (
            select(
                LocalRecord.tenant_id,
                func.count(LocalRecord.id),
                func.sum(case((LocalRecord.active == True, 1), else_=0)),  # noqa: E712
                func.max(LocalRecord.last_synced_at),
            )
            .where(LocalRecord.entity_type == entity_type.value)
            .group_by(LocalRecord.tenant_id)
            .order_by(LocalRecord.tenant_id)
        )
        if tenant_id is not None:
            query = query.where(LocalRecord.tenant_id == tenant_id)

        with Session(self.engine) as s:
            rows = s.exec(query).all()

        return [
            StoreStats(
                tenant_id=tid,
                entity_type=entity_type,
                total_records=total,
                active_records=active or 0,
                deleted_records=total - (active or 0),
                last_synced_at=last_synced,
            )
            for tid, total, active, last_synced in rows
        ]
