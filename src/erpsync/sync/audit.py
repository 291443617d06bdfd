"""
AuditLog: append-only history of sync runs, with filtered queries and stats.

append() is best-effort. A failure to record a run is logged as a
LogAppendError and never reaches the caller of run_sync.
"""
import logging
from typing import List

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erpsync.errors import LogAppendError
from erpsync.models.sync import LogFilter, SyncLog, SyncRunResult, SyncStats

logger = logging.getLogger(__name__)


def _apply_filter(query, flt: LogFilter):
    if flt.tenant_id is not None:
        query = query.where(SyncLog.tenant_id == flt.tenant_id)
    if flt.entity_type is not None:
        query = query.where(SyncLog.entity_type == flt.entity_type.value)
    if flt.status is not None:
        query = query.where(SyncLog.status == flt.status)
    if flt.start_time is not None:
        query = query.where(SyncLog.started_at >= flt.start_time)
    if flt.end_time is not None:
        query = query.where(SyncLog.started_at <= flt.end_time)
    return query


class AuditLog:
    """Owns the SyncLog table. Rows are only ever inserted."""

    def __init__(self, engine):
        self.engine = engine

    def append(self, result: SyncRunResult) -> bool:
        """Record one run. Returns False (and logs) if the write failed."""
        try:
            with Session(self.engine) as s:
                s.add(result.to_log())
                s.commit()
        except SQLAlchemyError as exc:
            err = LogAppendError(
                f"Could not record {result.status} run for tenant "
                f"{result.tenant_id} {result.entity_type.value}: {exc}"
            )
            logger.error("%s", err)
            return False
        return True

    def query(self, flt: LogFilter) -> List[SyncRunResult]:
        """Matching runs, newest first, paginated by limit/offset."""
        query = _apply_filter(select(SyncLog), flt)
        query = (
            query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
            .offset(flt.offset)
            .limit(flt.limit)
        )
        with Session(self.engine) as s:
            return [SyncRunResult.from_log(log) for log in s.exec(query)]

    def count(self, flt: LogFilter) -> int:
        query = _apply_filter(select(func.count(SyncLog.id)), flt)
        with Session(self.engine) as s:
            return s.exec(query).one()

    def stats(self, flt: LogFilter) -> SyncStats:
        """Aggregate over every run matching the filter. Ignores limit/offset."""
        query = _apply_filter(
            select(
                func.count(SyncLog.id),
                func.coalesce(func.sum(case((SyncLog.status == "success", 1), else_=0)), 0),
                func.coalesce(func.sum(SyncLog.total_remote), 0),
                func.coalesce(func.sum(SyncLog.inserted), 0),
                func.coalesce(func.sum(SyncLog.updated), 0),
                func.coalesce(func.sum(SyncLog.soft_deleted), 0),
                func.max(SyncLog.started_at),
            ),
            flt,
        )
        with Session(self.engine) as s:
            total, ok, processed, inserted, updated, deleted, last_run = s.exec(query).one()

        return SyncStats(
            total_runs=total,
            successful_runs=ok,
            failed_runs=total - ok,
            total_records_processed=processed,
            total_inserted=inserted,
            total_updated=updated,
            total_soft_deleted=deleted,
            last_run_at=last_run,
        )
