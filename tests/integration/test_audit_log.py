"""Integration tests for AuditLog append, filtered queries, and stats."""
import logging
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, select

from erpsync.models.records import EntityType
from erpsync.models.sync import LogFilter, SyncLog, SyncRunResult
from erpsync.sync.audit import AuditLog

BASE = datetime(2025, 1, 15, 7, 0)


def make_result(tenant_id=1, entity_type=EntityType.PARTNER, success=True, minutes=0, **counts):
    started = BASE + timedelta(minutes=minutes)
    return SyncRunResult(
        tenant_id=tenant_id,
        tenant_name=f"Company {tenant_id}",
        entity_type=entity_type,
        success=success,
        total_remote=counts.get("total_remote", 10),
        inserted=counts.get("inserted", 1),
        updated=counts.get("updated", 2),
        soft_deleted=counts.get("soft_deleted", 3),
        started_at=started,
        finished_at=started + timedelta(seconds=5),
        duration_ms=5000,
        error_kind=None if success else "AdapterFetchError",
        error_message=None if success else "ERP unreachable",
    )


@pytest.fixture
def audit(engine):
    return AuditLog(engine)


@pytest.fixture
def populated(audit):
    audit.append(make_result(tenant_id=1, minutes=0))
    audit.append(make_result(tenant_id=1, minutes=10, success=False, total_remote=0,
                             inserted=0, updated=0, soft_deleted=0))
    audit.append(make_result(tenant_id=2, minutes=20))
    audit.append(make_result(tenant_id=1, entity_type=EntityType.TRADE_TYPE, minutes=30))
    return audit


class TestAppend:
    def test_append_persists_row(self, audit, engine):
        assert audit.append(make_result()) is True
        with Session(engine) as s:
            logs = s.exec(select(SyncLog)).all()
        assert len(logs) == 1
        assert logs[0].status == "success"
        assert logs[0].soft_deleted == 3

    def test_append_failure_is_swallowed_and_logged(self, audit, engine, caplog):
        SQLModel.metadata.drop_all(engine)
        with caplog.at_level(logging.ERROR, logger="erpsync.sync.audit"):
            assert audit.append(make_result()) is False
        assert "Could not record" in caplog.text


class TestQuery:
    def test_newest_first(self, populated):
        results = populated.query(LogFilter())
        assert [r.started_at for r in results] == sorted(
            [r.started_at for r in results], reverse=True
        )
        assert len(results) == 4

    def test_filter_by_tenant(self, populated):
        assert {r.tenant_id for r in populated.query(LogFilter(tenant_id=2))} == {2}

    def test_filter_by_entity_type(self, populated):
        results = populated.query(LogFilter(entity_type=EntityType.TRADE_TYPE))
        assert len(results) == 1
        assert results[0].entity_type is EntityType.TRADE_TYPE

    def test_filter_by_status(self, populated):
        failed = populated.query(LogFilter(status="error"))
        assert len(failed) == 1
        assert failed[0].error_kind == "AdapterFetchError"
        assert not failed[0].success

    def test_time_range_is_inclusive(self, populated):
        flt = LogFilter(start_time=BASE + timedelta(minutes=10), end_time=BASE + timedelta(minutes=20))
        assert len(populated.query(flt)) == 2

    def test_pagination(self, populated):
        page1 = populated.query(LogFilter(limit=2, offset=0))
        page2 = populated.query(LogFilter(limit=2, offset=2))
        assert len(page1) == 2
        assert len(page2) == 2
        assert {r.started_at for r in page1}.isdisjoint({r.started_at for r in page2})
        assert populated.query(LogFilter(limit=2, offset=4)) == []

    def test_count_ignores_pagination(self, populated):
        assert populated.count(LogFilter(tenant_id=1, limit=1)) == 3


class TestStats:
    def test_aggregates_over_filter(self, populated):
        stats = populated.stats(LogFilter(tenant_id=1, entity_type=EntityType.PARTNER))
        assert stats.total_runs == 2
        assert stats.successful_runs == 1
        assert stats.failed_runs == 1
        assert stats.total_records_processed == 10
        assert stats.total_inserted == 1
        assert stats.total_updated == 2
        assert stats.total_soft_deleted == 3
        assert stats.last_run_at == BASE + timedelta(minutes=10)

    def test_all_runs(self, populated):
        stats = populated.stats(LogFilter())
        assert stats.total_runs == 4
        assert stats.total_records_processed == 30
        assert stats.last_run_at == BASE + timedelta(minutes=30)

    def test_stats_ignore_limit(self, populated):
        assert populated.stats(LogFilter(limit=1)).total_runs == 4

    def test_empty_log(self, audit):
        stats = audit.stats(LogFilter())
        assert stats.total_runs == 0
        assert stats.total_records_processed == 0
        assert stats.last_run_at is None
