"""Tests for DB models and result/filter shapes."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from erpsync.models.records import EntityType, LocalRecord, dump_payload
from erpsync.models.sync import LogFilter, SyncLog, SyncRunResult
from erpsync.models.tenant import Tenant


def make_result(**overrides) -> SyncRunResult:
    fields = dict(
        tenant_id=1,
        tenant_name="Company 1",
        entity_type=EntityType.PARTNER,
        success=True,
        total_remote=3,
        inserted=1,
        updated=1,
        soft_deleted=1,
        started_at=datetime(2025, 1, 15, 7, 0),
        finished_at=datetime(2025, 1, 15, 7, 1),
        duration_ms=60000,
    )
    fields.update(overrides)
    return SyncRunResult(**fields)


class TestLocalRecord:
    def test_defaults(self):
        row = LocalRecord(tenant_id=1, entity_type="partner", external_id="10")
        assert row.active is True
        assert row.payload == {}

    def test_payload_roundtrip(self):
        row = LocalRecord(
            tenant_id=1,
            entity_type="partner",
            external_id="10",
            payload_json=dump_payload({"name": "ACME", "tax_id": None}),
        )
        assert row.payload == {"name": "ACME", "tax_id": None}

    def test_dump_payload_is_order_independent(self):
        assert dump_payload({"b": 1, "a": 2}) == dump_payload({"a": 2, "b": 1})

    def test_unique_per_tenant_entity_and_external_id(self, test_session: Session):
        test_session.add(LocalRecord(tenant_id=1, entity_type="partner", external_id="10"))
        test_session.add(LocalRecord(tenant_id=2, entity_type="partner", external_id="10"))
        test_session.add(LocalRecord(tenant_id=1, entity_type="trade_type", external_id="10"))
        test_session.commit()

        test_session.add(LocalRecord(tenant_id=1, entity_type="partner", external_id="10"))
        with pytest.raises(IntegrityError):
            test_session.commit()


class TestTenant:
    def test_persists_with_upstream_id(self, test_session: Session):
        test_session.add(Tenant(id=42, name="ACME", tax_id="12.345.678/0001-90"))
        test_session.commit()
        tenant = test_session.exec(select(Tenant).where(Tenant.id == 42)).first()
        assert tenant.name == "ACME"
        assert tenant.active is True


class TestSyncRunResult:
    def test_is_immutable(self):
        result = make_result()
        with pytest.raises(ValidationError):
            result.inserted = 99

    def test_status(self):
        assert make_result().status == "success"
        assert make_result(success=False).status == "error"

    def test_log_roundtrip(self, test_session: Session):
        result = make_result(success=False, error_kind="AdapterFetchError", error_message="down")
        test_session.add(result.to_log())
        test_session.commit()

        log = test_session.exec(select(SyncLog)).first()
        assert log.status == "error"
        assert log.entity_type == "partner"
        assert SyncRunResult.from_log(log).model_dump() == result.model_dump()


class TestLogFilter:
    def test_defaults(self):
        flt = LogFilter()
        assert flt.limit == 100
        assert flt.offset == 0
        assert flt.tenant_id is None

    def test_rejects_inverted_range(self):
        with pytest.raises(ValidationError):
            LogFilter(start_time=datetime(2025, 2, 1), end_time=datetime(2025, 1, 1))

    def test_aware_bounds_normalised_to_naive_utc(self):
        flt = LogFilter(
            start_time=datetime(2025, 1, 1, 3, 0, tzinfo=timezone(timedelta(hours=3))),
            end_time=datetime(2025, 2, 1),
        )
        assert flt.start_time == datetime(2025, 1, 1, 0, 0)
        assert flt.start_time.tzinfo is None

    def test_rejects_inverted_mixed_range(self):
        with pytest.raises(ValidationError):
            LogFilter(
                start_time=datetime(2025, 2, 1, tzinfo=timezone.utc),
                end_time=datetime(2025, 1, 1),
            )

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_rejects_out_of_range_limit(self, limit):
        with pytest.raises(ValidationError):
            LogFilter(limit=limit)

    def test_rejects_negative_offset(self):
        with pytest.raises(ValidationError):
            LogFilter(offset=-1)

    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            LogFilter(status="running")

    def test_entity_type_from_string(self):
        assert LogFilter(entity_type="trade_type").entity_type is EntityType.TRADE_TYPE
