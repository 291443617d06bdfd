"""Sync run results, the audit log table, and query/aggregate shapes."""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator, model_validator
from sqlmodel import Field, SQLModel

from erpsync.models.records import EntityType


class SyncLog(SQLModel, table=True):
    """Records each sync run for audit and statistics. Append-only."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(index=True)
    tenant_name: str = ""
    entity_type: str = Field(index=True)
    trigger: str = "manual"  # "manual", "scheduled"
    status: str = Field(index=True)  # "success", "error"
    total_remote: int = 0
    inserted: int = 0
    updated: int = 0
    soft_deleted: int = 0
    started_at: datetime = Field(index=True)
    finished_at: datetime
    duration_ms: int = 0
    error_kind: Optional[str] = None
    error_message: Optional[str] = None


class SyncRunResult(BaseModel):
    """Outcome of one fetch-diff-apply run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    tenant_id: int
    tenant_name: str = ""
    entity_type: EntityType
    trigger: Literal["manual", "scheduled"] = "manual"
    success: bool
    total_remote: int = 0
    inserted: int = 0
    updated: int = 0
    soft_deleted: int = 0
    started_at: datetime
    finished_at: datetime
    duration_ms: int = 0
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def status(self) -> str:
        return "success" if self.success else "error"

    def to_log(self) -> SyncLog:
        return SyncLog(
            tenant_id=self.tenant_id,
            tenant_name=self.tenant_name,
            entity_type=self.entity_type.value,
            trigger=self.trigger,
            status=self.status,
            total_remote=self.total_remote,
            inserted=self.inserted,
            updated=self.updated,
            soft_deleted=self.soft_deleted,
            started_at=self.started_at,
            finished_at=self.finished_at,
            duration_ms=self.duration_ms,
            error_kind=self.error_kind,
            error_message=self.error_message,
        )

    @classmethod
    def from_log(cls, log: SyncLog) -> "SyncRunResult":
        return cls(
            tenant_id=log.tenant_id,
            tenant_name=log.tenant_name,
            entity_type=EntityType(log.entity_type),
            trigger=log.trigger,
            success=log.status == "success",
            total_remote=log.total_remote,
            inserted=log.inserted,
            updated=log.updated,
            soft_deleted=log.soft_deleted,
            started_at=log.started_at,
            finished_at=log.finished_at,
            duration_ms=log.duration_ms,
            error_kind=log.error_kind,
            error_message=log.error_message,
        )


class LogFilter(BaseModel):
    """
    Recognized filters for audit log queries and statistics.

    Every field is optional. The time range is inclusive and applies to
    the run's start time. `limit`/`offset` only affect `query`.
    """

    tenant_id: Optional[int] = None
    entity_type: Optional[EntityType] = None
    status: Optional[Literal["success", "error"]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = PydanticField(default=100, ge=1, le=1000)
    offset: int = PydanticField(default=0, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Run timestamps are stored as naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def _check_range(self) -> "LogFilter":
        if self.start_time and self.end_time and self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self


class SyncStats(BaseModel):
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    total_records_processed: int = 0
    total_inserted: int = 0
    total_updated: int = 0
    total_soft_deleted: int = 0
    last_run_at: Optional[datetime] = None


class StoreStats(BaseModel):
    """Per-tenant summary of the local mirror for one entity type."""

    tenant_id: int
    entity_type: EntityType
    total_records: int = 0
    active_records: int = 0
    deleted_records: int = 0
    last_synced_at: Optional[datetime] = None
