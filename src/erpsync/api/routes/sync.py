"""Sync trigger, audit log, and schedule-control routes."""
from dataclasses import asdict
from datetime import datetime
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from erpsync.errors import UnknownTargetError
from erpsync.models.records import EntityType
from erpsync.models.sync import LogFilter, StoreStats, SyncRunResult, SyncStats
from erpsync.runtime import SyncRuntime
from erpsync.scheduler.jobs import RECOGNIZED_INTERVALS

router = APIRouter()


def get_runtime(request: Request) -> SyncRuntime:
    return request.app.state.runtime


class LogPage(BaseModel):
    logs: List[SyncRunResult]
    total: int
    limit: int
    offset: int


class ScheduleUpdate(BaseModel):
    enabled: Optional[bool] = None
    interval_minutes: Optional[int] = None


class ScheduleResponse(BaseModel):
    tenant_id: int
    entity_type: EntityType
    enabled: bool
    interval_minutes: int
    next_run_at: Optional[datetime]


# ─── Triggers ─────────────────────────────────────────────────────────────────

@router.post("/{entity_type}/tenants/{tenant_id}/run", response_model=SyncRunResult)
async def run_one(
    entity_type: EntityType,
    tenant_id: int,
    runtime: SyncRuntime = Depends(get_runtime),
):
    """Sync one tenant now and return the run result."""
    try:
        result = await runtime.orchestrator.run_sync(tenant_id, entity_type)
    except UnknownTargetError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if result.error_kind == "AlreadyRunningError":
        raise HTTPException(status_code=409, detail=result.error_message)
    return result


@router.post("/{entity_type}/run-all", response_model=List[SyncRunResult])
async def run_all(entity_type: EntityType, runtime: SyncRuntime = Depends(get_runtime)):
    """Sync every active tenant; one result per tenant, in tenant-id order."""
    return await runtime.orchestrator.run_sync_all(entity_type)


# ─── Audit log ────────────────────────────────────────────────────────────────

@router.get("/logs", response_model=None)
def sync_logs(
    tenant_id: Optional[int] = None,
    entity_type: Optional[EntityType] = None,
    status: Optional[Literal["success", "error"]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
    action: Optional[Literal["stats"]] = None,
    runtime: SyncRuntime = Depends(get_runtime),
) -> Union[SyncStats, LogPage]:
    """Filtered run history, or aggregate statistics with `action=stats`."""
    try:
        flt = LogFilter(
            tenant_id=tenant_id,
            entity_type=entity_type,
            status=status,
            start_time=start,
            end_time=end,
            limit=limit,
            offset=offset,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    if action == "stats":
        return runtime.audit.stats(flt)
    return LogPage(
        logs=runtime.audit.query(flt),
        total=runtime.audit.count(flt),
        limit=flt.limit,
        offset=flt.offset,
    )


@router.get("/{entity_type}/records/stats", response_model=List[StoreStats])
def record_stats(
    entity_type: EntityType,
    tenant_id: Optional[int] = None,
    runtime: SyncRuntime = Depends(get_runtime),
):
    """Per-tenant counts of active and soft-deleted local records."""
    return runtime.store.snapshot_stats(entity_type, tenant_id=tenant_id)


# ─── Schedule control ─────────────────────────────────────────────────────────

@router.get("/intervals")
def recognized_intervals():
    return {"intervals": list(RECOGNIZED_INTERVALS)}


@router.get("/schedules", response_model=List[ScheduleResponse])
def list_schedules(runtime: SyncRuntime = Depends(get_runtime)):
    return [ScheduleResponse(**asdict(c)) for c in runtime.scheduler.list_configs()]


@router.get("/{entity_type}/tenants/{tenant_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    entity_type: EntityType,
    tenant_id: int,
    runtime: SyncRuntime = Depends(get_runtime),
):
    await _ensure_target(runtime, tenant_id, entity_type)
    return ScheduleResponse(**asdict(runtime.scheduler.get_config(tenant_id, entity_type)))


@router.put("/{entity_type}/tenants/{tenant_id}/schedule", response_model=ScheduleResponse)
async def update_schedule(
    entity_type: EntityType,
    tenant_id: int,
    update: ScheduleUpdate,
    runtime: SyncRuntime = Depends(get_runtime),
):
    """Enable, disable, or change the interval of a tenant's auto-sync."""
    await _ensure_target(runtime, tenant_id, entity_type)
    scheduler = runtime.scheduler
    try:
        if update.enabled is True:
            config = scheduler.enable_auto_sync(tenant_id, entity_type, update.interval_minutes)
        elif update.enabled is False:
            if update.interval_minutes is not None:
                scheduler.set_interval(tenant_id, entity_type, update.interval_minutes)
            config = scheduler.disable_auto_sync(tenant_id, entity_type)
        elif update.interval_minutes is not None:
            config = scheduler.set_interval(tenant_id, entity_type, update.interval_minutes)
        else:
            config = scheduler.get_config(tenant_id, entity_type)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return ScheduleResponse(**asdict(config))


async def _ensure_target(runtime: SyncRuntime, tenant_id: int, entity_type: EntityType) -> None:
    try:
        await runtime.orchestrator.resolve_target(tenant_id, entity_type)
    except UnknownTargetError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
