"""
APScheduler-backed auto-sync for (tenant, entity type) pairs.

Each enabled pair owns exactly one interval job, id "autosync:<tenant>:<entity>".
A job fire sends a RunDue message to the orchestrator and keeps its
interval whatever the outcome; only disable_auto_sync or shutdown stop it.

Configs live in memory only and start disabled with the entity type's
default interval.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from erpsync.config import get_settings
from erpsync.models.records import EntityType
from erpsync.sync.orchestrator import RunDue

logger = logging.getLogger(__name__)

# Intervals offered to users; any positive number of minutes is accepted
RECOGNIZED_INTERVALS = (15, 30, 60, 120, 180, 360, 720, 1440)

Pair = Tuple[int, EntityType]


@dataclass
class AutoSyncConfig:
    tenant_id: int
    entity_type: EntityType
    enabled: bool = False
    interval_minutes: int = 30
    next_run_at: Optional[datetime] = None


def default_interval(entity_type: EntityType) -> int:
    settings = get_settings()
    if entity_type == EntityType.TRADE_TYPE:
        return settings.trade_type_sync_interval
    return settings.partner_sync_interval


def job_id(tenant_id: int, entity_type: EntityType) -> str:
    return f"autosync:{tenant_id}:{entity_type.value}"


def _validate_interval(interval_minutes) -> int:
    if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
        raise ValueError(f"interval_minutes must be an integer, got {interval_minutes!r}")
    if interval_minutes <= 0:
        raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")
    return interval_minutes


class AutoSyncScheduler:
    """
    Owns every AutoSyncConfig and its timer.

    Usage:
        scheduler = AutoSyncScheduler(orchestrator)
        scheduler.start()                                   # inside a running loop
        scheduler.enable_auto_sync(1, EntityType.PARTNER, 30)
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        orchestrator,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Args:
            orchestrator: SyncOrchestrator; receives RunDue via dispatch().
            scheduler: APScheduler instance. Defaults to a UTC AsyncIOScheduler.
            clock: Returns naive UTC "now". Injected in tests.
        """
        self.orchestrator = orchestrator
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._clock = clock
        self._configs: Dict[Pair, AutoSyncConfig] = {}
        self._jobs: Dict[Pair, str] = {}

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Auto-sync scheduler started (%d timers armed)", len(self._jobs))

    def shutdown(self) -> None:
        """Cancel every live timer and stop the scheduler. In-flight runs finish."""
        for pair in list(self._jobs):
            self._cancel(pair)
        for config in self._configs.values():
            config.enabled = False
            config.next_run_at = None
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Auto-sync scheduler stopped")

    # ─── Config access ────────────────────────────────────────────────────────

    def _config(self, tenant_id: int, entity_type) -> AutoSyncConfig:
        entity_type = EntityType(entity_type)
        pair = (tenant_id, entity_type)
        if pair not in self._configs:
            self._configs[pair] = AutoSyncConfig(
                tenant_id=tenant_id,
                entity_type=entity_type,
                interval_minutes=default_interval(entity_type),
            )
        return self._configs[pair]

    def get_config(self, tenant_id: int, entity_type) -> AutoSyncConfig:
        """Snapshot of the pair's config, creating the default on first request."""
        return replace(self._config(tenant_id, entity_type))

    def list_configs(self) -> List[AutoSyncConfig]:
        return [
            replace(c)
            for _, c in sorted(self._configs.items(), key=lambda kv: (kv[0][0], kv[0][1].value))
        ]

    def pending_timers(self, tenant_id: int, entity_type) -> int:
        """Number of scheduled jobs for the pair; never more than one."""
        wanted = job_id(tenant_id, EntityType(entity_type))
        return sum(1 for job in self.scheduler.get_jobs() if job.id == wanted)

    # ─── State transitions ────────────────────────────────────────────────────

    def enable_auto_sync(
        self, tenant_id: int, entity_type, interval_minutes: Optional[int] = None
    ) -> AutoSyncConfig:
        """Disabled → Armed (or re-arm when already enabled)."""
        config = self._config(tenant_id, entity_type)
        if interval_minutes is not None:
            config.interval_minutes = _validate_interval(interval_minutes)
        config.enabled = True
        self._arm(config)
        logger.info(
            "Auto-sync enabled for tenant %s %s every %d min",
            tenant_id,
            config.entity_type.value,
            config.interval_minutes,
        )
        return replace(config)

    def disable_auto_sync(self, tenant_id: int, entity_type) -> AutoSyncConfig:
        """Armed → Disabled. An in-flight run is not interrupted."""
        config = self._config(tenant_id, entity_type)
        self._cancel((config.tenant_id, config.entity_type))
        config.enabled = False
        config.next_run_at = None
        logger.info("Auto-sync disabled for tenant %s %s", tenant_id, config.entity_type.value)
        return replace(config)

    def set_interval(self, tenant_id: int, entity_type, interval_minutes: int) -> AutoSyncConfig:
        """Change the interval; an armed timer is replaced and measured from now."""
        config = self._config(tenant_id, entity_type)
        config.interval_minutes = _validate_interval(interval_minutes)
        if config.enabled:
            self._arm(config)
        return replace(config)

    # ─── Timers ───────────────────────────────────────────────────────────────

    def _arm(self, config: AutoSyncConfig) -> None:
        pair = (config.tenant_id, config.entity_type)
        self._cancel(pair)

        interval = timedelta(minutes=config.interval_minutes)
        first_fire = self._clock() + interval
        job = self.scheduler.add_job(
            self._fire,
            trigger=IntervalTrigger(
                minutes=config.interval_minutes, start_date=first_fire, timezone="UTC"
            ),
            id=job_id(*pair),
            kwargs={"tenant_id": config.tenant_id, "entity_type": config.entity_type},
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        self._jobs[pair] = job.id
        config.next_run_at = first_fire

    def _cancel(self, pair: Pair) -> None:
        existing = self._jobs.pop(pair, None)
        if existing is None:
            return
        try:
            self.scheduler.remove_job(existing)
        except JobLookupError:
            logger.warning("Timer %s was already gone", existing)

    async def _fire(self, tenant_id: int, entity_type: EntityType) -> None:
        """Job body: dispatch a RunDue and move next_run_at forward."""
        config = self._configs.get((tenant_id, entity_type))
        if config is not None and config.enabled:
            config.next_run_at = self._clock() + timedelta(minutes=config.interval_minutes)

        try:
            result = await self.orchestrator.dispatch(RunDue(tenant_id, entity_type))
        except Exception:
            # Keep the timer alive whatever happens inside the run
            logger.exception("Scheduled sync crashed for tenant %s %s", tenant_id, entity_type.value)
            return

        if result is not None and not result.success:
            logger.warning(
                "Scheduled sync failed for tenant %s %s: %s",
                tenant_id,
                entity_type.value,
                result.error_message,
            )
