"""
Main entrypoint.

Usage:
    python -m erpsync serve [--host 0.0.0.0] [--port 8000]   # API + scheduler
    python -m erpsync sync partner 42                         # one tenant now
    python -m erpsync sync-all trade_type                     # every active tenant
    python -m erpsync stats [--tenant 42] [--entity partner]  # audit statistics
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from erpsync.config import get_settings

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("erpsync.api.main:app", host=host, port=port)


async def _sync(entity_type: str, tenant_id: Optional[int] = None) -> int:
    from erpsync.db.engine import get_engine
    from erpsync.errors import UnknownTargetError
    from erpsync.runtime import build_runtime

    runtime = build_runtime(get_engine())
    try:
        if tenant_id is None:
            results = await runtime.orchestrator.run_sync_all(entity_type)
        else:
            results = [await runtime.orchestrator.run_sync(tenant_id, entity_type)]
    except UnknownTargetError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        await runtime.aclose()

    for r in results:
        if r.success:
            print(
                f"tenant {r.tenant_id} ({r.tenant_name}): {r.total_remote} records, "
                f"{r.inserted} inserted, {r.updated} updated, {r.soft_deleted} soft-deleted "
                f"in {r.duration_ms} ms"
            )
        else:
            print(f"tenant {r.tenant_id} ({r.tenant_name}): FAILED {r.error_kind}: {r.error_message}")
    return 0 if all(r.success for r in results) else 1


def _stats(tenant_id: Optional[int] = None, entity_type: Optional[str] = None) -> int:
    from erpsync.db.engine import get_engine
    from erpsync.models.sync import LogFilter
    from erpsync.sync.audit import AuditLog

    stats = AuditLog(get_engine()).stats(LogFilter(tenant_id=tenant_id, entity_type=entity_type))
    for key, value in stats.model_dump().items():
        print(f"{key}: {value}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="erpsync", description="ERP record synchronization")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and the auto-sync scheduler")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    sync = sub.add_parser("sync", help="Sync one tenant now")
    sync.add_argument("entity_type", choices=["partner", "trade_type"])
    sync.add_argument("tenant_id", type=int)

    sync_all = sub.add_parser("sync-all", help="Sync every active tenant now")
    sync_all.add_argument("entity_type", choices=["partner", "trade_type"])

    stats = sub.add_parser("stats", help="Print audit log statistics")
    stats.add_argument("--tenant", type=int, default=None)
    stats.add_argument("--entity", choices=["partner", "trade_type"], default=None)

    args = parser.parse_args(argv)

    if args.command == "serve":
        _serve(args.host, args.port)
        return 0
    if args.command == "sync":
        return asyncio.run(_sync(args.entity_type, args.tenant_id))
    if args.command == "sync-all":
        return asyncio.run(_sync(args.entity_type))
    return _stats(args.tenant, args.entity)


if __name__ == "__main__":
    sys.exit(main())
