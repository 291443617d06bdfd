"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from erpsync.api.routes import sync as sync_routes
from erpsync.runtime import SyncRuntime


def create_app(runtime: Optional[SyncRuntime] = None) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        runtime: Prebuilt runtime (tests). When None, one is built on
            startup from the configured database and ERP.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime
        if rt is None:
            from erpsync.db.engine import get_engine
            from erpsync.runtime import build_runtime

            rt = build_runtime(get_engine())
        app.state.runtime = rt
        rt.scheduler.start()
        try:
            yield
        finally:
            await rt.aclose()

    app = FastAPI(
        title="ERP Sync API",
        description="Multi-tenant ERP record synchronization",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
