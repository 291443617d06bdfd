"""SQLModel engine singleton."""
from sqlmodel import SQLModel, create_engine

from erpsync.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # Store and audit calls run in executor threads
            connect_args["check_same_thread"] = False
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        # Import all models so metadata is populated before create_all
        from erpsync.models.records import LocalRecord  # noqa
        from erpsync.models.sync import SyncLog  # noqa
        from erpsync.models.tenant import Tenant  # noqa
        SQLModel.metadata.create_all(_engine)
    return _engine
