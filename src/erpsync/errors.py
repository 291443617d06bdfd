"""
Error taxonomy for the sync engine.

Everything except UnknownTargetError is turned into a failed SyncRunResult
at the orchestrator boundary; LogAppendError never leaves the audit log.
"""


class SyncError(RuntimeError):
    """Base class for sync engine errors."""


class AdapterFetchError(SyncError):
    """Raised when the ERP is unreachable or rejects a fetch."""


class StoreApplyError(SyncError):
    """Raised when the local store fails while loading or applying a batch.

    Already-applied records keep their new state; the counts say how far
    the batch got before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        inserted: int = 0,
        updated: int = 0,
        soft_deleted: int = 0,
    ):
        super().__init__(message)
        self.inserted = inserted
        self.updated = updated
        self.soft_deleted = soft_deleted


class AlreadyRunningError(SyncError):
    """Raised when a run for the same (tenant, entity type) is in flight."""


class UnknownTargetError(SyncError):
    """Raised for an unknown or inactive tenant, or an unknown entity type."""


class LogAppendError(SyncError):
    """Raised internally when a run result could not be written to the audit log."""
