"""
Diff and reconciliation between a remote and a local snapshot.

Pure functions only. Given every remote record R and every local row L for
one (tenant, entity type), each external id ends up in exactly one bucket:

  insert      in R, not in L
  update      in R and L, payload differs or the local row is inactive
  soft_delete in L (active), not in R
  unchanged   in R and L, same payload, local row active
  dormant     in L (already inactive), not in R

Running reconcile again after the diff has been applied yields only
`unchanged` and `dormant` ids.
"""
import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from erpsync.models.records import LocalRecord, RemoteRecord, dump_payload


@dataclass(frozen=True)
class RecordDiff:
    inserts: List[RemoteRecord] = field(default_factory=list)
    updates: List[RemoteRecord] = field(default_factory=list)
    soft_deletes: List[LocalRecord] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    dormant: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when applying this diff would write nothing."""
        return not (self.inserts or self.updates or self.soft_deletes)


def _index_remote(remote: Iterable[RemoteRecord]) -> Dict[str, RemoteRecord]:
    # Duplicate ids in one snapshot: the last occurrence wins
    return {r.external_id: r for r in remote}


def _same_payload(row: LocalRecord, record: RemoteRecord) -> bool:
    # Round-trip the remote side so both are compared as stored JSON values
    return row.payload == json.loads(dump_payload(record.payload))


def reconcile(remote: Iterable[RemoteRecord], local: Iterable[LocalRecord]) -> RecordDiff:
    """
    Compute insert/update/soft-delete sets for one (tenant, entity type).

    Args:
        remote: Full remote snapshot.
        local: Full local snapshot, active and inactive rows alike.

    Returns:
        A RecordDiff whose lists are sorted by external id.
    """
    remote_by_id = _index_remote(remote)
    local_by_id = {row.external_id: row for row in local}

    inserts, updates, unchanged = [], [], []
    for external_id in sorted(remote_by_id):
        record = remote_by_id[external_id]
        row = local_by_id.get(external_id)
        if row is None:
            inserts.append(record)
        elif not row.active or not _same_payload(row, record):
            updates.append(record)
        else:
            unchanged.append(external_id)

    soft_deletes, dormant = [], []
    for external_id in sorted(set(local_by_id) - set(remote_by_id)):
        row = local_by_id[external_id]
        if row.active:
            soft_deletes.append(row)
        else:
            dormant.append(external_id)

    return RecordDiff(
        inserts=inserts,
        updates=updates,
        soft_deletes=soft_deletes,
        unchanged=unchanged,
        dormant=dormant,
    )
