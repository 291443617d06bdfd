"""Synchronized record models: entity types, remote rows, and the local mirror."""
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class EntityType(str, Enum):
    """Kinds of ERP records the engine knows how to synchronize."""

    PARTNER = "partner"
    TRADE_TYPE = "trade_type"


def dump_payload(payload: Dict[str, Any]) -> str:
    """Canonical JSON for a payload so equal dicts give equal strings."""
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class RemoteRecord:
    """A record as the ERP returned it: external id plus payload fields."""

    external_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


class LocalRecord(SQLModel, table=True):
    """
    Local copy of one ERP record for a (tenant, entity type).

    Rows are never physically removed. A record that disappears upstream
    is soft-deleted by flipping `active` to False.
    """

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "entity_type", "external_id", name="uq_localrecord_key"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(index=True)
    entity_type: str = Field(index=True)
    external_id: str
    payload_json: str = "{}"
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_synced_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def payload(self) -> Dict[str, Any]:
        return json.loads(self.payload_json or "{}")
