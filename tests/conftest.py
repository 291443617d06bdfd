"""Shared test fixtures."""
import asyncio
from typing import Callable, Dict, Generator, List, Optional, Set, Tuple

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from erpsync.models.records import EntityType, LocalRecord, RemoteRecord  # noqa: F401
from erpsync.models.sync import SyncLog  # noqa: F401
from erpsync.models.tenant import Tenant
from erpsync.errors import AdapterFetchError


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite engine for tests that write from several threads at once."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'erpsync.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="seed_tenants")
def seed_tenants_fixture() -> Callable[..., List[Tenant]]:
    """Returns seed(engine, count=3, inactive=()) inserting tenants 1..count."""

    def seed(engine, count: int = 3, inactive: Tuple[int, ...] = ()) -> List[Tenant]:
        tenants = [
            Tenant(
                id=i,
                name=f"Company {i}",
                tax_id=f"00.000.000/000{i}-00",
                active=i not in inactive,
            )
            for i in range(1, count + 1)
        ]
        with Session(engine) as s:
            for t in tenants:
                s.add(t)
            s.commit()
            for t in tenants:
                s.refresh(t)
        return tenants

    return seed


class FakeSource:
    """
    In-memory RemoteSource.

    `snapshots` maps (tenant_id, entity_type) to the records to return;
    tenants in `failing` raise AdapterFetchError; when `gate` is set,
    fetch() waits on it so tests can hold a run in flight.
    """

    def __init__(self):
        self.snapshots: Dict[Tuple[int, EntityType], List[RemoteRecord]] = {}
        self.failing: Set[int] = set()
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None
        self.calls: List[Tuple[int, EntityType]] = []

    def set(self, tenant_id: int, entity_type: EntityType, records: List[RemoteRecord]) -> None:
        self.snapshots[(tenant_id, entity_type)] = list(records)

    async def fetch(self, tenant_id: int, entity_type: EntityType) -> List[RemoteRecord]:
        self.calls.append((tenant_id, entity_type))
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if tenant_id in self.failing:
            raise AdapterFetchError(f"ERP unreachable for tenant {tenant_id}")
        return list(self.snapshots.get((tenant_id, entity_type), []))


@pytest.fixture(name="fake_source")
def fake_source_fixture() -> FakeSource:
    return FakeSource()
