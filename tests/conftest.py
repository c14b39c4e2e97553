"""Shared fixtures: an in-memory PostgREST-shaped client and a controllable clock"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from postgrest.exceptions import APIError

from app.features.timers.events import TimerEventChannel
from app.features.timers.service import TimerService
from app.infra.supabase.repositories.timers import TimerRepository

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"

# A Monday morning
START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class FakeResponse:
    data: Any
    count: Optional[int] = None


@dataclass
class FakeQuery:
    client: "FakeSupabaseClient"
    table: str
    operation: str = "select"
    columns: str = "*"
    payload: Optional[Dict[str, Any]] = None
    filters: List[Tuple[str, Any]] = field(default_factory=list)
    ordering: List[Tuple[str, bool]] = field(default_factory=list)
    row_limit: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, payload: Dict[str, Any]):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False):
        self.ordering.append((column, desc))
        return self

    def limit(self, size: int):
        self.row_limit = size
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(str(row.get(column)) == str(value) for column, value in self.filters)

    def execute(self) -> FakeResponse:
        self.client.calls.append((self.table, self.operation, copy.deepcopy(self.payload)))
        failure = self.client.failures.pop((self.table, self.operation), None)
        if failure:
            raise APIError({"message": failure, "code": "XX000", "hint": None, "details": None})

        rows = self.client.tables.setdefault(self.table, [])

        if self.operation == "insert":
            row = {
                "id": str(uuid.uuid4()),
                "created_at": self.client.clock().isoformat(),
                "updated_at": self.client.clock().isoformat(),
                **copy.deepcopy(self.payload),
            }
            rows.append(row)
            return FakeResponse(data=[copy.deepcopy(row)])

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
                row["updated_at"] = self.client.clock().isoformat()
            return FakeResponse(data=copy.deepcopy(matched))

        if self.operation == "delete":
            self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse(data=copy.deepcopy(matched))

        for column, desc in reversed(self.ordering):
            matched = sorted(matched, key=lambda row: row.get(column), reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]

        if self.columns.strip() != "*":
            wanted = [c.strip() for c in self.columns.split(",")]
            matched = [{c: row.get(c) for c in wanted} for row in matched]

        return FakeResponse(data=copy.deepcopy(matched), count=len(matched))


class FakeSupabaseClient:
    """Just enough of supabase.Client for the repositories under test"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[Tuple[str, str], str] = {}
        self.calls: List[Tuple[str, str, Any]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(client=self, table=name)

    def fail_next(self, table: str, operation: str, message: str) -> None:
        self.failures[(table, operation)] = message

    def rows(self, table: str = "timers") -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def row(self, id: str, table: str = "timers") -> Dict[str, Any]:
        return next(row for row in self.rows(table) if row["id"] == id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def supabase(clock) -> FakeSupabaseClient:
    return FakeSupabaseClient(clock)


@pytest.fixture
def repo(supabase) -> TimerRepository:
    return TimerRepository(supabase)


@pytest.fixture
def service(repo, clock) -> TimerService:
    return TimerService(repo, USER_ID, clock=clock)


@pytest.fixture
def anonymous_service(repo, clock) -> TimerService:
    return TimerService(repo, None, clock=clock)


@pytest.fixture
def events() -> TimerEventChannel:
    return TimerEventChannel()
