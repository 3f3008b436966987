from __future__ import annotations

import threading
from datetime import datetime
from types import SimpleNamespace
from typing import Any

import pytest

from booking_manager.db.repository import SupabaseTimeslotStore
from booking_manager.store import InMemoryTimeslotStore


def _parse(column: str, value: Any) -> Any:
    if column == "datetime" and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


class FakeQuery:
    """Just enough of the postgrest query builder for SupabaseTimeslotStore."""

    def __init__(self, client: "FakeSupabaseClient", operation: str, payload: Any = None) -> None:
        self.client = client
        self.operation = operation
        self.payload = payload
        self.filters: list = []
        self.order_column: str | None = None
        self.row_limit: int | None = None

    def eq(self, column, value):
        self.filters.append((column, lambda a, b: a == b, value))
        return self

    def neq(self, column, value):
        self.filters.append((column, lambda a, b: a != b, value))
        return self

    def lt(self, column, value):
        self.filters.append((column, lambda a, b: a < b, value))
        return self

    def order(self, column):
        self.order_column = column
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(
            compare(_parse(column, row[column]), _parse(column, value))
            for column, compare, value in self.filters
        )

    def execute(self):
        client = self.client
        client.executed.append(self)
        if self.operation in client.fail_on:
            raise RuntimeError(f"{self.operation} failed")
        with client.lock:
            if self.operation == "insert":
                client.rows.append(dict(self.payload))
                return SimpleNamespace(data=[dict(self.payload)])
            matched = [row for row in client.rows if self._matches(row)]
            if self.operation == "select":
                if self.order_column:
                    matched.sort(key=lambda row: _parse(self.order_column, row[self.order_column]))
                if self.row_limit is not None:
                    matched = matched[: self.row_limit]
                return SimpleNamespace(data=[dict(row) for row in matched])
            if self.operation == "update":
                if client.steal_next_update:
                    client.steal_next_update = False
                    return SimpleNamespace(data=[])
                for row in matched:
                    row.update(self.payload)
                return SimpleNamespace(data=[dict(row) for row in matched])
            if self.operation == "delete":
                client.rows = [row for row in client.rows if row not in matched]
                return SimpleNamespace(data=[dict(row) for row in matched])
        raise AssertionError(f"unexpected operation {self.operation}")


class FakeTable:
    def __init__(self, client: "FakeSupabaseClient") -> None:
        self.client = client

    def select(self, columns: str = "*"):
        return FakeQuery(self.client, "select")

    def insert(self, payload: dict):
        return FakeQuery(self.client, "insert", payload)

    def update(self, payload: dict):
        return FakeQuery(self.client, "update", payload)

    def delete(self):
        return FakeQuery(self.client, "delete")


class FakeSupabaseClient:
    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.executed: list[FakeQuery] = []
        self.fail_on: set[str] = set()
        self.steal_next_update = False
        self.lock = threading.Lock()

    def table(self, name: str) -> FakeTable:
        assert name == "timeslots"
        return FakeTable(self)


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture(params=["memory", "supabase"])
def backend(request):
    if request.param == "memory":
        return InMemoryTimeslotStore()
    return SupabaseTimeslotStore(FakeSupabaseClient())
