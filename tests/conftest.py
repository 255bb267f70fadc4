"""Pytest configuration and fixtures."""

import copy
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_current_user_id
from app.database.supabase_client import get_supabase
from app.main import app

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"

SUPER_USER = {
    "id": "user-admin",
    "email": "admin@example.com",
    "organization_id": ORG_ID,
    "app_metadata": {"type": "super_user"},
    "user_metadata": {},
}
MEMBER = {
    "id": "user-member",
    "email": "member@example.com",
    "organization_id": ORG_ID,
    "app_metadata": {},
    "user_metadata": {},
}

_EMBED = re.compile(r"(\w+)\(([^)]*)\)")


class FakeResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Just enough of the postgrest builder for the services under test."""

    def __init__(self, db: "FakeSupabase", table_name: str):
        self.db = db
        self.table_name = table_name
        self.operation = "select"
        self.payload: Any = None
        self.columns = "*"
        self.count_mode: Optional[str] = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[tuple] = []
        self.limit_value: Optional[int] = None
        self.offset_value = 0
        self.single = False

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, payload):
        self.operation, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.operation, self.payload = "update", payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column, pattern):
        regex = re.compile(".*".join(re.escape(p) for p in pattern.split("%")), re.IGNORECASE)
        self.filters.append(lambda row: bool(regex.fullmatch(str(row.get(column) or ""))))
        return self

    def contains(self, column, values):
        self.filters.append(lambda row: set(values) <= set(row.get(column) or []))
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.limit_value = count
        return self

    def offset(self, count):
        self.offset_value = count
        return self

    def range(self, start, end):
        self.offset_value, self.limit_value = start, end - start + 1
        return self

    def maybe_single(self):
        self.single = True
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table_name, []) if all(f(row) for f in self.filters)]

    def _embed(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(row)
        for table_name, columns in _EMBED.findall(self.columns):
            foreign_key = f"{table_name.rstrip('s')}_id"
            target = next(
                (r for r in self.db.tables.get(table_name, []) if r.get("id") == row.get(foreign_key)), None
            )
            wanted = [c.strip() for c in columns.split(",") if c.strip()]
            row[table_name] = {c: target.get(c) for c in wanted} if target else None
        return row

    def execute(self):
        if self.db.fail_tables.get(self.table_name):
            raise Exception(self.db.fail_tables[self.table_name])
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = {"id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc).isoformat(), **item}
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        if self.operation == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        if self.operation == "delete":
            removed = self._matching()
            self.db.tables[self.table_name] = [r for r in rows if r not in removed]
            return FakeResponse(copy.deepcopy(removed))

        result = self._matching()
        for column, desc in reversed(self.orders):
            result = sorted(
                result,
                key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else 0),
                reverse=desc,
            )
        total = len(result)
        result = result[self.offset_value:]
        if self.limit_value is not None:
            result = result[:self.limit_value]
        result = [self._embed(r) for r in result]

        if self.single:
            if not result:
                return None
            return FakeResponse(result[0])
        return FakeResponse(result, count=total if self.count_mode else None)


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        key = (self.name, path)
        if key in self.storage.files:
            raise Exception("The resource already exists")
        self.storage.files[key] = file
        return {"path": path}

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"

    def remove(self, paths):
        for path in paths:
            self.storage.files.pop((self.name, path), None)
        return [{"name": p} for p in paths]


class FakeStorage:
    def __init__(self):
        self.files: Dict[tuple, bytes] = {}

    def from_(self, name):
        return FakeBucket(self, name)


class FakeFunctions:
    """Edge functions: replies come from ``handlers`` (a dict, or a callable taking the body)."""

    def __init__(self):
        self.handlers: Dict[str, Any] = {}
        self.calls: List[tuple] = []

    def invoke(self, function_name, invoke_options=None):
        body = (invoke_options or {}).get("body")
        self.calls.append((function_name, body))
        handler = self.handlers.get(function_name, {"itemsProcessed": 0, "message": "ok"})
        if isinstance(handler, Exception):
            raise handler
        return handler(body) if callable(handler) else handler


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_tables: Dict[str, str] = {}
        self.storage = FakeStorage()
        self.functions = FakeFunctions()

    def table(self, name):
        return FakeQuery(self, name)

    def seed(self, table_name: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
        seeded = []
        for row in rows:
            row = {"id": str(uuid.uuid4()), **row}
            self.tables.setdefault(table_name, []).append(row)
            seeded.append(row)
        return seeded

    def rows(self, table_name: str) -> List[Dict[str, Any]]:
        return self.tables.get(table_name, [])

    def grant(self, user_id: str, *permission_names: str):
        role = self.seed("roles", {"name": f"role-{uuid.uuid4().hex[:6]}"})[0]
        self.seed("user_roles", {"user_id": user_id, "role_id": role["id"]})
        for name in permission_names:
            permission = next((p for p in self.rows("permissions") if p["name"] == name), None)
            if permission is None:
                permission = self.seed("permissions", {"name": name})[0]
            self.seed("role_permissions", {"role_id": role["id"], "permission_id": permission["id"]})


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def current_user():
    """Mutable user the overridden auth dependency returns; tests swap its contents."""
    return dict(SUPER_USER)


@pytest.fixture
def client(fake_supabase, current_user):
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    app.dependency_overrides[get_current_user_id] = lambda: current_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def as_member(current_user):
    current_user.clear()
    current_user.update(copy.deepcopy(MEMBER))
    return current_user
