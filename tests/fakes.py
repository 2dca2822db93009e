"""
In-memory stand-ins for the supabase client and the registry HTTP API.

Implements the subset of the PostgREST query builder the code uses
(select/insert/update/delete with eq/in_/order/limit/range), plus the
registry schema's primary keys, unique constraints, foreign keys and
ON DELETE CASCADE. Constraint violations raise postgrest's APIError like the
real client does.
"""

import copy
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from postgrest.exceptions import APIError


@dataclass
class TableSpec:
    defaults: Dict[str, Any] = field(default_factory=dict)
    unique: List[Tuple[str, ...]] = field(default_factory=list)
    # column -> referenced table; references always point at "id"
    foreign_keys: Dict[str, str] = field(default_factory=dict)
    timestamps: bool = True


REGISTRY_SCHEMA: Dict[str, TableSpec] = {
    "systems": TableSpec(defaults={"description": "", "api_url": "", "is_active": True}),
    "functions": TableSpec(
        defaults={"category": "", "description": "", "endpoint": ""},
        unique=[("system_id", "function_key")],
        foreign_keys={"system_id": "systems"},
    ),
    "users": TableSpec(
        defaults={"name": "", "is_active": True, "is_super_user": False, "password_hash": None},
        unique=[("email",)],
    ),
    "profiles": TableSpec(
        defaults={"description": "", "system_id": None},
        unique=[("name",)],
        foreign_keys={"system_id": "systems"},
    ),
    "profile_functions": TableSpec(
        defaults={"granted": True},
        unique=[("profile_id", "function_id")],
        foreign_keys={"profile_id": "profiles", "function_id": "functions"},
    ),
    "user_profiles": TableSpec(
        unique=[("user_id", "profile_id")],
        foreign_keys={"user_id": "users", "profile_id": "profiles"},
    ),
    "user_function_overrides": TableSpec(
        defaults={"reason": ""},
        unique=[("user_id", "function_id")],
        foreign_keys={"user_id": "users", "function_id": "functions"},
    ),
    "refresh_tokens": TableSpec(
        unique=[("token_hash",)],
        foreign_keys={"user_id": "users"},
    ),
    "auth_events": TableSpec(
        defaults={"user_id": None, "auth_method": "", "ip_address": "", "user_agent": "", "success": True, "metadata": ""},
        foreign_keys={"user_id": "users"},
    ),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _split_columns(columns: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for char in columns:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data
        self.count = len(data)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: List[Tuple[str, str, Any]] = []
        self.orders: List[Tuple[str, bool]] = []
        self.limit_count: Optional[int] = None
        self.offset = 0

    def select(self, columns: str = "*", **kwargs) -> "FakeQuery":
        self.action = "select"
        self.columns = columns
        return self

    def insert(self, payload, **kwargs) -> "FakeQuery":
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any], **kwargs) -> "FakeQuery":
        self.action = "update"
        self.payload = payload
        return self

    def delete(self, **kwargs) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("neq", column, value))
        return self

    def in_(self, column: str, values) -> "FakeQuery":
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column: str, desc: bool = False, **kwargs) -> "FakeQuery":
        self.orders.append((column, desc))
        return self

    def limit(self, count: int, **kwargs) -> "FakeQuery":
        self.limit_count = count
        return self

    def range(self, start: int, end: int, **kwargs) -> "FakeQuery":
        self.offset = start
        self.limit_count = end - start + 1
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        for op, column, value in self.filters:
            current = row.get(column)
            if op == "eq" and current != value:
                return False
            if op == "neq" and current == value:
                return False
            if op == "in" and current not in value:
                return False
        return True

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.action))
        if self.action == "insert":
            return FakeResponse(self.db._insert(self.table, self.payload))
        if self.action == "update":
            return FakeResponse(self.db._update(self.table, self._matches, self.payload))
        if self.action == "delete":
            return FakeResponse(self.db._delete(self.table, self._matches))

        rows = [row for row in self.db.rows(self.table) if self._matches(row)]
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.offset:
            rows = rows[self.offset:]
        if self.limit_count is not None:
            rows = rows[:self.limit_count]
        return FakeResponse([self.db._project(self.table, row, self.columns) for row in rows])


class FakeSupabase:
    def __init__(self, schema: Optional[Dict[str, TableSpec]] = None):
        self.schema = REGISTRY_SCHEMA if schema is None else schema
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def spec(self, table: str) -> TableSpec:
        return self.schema.get(table) or TableSpec()

    def _project(self, table: str, row: Dict[str, Any], columns: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for column in _split_columns(columns):
            if "(" in column:
                relation, inner = column[:-1].split("(", 1)
                relation = relation.strip()
                fk = f"{relation[:-1] if relation.endswith('s') else relation}_id"
                target = next((r for r in self.rows(relation) if r.get("id") == row.get(fk)), None)
                result[relation] = self._project(relation, target, inner) if target else None
            elif column == "*":
                result.update(copy.deepcopy(row))
            else:
                result[column] = copy.deepcopy(row.get(column))
        return result

    def _check_constraints(self, table: str, row: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        spec = self.spec(table)
        others = [r for r in self.rows(table) if r is not ignore]
        if any(r["id"] == row["id"] for r in others):
            raise APIError({"message": f"duplicate key value violates unique constraint \"{table}_pkey\"", "code": "23505"})
        for columns in spec.unique:
            key = tuple(row.get(c) for c in columns)
            if any(tuple(r.get(c) for c in columns) == key for r in others):
                raise APIError({
                    "message": f"duplicate key value violates unique constraint on {table}({', '.join(columns)})",
                    "code": "23505",
                })
        for column, referenced in spec.foreign_keys.items():
            value = row.get(column)
            if value is not None and not any(r["id"] == value for r in self.rows(referenced)):
                raise APIError({
                    "message": f"insert or update on table \"{table}\" violates foreign key constraint on {column}",
                    "code": "23503",
                })

    def _insert(self, table: str, payload) -> List[Dict[str, Any]]:
        spec = self.spec(table)
        items = payload if isinstance(payload, list) else [payload]
        staged = []
        for item in items:
            row = {**copy.deepcopy(spec.defaults), **copy.deepcopy(item)}
            row.setdefault("id", str(uuid.uuid4()))
            if spec.timestamps:
                row.setdefault("created_at", _now())
                row.setdefault("updated_at", row["created_at"])
            staged.append(row)
        # a failing row aborts the whole statement
        inserted = []
        try:
            for row in staged:
                self._check_constraints(table, row)
                self.rows(table).append(row)
                inserted.append(row)
        except APIError:
            for row in inserted:
                self.rows(table).remove(row)
            raise
        return [copy.deepcopy(row) for row in inserted]

    def _update(self, table: str, matches, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        updated = []
        for row in self.rows(table):
            if not matches(row):
                continue
            candidate = {**row, **copy.deepcopy(payload)}
            self._check_constraints(table, candidate, ignore=row)
            row.update(candidate)
            updated.append(copy.deepcopy(row))
        return updated

    def _delete(self, table: str, matches) -> List[Dict[str, Any]]:
        doomed = [row for row in self.rows(table) if matches(row)]
        for row in doomed:
            self.rows(table).remove(row)
        ids = {row["id"] for row in doomed}
        if ids:
            self._cascade(table, ids)
        return [copy.deepcopy(row) for row in doomed]

    def _cascade(self, table: str, ids) -> None:
        for child, spec in self.schema.items():
            for column, referenced in spec.foreign_keys.items():
                if referenced == table:
                    self._delete(child, lambda r, c=column: r.get(c) in ids)


REGISTRY_TOKEN = "registry-token"
REGISTRY_USER = {
    "id": "u-1",
    "name": "Ana",
    "email": "ana@example.com",
    "profile_id": "p-1",
    "profile_name": "Editors",
}
REGISTRY_PERMISSIONS = [
    {"functionKey": "tasks-list", "name": "List Tasks", "category": "Tasks"},
    {"functionKey": "tasks-create", "name": "Create Task", "category": "Tasks"},
    {"functionKey": "boards-list", "name": "List Boards", "category": "Boards"},
]


class FakeRegistry:
    """httpx.MockTransport handler playing the registry for one user and token."""

    def __init__(self, permissions_status: int = 200, system_id: str = "nup-kan"):
        self.permissions_status = permissions_status
        self.system_id = system_id
        self.permissions: List[Dict[str, Any]] = [dict(p) for p in REGISTRY_PERMISSIONS]
        self.paths: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        if path == "/api/validate/token":
            if json.loads(request.content).get("token") != REGISTRY_TOKEN:
                return httpx.Response(401, json={"valid": False, "error": "Invalid or expired token"})
            user = {"id": REGISTRY_USER["id"], "email": REGISTRY_USER["email"]}
            return httpx.Response(200, json={"valid": True, "user": user})
        if request.headers.get("Authorization") != f"Bearer {REGISTRY_TOKEN}":
            return httpx.Response(401, json={"detail": "Not authenticated"})
        if path == "/api/auth/me":
            return httpx.Response(200, json=REGISTRY_USER)
        if path == f"/api/users/{REGISTRY_USER['id']}/systems/{self.system_id}/permissions":
            if self.permissions_status != 200:
                return httpx.Response(self.permissions_status, json={"detail": "System not found"})
            return httpx.Response(200, json={"userId": REGISTRY_USER["id"], "permissions": self.permissions})
        return httpx.Response(404, json={"detail": "Not Found"})
