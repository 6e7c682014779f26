"""In-memory stand-ins for the Supabase query builder and Realtime client."""
import copy
import uuid
from datetime import datetime, timedelta, timezone

from postgrest.exceptions import APIError


BASE_TIME = datetime(2020, 1, 1, tzinfo=timezone.utc)


def api_error(message: str = "backend unavailable") -> APIError:
    return APIError({"message": message, "code": "500", "hint": None, "details": None})


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload = None
        self.filters = []
        self.ordering = None
        self.row_limit = None
        self.count = None
        self.head = False

    # Operations

    def select(self, *columns, count=None, head=None):
        self.operation = "select"
        self.count = count
        self.head = bool(head)
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.operation = "update"
        self.payload = values
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column, values):
        self.filters.append(
            lambda row: all(value in (row.get(column) or []) for value in values)
        )
        return self

    def or_(self, expression):
        # Supports "<column>.ilike.%term%" clauses only
        clauses = []
        for clause in expression.split(","):
            column, _, pattern = clause.split(".", 2)
            clauses.append((column, pattern.strip("%").lower()))

        self.filters.append(
            lambda row: any(
                term in (row.get(column) or "").lower() for column, term in clauses
            )
        )
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, size):
        self.row_limit = size
        return self

    # Execution

    def _matches(self, row) -> bool:
        return all(check(row) for check in self.filters)

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.operation))

        if (self.table, self.operation) in self.db.failures:
            raise api_error()

        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.prepare_row(self.table, row) for row in payload]
            rows.extend(inserted)
            return FakeResponse(copy.deepcopy(inserted))

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            if self.table == "conversations":
                deleted_ids = {row["id"] for row in matched}
                self.db.tables["messages"] = [
                    row
                    for row in self.db.tables.get("messages", [])
                    if row.get("conversation_id") not in deleted_ids
                ]
            return FakeResponse(copy.deepcopy(matched))

        if self.ordering:
            column, desc = self.ordering
            matched = sorted(matched, key=lambda row: row.get(column) or "", reverse=desc)

        count = len(matched) if self.count else None
        if self.row_limit is not None:
            matched = matched[: self.row_limit]

        data = [] if self.head else copy.deepcopy(matched)
        return FakeResponse(data, count=count)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.calls.append(("rpc", self.name))

        if ("rpc", self.name) in self.db.failures:
            raise api_error()

        if self.name != "get_user_emails":
            raise api_error(f"Could not find the function {self.name}")

        return FakeResponse(
            [
                {"id": user_id, "email": self.db.auth_emails[user_id]}
                for user_id in self.params["user_ids"]
                if user_id in self.db.auth_emails
            ]
        )


class FakeSupabase:
    """
    Just enough of supabase-py's sync client for the messaging services.

    Every inserted row gets an id and a `created_at` one second after the
    previous one, so ordering by `created_at` is deterministic.
    """

    def __init__(self):
        self.tables = {"conversations": [], "messages": [], "user_profiles": []}
        self.auth_emails = {}
        self.failures = set()
        self.calls = []
        self._tick = 0

    def _next_timestamp(self) -> str:
        self._tick += 1
        return (BASE_TIME + timedelta(seconds=self._tick)).isoformat()

    def prepare_row(self, table: str, row: dict) -> dict:
        row = copy.deepcopy(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self._next_timestamp())
        if table == "messages":
            row.setdefault("read", False)
        if table == "conversations":
            row.setdefault("participant_names", None)
            row.setdefault("last_message", None)
            row.setdefault("last_message_at", row["created_at"])
        return row

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    def fail(self, table: str, operation: str) -> None:
        self.failures.add((table, operation))

    # Seeding helpers

    def add_profile(self, user_id, full_name=None, email=None, **extra):
        self.tables["user_profiles"].append(
            {"id": user_id, "full_name": full_name, "email": email, **extra}
        )

    def add_conversation(self, participant_ids, participant_names=None, **extra) -> dict:
        row = self.prepare_row(
            "conversations",
            {
                "participant_ids": list(participant_ids),
                "participant_names": participant_names,
                **extra,
            },
        )
        self.tables["conversations"].append(row)
        return row

    def add_message(self, conversation_id, sender_id, content, sender_name="Farmer", read=False) -> dict:
        row = self.prepare_row(
            "messages",
            {
                "conversation_id": conversation_id,
                "sender_id": sender_id,
                "sender_name": sender_name,
                "content": content,
                "read": read,
            },
        )
        self.tables["messages"].append(row)

        for conversation in self.tables["conversations"]:
            if conversation["id"] == conversation_id:
                conversation["last_message"] = content
                conversation["last_message_at"] = row["created_at"]
        return row

    def rows(self, table: str, **match) -> list:
        return [
            row
            for row in self.tables.get(table, [])
            if all(row.get(key) == value for key, value in match.items())
        ]


class FakeChannel:
    def __init__(self, topic: str):
        self.topic = topic
        self.bindings = []
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append(
            {
                "event": event,
                "callback": callback,
                "table": table,
                "schema": schema,
                "filter": filter,
            }
        )
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        return self

    def emit(self, payload=None):
        for binding in self.bindings:
            binding["callback"](payload or {})


class FakeRealtimeClient:
    def __init__(self):
        self.channels = []
        self.removed = []

    def channel(self, topic: str) -> FakeChannel:
        channel = FakeChannel(topic)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel) -> None:
        self.removed.append(channel)
