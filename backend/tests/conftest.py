"""
Test configuration and fixtures for the PillTracker backend tests.
Supabase is replaced by an in-memory fake with the same async surface.
"""
import os
import uuid
import pytest
from collections import defaultdict
from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

# Test environment variables (before the app reads its settings)
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("REMINDER_TIMEZONE", "UTC")
os.environ.setdefault("TIMING_WINDOW", "symmetric")

import pytz
from fastapi.testclient import TestClient

from api.dependencies import get_scheduler, get_service_store, get_store
from app import app
from config.supabase import SupabaseError
from services.notifications import ReminderScheduler
from utils.auth import CurrentUser, create_session_token

UTC = pytz.utc


class FakeSupabaseClient:
    """In-memory stand-in for config.supabase.SupabaseClient"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.users: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.recovery_emails: List[tuple] = []
        self.confirm_email = False
        self.fail_with: Optional[SupabaseError] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    async def query(self, table, method="GET", data=None, filters=None, order=None, limit=None, access_token=None):
        self.calls.append((table, method, dict(filters or {}), access_token))
        self._maybe_fail()
        rows = self.tables[table]

        if method == "GET":
            result = [deepcopy(row) for row in rows if self._matches(row, filters)]
            if order:
                column, direction = order
                result.sort(key=lambda row: row.get(column) or "", reverse=direction == "desc")
            return result[:limit] if limit is not None else result

        if method == "POST":
            inserted = []
            for item in data if isinstance(data, list) else [data]:
                row = deepcopy(item)
                row.setdefault("id", str(uuid.uuid4()))
                rows.append(row)
                inserted.append(deepcopy(row))
            return inserted

        if method == "PATCH":
            updated = []
            for row in rows:
                if self._matches(row, filters):
                    row.update(deepcopy(data))
                    updated.append(deepcopy(row))
            return updated

        if method == "DELETE":
            removed = [row for row in rows if self._matches(row, filters)]
            self.tables[table] = [row for row in rows if not self._matches(row, filters)]
            return [deepcopy(row) for row in removed]

        raise ValueError(f"Unsupported method: {method}")

    def _public(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": user["id"], "email": user["email"], "user_metadata": deepcopy(user["user_metadata"])}

    def _session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = f"sb-{uuid.uuid4().hex}"
        self.sessions[token] = user["email"]
        return {"access_token": token, "token_type": "bearer", "user": self._public(user)}

    def add_user(self, email: str, password: str = "secret123", **metadata) -> Dict[str, Any]:
        user = {"id": str(uuid.uuid4()), "email": email.lower(), "password": password, "user_metadata": metadata}
        self.users[user["email"]] = user
        return user

    async def auth_signup(self, email, password, user_metadata=None):
        self._maybe_fail()
        if email.lower() in self.users:
            raise SupabaseError("User already registered", status_code=422)
        user = self.add_user(email, password, **(user_metadata or {}))
        if self.confirm_email:
            return self._public(user)
        return self._session(user)

    async def auth_signin(self, email, password):
        self._maybe_fail()
        user = self.users.get(email.lower())
        if not user or user["password"] != password:
            raise SupabaseError("Invalid login credentials", status_code=400)
        return self._session(user)

    async def auth_signout(self, access_token):
        self.sessions.pop(access_token, None)

    def _user_for(self, access_token) -> Dict[str, Any]:
        email = self.sessions.get(access_token)
        if email is None:
            raise SupabaseError("invalid JWT: unable to parse or verify signature", status_code=401)
        return self.users[email]

    async def auth_get_user(self, access_token):
        return self._public(self._user_for(access_token))

    async def auth_recover(self, email, redirect_to=None):
        self._maybe_fail()
        self.recovery_emails.append((email, redirect_to))

    async def auth_update_user(self, access_token, attributes):
        user = self._user_for(access_token)
        if "password" in attributes:
            user["password"] = attributes["password"]
        if "data" in attributes:
            user["user_metadata"].update(attributes["data"])
        return self._public(user)


class FixedClock:
    """Callable clock that tests can move"""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def fake_store() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def scheduler() -> ReminderScheduler:
    return ReminderScheduler(timezone="UTC")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(UTC.localize(datetime(2024, 5, 1, 8, 3)))


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(user_id="user-1", email="jane@example.com", access_token="sb-user-1")


@pytest.fixture
def client(fake_store, scheduler) -> Generator[TestClient, None, None]:
    """Test client wired to the fake store and a fresh scheduler"""
    app.dependency_overrides[get_store] = lambda: fake_store
    app.dependency_overrides[get_service_store] = lambda: fake_store
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(user_id: str, email: str, supabase_token: Optional[str] = None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user_id, email, supabase_token)}"}


@pytest.fixture
def auth_headers(current_user) -> Dict[str, str]:
    return bearer(current_user.id, current_user.email, current_user.access_token)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return bearer("admin-1", "admin@example.com", "sb-admin")
