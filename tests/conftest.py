import os
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

os.environ.setdefault("PUBLIC_SUPABASE_URL", "https://farm-test.supabase.co")
os.environ.setdefault("SECRET_API_KEY", "test-service-role-key")
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-for-hs256"

from fastapi.testclient import TestClient

from app.main import app
from app.chat.cache import QueryCache, get_query_cache
from app.core.dependencies import get_refetch_interval
from app.core.supabase_client import get_supabase, get_realtime_client

from .fakes import FakeRealtimeClient, FakeSupabase


ALICE = str(uuid.UUID("00000000-0000-4000-8000-000000000001"))
BOB = str(uuid.UUID("00000000-0000-4000-8000-000000000002"))
CAROL = str(uuid.UUID("00000000-0000-4000-8000-000000000003"))


def make_token(user_id: str, expires_in: int = 3600) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": user_id,
            "iss": f"{os.environ['PUBLIC_SUPABASE_URL']}/auth/v1",
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
            "role": "authenticated",
        },
        os.environ["SUPABASE_JWT_SECRET"],
        algorithm="HS256",
    )


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def fake_db():
    db = FakeSupabase()
    db.add_profile(ALICE, full_name="Alice Wanjiru", email="alice@farm.test")
    db.add_profile(BOB, full_name="Bob Otieno", email="bob@farm.test")
    return db


@pytest.fixture
def realtime():
    return FakeRealtimeClient()


@pytest.fixture
def cache():
    return QueryCache(refetch_interval=5.0)


@pytest.fixture
def client(fake_db, realtime, cache):
    async def realtime_override():
        return realtime

    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_realtime_client] = realtime_override
    app.dependency_overrides[get_query_cache] = lambda: cache
    app.dependency_overrides[get_refetch_interval] = lambda: 60.0

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
