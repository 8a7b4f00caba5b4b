"""Test fixtures — a throwaway SQLite database and real RS256 tokens.

Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite file under tmp_path with the schema
   created from Base.metadata, and get_db is overridden to open
   sessions on it. Nothing leaks between tests.
2. Tokens are signed with an RSA key generated once per run. The
   verifier dependency is overridden to resolve that key locally,
   so the whole JWT pipeline (signature, expiry, claims → role) runs
   without a JWKS endpoint.
3. The IdP admin API is an httpx.MockTransport with canned users.
"""

import os

os.environ.setdefault("TASKBOARD_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TASKBOARD_IDP_API_URL", "http://idp.test")
os.environ.setdefault("TASKBOARD_ENVIRONMENT", "development")

import json
import time

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from taskboard.auth.jwks import TokenVerifier, get_token_verifier
from taskboard.db.engine import get_db
from taskboard.db.models import Base, Project, Task, User
from taskboard.main import app
from taskboard.services.idp_client import IdPClient, get_idp_client


# ─── Keys & tokens ───────────────────────────────────────


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key():
    """A key the verifier does not trust."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def make_token(private_key):
    """Build a signed access token.

    Extra keyword arguments become claims; pass role=None to leave the
    role claim out entirely.
    """

    def _make(user_id=1, email="user@example.com", role="USER", *, key=None,
              expires_in=900, **claims):
        now = int(time.time())
        payload = {"sub": email, "userId": user_id, "iat": now, "exp": now + expires_in}
        if role is not None:
            payload["role"] = role
        payload.update(claims)
        return jwt.encode(
            payload, key or private_key, algorithm="RS256", headers={"kid": "test-key"}
        )

    return _make


@pytest.fixture(scope="session")
def auth(make_token):
    """Authorization headers for a given identity."""

    def _auth(user_id=1, email="user@example.com", role="USER", **claims):
        return {"Authorization": f"Bearer {make_token(user_id, email, role, **claims)}"}

    return _auth


# Stock identities used across the API tests.
ADMIN = dict(user_id=1, email="admin@example.com", role="ADMIN")
MANAGER = dict(user_id=2, email="manager@example.com", role="MANAGER")
OTHER_MANAGER = dict(user_id=3, email="other.manager@example.com", role="MANAGER")
WORKER = dict(user_id=4, email="worker@example.com", role="USER")
OTHER_WORKER = dict(user_id=5, email="other.worker@example.com", role="USER")


# ─── Database ────────────────────────────────────────────


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    """Fresh database per test, schema created from the models."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskboard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class Seeder:
    """Insert rows directly, bypassing the API's role checks."""

    def __init__(self, factory):
        self.factory = factory

    async def _add(self, obj):
        async with self.factory() as s:
            s.add(obj)
            await s.commit()
            await s.refresh(obj)
        return obj

    async def user(self, user_id, email, role="USER", **kwargs):
        return await self._add(
            User(id=user_id, email=email, role=role, email_verified=True, **kwargs)
        )

    async def project(self, name, manager_id, description=None):
        return await self._add(
            Project(name=name, description=description, manager_id=manager_id)
        )

    async def task(self, title, project_id, assignee_id=None, status="TODO"):
        return await self._add(
            Task(title=title, project_id=project_id, assignee_id=assignee_id, status=status)
        )

    async def get(self, model, pk):
        async with self.factory() as s:
            return await s.get(model, pk)


@pytest_asyncio.fixture()
async def seed(session_factory):
    return Seeder(session_factory)


@pytest_asyncio.fixture()
async def people(seed):
    """The stock identities, present in the local users table."""
    for who in (ADMIN, MANAGER, OTHER_MANAGER, WORKER, OTHER_WORKER):
        await seed.user(who["user_id"], who["email"], who["role"])


# ─── Identity provider ───────────────────────────────────


class FakeIdP:
    """Canned IdP admin API. Records every request it receives."""

    def __init__(self):
        self.users: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.list_status = 200
        self.role_status = 200
        self.list_body = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path == "/api/admin/users":
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"message": "IdP refused"})
            body = self.list_body if self.list_body is not None else self.users
            return httpx.Response(200, json=body)
        if request.method == "PUT" and path.startswith("/api/admin/users/"):
            if self.role_status != 200:
                return httpx.Response(self.role_status, json={"message": "Role update refused"})
            return httpx.Response(200, json={"success": True, **json.loads(request.content)})
        return httpx.Response(404, json={"message": "no such IdP route"})


@pytest.fixture()
def idp():
    return FakeIdP()


# ─── HTTP client ─────────────────────────────────────────


@pytest_asyncio.fixture()
async def client(session_factory, private_key, idp):
    """HTTP client with the app's database, verifier and IdP overridden."""
    public_key = private_key.public_key()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    def override_get_token_verifier():
        return TokenVerifier(key_resolver=lambda token: public_key, algorithms=["RS256"])

    def override_get_idp_client():
        return IdPClient("http://idp.test", transport=httpx.MockTransport(idp.handler))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_verifier] = override_get_token_verifier
    app.dependency_overrides[get_idp_client] = override_get_idp_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
