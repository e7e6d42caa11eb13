import json
import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "dev"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ZABBIX_ENCRYPTION_KEY"] = "test-passphrase"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.db.models  # noqa: F401, E402
from app.auth.deps import Principal  # noqa: E402
from app.auth.login_guard import LoginGuard  # noqa: E402
from app.auth.models import AuthUser, Profile, UserRole  # noqa: E402
from app.auth.security import create_access_token, hash_password  # noqa: E402
from app.db.init_db import init_db  # noqa: E402
from app.db.session import engine_options, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.tenants.models import Tenant  # noqa: E402
from app.upstream.models import ZabbixConnection  # noqa: E402
from app.upstream.service import UpstreamProxy  # noqa: E402
from app.upstream.session_cache import SessionCache  # noqa: E402
from app.upstream.vault import encrypt_secret  # noqa: E402

PASSWORD = "s3cret-pass"


@pytest.fixture()
def engine():
    engine = create_engine("sqlite://", **engine_options("sqlite://"))
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fresh_login_guard(monkeypatch):
    guard = LoginGuard()
    monkeypatch.setattr("app.auth.router.login_guard", guard)
    return guard


def make_tenant(db, slug: str = "acme") -> Tenant:
    tenant = Tenant(name=slug.title(), slug=slug)
    db.add(tenant)
    db.commit()
    return tenant


def make_user(db, tenant: Tenant, email: str, role: str = "admin", password: str = PASSWORD) -> Profile:
    user = AuthUser(email=email, encrypted_password=hash_password(password))
    db.add(user)
    db.flush()
    profile = Profile(id=user.id, tenant_id=tenant.id, email=email, display_name=email.split("@")[0])
    db.add(profile)
    db.add(UserRole(user_id=user.id, tenant_id=tenant.id, role=role))
    db.commit()
    return profile


def token_for(profile: Profile, role: str = "admin") -> str:
    token, _ = create_access_token(
        {
            "sub": profile.id,
            "email": profile.email,
            "role": "authenticated",
            "app_metadata": {"tenant_id": profile.tenant_id, "role": role},
            "user_metadata": {"display_name": profile.display_name},
        }
    )
    return token


def auth_headers(profile: Profile, role: str = "admin", **extra) -> dict:
    return {"Authorization": f"Bearer {token_for(profile, role)}", **extra}


def principal_for(profile: Profile, role: str = "admin") -> Principal:
    return Principal(user_id=profile.id, tenant_id=profile.tenant_id, role=role, email=profile.email)


@pytest.fixture()
def tenant(db):
    return make_tenant(db, "acme")


@pytest.fixture()
def admin(db, tenant):
    return make_user(db, tenant, "admin@acme.test", role="admin")


@pytest.fixture()
def other_tenant_admin(db):
    other = make_tenant(db, "globex")
    return make_user(db, other, "admin@globex.test", role="admin")


class FakeZabbix:
    """httpx.MockTransport handler speaking just enough Zabbix JSON-RPC."""

    def __init__(self, results: dict | None = None, login_ok: bool = True):
        self.results = results or {}
        self.login_ok = login_ok
        self.calls: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        method = body["method"]
        if method == "user.login":
            if not self.login_ok:
                error = {"code": -32602, "message": "Invalid params.", "data": "Incorrect user name or password."}
                return httpx.Response(200, json={"jsonrpc": "2.0", "error": error, "id": body["id"]})
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": "session-token", "id": body["id"]})
        if method == "apiinfo.version":
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": "6.0.0", "id": body["id"]})
        if method == "user.logout":
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": True, "id": body["id"]})
        result = self.results.get(method, [])
        if callable(result):
            result = result(body["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": result, "id": body["id"]})

    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_proxy(fake: FakeZabbix, ttl_seconds: float = 600, clock=None) -> UpstreamProxy:
    cache = SessionCache(ttl_seconds, clock=clock) if clock else SessionCache(ttl_seconds)
    return UpstreamProxy(cache, transport=fake.transport())


def make_connection(db, tenant_id: str, password: str = "zbx-pass", is_active: bool = True) -> ZabbixConnection:
    sealed = encrypt_secret(password)
    conn = ZabbixConnection(
        tenant_id=tenant_id,
        name="Core Zabbix",
        url="https://zbx.example/",
        username="api",
        password_ciphertext=sealed.ciphertext,
        password_iv=sealed.iv,
        password_tag=sealed.tag,
        is_active=is_active,
    )
    db.add(conn)
    db.commit()
    return conn
