import logging
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import GatewayError, UpstreamError, UpstreamUnreachable, ValidationFailed
from app.upstream.client import UpstreamLoginFailed, ZabbixClient
from app.upstream.models import ZabbixConnection
from app.upstream.session_cache import SessionCache
from app.upstream.vault import SealedSecret, VaultError, decrypt_secret

logger = logging.getLogger(__name__)


class ConnectionNotFound(GatewayError):
    status_code = 404
    code = "not_found"


def sealed_password(conn: ZabbixConnection) -> SealedSecret:
    return SealedSecret(ciphertext=conn.password_ciphertext, iv=conn.password_iv, tag=conn.password_tag)


def reveal_password(conn: ZabbixConnection) -> str:
    try:
        return decrypt_secret(sealed_password(conn))
    except VaultError as e:
        logger.warning("Could not decrypt credentials of connection %s: %s", conn.id, e)
        raise GatewayError("Stored upstream credentials could not be decrypted", code="credential_error")


class UpstreamProxy:
    """Reaches the monitoring API on behalf of a tenant's stored connection."""

    def __init__(self, cache: SessionCache, transport: httpx.BaseTransport | None = None):
        self.cache = cache
        self.transport = transport

    def client(self, base_url: str) -> ZabbixClient:
        return ZabbixClient(base_url, transport=self.transport)

    def load_connection(self, db: Session, tenant_id: str, connection_id: str) -> ZabbixConnection:
        conn = db.execute(
            select(ZabbixConnection).where(
                ZabbixConnection.id == connection_id,
                ZabbixConnection.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if conn is None:
            raise ConnectionNotFound("Connection not found or access denied")
        if not conn.is_active:
            raise ValidationFailed("Connection is disabled")
        return conn

    def active_connection(self, db: Session, tenant_id: str) -> ZabbixConnection | None:
        return db.execute(
            select(ZabbixConnection)
            .where(ZabbixConnection.tenant_id == tenant_id, ZabbixConnection.is_active.is_(True))
            .order_by(ZabbixConnection.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def session_token(self, conn: ZabbixConnection, client: ZabbixClient) -> str:
        token = self.cache.get(conn.id)
        if token:
            return token
        try:
            token = client.login(conn.username, reveal_password(conn))
        except UpstreamLoginFailed:
            # one bad login drops every cached session in the process
            self.cache.clear()
            logger.warning("Upstream login failed for connection %s; session cache cleared", conn.id)
            raise
        self.cache.put(conn.id, token)
        return token

    def call(self, conn: ZabbixConnection, method: str, params: Any = None) -> Any:
        client = self.client(conn.url)
        token = self.session_token(conn, client)
        return client.call(method, params or {}, token)

    def execute(self, db: Session, tenant_id: str, connection_id: str, method: str, params: Any = None) -> Any:
        conn = self.load_connection(db, tenant_id, connection_id)
        return self.call(conn, method, params)

    def probe(self, url: str, username: str, password: str) -> dict:
        """Check reachability and credentials without touching the cache."""
        client = self.client(url)
        version = None
        try:
            version = client.api_version()
            token = client.login(username, password)
            client.logout(token)
        except (UpstreamError, UpstreamUnreachable) as e:
            return {"ok": False, "version": version, "error": e.message}
        return {"ok": True, "version": version}


session_cache = SessionCache(ttl_seconds=settings.ZABBIX_SESSION_TTL_SECONDS)
upstream_proxy = UpstreamProxy(session_cache)


def get_upstream_proxy() -> UpstreamProxy:
    return upstream_proxy
