import logging
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.audit.service import write_audit_log
from app.auth.deps import Principal
from app.core.errors import Forbidden, ValidationFailed
from app.upstream.models import ZabbixConnection
from app.upstream.service import ConnectionNotFound, UpstreamProxy, reveal_password
from app.upstream.vault import VaultError, encrypt_secret

logger = logging.getLogger(__name__)

MANAGE_ROLES = ("admin",)


class ConnectionAction(str, Enum):
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TEST = "test"


def resolve_action(value) -> ConnectionAction:
    try:
        return ConnectionAction(value)
    except ValueError:
        raise ValidationFailed(f"unknown action: {value!r}")


def connection_view(conn: ZabbixConnection) -> dict:
    # ciphertext, iv and tag never leave the server
    return {
        "id": conn.id,
        "name": conn.name,
        "url": conn.url,
        "username": conn.username,
        "is_active": conn.is_active,
        "encryption_version": conn.encryption_version,
        "created_by": conn.created_by,
        "created_at": conn.created_at.isoformat() if conn.created_at else None,
        "updated_at": conn.updated_at.isoformat() if conn.updated_at else None,
    }


def _clean_url(url) -> str:
    url = str(url or "").strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise ValidationFailed("url must start with http:// or https://")
    return url


def _seal_into(conn: ZabbixConnection, password: str) -> None:
    try:
        sealed = encrypt_secret(password)
    except VaultError as e:
        raise ValidationFailed(str(e))
    conn.password_ciphertext = sealed.ciphertext
    conn.password_iv = sealed.iv
    conn.password_tag = sealed.tag


def _get(db: Session, tenant_id: str, connection_id) -> ZabbixConnection:
    conn = db.execute(
        select(ZabbixConnection).where(ZabbixConnection.id == connection_id, ZabbixConnection.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if conn is None:
        raise ConnectionNotFound("Connection not found or access denied")
    return conn


def list_connections(db: Session, principal: Principal) -> dict:
    rows = db.execute(
        select(ZabbixConnection)
        .where(ZabbixConnection.tenant_id == principal.tenant_id)
        .order_by(ZabbixConnection.created_at.desc())
    ).scalars()
    return {"connections": [connection_view(c) for c in rows]}


def create_connection(db: Session, principal: Principal, body: dict) -> dict:
    name = str(body.get("name") or "").strip()
    username = str(body.get("username") or "").strip()
    password = body.get("password")
    if not name or not username or not password:
        raise ValidationFailed("name, url, username and password are required")

    conn = ZabbixConnection(
        tenant_id=principal.tenant_id,
        name=name,
        url=_clean_url(body.get("url")),
        username=username,
        is_active=bool(body.get("is_active", True)),
        created_by=principal.user_id,
    )
    _seal_into(conn, str(password))
    db.add(conn)
    db.flush()
    write_audit_log(
        db,
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        action="zabbix_connection.created",
        entity_type="zabbix_connection",
        entity_id=conn.id,
        details={"name": conn.name, "url": conn.url},
    )
    db.commit()
    db.refresh(conn)
    return {"connection": connection_view(conn)}


def update_connection(db: Session, principal: Principal, proxy: UpstreamProxy, body: dict) -> dict:
    conn = _get(db, principal.tenant_id, body.get("id"))

    if "name" in body:
        name = str(body.get("name") or "").strip()
        if not name:
            raise ValidationFailed("name cannot be empty")
        conn.name = name
    if "url" in body:
        conn.url = _clean_url(body.get("url"))
    if "username" in body:
        username = str(body.get("username") or "").strip()
        if not username:
            raise ValidationFailed("username cannot be empty")
        conn.username = username
    if "is_active" in body:
        conn.is_active = bool(body["is_active"])
    if body.get("password"):
        _seal_into(conn, str(body["password"]))

    write_audit_log(
        db,
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        action="zabbix_connection.updated",
        entity_type="zabbix_connection",
        entity_id=conn.id,
        details={"fields": sorted(k for k in body if k not in ("id", "action", "password"))},
    )
    db.commit()
    db.refresh(conn)
    # credentials or endpoint may have changed
    proxy.cache.invalidate(conn.id)
    return {"connection": connection_view(conn)}


def delete_connection(db: Session, principal: Principal, proxy: UpstreamProxy, body: dict) -> dict:
    conn = _get(db, principal.tenant_id, body.get("id"))
    connection_id = conn.id
    db.delete(conn)
    write_audit_log(
        db,
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        action="zabbix_connection.deleted",
        entity_type="zabbix_connection",
        entity_id=connection_id,
    )
    db.commit()
    proxy.cache.invalidate(connection_id)
    return {"ok": True, "id": connection_id}


def probe_connection(db: Session, principal: Principal, proxy: UpstreamProxy, body: dict) -> dict:
    if body.get("id"):
        conn = _get(db, principal.tenant_id, body["id"])
        return proxy.probe(conn.url, conn.username, reveal_password(conn))

    username = str(body.get("username") or "").strip()
    password = body.get("password")
    if not username or not password:
        raise ValidationFailed("id, or url, username and password are required")
    return proxy.probe(_clean_url(body.get("url")), username, str(password))


def run_action(db: Session, principal: Principal, proxy: UpstreamProxy, action: ConnectionAction, body: dict) -> dict:
    if action not in (ConnectionAction.LIST, ConnectionAction.TEST) and principal.role not in MANAGE_ROLES:
        raise Forbidden("Only admins can manage monitoring connections")

    match action:
        case ConnectionAction.LIST:
            return list_connections(db, principal)
        case ConnectionAction.CREATE:
            return create_connection(db, principal, body)
        case ConnectionAction.UPDATE:
            return update_connection(db, principal, proxy, body)
        case ConnectionAction.DELETE:
            return delete_connection(db, principal, proxy, body)
        case ConnectionAction.TEST:
            return probe_connection(db, principal, proxy, body)
