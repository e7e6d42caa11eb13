from enum import Enum
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.auth.deps import Principal, get_principal
from app.core.errors import FunctionNotFound, ValidationFailed
from app.db.session import get_db
from app.functions import connections
from app.printers import service as printers
from app.system.router import system_status
from app.upstream.service import UpstreamProxy, get_upstream_proxy

router = APIRouter()


class FunctionName(str, Enum):
    ZABBIX_PROXY = "zabbix-proxy"
    ZABBIX_CONNECTIONS = "zabbix-connections"
    PRINTER_STATUS = "printer-status"
    PRINTER_CONFIGS = "printer-configs"
    SYSTEM_STATUS = "system-status"


def resolve_function(name: str) -> FunctionName:
    try:
        return FunctionName(name)
    except ValueError:
        raise FunctionNotFound(f'function "{name}" not found')


def zabbix_proxy(db: Session, principal: Principal, proxy: UpstreamProxy, body: dict) -> dict:
    connection_id = body.get("connection_id")
    method = body.get("method")
    if not connection_id or not method:
        raise ValidationFailed("connection_id and method are required")
    result = proxy.execute(db, principal.tenant_id, connection_id, method, body.get("params") or {})
    return {"result": result}


@router.post("/{name}")
def invoke_function(
    name: str,
    body: Any = Body(default=None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    proxy: UpstreamProxy = Depends(get_upstream_proxy),
):
    function = resolve_function(name)
    body = body if body is not None else {}
    if not isinstance(body, dict):
        raise ValidationFailed("Function payload must be a JSON object")

    match function:
        case FunctionName.ZABBIX_PROXY:
            return zabbix_proxy(db, principal, proxy, body)
        case FunctionName.ZABBIX_CONNECTIONS:
            action = connections.resolve_action(body.get("action") or "list")
            return connections.run_action(db, principal, proxy, action, body)
        case FunctionName.PRINTER_STATUS:
            action = printers.resolve_action(body.get("action"))
            return printers.run_action(db, proxy, principal.tenant_id, action, body)
        case FunctionName.PRINTER_CONFIGS:
            return printers.upsert_config(db, tenant_id=principal.tenant_id, user_id=principal.user_id, payload=body)
        case FunctionName.SYSTEM_STATUS:
            return system_status(db)
