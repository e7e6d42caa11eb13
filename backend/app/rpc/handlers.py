import logging
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.alerts.models import ALERT_STATUSES, AlertEvent, AlertInstance
from app.auth.deps import Principal
from app.auth.models import Profile
from app.core.errors import Conflict, Forbidden, FunctionNotFound, GatewayError, ValidationFailed
from app.db.upsert import upsert_insert
from app.flowmap.models import FlowMapCto, FlowMapEffectiveCache, FlowMapHost
from app.rpc.geo import haversine_m
from app.telemetry.models import TelemetryHeartbeat

logger = logging.getLogger(__name__)

# bounding box pre-filter, roughly 220 m x 310 m around the point
VIABILITY_DLAT = 0.002
VIABILITY_DLON = 0.003
VIABILITY_RADIUS_M = 200.0
VIABILITY_LIMIT = 5

DEFAULT_HEARTBEAT_SOURCE = "zabbix-webhook"


class RpcName(str, Enum):
    CHECK_VIABILITY = "check_viability"
    GET_MAP_EFFECTIVE_STATUS = "get_map_effective_status"
    ALERT_TRANSITION = "alert_transition"
    BUMP_TELEMETRY_HEARTBEAT = "bump_telemetry_heartbeat"
    GET_USER_TENANT_ID = "get_user_tenant_id"


def resolve_rpc(name: str) -> RpcName:
    try:
        return RpcName(name)
    except ValueError:
        raise FunctionNotFound(f'function "{name}" not found')


def _number(args: dict, key: str) -> float:
    try:
        return float(args[key])
    except (KeyError, TypeError, ValueError):
        raise ValidationFailed(f"{key} must be a number")


def _required(args: dict, key: str) -> str:
    value = args.get(key)
    if not value:
        raise ValidationFailed(f"{key} is required")
    return str(value)


def check_viability(db: Session, principal: Principal, args: dict) -> list[dict]:
    lat = _number(args, "lat")
    lon = _number(args, "lon")
    map_id = _required(args, "map_id")

    ctos = db.execute(
        select(FlowMapCto).where(
            FlowMapCto.tenant_id == principal.tenant_id,
            FlowMapCto.map_id == map_id,
            func.abs(FlowMapCto.lat - lat) < VIABILITY_DLAT,
            func.abs(FlowMapCto.lon - lon) < VIABILITY_DLON,
        )
    ).scalars().all()

    candidates = []
    for cto in ctos:
        distance = haversine_m(lat, lon, cto.lat, cto.lon)
        if distance > VIABILITY_RADIUS_M:
            continue
        candidates.append(
            {
                "cto_id": cto.id,
                "cto_name": cto.name,
                "distance_m": round(distance, 2),
                "capacity": cto.capacity,
                "occupied_ports": cto.occupied_ports,
                "free_ports": cto.capacity - cto.occupied_ports,
                "status_calculated": cto.status_calculated,
            }
        )

    candidates.sort(key=lambda c: c["distance_m"])
    return candidates[:VIABILITY_LIMIT]


def get_map_effective_status(db: Session, principal: Principal, args: dict) -> list[dict]:
    map_id = _required(args, "map_id")

    cached = db.execute(
        select(FlowMapEffectiveCache).where(
            FlowMapEffectiveCache.map_id == map_id,
            FlowMapEffectiveCache.tenant_id == principal.tenant_id,
        )
    ).scalar_one_or_none()
    if cached is not None:
        return list(cached.payload or [])

    # no propagation result yet: report raw host status, depth 0
    hosts = db.execute(
        select(FlowMapHost.id, FlowMapHost.current_status).where(
            FlowMapHost.map_id == map_id,
            FlowMapHost.tenant_id == principal.tenant_id,
        )
    ).all()
    return [
        {
            "host_id": host_id,
            "effective_status": status,
            "is_root_cause": status == "DOWN",
            "depth": 0,
        }
        for host_id, status in hosts
    ]


def transition_event_type(from_status: str, to_status: str) -> str:
    if from_status == "open" and to_status == "ack":
        return "ACK"
    if to_status == "resolved":
        return "RESOLVE"
    return "UPDATE"


def alert_transition(db: Session, principal: Principal, args: dict) -> None:
    alert_id = _required(args, "p_alert_id")
    to_status = _required(args, "p_to")
    if to_status not in ALERT_STATUSES:
        raise ValidationFailed(f"p_to must be one of {list(ALERT_STATUSES)}")

    from_status = db.execute(
        select(AlertInstance.status).where(
            AlertInstance.id == alert_id,
            AlertInstance.tenant_id == principal.tenant_id,
        )
    ).scalar_one_or_none()
    if from_status is None:
        raise GatewayError("alert not found", code="not_found", status_code=404)

    now = datetime.utcnow()
    values: dict[str, Any] = {"status": to_status, "updated_at": now}
    # COALESCE keeps the first acknowledgement / resolution
    if to_status == "ack":
        values["acknowledged_at"] = func.coalesce(AlertInstance.acknowledged_at, now)
        values["acknowledged_by"] = func.coalesce(AlertInstance.acknowledged_by, principal.user_id)
    elif to_status == "resolved":
        values["resolved_at"] = func.coalesce(AlertInstance.resolved_at, now)
        values["resolved_by"] = func.coalesce(AlertInstance.resolved_by, principal.user_id)

    try:
        db.execute(
            update(AlertInstance)
            .where(AlertInstance.id == alert_id, AlertInstance.tenant_id == principal.tenant_id)
            .values(**values)
        )
        db.add(
            AlertEvent(
                tenant_id=principal.tenant_id,
                alert_id=alert_id,
                event_type=transition_event_type(from_status, to_status),
                from_status=from_status,
                to_status=to_status,
                user_id=principal.user_id,
                message=args.get("p_message"),
                payload=args.get("p_payload") or {},
                occurred_at=now,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Alert %s moved %s -> %s by %s", alert_id, from_status, to_status, principal.user_id)
    return None


def bump_telemetry_heartbeat(db: Session, principal: Principal, args: dict) -> None:
    tenant_id = args.get("p_tenant_id") or principal.tenant_id
    if tenant_id != principal.tenant_id:
        raise Forbidden("Cannot record a heartbeat for another tenant")
    source = args.get("p_source") or DEFAULT_HEARTBEAT_SOURCE
    now = datetime.utcnow()

    table = TelemetryHeartbeat.__table__
    stmt = upsert_insert(db, table).values(
        tenant_id=tenant_id,
        last_webhook_at=now,
        last_webhook_source=source,
        event_count=1,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.tenant_id],
        set_={
            "last_webhook_at": now,
            "last_webhook_source": source,
            "event_count": table.c.event_count + 1,
            "updated_at": now,
        },
    )
    try:
        db.execute(stmt)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Unknown tenant for heartbeat")
    return None


def get_user_tenant_id(db: Session, principal: Principal, args: dict) -> str | None:
    return db.execute(select(Profile.tenant_id).where(Profile.id == principal.user_id)).scalar_one_or_none()


def dispatch(name: RpcName, db: Session, principal: Principal, args: dict) -> Any:
    match name:
        case RpcName.CHECK_VIABILITY:
            return check_viability(db, principal, args)
        case RpcName.GET_MAP_EFFECTIVE_STATUS:
            return get_map_effective_status(db, principal, args)
        case RpcName.ALERT_TRANSITION:
            return alert_transition(db, principal, args)
        case RpcName.BUMP_TELEMETRY_HEARTBEAT:
            return bump_telemetry_heartbeat(db, principal, args)
        case RpcName.GET_USER_TENANT_ID:
            return get_user_tenant_id(db, principal, args)
