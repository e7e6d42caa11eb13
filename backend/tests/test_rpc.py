import pytest
from sqlalchemy import select

from app.alerts.models import AlertEvent, AlertInstance
from app.core.errors import Forbidden, FunctionNotFound, GatewayError, ValidationFailed
from app.flowmap.models import FlowMap, FlowMapCto, FlowMapEffectiveCache, FlowMapHost
from app.rpc import handlers
from app.rpc.geo import haversine_m
from app.telemetry.models import TelemetryHeartbeat
from conftest import auth_headers, make_user, principal_for

LAT, LON = -20.0, -54.0


def _map(db, tenant_id: str) -> FlowMap:
    flow_map = FlowMap(tenant_id=tenant_id, name="Backbone")
    db.add(flow_map)
    db.commit()
    return flow_map


def _cto(db, flow_map: FlowMap, name: str, lat: float, lon: float, capacity=16, occupied=0, tenant_id=None):
    cto = FlowMapCto(
        map_id=flow_map.id,
        tenant_id=tenant_id or flow_map.tenant_id,
        name=name,
        lat=lat,
        lon=lon,
        capacity=capacity,
        occupied_ports=occupied,
    )
    db.add(cto)
    db.commit()
    return cto


def _alert(db, tenant_id: str, status: str = "open") -> AlertInstance:
    alert = AlertInstance(tenant_id=tenant_id, title="OLT-01 down", dedupe_key="zabbix:1", status=status)
    db.add(alert)
    db.commit()
    return alert


def test_haversine_known_distance():
    # one thousandth of a degree of latitude
    assert haversine_m(0.0, 0.0, 0.001, 0.0) == pytest.approx(111.19, abs=0.01)
    assert haversine_m(LAT, LON, LAT, LON) == 0


def test_viability_orders_by_distance_within_radius(db, admin, other_tenant_admin):
    flow_map = _map(db, admin.tenant_id)
    _cto(db, flow_map, "far-in-box", LAT - 0.0019, LON)
    _cto(db, flow_map, "second", LAT - 0.001, LON, capacity=8, occupied=6)
    _cto(db, flow_map, "nearest", LAT - 0.0005, LON, capacity=16, occupied=3)
    _cto(db, flow_map, "east", LAT, LON - 0.0025)
    _cto(db, flow_map, "foreign", LAT, LON, tenant_id=other_tenant_admin.tenant_id)

    result = handlers.check_viability(db, principal_for(admin), {"lat": LAT, "lon": LON, "map_id": flow_map.id})

    assert [c["cto_name"] for c in result] == ["nearest", "second"]
    assert result[0]["free_ports"] == 13
    assert result[1]["free_ports"] == 2
    assert result[0]["distance_m"] == pytest.approx(55.6, abs=0.1)


def test_viability_returns_at_most_five(db, admin):
    flow_map = _map(db, admin.tenant_id)
    for i in range(7):
        _cto(db, flow_map, f"cto-{i}", LAT - 0.0001 * (i + 1), LON)

    result = handlers.check_viability(db, principal_for(admin), {"lat": LAT, "lon": LON, "map_id": flow_map.id})

    assert [c["cto_name"] for c in result] == ["cto-0", "cto-1", "cto-2", "cto-3", "cto-4"]


def test_viability_requires_coordinates(db, admin):
    with pytest.raises(ValidationFailed):
        handlers.check_viability(db, principal_for(admin), {"lat": "north", "lon": LON, "map_id": "m"})


def test_effective_status_prefers_cache(db, admin):
    flow_map = _map(db, admin.tenant_id)
    payload = [{"host_id": "h1", "effective_status": "ISOLATED", "is_root_cause": False, "depth": 2}]
    db.add(FlowMapEffectiveCache(map_id=flow_map.id, tenant_id=admin.tenant_id, payload=payload))
    db.commit()

    assert handlers.get_map_effective_status(db, principal_for(admin), {"map_id": flow_map.id}) == payload


def test_effective_status_falls_back_to_host_status(db, admin):
    flow_map = _map(db, admin.tenant_id)
    host = FlowMapHost(
        map_id=flow_map.id, tenant_id=admin.tenant_id, zabbix_host_id="10101", lat=LAT, lon=LON, current_status="DOWN"
    )
    db.add(host)
    db.commit()

    result = handlers.get_map_effective_status(db, principal_for(admin), {"map_id": flow_map.id})

    assert result == [{"host_id": host.id, "effective_status": "DOWN", "is_root_cause": True, "depth": 0}]


@pytest.mark.parametrize(
    "from_status,to_status,expected",
    [("open", "ack", "ACK"), ("open", "resolved", "RESOLVE"), ("ack", "resolved", "RESOLVE"), ("ack", "ack", "UPDATE"),
     ("resolved", "open", "UPDATE")],
)
def test_transition_event_type(from_status, to_status, expected):
    assert handlers.transition_event_type(from_status, to_status) == expected


def test_ack_is_recorded_once_and_every_transition_logged(db, tenant, admin):
    tech = make_user(db, tenant, "tech@acme.test", role="tech")
    alert = _alert(db, admin.tenant_id)

    handlers.alert_transition(db, principal_for(admin), {"p_alert_id": alert.id, "p_to": "ack", "p_message": "on it"})
    db.refresh(alert)
    first_ack = (alert.acknowledged_at, alert.acknowledged_by)

    handlers.alert_transition(db, principal_for(tech, "tech"), {"p_alert_id": alert.id, "p_to": "ack"})
    db.refresh(alert)

    assert first_ack[1] == admin.id
    assert (alert.acknowledged_at, alert.acknowledged_by) == first_ack
    events = {e.event_type: e for e in db.execute(select(AlertEvent)).scalars()}
    assert sorted(events) == ["ACK", "UPDATE"]
    assert (events["ACK"].from_status, events["ACK"].to_status) == ("open", "ack")
    assert (events["UPDATE"].from_status, events["UPDATE"].to_status) == ("ack", "ack")
    assert events["ACK"].message == "on it"
    assert events["UPDATE"].user_id == tech.id


def test_resolve_sets_resolution_fields(db, admin):
    alert = _alert(db, admin.tenant_id, status="ack")

    assert handlers.alert_transition(db, principal_for(admin), {"p_alert_id": alert.id, "p_to": "resolved"}) is None

    db.refresh(alert)
    assert alert.status == "resolved"
    assert alert.resolved_by == admin.id
    assert alert.resolved_at is not None
    assert db.execute(select(AlertEvent.event_type)).scalars().all() == ["RESOLVE"]


def test_transition_of_foreign_alert_is_not_found(db, admin, other_tenant_admin):
    alert = _alert(db, other_tenant_admin.tenant_id)

    with pytest.raises(GatewayError) as exc:
        handlers.alert_transition(db, principal_for(admin), {"p_alert_id": alert.id, "p_to": "ack"})

    assert exc.value.status_code == 404
    assert db.execute(select(AlertEvent)).first() is None


def test_transition_rejects_unknown_status(db, admin):
    alert = _alert(db, admin.tenant_id)
    with pytest.raises(ValidationFailed):
        handlers.alert_transition(db, principal_for(admin), {"p_alert_id": alert.id, "p_to": "snoozed"})


def test_heartbeat_upserts_and_counts(db, admin):
    principal = principal_for(admin)

    handlers.bump_telemetry_heartbeat(db, principal, {"p_tenant_id": admin.tenant_id})
    handlers.bump_telemetry_heartbeat(db, principal, {"p_source": "grafana"})

    row = db.execute(select(TelemetryHeartbeat)).scalar_one()
    db.refresh(row)
    assert row.event_count == 2
    assert row.last_webhook_source == "grafana"


def test_heartbeat_for_another_tenant_is_forbidden(db, admin, other_tenant_admin):
    with pytest.raises(Forbidden):
        handlers.bump_telemetry_heartbeat(db, principal_for(admin), {"p_tenant_id": other_tenant_admin.tenant_id})


def test_unknown_rpc_name():
    with pytest.raises(FunctionNotFound):
        handlers.resolve_rpc("drop_everything")


def test_rpc_route_dispatches_by_name(client, admin):
    resp = client.post("/rest/v1/rpc/get_user_tenant_id", json={}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json() == admin.tenant_id


def test_rpc_route_unknown_name(client, admin):
    resp = client.post("/rest/v1/rpc/drop_everything", json={}, headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found", "message": 'function "drop_everything" not found'}


def test_rpc_route_requires_object_arguments(client, admin):
    resp = client.post("/rest/v1/rpc/check_viability", json=[1, 2], headers=auth_headers(admin))
    assert resp.status_code == 400


def test_rpc_route_alert_transition(client, db, admin):
    alert = _alert(db, admin.tenant_id)

    resp = client.post(
        "/rest/v1/rpc/alert_transition", json={"p_alert_id": alert.id, "p_to": "ack"}, headers=auth_headers(admin)
    )

    assert resp.status_code == 200
    assert resp.json() is None
    db.expire_all()
    assert db.get(AlertInstance, alert.id).status == "ack"
