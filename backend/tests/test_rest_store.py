import pytest
from sqlalchemy import select

from app.audit.models import AuditLog
from app.dashboards.models import Dashboard, Widget
from app.main import app
from app.printers.models import PrinterConfig
from app.upstream.models import RmsConnection, ZabbixConnection
from app.upstream.service import get_upstream_proxy
from conftest import FakeZabbix, auth_headers, make_connection, make_proxy, make_user

REPRESENTATION = {"Prefer": "return=representation"}


def _dashboard(db, tenant_id: str, name: str) -> Dashboard:
    dashboard = Dashboard(tenant_id=tenant_id, name=name)
    db.add(dashboard)
    db.commit()
    return dashboard


def test_list_is_tenant_scoped_and_sets_content_range(client, db, admin, other_tenant_admin):
    _dashboard(db, admin.tenant_id, "NOC")
    _dashboard(db, other_tenant_admin.tenant_id, "Someone else's")

    resp = client.get("/rest/v1/dashboards", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert [row["name"] for row in resp.json()] == ["NOC"]
    assert resp.headers["content-range"] == "0-1/*"


def test_missing_token_is_rejected(client):
    resp = client.get("/rest/v1/dashboards")
    assert resp.status_code == 401
    assert resp.json()["error"] == "not_authenticated"


def test_unknown_relation_returns_404(client, admin):
    resp = client.get("/rest/v1/secrets", headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json() == {"error": "relation_not_found", "message": 'relation "secrets" not found'}


def test_invalid_filter_is_a_validation_error(client, admin):
    resp = client.get("/rest/v1/dashboards?nope=eq.1", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"


def test_create_without_representation_returns_empty_ack(client, db, admin):
    resp = client.post("/rest/v1/dashboards", json={"name": "Core"}, headers=auth_headers(admin))

    assert resp.status_code == 201
    assert resp.json() == {}
    assert db.execute(select(Dashboard.name)).scalars().all() == ["Core"]


def test_create_stamps_tenant_and_creator_from_token(client, admin, other_tenant_admin):
    resp = client.post(
        "/rest/v1/dashboards",
        json={"name": "Core", "tenant_id": other_tenant_admin.tenant_id},
        headers=auth_headers(admin, **REPRESENTATION),
    )

    assert resp.status_code == 201
    row = resp.json()
    assert row["tenant_id"] == admin.tenant_id
    assert row["created_by"] == admin.id
    assert row["layout"] == []


def test_bulk_create_returns_every_row(client, admin):
    resp = client.post(
        "/rest/v1/dashboards",
        json=[{"name": "A"}, {"name": "B"}],
        headers=auth_headers(admin, **REPRESENTATION),
    )
    assert resp.status_code == 201
    assert sorted(r["name"] for r in resp.json()) == ["A", "B"]


def test_unknown_column_on_insert_is_rejected(client, admin):
    resp = client.post("/rest/v1/dashboards", json={"name": "A", "owner": "x"}, headers=auth_headers(admin))
    assert resp.status_code == 400


def test_duplicate_primary_key_is_a_conflict(client, db, admin):
    existing = _dashboard(db, admin.tenant_id, "NOC")
    resp = client.post("/rest/v1/dashboards", json={"id": existing.id, "name": "Copy"}, headers=auth_headers(admin))
    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"


def test_merge_duplicates_upserts_on_conflict_columns(client, db, admin):
    headers = auth_headers(admin, Prefer="return=representation,resolution=merge-duplicates")
    url = "/rest/v1/printer_configs?on_conflict=tenant_id,zabbix_host_id"

    first = client.post(url, json={"zabbix_host_id": "10101", "host_name": "HP", "base_counter": 100}, headers=headers)
    second = client.post(url, json={"zabbix_host_id": "10101", "host_name": "HP 2", "base_counter": 250}, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    rows = db.execute(select(PrinterConfig)).scalars().all()
    assert len(rows) == 1
    assert (rows[0].host_name, rows[0].base_counter) == ("HP 2", 250)


def test_ignore_duplicates_keeps_existing_row(client, db, admin):
    headers = auth_headers(admin, Prefer="resolution=ignore-duplicates")
    url = "/rest/v1/printer_configs?on_conflict=tenant_id,zabbix_host_id"

    client.post(url, json={"zabbix_host_id": "10101", "base_counter": 100}, headers=headers)
    client.post(url, json={"zabbix_host_id": "10101", "base_counter": 999}, headers=headers)

    assert db.execute(select(PrinterConfig.base_counter)).scalars().all() == [100]


def test_update_and_delete_require_a_filter(client, db, admin):
    _dashboard(db, admin.tenant_id, "NOC")

    patched = client.patch("/rest/v1/dashboards", json={"name": "All"}, headers=auth_headers(admin))
    deleted = client.delete("/rest/v1/dashboards", headers=auth_headers(admin))

    assert patched.status_code == 400
    assert patched.json()["error"] == "validation"
    assert deleted.status_code == 400
    db.expire_all()
    assert db.execute(select(Dashboard.name)).scalars().all() == ["NOC"]


def test_update_with_filter_returns_changed_rows(client, db, admin):
    dashboard = _dashboard(db, admin.tenant_id, "NOC")

    resp = client.patch(
        f"/rest/v1/dashboards?id=eq.{dashboard.id}",
        json={"name": "Backbone"},
        headers=auth_headers(admin, **REPRESENTATION),
    )

    assert resp.status_code == 200
    assert [r["name"] for r in resp.json()] == ["Backbone"]


def test_update_cannot_reach_another_tenant(client, db, admin, other_tenant_admin):
    dashboard = _dashboard(db, admin.tenant_id, "NOC")

    resp = client.patch(
        f"/rest/v1/dashboards?id=eq.{dashboard.id}",
        json={"name": "Hijacked"},
        headers=auth_headers(other_tenant_admin, **REPRESENTATION),
    )

    assert resp.status_code == 200
    assert resp.json() == []
    db.expire_all()
    assert db.get(Dashboard, dashboard.id).name == "NOC"


def test_update_rejects_tenant_change(client, db, admin, other_tenant_admin):
    dashboard = _dashboard(db, admin.tenant_id, "NOC")
    resp = client.patch(
        f"/rest/v1/dashboards?id=eq.{dashboard.id}",
        json={"tenant_id": other_tenant_admin.tenant_id},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 400


def test_delete_with_filter(client, db, admin):
    keep = _dashboard(db, admin.tenant_id, "Keep")
    drop = _dashboard(db, admin.tenant_id, "Drop")

    resp = client.delete(f"/rest/v1/dashboards?id=eq.{drop.id}", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json() == {}
    db.expire_all()
    assert db.execute(select(Dashboard.id)).scalars().all() == [keep.id]


def test_widget_writes_require_an_owned_dashboard(client, db, admin, other_tenant_admin):
    own = _dashboard(db, admin.tenant_id, "Mine")
    foreign = _dashboard(db, other_tenant_admin.tenant_id, "Theirs")

    denied = client.post(
        "/rest/v1/widgets", json={"dashboard_id": foreign.id, "widget_type": "chart"}, headers=auth_headers(admin)
    )
    allowed = client.post(
        "/rest/v1/widgets", json={"dashboard_id": own.id, "widget_type": "chart"}, headers=auth_headers(admin)
    )

    assert denied.status_code == 403
    assert allowed.status_code == 201
    assert db.execute(select(Widget.dashboard_id)).scalars().all() == [own.id]


def test_widgets_list_only_through_owned_dashboards(client, db, admin, other_tenant_admin):
    own = _dashboard(db, admin.tenant_id, "Mine")
    foreign = _dashboard(db, other_tenant_admin.tenant_id, "Theirs")
    db.add_all([Widget(dashboard_id=own.id, widget_type="chart"), Widget(dashboard_id=foreign.id, widget_type="map")])
    db.commit()

    resp = client.get("/rest/v1/widgets", headers=auth_headers(admin))

    assert [w["widget_type"] for w in resp.json()] == ["chart"]


def test_connection_secrets_are_never_returned(client, db, admin):
    db.add(
        ZabbixConnection(
            tenant_id=admin.tenant_id,
            name="Core",
            url="https://zbx.example",
            username="api",
            password_ciphertext="aa",
            password_iv="bb",
            password_tag="cc",
        )
    )
    db.commit()

    rows = client.get("/rest/v1/zabbix_connections", headers=auth_headers(admin)).json()

    assert len(rows) == 1
    assert not {"password_ciphertext", "password_iv", "password_tag"} & set(rows[0])


def test_connections_cannot_be_inserted_through_rows(client, admin):
    resp = client.post(
        "/rest/v1/zabbix_connections",
        json={"name": "x", "url": "https://x", "username": "u"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 403


def test_append_only_relations_reject_writes(client, db, admin):
    db.add(AuditLog(tenant_id=admin.tenant_id, user_id=admin.id, action="user.created"))
    db.commit()

    inserted = client.post("/rest/v1/audit_logs", json={"action": "forged"}, headers=auth_headers(admin))
    deleted = client.delete("/rest/v1/audit_logs?action=eq.user.created", headers=auth_headers(admin))

    assert inserted.status_code == 403
    assert deleted.status_code == 403
    assert len(client.get("/rest/v1/audit_logs", headers=auth_headers(admin)).json()) == 1


def test_role_gated_relations(client, db, admin, tenant):
    viewer = make_user(db, tenant, "viewer@acme.test", role="viewer")

    resp = client.patch(
        f"/rest/v1/profiles?id=eq.{viewer.id}",
        json={"display_name": "Boss"},
        headers=auth_headers(viewer, role="viewer"),
    )

    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


def test_connections_are_admin_only_through_the_row_store(client, db, admin, tenant):
    viewer = make_user(db, tenant, "viewer@acme.test", role="viewer")
    conn = make_connection(db, tenant.id)

    patched = client.patch(
        f"/rest/v1/zabbix_connections?id=eq.{conn.id}",
        json={"url": "https://elsewhere.example"},
        headers=auth_headers(viewer, role="viewer"),
    )
    deleted = client.delete(f"/rest/v1/zabbix_connections?id=eq.{conn.id}", headers=auth_headers(viewer, role="viewer"))

    assert patched.status_code == 403
    assert deleted.status_code == 403
    db.expire_all()
    assert db.get(ZabbixConnection, conn.id).url == "https://zbx.example/"


def _proxy_call(client, admin, conn_id):
    return client.post(
        "/functions/v1/zabbix-proxy",
        json={"connection_id": conn_id, "method": "host.get"},
        headers=auth_headers(admin),
    )


def test_editing_a_connection_drops_its_upstream_session(client, db, admin):
    conn = make_connection(db, admin.tenant_id)
    fake = FakeZabbix({"host.get": []})
    proxy = make_proxy(fake)
    app.dependency_overrides[get_upstream_proxy] = lambda: proxy

    assert _proxy_call(client, admin, conn.id).status_code == 200
    resp = client.patch(
        f"/rest/v1/zabbix_connections?id=eq.{conn.id}", json={"username": "other"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert resp.json() == {}
    assert proxy.cache.get(conn.id) is None
    assert _proxy_call(client, admin, conn.id).status_code == 200

    assert fake.methods() == ["user.login", "host.get", "user.login", "host.get"]
    assert fake.calls[2]["params"]["username"] == "other"


def test_deleting_a_connection_drops_its_upstream_session(client, db, admin):
    conn = make_connection(db, admin.tenant_id)
    proxy = make_proxy(FakeZabbix())
    proxy.cache.put(conn.id, "cached-token")
    app.dependency_overrides[get_upstream_proxy] = lambda: proxy

    resp = client.delete(f"/rest/v1/zabbix_connections?id=eq.{conn.id}", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json() == {}
    assert proxy.cache.get(conn.id) is None


@pytest.mark.parametrize(
    "relation",
    [
        "flow_map_link_items",
        "flow_map_link_events",
        "flow_map_cables",
        "flow_map_reservas",
        "alert_notifications",
        "notification_channels",
        "escalation_policies",
        "escalation_steps",
        "maintenance_scopes",
        "flow_audit_logs",
        "telemetry_config",
        "rms_connections",
    ],
)
def test_dashboard_relations_are_exposed(client, admin, relation):
    resp = client.get(f"/rest/v1/{relation}", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json() == []


def test_cable_insert_is_stamped_with_tenant(client, db, admin):
    flow_map = client.post(
        "/rest/v1/flow_maps", json={"name": "Backbone"}, headers={**auth_headers(admin), **REPRESENTATION}
    ).json()

    resp = client.post(
        "/rest/v1/flow_map_cables",
        json={"map_id": flow_map["id"], "source_node_id": "a", "target_node_id": "b", "tenant_id": "spoofed"},
        headers={**auth_headers(admin), **REPRESENTATION},
    )

    assert resp.status_code == 201
    cable = resp.json()
    assert cable["tenant_id"] == admin.tenant_id
    assert cable["cable_type"] == "ASU"
    assert cable["fiber_count"] == 12


def test_admin_only_relations_hide_from_other_roles(client, db, admin, tenant):
    viewer = make_user(db, tenant, "viewer@acme.test", role="viewer")
    headers = auth_headers(viewer, role="viewer")

    assert client.get("/rest/v1/flow_audit_logs", headers=headers).status_code == 403
    assert client.get("/rest/v1/telemetry_config", headers=headers).status_code == 403
    created = client.post(
        "/rest/v1/notification_channels", json={"name": "NOC", "channel": "telegram"}, headers=headers
    )
    assert created.status_code == 403
    assert client.post("/rest/v1/flow_audit_logs", json={"action": "x"}, headers=auth_headers(admin)).status_code == 403


def test_rms_connection_tokens_are_hidden(client, db, admin):
    db.add(
        RmsConnection(
            tenant_id=admin.tenant_id,
            name="RMS",
            url="https://rms.example",
            token_ciphertext="aa",
            token_iv="bb",
            token_tag="cc",
        )
    )
    db.commit()

    rows = client.get("/rest/v1/rms_connections", headers=auth_headers(admin)).json()

    assert [row["name"] for row in rows] == ["RMS"]
    assert not {"token_ciphertext", "token_iv", "token_tag"} & set(rows[0])
    assert client.get("/rest/v1/rms_connections?select=token_ciphertext", headers=auth_headers(admin)).status_code == 400
