"""initial gateway schema

Revision ID: 5b2e8d41c7a9
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "5b2e8d41c7a9"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), nullable=False)


def _tenant() -> sa.Column:
    return sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "auth_users",
        _id(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("encrypted_password", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), sa.ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("language", sa.String(length=16), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_profiles_tenant_id"), "profiles", ["tenant_id"], unique=False)

    op.create_table(
        "user_roles",
        _id(),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "tenant_id", "role"),
    )
    op.create_index(op.f("ix_user_roles_user_id"), "user_roles", ["user_id"], unique=False)

    op.create_table(
        "dashboards",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("layout", JSON, nullable=False),
        sa.Column("settings", JSON, nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("zabbix_connection_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_dashboards_tenant_id"), "dashboards", ["tenant_id"], unique=False)

    op.create_table(
        "widgets",
        _id(),
        sa.Column(
            "dashboard_id", sa.String(length=36), sa.ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("widget_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("config", JSON, nullable=False),
        sa.Column("query", JSON, nullable=False),
        sa.Column("adapter", JSON, nullable=False),
        sa.Column("position_x", sa.Integer(), nullable=False),
        sa.Column("position_y", sa.Integer(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_widgets_dashboard_id"), "widgets", ["dashboard_id"], unique=False)

    op.create_table(
        "zabbix_connections",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=1024), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("password_ciphertext", sa.Text(), nullable=False),
        sa.Column("password_iv", sa.String(length=64), nullable=False),
        sa.Column("password_tag", sa.String(length=64), nullable=False),
        sa.Column("encryption_version", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_zabbix_connections_tenant_id"), "zabbix_connections", ["tenant_id"], unique=False)

    op.create_table(
        "flow_maps",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("center_lat", sa.Float(), nullable=False),
        sa.Column("center_lon", sa.Float(), nullable=False),
        sa.Column("zoom", sa.Integer(), nullable=False),
        sa.Column("theme", sa.String(length=32), nullable=False),
        sa.Column("refresh_interval", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_flow_maps_tenant_id"), "flow_maps", ["tenant_id"], unique=False)

    op.create_table(
        "flow_map_hosts",
        _id(),
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("zabbix_host_id", sa.String(length=64), nullable=False),
        sa.Column("host_name", sa.String(length=255), nullable=False),
        sa.Column("host_group", sa.String(length=255), nullable=False),
        sa.Column("icon_type", sa.String(length=64), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("is_critical", sa.Boolean(), nullable=False),
        sa.Column("current_status", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_flow_map_hosts_tenant_id"), "flow_map_hosts", ["tenant_id"], unique=False)

    op.create_table(
        "flow_map_links",
        _id(),
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("origin_host_id", sa.String(length=36), sa.ForeignKey("flow_map_hosts.id"), nullable=False),
        sa.Column("dest_host_id", sa.String(length=36), sa.ForeignKey("flow_map_hosts.id"), nullable=False),
        sa.Column("link_type", sa.String(length=32), nullable=False),
        sa.Column("capacity_mbps", sa.Integer(), nullable=False),
        sa.Column("current_status", sa.String(length=16), nullable=False),
        sa.Column("last_status_change", sa.DateTime(), nullable=True),
        sa.Column("is_ring", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("geometry", JSON, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_flow_map_links_tenant_id"), "flow_map_links", ["tenant_id"], unique=False)

    op.create_table(
        "flow_map_ctos",
        _id(),
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("occupied_ports", sa.Integer(), nullable=False),
        sa.Column("status_calculated", sa.String(length=16), nullable=False),
        sa.Column("olt_host_id", sa.String(length=36), sa.ForeignKey("flow_map_hosts.id"), nullable=True),
        sa.Column("pon_port_index", sa.Integer(), nullable=False),
        sa.Column("zabbix_host_ids", JSON, nullable=False),
        sa.Column("metadata", JSON, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_flow_map_ctos_tenant_id"), "flow_map_ctos", ["tenant_id"], unique=False)

    op.create_table(
        "flow_map_effective_cache",
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("computed_at", sa.DateTime(), nullable=False),
        sa.Column("rpc_duration_ms", sa.Integer(), nullable=True),
        sa.Column("host_count", sa.Integer(), nullable=True),
        sa.Column("max_depth", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("map_id"),
    )
    op.create_index(
        op.f("ix_flow_map_effective_cache_tenant_id"), "flow_map_effective_cache", ["tenant_id"], unique=False
    )

    op.create_table(
        "sla_policies",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ack_target_seconds", sa.Integer(), nullable=False),
        sa.Column("resolve_target_seconds", sa.Integer(), nullable=False),
        sa.Column("business_hours", JSON, nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sla_policies_tenant_id"), "sla_policies", ["tenant_id"], unique=False)

    op.create_table(
        "alert_rules",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("matchers", JSON, nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("auto_resolve", sa.Boolean(), nullable=False),
        sa.Column("dedupe_key_template", sa.String(length=255), nullable=False),
        sa.Column("zabbix_connection_id", sa.String(length=36), nullable=True),
        sa.Column("sla_policy_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_alert_rules_tenant_id"), "alert_rules", ["tenant_id"], unique=False)

    op.create_table(
        "alert_instances",
        _id(),
        _tenant(),
        sa.Column("rule_id", sa.String(length=36), sa.ForeignKey("alert_rules.id"), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("dedupe_key", sa.String(length=255), nullable=False),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("suppressed", sa.Boolean(), nullable=False),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("acknowledged_by", sa.String(length=36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.String(length=36), nullable=True),
        sa.Column("ack_due_at", sa.DateTime(), nullable=True),
        sa.Column("resolve_due_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alert_instances_tenant_status", "alert_instances", ["tenant_id", "status"], unique=False)

    op.create_table(
        "alert_events",
        _id(),
        _tenant(),
        sa.Column("alert_id", sa.String(length=36), sa.ForeignKey("alert_instances.id"), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("from_status", sa.String(length=16), nullable=True),
        sa.Column("to_status", sa.String(length=16), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_alert_events_alert_id"), "alert_events", ["alert_id"], unique=False)

    op.create_table(
        "maintenance_windows",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_maintenance_windows_tenant_id"), "maintenance_windows", ["tenant_id"], unique=False)

    op.create_table(
        "audit_logs",
        _id(),
        _tenant(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=True),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_user_id"), "audit_logs", ["user_id"], unique=False)
    op.create_index("ix_audit_logs_tenant_created_at", "audit_logs", ["tenant_id", "created_at"], unique=False)

    op.create_table(
        "telemetry_heartbeat",
        sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("last_webhook_at", sa.DateTime(), nullable=True),
        sa.Column("last_webhook_source", sa.String(length=128), nullable=True),
        sa.Column("event_count", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "webhook_tokens",
        _id(),
        _tenant(),
        sa.Column("token_hash", sa.String(length=128), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_webhook_tokens_tenant_id"), "webhook_tokens", ["tenant_id"], unique=False)

    op.create_table(
        "printer_configs",
        _id(),
        _tenant(),
        sa.Column("dashboard_id", sa.String(length=36), sa.ForeignKey("dashboards.id"), nullable=True),
        sa.Column("zabbix_host_id", sa.String(length=64), nullable=False),
        sa.Column("host_name", sa.String(length=255), nullable=False),
        sa.Column("base_counter", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "zabbix_host_id", name="uq_printer_configs_tenant_host"),
    )
    op.create_index(op.f("ix_printer_configs_tenant_id"), "printer_configs", ["tenant_id"], unique=False)

    op.create_table(
        "billing_logs",
        _id(),
        _tenant(),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("total_pages", sa.BigInteger(), nullable=False),
        sa.Column("entries", JSON, nullable=False),
        sa.Column("snapshot_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_billing_logs_tenant_id"), "billing_logs", ["tenant_id"], unique=False)


def downgrade() -> None:
    for table in (
        "billing_logs",
        "printer_configs",
        "webhook_tokens",
        "telemetry_heartbeat",
        "audit_logs",
        "maintenance_windows",
        "alert_events",
        "alert_instances",
        "alert_rules",
        "sla_policies",
        "flow_map_effective_cache",
        "flow_map_ctos",
        "flow_map_links",
        "flow_map_hosts",
        "flow_maps",
        "zabbix_connections",
        "widgets",
        "dashboards",
        "user_roles",
        "profiles",
        "auth_users",
        "tenants",
    ):
        op.drop_table(table)
