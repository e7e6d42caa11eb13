"""flow map detail, alert notification and rms relations

Revision ID: 9c4f1a7e2d36
Revises: 5b2e8d41c7a9
Create Date: 2026-10-19 10:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "9c4f1a7e2d36"
down_revision: Union[str, Sequence[str], None] = "5b2e8d41c7a9"
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


def _index(table: str, *columns: str) -> None:
    for column in columns:
        op.create_index(op.f(f"ix_{table}_{column}"), table, [column], unique=False)


def upgrade() -> None:
    op.create_table(
        "flow_map_link_items",
        _id(),
        sa.Column(
            "link_id", sa.String(length=36), sa.ForeignKey("flow_map_links.id", ondelete="CASCADE"), nullable=False
        ),
        _tenant(),
        sa.Column("zabbix_host_id", sa.String(length=64), nullable=False),
        sa.Column("zabbix_item_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("key_", sa.String(length=255), nullable=False),
        sa.Column("metric", sa.String(length=64), nullable=False),
        sa.Column("side", sa.String(length=16), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("flow_map_link_items", "link_id", "tenant_id")

    op.create_table(
        "flow_map_link_events",
        _id(),
        sa.Column(
            "link_id", sa.String(length=36), sa.ForeignKey("flow_map_links.id", ondelete="CASCADE"), nullable=False
        ),
        _tenant(),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("flow_map_link_events", "link_id", "tenant_id")

    op.create_table(
        "flow_map_cables",
        _id(),
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("source_node_id", sa.String(length=36), nullable=False),
        sa.Column("source_node_type", sa.String(length=16), nullable=False),
        sa.Column("target_node_id", sa.String(length=36), nullable=False),
        sa.Column("target_node_type", sa.String(length=16), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("cable_type", sa.String(length=16), nullable=False),
        sa.Column("fiber_count", sa.Integer(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=False),
        sa.Column("color_override", sa.String(length=32), nullable=True),
        sa.Column("geometry", JSON, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("flow_map_cables", "tenant_id")

    op.create_table(
        "flow_map_reservas",
        _id(),
        sa.Column("map_id", sa.String(length=36), sa.ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False),
        _tenant(),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("tipo_cabo", sa.String(length=16), nullable=False),
        sa.Column("comprimento_m", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("flow_map_reservas", "tenant_id")

    op.create_table(
        "notification_channels",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column("config", JSON, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("notification_channels", "tenant_id")

    op.create_table(
        "escalation_policies",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("escalation_policies", "tenant_id")

    op.create_table(
        "escalation_steps",
        _id(),
        sa.Column(
            "policy_id",
            sa.String(length=36),
            sa.ForeignKey("escalation_policies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _tenant(),
        sa.Column("channel_id", sa.String(length=36), sa.ForeignKey("notification_channels.id"), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("delay_seconds", sa.Integer(), nullable=False),
        sa.Column("throttle_seconds", sa.Integer(), nullable=False),
        sa.Column("target", JSON, nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("escalation_steps", "policy_id", "tenant_id")

    op.create_table(
        "alert_notifications",
        _id(),
        _tenant(),
        sa.Column("alert_id", sa.String(length=36), sa.ForeignKey("alert_instances.id"), nullable=False),
        sa.Column("channel_id", sa.String(length=36), sa.ForeignKey("notification_channels.id"), nullable=True),
        sa.Column("policy_id", sa.String(length=36), nullable=True),
        sa.Column("step_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("request", JSON, nullable=False),
        sa.Column("response", JSON, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("alert_notifications", "tenant_id", "alert_id")

    op.create_table(
        "maintenance_scopes",
        _id(),
        sa.Column(
            "maintenance_id",
            sa.String(length=36),
            sa.ForeignKey("maintenance_windows.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _tenant(),
        sa.Column("scope_type", sa.String(length=32), nullable=False),
        sa.Column("scope_value", sa.Text(), nullable=True),
        sa.Column("scope_meta", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("maintenance_scopes", "maintenance_id", "tenant_id")

    op.create_table(
        "flow_audit_logs",
        _id(),
        _tenant(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("table_name", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=36), nullable=True),
        sa.Column("old_data", JSON, nullable=True),
        sa.Column("new_data", JSON, nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("flow_audit_logs", "tenant_id")

    op.create_table(
        "telemetry_config",
        _id(),
        _tenant(),
        sa.Column("config_key", sa.String(length=128), nullable=False),
        sa.Column("config_value", sa.Text(), nullable=False),
        sa.Column("iv", sa.String(length=64), nullable=True),
        sa.Column("tag", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=36), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "config_key", name="uq_telemetry_config_tenant_key"),
    )
    _index("telemetry_config", "tenant_id")

    op.create_table(
        "rms_connections",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=1024), nullable=False),
        sa.Column("token_ciphertext", sa.Text(), nullable=False),
        sa.Column("token_iv", sa.String(length=64), nullable=False),
        sa.Column("token_tag", sa.String(length=64), nullable=False),
        sa.Column("encryption_version", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _index("rms_connections", "tenant_id")


def downgrade() -> None:
    for table in (
        "rms_connections",
        "telemetry_config",
        "flow_audit_logs",
        "maintenance_scopes",
        "alert_notifications",
        "escalation_steps",
        "escalation_policies",
        "notification_channels",
        "flow_map_reservas",
        "flow_map_cables",
        "flow_map_link_events",
        "flow_map_link_items",
    ):
        op.drop_table(table)
