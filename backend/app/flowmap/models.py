from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType, new_id

CTO_CAPACITIES = (4, 8, 16, 32)


class FlowMap(Base):
    __tablename__ = "flow_maps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    center_lat: Mapped[float] = mapped_column(Float, nullable=False, default=-20.4630)
    center_lon: Mapped[float] = mapped_column(Float, nullable=False, default=-54.6190)
    zoom: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    theme: Mapped[str] = mapped_column(String(32), nullable=False, default="dark")
    refresh_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class FlowMapHost(Base):
    __tablename__ = "flow_map_hosts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    zabbix_host_id: Mapped[str] = mapped_column(String(64), nullable=False)
    host_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    host_group: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    icon_type: Mapped[str] = mapped_column(String(64), nullable=False, default="router")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_status: Mapped[str] = mapped_column(String(16), nullable=False, default="UNKNOWN")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class FlowMapLink(Base):
    __tablename__ = "flow_map_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    origin_host_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_map_hosts.id"), nullable=False)
    dest_host_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_map_hosts.id"), nullable=False)
    link_type: Mapped[str] = mapped_column(String(32), nullable=False, default="fiber")
    capacity_mbps: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    current_status: Mapped[str] = mapped_column(String(16), nullable=False, default="UNKNOWN")
    last_status_change: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_ring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    geometry: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=lambda: {"type": "LineString", "coordinates": []}
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class FlowMapCto(Base):
    """Passive fiber distribution box; `capacity` is the total port count."""

    __tablename__ = "flow_map_ctos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default="")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=16)
    occupied_ports: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_calculated: Mapped[str] = mapped_column(String(16), nullable=False, default="UNKNOWN")
    olt_host_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("flow_map_hosts.id"), nullable=True)
    pon_port_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    zabbix_host_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    metadata_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class FlowMapEffectiveCache(Base):
    """Status propagation result per map, written by the propagation worker."""

    __tablename__ = "flow_map_effective_cache"

    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    payload: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    computed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    rpc_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    host_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_depth: Mapped[int | None] = mapped_column(Integer, nullable=True)


class FlowMapLinkItem(Base):
    """Monitoring item bound to one side of a link (traffic in/out, errors...)."""

    __tablename__ = "flow_map_link_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    link_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("flow_map_links.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    zabbix_host_id: Mapped[str] = mapped_column(String(64), nullable=False)
    zabbix_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    key_: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    metric: Mapped[str] = mapped_column(String(64), nullable=False)
    side: Mapped[str] = mapped_column(String(16), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class FlowMapLinkEvent(Base):
    __tablename__ = "flow_map_link_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    link_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("flow_map_links.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="UNKNOWN")
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class FlowMapCable(Base):
    __tablename__ = "flow_map_cables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    source_node_id: Mapped[str] = mapped_column(String(36), nullable=False)
    source_node_type: Mapped[str] = mapped_column(String(16), nullable=False, default="host")
    target_node_id: Mapped[str] = mapped_column(String(36), nullable=False)
    target_node_type: Mapped[str] = mapped_column(String(16), nullable=False, default="cto")
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    cable_type: Mapped[str] = mapped_column(String(16), nullable=False, default="ASU")
    fiber_count: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    color_override: Mapped[str | None] = mapped_column(String(32), nullable=True)
    geometry: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=lambda: {"type": "LineString", "coordinates": []}
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class FlowMapReserva(Base):
    """Slack cable coil left at a point of the map for future splices."""

    __tablename__ = "flow_map_reservas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    map_id: Mapped[str] = mapped_column(String(36), ForeignKey("flow_maps.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    tipo_cabo: Mapped[str] = mapped_column(String(16), nullable=False, default="ASU")
    comprimento_m: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pendente")
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
